"""structlog configuration for the orchestrator command surface."""

import logging
import sys

import structlog


_configured = False


def setup_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structlog once per process.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render JSON lines instead of the console format
    """
    global _configured
    if _configured:
        return

    level_number = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)

    processors: list[structlog.typing.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json_logs:
        processors.extend(
            [
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ]
        )
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level_number),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
    _configured = True


def reset_logging() -> None:
    """Allow setup_logging to run again (used by tests)."""
    global _configured
    _configured = False
    structlog.reset_defaults()
