"""Retry/backoff executor wrapping every remote call.

Delay before retry *i* is ``min(max_delay, initial_delay * multiplier ** (i - 1))``,
with no jitter and independent of elapsed time. The executor does not inspect
failures: callers translate recoverable conditions into exceptions and
terminal ones (e.g. not-found) into successful empty results.

Example:
    >>> config = RetryConfig(max_attempts=3, initial_delay=1.0)
    >>> execute(config, "fetch usage", lambda: client.get_usage("octocat"))
"""

import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import TypeVar

from structlog import get_logger
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fork_orchestrator.exceptions import RetryExhaustedError


logger = get_logger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], None]


@dataclass(frozen=True)
class RetryConfig:
    """Bounded exponential backoff policy (delays in seconds)."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.multiplier < 1.0:
            raise ValueError(f"multiplier must be >= 1.0, got {self.multiplier}")

    @classmethod
    def fixed(cls, interval: float, max_attempts: int) -> "RetryConfig":
        """Constant-interval policy, used for readiness and completion polling."""
        return cls(
            max_attempts=max_attempts,
            initial_delay=interval,
            max_delay=interval,
            multiplier=1.0,
        )

    def delay_for(self, attempt: int) -> float:
        """Delay applied after the given (1-based) failed attempt."""
        return min(self.max_delay, self.initial_delay * self.multiplier ** (attempt - 1))

    def total_delay(self, attempts: int | None = None) -> float:
        """Sum of all delays incurred when every attempt fails."""
        attempts = self.max_attempts if attempts is None else attempts
        return sum(self.delay_for(i) for i in range(1, attempts))


def _log_retry(label: str, max_attempts: int, retry_state: RetryCallState) -> None:
    """Log a failed attempt before sleeping."""
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    delay = retry_state.next_action.sleep if retry_state.next_action else 0
    logger.warning(
        "operation_retry",
        label=label,
        attempt=retry_state.attempt_number,
        max_attempts=max_attempts,
        delay=delay,
        error=str(exc) if exc else None,
    )


def execute(
    config: RetryConfig,
    label: str,
    operation: Callable[[], T],
    *,
    sleep: SleepFn = time.sleep,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> T:
    """Run an operation until it succeeds or the attempt budget is spent.

    Args:
        config: Backoff policy
        label: Human-readable operation name used in logs and errors
        operation: Zero-argument callable to run
        sleep: Suspend function, injectable for tests
        retry_on: Exception types that count as a failed attempt

    Returns:
        The operation's return value

    Raises:
        RetryExhaustedError: If every attempt failed; chained to the last error
    """
    retrying = Retrying(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.initial_delay,
            exp_base=config.multiplier,
            max=config.max_delay,
        ),
        retry=retry_if_exception_type(retry_on),
        before_sleep=partial(_log_retry, label, config.max_attempts),
        sleep=sleep,
        reraise=False,
    )

    try:
        result: T = retrying(operation)
    except RetryError as e:
        attempts = e.last_attempt.attempt_number
        cause = e.last_attempt.exception()
        logger.warning(
            "operation_failed",
            label=label,
            attempts=attempts,
            error=str(cause),
        )
        raise RetryExhaustedError(label, attempts, cause) from cause

    return result
