# tests/unit/core/test_logging.py
"""Tests for structlog setup."""

from collections.abc import Iterator

import pytest
import structlog

from fork_orchestrator.core.logging import reset_logging, setup_logging


@pytest.fixture(autouse=True)
def clean_logging() -> Iterator[None]:
    reset_logging()
    yield
    reset_logging()


@pytest.mark.unit
def test_json_output(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging("INFO", json_logs=True)

    structlog.get_logger("test").info("fork_created", repo="alice/project")

    err = capsys.readouterr().err
    assert '"event": "fork_created"' in err
    assert '"repo": "alice/project"' in err
    assert '"level": "info"' in err


@pytest.mark.unit
def test_level_filtering(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging("WARNING", json_logs=True)
    logger = structlog.get_logger("test")

    logger.info("hidden")
    logger.warning("shown")

    err = capsys.readouterr().err
    assert "hidden" not in err
    assert "shown" in err


@pytest.mark.unit
def test_configures_once(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging("ERROR", json_logs=True)
    setup_logging("DEBUG", json_logs=False)

    structlog.get_logger("test").warning("suppressed")

    assert "suppressed" not in capsys.readouterr().err
