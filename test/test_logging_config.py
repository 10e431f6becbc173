"""Tests for the CLI logging setup."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from livecast.logging_config import NOISY_LOGGERS, setup_logging


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.unit
def test_file_handler_and_quiet_libraries(root_logger, tmp_path) -> None:
    log_file = tmp_path / "logs" / "livecast.log"

    setup_logging("debug", str(log_file))

    assert root_logger.level == logging.DEBUG
    assert any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers)
    assert log_file.parent.is_dir()
    assert all(logging.getLogger(name).level == logging.WARNING for name in NOISY_LOGGERS)


@pytest.mark.unit
def test_unknown_level_falls_back_to_info(root_logger, monkeypatch) -> None:
    monkeypatch.delenv("LOG_FILE", raising=False)

    setup_logging("chatty")

    assert root_logger.level == logging.INFO
    assert not any(isinstance(h, RotatingFileHandler) for h in root_logger.handlers)
