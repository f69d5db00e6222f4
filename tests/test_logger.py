"""
Tests for logging infrastructure.

Verifies logger configuration, file creation, and name normalization.
"""

import logging
from unittest.mock import patch

import pytest

import audioscribe.utils.logger as logger_module
from audioscribe.utils.logger import get_log_dir, get_logger, shutdown_logging


@pytest.fixture
def fresh_logging(tmp_path):
    """Re-initialize the root logger against a temporary log directory."""
    shutdown_logging()
    with patch("audioscribe.utils.logger.user_log_path", return_value=tmp_path / "logs"):
        yield tmp_path / "logs"
    shutdown_logging()


class TestLoggerConfiguration:
    def test_get_logger_returns_logger(self):
        assert isinstance(get_logger("audioscribe.test"), logging.Logger)

    def test_get_logger_singleton(self):
        assert get_logger("audioscribe") is get_logger("audioscribe")

    def test_src_prefix_normalized(self):
        assert get_logger("src.audioscribe.core.asr").name == "audioscribe.core.asr"

    def test_log_directory_creation(self, fresh_logging):
        log_dir = get_log_dir()
        assert log_dir == fresh_logging
        assert log_dir.is_dir()

    def test_logger_writes_to_file(self, fresh_logging):
        logger = get_logger("audioscribe")
        logger.info("Test message")
        for handler in logger.handlers:
            handler.flush()

        content = (fresh_logging / "app.log").read_text()
        assert "Test message" in content
        assert "INFO" in content

    def test_child_loggers_reach_root_handlers(self, fresh_logging):
        get_logger("audioscribe")
        get_logger("audioscribe.core.streaming.session").warning("child warning")
        for handler in logging.getLogger("audioscribe").handlers:
            handler.flush()

        assert "child warning" in (fresh_logging / "app.log").read_text()

    def test_shutdown_removes_handlers(self, fresh_logging):
        get_logger("audioscribe")
        shutdown_logging()
        assert logging.getLogger("audioscribe").handlers == []
        assert logger_module._configured is False
