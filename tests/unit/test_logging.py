# =============================================================================
# tests/unit/test_logging.py
# Unit Tests for Logging Helpers
# =============================================================================

import logging

import pytest

from halolaba_core.logging import LogContext, get_logger, setup_logging
from halolaba_core.logging import config as logging_config


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    saved_level, saved_handlers = root.level, root.handlers[:]
    yield root
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)


class TestLogContext:

    def test_logs_start_and_completion(self, caplog):
        logger = get_logger("halolaba_core.test")

        with caplog.at_level(logging.INFO):
            with LogContext(logger, "Replaying 3 queued operations") as timing:
                pass

        assert "Replaying 3 queued operations... started" in caplog.text
        assert "Replaying 3 queued operations... completed" in caplog.text
        assert timing.elapsed >= 0

    def test_logs_failure_and_reraises(self, caplog):
        logger = get_logger("halolaba_core.test")

        with caplog.at_level(logging.INFO):
            with pytest.raises(RuntimeError):
                with LogContext(logger, "Refreshing cache"):
                    raise RuntimeError("boom")

        assert "Refreshing cache... failed" in caplog.text

    def test_custom_level(self, caplog):
        logger = get_logger("halolaba_core.test")

        with caplog.at_level(logging.DEBUG):
            with LogContext(logger, "Probe", level=logging.DEBUG):
                pass

        assert all(record.levelno == logging.DEBUG for record in caplog.records)


class TestSetupLogging:

    def test_writes_log_file_and_quiets_http_loggers(self, tmp_path, monkeypatch, restore_root_logger):
        monkeypatch.setattr(logging_config, "LOG_DIR", tmp_path / "logs")

        path = setup_logging(level="debug", log_filename="test.log")

        assert path == tmp_path / "logs" / "test.log"
        assert path.exists()
        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_level_from_environment(self, monkeypatch, restore_root_logger):
        monkeypatch.setenv("HALOLABA_LOG_LEVEL", "warning")

        assert setup_logging(log_to_file=False) is None
        assert restore_root_logger.level == logging.WARNING

    def test_unknown_level_name(self, restore_root_logger):
        with pytest.raises(ValueError):
            setup_logging(level="chatty", log_to_file=False)
