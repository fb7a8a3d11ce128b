"""
Tests for logging_config module.
"""

import logging

from src.infra.logging_config import LOGGER_NAME, DailyRotatingFileHandler, setup_logging


class TestDailyRotatingFileHandler:
    """Tests for DailyRotatingFileHandler class."""

    def test_handler_creates_log_directory(self, tmp_path):
        """Test that handler creates log directory if it doesn't exist."""
        log_dir = tmp_path / "new_logs"
        assert not log_dir.exists()

        handler = DailyRotatingFileHandler(log_dir=str(log_dir))
        assert log_dir.exists()
        handler.close()

    def test_handler_creates_log_file(self, tmp_path):
        """Test that handler creates a log file with correct naming."""
        handler = DailyRotatingFileHandler(log_dir=str(tmp_path))

        log_files = list(tmp_path.glob("notifier_*.log"))
        assert len(log_files) == 1

        # notifier_YYYYMMDD_HHMMSS.log
        parts = log_files[0].stem.split("_")
        assert parts[0] == "notifier"
        assert len(parts[1]) == 8
        assert len(parts[2]) == 6
        handler.close()

    def test_handler_emits_record(self, tmp_path):
        """Test that handler writes log records to file."""
        handler = DailyRotatingFileHandler(log_dir=str(tmp_path))
        handler.setFormatter(logging.Formatter('%(message)s'))

        record = logging.LogRecord(
            name="src.scheduler.worker_pool",
            level=logging.INFO,
            pathname="",
            lineno=0,
            msg="Worker pool started",
            args=(),
            exc_info=None
        )
        handler.emit(record)
        handler.close()

        log_files = list(tmp_path.glob("notifier_*.log"))
        assert "Worker pool started" in log_files[0].read_text()


class TestSetupLogging:
    """Tests for setup_logging function."""

    def test_returns_package_logger(self):
        logger = setup_logging("INFO", log_dir=None)

        assert isinstance(logger, logging.Logger)
        assert logger.name == LOGGER_NAME

    def test_sets_correct_log_level(self):
        logger = setup_logging("DEBUG", log_dir=None)
        assert logger.level == logging.DEBUG

        logger = setup_logging("warning", log_dir=None)
        assert logger.level == logging.WARNING

    def test_console_only_without_log_dir(self):
        logger = setup_logging("INFO", log_dir=None)

        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0], logging.FileHandler)

    def test_adds_file_handler_with_log_dir(self, tmp_path):
        logger = setup_logging("INFO", log_dir=tmp_path)

        file_handlers = [h for h in logger.handlers if isinstance(h, DailyRotatingFileHandler)]
        assert len(file_handlers) == 1
        assert list(tmp_path.glob("notifier_*.log"))

    def test_repeated_setup_does_not_duplicate_handlers(self, tmp_path):
        setup_logging("INFO", log_dir=tmp_path)
        logger = setup_logging("INFO", log_dir=tmp_path)

        assert len(logger.handlers) == 2

    def test_module_loggers_inherit_handlers(self, tmp_path):
        setup_logging("INFO", log_dir=tmp_path)

        logging.getLogger("src.scheduler.recovery").info("Recovery complete")

        content = list(tmp_path.glob("notifier_*.log"))[0].read_text()
        assert "src.scheduler.recovery - INFO - Recovery complete" in content

    def test_prevents_propagation(self):
        """Test that logger propagation is disabled."""
        logger = setup_logging("INFO", log_dir=None)
        assert logger.propagate is False
