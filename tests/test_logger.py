"""Unit tests for logging setup."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from TangibleCameraInput.config import LOG_FILENAME, LOG_ROOT_NAME
from TangibleCameraInput.logger import get_log_directory, get_logger, set_log_device, setup_logging


@pytest.fixture
def log_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("TANGIBLE_INPUT_LOG_DIR", str(tmp_path / "logs"))
    yield tmp_path / "logs"
    root = logging.getLogger(LOG_ROOT_NAME)
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
    set_log_device(None)


class TestLogging:

    def test_log_directory_override(self, log_dir):
        assert get_log_directory() == log_dir
        assert log_dir.is_dir()

    def test_setup_adds_console_and_file_handlers(self, log_dir):
        logger = setup_logging(debug=True)

        assert logger.level == logging.DEBUG
        file_handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]
        assert len(file_handlers) == 1
        assert file_handlers[0].baseFilename == str(log_dir / LOG_FILENAME)

    def test_setup_is_idempotent(self, log_dir):
        setup_logging(log_to_file=False)
        logger = setup_logging(log_to_file=False)

        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO

    def test_component_loggers_are_children(self):
        assert get_logger("Pipeline").name == f"{LOG_ROOT_NAME}.Pipeline"
        assert get_logger().name == LOG_ROOT_NAME

    def test_records_tagged_with_active_camera(self, log_dir):
        logger = setup_logging(debug=True)

        set_log_device("1")
        get_logger("StreamController").info("opened")
        set_log_device(None)
        get_logger("StreamController").info("closed")
        for handler in logger.handlers:
            handler.flush()

        lines = (log_dir / LOG_FILENAME).read_text(encoding="utf-8").splitlines()
        assert any("cam 1 |" in line and "opened" in line for line in lines)
        assert any("cam - |" in line and "closed" in line for line in lines)
