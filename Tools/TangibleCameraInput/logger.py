"""
Logging setup for TangibleCameraInput.

Configures logging to the console and to a rotating file in
%APPDATA%/TangibleInput/logs/ (or ~/.tangible_input/logs/ elsewhere).
Every record carries the camera that was active when it was logged.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import LOG_BACKUP_COUNT, LOG_FILENAME, LOG_MAX_BYTES, LOG_ROOT_NAME

NO_DEVICE = "-"


class DeviceContextFilter(logging.Filter):
    """Adds the active camera id to records as %(device)s."""

    def __init__(self):
        super().__init__()
        self.device_id = NO_DEVICE

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "device"):
            record.device = self.device_id
        return True


_device_filter = DeviceContextFilter()


def set_log_device(device_id: Optional[str]) -> None:
    """Tag subsequent records with a camera id, None when no camera is open."""
    _device_filter.device_id = device_id or NO_DEVICE


def get_log_directory() -> Path:
    """
    Get the log directory path.

    TANGIBLE_INPUT_LOG_DIR overrides the platform default.

    Returns:
        Path to the log directory, created if it doesn't exist.
    """
    override = os.environ.get("TANGIBLE_INPUT_LOG_DIR")
    appdata = os.environ.get("APPDATA")
    if override:
        log_dir = Path(override)
    elif appdata:
        log_dir = Path(appdata) / "TangibleInput" / "logs"
    else:
        log_dir = Path.home() / ".tangible_input" / "logs"

    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def setup_logging(debug: bool = False, log_to_file: bool = True) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        debug: Enable debug-level logging if True.
        log_to_file: Write logs to file if True.

    Returns:
        Configured logger instance.
    """
    logger = logging.getLogger(LOG_ROOT_NAME)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.handlers.clear()

    detailed_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | cam %(device)s | %(name)s.%(funcName)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    simple_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | cam %(device)s | %(name)s | %(message)s",
        datefmt="%H:%M:%S"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(simple_format)
    console_handler.addFilter(_device_filter)
    logger.addHandler(console_handler)

    if log_to_file:
        log_path = get_log_directory() / LOG_FILENAME

        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(detailed_format)
        file_handler.addFilter(_device_filter)
        logger.addHandler(file_handler)

        logger.debug(f"Logging to file: {log_path}")

    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a child of the TangibleInput logger.

    Args:
        name: Optional component name for the child logger.

    Returns:
        Logger instance (child of main logger or main logger if no name).
    """
    base_logger = logging.getLogger(LOG_ROOT_NAME)
    if name:
        return base_logger.getChild(name)
    return base_logger
