"""
Logging setup for the audioscribe package.

Every module logs through a child of the ``audioscribe`` logger. Handlers are
attached once, on first use: a rotating file in the platform log directory and,
when enabled in config, a stderr stream.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List

from platformdirs import user_log_path

ROOT_LOGGER_NAME = "audioscribe"
LOG_FILE_NAME = "app.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

_configured = False


def get_log_dir() -> Path:
    log_dir = user_log_path(ROOT_LOGGER_NAME, appauthor=False)
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _build_handlers(level: int, to_console: bool) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [
        RotatingFileHandler(
            get_log_dir() / LOG_FILE_NAME,
            maxBytes=MAX_LOG_BYTES,
            backupCount=LOG_BACKUPS,
            encoding="utf-8",
        )
    ]
    if to_console:
        handlers.append(logging.StreamHandler(sys.stderr))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def configure_logging() -> logging.Logger:
    """Attach handlers to the package logger unless something already did."""
    global _configured

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    if not _configured and not package_logger.handlers:
        from ..config import LOG_TO_CONSOLE, get_log_level

        level = get_log_level()
        package_logger.setLevel(level)
        for handler in _build_handlers(level, LOG_TO_CONSOLE):
            package_logger.addHandler(handler)
        package_logger.propagate = False
    _configured = True
    return package_logger


def _normalize_name(name: str) -> str:
    # Running from a checkout without installing imports us as src.audioscribe.
    if name == "src." + ROOT_LOGGER_NAME or name.startswith("src." + ROOT_LOGGER_NAME + "."):
        return name[len("src.") :]
    return name


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    package_logger = configure_logging()
    name = _normalize_name(name)
    if name == ROOT_LOGGER_NAME:
        return package_logger
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Close and detach every handler so log files are released."""
    global _configured
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    _configured = False
