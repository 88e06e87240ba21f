"""
Logging setup shared by the API process and maintenance scripts.

- Console: LOG_LEVEL from settings
- File: same level, daily rotation (only when LOG_FILE is set)

Usage:
    from dairy_books.logging_config import setup_logging
    setup_logging()
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from dairy_books.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_BACKUP_COUNT = 14

# Libraries that log every statement or request at INFO
NOISY_LOGGERS = [
    "sqlalchemy.engine",
    "httpx",
    "httpcore",
    "urllib3",
    "multipart",
]

_HANDLER_MARKER = "_dairy_books_handler"


def setup_logging(
    level: str | int | None = None,
    log_file: str | None = None,
) -> logging.Logger:
    """
    Configure the root logger.

    Safe to call more than once: handlers installed by a previous
    call are replaced, handlers installed by anyone else (pytest,
    uvicorn) are left alone.

    Args:
        level: log level name or number; defaults to settings.LOG_LEVEL
        log_file: path of the rotating log file; defaults to
            settings.LOG_FILE, no file handler when neither is set

    Returns:
        The configured root logger
    """
    settings = get_settings()
    level = level if level is not None else settings.LOG_LEVEL
    log_file = log_file if log_file is not None else settings.LOG_FILE

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in list(root_logger.handlers):
        if getattr(handler, _HANDLER_MARKER, False):
            root_logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    setattr(console_handler, _HANDLER_MARKER, True)
    root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            filename=log_file,
            when="midnight",
            interval=1,
            backupCount=LOG_FILE_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.suffix = "%Y-%m-%d"
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_MARKER, True)
        root_logger.addHandler(file_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.debug(
        "Logging configured: level=%s file=%s",
        logging.getLevelName(root_logger.level), log_file or "-",
    )
    return root_logger
