"""
Logger module for upload-server

Provides a centralized logging utility on top of Python's logging module.
"""

import logging
import os
import sys
from typing import Optional


LOG_LEVEL_ENV = 'UPLOAD_SERVER_LOG_LEVEL'


class LogColors:
    """ANSI color codes for terminal output"""
    RESET = '\033[0m'
    DEBUG = '\033[36m'      # Cyan
    INFO = '\033[32m'       # Green
    WARNING = '\033[33m'    # Yellow
    ERROR = '\033[31m'      # Red
    CRITICAL = '\033[35m'   # Magenta


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name when stderr is a terminal"""

    COLORS = {
        logging.DEBUG: LogColors.DEBUG,
        logging.INFO: LogColors.INFO,
        logging.WARNING: LogColors.WARNING,
        logging.ERROR: LogColors.ERROR,
        logging.CRITICAL: LogColors.CRITICAL,
    }

    def format(self, record):
        if hasattr(sys.stderr, 'isatty') and sys.stderr.isatty():
            color = self.COLORS.get(record.levelno)
            if color:
                record = logging.makeLogRecord(record.__dict__)
                record.levelname = f"{color}{record.levelname}{LogColors.RESET}"
        return super().format(record)


def resolve_level(level: Optional[str] = None) -> str:
    """Return the effective level name: argument, then env var, then INFO."""
    if level is None:
        level = os.environ.get(LOG_LEVEL_ENV, 'INFO')
    return level.upper()


def create_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Create a logger instance with the specified log level.

    Args:
        name: Logger name (e.g. "UploadServer.Writer")
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               Falls back to UPLOAD_SERVER_LOG_LEVEL env var, then INFO.

    Returns:
        Configured logger instance

    Example:
        >>> logger = create_logger("UploadServer.App", level="INFO")
        >>> logger.info("Server initialized")
    """
    level = resolve_level(level)
    numeric_level = getattr(logging, level, logging.INFO)

    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)

    # Avoid duplicate handlers if logger already configured
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(numeric_level)
        handler.setFormatter(ColoredFormatter(
            fmt='%(name)s %(levelname)s %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        ))
        logger.addHandler(handler)

    logger.propagate = False

    return logger
