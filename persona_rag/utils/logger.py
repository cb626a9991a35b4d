"""Logging configuration for the application."""

import logging
import sys
from pathlib import Path
from typing import Optional

from persona_rag.config import settings

CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "stripe", "chromadb")

_third_party_quieted = False


def _quiet_third_party() -> None:
    global _third_party_quieted
    if _third_party_quieted:
        return
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    _third_party_quieted = True


def setup_logger(
    name: str, level: Optional[str] = None, log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Configure and return a logger instance.

    Args:
        name: Logger name (typically __name__)
        level: Logging level (defaults to settings.LOG_LEVEL)
        log_file: File to also log to at DEBUG (defaults to settings.LOG_FILE)

    Returns:
        Configured logger instance
    """
    _quiet_third_party()

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, (level or settings.LOG_LEVEL).upper()))

    # handlers are attached once per logger name
    if logger.handlers:
        return logger
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logger.level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
    logger.addHandler(console_handler)

    log_file = log_file or settings.LOG_FILE
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get or create a logger with default configuration."""
    return setup_logger(name)
