"""
Logging configuration.

Every module asks for its logger through get_logger(__name__); the
handler and format are installed once by setup_logging() at app start.
"""
import logging
import sys

from core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "chromadb", "groq")


def setup_logging(level: str = None) -> None:
    """Configure the root logger with a single stdout handler."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root_logger.setLevel((level or settings.LOG_LEVEL).upper())
    root_logger.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def preview(text: str, limit: int = 100) -> str:
    """Shorten free text (questions, SQL) before it goes into a log line."""
    text = text or ""
    return text[:limit] + ("..." if len(text) > limit else "")
