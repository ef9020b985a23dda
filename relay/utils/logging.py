"""
Logging setup for the relay service and the viewer app.

Every entry point calls setup_logging() once; library modules only use
logging.getLogger(__name__). The service also hands uvicorn_log_config() to
uvicorn so access and error logs share one format.
"""

import logging
import os
import sys
from typing import Any, Literal

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

# Third-party loggers that log every request/frame at INFO/DEBUG
NOISY_LOGGERS = ("httpx", "httpcore", "websockets")


def _resolve_level(level: str | None) -> int:
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    return getattr(logging, level.upper(), logging.INFO)


def setup_logging(
    name: str | None = None,
    level: LogLevel | None = None,
    format: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """
    Configure the root handler once and return a logger.

    Args:
        name: Logger name (typically __name__). None for the root logger.
        level: Log level. Defaults to LOG_LEVEL env var or INFO.
        format: Log format string.

    Usage:
        from relay.utils import setup_logging
        logger = setup_logging(__name__)
        logger.info("Relay started")
    """
    log_level = _resolve_level(level)

    logging.basicConfig(level=log_level, format=format, stream=sys.stdout)

    # Client libraries stay at WARNING unless we are debugging
    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(log_level if log_level <= logging.DEBUG else logging.WARNING)

    logger = logging.getLogger(name)
    logger.setLevel(log_level)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger by name. Assumes setup_logging() ran at startup."""
    return logging.getLogger(name)


def set_log_level(level: LogLevel) -> None:
    """Change the root log level at runtime."""
    logging.getLogger().setLevel(_resolve_level(level))


def uvicorn_log_config(level: str | None = None, format: str = DEFAULT_FORMAT) -> dict[str, Any]:
    """dictConfig for uvicorn's own loggers, matching DEFAULT_FORMAT."""
    level_name = logging.getLevelName(_resolve_level(level))
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": {"format": format}},
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            }
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": level_name, "propagate": False},
            "uvicorn.error": {"level": level_name},
            "uvicorn.access": {"handlers": ["default"], "level": level_name, "propagate": False},
        },
    }
