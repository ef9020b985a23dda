"""Relay utilities."""

from .logging import get_logger, set_log_level, setup_logging, uvicorn_log_config

__all__ = ["get_logger", "set_log_level", "setup_logging", "uvicorn_log_config"]
