"""Logging utilities."""

from .utils import LOG_FORMAT, configure_logging, level_for, setup_file_logger

__all__ = ["LOG_FORMAT", "configure_logging", "level_for", "setup_file_logger"]
