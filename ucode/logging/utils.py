"""Logging helpers (level selection, rotating log files)."""

from __future__ import annotations

import logging

from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


def level_for(*, verbose: bool = False, debug: bool = False) -> int:
    if debug:
        return logging.DEBUG
    if verbose:
        return logging.INFO
    return logging.WARNING


def configure_logging(level: int) -> None:
    """Install a stderr handler unless the host application already did."""

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
        # a file log may lower the package level; keep stderr at ours
        root.handlers[0].setLevel(level)
    logging.getLogger("ucode").setLevel(level)


FILE_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
FILE_LOG_MAX_BYTES = 2_000_000
FILE_LOG_BACKUPS = 3


def _file_handler_for(
    logger: logging.Logger, target: str
) -> Optional[RotatingFileHandler]:
    for handler in logger.handlers:
        if getattr(handler, "_ucode_log_target", None) == target:
            return handler  # type: ignore[return-value]
    return None


def setup_file_logger(log_file: Path, name: str = "ucode") -> logging.Logger:
    """Attach one rotating run log per file to ``name``.

    Repeated calls with the same path reuse the existing handler. The logger
    is lowered to INFO so cache and execution events reach the file even when
    the console stays at WARNING.
    """

    target = str(Path(log_file).resolve())
    logger = logging.getLogger(name)
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)
    if _file_handler_for(logger, target) is not None:
        return logger

    Path(target).parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        target,
        maxBytes=FILE_LOG_MAX_BYTES,
        backupCount=FILE_LOG_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
    file_handler._ucode_log_target = target  # type: ignore[attr-defined]
    logger.addHandler(file_handler)
    return logger
