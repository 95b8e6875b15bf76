"""Logging setup for the native messaging host.

stdout carries protocol frames, so logs go to a file. If the file
cannot be opened the host falls back to stderr, which browsers
capture in their own console or log.
"""
from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

LOGGER_NAME = "exeditor"
_MAX_LOG_LINES = 1000
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_DATEFMT = "%Y-%m-%dT%H:%M:%S"


def _truncate(log_file: Path) -> None:
    """Keep only the last _MAX_LOG_LINES lines of log_file."""
    if not log_file.exists():
        return
    try:
        lines = log_file.read_text(encoding="utf-8").splitlines()
        if len(lines) > _MAX_LOG_LINES:
            log_file.write_text(
                "\n".join(lines[-_MAX_LOG_LINES:]) + "\n",
                encoding="utf-8",
            )
    except (OSError, UnicodeDecodeError):
        pass


def _file_handler(log_file: Path) -> logging.Handler | None:
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        _truncate(log_file)
        return logging.FileHandler(str(log_file), encoding="utf-8")
    except OSError:
        return None


def setup_logging(
    log_file: Path | None,
    *,
    debug: bool = False,
) -> logging.Logger:
    """Configure the package logger and return it."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False

    # Don't add handlers if already configured
    if logger.handlers:
        return logger

    handler = _file_handler(log_file) if log_file is not None else None
    if handler is None:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATEFMT))
    logger.addHandler(handler)
    return logger
