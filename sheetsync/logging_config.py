"""Logging setup shared by SheetSync entry points."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LOG_PATH: Optional[Path] = None


def configure_logging(path: Union[str, Path], level: int = logging.INFO) -> Path:
    """Attach a file handler for ``path`` to the root logger.

    Parameters
    ----------
    path:
        Log file location. Parent directories are created as needed.
    level:
        The minimum logging level for the root logger.

    Returns
    -------
    pathlib.Path
        The path to the log file.

    Calling this again with the same path does not add a second handler.
    """

    global _LOG_PATH

    log_path = Path(path).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.setLevel(level)
    else:
        root_logger.setLevel(min(root_logger.level, level))

    already_configured = any(
        isinstance(handler, logging.FileHandler)
        and getattr(handler, "baseFilename", None) == os.path.abspath(log_path)
        for handler in root_logger.handlers
    )
    if not already_configured:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(file_handler)

    _LOG_PATH = log_path
    root_logger.debug("Logging configured. Writing to %s", log_path)
    return log_path


def get_log_path() -> Optional[Path]:
    """Return the path passed to the last :func:`configure_logging` call."""

    return _LOG_PATH


__all__ = ["LOG_FORMAT", "configure_logging", "get_log_path"]
