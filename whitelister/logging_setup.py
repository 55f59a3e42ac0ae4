from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional, TextIO

from loguru import logger


_CONSOLE_FORMAT = "<level>{level: <8}</level> | {message}"
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | pid={process} | {name}:{function}:{line} - {message}"


def configure_logging(verbose: bool = False, log_file: Optional[Path] = None, stream: Optional[TextIO] = None) -> None:
    """Route loguru to stderr and, when configured, to an audit log file."""
    logger.remove()
    logger.add(stream or sys.stderr, level="DEBUG" if verbose else "INFO", format=_CONSOLE_FORMAT)
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(str(log_file), level="DEBUG", format=_FILE_FORMAT, encoding="utf-8")
