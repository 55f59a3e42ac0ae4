from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from loguru import logger

from ..infra.errors import PersistenceError
from ..utils.fs import ensure_dir


def backup_path(source: Path, stamp: str, backup_dir: Optional[Path] = None) -> Path:
    name = f"{source.name}-{stamp}.backup"
    return (backup_dir or source.parent) / name


def take_backups(sources: Iterable[Path], stamp: str, backup_dir: Optional[Path] = None) -> List[Path]:
    """Snapshot every source file before any mutation.

    Either all backups are written or none are left behind.
    """
    written: List[Path] = []
    try:
        if backup_dir is not None:
            ensure_dir(backup_dir)
        for source in sources:
            target = backup_path(source, stamp, backup_dir)
            shutil.copy2(source, target)
            written.append(target)
            logger.info("backup written: {}", target)
    except OSError as e:
        discard_backups(written)
        raise PersistenceError(f"cannot create backups: {e}") from e
    return written


def discard_backups(paths: Iterable[Path]) -> None:
    """Remove backups of a session that changed nothing."""
    for p in paths:
        try:
            p.unlink()
            logger.debug("backup removed: {}", p)
        except FileNotFoundError:
            continue
