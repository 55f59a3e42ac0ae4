from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from loguru import logger

from ..infra.errors import LockHeldError, PersistenceError


def read_owner_pid(path: Path) -> Optional[int]:
    try:
        text = path.read_text(encoding="utf-8").strip()
    except OSError:
        return None
    return int(text) if text.isdigit() else None


class SessionLock:
    """Advisory lock marker that serializes whole whitelister sessions.

    The marker is created exclusively and holds the owner PID. It is never taken
    over: a leftover marker blocks new sessions until an operator removes it.
    Use as a context manager so release happens on every exit path.
    """

    def __init__(self, path: Path):
        self.path = path
        self._owned = False

    @property
    def owned(self) -> bool:
        return self._owned

    def acquire(self) -> None:
        try:
            fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise LockHeldError(self.path, read_owner_pid(self.path)) from None
        except OSError as e:
            raise PersistenceError(f"cannot create lock file {self.path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(f"{os.getpid()}\n")
        except OSError as e:
            # A marker without its owner would block every later session.
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            raise PersistenceError(f"cannot write lock file {self.path}: {e}") from e
        self._owned = True
        logger.debug("session lock acquired: {}", self.path)

    def release(self) -> None:
        if not self._owned:
            return
        try:
            self.path.unlink()
            logger.debug("session lock released: {}", self.path)
        except FileNotFoundError:
            logger.warning("session lock {} vanished before release", self.path)
        except OSError as e:
            logger.error("failed to release session lock {}: {}", self.path, e)
            raise
        finally:
            self._owned = False

    def __enter__(self) -> "SessionLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
