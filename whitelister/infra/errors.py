from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class WhitelisterError(Exception):
    """Base class for whitelister errors."""


class ConfigError(WhitelisterError):
    """Raised when the configuration file is missing or fails validation."""


class InputValidationError(WhitelisterError):
    """Raised when an operator-supplied value is malformed. Recovered by re-prompting."""


class DuplicateError(WhitelisterError):
    """Raised when an item was already entered this session or already exists in a table."""


class UnresolvedSidError(WhitelisterError):
    """Raised when a SID has no reference record at insertion time."""

    def __init__(self, sid: str):
        super().__init__(f"no reference record for SID {sid!r}")
        self.sid = sid


class PersistenceError(WhitelisterError):
    """Raised when a table or backup cannot be read or written.

    ``inconsistent`` is set when at least one table was already replaced before
    the failure, i.e. the dispatcher and router tables no longer agree.
    """

    def __init__(self, message: str, *, inconsistent: bool = False, written: Sequence[Path] = ()):
        super().__init__(message)
        self.inconsistent = inconsistent
        self.written = list(written)


class ExternalReloadError(WhitelisterError):
    """Raised when the reload command exits non-zero. Never fatal."""

    def __init__(self, status: int, command: Optional[Sequence[str]] = None):
        cmd = " ".join(command) if command else "reload"
        super().__init__(f"{cmd!s} exited with status {status}")
        self.status = status


class LockHeldError(WhitelisterError):
    """Raised when another session already holds the advisory lock."""

    def __init__(self, lock_path: Path, owner_pid: Optional[int]):
        owner = f"PID {owner_pid}" if owner_pid else "unknown process"
        super().__init__(f"another session is in progress ({owner}); lock file: {lock_path}")
        self.lock_path = lock_path
        self.owner_pid = owner_pid


class SessionInterrupted(WhitelisterError):
    """Raised from a signal handler when the session is asked to terminate."""
