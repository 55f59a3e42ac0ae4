from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

from ..acl.tables import DEFAULT_DISPATCHER_MARKER
from ..acl.validators import DEFAULT_EMPLOYEE_PREFIXES


DEFAULT_LOCK_FILE = Path("/tmp/whitelister.lock")


@dataclass(frozen=True)
class DispatcherSettings:
    """How dispatcher-table entries are written and where the managed region starts."""

    marker: str = DEFAULT_DISPATCHER_MARKER
    rule: str = "P"
    path_glob: str = "*"
    user_glob: str = "*"
    group_glob: str = "*"
    dest_glob: str = "*"


@dataclass(frozen=True)
class RouterSettings:
    # No marker: the managed region starts at the first partner header.
    marker: Optional[str] = None
    rule: str = "P"


@dataclass(frozen=True)
class WhitelisterConfig:
    dispatcher_table: Path
    router_table: Path
    lock_file: Path = DEFAULT_LOCK_FILE
    backup_dir: Optional[Path] = None
    log_file: Optional[Path] = None
    reload_command: Optional[Tuple[str, ...]] = None
    dispatcher: DispatcherSettings = field(default_factory=DispatcherSettings)
    router: RouterSettings = field(default_factory=RouterSettings)
    employee_id_prefixes: str = DEFAULT_EMPLOYEE_PREFIXES
    source_path: Optional[Path] = None
