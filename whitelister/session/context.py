from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional

from ..acl.tables import AclTable
from ..infra.errors import DuplicateError
from ..infra.models import AuditSuffix, TableKind


class SessionState(str, Enum):
    IDLE = "Idle"
    BACKUPS_TAKEN = "BackupsTaken"
    WORKING_COPIES_OPEN = "WorkingCopiesOpen"
    COLLECTING_IPS = "CollectingTargets(IP)"
    COLLECTING_SIDS = "CollectingTargets(SID)"
    COLLECTING_METADATA = "CollectingMetadata"
    MERGING = "Merging"
    PERSISTING = "Persisting"
    RELOADING = "Reloading"
    CLEANING_UP = "CleaningUp"


# CleaningUp is reachable from every state and handled separately.
_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.BACKUPS_TAKEN}),
    SessionState.BACKUPS_TAKEN: frozenset({SessionState.WORKING_COPIES_OPEN}),
    SessionState.WORKING_COPIES_OPEN: frozenset({SessionState.COLLECTING_IPS}),
    SessionState.COLLECTING_IPS: frozenset({SessionState.COLLECTING_SIDS, SessionState.COLLECTING_METADATA}),
    SessionState.COLLECTING_SIDS: frozenset({SessionState.COLLECTING_METADATA}),
    SessionState.COLLECTING_METADATA: frozenset({SessionState.MERGING}),
    SessionState.MERGING: frozenset({SessionState.PERSISTING}),
    SessionState.PERSISTING: frozenset({SessionState.RELOADING}),
    SessionState.RELOADING: frozenset(),
    SessionState.CLEANING_UP: frozenset({SessionState.IDLE}),
}


@dataclass
class Session:
    """Everything one run of the tool accumulates, passed explicitly to the engine."""

    tables: Dict[TableKind, AclTable] = field(default_factory=dict)
    backups: List[Path] = field(default_factory=list)

    want_dispatcher: bool = True
    want_router: bool = True
    ips: List[str] = field(default_factory=list)
    sids: List[str] = field(default_factory=list)

    certification_id: str = ""
    partner_name: str = ""
    audit: Optional[AuditSuffix] = None

    state: SessionState = SessionState.IDLE
    history: List[SessionState] = field(default_factory=lambda: [SessionState.IDLE])

    def advance(self, new_state: SessionState) -> None:
        if new_state is not SessionState.CLEANING_UP and new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal session transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def open_tables(self, dispatcher: AclTable, router: AclTable) -> None:
        self.tables = {"dispatcher": dispatcher, "router": router}
        self.advance(SessionState.WORKING_COPIES_OPEN)

    def require_table(self, kind: TableKind) -> AclTable:
        table = self.tables.get(kind)
        if table is None:
            raise RuntimeError(f"{kind} working copy is not open")
        return table

    def working_copies(self) -> List[AclTable]:
        return [self.tables[k] for k in ("dispatcher", "router") if k in self.tables]

    def add_ip(self, ip: str) -> None:
        if ip in self.ips:
            raise DuplicateError(f"{ip} was already entered")
        self.ips.append(ip)

    def add_sid(self, sid: str) -> None:
        if sid in self.sids:
            raise DuplicateError(f"SID {sid} was already entered")
        self.sids.append(sid)

    def cleanup(self) -> None:
        """Drop working copies and return to Idle. Safe to call from any state."""
        if self.state is SessionState.IDLE and len(self.history) == 1:
            return
        if self.state is not SessionState.CLEANING_UP:
            self.advance(SessionState.CLEANING_UP)
        self.tables.clear()
        self.advance(SessionState.IDLE)
