from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Literal, Optional, Tuple

HEADER_OPEN = "##--"
HEADER_CLOSE = "--##"
ENTRY_TAG = "# Entry:"

_HEADER_RE = re.compile(r"^\s*##--\s*(?P<cid>[0-9]+)\s*:\s*(?P<name>.*?)\s*--##\s*$")

TableKind = Literal["dispatcher", "router"]


@dataclass(frozen=True)
class AuditSuffix:
    """Who asked for an entry and when. Rendered as the trailing comment of every entry."""

    employee_id: str
    date: str
    requested_by: str
    contact_email: str

    def render(self) -> str:
        return f"{ENTRY_TAG} {self.employee_id} | {self.date} | {self.requested_by} | {self.contact_email}"


@dataclass(frozen=True)
class PartnerHeader:
    certification_id: str
    partner_name: str

    def render(self) -> str:
        return f"{HEADER_OPEN} {self.certification_id}: {self.partner_name} {HEADER_CLOSE}"

    @classmethod
    def parse(cls, line: str) -> Optional["PartnerHeader"]:
        m = _HEADER_RE.match(line)
        if not m:
            return None
        return cls(certification_id=m.group("cid"), partner_name=m.group("name").strip())


@dataclass(frozen=True)
class DispatcherEntry:
    source_ip: str
    audit: AuditSuffix
    rule: str = "P"
    path_glob: str = "*"
    user_glob: str = "*"
    group_glob: str = "*"
    dest_glob: str = "*"

    @property
    def key(self) -> str:
        return self.source_ip

    def render(self) -> str:
        return (
            f"{self.rule} {self.path_glob} {self.user_glob} {self.group_glob} "
            f"{self.source_ip} {self.dest_glob} {self.audit.render()}"
        )


@dataclass(frozen=True)
class RouterEntry:
    source_ip: str
    hostname: str
    port: str
    audit: AuditSuffix
    rule: str = "P"

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.source_ip, self.hostname, self.port)

    def render(self) -> str:
        return f"{self.rule} {self.source_ip} {self.hostname} {self.port} {self.audit.render()}"


@dataclass(frozen=True)
class ReferenceRecord:
    """Routing metadata for one SID, read from the router table."""

    sid: str
    hostname: str
    dispatcher_port: str
    gateway_port: str


@dataclass
class MergeReport:
    """What a merge did to the working copies. Warnings are reportable, not errors."""

    dispatcher_added: List[DispatcherEntry] = field(default_factory=list)
    router_added: List[RouterEntry] = field(default_factory=list)
    headers_created: List[Tuple[TableKind, str]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.dispatcher_added or self.router_added)


@dataclass(frozen=True)
class CommitResult:
    written: Tuple[Path, ...]
    removed_blank_lines: int = 0
