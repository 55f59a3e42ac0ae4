from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional

from loguru import logger

from ..infra.models import ENTRY_TAG, ReferenceRecord
from .tables import AclTable, data_fields


# 0-based positions of hostname / dispatcher port / gateway port in a reference row.
_HOST_FIELD = 2
_DISPATCHER_PORT_FIELD = 3
_GATEWAY_PORT_FIELD = 4


def _sid_pattern(sid: str) -> "re.Pattern[str]":
    return re.compile(rf"(?<![A-Za-z0-9_]){re.escape(sid)}(?![A-Za-z0-9_])", re.IGNORECASE)


def parse_reference_row(line: str, sid: str) -> Optional[ReferenceRecord]:
    """Return the record carried by ``line`` if it is a reference row mentioning ``sid``."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#") or ENTRY_TAG in line:
        return None
    if not _sid_pattern(sid).search(line):
        return None
    fields = data_fields(line)
    if len(fields) <= _GATEWAY_PORT_FIELD:
        return None
    dispatcher_port = fields[_DISPATCHER_PORT_FIELD].rstrip(",")
    gateway_port = fields[_GATEWAY_PORT_FIELD].rstrip(",")
    if not (dispatcher_port.isdigit() and gateway_port.isdigit()):
        return None
    return ReferenceRecord(
        sid=sid.upper(),
        hostname=fields[_HOST_FIELD],
        dispatcher_port=dispatcher_port,
        gateway_port=gateway_port,
    )


class ReferenceTable:
    """Read-only SID lookup over the rows of the router table."""

    def __init__(self, lines: Iterable[str]):
        self._lines: List[str] = list(lines)
        self._cache: Dict[str, Optional[ReferenceRecord]] = {}

    @classmethod
    def from_table(cls, table: AclTable) -> "ReferenceTable":
        return cls(table.lines)

    def lookup(self, sid: str) -> Optional[ReferenceRecord]:
        key = sid.upper()
        if key not in self._cache:
            record = None
            for line in self._lines:
                record = parse_reference_row(line, key)
                if record is not None:
                    break
            if record is None:
                logger.debug("no reference row for SID {}", key)
            self._cache[key] = record
        return self._cache[key]

    def __contains__(self, sid: object) -> bool:
        return isinstance(sid, str) and self.lookup(sid) is not None
