from __future__ import annotations

from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple

from ..infra.errors import PersistenceError
from ..infra.models import PartnerHeader, TableKind
from ..utils.fs import read_text


DEFAULT_DISPATCHER_MARKER = "# Script inserted entries"

# Field positions of the duplicate keys (0-based, comment stripped).
_DISPATCHER_IP_FIELD = 4
_ROUTER_IP_FIELD = 1
_ROUTER_HOST_FIELD = 2
_ROUTER_PORT_FIELD = 3


def data_fields(line: str) -> List[str]:
    """Whitespace-delimited fields of a line with its comment removed."""
    return line.split("#", 1)[0].split()


def _is_blank(line: str) -> bool:
    return not line.strip()


class AclTable:
    """In-memory working copy of one managed ACL table.

    The file is held as a list of lines without terminators. Only the managed
    region (below ``marker``, or from the first partner header to the end when
    no marker is configured) is ever mutated.
    """

    def __init__(self, kind: TableKind, path: Path, lines: List[str], marker: Optional[str] = None):
        self.kind = kind
        self.path = path
        self.lines = lines
        self.marker = marker

    @classmethod
    def from_text(cls, kind: TableKind, path: Path, text: str, marker: Optional[str] = None) -> "AclTable":
        lines = text.split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        return cls(kind, path, lines, marker)

    @classmethod
    def load(cls, kind: TableKind, path: Path, marker: Optional[str] = None) -> "AclTable":
        try:
            text = read_text(path)
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"cannot read {kind} table {path}: {e}")
        table = cls.from_text(kind, path, text, marker)
        # Fail before any prompt if the marker is missing.
        table.region_start()
        return table

    def render(self) -> str:
        if not self.lines:
            return ""
        return "\n".join(self.lines) + "\n"

    # --- managed region -------------------------------------------------

    def region_start(self) -> int:
        """Index of the first line of the managed region."""
        if self.marker is not None:
            wanted = self.marker.strip()
            for idx, line in enumerate(self.lines):
                if line.strip() == wanted:
                    return idx + 1
            raise PersistenceError(f"marker line {self.marker!r} not found in {self.kind} table {self.path}")

        for idx, line in enumerate(self.lines):
            if PartnerHeader.parse(line) is not None:
                return idx
        return len(self.lines)

    def headers(self) -> Iterator[Tuple[int, PartnerHeader]]:
        for idx in range(self.region_start(), len(self.lines)):
            header = PartnerHeader.parse(self.lines[idx])
            if header is not None:
                yield idx, header

    def find_header(self, certification_id: str) -> Optional[Tuple[int, PartnerHeader]]:
        for idx, header in self.headers():
            if header.certification_id == certification_id:
                return idx, header
        return None

    def block_lines(self, certification_id: str) -> List[str]:
        """Entry lines of one partner block, in file order."""
        found = self.find_header(certification_id)
        if found is None:
            return []
        out: List[str] = []
        for line in self.lines[found[0] + 1:]:
            if PartnerHeader.parse(line) is not None:
                break
            if not _is_blank(line):
                out.append(line)
        return out

    def insert_after(self, index: int, line: str) -> None:
        self.lines.insert(index + 1, line)

    def append_to_region(self, line: str) -> int:
        """Append ``line`` at the end of the managed region and return its index.

        Trailing blank lines are dropped first so the new line follows the last
        line with content (never above the marker, which is not blank).
        """
        floor = self.region_start() if self.marker is not None else 0
        while len(self.lines) > floor and _is_blank(self.lines[-1]):
            self.lines.pop()
        self.lines.append(line)
        return len(self.lines) - 1

    def strip_blank_lines(self) -> int:
        """Drop blank lines from the managed region and from the end of the file."""
        start = self.region_start()
        head = self.lines[:start]
        while head and _is_blank(head[-1]) and start == len(self.lines):
            head.pop()
        tail = [ln for ln in self.lines[start:] if not _is_blank(ln)]
        removed = len(self.lines) - len(head) - len(tail)
        self.lines = head + tail
        return removed

    # --- duplicate keys -------------------------------------------------

    def dispatcher_ips(self) -> Set[str]:
        out: Set[str] = set()
        for line in self.lines:
            fields = data_fields(line)
            if len(fields) > _DISPATCHER_IP_FIELD:
                out.add(fields[_DISPATCHER_IP_FIELD])
        return out

    def router_keys(self) -> Set[Tuple[str, str, str]]:
        out: Set[Tuple[str, str, str]] = set()
        for line in self.lines:
            fields = data_fields(line)
            if len(fields) > _ROUTER_PORT_FIELD:
                out.add((
                    fields[_ROUTER_IP_FIELD],
                    fields[_ROUTER_HOST_FIELD],
                    fields[_ROUTER_PORT_FIELD].rstrip(","),
                ))
        return out
