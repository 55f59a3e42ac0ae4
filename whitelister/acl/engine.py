from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Callable, List, Optional, Sequence, Tuple

from loguru import logger

from ..config.settings import DispatcherSettings, RouterSettings
from ..infra.errors import DuplicateError, PersistenceError, SessionInterrupted, UnresolvedSidError
from ..infra.models import AuditSuffix, CommitResult, DispatcherEntry, MergeReport, PartnerHeader, RouterEntry
from ..utils.fs import atomic_write_text
from .reference import ReferenceTable
from .tables import AclTable
from .validators import require_partner_name

if TYPE_CHECKING:
    from ..session.context import Session


# Persistence order: dispatcher before router.
_PERSIST_ORDER = {"dispatcher": 0, "router": 1}


class MergeEngine:
    """Decides where whitelist entries go and applies them to the working copies.

    The engine never touches the target files until ``finalize_and_persist``;
    every other operation mutates in-memory ``AclTable`` instances only.
    """

    def __init__(
        self,
        reference: ReferenceTable,
        dispatcher: Optional[DispatcherSettings] = None,
        router: Optional[RouterSettings] = None,
        write_text: Callable[[Path, str], None] = atomic_write_text,
    ):
        self.reference = reference
        self.dispatcher = dispatcher or DispatcherSettings()
        self.router = router or RouterSettings()
        self._write_text = write_text

    # --- partner blocks -------------------------------------------------

    def resolve_partner_block(
        self,
        certification_id: str,
        tables: Sequence[AclTable],
        ask_fallback_name: Callable[[], str],
    ) -> str:
        """Return the partner name recorded for ``certification_id``.

        The first table holding a header wins. Differing names across tables are
        reported but left as they are. When no table knows the id, the caller is
        asked for a name.
        """
        found: List[Tuple[AclTable, PartnerHeader]] = []
        for table in tables:
            hit = table.find_header(certification_id)
            if hit is not None:
                found.append((table, hit[1]))

        if found:
            name = found[0][1].partner_name
            where = ", ".join(f"{t.kind} table ({t.path})" for t, _ in found)
            logger.info("certification id {} already known as {!r} in {}", certification_id, name, where)
            names = {h.partner_name for _, h in found}
            if len(names) > 1:
                logger.warning(
                    "certification id {} has different partner names across tables: {}; using {!r}",
                    certification_id,
                    ", ".join(f"{t.kind}={h.partner_name!r}" for t, h in found),
                    name,
                )
            return name

        logger.info("certification id {} not found in any table; new partner block", certification_id)
        return require_partner_name(ask_fallback_name())

    def insert_entry(self, table: AclTable, certification_id: str, partner_name: str, entry_line: str) -> None:
        """Insert ``entry_line`` directly below the partner header, creating the header if needed."""
        hit = table.find_header(certification_id)
        if hit is None:
            header = PartnerHeader(certification_id=certification_id, partner_name=partner_name)
            idx = table.append_to_region(header.render())
            logger.info("{} table: new partner block {}", table.kind, header.render())
        else:
            idx = hit[0]
        table.insert_after(idx, entry_line)
        logger.debug("{} table: inserted {}", table.kind, entry_line)

    # --- entries --------------------------------------------------------

    def dispatcher_entry(self, source_ip: str, audit: AuditSuffix) -> DispatcherEntry:
        s = self.dispatcher
        return DispatcherEntry(
            source_ip=source_ip,
            audit=audit,
            rule=s.rule,
            path_glob=s.path_glob,
            user_glob=s.user_glob,
            group_glob=s.group_glob,
            dest_glob=s.dest_glob,
        )

    def expand_sid_to_router_entries(self, source_ip: str, sid: str, audit: AuditSuffix) -> Tuple[RouterEntry, RouterEntry]:
        record = self.reference.lookup(sid)
        if record is None:
            raise UnresolvedSidError(sid)
        return (
            RouterEntry(source_ip=source_ip, hostname=record.hostname, port=record.dispatcher_port, audit=audit, rule=self.router.rule),
            RouterEntry(source_ip=source_ip, hostname=record.hostname, port=record.gateway_port, audit=audit, rule=self.router.rule),
        )

    @staticmethod
    def check_dispatcher_duplicate(table: AclTable, entry: DispatcherEntry) -> None:
        if entry.key in table.dispatcher_ips():
            raise DuplicateError(f"{entry.source_ip} is already whitelisted in the dispatcher table")

    @staticmethod
    def missing_router_entries(table: AclTable, pair: Sequence[RouterEntry]) -> List[RouterEntry]:
        existing = table.router_keys()
        missing = [e for e in pair if e.key not in existing]
        if not missing:
            e = pair[0]
            raise DuplicateError(f"{e.source_ip} is already whitelisted for {e.hostname} in the router table")
        return missing

    def merge(self, session: "Session") -> MergeReport:
        """Apply the session's IPs (and SIDs) to its working copies."""
        if session.audit is None or not session.certification_id or not session.partner_name:
            raise ValueError("session metadata is incomplete")

        report = MergeReport()
        cid = session.certification_id
        partner = session.partner_name

        for ip in session.ips:
            if session.want_dispatcher:
                table = session.require_table("dispatcher")
                entry = self.dispatcher_entry(ip, session.audit)
                try:
                    self.check_dispatcher_duplicate(table, entry)
                except DuplicateError as e:
                    logger.warning("skipping: {}", e)
                    report.warnings.append(str(e))
                else:
                    if table.find_header(cid) is None:
                        report.headers_created.append(("dispatcher", cid))
                    self.insert_entry(table, cid, partner, entry.render())
                    report.dispatcher_added.append(entry)

            if session.want_router:
                table = session.require_table("router")
                for sid in session.sids:
                    pair = self.expand_sid_to_router_entries(ip, sid, session.audit)
                    try:
                        missing = self.missing_router_entries(table, pair)
                    except DuplicateError as e:
                        logger.warning("skipping: {}", e)
                        report.warnings.append(str(e))
                        continue
                    if len(missing) < len(pair):
                        msg = (
                            f"{ip} for {sid} ({pair[0].hostname}): only port {missing[0].port} was missing; "
                            "router pair completed"
                        )
                        logger.warning(msg)
                        report.warnings.append(msg)
                    if table.find_header(cid) is None:
                        report.headers_created.append(("router", cid))
                    # Each insert lands right below the header; reversed keeps the dispatcher port first.
                    for entry in reversed(missing):
                        self.insert_entry(table, cid, partner, entry.render())
                    report.router_added.extend(missing)

        logger.info(
            "merge done: {} dispatcher entr(y/ies), {} router entr(y/ies), {} warning(s)",
            len(report.dispatcher_added),
            len(report.router_added),
            len(report.warnings),
        )
        return report

    # --- persistence ----------------------------------------------------

    def finalize_and_persist(self, working_copies: Sequence[AclTable]) -> CommitResult:
        """Normalize every working copy, then replace the target files in a fixed order.

        A failure after the first file was replaced leaves the tables out of step;
        that is reported through ``PersistenceError.inconsistent`` and not rolled back.
        """
        ordered = sorted(working_copies, key=lambda t: _PERSIST_ORDER.get(t.kind, len(_PERSIST_ORDER)))
        removed = 0
        for table in ordered:
            removed += table.strip_blank_lines()

        written: List[Path] = []
        for table in ordered:
            try:
                self._write_text(table.path, table.render())
            except OSError as e:
                raise PersistenceError(
                    f"failed to write {table.kind} table {table.path}: {e}",
                    inconsistent=bool(written),
                    written=written,
                ) from e
            except (KeyboardInterrupt, SessionInterrupted) as e:
                if not written:
                    raise
                raise PersistenceError(
                    f"interrupted while writing {table.kind} table {table.path}",
                    inconsistent=True,
                    written=written,
                ) from e
            written.append(table.path)
            logger.info("{} table written: {}", table.kind, table.path)

        return CommitResult(written=tuple(written), removed_blank_lines=removed)
