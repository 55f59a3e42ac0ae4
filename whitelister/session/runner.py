from __future__ import annotations

from datetime import datetime
from typing import Optional

from loguru import logger

from ..acl.engine import MergeEngine
from ..acl.reference import ReferenceTable
from ..acl.tables import AclTable
from ..acl.validators import (
    require_certification_id,
    require_email,
    require_employee_id,
    require_ipv4,
    require_partner_name,
    require_requester,
    require_sid,
)
from ..config.settings import WhitelisterConfig
from ..console import Console
from ..infra.errors import (
    DuplicateError,
    ExternalReloadError,
    InputValidationError,
    LockHeldError,
    PersistenceError,
    SessionInterrupted,
    UnresolvedSidError,
)
from ..infra.models import AuditSuffix, MergeReport
from ..utils.time import backup_stamp, entry_date
from .backups import discard_backups, take_backups
from .context import Session, SessionState
from .lock import SessionLock
from .reload import ReloadFn
from .signals import interrupt_on_termination


EXIT_OK = 0
EXIT_FAILURE = 1


class SessionRunner:
    """Drives one interactive session through the session state machine.

    Every exit path goes through ``CleaningUp``: working copies are dropped, the
    lock is released, and backups of a session that never reached
    ``Persisting`` are removed again.
    """

    def __init__(
        self,
        config: WhitelisterConfig,
        console: Console,
        reload: Optional[ReloadFn] = None,
        now: Optional[datetime] = None,
    ):
        self.config = config
        self.console = console
        self.reload = reload
        self.now = now
        self.session = Session()
        self._persist_attempted = False

    def run(self) -> int:
        try:
            with interrupt_on_termination(), SessionLock(self.config.lock_file):
                try:
                    return self._run_locked()
                finally:
                    self._cleanup()
        except LockHeldError as e:
            logger.error("{}", e)
            self.console.say(f"Refusing to start: {e}")
            return EXIT_FAILURE
        except (KeyboardInterrupt, SessionInterrupted) as e:
            logger.warning("session interrupted{}", f": {e}" if str(e) else "")
            if self._persist_attempted:
                logger.error(
                    "interrupted while writing the tables; compare them with the backups: {}",
                    ", ".join(str(p) for p in self.session.backups),
                )
                self.console.say("\nInterrupted while writing the tables; compare them with the backups listed in the log.")
            else:
                self.console.say("\nInterrupted; no changes were written.")
            return EXIT_FAILURE
        except EOFError:
            logger.warning("input closed before the session was complete")
            self.console.say("\nInput closed; no changes were written.")
            return EXIT_FAILURE
        except PersistenceError as e:
            return self._report_persistence_error(e)

    # --- states ---------------------------------------------------------

    def _run_locked(self) -> int:
        cfg = self.config
        session = self.session

        session.backups = take_backups([cfg.dispatcher_table, cfg.router_table], backup_stamp(self.now), cfg.backup_dir)
        session.advance(SessionState.BACKUPS_TAKEN)

        dispatcher = AclTable.load("dispatcher", cfg.dispatcher_table, cfg.dispatcher.marker)
        router = AclTable.load("router", cfg.router_table, cfg.router.marker)
        session.open_tables(dispatcher, router)
        engine = MergeEngine(ReferenceTable.from_table(router), cfg.dispatcher, cfg.router)

        session.advance(SessionState.COLLECTING_IPS)
        self._choose_tables()
        self._collect_ips()
        if not session.ips:
            return self._nothing_to_do("No IP addresses entered.")

        if session.want_router:
            session.advance(SessionState.COLLECTING_SIDS)
            self._collect_sids(engine.reference)
            if not session.sids:
                return self._nothing_to_do("No SIDs entered.")

        session.advance(SessionState.COLLECTING_METADATA)
        self._collect_metadata(engine)

        session.advance(SessionState.MERGING)
        try:
            report = engine.merge(session)
        except UnresolvedSidError as e:
            logger.error("merge aborted: {}", e)
            self.console.say("Internal error while merging entries; no changes were written.")
            return EXIT_FAILURE
        for w in report.warnings:
            self.console.warn(w)
        if not report.changed:
            self.console.say("Nothing new to add; tables left unchanged.")
            return EXIT_OK

        session.advance(SessionState.PERSISTING)
        self._persist_attempted = True
        changed = []
        if report.dispatcher_added:
            changed.append(session.require_table("dispatcher"))
        if report.router_added:
            changed.append(session.require_table("router"))
        engine.finalize_and_persist(changed)
        self._print_summary(report)

        if self.reload is not None:
            session.advance(SessionState.RELOADING)
            self._reload()
        return EXIT_OK

    def _choose_tables(self) -> None:
        answer = self.console.choose("Add entries to the (w)eb dispatcher table, the (r)outer table or (b)oth? ", "wrb")
        self.session.want_dispatcher = answer in ("w", "b")
        self.session.want_router = answer in ("r", "b")

    def _collect_ips(self) -> None:
        for raw in self.console.ask_lines("Enter IP addresses, one per line (Ctrl-D when done):"):
            try:
                self.session.add_ip(require_ipv4(raw))
            except (InputValidationError, DuplicateError) as e:
                self.console.warn(f"{e}; skipped")

    def _collect_sids(self, reference: ReferenceTable) -> None:
        for raw in self.console.ask_lines("Enter SIDs, one per line (Ctrl-D when done):"):
            try:
                sid = require_sid(raw)
                if sid not in reference:
                    raise InputValidationError(f"SID {sid} not found in router table {self.config.router_table}")
                self.session.add_sid(sid)
            except (InputValidationError, DuplicateError) as e:
                self.console.warn(f"{e}; skipped")

    def _collect_metadata(self, engine: MergeEngine) -> None:
        session = self.session
        ask = self.console.ask
        session.certification_id = ask("Certification ID: ", require_certification_id)
        session.partner_name = engine.resolve_partner_block(
            session.certification_id,
            session.working_copies(),
            lambda: ask("Partner name: ", require_partner_name),
        )
        prefixes = self.config.employee_id_prefixes
        employee_id = ask("Your employee ID: ", lambda v: require_employee_id(v, prefixes))
        requested_by = ask("Requested by: ", require_requester)
        contact_email = ask("Contact e-mail: ", require_email)
        session.audit = AuditSuffix(
            employee_id=employee_id,
            date=entry_date(self.now),
            requested_by=requested_by,
            contact_email=contact_email,
        )

    def _reload(self) -> None:
        assert self.reload is not None
        status = self.reload()
        if status == 0:
            logger.info("reload succeeded")
            self.console.say("Reload succeeded.")
            return
        err = ExternalReloadError(status, self.config.reload_command)
        logger.warning("reload failed: {}", err)
        self.console.warn(f"reload failed ({err}); the tables were updated, reload manually")

    # --- outcomes -------------------------------------------------------

    def _nothing_to_do(self, reason: str) -> int:
        logger.info("nothing to do: {}", reason)
        self.console.say(f"{reason} Nothing to do.")
        return EXIT_FAILURE

    def _print_summary(self, report: MergeReport) -> None:
        s = self.session
        self.console.say(f"Partner block: {s.certification_id}: {s.partner_name}")
        for e in report.dispatcher_added:
            self.console.say(f"  dispatcher: {e.source_ip}")
        for e in report.router_added:
            self.console.say(f"  router:     {e.source_ip} -> {e.hostname}:{e.port}")
        self.console.say("Backups: " + ", ".join(str(p) for p in s.backups))

    def _report_persistence_error(self, e: PersistenceError) -> int:
        if e.inconsistent:
            logger.critical(
                "TABLES ARE INCONSISTENT: {}; already written: {}; restore from backups: {}",
                e,
                ", ".join(str(p) for p in e.written),
                ", ".join(str(p) for p in self.session.backups),
            )
            self.console.say("!!! The dispatcher and router tables are now INCONSISTENT. Restore them from the backups listed in the log. !!!")
        else:
            logger.error("persistence failure: {}", e)
            self.console.say(f"Could not update the tables: {e}")
        return EXIT_FAILURE

    def _cleanup(self) -> None:
        if not self._persist_attempted and self.session.backups:
            discard_backups(self.session.backups)
            self.session.backups = []
        self.session.cleanup()


def run_session(
    config: WhitelisterConfig,
    console: Optional[Console] = None,
    reload: Optional[ReloadFn] = None,
    now: Optional[datetime] = None,
) -> int:
    return SessionRunner(config, console or Console(), reload=reload, now=now).run()
