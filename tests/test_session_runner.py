from __future__ import annotations

import io
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from _testutil import DISPATCHER_TEXT, EOF, ROUTER_TEXT, ScriptedInput, ensure_repo_on_path, write_tables


NOW = datetime(2026, 10, 19, 14, 30, 5)
AUDIT = "# Entry: D123456 | 19/10/2026 | Jane Roe | jane@example.com"


class TestSessionRunner(unittest.TestCase):
    def setUp(self) -> None:
        ensure_repo_on_path()
        self._td = tempfile.TemporaryDirectory()
        self.td = Path(self._td.name)
        self.dispatcher, self.router = write_tables(self.td)
        self.lock = self.td / "whitelister.lock"

    def tearDown(self) -> None:
        self._td.cleanup()

    def _run(self, answers, reload=None, dispatcher_text=None, router_text=None):
        from whitelister.config.settings import WhitelisterConfig
        from whitelister.console import Console
        from whitelister.session.runner import SessionRunner

        if dispatcher_text is not None or router_text is not None:
            write_tables(self.td, dispatcher_text or DISPATCHER_TEXT, router_text or ROUTER_TEXT)
        config = WhitelisterConfig(
            dispatcher_table=self.dispatcher,
            router_table=self.router,
            lock_file=self.lock,
            reload_command=("fake-reload",) if reload else None,
        )
        scripted = ScriptedInput(answers)
        out = io.StringIO()
        runner = SessionRunner(config, Console(scripted, out), reload=reload, now=NOW)
        code = runner.run()
        return code, out.getvalue(), runner.session, scripted

    def _backups(self):
        return sorted(p.name for p in self.td.iterdir() if p.name.endswith(".backup"))

    def test_full_session_writes_both_tables(self) -> None:
        from whitelister.session.context import SessionState

        calls = []

        def reload() -> int:
            calls.append(True)
            return 0

        code, out, session, scripted = self._run(
            ["b", "10.1.1.1", "bogus", "10.1.1.1", EOF, "ABC", EOF,
             "12345", "Acme", "X999999", "D123456", "Jane Roe", "jane@example.com"],
            reload=reload,
        )

        self.assertEqual(code, 0, out)
        self.assertEqual(scripted.remaining, 0)
        self.assertEqual(calls, [True])
        self.assertEqual(
            self.dispatcher.read_text(encoding="utf-8"),
            DISPATCHER_TEXT + "##-- 12345: Acme --##\n" + f"P * * * 10.1.1.1 * {AUDIT}\n",
        )
        self.assertEqual(
            self.router.read_text(encoding="utf-8"),
            ROUTER_TEXT
            + "##-- 12345: Acme --##\n"
            + f"P 10.1.1.1 hostA 3200 {AUDIT}\n"
            + f"P 10.1.1.1 hostA 3300 {AUDIT}\n",
        )
        self.assertEqual(self._backups(), [
            "saprouttab-14:30:05-19.10.2026.backup",
            "webdisptab-14:30:05-19.10.2026.backup",
        ])
        self.assertFalse(self.lock.exists())
        self.assertIn("invalid IPv4 address", out)
        self.assertIn("already entered", out)
        self.assertIn("invalid employee id", out)
        self.assertEqual(session.history, [
            SessionState.IDLE,
            SessionState.BACKUPS_TAKEN,
            SessionState.WORKING_COPIES_OPEN,
            SessionState.COLLECTING_IPS,
            SessionState.COLLECTING_SIDS,
            SessionState.COLLECTING_METADATA,
            SessionState.MERGING,
            SessionState.PERSISTING,
            SessionState.RELOADING,
            SessionState.CLEANING_UP,
            SessionState.IDLE,
        ])
        self.assertEqual(session.tables, {})

    def test_zero_ips_leaves_everything_untouched(self) -> None:
        code, out, session, _ = self._run(["w", EOF])

        self.assertEqual(code, 1)
        self.assertIn("Nothing to do", out)
        self.assertEqual(self.dispatcher.read_text(encoding="utf-8"), DISPATCHER_TEXT)
        self.assertEqual(self.router.read_text(encoding="utf-8"), ROUTER_TEXT)
        self.assertEqual(self._backups(), [])
        self.assertFalse(self.lock.exists())

    def test_unknown_and_malformed_sids_leave_nothing_to_do(self) -> None:
        code, out, _, _ = self._run(["r", "10.1.1.1", EOF, "abcd", "QQQ", EOF])

        self.assertEqual(code, 1)
        self.assertIn("invalid SID", out)
        self.assertIn("SID QQQ not found", out)
        self.assertEqual(self.router.read_text(encoding="utf-8"), ROUTER_TEXT)
        self.assertEqual(self._backups(), [])

    def test_known_partner_is_not_asked_again(self) -> None:
        existing = "##-- 12345: Acme --##\nP * * * 10.9.9.9 * # Entry: C111111 | 01/01/2026 | Old | old@example.com\n"
        code, out, _, scripted = self._run(
            ["w", "10.2.2.2", EOF, "12345", "D123456", "Jane Roe", "jane@example.com"],
            dispatcher_text=DISPATCHER_TEXT + existing,
        )

        self.assertEqual(code, 0, out)
        self.assertNotIn("Partner name: ", scripted.prompts)
        text = self.dispatcher.read_text(encoding="utf-8")
        self.assertEqual(text.count("##-- 12345"), 1)
        self.assertIn(f"##-- 12345: Acme --##\nP * * * 10.2.2.2 * {AUDIT}\nP * * * 10.9.9.9 *", text)
        self.assertEqual(self.router.read_text(encoding="utf-8"), ROUTER_TEXT)

    def test_only_duplicates_changes_nothing(self) -> None:
        existing = "##-- 1: Old --##\nP * * * 10.1.1.1 * # Entry: C111111 | 01/01/2026 | Old | old@example.com\n"
        code, out, _, _ = self._run(
            ["w", "10.1.1.1", EOF, "12345", "Acme", "D123456", "Jane Roe", "jane@example.com"],
            dispatcher_text=DISPATCHER_TEXT + existing,
        )

        self.assertEqual(code, 0)
        self.assertIn("already whitelisted", out)
        self.assertEqual(self.dispatcher.read_text(encoding="utf-8"), DISPATCHER_TEXT + existing)
        self.assertEqual(self._backups(), [])

    def test_failed_reload_is_reported_but_successful(self) -> None:
        code, out, _, _ = self._run(
            ["w", "10.1.1.1", EOF, "12345", "Acme", "D123456", "Jane Roe", "jane@example.com"],
            reload=lambda: 3,
        )

        self.assertEqual(code, 0)
        self.assertIn("reload failed", out)
        self.assertIn("status 3", out)
        self.assertIn("10.1.1.1", self.dispatcher.read_text(encoding="utf-8"))

    def test_interrupt_releases_lock_and_discards_work(self) -> None:
        code, out, session, _ = self._run(["b", "10.1.1.1", EOF, "ABC", EOF, KeyboardInterrupt])

        self.assertEqual(code, 1)
        self.assertIn("Interrupted", out)
        self.assertFalse(self.lock.exists())
        self.assertEqual(self.dispatcher.read_text(encoding="utf-8"), DISPATCHER_TEXT)
        self.assertEqual(self.router.read_text(encoding="utf-8"), ROUTER_TEXT)
        self.assertEqual(self._backups(), [])
        self.assertEqual(session.tables, {})

    def test_interrupt_while_writing_router_table_reports_inconsistency(self) -> None:
        from unittest import mock

        from whitelister.acl.tables import AclTable

        real_render = AclTable.render

        def render(table):
            if table.kind == "router":
                raise KeyboardInterrupt
            return real_render(table)

        with mock.patch.object(AclTable, "render", autospec=True, side_effect=render):
            code, out, _, _ = self._run(
                ["b", "10.1.1.1", EOF, "ABC", EOF, "12345", "Acme", "D123456", "Jane Roe", "jane@example.com"]
            )

        self.assertEqual(code, 1)
        self.assertIn("INCONSISTENT", out)
        self.assertNotIn("no changes were written", out)
        self.assertIn("10.1.1.1", self.dispatcher.read_text(encoding="utf-8"))
        self.assertEqual(self.router.read_text(encoding="utf-8"), ROUTER_TEXT)
        self.assertEqual(len(self._backups()), 2)
        self.assertFalse(self.lock.exists())

    def test_dispatcher_only_session_leaves_router_file_alone(self) -> None:
        router_text = ROUTER_TEXT + "\n\n"
        code, out, _, _ = self._run(
            ["w", "10.1.1.1", EOF, "12345", "Acme", "D123456", "Jane Roe", "jane@example.com"],
            router_text=router_text,
        )

        self.assertEqual(code, 0, out)
        self.assertIn("10.1.1.1", self.dispatcher.read_text(encoding="utf-8"))
        self.assertEqual(self.router.read_text(encoding="utf-8"), router_text)

    def test_input_closed_mid_session(self) -> None:
        code, out, _, _ = self._run(["w", "10.1.1.1", EOF])

        self.assertEqual(code, 1)
        self.assertIn("Input closed", out)
        self.assertFalse(self.lock.exists())

    def test_held_lock_refuses_to_start(self) -> None:
        self.lock.write_text("4242\n", encoding="utf-8")

        code, out, session, scripted = self._run(["w", "10.1.1.1", EOF])

        self.assertEqual(code, 1)
        self.assertIn("4242", out)
        self.assertEqual(scripted.prompts, [])
        self.assertTrue(self.lock.exists())
        self.assertEqual(self._backups(), [])

    def test_missing_marker_aborts_before_prompting(self) -> None:
        code, out, _, scripted = self._run(["w"], dispatcher_text="P * * * * *\n")

        self.assertEqual(code, 1)
        self.assertIn("marker line", out)
        self.assertEqual(scripted.prompts, [])
        self.assertFalse(self.lock.exists())
        self.assertEqual(self._backups(), [])


if __name__ == "__main__":
    unittest.main()
