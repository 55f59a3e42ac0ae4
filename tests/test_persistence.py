from __future__ import annotations

import tempfile
import unittest
from pathlib import Path

from _testutil import ensure_repo_on_path, write_tables


MARKER = "# Script inserted entries"


class TestFinalizeAndPersist(unittest.TestCase):
    def _load(self, td: Path, dispatcher_text: str, router_text: str):
        from whitelister.acl.tables import AclTable

        dp, rp = write_tables(td, dispatcher_text, router_text)
        return AclTable.load("dispatcher", dp, MARKER), AclTable.load("router", rp)

    def test_round_trip_matches_working_copy_minus_blank_lines(self) -> None:
        ensure_repo_on_path()
        from whitelister.acl.engine import MergeEngine
        from whitelister.acl.reference import ReferenceTable

        dispatcher_text = "# top\n\nP /a * * * *\n" + MARKER + "\n\n##-- 1: One --##\n\nP * * * 10.1.1.1 *\n\n"
        router_text = "P * hostA 3200, 3300 # ABC\n\n##-- 1: One --##\nP 10.1.1.1 hostA 3200\n\n"

        with tempfile.TemporaryDirectory() as td:
            d, r = self._load(Path(td), dispatcher_text, router_text)
            engine = MergeEngine(ReferenceTable.from_table(r))

            result = engine.finalize_and_persist([r, d])

            self.assertEqual(result.written, (d.path, r.path))
            self.assertEqual(result.removed_blank_lines, 4)
            self.assertEqual(
                d.path.read_text(encoding="utf-8"),
                "# top\n\nP /a * * * *\n" + MARKER + "\n##-- 1: One --##\nP * * * 10.1.1.1 *\n",
            )
            # Blank lines above the first router header are outside the managed region.
            self.assertEqual(
                r.path.read_text(encoding="utf-8"),
                "P * hostA 3200, 3300 # ABC\n\n##-- 1: One --##\nP 10.1.1.1 hostA 3200\n",
            )
            self.assertEqual(d.path.read_text(encoding="utf-8"), d.render())
            self.assertEqual(r.path.read_text(encoding="utf-8"), r.render())
            leftovers = [p.name for p in Path(td).iterdir() if p.name.endswith(".temp")]
            self.assertEqual(leftovers, [])

    def test_router_failure_after_dispatcher_write_is_inconsistent(self) -> None:
        ensure_repo_on_path()
        from whitelister.acl.engine import MergeEngine
        from whitelister.acl.reference import ReferenceTable
        from whitelister.infra.errors import PersistenceError
        from whitelister.utils.fs import atomic_write_text

        with tempfile.TemporaryDirectory() as td:
            d, r = self._load(Path(td), MARKER + "\n", "P * hostA 3200, 3300 # ABC\n")
            d.lines.append("##-- 1: One --##")

            def write(path: Path, text: str) -> None:
                if path == r.path:
                    raise OSError("disk full")
                atomic_write_text(path, text)

            engine = MergeEngine(ReferenceTable.from_table(r), write_text=write)
            with self.assertRaises(PersistenceError) as ctx:
                engine.finalize_and_persist([d, r])

            self.assertTrue(ctx.exception.inconsistent)
            self.assertEqual(ctx.exception.written, [d.path])
            self.assertIn("##-- 1: One --##", d.path.read_text(encoding="utf-8"))

    def test_interrupt_after_dispatcher_write_is_inconsistent(self) -> None:
        ensure_repo_on_path()
        from whitelister.acl.engine import MergeEngine
        from whitelister.acl.reference import ReferenceTable
        from whitelister.infra.errors import PersistenceError
        from whitelister.utils.fs import atomic_write_text

        with tempfile.TemporaryDirectory() as td:
            d, r = self._load(Path(td), MARKER + "\n", "P * hostA 3200, 3300 # ABC\n")
            d.lines.append("##-- 1: One --##")

            def write(path: Path, text: str) -> None:
                if path == r.path:
                    raise KeyboardInterrupt
                atomic_write_text(path, text)

            engine = MergeEngine(ReferenceTable.from_table(r), write_text=write)
            with self.assertRaises(PersistenceError) as ctx:
                engine.finalize_and_persist([d, r])

            self.assertTrue(ctx.exception.inconsistent)
            self.assertEqual(ctx.exception.written, [d.path])

    def test_interrupt_before_first_write_propagates(self) -> None:
        ensure_repo_on_path()
        from whitelister.acl.engine import MergeEngine
        from whitelister.acl.reference import ReferenceTable

        with tempfile.TemporaryDirectory() as td:
            d, r = self._load(Path(td), MARKER + "\n", "P * hostA 3200, 3300 # ABC\n")

            def write(path: Path, text: str) -> None:
                raise KeyboardInterrupt

            engine = MergeEngine(ReferenceTable.from_table(r), write_text=write)
            with self.assertRaises(KeyboardInterrupt):
                engine.finalize_and_persist([d, r])
            self.assertEqual(d.path.read_text(encoding="utf-8"), MARKER + "\n")

    def test_dispatcher_failure_leaves_both_files_untouched(self) -> None:
        ensure_repo_on_path()
        from whitelister.acl.engine import MergeEngine
        from whitelister.acl.reference import ReferenceTable
        from whitelister.infra.errors import PersistenceError

        with tempfile.TemporaryDirectory() as td:
            d, r = self._load(Path(td), MARKER + "\n", "P * hostA 3200, 3300 # ABC\n")
            calls = []

            def write(path: Path, text: str) -> None:
                calls.append(path)
                raise PermissionError("read-only")

            engine = MergeEngine(ReferenceTable.from_table(r), write_text=write)
            with self.assertRaises(PersistenceError) as ctx:
                engine.finalize_and_persist([r, d])

            self.assertFalse(ctx.exception.inconsistent)
            self.assertEqual(calls, [d.path])


class TestBackups(unittest.TestCase):
    def test_backups_are_named_with_time_and_date(self) -> None:
        ensure_repo_on_path()
        from datetime import datetime

        from whitelister.session.backups import discard_backups, take_backups
        from whitelister.utils.time import backup_stamp

        with tempfile.TemporaryDirectory() as td:
            dp, rp = write_tables(Path(td))
            stamp = backup_stamp(datetime(2026, 10, 19, 14, 30, 5))
            paths = take_backups([dp, rp], stamp)

            self.assertEqual([p.name for p in paths], [
                "webdisptab-14:30:05-19.10.2026.backup",
                "saprouttab-14:30:05-19.10.2026.backup",
            ])
            self.assertEqual(paths[0].read_text(encoding="utf-8"), dp.read_text(encoding="utf-8"))

            discard_backups(paths)
            self.assertFalse(any(p.exists() for p in paths))

    def test_backup_dir_and_failure_cleanup(self) -> None:
        ensure_repo_on_path()
        from whitelister.infra.errors import PersistenceError
        from whitelister.session.backups import take_backups

        with tempfile.TemporaryDirectory() as td:
            dp, rp = write_tables(Path(td))
            bdir = Path(td) / "backups"
            paths = take_backups([dp, rp], "stamp", backup_dir=bdir)
            self.assertTrue(all(p.parent == bdir for p in paths))

            with self.assertRaises(PersistenceError):
                take_backups([dp, Path(td) / "missing"], "again", backup_dir=bdir)
            self.assertFalse((bdir / "webdisptab-again.backup").exists())


if __name__ == "__main__":
    unittest.main()
