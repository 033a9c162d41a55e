from __future__ import annotations

import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from stock_audit.aggregation import BranchPercentage, CategoryStats
from stock_audit.errors import SnapshotNotFoundError
from stock_audit.snapshot import ComplianceSnapshot, assemble_snapshot, generate_snapshot_id, snapshot_name
from stock_audit.store import SnapshotStore


def fixed_clock() -> datetime:
    return datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)


def make_snapshot(snapshot_id: str, ira_percentage: float = 75.0) -> ComplianceSnapshot:
    snapshot = assemble_snapshot(None, None, snapshot_id=snapshot_id, clock=fixed_clock)
    snapshot.ira_stats = CategoryStats(
        counted=3,
        not_counted=1,
        percentage=ira_percentage,
        branch_percentages=[BranchPercentage("1940 - PT. APL SURABAYA", "1940", ira_percentage)],
    )
    snapshot.ira_columns = ["Branch", "%IRALine", "Counted On"]
    snapshot.ira_rows = [{"Branch": "surabaya", "%IRALine": 1, "Counted On": datetime(2026, 10, 1)}]
    return snapshot


class SnapshotTests(unittest.TestCase):
    def test_name_follows_month_year_day_pattern(self):
        self.assertEqual(snapshot_name(fixed_clock()), "October-2026 (19)")
        self.assertEqual(make_snapshot("a").name, "October-2026 (19)")

    def test_generated_ids_are_unique(self):
        ids = {generate_snapshot_id() for _ in range(50)}
        self.assertEqual(len(ids), 50)
        self.assertRegex(next(iter(ids)), r"^\d+-[0-9a-f]{9}$")

    def test_missing_categories_get_empty_stats(self):
        snapshot = assemble_snapshot(None, None, clock=fixed_clock)
        self.assertEqual(snapshot.ira_stats, CategoryStats())
        self.assertEqual(snapshot.cc_stats, CategoryStats())
        self.assertEqual(snapshot.metadata, {})

    def test_payload_carries_versioned_contract(self):
        payload = make_snapshot("a").to_dict()
        self.assertEqual(payload["contract"]["name"], "stock_audit.snapshot")
        self.assertEqual(payload["schema_version"], "1.0.0")
        self.assertEqual(payload["iraData"]["columns"], ["Branch", "%IRALine", "Counted On"])


class SnapshotStoreTests(unittest.TestCase):
    def test_save_get_and_index(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SnapshotStore(tmpdir)
            store.save(make_snapshot("1000-abc"))
            store.save(make_snapshot("2000-def", ira_percentage=50.0))

            entries = store.list()
            self.assertEqual([entry["id"] for entry in entries], ["1000-abc", "2000-def"])
            self.assertEqual(entries[1]["iraPercentage"], 50.0)
            self.assertEqual(entries[0]["name"], "October-2026 (19)")

            loaded = store.get("1000-abc")
            self.assertEqual(loaded.ira_stats, make_snapshot("x").ira_stats)
            self.assertEqual(loaded.date, fixed_clock())
            # datetimes in row data are stored as text
            self.assertEqual(loaded.ira_rows[0]["Counted On"], "2026-10-01 00:00:00")

    def test_saving_same_id_replaces_index_entry(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SnapshotStore(tmpdir)
            store.save(make_snapshot("1000-abc"))
            store.save(make_snapshot("1000-abc", ira_percentage=10.0))
            self.assertEqual(len(store.list()), 1)
            self.assertEqual(store.list()[0]["iraPercentage"], 10.0)

    def test_delete_removes_file_and_entry(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SnapshotStore(tmpdir)
            path = store.save(make_snapshot("1000-abc"))
            store.delete("1000-abc")
            self.assertFalse(path.exists())
            self.assertEqual(store.list(), [])
            with self.assertRaises(SnapshotNotFoundError):
                store.delete("1000-abc")

    def test_missing_snapshot_and_unsafe_ids(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SnapshotStore(tmpdir)
            with self.assertRaisesRegex(SnapshotNotFoundError, "Snapshot not found: nope"):
                store.get("nope")
            with self.assertRaises(SnapshotNotFoundError):
                store.get("../outside")
            with self.assertRaises(KeyError):
                store.get("index")

    def test_empty_or_missing_index_reads_as_empty(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SnapshotStore(Path(tmpdir) / "not-created-yet")
            self.assertEqual(store.list(), [])
            store.root.mkdir()
            store.index_path.write_text("", encoding="utf-8")
            self.assertEqual(store.list(), [])
            self.assertEqual(store.export_all(), [])

    def test_export_all_skips_entries_without_files(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SnapshotStore(tmpdir)
            store.save(make_snapshot("1000-abc"))
            path = store.save(make_snapshot("2000-def"))
            path.unlink()
            with self.assertLogs("stock_audit.store", level="WARNING"):
                exported = store.export_all()
            self.assertEqual([snapshot.id for snapshot in exported], ["1000-abc"])

    def test_index_file_has_contract(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = SnapshotStore(tmpdir)
            store.save(make_snapshot("1000-abc"))
            payload = json.loads(store.index_path.read_text(encoding="utf-8"))
            self.assertEqual(payload["contract"]["name"], "stock_audit.snapshot_index")


if __name__ == "__main__":
    unittest.main()
