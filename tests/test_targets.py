from __future__ import annotations

import json
import tempfile
import unittest
from datetime import date, datetime, timezone
from pathlib import Path

from stock_audit.aggregation import CategoryStats
from stock_audit.classifiers import Category
from stock_audit.snapshot import ComplianceSnapshot
from stock_audit.targets import WeekTargets, check_snapshot, load_targets, save_targets, week_of_month


class WeekTargetsTests(unittest.TestCase):
    def test_defaults(self):
        targets = WeekTargets.defaults()
        self.assertEqual([t.target for t in targets.weeks("ira").values()], [99.0, 99.0, 99.0, 99.0])
        self.assertEqual([t.target for t in targets.weeks(Category.CC).values()], [25.0, 50.0, 75.0, 99.0])

    def test_week_of_month(self):
        cases = {1: "week1", 7: "week1", 8: "week2", 21: "week3", 22: "week4", 31: "week4"}
        for day, week in cases.items():
            self.assertEqual(week_of_month(date(2026, 10, day)), week, day)

    def test_configured_window_wins_over_week_of_month(self):
        targets = WeekTargets.defaults().with_week(
            "cc", "week1", 40, start_date=date(2026, 10, 15), end_date=date(2026, 10, 21)
        )
        day = date(2026, 10, 19)
        self.assertEqual(targets.week_for("cc", day), "week1")
        self.assertEqual(targets.week_for("ira", day), "week3")
        check = targets.check("cc", 45.0, day)
        self.assertEqual(check.target, 40.0)
        self.assertTrue(check.met)
        self.assertFalse(targets.check("ira", 98.9, day).met)

    def test_partial_payload_keeps_defaults(self):
        targets = WeekTargets.from_dict({"cc": {"week2": {"startDate": "", "endDate": "", "target": "60"}}})
        self.assertEqual(targets.weeks("cc")["week2"].target, 60.0)
        self.assertIsNone(targets.weeks("cc")["week2"].start_date)
        self.assertEqual(targets.weeks("cc")["week4"].target, 99.0)
        self.assertEqual(targets.weeks("ira")["week1"].target, 99.0)

    def test_invalid_values(self):
        with self.assertRaisesRegex(ValueError, "cc.week1.target"):
            WeekTargets.from_dict({"cc": {"week1": {"target": 150}}})
        with self.assertRaisesRegex(ValueError, "ira.week2.startDate"):
            WeekTargets.from_dict({"ira": {"week2": {"target": 99, "startDate": "19/10/2026"}}})
        with self.assertRaises(ValueError):
            WeekTargets.defaults().with_week("ira", "week5", 90)
        with self.assertRaises(ValueError):
            WeekTargets.defaults().with_week(
                "ira", "week1", 90, start_date=date(2026, 10, 8), end_date=date(2026, 10, 1)
            )

    def test_check_snapshot_uses_snapshot_date(self):
        snapshot = ComplianceSnapshot(
            id="1000-abc",
            name="October-2026 (03)",
            date=datetime(2026, 10, 3, tzinfo=timezone.utc),
            ira_stats=CategoryStats(counted=99, not_counted=1, percentage=99.0),
            cc_stats=CategoryStats(counted=1, not_counted=4, percentage=20.0),
        )
        checks = check_snapshot(snapshot, WeekTargets.defaults())
        self.assertTrue(checks[Category.IRA].met)
        self.assertEqual((checks[Category.CC].week, checks[Category.CC].target), ("week1", 25.0))
        self.assertFalse(checks[Category.CC].met)


class TargetsFileTests(unittest.TestCase):
    def test_missing_or_empty_file_gives_defaults(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "week-targets.json"
            self.assertEqual(load_targets(path), WeekTargets.defaults())
            path.write_text("", encoding="utf-8")
            self.assertEqual(load_targets(path), WeekTargets.defaults())

    def test_save_and_load(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "data" / "week-targets.json"
            targets = WeekTargets.defaults().with_week(
                "ira", "week4", 97.5, start_date=date(2026, 10, 22), end_date=date(2026, 10, 31)
            )
            save_targets(targets, path)
            payload = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(payload["contract"]["name"], "stock_audit.week_targets")
            self.assertEqual(
                payload["ira"]["week4"], {"startDate": "2026-10-22", "endDate": "2026-10-31", "target": 97.5}
            )
            self.assertEqual(load_targets(path), targets)

    def test_invalid_json(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "week-targets.json"
            path.write_text("{not json", encoding="utf-8")
            with self.assertRaisesRegex(ValueError, "not valid JSON"):
                load_targets(path)


if __name__ == "__main__":
    unittest.main()
