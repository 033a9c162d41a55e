from __future__ import annotations

import random
import unittest

from stock_audit.aggregation import Aggregator, CategoryStats, ClassifiedRow, percentage
from stock_audit.branches import load_directory


class AggregatorTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.directory = load_directory()
        cls.surabaya = cls.directory.by_code("1940")
        cls.medan = cls.directory.by_code("1951")

    def test_grand_and_branch_totals(self):
        aggregator = Aggregator(self.directory)
        for branch, counted in [
            (self.surabaya, True),
            (self.surabaya, False),
            (self.medan, True),
            (None, True),
        ]:
            aggregator.add(ClassifiedRow(row={}, branch=branch, counted=counted))
        stats = aggregator.finalize()

        self.assertEqual((stats.counted, stats.not_counted), (3, 1))
        self.assertAlmostEqual(stats.percentage, 75.0)
        self.assertEqual(aggregator.unresolved, 1)
        # directory order: MEDAN (1951) is listed before SURABAYA (1940)
        self.assertEqual(
            [(item.branch, item.percentage) for item in stats.branch_percentages],
            [("1951 - PT. APL MEDAN", 100.0), ("1940 - PT. APL SURABAYA", 50.0)],
        )

    def test_unresolved_rows_only_count_toward_grand_totals(self):
        aggregator = Aggregator(self.directory)
        for index in range(100):
            aggregator.add(ClassifiedRow(row={}, branch=None, counted=index < 40))
        stats = aggregator.finalize()
        self.assertEqual(stats.percentage, 40.0)
        self.assertEqual(stats.branch_percentages, [])

    def test_empty_input_has_zero_percentage(self):
        stats = Aggregator(self.directory).finalize()
        self.assertEqual(stats, CategoryStats())
        self.assertEqual(percentage(0, 0), 0.0)

    def test_invariants_hold_for_random_rows(self):
        rng = random.Random(7)
        branches = list(self.directory) + [None]
        aggregator = Aggregator(self.directory)
        rows = 500
        for _ in range(rows):
            aggregator.add(ClassifiedRow(row={}, branch=rng.choice(branches), counted=rng.random() < 0.6))
        stats = aggregator.finalize()

        self.assertEqual(stats.counted + stats.not_counted, rows)
        self.assertTrue(0 <= stats.percentage <= 100)
        for stat in aggregator.branch_stats():
            self.assertLessEqual(stat.counted, stat.total)
        reported = {item.code for item in stats.branch_percentages}
        for stat in aggregator.branch_stats():
            self.assertEqual(stat.branch.code in reported, stat.total > 0)
        for item in stats.branch_percentages:
            self.assertTrue(0 <= item.percentage <= 100)

    def test_stats_round_trip_through_dict(self):
        aggregator = Aggregator(self.directory)
        aggregator.add(ClassifiedRow(row={}, branch=self.surabaya, counted=True))
        stats = aggregator.finalize()
        payload = stats.to_dict()
        self.assertEqual(set(payload), {"counted", "notCounted", "percentage", "branchPercentages"})
        self.assertEqual(CategoryStats.from_dict(payload), stats)


if __name__ == "__main__":
    unittest.main()
