from __future__ import annotations

import unittest

from stock_audit.classifiers import (
    CcClassifier,
    Category,
    IraClassifier,
    classifier_for,
    detect_category,
)


class IraClassifierTests(unittest.TestCase):
    def setUp(self):
        self.classifier = IraClassifier()

    def test_truthy_indicator_encodings_are_counted(self):
        for value in (1, 1.0, "1", True, "true"):
            with self.subTest(value=value):
                self.assertTrue(self.classifier.classify({"%IRALine": value}).counted)

    def test_match_status_alone_is_counted(self):
        self.assertTrue(self.classifier.classify({"Ind_IRALine": "Match"}).counted)

    def test_other_values_are_not_counted(self):
        for row in ({"%IRALine": 0}, {"%IRALine": "yes"}, {"%IRALine": "TRUE"}, {"Ind_IRALine": "match"}, {}):
            with self.subTest(row=row):
                self.assertFalse(self.classifier.classify(row).counted)

    def test_row_is_not_mutated(self):
        row = {"%IRALine": 1, "Material": "M-1"}
        result = self.classifier.classify(row)
        self.assertEqual(result.row, row)
        self.assertIsNot(result.row, row)
        self.assertFalse(result.repaired)


class CcClassifierTests(unittest.TestCase):
    def setUp(self):
        self.classifier = CcClassifier()

    def test_counted_status_repairs_ratio_in_emitted_copy(self):
        row = {"Count Status": "Counted", "%CountComp": 0}
        result = self.classifier.classify(row)
        self.assertTrue(result.counted)
        self.assertTrue(result.repaired)
        self.assertEqual(result.row["%CountComp"], 1)
        self.assertEqual(row["%CountComp"], 0)

    def test_ratio_of_one_is_counted_without_repair(self):
        result = self.classifier.classify({"Count Status": "Counted", "%CountComp": 1})
        self.assertTrue(result.counted)
        self.assertFalse(result.repaired)

    def test_ratio_one_without_counted_status(self):
        self.assertTrue(self.classifier.classify({"Count Status": "Not Counted", "%CountComp": 1}).counted)
        self.assertTrue(self.classifier.classify({"%CountComp": "1"}).counted)

    def test_partial_or_malformed_ratio_is_not_counted(self):
        for value in (0.5, 0, None, "", "n/a", 100):
            with self.subTest(value=value):
                self.assertFalse(self.classifier.classify({"%CountComp": value}).counted)


class CategoryDetectionTests(unittest.TestCase):
    def test_filename_substring_is_case_insensitive(self):
        self.assertIs(detect_category("Weekly_IRA_Report.xlsx"), Category.IRA)
        self.assertIs(detect_category("/tmp/uploads/cc-week42.csv"), Category.CC)
        self.assertIsNone(detect_category("stock.xlsx"))

    def test_ira_is_checked_first(self):
        self.assertIs(detect_category("ira_cc_combined.xlsx"), Category.IRA)

    def test_classifier_for_category(self):
        self.assertIsInstance(classifier_for(Category.IRA), IraClassifier)
        self.assertIsInstance(classifier_for("cc"), CcClassifier)
        self.assertEqual(Category.CC.label, "Cycle Count")


if __name__ == "__main__":
    unittest.main()
