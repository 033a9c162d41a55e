from __future__ import annotations

import json
import tempfile
import unittest
from datetime import date, datetime, timezone
from pathlib import Path
from urllib.parse import unquote

import openpyxl

from stock_audit.aggregation import BranchPercentage, CategoryStats
from stock_audit.branches import load_directory
from stock_audit.exporter import (
    EmailTemplate,
    branch_label_with_code,
    build_email_draft_url,
    build_export_rows,
    format_percentage,
    load_email_template,
    render_email_html,
    write_snapshot_workbook,
)
from stock_audit.snapshot import ComplianceSnapshot
from stock_audit.targets import WeekTargets


def make_snapshot() -> ComplianceSnapshot:
    return ComplianceSnapshot(
        id="1000-abc",
        name="October-2026 (19)",
        date=datetime(2026, 10, 19, tzinfo=timezone.utc),
        ira_stats=CategoryStats(
            counted=3,
            not_counted=1,
            percentage=75.0,
            branch_percentages=[
                BranchPercentage("1951 - PT. APL MEDAN", "1951", 100.0),
                BranchPercentage("1940 - PT. APL SURABAYA", "1940", 50.0),
            ],
        ),
        cc_stats=CategoryStats(
            counted=39,
            not_counted=1,
            percentage=97.5,
            branch_percentages=[BranchPercentage("1940 - PT. APL SURABAYA", "1940", 97.5)],
        ),
    )


class FormattingTests(unittest.TestCase):
    def test_comma_decimal_with_two_digits(self):
        self.assertEqual(format_percentage(97.5), "97,50")
        self.assertEqual(format_percentage(100), "100,00")
        self.assertEqual(format_percentage(None), "0,00")
        self.assertEqual(format_percentage(33.3333), "33,33")

    def test_branch_label_with_code(self):
        directory = load_directory()
        self.assertEqual(branch_label_with_code("PT. APL SURABAYA", directory), "1940 - PT. APL SURABAYA")
        self.assertEqual(branch_label_with_code("1940 - PT. APL SURABAYA", directory), "1940 - PT. APL SURABAYA")
        self.assertEqual(branch_label_with_code("JAKARTA 1", directory), "1910 - PT. APL JAKARTA 1")
        self.assertEqual(branch_label_with_code("NORTH DEPOT", directory), "NORTH DEPOT")


class ExportRowsTests(unittest.TestCase):
    def test_categories_are_joined_by_branch_in_directory_order(self):
        rows = build_export_rows(make_snapshot(), load_directory())
        self.assertEqual(
            rows,
            [
                {"branch": "1951 - PT. APL MEDAN", "ira": 100.0, "cc": 0.0},
                {"branch": "1940 - PT. APL SURABAYA", "ira": 50.0, "cc": 97.5},
            ],
        )

    def test_legacy_labels_without_code_are_matched(self):
        snapshot = make_snapshot()
        snapshot.cc_stats = CategoryStats(
            branch_percentages=[BranchPercentage("PT. APL MEDAN", "", 80.0)]
        )
        rows = build_export_rows(snapshot, load_directory())
        self.assertEqual(rows[0], {"branch": "1951 - PT. APL MEDAN", "ira": 100.0, "cc": 80.0})


class WorkbookTests(unittest.TestCase):
    def test_workbook_layout(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_snapshot_workbook(make_snapshot(), Path(tmpdir) / "out" / "report.xlsx", load_directory())
            wb = openpyxl.load_workbook(path)
            self.assertEqual(wb.sheetnames, ["Snapshot Data", "Summary"])
            ws = wb["Snapshot Data"]
            values = [list(row) for row in ws.iter_rows(values_only=True)]
            self.assertEqual(values[0], ["Branch", "IRA", "Cycle Count"])
            self.assertEqual(values[2], ["1940 - PT. APL SURABAYA", "50,00", "97,50"])
            self.assertTrue(ws["A1"].font.bold)
            self.assertEqual(ws["A1"].fill.fgColor.rgb[-6:], "4F81BD")
            summary = [list(row) for row in wb["Summary"].iter_rows(min_row=2, max_row=3, values_only=True)]
            self.assertEqual(summary[1], ["Cycle Count", 39, 1, "97,50"])

    def test_summary_judges_each_category_against_its_week_target(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_snapshot_workbook(
                make_snapshot(), Path(tmpdir) / "report.xlsx", load_directory(), WeekTargets.defaults()
            )
            rows = [list(row) for row in openpyxl.load_workbook(path)["Summary"].iter_rows(max_row=3, values_only=True)]
        self.assertEqual(rows[0], ["Category", "Counted", "Not Counted", "Percentage", "Week", "Target", "Status"])
        self.assertEqual(rows[1], ["IRA", 3, 1, "75,00", "week3", "99,00", "Below target"])
        self.assertEqual(rows[2], ["Cycle Count", 39, 1, "97,50", "week3", "75,00", "Met"])


class EmailTests(unittest.TestCase):
    def test_email_table_lists_every_branch(self):
        body = render_email_html(
            make_snapshot(),
            load_directory(),
            title="Weekly <IRA>",
            generated_on=date(2026, 10, 19),
        )
        self.assertIn("<h2>Weekly &lt;IRA&gt;</h2>", body)
        self.assertIn("1940 - PT. APL SURABAYA", body)
        self.assertIn("97,50%", body)
        self.assertIn("Generated on: 2026-10-19", body)
        self.assertEqual(body.count("<tr>"), 3)

    def test_draft_url_encodes_subject_and_body(self):
        template = EmailTemplate(subject="IRA & CC: week 42", title="Weekly report", intro="Hi team", footer="Ops")
        url = build_email_draft_url(make_snapshot(), load_directory(), template, generated_on=date(2026, 10, 19))

        prefix = "https://outlook.office.com/mail/deeplink/compose?subject=IRA%20%26%20CC%3A%20week%2042&body="
        self.assertTrue(url.startswith(prefix))
        self.assertEqual(url.count("&"), 1)
        for raw in (" ", "#", "<", ">", '"', "\n"):
            self.assertNotIn(raw, url)
        expected = render_email_html(
            make_snapshot(),
            load_directory(),
            title="Weekly report",
            intro="Hi team",
            footer="Ops",
            generated_on=date(2026, 10, 19),
        )
        self.assertEqual(unquote(url[len(prefix):]), expected)

    def test_template_file_layouts(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            nested = Path(tmpdir) / "nested.json"
            nested.write_text(
                json.dumps({"subject": "Audit", "template": {"title": "T", "intro": "I", "footer": "F"}}),
                encoding="utf-8",
            )
            flat = Path(tmpdir) / "flat.json"
            flat.write_text(json.dumps({"subject": "Audit", "title": "T"}), encoding="utf-8")

            self.assertEqual(load_email_template(nested), EmailTemplate("Audit", "T", "I", "F"))
            loaded = load_email_template(flat)
            self.assertEqual((loaded.subject, loaded.title), ("Audit", "T"))
            self.assertEqual(loaded.footer, EmailTemplate().footer)

            missing = Path(tmpdir) / "missing.json"
            with self.assertRaisesRegex(FileNotFoundError, "Email template not found"):
                load_email_template(missing)
            self.assertEqual(load_email_template(missing, missing_ok=True), EmailTemplate())


if __name__ == "__main__":
    unittest.main()
