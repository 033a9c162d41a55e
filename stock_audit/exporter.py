"""
Report export for a saved snapshot: a styled xlsx workbook and an HTML e-mail body.

Both outputs list one row per branch with its IRA and Cycle Count percentage.
The two categories are joined by branch; a branch missing from one category
reports 0 for it.
"""

from __future__ import annotations

import html
import json
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any
from urllib.parse import quote

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from stock_audit.aggregation import BranchPercentage
from stock_audit.branches import LABEL_SEPARATOR, BranchDirectory
from stock_audit.classifiers import Category
from stock_audit.snapshot import ComplianceSnapshot
from stock_audit.targets import WeekTargets, check_snapshot

EXPORT_SHEET_TITLE = "Snapshot Data"
SUMMARY_SHEET_TITLE = "Summary"
EXPORT_HEADERS = ["Branch", "IRA", "Cycle Count"]
HEADER_COLOR = "4F81BD"
LEGACY_NAME_PREFIX = "PT. APL "

DEFAULT_EMAIL_TITLE = "Stock Audit Compliance Report"
DEFAULT_EMAIL_INTRO = "Please find below the IRA and Cycle Count compliance per branch."
DEFAULT_EMAIL_SUBJECT = "Stock Audit Compliance Report"
DEFAULT_EMAIL_FOOTER = "This report was generated automatically."
OUTLOOK_COMPOSE_URL = "https://outlook.office.com/mail/deeplink/compose"


def format_percentage(value: Any) -> str:
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        number = 0.0
    return f"{number:.2f}".replace(".", ",")


def branch_label_with_code(label: str, directory: BranchDirectory) -> str:
    """
    Prefix the branch code to a label, e.g. "PT. APL SURABAYA" ->
    "1940 - PT. APL SURABAYA". Labels that already carry a known code, or that
    match no branch, come back unchanged.
    """
    text = (label or "").strip()
    code, sep, _ = text.partition(LABEL_SEPARATOR)
    if sep and directory.by_code(code) is not None:
        return text
    lowered = text.lower()
    for branch in directory:
        name = branch.name_part.lower()
        city = name[len(LEGACY_NAME_PREFIX):] if name.startswith(LEGACY_NAME_PREFIX.lower()) else name
        if lowered in (name, city):
            return branch.full_label
    return text


def _label_key(item: BranchPercentage, directory: BranchDirectory) -> str:
    if item.code and directory.by_code(item.code) is not None:
        return directory.by_code(item.code).full_label
    return branch_label_with_code(item.branch, directory)


def build_export_rows(snapshot: ComplianceSnapshot, directory: BranchDirectory) -> list[dict[str, Any]]:
    ira = {_label_key(item, directory): item.percentage for item in snapshot.ira_stats.branch_percentages}
    cc = {_label_key(item, directory): item.percentage for item in snapshot.cc_stats.branch_percentages}

    labels = [branch.full_label for branch in directory if branch.full_label in ira or branch.full_label in cc]
    known = set(labels)
    for label in list(ira) + list(cc):
        if label not in known:
            labels.append(label)
            known.add(label)

    return [{"branch": label, "ira": ira.get(label, 0.0), "cc": cc.get(label, 0.0)} for label in labels]


def _header_font() -> Font:
    return Font(bold=True, color="FFFFFF")


def _style_sheet(ws, col_widths: list[int], header_color: str = HEADER_COLOR) -> None:
    fill = PatternFill("solid", fgColor=header_color)
    font = _header_font()
    for cell in ws[1]:
        cell.font = font
        cell.fill = fill
        cell.alignment = Alignment(horizontal="center", vertical="center")
    ws.freeze_panes = "A2"
    for i, width in enumerate(col_widths, start=1):
        ws.column_dimensions[get_column_letter(i)].width = width


def _infer_col_widths(rows: list[list], min_width: int = 12, max_width: int = 60) -> list[int]:
    if not rows:
        return []
    widths = [min_width] * max(len(row) for row in rows)
    for row in rows:
        for i, value in enumerate(row):
            widths[i] = max(widths[i], min(max_width, len(str(value)) + 2))
    return widths


def write_snapshot_workbook(
    snapshot: ComplianceSnapshot,
    output_path: str | Path,
    directory: BranchDirectory,
    targets: WeekTargets | None = None,
) -> Path:
    """
    Write the branch table and a Summary sheet. With ``targets`` the summary
    also shows the week, its target and whether the category met it.
    """
    output_path = Path(output_path)
    wb = openpyxl.Workbook()

    ws = wb.active
    ws.title = EXPORT_SHEET_TITLE
    table = [EXPORT_HEADERS]
    for row in build_export_rows(snapshot, directory):
        table.append([row["branch"], format_percentage(row["ira"]), format_percentage(row["cc"])])
    for values in table:
        ws.append(values)
    for column in ("B", "C"):
        for cell in ws[column][1:]:
            cell.alignment = Alignment(horizontal="right")
    _style_sheet(ws, _infer_col_widths(table))

    summary = wb.create_sheet(SUMMARY_SHEET_TITLE)
    checks = check_snapshot(snapshot, targets) if targets is not None else {}
    summary_rows = [["Category", "Counted", "Not Counted", "Percentage"]]
    if checks:
        summary_rows[0] += ["Week", "Target", "Status"]
    for label, category, stats in (
        ("IRA", Category.IRA, snapshot.ira_stats),
        ("Cycle Count", Category.CC, snapshot.cc_stats),
    ):
        row = [label, stats.counted, stats.not_counted, format_percentage(stats.percentage)]
        check = checks.get(category)
        if check is not None:
            row += [check.week, format_percentage(check.target), "Met" if check.met else "Below target"]
        summary_rows.append(row)
    summary_rows += [
        [],
        ["Snapshot", snapshot.name],
        ["Snapshot ID", snapshot.id],
        ["Created", snapshot.date.isoformat()],
    ]
    for values in summary_rows:
        summary.append(values)
    _style_sheet(summary, _infer_col_widths([row for row in summary_rows if row]))

    output_path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(output_path)
    return output_path


def render_email_html(
    snapshot: ComplianceSnapshot,
    directory: BranchDirectory,
    *,
    title: str = DEFAULT_EMAIL_TITLE,
    intro: str = DEFAULT_EMAIL_INTRO,
    footer: str = DEFAULT_EMAIL_FOOTER,
    generated_on: date | None = None,
) -> str:
    generated_on = generated_on or date.today()
    body_rows = []
    for row in build_export_rows(snapshot, directory):
        body_rows.append(
            "      <tr>\n"
            f'        <td style="padding: 8px;">{html.escape(row["branch"])}</td>\n'
            f'        <td style="padding: 8px; text-align: center;">{format_percentage(row["ira"])}%</td>\n'
            f'        <td style="padding: 8px; text-align: center;">{format_percentage(row["cc"])}%</td>\n'
            "      </tr>"
        )
    return "\n".join(
        [
            f"<h2>{html.escape(title)}</h2>",
            f"<p>{html.escape(intro)}</p>",
            '<table border="1" style="border-collapse: collapse; width: 100%; margin: 20px 0;">',
            '  <thead style="background-color: #f8f9fa;">',
            "    <tr>",
            '      <th style="padding: 8px; text-align: left;">Branch</th>',
            '      <th style="padding: 8px; text-align: center;">IRA %</th>',
            '      <th style="padding: 8px; text-align: center;">Cycle Count %</th>',
            "    </tr>",
            "  </thead>",
            "  <tbody>",
            *body_rows,
            "  </tbody>",
            "</table>",
            f"<p>Generated on: {generated_on.isoformat()}</p>",
            f'<p style="color: #666; font-style: italic;">{html.escape(footer)}</p>',
        ]
    ) + "\n"


@dataclass(frozen=True)
class EmailTemplate:
    subject: str = DEFAULT_EMAIL_SUBJECT
    title: str = DEFAULT_EMAIL_TITLE
    intro: str = DEFAULT_EMAIL_INTRO
    footer: str = DEFAULT_EMAIL_FOOTER


def load_email_template(path: str | Path, *, missing_ok: bool = False) -> EmailTemplate:
    """
    Read an e-mail template file.

    Accepts ``{"subject": ..., "template": {"title", "intro", "footer"}}`` or the
    same four keys at the top level. Keys left out keep their defaults. With
    ``missing_ok`` a missing file yields the default template.
    """
    path = Path(path)
    if not path.exists():
        if missing_ok:
            return EmailTemplate()
        raise FileNotFoundError(f"Email template not found: {path}")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Email template is not valid JSON: {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"Email template must hold an object: {path}")
    body = payload.get("template") if isinstance(payload.get("template"), dict) else payload
    defaults = EmailTemplate()
    return EmailTemplate(
        subject=str(payload.get("subject") or defaults.subject),
        title=str(body.get("title") or defaults.title),
        intro=str(body.get("intro") or defaults.intro),
        footer=str(body.get("footer") or defaults.footer),
    )


def _encode_uri_component(text: str) -> str:
    return quote(text, safe="!~*'()")


def build_email_draft_url(
    snapshot: ComplianceSnapshot,
    directory: BranchDirectory,
    template: EmailTemplate,
    *,
    generated_on: date | None = None,
) -> str:
    """Outlook web compose link with the template subject and the rendered HTML body."""
    body = render_email_html(
        snapshot,
        directory,
        title=template.title,
        intro=template.intro,
        footer=template.footer,
        generated_on=generated_on,
    )
    return (
        f"{OUTLOOK_COMPOSE_URL}?subject={_encode_uri_component(template.subject)}"
        f"&body={_encode_uri_component(body)}"
    )
