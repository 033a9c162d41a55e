"""Header repair and branch-column lookup for branch spreadsheet exports."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import replace
from typing import Any, Sequence

from stock_audit.loader import RawSheet, unique_labels

logger = logging.getLogger(__name__)

BRANCH_COLUMN_VARIANTS = [
    "Branch",
    "!Branch",
    "Plant",
    "Lbl_Branch",
    "branch",
    "plant",
    "lblbranch",
    "branchname",
    "plantname",
    "branch_name",
    "plant_name",
]

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")


def normalize_column_name(name: Any) -> str:
    return _NON_ALNUM_RE.sub("", str(name).lower())


def _is_placeholder_label(label: Any) -> bool:
    if label is None:
        return True
    if isinstance(label, bool):
        return False
    if isinstance(label, (int, float)):
        return True
    text = str(label).strip()
    if not text:
        return True
    try:
        number = float(text)
    except ValueError:
        return False
    return math.isfinite(number)


def needs_normalization(columns: Sequence[Any]) -> bool:
    """True when every header label is numeric-looking or blank."""
    return all(_is_placeholder_label(label) for label in columns)


def normalize_columns(sheet: RawSheet) -> RawSheet:
    """
    Promote the first data row to the header when the parsed header row is
    only placeholders (the export had no header, or the parser missed it).

    Empty cells in the promoted row keep their old placeholder label. Running
    this on an already-normalized sheet returns it unchanged.
    """
    if sheet.header_promoted or len(sheet.rows) < 2:
        return sheet
    if not needs_normalization(sheet.columns):
        return sheet

    first_row = sheet.rows[0]
    promoted: list[str] = []
    for old in sheet.columns:
        value = first_row.get(old)
        if value is None or (isinstance(value, str) and not value.strip()):
            promoted.append(old)
        elif isinstance(value, float) and value.is_integer():
            promoted.append(str(int(value)))
        else:
            promoted.append(str(value).strip())
    promoted = unique_labels(promoted)

    rows = [
        {new: row.get(old) for old, new in zip(sheet.columns, promoted)}
        for row in sheet.rows[1:]
    ]
    logger.info(
        "Promoted first data row to header for %s: %s",
        sheet.source_name or "[sheet]",
        promoted,
    )
    return replace(sheet, columns=promoted, rows=rows, header_promoted=True)


def find_branch_column(columns: Sequence[str]) -> str | None:
    """Return the original label of the first recognised branch column, if any."""
    for column in columns:
        if column in BRANCH_COLUMN_VARIANTS:
            return column

    normalized_variants = {normalize_column_name(variant) for variant in BRANCH_COLUMN_VARIANTS}
    for column in columns:
        if normalize_column_name(column) in normalized_variants:
            return column
    return None
