"""
Row classification strategies for the two audit categories.

Each strategy answers one question per row: does this row count as
"completed"? The CC strategy may also return a repaired copy of the row; the
input mapping is never modified.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

IRA_INDICATOR_COLUMN = "%IRALine"
IRA_STATUS_COLUMN = "Ind_IRALine"
IRA_MATCH_STATUS = "Match"

CC_RATIO_COLUMN = "%CountComp"
CC_STATUS_COLUMN = "Count Status"
CC_COUNTED_STATUS = "Counted"


class Category(str, enum.Enum):
    IRA = "ira"
    CC = "cc"

    @property
    def label(self) -> str:
        return "IRA" if self is Category.IRA else "Cycle Count"


@dataclass(frozen=True)
class Classification:
    counted: bool
    row: dict[str, Any]
    repaired: bool = False


def _is_truthy_indicator(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value in ("1", "true")
    return False


def _is_exact_one(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value == 1


def _as_number(value: Any) -> float | None:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return None
    return None


class IraClassifier:
    category = Category.IRA

    def classify(self, row: Mapping[str, Any]) -> Classification:
        counted = (
            _is_truthy_indicator(row.get(IRA_INDICATOR_COLUMN))
            or row.get(IRA_STATUS_COLUMN) == IRA_MATCH_STATUS
        )
        return Classification(counted=counted, row=dict(row))


class CcClassifier:
    """
    A "Counted" status wins over the completion ratio: such rows are emitted
    with ``%CountComp`` set to 1 and are counted.
    """

    category = Category.CC

    def classify(self, row: Mapping[str, Any]) -> Classification:
        updated = dict(row)
        repaired = False
        if updated.get(CC_STATUS_COLUMN) == CC_COUNTED_STATUS and not _is_exact_one(updated.get(CC_RATIO_COLUMN)):
            updated[CC_RATIO_COLUMN] = 1
            repaired = True
        counted = _as_number(updated.get(CC_RATIO_COLUMN)) == 1.0
        return Classification(counted=counted, row=updated, repaired=repaired)


def classifier_for(category: Category):
    if Category(category) is Category.IRA:
        return IraClassifier()
    return CcClassifier()


def detect_category(filename: str) -> Category | None:
    name = Path(filename).name.lower()
    if "ira" in name:
        return Category.IRA
    if "cc" in name:
        return Category.CC
    return None
