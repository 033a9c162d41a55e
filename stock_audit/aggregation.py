from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from stock_audit.branches import BranchDirectory, CanonicalBranch


@dataclass
class ClassifiedRow:
    row: dict[str, Any]
    branch: CanonicalBranch | None
    counted: bool
    repaired: bool = False


@dataclass
class BranchStat:
    branch: CanonicalBranch
    counted: int = 0
    total: int = 0

    @property
    def percentage(self) -> float:
        return percentage(self.counted, self.total)


@dataclass(frozen=True)
class BranchPercentage:
    branch: str
    code: str
    percentage: float

    def to_dict(self) -> dict[str, Any]:
        return {"branch": self.branch, "code": self.code, "percentage": self.percentage}

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "BranchPercentage":
        label = str(payload.get("branch", ""))
        code = payload.get("code") or label.partition(" - ")[0]
        return cls(branch=label, code=str(code), percentage=float(payload.get("percentage") or 0))


@dataclass(frozen=True)
class CategoryStats:
    counted: int = 0
    not_counted: int = 0
    percentage: float = 0.0
    branch_percentages: list[BranchPercentage] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.counted + self.not_counted

    def to_dict(self) -> dict[str, Any]:
        return {
            "counted": self.counted,
            "notCounted": self.not_counted,
            "percentage": self.percentage,
            "branchPercentages": [item.to_dict() for item in self.branch_percentages],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> "CategoryStats":
        if not payload:
            return cls()
        return cls(
            counted=int(payload.get("counted") or 0),
            not_counted=int(payload.get("notCounted") or 0),
            percentage=float(payload.get("percentage") or 0),
            branch_percentages=[
                BranchPercentage.from_dict(item) for item in payload.get("branchPercentages") or []
            ],
        )


def percentage(counted: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return counted / total * 100


class Aggregator:
    """
    Grand and per-branch counters for one category of one ingestion run.

    Rows without a resolved branch still count toward the grand totals, so the
    branch totals can sum to less than the grand total.
    """

    def __init__(self, directory: BranchDirectory) -> None:
        self._stats = {branch.code: BranchStat(branch) for branch in directory}
        self.counted = 0
        self.total = 0
        self.unresolved = 0

    def add(self, classified: ClassifiedRow) -> None:
        self.total += 1
        if classified.counted:
            self.counted += 1
        if classified.branch is None:
            self.unresolved += 1
            return
        stat = self._stats.get(classified.branch.code)
        if stat is None:
            self.unresolved += 1
            return
        stat.total += 1
        if classified.counted:
            stat.counted += 1

    def branch_stats(self) -> list[BranchStat]:
        return list(self._stats.values())

    def finalize(self) -> CategoryStats:
        return CategoryStats(
            counted=self.counted,
            not_counted=self.total - self.counted,
            percentage=percentage(self.counted, self.total),
            branch_percentages=[
                BranchPercentage(branch=stat.branch.full_label, code=stat.branch.code, percentage=stat.percentage)
                for stat in self._stats.values()
                if stat.total > 0
            ],
        )
