from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from stock_audit import __version__ as TOOL_VERSION
from stock_audit.aggregation import CategoryStats
from stock_audit.classifiers import Category
from stock_audit.contracts import build_contract

SNAPSHOT_NAME_FORMAT = "%B-%Y (%d)"


@dataclass
class CategoryResult:
    category: Category
    stats: CategoryStats
    columns: list[str]
    rows: list[dict[str, Any]]
    source_file: str | None = None
    branch_column: str | None = None
    header_promoted: bool = False
    rows_repaired: int = 0
    unresolved_rows: int = 0

    def metadata(self) -> dict[str, Any]:
        return {
            "sourceFile": self.source_file,
            "branchColumn": self.branch_column,
            "headerPromoted": self.header_promoted,
            "rowsProcessed": self.stats.total,
            "rowsRepaired": self.rows_repaired,
            "unresolvedRows": self.unresolved_rows,
        }


@dataclass
class ComplianceSnapshot:
    id: str
    name: str
    date: datetime
    ira_stats: CategoryStats
    cc_stats: CategoryStats
    ira_rows: list[dict[str, Any]] = field(default_factory=list)
    cc_rows: list[dict[str, Any]] = field(default_factory=list)
    ira_columns: list[str] = field(default_factory=list)
    cc_columns: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)

    def index_entry(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "date": self.date.isoformat(),
            "iraPercentage": self.ira_stats.percentage,
            "ccPercentage": self.cc_stats.percentage,
        }

    def to_dict(self) -> dict[str, Any]:
        contract = build_contract("stock_audit.snapshot")
        return {
            "contract": contract,
            "schema_version": contract["version"],
            "tool_version": TOOL_VERSION,
            "id": self.id,
            "name": self.name,
            "date": self.date.isoformat(),
            "iraStats": self.ira_stats.to_dict(),
            "ccStats": self.cc_stats.to_dict(),
            "iraData": {"columns": list(self.ira_columns), "data": self.ira_rows},
            "ccData": {"columns": list(self.cc_columns), "data": self.cc_rows},
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ComplianceSnapshot":
        ira_data = payload.get("iraData") or {}
        cc_data = payload.get("ccData") or {}
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            date=datetime.fromisoformat(payload["date"]),
            ira_stats=CategoryStats.from_dict(payload.get("iraStats")),
            cc_stats=CategoryStats.from_dict(payload.get("ccStats")),
            ira_rows=list(ira_data.get("data") or []),
            cc_rows=list(cc_data.get("data") or []),
            ira_columns=list(ira_data.get("columns") or []),
            cc_columns=list(cc_data.get("columns") or []),
            metadata=dict(payload.get("metadata") or {}),
        )


def generate_snapshot_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"


def snapshot_name(moment: datetime) -> str:
    return moment.strftime(SNAPSHOT_NAME_FORMAT)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def assemble_snapshot(
    ira: CategoryResult | None,
    cc: CategoryResult | None,
    *,
    snapshot_id: str | None = None,
    clock: Callable[[], datetime] = _utc_now,
) -> ComplianceSnapshot:
    """Bundle both categories' results into one snapshot; a missing category gets empty stats."""
    moment = clock()
    metadata: dict[str, Any] = {}
    if ira is not None:
        metadata["ira"] = ira.metadata()
    if cc is not None:
        metadata["cc"] = cc.metadata()
    return ComplianceSnapshot(
        id=snapshot_id or generate_snapshot_id(),
        name=snapshot_name(moment),
        date=moment,
        ira_stats=ira.stats if ira else CategoryStats(),
        cc_stats=cc.stats if cc else CategoryStats(),
        ira_rows=ira.rows if ira else [],
        cc_rows=cc.rows if cc else [],
        ira_columns=ira.columns if ira else [],
        cc_columns=cc.columns if cc else [],
        metadata=metadata,
    )
