"""
Customer master import.

Rows are validated and de-duplicated up front (first occurrence of a customer
number wins), then written in fixed-size batches. A failing batch is logged and
recorded; the remaining batches still run. The wall-clock budget is checked
between batches, so one slow batch can overrun it.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Protocol

from stock_audit.branches import BranchDirectory, BranchResolver, MatchPolicy, branch_text
from stock_audit.config import DEFAULT_IMPORT_BATCH_SIZE, DEFAULT_IMPORT_BUDGET_SECONDS
from stock_audit.contracts import build_contract
from stock_audit.loader import RawSheet

logger = logging.getLogger(__name__)

FIELD_COLUMNS = {
    "customer_number": "No Cust",
    "name": "Name",
    "street": "Street",
    "city": "City",
    "region": "Region",
    "postal_code": "Postal code",
    "country": "Country",
    "telephone": "Telephone",
}
BRANCH_HEADER_ALIASES = ["Branch", "BRANCH", "Cabang", "KODE CABANG"]
BRANCH_HEADER_PATTERN = re.compile(r"branch|cabang", re.IGNORECASE)


@dataclass
class CustomerRecord:
    customer_number: str
    name: str
    street: str = ""
    city: str = ""
    region: str = ""
    postal_code: str = ""
    country: str = ""
    telephone: str = ""
    branch_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class CustomerWriter(Protocol):
    def upsert_many(self, records: list[CustomerRecord]) -> Any:
        ...


@dataclass
class ParsedCustomers:
    records: list[CustomerRecord]
    total_rows: int = 0
    invalid_rows: int = 0
    duplicate_rows: int = 0
    unresolved_branch_rows: int = 0
    branch_column: str | None = None


@dataclass
class FailedBatch:
    index: int
    size: int
    error: str


@dataclass
class ImportResult:
    total_rows: int = 0
    valid_rows: int = 0
    invalid_rows: int = 0
    duplicate_rows: int = 0
    succeeded_count: int = 0
    failed_batches: list[FailedBatch] = field(default_factory=list)
    timed_out: bool = False
    processed_rows: int = 0
    unresolved_branch_rows: int = 0

    @property
    def partial(self) -> bool:
        return self.timed_out or bool(self.failed_batches)

    def to_dict(self) -> dict[str, Any]:
        return {
            "contract": build_contract("stock_audit.customer_import"),
            "totalRows": self.total_rows,
            "validRows": self.valid_rows,
            "invalidRows": self.invalid_rows,
            "duplicateRows": self.duplicate_rows,
            "succeededCount": self.succeeded_count,
            "failedBatches": [asdict(batch) for batch in self.failed_batches],
            "timedOut": self.timed_out,
            "processedRows": self.processed_rows,
            "unresolvedBranchRows": self.unresolved_branch_rows,
            "partial": self.partial,
        }


def find_customer_branch_column(columns: Iterable[str]) -> str | None:
    columns = list(columns)
    for alias in BRANCH_HEADER_ALIASES:
        if alias in columns:
            return alias
    for column in columns:
        if BRANCH_HEADER_PATTERN.search(str(column)):
            return column
    return None


def _text(value: Any) -> str:
    return branch_text(value)


def parse_customer_rows(sheet: RawSheet, resolver: BranchResolver) -> ParsedCustomers:
    branch_column = find_customer_branch_column(sheet.columns)
    parsed = ParsedCustomers(records=[], total_rows=len(sheet.rows), branch_column=branch_column)
    seen: set[str] = set()

    for row in sheet.rows:
        values = {attr: _text(row.get(column)) for attr, column in FIELD_COLUMNS.items()}
        if not values["customer_number"] or not values["name"]:
            parsed.invalid_rows += 1
            continue
        if values["customer_number"] in seen:
            parsed.duplicate_rows += 1
            continue
        seen.add(values["customer_number"])

        branch = None
        if branch_column is not None:
            raw_branch = row.get(branch_column)
            branch = resolver.resolve(raw_branch)
            if branch is None and _text(raw_branch):
                parsed.unresolved_branch_rows += 1
        parsed.records.append(CustomerRecord(**values, branch_code=branch.code if branch else None))

    if parsed.duplicate_rows:
        logger.info("Dropped %d duplicate customer rows (first occurrence kept)", parsed.duplicate_rows)
    return parsed


def _batches(records: list[CustomerRecord], size: int) -> Iterable[list[CustomerRecord]]:
    for start in range(0, len(records), size):
        yield records[start:start + size]


def import_customers(
    sheet: RawSheet,
    writer: CustomerWriter,
    directory: BranchDirectory,
    *,
    batch_size: int = DEFAULT_IMPORT_BATCH_SIZE,
    time_budget_seconds: float = DEFAULT_IMPORT_BUDGET_SECONDS,
    clock: Callable[[], float] = time.monotonic,
) -> ImportResult:
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    started = clock()
    parsed = parse_customer_rows(sheet, BranchResolver(directory, MatchPolicy.EXACT))
    result = ImportResult(
        total_rows=parsed.total_rows,
        valid_rows=len(parsed.records),
        invalid_rows=parsed.invalid_rows,
        duplicate_rows=parsed.duplicate_rows,
        unresolved_branch_rows=parsed.unresolved_branch_rows,
    )

    for index, batch in enumerate(_batches(parsed.records, batch_size)):
        if index > 0 and clock() - started > time_budget_seconds:
            result.timed_out = True
            logger.warning(
                "Customer import stopped after %.1fs: %d of %d rows processed",
                clock() - started,
                result.processed_rows,
                result.valid_rows,
            )
            break
        try:
            writer.upsert_many(batch)
        except Exception as exc:
            logger.error("Customer batch %d (%d rows) failed: %s", index, len(batch), exc)
            result.failed_batches.append(FailedBatch(index=index, size=len(batch), error=str(exc)))
        else:
            result.succeeded_count += len(batch)
        result.processed_rows += len(batch)

    logger.info(
        "Customer import: %d written, %d failed batches, %d invalid, %d duplicates",
        result.succeeded_count,
        len(result.failed_batches),
        result.invalid_rows,
        result.duplicate_rows,
    )
    return result


class JsonCustomerStore:
    """Customer master kept as one JSON object keyed by customer number."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        text = self.path.read_text(encoding="utf-8").strip()
        return json.loads(text) if text else {}

    def upsert_many(self, records: list[CustomerRecord]) -> int:
        customers = self.load()
        for record in records:
            customers[record.customer_number] = record.to_dict()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(customers, indent=2, ensure_ascii=False), encoding="utf-8")
        return len(records)
