"""
Compliance ingestion: spreadsheet exports in, one ComplianceSnapshot out.

    sheet -> normalize_columns -> find_branch_column
          -> per row: BranchResolver.resolve + classifier.classify
          -> Aggregator -> CategoryResult -> assemble_snapshot
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

from stock_audit.aggregation import Aggregator, ClassifiedRow
from stock_audit.branches import BranchDirectory, BranchResolver, MatchPolicy
from stock_audit.classifiers import Category, classifier_for, detect_category
from stock_audit.columns import find_branch_column, normalize_columns
from stock_audit.config import DEFAULT_MAX_UPLOAD_MB, Settings
from stock_audit.errors import NoCategoryFileError, UploadTooLargeError
from stock_audit.loader import RawSheet, load_sheet
from stock_audit.snapshot import CategoryResult, ComplianceSnapshot, assemble_snapshot

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = int(DEFAULT_MAX_UPLOAD_MB * 1024 * 1024)


@dataclass(frozen=True)
class Upload:
    filename: str
    content: bytes


Source = Union[str, Path, Upload]


def check_upload_size(size_bytes: int, filename: str, limit_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> None:
    if size_bytes > limit_bytes:
        raise UploadTooLargeError(filename, size_bytes, limit_bytes)


def process_sheet(
    sheet: RawSheet,
    category: Category,
    directory: BranchDirectory,
    *,
    source_file: str | None = None,
    policy: MatchPolicy = MatchPolicy.FUZZY_SUBSTRING,
) -> CategoryResult:
    category = Category(category)
    normalized = normalize_columns(sheet)
    branch_column = find_branch_column(normalized.columns)
    if branch_column is None:
        logger.warning(
            "No branch column in %s (%s); only grand totals will be computed",
            source_file or sheet.source_name or "[sheet]",
            category.value,
        )

    resolver = BranchResolver(directory, policy)
    classifier = classifier_for(category)
    aggregator = Aggregator(directory)
    processed_rows = []
    rows_repaired = 0

    for row in normalized.rows:
        result = classifier.classify(row)
        branch = resolver.resolve(result.row.get(branch_column)) if branch_column else None
        aggregator.add(ClassifiedRow(row=result.row, branch=branch, counted=result.counted, repaired=result.repaired))
        processed_rows.append(result.row)
        if result.repaired:
            rows_repaired += 1

    stats = aggregator.finalize()
    logger.info(
        "%s: %d/%d rows counted (%.2f%%), %d repaired, %d without a known branch",
        category.value.upper(),
        stats.counted,
        stats.total,
        stats.percentage,
        rows_repaired,
        aggregator.unresolved,
    )
    return CategoryResult(
        category=category,
        stats=stats,
        columns=list(normalized.columns),
        rows=processed_rows,
        source_file=source_file or sheet.source_name,
        branch_column=branch_column,
        header_promoted=normalized.header_promoted,
        rows_repaired=rows_repaired,
        unresolved_rows=aggregator.unresolved,
    )


def _source_name(source: Source) -> str:
    return source.filename if isinstance(source, Upload) else Path(source).name


def _source_size(source: Source) -> int:
    if isinstance(source, Upload):
        return len(source.content)
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return path.stat().st_size


def _load_source(source: Source) -> RawSheet:
    if isinstance(source, Upload):
        return load_sheet(source.content, filename=source.filename)
    return load_sheet(source)


def process_files(
    sources: Iterable[Source],
    directory: BranchDirectory,
    settings: Settings | None = None,
    *,
    snapshot_id: str | None = None,
) -> ComplianceSnapshot:
    """
    Route every file to IRA or CC by its name and build one snapshot.

    Every input is size-checked before any of them is parsed. Files whose
    names mention neither category are skipped. When a category appears more
    than once the last file wins.
    """
    limit_bytes = settings.max_upload_bytes if settings else DEFAULT_MAX_UPLOAD_BYTES
    sources = list(sources)
    for source in sources:
        check_upload_size(_source_size(source), _source_name(source), limit_bytes)

    results: dict[Category, CategoryResult] = {}
    names: list[str] = []
    for source in sources:
        name = _source_name(source)
        names.append(name)
        category = detect_category(name)
        if category is None:
            logger.warning("Skipping %s: file name mentions neither IRA nor CC", name)
            continue
        if category in results:
            logger.warning(
                "More than one %s file uploaded; %s replaces %s",
                category.value.upper(),
                name,
                results[category].source_file,
            )
        logger.info("Processing %s as %s", name, category.label)
        results[category] = process_sheet(_load_source(source), category, directory, source_file=name)

    if not results:
        raise NoCategoryFileError(names)

    return assemble_snapshot(results.get(Category.IRA), results.get(Category.CC), snapshot_id=snapshot_id)
