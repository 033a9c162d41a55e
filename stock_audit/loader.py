"""
Spreadsheet loader for stock-audit.

Supports: .xlsx .xlsm .xls .csv .tsv .txt

Public API:
    sheet = load_sheet("path/to/IRA_export.xlsx")
    sheet = load_sheet(upload_bytes, filename="CC_week42.xlsx")

Only the first worksheet of a workbook is read. The first non-empty row is the
header row; it may be a placeholder row (numbers / blanks) that the column
normalizer later repairs.
"""

from __future__ import annotations

import csv
import io
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence

import chardet
import openpyxl
import pandas as pd

from stock_audit.errors import SheetLoadError

logger = logging.getLogger(__name__)

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS = {".csv", ".tsv", ".txt"}
OPENPYXL_FORMATS = {".xlsx", ".xlsm"}
LEGACY_EXCEL_FORMATS = {".xls"}
ALL_FORMATS = TEXT_FORMATS | OPENPYXL_FORMATS | LEGACY_EXCEL_FORMATS


@dataclass
class RawSheet:
    """Header labels plus one mapping per data row, keyed by header label."""

    columns: list[str]
    rows: list[dict[str, Any]]
    header_promoted: bool = False
    source_name: str | None = field(default=None, compare=False)

    @classmethod
    def from_rows(
        cls,
        header: Sequence[Any],
        data_rows: Iterable[Sequence[Any]],
        *,
        source_name: str | None = None,
    ) -> "RawSheet":
        rows = [list(row) for row in data_rows if not _is_blank_row(row)]
        width = max([len(header)] + [len(row) for row in rows])
        columns = unique_labels(
            [_header_label(header[i] if i < len(header) else None, i) for i in range(width)]
        )
        mapped = [
            {label: (row[i] if i < len(row) else None) for i, label in enumerate(columns)}
            for row in rows
        ]
        return cls(columns=columns, rows=mapped, source_name=source_name)

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        *,
        source_name: str | None = None,
    ) -> "RawSheet":
        records = [dict(record) for record in records]
        columns: list[str] = []
        for record in records:
            for key in record:
                if key not in columns:
                    columns.append(key)
        rows = [{label: record.get(label) for label in columns} for record in records]
        rows = [row for row in rows if not _is_blank_row(row.values())]
        return cls(columns=[str(label) for label in columns], rows=rows, source_name=source_name)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def _is_blank_row(values: Iterable[Any]) -> bool:
    return all(_is_blank(value) for value in values)


def _header_label(value: Any, index: int) -> str:
    if _is_blank(value):
        return str(index + 1)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def unique_labels(labels: list[str]) -> list[str]:
    seen: dict[str, int] = {}
    unique: list[str] = []
    for label in labels:
        if label in seen:
            seen[label] += 1
            candidate = f"{label}.{seen[label]}"
            while candidate in seen:
                seen[label] += 1
                candidate = f"{label}.{seen[label]}"
            seen[candidate] = 0
            unique.append(candidate)
        else:
            seen[label] = 0
            unique.append(label)
    return unique


def _clean_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, str):
        return value.replace("\x00", "")
    if isinstance(value, (datetime, date, bool, int, float)):
        return value
    return str(value)


def _split_header(all_rows: list[list[Any]], source_name: str | None) -> RawSheet:
    rows = [row for row in all_rows if not _is_blank_row(row)]
    if not rows:
        return RawSheet(columns=[], rows=[], source_name=source_name)
    return RawSheet.from_rows(rows[0], rows[1:], source_name=source_name)


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING / DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw[:200_000])
    detected = result.get("encoding")
    if not detected:
        return "utf-8"
    if detected.lower() == "ascii":
        return "utf-8"
    return detected


def _decode_text(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line: UTF-8, then the detected encoding, then
    latin-1. Null bytes are stripped so the CSV parser does not choke.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8-sig", preferred_encoding, "latin-1"):
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines)


def _detect_delimiter(text: str) -> str:
    sample = "\n".join([line for line in text.splitlines() if line.strip()][:25])
    if not sample:
        return ","
    try:
        return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
    except csv.Error:
        return ","


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(raw: bytes, suffix: str, source_name: str | None) -> RawSheet:
    encoding = _detect_encoding(raw)
    text = _decode_text(raw, encoding)
    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    sep = r"\|" if delimiter == "|" else delimiter
    widths = [len(fields) for fields in csv.reader(io.StringIO(text), delimiter=delimiter) if fields]
    if not widths:
        return RawSheet(columns=[], rows=[], source_name=source_name)
    overlong = sum(1 for width in widths[1:] if width > widths[0])
    if overlong:
        logger.warning(
            "%s: %d rows have more fields than the header row; extra columns were added",
            source_name,
            overlong,
        )
    try:
        df = pd.read_csv(
            io.StringIO(text),
            header=None,
            names=list(range(max(widths))),
            dtype=str,
            keep_default_na=False,
            on_bad_lines="warn",
            sep=sep,
            engine="python",
        )
    except pd.errors.EmptyDataError:
        return RawSheet(columns=[], rows=[], source_name=source_name)
    except Exception as exc:
        raise SheetLoadError(f"Could not parse {suffix} file: {exc}") from exc

    logger.debug("Parsed %s as text (encoding=%s, delimiter=%r)", source_name, encoding, delimiter)
    all_rows = [[_clean_cell(value) for value in row] for row in df.itertuples(index=False, name=None)]
    return _split_header(all_rows, source_name)


def _load_openpyxl(raw: bytes, source_name: str | None) -> RawSheet:
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
    except Exception as exc:
        raise SheetLoadError(f"Could not open workbook: {exc}") from exc
    try:
        sheet = workbook.worksheets[0]
        all_rows = [[_clean_cell(value) for value in values] for values in sheet.iter_rows(values_only=True)]
        if len(workbook.sheetnames) > 1:
            logger.info(
                "Workbook %s has %d sheets; using '%s'",
                source_name,
                len(workbook.sheetnames),
                sheet.title,
            )
    finally:
        workbook.close()
    return _split_header(all_rows, source_name)


def _load_legacy_excel(raw: bytes, source_name: str | None) -> RawSheet:
    try:
        import xlrd  # noqa: F401
    except ImportError:
        raise SheetLoadError(".xls files require xlrd. Run: pip install xlrd")
    try:
        df = pd.read_excel(io.BytesIO(raw), sheet_name=0, header=None, dtype=object)
    except Exception as exc:
        raise SheetLoadError(f"Could not load .xls workbook: {exc}") from exc
    all_rows = [[_clean_cell(value) for value in row] for row in df.itertuples(index=False, name=None)]
    return _split_header(all_rows, source_name)


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_sheet(source: "str | Path | bytes", filename: str | None = None) -> RawSheet:
    """
    Load the first worksheet of a supported file into a RawSheet.

    Args:
        source:   Path to the file, or the raw uploaded bytes.
        filename: Required when ``source`` is bytes; used for format detection.

    Raises:
        FileNotFoundError  if a path does not exist.
        SheetLoadError     if the format is unsupported or unreadable.
    """
    if isinstance(source, (bytes, bytearray)):
        if not filename:
            raise SheetLoadError("A filename is required to load uploaded bytes")
        raw = bytes(source)
        name = filename
    else:
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")
        raw = path.read_bytes()
        name = filename or path.name

    suffix = Path(name).suffix.lower()
    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise SheetLoadError(f"Unsupported format '{suffix}'. Supported: {supported}")

    if suffix in OPENPYXL_FORMATS:
        return _load_openpyxl(raw, name)
    if suffix in LEGACY_EXCEL_FORMATS:
        return _load_legacy_excel(raw, name)
    return _load_text(raw, suffix, name)
