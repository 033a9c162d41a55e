"""Exceptions raised by the stock-audit ingestion engine."""

from __future__ import annotations


class StockAuditError(Exception):
    pass


class SheetLoadError(StockAuditError, ValueError):
    """The uploaded file could not be read as a spreadsheet."""


class UploadTooLargeError(StockAuditError):
    def __init__(self, filename: str, size_bytes: int, limit_bytes: int) -> None:
        limit_mb = limit_bytes / (1024 * 1024)
        super().__init__(
            f"File too large: {filename} is {size_bytes} bytes; "
            f"uploads must be smaller than {limit_mb:g} MB"
        )
        self.filename = filename
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes


class NoCategoryFileError(StockAuditError):
    def __init__(self, filenames: list[str] | None = None) -> None:
        super().__init__("No valid IRA or CC files found")
        self.filenames = list(filenames or [])


class BranchDirectoryError(StockAuditError, ValueError):
    """The canonical branch directory configuration is malformed."""


class SnapshotNotFoundError(StockAuditError, KeyError):
    def __init__(self, snapshot_id: str) -> None:
        super().__init__(snapshot_id)
        self.snapshot_id = snapshot_id

    def __str__(self) -> str:
        return f"Snapshot not found: {self.snapshot_id}"
