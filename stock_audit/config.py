"""
Runtime settings for stock-audit, read from environment variables.

    STOCK_AUDIT_HOME                   data directory (snapshots, customers, week targets, e-mail template)
    STOCK_AUDIT_BRANCHES               JSON file with the canonical branch directory
    STOCK_AUDIT_MAX_UPLOAD_MB          upload size limit, default 50
    STOCK_AUDIT_IMPORT_BATCH_SIZE      customer import batch size, default 25
    STOCK_AUDIT_IMPORT_BUDGET_SECONDS  customer import wall-clock budget, default 25
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

DEFAULT_HOME = "stock-audit-data"
DEFAULT_MAX_UPLOAD_MB = 50.0
DEFAULT_IMPORT_BATCH_SIZE = 25
DEFAULT_IMPORT_BUDGET_SECONDS = 25.0


@dataclass(frozen=True)
class Settings:
    home: Path
    branches_path: Path | None = None
    max_upload_mb: float = DEFAULT_MAX_UPLOAD_MB
    import_batch_size: int = DEFAULT_IMPORT_BATCH_SIZE
    import_budget_seconds: float = DEFAULT_IMPORT_BUDGET_SECONDS

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)

    @property
    def snapshots_dir(self) -> Path:
        return self.home / "snapshots"

    @property
    def customers_path(self) -> Path:
        return self.home / "customers.json"

    @property
    def targets_path(self) -> Path:
        return self.home / "week-targets.json"

    @property
    def email_template_path(self) -> Path:
        return self.home / "email-template.json"


def _number_env(environ: Mapping[str, str], name: str, default: float, cast=float):
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    environ = os.environ if environ is None else environ
    branches = environ.get("STOCK_AUDIT_BRANCHES")
    return Settings(
        home=Path(environ.get("STOCK_AUDIT_HOME") or DEFAULT_HOME),
        branches_path=Path(branches) if branches else None,
        max_upload_mb=_number_env(environ, "STOCK_AUDIT_MAX_UPLOAD_MB", DEFAULT_MAX_UPLOAD_MB),
        import_batch_size=_number_env(environ, "STOCK_AUDIT_IMPORT_BATCH_SIZE", DEFAULT_IMPORT_BATCH_SIZE, int),
        import_budget_seconds=_number_env(
            environ, "STOCK_AUDIT_IMPORT_BUDGET_SECONDS", DEFAULT_IMPORT_BUDGET_SECONDS
        ),
    )
