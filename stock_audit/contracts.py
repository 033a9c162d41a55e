"""Shared versioned contracts for persisted and emitted stock-audit payloads."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

CONTRACT_VERSIONS = {
    "stock_audit.snapshot": "1.0.0",
    "stock_audit.snapshot_index": "1.0.0",
    "stock_audit.customer_import": "1.0.0",
    "stock_audit.week_targets": "1.0.0",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    version = CONTRACT_VERSIONS[name]
    return {"name": name, "version": version}


def build_run_summary(
    *,
    tool: str,
    script: str,
    inputs: list[str] | None = None,
    status: str = "ok",
    output_path: str | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    return {
        "tool": tool,
        "script": script,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_files": list(inputs or []),
        "output_file": output_path,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics or {},
    }
