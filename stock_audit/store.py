"""
File-backed snapshot persistence.

    <root>/index.json        list of {id, name, date, iraPercentage, ccPercentage}
    <root>/<id>.json         full ComplianceSnapshot payload
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from stock_audit.contracts import build_contract, utc_now_iso
from stock_audit.errors import SnapshotNotFoundError
from stock_audit.snapshot import ComplianceSnapshot

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"
_SAFE_ID = re.compile(r"^[A-Za-z0-9_.-]+$")


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


class SnapshotStore:
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    @property
    def index_path(self) -> Path:
        return self.root / INDEX_FILENAME

    def _snapshot_path(self, snapshot_id: str) -> Path:
        if not snapshot_id or not _SAFE_ID.match(snapshot_id) or snapshot_id == Path(INDEX_FILENAME).stem:
            raise SnapshotNotFoundError(snapshot_id)
        return self.root / f"{snapshot_id}.json"

    def _read_index(self) -> list[dict[str, Any]]:
        if not self.index_path.exists():
            return []
        text = self.index_path.read_text(encoding="utf-8").strip()
        if not text:
            return []
        payload = json.loads(text)
        if isinstance(payload, dict):
            payload = payload.get("snapshots")
        return list(payload or [])

    def _write_index(self, entries: list[dict[str, Any]]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        payload = {
            "contract": build_contract("stock_audit.snapshot_index"),
            "updated_at": utc_now_iso(),
            "snapshots": entries,
        }
        self.index_path.write_text(json_dumps(payload), encoding="utf-8")

    def save(self, snapshot: ComplianceSnapshot) -> Path:
        path = self._snapshot_path(snapshot.id)
        self.root.mkdir(parents=True, exist_ok=True)
        path.write_text(json_dumps(snapshot.to_dict()), encoding="utf-8")
        entries = [entry for entry in self._read_index() if entry.get("id") != snapshot.id]
        entries.append(snapshot.index_entry())
        self._write_index(entries)
        logger.info("Saved snapshot %s (%s) to %s", snapshot.id, snapshot.name, path)
        return path

    def list(self) -> list[dict[str, Any]]:
        return self._read_index()

    def get(self, snapshot_id: str) -> ComplianceSnapshot:
        path = self._snapshot_path(snapshot_id)
        if not path.exists():
            raise SnapshotNotFoundError(snapshot_id)
        return ComplianceSnapshot.from_dict(json.loads(path.read_text(encoding="utf-8")))

    def delete(self, snapshot_id: str) -> None:
        path = self._snapshot_path(snapshot_id)
        entries = self._read_index()
        remaining = [entry for entry in entries if entry.get("id") != snapshot_id]
        if not path.exists() and len(remaining) == len(entries):
            raise SnapshotNotFoundError(snapshot_id)
        if path.exists():
            path.unlink()
        self._write_index(remaining)
        logger.info("Deleted snapshot %s", snapshot_id)

    def export_all(self) -> list[ComplianceSnapshot]:
        snapshots = []
        for entry in self._read_index():
            try:
                snapshots.append(self.get(str(entry.get("id"))))
            except SnapshotNotFoundError:
                logger.warning("Index lists snapshot %s but its file is missing", entry.get("id"))
        return snapshots
