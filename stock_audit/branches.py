"""
Canonical branch directory and branch-identity resolution.

Two matching policies are supported and must be chosen explicitly per call
site:

    fuzzy-substring  compliance (IRA / CC) ingestion. A branch matches when the
                     raw text is contained in its full label ("1940 - PT. APL
                     SURABAYA") or its name part ("PT. APL SURABAYA") is
                     contained in the raw text. First match in directory order
                     wins, so short or ambiguous text can match the wrong
                     branch.
    exact            customer master import. Case-insensitive exact match on
                     the name part, then on the branch code.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator

from stock_audit.errors import BranchDirectoryError

logger = logging.getLogger(__name__)

DEFAULT_DIRECTORY_PATH = Path(__file__).resolve().parent / "data" / "branches.json"
LABEL_SEPARATOR = " - "


@dataclass(frozen=True)
class CanonicalBranch:
    code: str
    full_label: str
    name_part: str

    @classmethod
    def from_code_and_name(cls, code: str, name: str) -> "CanonicalBranch":
        code = code.strip()
        name = name.strip()
        return cls(code=code, full_label=f"{code}{LABEL_SEPARATOR}{name}", name_part=name)

    @classmethod
    def from_full_label(cls, full_label: str) -> "CanonicalBranch":
        code, sep, name = full_label.strip().partition(LABEL_SEPARATOR)
        if not sep or not code.strip() or not name.strip():
            raise BranchDirectoryError(f"Branch label must look like 'CODE - NAME': {full_label!r}")
        return cls.from_code_and_name(code, name)


class BranchDirectory:
    """Ordered, immutable list of canonical branches."""

    def __init__(self, branches: Iterable[CanonicalBranch]) -> None:
        self._branches = tuple(branches)
        codes = [branch.code for branch in self._branches]
        duplicates = sorted({code for code in codes if codes.count(code) > 1})
        if duplicates:
            raise BranchDirectoryError(f"Duplicate branch codes in directory: {duplicates}")
        self._by_code = {branch.code: branch for branch in self._branches}
        self._by_label = {branch.full_label: branch for branch in self._branches}

    def __iter__(self) -> Iterator[CanonicalBranch]:
        return iter(self._branches)

    def __len__(self) -> int:
        return len(self._branches)

    def by_code(self, code: str) -> CanonicalBranch | None:
        return self._by_code.get(str(code).strip())

    def by_label(self, label: str) -> CanonicalBranch | None:
        return self._by_label.get(label)

    @classmethod
    def from_entries(cls, entries: Iterable[dict[str, Any]]) -> "BranchDirectory":
        branches = []
        for index, entry in enumerate(entries, start=1):
            if not isinstance(entry, dict):
                raise BranchDirectoryError(f"Directory entry {index} must be an object")
            label = entry.get("fullLabel") or entry.get("full_label")
            code = entry.get("code")
            name = entry.get("name")
            if code is not None and name:
                branches.append(CanonicalBranch.from_code_and_name(str(code), str(name)))
            elif label:
                branches.append(CanonicalBranch.from_full_label(str(label)))
            else:
                raise BranchDirectoryError(
                    f"Directory entry {index} needs 'code' and 'name', or 'fullLabel'"
                )
        return cls(branches)


def load_directory(path: "str | Path | None" = None) -> BranchDirectory:
    path = Path(path) if path else DEFAULT_DIRECTORY_PATH
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise BranchDirectoryError(f"Branch directory not found: {path}")
    except json.JSONDecodeError as exc:
        raise BranchDirectoryError(f"Branch directory is not valid JSON: {path}: {exc}") from exc
    if isinstance(payload, dict):
        payload = payload.get("branches")
    if not isinstance(payload, list):
        raise BranchDirectoryError("Branch directory root must be a list (or {'branches': [...]})")
    directory = BranchDirectory.from_entries(payload)
    logger.debug("Loaded %d branches from %s", len(directory), path)
    return directory


class MatchPolicy(str, enum.Enum):
    EXACT = "exact"
    FUZZY_SUBSTRING = "fuzzy-substring"


def branch_text(value: Any) -> str:
    """Cell value as trimmed text; integral floats lose their '.0'."""
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, float):
        if value != value:
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


class BranchResolver:
    def __init__(self, directory: BranchDirectory, policy: MatchPolicy) -> None:
        self.directory = directory
        self.policy = MatchPolicy(policy)
        self._by_name = {}
        self._by_code = {}
        for branch in directory:
            self._by_name.setdefault(branch.name_part.lower(), branch)
            self._by_code.setdefault(branch.code.lower(), branch)

    def resolve(self, raw: Any) -> CanonicalBranch | None:
        text = branch_text(raw).lower()
        if not text:
            return None
        if self.policy is MatchPolicy.EXACT:
            return self._by_name.get(text) or self._by_code.get(text)
        for branch in self.directory:
            if text in branch.full_label.lower() or branch.name_part.lower() in text:
                return branch
        return None
