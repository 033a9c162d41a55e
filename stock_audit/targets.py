"""
Weekly compliance targets per category.

Stored as JSON under the data directory:

    {"ira": {"week1": {"startDate": "2026-10-01", "endDate": "2026-10-07", "target": 99}, ...},
     "cc":  {"week1": {"startDate": "", "endDate": "", "target": 25}, ...}}

A snapshot is judged against the week whose startDate..endDate window holds
its date. Without a matching window the week of the month is used: days 1-7
are week1, 8-14 week2, 15-21 week3 and the rest of the month week4.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from pathlib import Path
from typing import Any

from stock_audit.classifiers import Category
from stock_audit.contracts import build_contract, utc_now_iso

logger = logging.getLogger(__name__)

WEEKS = ("week1", "week2", "week3", "week4")
DEFAULT_TARGETS = {
    Category.IRA: (99.0, 99.0, 99.0, 99.0),
    Category.CC: (25.0, 50.0, 75.0, 99.0),
}


@dataclass(frozen=True)
class WeekTarget:
    target: float
    start_date: date | None = None
    end_date: date | None = None

    def covers(self, day: date) -> bool:
        if self.start_date is None or self.end_date is None:
            return False
        return self.start_date <= day <= self.end_date

    def to_dict(self) -> dict[str, Any]:
        return {
            "startDate": self.start_date.isoformat() if self.start_date else "",
            "endDate": self.end_date.isoformat() if self.end_date else "",
            "target": self.target,
        }


@dataclass(frozen=True)
class TargetCheck:
    category: Category
    week: str
    target: float
    actual: float

    @property
    def met(self) -> bool:
        return self.actual >= self.target

    def to_dict(self) -> dict[str, Any]:
        return {"week": self.week, "target": self.target, "actual": self.actual, "met": self.met}


def _parse_date(value: Any, where: str) -> date | None:
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise ValueError(f"{where} must be a YYYY-MM-DD date, got {value!r}") from exc


def _parse_target(value: Any, where: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{where} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{where} must be a number, got {value!r}") from exc
    if not 0 <= number <= 100:
        raise ValueError(f"{where} must be between 0 and 100, got {value!r}")
    return number


def week_of_month(day: date) -> str:
    return WEEKS[min((day.day - 1) // 7, len(WEEKS) - 1)]


@dataclass(frozen=True)
class WeekTargets:
    ira: dict[str, WeekTarget] = field(default_factory=dict)
    cc: dict[str, WeekTarget] = field(default_factory=dict)

    @classmethod
    def defaults(cls) -> "WeekTargets":
        return cls(
            ira={week: WeekTarget(target) for week, target in zip(WEEKS, DEFAULT_TARGETS[Category.IRA])},
            cc={week: WeekTarget(target) for week, target in zip(WEEKS, DEFAULT_TARGETS[Category.CC])},
        )

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "WeekTargets":
        """Read the stored layout; weeks or categories left out keep their defaults."""
        defaults = cls.defaults()
        parsed: dict[str, dict[str, WeekTarget]] = {}
        for category in Category:
            section = payload.get(category.value) or {}
            if not isinstance(section, dict):
                raise ValueError(f"'{category.value}' must be an object of week1..week4 entries")
            weeks = dict(defaults.weeks(category))
            for week in WEEKS:
                entry = section.get(week)
                if entry is None:
                    continue
                if not isinstance(entry, dict):
                    raise ValueError(f"{category.value}.{week} must be an object")
                where = f"{category.value}.{week}"
                weeks[week] = WeekTarget(
                    target=_parse_target(entry.get("target", weeks[week].target), f"{where}.target"),
                    start_date=_parse_date(entry.get("startDate"), f"{where}.startDate"),
                    end_date=_parse_date(entry.get("endDate"), f"{where}.endDate"),
                )
            parsed[category.value] = weeks
        return cls(ira=parsed["ira"], cc=parsed["cc"])

    def to_dict(self) -> dict[str, Any]:
        return {
            category.value: {week: target.to_dict() for week, target in self.weeks(category).items()}
            for category in Category
        }

    def weeks(self, category: Category | str) -> dict[str, WeekTarget]:
        return self.ira if Category(category) is Category.IRA else self.cc

    def week_for(self, category: Category | str, day: date) -> str:
        for week, target in self.weeks(category).items():
            if target.covers(day):
                return week
        return week_of_month(day)

    def check(self, category: Category | str, actual: float, day: date) -> TargetCheck:
        category = Category(category)
        week = self.week_for(category, day)
        return TargetCheck(category=category, week=week, target=self.weeks(category)[week].target, actual=actual)

    def with_week(
        self,
        category: Category | str,
        week: str,
        target: float,
        *,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> "WeekTargets":
        category = Category(category)
        if week not in WEEKS:
            raise ValueError(f"Week must be one of {', '.join(WEEKS)}, got {week!r}")
        if start_date and end_date and start_date > end_date:
            raise ValueError(f"{category.value}.{week}: start date {start_date} is after end date {end_date}")
        weeks = dict(self.weeks(category))
        weeks[week] = WeekTarget(
            target=_parse_target(target, f"{category.value}.{week}.target"),
            start_date=start_date,
            end_date=end_date,
        )
        if category is Category.IRA:
            return replace(self, ira=weeks)
        return replace(self, cc=weeks)


def check_snapshot(snapshot, targets: WeekTargets) -> dict[Category, TargetCheck]:
    day = snapshot.date.date()
    return {
        Category.IRA: targets.check(Category.IRA, snapshot.ira_stats.percentage, day),
        Category.CC: targets.check(Category.CC, snapshot.cc_stats.percentage, day),
    }


def load_targets(path: str | Path) -> WeekTargets:
    path = Path(path)
    if not path.exists():
        return WeekTargets.defaults()
    text = path.read_text(encoding="utf-8").strip()
    if not text:
        return WeekTargets.defaults()
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Week targets file is not valid JSON: {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"Week targets file must hold an object: {path}")
    return WeekTargets.from_dict(payload)


def save_targets(targets: WeekTargets, path: str | Path) -> Path:
    path = Path(path)
    payload = {
        "contract": build_contract("stock_audit.week_targets"),
        "updated_at": utc_now_iso(),
        **targets.to_dict(),
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info("Saved week targets to %s", path)
    return path
