# backend/app/domain/lineage/aggregation.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from .task_state import STATUS_FAIL, STATUS_PASS


def _row(item: Any) -> Any:
    # accepts ResolvedTask wrappers as well as bare subtask rows
    return getattr(item, "task", item)


def _sorted_desc(counts: dict[Any, int]) -> list[tuple[Any, int]]:
    # sorted() is stable, so equal values keep first-seen order
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)


@dataclass(frozen=True)
class Tally:
    key: Any
    name: Optional[str]
    value: int

    def as_dict(self) -> dict:
        return {"id": self.key, "name": self.name, "value": self.value}


def inventory_totals(tasks: Iterable[Any], *, names: Optional[Mapping[Any, str]] = None) -> list[Tally]:
    """Quantity needed per inventory type, over failed tasks carrying a positive quantity."""
    counts: dict[Any, int] = {}
    for item in tasks:
        t = _row(item)
        if getattr(t, "status", None) != STATUS_FAIL:
            continue
        type_id = getattr(t, "inventory_type_id", None)
        qty = int(getattr(t, "inventory_quantity", 0) or 0)
        if type_id is None or qty <= 0:
            continue
        counts[type_id] = counts.get(type_id, 0) + qty

    names = names or {}
    return [Tally(key=k, name=names.get(k), value=v) for k, v in _sorted_desc(counts)]


def vendor_task_counts(tasks: Iterable[Any], *, names: Optional[Mapping[Any, str]] = None) -> list[Tally]:
    """Number of failed tasks per vendor type."""
    counts: dict[Any, int] = {}
    for item in tasks:
        t = _row(item)
        if getattr(t, "status", None) != STATUS_FAIL:
            continue
        vendor_id = getattr(t, "vendor_type_id", None)
        if vendor_id is None:
            continue
        counts[vendor_id] = counts.get(vendor_id, 0) + 1

    names = names or {}
    return [Tally(key=k, name=names.get(k), value=v) for k, v in _sorted_desc(counts)]


@dataclass(frozen=True)
class ChecklistSummary:
    total: int
    passed: int
    failed: int
    pending: int
    inventory: list[Tally] = field(default_factory=list)
    vendors: list[Tally] = field(default_factory=list)

    @property
    def pass_rate(self) -> float:
        if self.total <= 0:
            return 0.0
        return round(100.0 * self.passed / self.total, 1)

    @property
    def fail_rate(self) -> float:
        if self.total <= 0:
            return 0.0
        return round(100.0 * self.failed / self.total, 1)

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "pending": self.pending,
            "pass_rate": self.pass_rate,
            "fail_rate": self.fail_rate,
            "inventory": [t.as_dict() for t in self.inventory],
            "vendors": [t.as_dict() for t in self.vendors],
        }


def summarize_checklist(
    tasks: Iterable[Any],
    *,
    inventory_names: Optional[Mapping[Any, str]] = None,
    vendor_names: Optional[Mapping[Any, str]] = None,
) -> ChecklistSummary:
    rows = list(tasks)
    passed = failed = 0
    for item in rows:
        t = _row(item)
        status = getattr(t, "status", None)
        # a completed task counts as passed even if nobody adjudicated it
        if status == STATUS_PASS or bool(getattr(t, "completed", False)):
            passed += 1
        elif status == STATUS_FAIL:
            failed += 1

    return ChecklistSummary(
        total=len(rows),
        passed=passed,
        failed=failed,
        pending=len(rows) - passed - failed,
        inventory=inventory_totals(rows, names=inventory_names),
        vendors=vendor_task_counts(rows, names=vendor_names),
    )
