# backend/app/domain/lineage/task_state.py
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..errors import ValidationFailed

# -----------------------------------------------------------------------------
# Subtask status state machine
# -----------------------------------------------------------------------------
#   pending --pass--> pass        (blocked until an inventory-typed task has a qty)
#   pending --fail--> fail        (needs note + one assignee [+ qty if inventory-typed])
#   pass    --pass--> pending     (re-selecting the current state toggles it off)
#   fail    --fail--> pending     (also drops the attachment)
#   completed=true on a failed task relabels it pass
#   fail on a completed task reopens it
#
# Nothing here touches the store. plan_* returns a PendingTransition the caller
# can show optimistically, then commit and reconcile.
# -----------------------------------------------------------------------------

STATUS_PENDING = "pending"
STATUS_PASS = "pass"
STATUS_FAIL = "fail"
TASK_STATUSES = (STATUS_PENDING, STATUS_PASS, STATUS_FAIL)

ACTIVITY_NOTE_ADDED = "note_added"
ACTIVITY_DELETED = "deleted"
ACTIVITY_STATUS_CHANGE = "status_change"
ACTIVITY_COMPLETED = "completed"
ACTIVITY_REOPENED = "reopened"


class QuantityRequired(ValidationFailed):
    """pending -> pass on an inventory-typed task with no quantity yet: open the capture step."""

    def __init__(self, task_id: int):
        super().__init__(
            f"subtask {task_id} needs a positive inventory quantity before it can be marked pass",
            missing=["inventory_quantity"],
        )
        self.task_id = task_id


@dataclass(frozen=True)
class TransitionRequest:
    target: str  # pass | fail
    note: Optional[str] = None
    assignee_id: Optional[int] = None
    quantity: Optional[int] = None


@dataclass(frozen=True)
class PendingTransition:
    """
    A not-yet-durable change to one subtask.

    `fields` is exactly what will be written; `activity` (kind, note) is the
    audit row that goes with it. `matches()` reconciles against the row the
    store returns after the write.
    """

    task_id: int
    from_status: str
    to_status: str
    fields: dict[str, Any]
    activity_kind: str
    activity_note: Optional[str] = None
    assignee_id: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def preview(self, task: Any) -> dict[str, Any]:
        snap = {k: getattr(task, k, None) for k in self.fields}
        snap.update(self.fields)
        snap["id"] = self.task_id
        return snap

    def matches(self, row: Any) -> bool:
        return all(getattr(row, k, None) == v for k, v in self.fields.items())


def _assigned(task: Any) -> list[int]:
    ids = getattr(task, "assigned_user_ids", None)
    if ids is not None:
        return list(ids)
    raw = getattr(task, "assigned_users_json", None)
    return [int(x) for x in json.loads(raw)] if raw else []


def _positive_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    return n if n > 0 else None


def _current_status(task: Any) -> str:
    s = getattr(task, "status", None) or STATUS_PENDING
    return s if s in TASK_STATUSES else STATUS_PENDING


def plan_transition(task: Any, req: TransitionRequest, *, actor_id: int, now: datetime) -> PendingTransition:
    """Validate `req` against `task` and return the write it implies. Raises ValidationFailed."""
    target = (req.target or "").strip().lower()
    if target not in (STATUS_PASS, STATUS_FAIL):
        raise ValidationFailed(f"status must be '{STATUS_PASS}' or '{STATUS_FAIL}', got {req.target!r}", missing=["status"])

    task_id = int(task.id)
    current = _current_status(task)
    stamp = {"status_changed_by": int(actor_id), "status_changed_at": now}

    # toggle-off
    if current == target:
        fields: dict[str, Any] = {"status": STATUS_PENDING, **stamp}
        if current == STATUS_FAIL:
            fields["attachment_url"] = None
        return PendingTransition(
            task_id=task_id,
            from_status=current,
            to_status=STATUS_PENDING,
            fields=fields,
            activity_kind=ACTIVITY_STATUS_CHANGE,
        )

    has_inventory = getattr(task, "inventory_type_id", None) is not None
    existing_qty = int(getattr(task, "inventory_quantity", 0) or 0)

    qty: Optional[int] = None
    if req.quantity is not None:
        qty = _positive_int(req.quantity)
        if qty is None:
            raise ValidationFailed(f"inventory quantity must be a positive integer, got {req.quantity!r}", missing=["inventory_quantity"])

    if target == STATUS_PASS:
        if has_inventory and existing_qty <= 0 and qty is None:
            raise QuantityRequired(task_id)

        fields = {"status": STATUS_PASS, **stamp}
        if qty is not None:
            fields["inventory_quantity"] = qty
        if current == STATUS_FAIL:
            fields["attachment_url"] = None
        return PendingTransition(
            task_id=task_id,
            from_status=current,
            to_status=STATUS_PASS,
            fields=fields,
            activity_kind=ACTIVITY_STATUS_CHANGE,
        )

    # target == fail
    note = (req.note or "").strip()
    missing: list[str] = []
    if not note:
        missing.append("note")
    if req.assignee_id is None:
        missing.append("assignee_id")
    if has_inventory and existing_qty <= 0 and qty is None:
        missing.append("inventory_quantity")
    if missing:
        raise ValidationFailed(f"cannot mark subtask {task_id} failed: missing {', '.join(missing)}", missing=missing)

    assigned = _assigned(task)
    assignee = int(req.assignee_id)
    if assignee not in assigned:
        assigned.append(assignee)

    fields = {"status": STATUS_FAIL, **stamp, "assigned_users_json": json.dumps(assigned)}
    if qty is not None:
        fields["inventory_quantity"] = qty
    if getattr(task, "completed", False):
        fields.update({"completed": False, "completed_by": None, "completed_at": None})

    return PendingTransition(
        task_id=task_id,
        from_status=current,
        to_status=STATUS_FAIL,
        fields=fields,
        activity_kind=ACTIVITY_NOTE_ADDED,
        activity_note=note,
        assignee_id=assignee,
    )


def plan_completion(task: Any, *, completed: bool, actor_id: int, now: datetime) -> PendingTransition:
    """
    Tick / untick a subtask. A task cannot be done while still flagged failed,
    so completing a failed task relabels it pass.
    """
    current = _current_status(task)

    if completed:
        fields: dict[str, Any] = {"completed": True, "completed_by": int(actor_id), "completed_at": now}
        to_status = current
        if current == STATUS_FAIL:
            to_status = STATUS_PASS
            fields.update({"status": STATUS_PASS, "status_changed_by": int(actor_id), "status_changed_at": now})
        kind = ACTIVITY_COMPLETED
    else:
        fields = {"completed": False, "completed_by": None, "completed_at": None}
        to_status = current
        kind = ACTIVITY_REOPENED

    return PendingTransition(
        task_id=int(task.id),
        from_status=current,
        to_status=to_status,
        fields=fields,
        activity_kind=kind,
    )
