# backend/app/services/subtask_transitions.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from ..domain.errors import NotAuthenticated, NotFound, ValidationFailed
from ..domain.lineage.task_state import (
    ACTIVITY_DELETED,
    ACTIVITY_NOTE_ADDED,
    STATUS_PENDING,
    PendingTransition,
    TransitionRequest,
    plan_completion,
    plan_transition,
)
from ..models import InspectionRoom, Subtask, SubtaskActivity
from .record_store import RecordStore

log = logging.getLogger("inspections.subtasks")


@dataclass(frozen=True)
class TransitionResult:
    pending: PendingTransition
    task: Subtask
    reconciled: bool


def _require_actor(actor_id: Optional[int]) -> int:
    if actor_id is None:
        raise NotAuthenticated()
    return int(actor_id)


def _load(store: RecordStore, task_id: int) -> Subtask:
    task = store.get_task(task_id)
    if task is None:
        raise NotFound(f"subtask {task_id} not found")
    return task


def _apply(store: RecordStore, pending: PendingTransition, *, actor_id: int, now: datetime, reason: str) -> TransitionResult:
    """Write the task row, its activity row and the change signal, then commit once."""
    try:
        row = store.update_task(pending.task_id, pending.fields)
        store.insert_activity(
            SubtaskActivity(
                subtask_id=pending.task_id,
                activity_type=pending.activity_kind,
                notes=pending.activity_note,
                old_value=pending.from_status,
                new_value=pending.to_status,
                created_by=actor_id,
                created_at=now,
            )
        )
        store.signal_tasks_changed(int(row.inspection_id), actor_user_id=actor_id, reason=reason)
        store.commit()
    except Exception:
        store.rollback()
        raise

    ok = pending.matches(row)
    if not ok:
        # another editor won the race; the stored row is authoritative
        log.warning(
            "subtask write did not reconcile with the pending transition",
            extra={"task_id": pending.task_id, "user_id": actor_id},
        )
    return TransitionResult(pending=pending, task=row, reconciled=ok)


def transition_subtask(
    store: RecordStore,
    *,
    task_id: int,
    request: TransitionRequest,
    actor_id: Optional[int],
    now: Optional[datetime] = None,
) -> TransitionResult:
    """
    pass / fail a subtask.

    Validation happens before anything is written, so a ValidationFailed
    leaves the task untouched and the caller can retry with the missing fields.
    """
    actor = _require_actor(actor_id)
    now = now or datetime.utcnow()

    task = _load(store, task_id)
    pending = plan_transition(task, request, actor_id=actor, now=now)
    result = _apply(store, pending, actor_id=actor, now=now, reason="status")

    log.info(
        "subtask %s -> %s",
        pending.from_status,
        pending.to_status,
        extra={"task_id": int(task_id), "inspection_id": int(result.task.inspection_id), "user_id": actor},
    )
    return result


def set_subtask_completed(
    store: RecordStore,
    *,
    task_id: int,
    completed: bool,
    actor_id: Optional[int],
    now: Optional[datetime] = None,
) -> TransitionResult:
    actor = _require_actor(actor_id)
    now = now or datetime.utcnow()

    task = _load(store, task_id)
    pending = plan_completion(task, completed=bool(completed), actor_id=actor, now=now)
    return _apply(store, pending, actor_id=actor, now=now, reason="completion")


def add_subtask_note(
    store: RecordStore,
    *,
    task_id: int,
    note: str,
    actor_id: Optional[int],
    now: Optional[datetime] = None,
) -> SubtaskActivity:
    actor = _require_actor(actor_id)
    text = (note or "").strip()
    if not text:
        raise ValidationFailed("note must not be empty", missing=["note"])

    task = _load(store, task_id)
    try:
        act = store.insert_activity(
            SubtaskActivity(
                subtask_id=int(task.id),
                activity_type=ACTIVITY_NOTE_ADDED,
                notes=text,
                created_by=actor,
                created_at=now or datetime.utcnow(),
            )
        )
        store.signal_tasks_changed(int(task.inspection_id), actor_user_id=actor, reason="note")
        store.commit()
    except Exception:
        store.rollback()
        raise
    return act


def delete_subtask(store: RecordStore, *, task_id: int, actor_id: Optional[int]) -> int:
    """
    Removes one row from this inspection only. Its activity rows, plus a
    closing `deleted` entry, stay behind. Returns the inspection id it belonged to.
    """
    actor = _require_actor(actor_id)
    task = _load(store, task_id)
    inspection_id = int(task.inspection_id)
    try:
        store.insert_activity(
            SubtaskActivity(
                subtask_id=int(task.id),
                activity_type=ACTIVITY_DELETED,
                notes=task.description,
                old_value=task.status,
                created_by=actor,
                created_at=datetime.utcnow(),
            )
        )
        store.delete_task(int(task.id))
        store.signal_tasks_changed(inspection_id, actor_user_id=actor, reason="deleted")
        store.commit()
    except Exception:
        store.rollback()
        raise

    log.info("subtask deleted", extra={"task_id": int(task_id), "inspection_id": inspection_id, "user_id": actor})
    return inspection_id


# Fields a user may edit on an existing subtask. Status and completion go through the state machine.
EDITABLE_FIELDS = frozenset({"description", "assigned_user_ids", "inventory_type_id", "inventory_quantity", "vendor_type_id"})


def _clean_description(value: Any) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationFailed("description must not be empty", missing=["description"])
    return text


def _clean_quantity(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationFailed(f"inventory quantity must be a non-negative integer, got {value!r}", missing=["inventory_quantity"])
    return value


def _assignees_json(ids: Iterable[int]) -> Optional[str]:
    uniq = list(dict.fromkeys(int(x) for x in ids))
    return json.dumps(uniq) if uniq else None


def add_subtask(
    store: RecordStore,
    *,
    inspection_id: int,
    description: str,
    actor_id: Optional[int],
    room_name: Optional[str] = None,
    assigned_user_ids: Iterable[int] = (),
    inventory_type_id: Optional[int] = None,
    inventory_quantity: int = 0,
    vendor_type_id: Optional[int] = None,
    attachment_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Subtask:
    """
    Ad-hoc subtask on an existing inspection. The inspection authors it, so it
    starts a new identity in the chain. A room name the inspection does not
    have yet creates that room.
    """
    actor = _require_actor(actor_id)
    desc = _clean_description(description)
    qty = _clean_quantity(inventory_quantity)

    insp = store.get_inspection(inspection_id)
    if insp is None:
        raise NotFound(f"inspection {inspection_id} not found")
    if insp.archived:
        raise ValidationFailed(f"inspection {inspection_id} is archived")

    name = (room_name or "").strip() or None
    try:
        room = None
        if name is not None:
            rooms = store.list_rooms(int(insp.id))
            room = next((r for r in rooms if r.name == name), None)
            if room is None:
                next_index = max((r.order_index for r in rooms), default=-1) + 1
                room = store.insert_rooms([InspectionRoom(inspection_id=int(insp.id), name=name, order_index=next_index)])[0]

        task = store.insert_tasks(
            [
                Subtask(
                    inspection_id=int(insp.id),
                    original_inspection_id=int(insp.id),
                    room_id=int(room.id) if room is not None else None,
                    room_name=name,
                    description=desc,
                    status=STATUS_PENDING,
                    completed=False,
                    inventory_type_id=inventory_type_id,
                    inventory_quantity=qty,
                    vendor_type_id=vendor_type_id,
                    assigned_users_json=_assignees_json(assigned_user_ids),
                    attachment_url=attachment_url,
                    created_by=actor,
                    created_at=now or datetime.utcnow(),
                )
            ]
        )[0]
        store.signal_tasks_changed(int(insp.id), actor_user_id=actor, reason="added")
        store.commit()
    except Exception:
        store.rollback()
        raise

    log.info("subtask added", extra={"task_id": int(task.id), "inspection_id": int(insp.id), "user_id": actor})
    return task


def edit_subtask(store: RecordStore, *, task_id: int, changes: dict[str, Any], actor_id: Optional[int]) -> Subtask:
    """
    Apply a partial edit. Keys left out of `changes` are untouched; an explicit
    None clears an inventory or vendor type. An empty assignee list unassigns everyone.
    """
    actor = _require_actor(actor_id)
    bad = set(changes) - EDITABLE_FIELDS
    if bad:
        raise ValidationFailed(f"cannot edit {', '.join(sorted(bad))}", missing=sorted(bad))

    fields: dict[str, Any] = {}
    if "description" in changes:
        fields["description"] = _clean_description(changes["description"])
    if "assigned_user_ids" in changes:
        fields["assigned_users_json"] = _assignees_json(changes["assigned_user_ids"] or ())
    if "inventory_quantity" in changes:
        fields["inventory_quantity"] = _clean_quantity(changes["inventory_quantity"])
    for k in ("inventory_type_id", "vendor_type_id"):
        if k in changes:
            fields[k] = changes[k]

    task = _load(store, task_id)
    if not fields:
        return task

    try:
        row = store.update_task(int(task.id), fields)
        store.signal_tasks_changed(int(row.inspection_id), actor_user_id=actor, reason="edited")
        store.commit()
    except Exception:
        store.rollback()
        raise

    log.info(
        "subtask edited: %s",
        ", ".join(sorted(fields)),
        extra={"task_id": int(task_id), "inspection_id": int(row.inspection_id), "user_id": actor},
    )
    return row
