# backend/app/services/followups.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..domain.audit import audit_write, inspection_snapshot
from ..domain.errors import LineageBroken, NotAuthenticated, UnresolvableReference, ValidationFailed
from ..domain.lineage.task_state import STATUS_PENDING
from ..models import (
    INSPECTION_PENDING,
    INSPECTION_TYPES,
    Inspection,
    InspectionRoom,
    InspectionRun,
    Subtask,
)
from .lineage import resolve_checklist
from .record_store import RecordStore, SqlRecordStore

log = logging.getLogger("inspections.followups")

RunKey = tuple[Optional[int], Optional[int]]  # (template_id, unit_id)


@dataclass
class CloneResult:
    inspection: Inspection
    room_map: dict[int, int] = field(default_factory=dict)
    run_map: dict[int, int] = field(default_factory=dict)
    tasks: list[Subtask] = field(default_factory=list)
    unresolved: list[UnresolvableReference] = field(default_factory=list)


def _copy_rooms(store: RecordStore, *, source_id: int, target_id: int, chain: list[int]) -> dict[int, int]:
    parent_rooms = store.list_rooms(source_id)
    new_rooms = store.insert_rooms(
        [InspectionRoom(inspection_id=target_id, name=r.name, order_index=r.order_index) for r in parent_rooms]
    )
    room_map = {int(old.id): int(new.id) for old, new in zip(parent_rooms, new_rooms)}

    # Copies that still point at an older ancestor's room follow it by name.
    by_name: dict[str, int] = {}
    for r in new_rooms:
        by_name.setdefault(r.name, int(r.id))
    for ancestor_id in chain[1:]:
        for r in store.list_rooms(ancestor_id):
            if int(r.id) not in room_map and r.name in by_name:
                room_map[int(r.id)] = by_name[r.name]
    return room_map


def _copy_runs(
    store: RecordStore,
    *,
    source_id: int,
    target: Inspection,
    chain: list[int],
    actor_id: int,
) -> tuple[dict[int, RunKey], dict[RunKey, int]]:
    parent_runs = store.list_runs(source_id)

    keys: list[RunKey] = []
    if parent_runs:
        for r in parent_runs:
            k = (r.template_id, r.unit_id)
            if k not in keys:
                keys.append(k)
    elif target.template_id is not None or target.unit_id is not None:
        keys.append((target.template_id, target.unit_id))

    new_runs = store.insert_runs(
        [InspectionRun(inspection_id=int(target.id), template_id=k[0], unit_id=k[1], started_by=actor_id) for k in keys]
    )
    run_by_key = {(r.template_id, r.unit_id): int(r.id) for r in new_runs}

    old_run_key: dict[int, RunKey] = {int(r.id): (r.template_id, r.unit_id) for r in parent_runs}
    for ancestor_id in chain[1:]:
        for r in store.list_runs(ancestor_id):
            old_run_key.setdefault(int(r.id), (r.template_id, r.unit_id))
    return old_run_key, run_by_key


def clone_checklist(
    store: RecordStore,
    *,
    source: Inspection,
    target: Inspection,
    actor_id: int,
    policy: Optional[str] = None,
) -> CloneResult:
    """
    Copy the checklist visible from `source` into `target`.

    Writes go rooms -> runs -> subtasks and nothing is committed here; the
    caller commits (or rolls back) the whole clone as one unit.
    """
    resolved = resolve_checklist(store, int(source.id), policy=policy)
    out = CloneResult(inspection=target)

    # 1) rooms
    out.room_map = _copy_rooms(store, source_id=int(source.id), target_id=int(target.id), chain=resolved.chain)

    # 2) runs
    old_run_key, run_by_key = _copy_runs(
        store, source_id=int(source.id), target=target, chain=resolved.chain, actor_id=actor_id
    )
    for old_id, key in old_run_key.items():
        if key in run_by_key:
            out.run_map[old_id] = run_by_key[key]
    single_run = next(iter(run_by_key.values())) if len(run_by_key) == 1 else None

    # 3) re-target every logical task
    copies: list[Subtask] = []
    for item in resolved.items:
        t = item.task

        room_id: Optional[int] = None
        if t.room_id is not None:
            room_id = out.room_map.get(int(t.room_id))
            if room_id is None:
                out.unresolved.append(
                    UnresolvableReference(int(t.id), "room", int(t.room_id), "no matching room on the follow-up")
                )

        run_id: Optional[int] = None
        if t.inspection_run_id is not None:
            run_id = out.run_map.get(int(t.inspection_run_id))
            if run_id is None:
                if single_run is not None:
                    run_id = single_run
                else:
                    reason = "no runs on the follow-up" if not run_by_key else "several candidate runs"
                    out.unresolved.append(UnresolvableReference(int(t.id), "run", int(t.inspection_run_id), reason))

        copies.append(
            Subtask(
                inspection_id=int(target.id),
                original_inspection_id=int(t.original_inspection_id),
                room_id=room_id,
                room_name=t.room_name,
                inspection_run_id=run_id,
                description=t.description,
                status=STATUS_PENDING,
                completed=False,
                inventory_type_id=t.inventory_type_id,
                inventory_quantity=int(t.inventory_quantity or 0),
                vendor_type_id=t.vendor_type_id,
                assigned_users_json=t.assigned_users_json,
                attachment_url=t.attachment_url,
                created_by=t.created_by,
            )
        )

    # 4) insert
    out.tasks = store.insert_tasks(copies)

    for ref in out.unresolved:
        log.warning(
            "dropped %s reference %s of subtask %s: %s",
            ref.kind,
            ref.old_id,
            ref.subtask_id,
            ref.reason,
            extra={"inspection_id": int(target.id), "task_id": ref.subtask_id},
        )
    return out


def create_follow_up(
    db: Session,
    *,
    parent_id: int,
    actor_id: Optional[int],
    scheduled_date: date,
    scheduled_time: str = "12:00",
    inspection_type: Optional[str] = None,
    duration_minutes: Optional[int] = None,
    notes: Optional[str] = None,
    policy: Optional[str] = None,
) -> CloneResult:
    """
    Schedule a follow-up of `parent_id` that inherits its whole lineage's checklist.

    All-or-nothing: if any phase fails the transaction is rolled back and the
    error propagates. Not idempotent; calling twice creates two follow-ups.
    """
    if actor_id is None:
        raise NotAuthenticated()

    store = SqlRecordStore(db)
    try:
        parent = store.get_inspection(parent_id)
        if parent is None:
            raise LineageBroken(int(parent_id))
        if parent.archived:
            raise ValidationFailed(f"inspection {parent_id} is archived and cannot be followed up")
        if scheduled_date < parent.scheduled_date:
            raise ValidationFailed(
                "follow-up inspection date cannot be before the initial inspection date "
                f"({parent.scheduled_date.isoformat()})",
                missing=["scheduled_date"],
            )

        eff_type = (inspection_type or parent.inspection_type or "").strip()
        if eff_type not in INSPECTION_TYPES:
            raise ValidationFailed(f"unknown inspection type {eff_type!r}", missing=["inspection_type"])

        child = store.insert_inspection(
            Inspection(
                inspection_type=eff_type,
                scheduled_date=scheduled_date,
                scheduled_time=scheduled_time,
                duration_minutes=duration_minutes,
                property_id=parent.property_id,
                unit_id=parent.unit_id,
                parent_inspection_id=int(parent.id),
                template_id=parent.template_id,
                status=INSPECTION_PENDING,
                archived=False,
                notes=notes,
                created_by=int(actor_id),
                created_at=datetime.utcnow(),
            )
        )

        result = clone_checklist(store, source=parent, target=child, actor_id=int(actor_id), policy=policy)

        audit_write(
            db,
            actor_user_id=actor_id,
            action="inspection.follow_up",
            entity_type="Inspection",
            entity_id=str(child.id),
            before=None,
            after={
                **inspection_snapshot(child),
                "subtasks_copied": len(result.tasks),
                "unresolved": [r.as_dict() for r in result.unresolved],
            },
        )
        store.signal_tasks_changed(int(child.id), actor_user_id=actor_id, reason="follow_up_created")
        store.commit()
    except Exception:
        store.rollback()
        raise

    log.info(
        "created follow-up with %d subtasks",
        len(result.tasks),
        extra={"inspection_id": int(result.inspection.id), "parent_inspection_id": int(parent_id), "user_id": actor_id},
    )
    return result
