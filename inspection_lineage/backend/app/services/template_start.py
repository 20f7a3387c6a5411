# backend/app/services/template_start.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from ..domain.audit import audit_write
from ..domain.errors import LineageBroken, NotAuthenticated, ValidationFailed
from ..domain.lineage.task_state import STATUS_PENDING
from ..models import InspectionRoom, InspectionRun, InspectionTemplate, Subtask
from .record_store import SqlRecordStore

log = logging.getLogger("inspections.start")


@dataclass(frozen=True)
class CustomItem:
    description: str
    room_name: Optional[str] = None
    inventory_type_id: Optional[int] = None
    inventory_quantity: int = 0
    vendor_type_id: Optional[int] = None
    note: Optional[str] = None
    passed: bool = False


@dataclass
class StartResult:
    inspection_id: int
    run: InspectionRun
    rooms: list[InspectionRoom] = field(default_factory=list)
    tasks: list[Subtask] = field(default_factory=list)


def with_note(description: str, note: Optional[str]) -> str:
    n = (note or "").strip()
    return f"{description}\n\nNotes: {n}" if n else description


def start_inspection_from_template(
    db: Session,
    *,
    inspection_id: int,
    template_id: int,
    actor_id: Optional[int],
    unit_id: Optional[int] = None,
    passed_item_ids: Iterable[int] = (),
    item_notes: Optional[dict[int, str]] = None,
    custom_items: Iterable[CustomItem] = (),
    assignee_id: Optional[int] = None,
) -> StartResult:
    """
    Walk a template against an inspection.

    Every template item NOT in `passed_item_ids` becomes a pending subtask
    authored by this inspection. Rooms are reused by name when the inspection
    already has them, so a multi-unit inspection can be started once per
    (template, unit) run.
    """
    if actor_id is None:
        raise NotAuthenticated()

    passed = {int(x) for x in passed_item_ids}
    custom = list(custom_items)
    notes = {int(k): v for k, v in (item_notes or {}).items()}
    assigned = f"[{int(assignee_id)}]" if assignee_id is not None else None

    store = SqlRecordStore(db)
    try:
        insp = store.get_inspection(inspection_id)
        if insp is None:
            raise LineageBroken(int(inspection_id))
        if insp.archived:
            raise ValidationFailed(f"inspection {inspection_id} is archived")

        tpl = db.get(InspectionTemplate, int(template_id))
        if tpl is None:
            raise ValidationFailed(f"template {template_id} not found", missing=["template_id"])
        if not tpl.rooms:
            raise ValidationFailed(f"template {tpl.name!r} has no rooms", missing=["rooms"])
        if not any(r.items for r in tpl.rooms):
            raise ValidationFailed(f"template {tpl.name!r} has no items", missing=["items"])

        eff_unit = unit_id if unit_id is not None else insp.unit_id
        key = (int(tpl.id), eff_unit)
        if any((r.template_id, r.unit_id) == key for r in store.list_runs(int(insp.id))):
            raise ValidationFailed(f"template {tpl.id} already started for unit {eff_unit} on inspection {insp.id}")

        # rooms, reused by name
        existing = {r.name: r for r in store.list_rooms(int(insp.id))}
        next_index = max((r.order_index for r in existing.values()), default=-1) + 1
        fresh: list[InspectionRoom] = []
        wanted = [troom.name for troom in tpl.rooms]
        # custom items may name a room the template does not have
        wanted += [ci.room_name.strip() for ci in custom if not ci.passed and ci.room_name and ci.room_name.strip()]
        for name in wanted:
            if name in existing:
                continue
            room = InspectionRoom(inspection_id=int(insp.id), name=name, order_index=next_index)
            next_index += 1
            existing[name] = room
            fresh.append(room)
        store.insert_rooms(fresh)

        run = store.insert_runs(
            [InspectionRun(inspection_id=int(insp.id), template_id=int(tpl.id), unit_id=eff_unit, started_by=int(actor_id))]
        )[0]

        def _subtask(room: Optional[InspectionRoom], description: str, *, inv_type, qty, vendor) -> Subtask:
            return Subtask(
                inspection_id=int(insp.id),
                original_inspection_id=int(insp.id),
                room_id=int(room.id) if room is not None else None,
                room_name=room.name if room is not None else None,
                inspection_run_id=int(run.id),
                description=description,
                status=STATUS_PENDING,
                completed=False,
                inventory_type_id=inv_type,
                inventory_quantity=int(qty or 0),
                vendor_type_id=vendor,
                assigned_users_json=assigned,
                created_by=int(actor_id),
                created_at=datetime.utcnow(),
            )

        rows: list[Subtask] = []
        for troom in tpl.rooms:
            room = existing[troom.name]
            for item in troom.items:
                if int(item.id) in passed:
                    continue
                rows.append(
                    _subtask(
                        room,
                        with_note(item.description, notes.get(int(item.id))),
                        inv_type=item.inventory_type_id,
                        qty=item.inventory_quantity,
                        vendor=item.vendor_type_id,
                    )
                )

        for ci in custom:
            if ci.passed:
                continue
            desc = (ci.description or "").strip()
            if not desc:
                raise ValidationFailed("custom item description is required", missing=["description"])
            rows.append(
                _subtask(
                    existing[ci.room_name.strip()] if ci.room_name and ci.room_name.strip() else None,
                    with_note(desc, ci.note),
                    inv_type=ci.inventory_type_id,
                    qty=ci.inventory_quantity,
                    vendor=ci.vendor_type_id,
                )
            )

        tasks = store.insert_tasks(rows)

        audit_write(
            db,
            actor_user_id=actor_id,
            action="inspection.start",
            entity_type="Inspection",
            entity_id=str(insp.id),
            after={"template_id": int(tpl.id), "unit_id": eff_unit, "run_id": int(run.id), "issues": len(tasks)},
        )
        store.signal_tasks_changed(int(insp.id), actor_user_id=actor_id, reason="started")
        store.commit()
    except Exception:
        store.rollback()
        raise

    log.info(
        "inspection started from template %s: %d issue(s) recorded",
        template_id,
        len(tasks),
        extra={"inspection_id": int(inspection_id), "user_id": actor_id},
    )
    return StartResult(inspection_id=int(inspection_id), run=run, rooms=list(existing.values()), tasks=tasks)
