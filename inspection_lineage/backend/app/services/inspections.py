# backend/app/services/inspections.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.audit import audit_write, inspection_snapshot
from ..domain.errors import LineageBroken, NotAuthenticated, ValidationFailed
from ..domain.events import INSPECTION_CHANGED, emit_workflow_event
from ..domain.lineage.dedup import NO_ROOM
from ..models import (
    INSPECTION_PENDING,
    INSPECTION_TYPES,
    Inspection,
    InventoryType,
    Property,
    Subtask,
    Unit,
    VendorType,
)

log = logging.getLogger("inspections.service")


def _actor(actor_id: Optional[int]) -> int:
    if actor_id is None:
        raise NotAuthenticated()
    return int(actor_id)


def must_get_inspection(db: Session, inspection_id: int) -> Inspection:
    insp = db.get(Inspection, int(inspection_id))
    if insp is None:
        raise LineageBroken(int(inspection_id))
    return insp


def inventory_type_names(db: Session) -> dict[int, str]:
    return {int(r.id): r.name for r in db.scalars(select(InventoryType)).all()}


def vendor_type_names(db: Session) -> dict[int, str]:
    return {int(r.id): r.name for r in db.scalars(select(VendorType)).all()}


# -----------------------------
# Create / list
# -----------------------------
def create_inspection(
    db: Session,
    *,
    actor_id: Optional[int],
    property_id: int,
    inspection_type: str,
    scheduled_date: date,
    scheduled_time: str = "12:00",
    unit_id: Optional[int] = None,
    template_id: Optional[int] = None,
    duration_minutes: Optional[int] = None,
    notes: Optional[str] = None,
) -> Inspection:
    """Schedule a root inspection (no parent)."""
    actor = _actor(actor_id)

    itype = (inspection_type or "").strip()
    if itype not in INSPECTION_TYPES:
        raise ValidationFailed(f"unknown inspection type {inspection_type!r}", missing=["inspection_type"])
    if db.get(Property, int(property_id)) is None:
        raise ValidationFailed(f"property {property_id} not found", missing=["property_id"])
    if unit_id is not None:
        unit = db.get(Unit, int(unit_id))
        if unit is None or int(unit.property_id) != int(property_id):
            raise ValidationFailed(f"unit {unit_id} does not belong to property {property_id}", missing=["unit_id"])

    insp = Inspection(
        inspection_type=itype,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        duration_minutes=duration_minutes,
        property_id=int(property_id),
        unit_id=unit_id,
        template_id=template_id,
        status=INSPECTION_PENDING,
        archived=False,
        notes=notes,
        created_by=actor,
        created_at=datetime.utcnow(),
    )
    db.add(insp)
    db.flush()

    audit_write(
        db,
        actor_user_id=actor,
        action="inspection.create",
        entity_type="Inspection",
        entity_id=str(insp.id),
        after=inspection_snapshot(insp),
    )
    db.commit()
    db.refresh(insp)
    log.info("inspection scheduled", extra={"inspection_id": int(insp.id), "user_id": actor})
    return insp


def list_inspections(db: Session, *, property_id: Optional[int] = None, include_archived: bool = False) -> list[Inspection]:
    stmt = select(Inspection)
    if property_id is not None:
        stmt = stmt.where(Inspection.property_id == int(property_id))
    if not include_archived:
        stmt = stmt.where(Inspection.archived.is_(False))
    stmt = stmt.order_by(Inspection.scheduled_date, Inspection.scheduled_time, Inspection.id)
    return list(db.scalars(stmt).all())


# -----------------------------
# Complete with connected inspections
# -----------------------------
def connected_inspections(db: Session, inspection_id: int) -> list[Inspection]:
    """Children, parent and siblings of an inspection, oldest schedule first."""
    insp = must_get_inspection(db, inspection_id)

    found: dict[int, Inspection] = {}
    for child in db.scalars(select(Inspection).where(Inspection.parent_inspection_id == int(insp.id))).all():
        found[int(child.id)] = child

    if insp.parent_inspection_id is not None:
        parent = db.get(Inspection, int(insp.parent_inspection_id))
        if parent is not None:
            found[int(parent.id)] = parent
        siblings = db.scalars(
            select(Inspection).where(
                Inspection.parent_inspection_id == int(insp.parent_inspection_id),
                Inspection.id != int(insp.id),
            )
        ).all()
        for s in siblings:
            found[int(s.id)] = s

    return sorted(
        (i for i in found.values() if not i.archived),
        key=lambda i: (i.scheduled_date, i.scheduled_time, int(i.id)),
    )


def complete_inspections(
    db: Session,
    *,
    inspection_id: int,
    actor_id: Optional[int],
    also_complete: Iterable[int] = (),
    now: Optional[datetime] = None,
) -> list[Inspection]:
    actor = _actor(actor_id)
    now = now or datetime.utcnow()

    main = must_get_inspection(db, inspection_id)
    connected = {int(i.id): i for i in connected_inspections(db, inspection_id)}

    extra_ids = [int(x) for x in also_complete if int(x) != int(main.id)]
    outside = sorted(set(extra_ids) - set(connected))
    if outside:
        raise ValidationFailed(f"inspections {outside} are not connected to inspection {main.id}", missing=["also_complete"])

    targets = [main] + [connected[i] for i in dict.fromkeys(extra_ids)]
    for insp in targets:
        before = inspection_snapshot(insp)
        insp.completed = True
        insp.completed_by = actor
        insp.completed_at = now
        audit_write(
            db,
            actor_user_id=actor,
            action="inspection.complete",
            entity_type="Inspection",
            entity_id=str(insp.id),
            before=before,
            after=inspection_snapshot(insp),
        )
        emit_workflow_event(
            db, event_type=INSPECTION_CHANGED, inspection_id=int(insp.id), actor_user_id=actor, payload={"completed": True}
        )

    db.commit()
    log.info(
        "completed %d inspection(s)",
        len(targets),
        extra={"inspection_id": int(main.id), "user_id": actor},
    )
    return targets


# -----------------------------
# Archive
# -----------------------------
def archive_inspection(db: Session, *, inspection_id: int, actor_id: Optional[int]) -> Inspection:
    """Soft delete. Descendants keep walking through it."""
    actor = _actor(actor_id)
    insp = must_get_inspection(db, inspection_id)
    if insp.archived:
        return insp

    before = inspection_snapshot(insp)
    insp.archived = True
    audit_write(
        db,
        actor_user_id=actor,
        action="inspection.archive",
        entity_type="Inspection",
        entity_id=str(insp.id),
        before=before,
        after=inspection_snapshot(insp),
    )
    emit_workflow_event(db, event_type=INSPECTION_CHANGED, inspection_id=int(insp.id), actor_user_id=actor, payload={"archived": True})
    db.commit()
    log.info("inspection archived", extra={"inspection_id": int(insp.id), "user_id": actor})
    return insp


# -----------------------------
# History
# -----------------------------
@dataclass(frozen=True)
class HistoryItem:
    task_id: int
    description: str
    room_name: Optional[str]
    initial_status: str
    initial_completed: bool
    current_status: str
    current_completed: bool

    @property
    def status_changed(self) -> bool:
        return self.initial_status != self.current_status or self.initial_completed != self.current_completed


@dataclass
class HistoryEntry:
    inspection: Inspection
    items: list[HistoryItem] = field(default_factory=list)


def _history_key(t: Subtask) -> tuple[str, str]:
    return (t.room_name or NO_ROOM, t.description)


def inspection_history(db: Session, inspection_id: int, *, problems_only: bool = False) -> list[HistoryEntry]:
    """
    Completed inspections of the same property (and unit, when set), newest first.

    Each entry lists the subtasks authored by that inspection with their
    status then and the latest status of the same item (room name +
    description) across the property's inspections.
    """
    insp = must_get_inspection(db, inspection_id)

    stmt = select(Inspection).where(
        Inspection.property_id == int(insp.property_id),
        Inspection.completed.is_(True),
        Inspection.archived.is_(False),
    )
    if insp.unit_id is not None:
        stmt = stmt.where(Inspection.unit_id == int(insp.unit_id))
    completed = list(db.scalars(stmt.order_by(Inspection.scheduled_date.desc(), Inspection.id.desc())).all())
    if not completed:
        return []

    all_ids = select(Inspection.id).where(Inspection.property_id == int(insp.property_id))
    rows = list(db.scalars(select(Subtask).where(Subtask.inspection_id.in_(all_ids)).order_by(Subtask.id)).all())

    latest: dict[tuple[str, str], Subtask] = {}
    for t in rows:
        k = _history_key(t)
        cur = latest.get(k)
        if cur is None or (t.created_at, int(t.id)) >= (cur.created_at, int(cur.id)):
            latest[k] = t

    out: list[HistoryEntry] = []
    for c in completed:
        entry = HistoryEntry(inspection=c)
        for t in rows:
            if int(t.inspection_id) != int(c.id) or int(t.original_inspection_id) != int(c.id):
                continue
            if problems_only and t.status == "pass":
                continue
            cur = latest.get(_history_key(t), t)
            entry.items.append(
                HistoryItem(
                    task_id=int(t.id),
                    description=t.description,
                    room_name=t.room_name,
                    initial_status=t.status,
                    initial_completed=bool(t.completed),
                    current_status=cur.status,
                    current_completed=bool(cur.completed),
                )
            )
        out.append(entry)
    return out
