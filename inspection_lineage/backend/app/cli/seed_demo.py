# backend/app/cli/seed_demo.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.db import SessionLocal
from app.domain.lineage import TransitionRequest
from app.models import (
    AppUser,
    InspectionTemplate,
    InventoryType,
    Property,
    TemplateItem,
    TemplateRoom,
    Unit,
    VendorType,
)
from app.services.followups import create_follow_up
from app.services.inspections import create_inspection
from app.services.record_store import SqlRecordStore
from app.services.subtask_transitions import transition_subtask
from app.services.template_start import start_inspection_from_template


@dataclass(frozen=True)
class SeedResult:
    user_id: int
    user_email: str
    property_id: int
    root_inspection_id: int
    follow_up_inspection_id: Optional[int]


def _get_or_create_user(db: Session, email: str, display_name: str) -> AppUser:
    row = db.query(AppUser).filter(AppUser.email == email).one_or_none()
    if row:
        return row
    row = AppUser(email=email, display_name=display_name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _get_or_create_named(db: Session, model, name: str):
    row = db.query(model).filter(model.name == name).one_or_none()
    if row:
        return row
    row = model(name=name)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def _create_template(db: Session, *, smoke_detector_id: int, plumber_id: int) -> InspectionTemplate:
    tpl = InspectionTemplate(name="Standard walkthrough", inspection_type="S8 - RFT")
    kitchen = TemplateRoom(name="Kitchen", order_index=0)
    kitchen.items = [
        TemplateItem(description="Fix faucet", order_index=0, vendor_type_id=plumber_id),
        TemplateItem(description="Replace smoke detector", order_index=1, inventory_type_id=smoke_detector_id, inventory_quantity=2),
    ]
    bath = TemplateRoom(name="Bathroom", order_index=1)
    bath.items = [TemplateItem(description="Caulk tub", order_index=0)]
    tpl.rooms = [kitchen, bath]
    db.add(tpl)
    db.commit()
    db.refresh(tpl)
    return tpl


def seed_demo(
    *,
    user_email: str,
    user_name: str,
    address: str,
    with_follow_up: bool = True,
) -> SeedResult:
    """
    Kitchen / "Fix faucet" walkthrough:
      root inspection started from a template, "Fix faucet" failed,
      then (optionally) a follow-up one week later that inherits it as pending.
    """
    db = SessionLocal()
    try:
        user = _get_or_create_user(db, user_email.strip().lower(), user_name)
        smoke = _get_or_create_named(db, InventoryType, "Smoke detector")
        plumber = _get_or_create_named(db, VendorType, "Plumber")

        prop = Property(name=address, address=address)
        prop.units = [Unit(name="Unit A")]
        db.add(prop)
        db.commit()
        db.refresh(prop)

        tpl = _create_template(db, smoke_detector_id=int(smoke.id), plumber_id=int(plumber.id))

        first_day = date.today()
        root = create_inspection(
            db,
            actor_id=int(user.id),
            property_id=int(prop.id),
            inspection_type="S8 - RFT",
            scheduled_date=first_day,
            unit_id=int(prop.units[0].id),
            template_id=int(tpl.id),
        )

        bath_item = tpl.rooms[1].items[0]
        started = start_inspection_from_template(
            db,
            inspection_id=int(root.id),
            template_id=int(tpl.id),
            actor_id=int(user.id),
            passed_item_ids=[int(bath_item.id)],
        )

        faucet = next(t for t in started.tasks if t.description == "Fix faucet")
        transition_subtask(
            SqlRecordStore(db),
            task_id=int(faucet.id),
            request=TransitionRequest(target="fail", note="Drips under load", assignee_id=int(user.id)),
            actor_id=int(user.id),
        )

        follow_up_id: Optional[int] = None
        if with_follow_up:
            res = create_follow_up(
                db,
                parent_id=int(root.id),
                actor_id=int(user.id),
                scheduled_date=first_day + timedelta(days=7),
            )
            follow_up_id = int(res.inspection.id)

        return SeedResult(
            user_id=int(user.id),
            user_email=str(user.email),
            property_id=int(prop.id),
            root_inspection_id=int(root.id),
            follow_up_inspection_id=follow_up_id,
        )
    finally:
        db.close()
