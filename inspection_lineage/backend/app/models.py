# backend/app/models.py
from __future__ import annotations

import json
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base


# Inspection.status
INSPECTION_PENDING = "pending"
INSPECTION_PASSED = "passed"
INSPECTION_FAILED = "failed"
INSPECTION_STATUSES = (INSPECTION_PENDING, INSPECTION_PASSED, INSPECTION_FAILED)

INSPECTION_TYPES = (
    "S8 - RFT",
    "S8 - 1st Annual",
    "S8 - Reinspection",
    "S8 - Abatement Cure",
    "Rental License",
    "HUD",
)


# -----------------------------
# Identity (owned by the auth collaborator; user ids are referenced, not enforced)
# -----------------------------
class AppUser(Base):
    __tablename__ = "app_users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(200), nullable=False, unique=True, index=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(160), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class AuditEvent(Base):
    __tablename__ = "audit_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    action: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(80), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(80), nullable=False)

    before_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    after_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


class WorkflowEvent(Base):
    """Change signals ("subtasks.changed", ...) the host pushes to connected clients."""

    __tablename__ = "workflow_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    inspection_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("inspections.id"), nullable=True, index=True)
    actor_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    event_type: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    payload_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)


# -----------------------------
# Reference data (authored outside the engine)
# -----------------------------
class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    units: Mapped[List["Unit"]] = relationship(back_populates="property", cascade="all, delete-orphan")


class Unit(Base):
    __tablename__ = "units"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)

    property: Mapped["Property"] = relationship(back_populates="units")


class InventoryType(Base):
    __tablename__ = "inventory_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)


class VendorType(Base):
    __tablename__ = "vendor_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)


class InspectionTemplate(Base):
    __tablename__ = "inspection_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    inspection_type: Mapped[Optional[str]] = mapped_column(String(60), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    rooms: Mapped[List["TemplateRoom"]] = relationship(
        back_populates="template", cascade="all, delete-orphan", order_by="TemplateRoom.order_index"
    )


class TemplateRoom(Base):
    __tablename__ = "template_rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    template_id: Mapped[int] = mapped_column(ForeignKey("inspection_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    template: Mapped["InspectionTemplate"] = relationship(back_populates="rooms")
    items: Mapped[List["TemplateItem"]] = relationship(
        back_populates="room", cascade="all, delete-orphan", order_by="TemplateItem.order_index"
    )


class TemplateItem(Base):
    __tablename__ = "template_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("template_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    inventory_type_id: Mapped[Optional[int]] = mapped_column(ForeignKey("inventory_types.id"), nullable=True)
    inventory_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vendor_type_id: Mapped[Optional[int]] = mapped_column(ForeignKey("vendor_types.id"), nullable=True)

    room: Mapped["TemplateRoom"] = relationship(back_populates="items")


# -----------------------------
# Inspections and their per-inspection checklist structure
# -----------------------------
class Inspection(Base):
    __tablename__ = "inspections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    inspection_type: Mapped[str] = mapped_column(String(60), nullable=False)
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    scheduled_time: Mapped[str] = mapped_column(String(5), nullable=False, default="12:00")
    duration_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    property_id: Mapped[int] = mapped_column(ForeignKey("properties.id", ondelete="CASCADE"), nullable=False, index=True)
    unit_id: Mapped[Optional[int]] = mapped_column(ForeignKey("units.id"), nullable=True, index=True)

    # set once when a follow-up is created; never rewritten
    parent_inspection_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("inspections.id"), nullable=True, index=True
    )
    template_id: Mapped[Optional[int]] = mapped_column(ForeignKey("inspection_templates.id"), nullable=True)

    status: Mapped[str] = mapped_column(String(12), nullable=False, default=INSPECTION_PENDING)
    archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    rooms: Mapped[List["InspectionRoom"]] = relationship(
        back_populates="inspection", cascade="all, delete-orphan", order_by="InspectionRoom.order_index"
    )
    runs: Mapped[List["InspectionRun"]] = relationship(back_populates="inspection", cascade="all, delete-orphan")


class InspectionRoom(Base):
    __tablename__ = "inspection_rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    inspection_id: Mapped[int] = mapped_column(ForeignKey("inspections.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    inspection: Mapped["Inspection"] = relationship(back_populates="rooms")


class InspectionRun(Base):
    """One (template, unit) adjudication unit inside a possibly multi-unit inspection."""

    __tablename__ = "inspection_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    inspection_id: Mapped[int] = mapped_column(ForeignKey("inspections.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id: Mapped[Optional[int]] = mapped_column(ForeignKey("inspection_templates.id"), nullable=True)
    unit_id: Mapped[Optional[int]] = mapped_column(ForeignKey("units.id"), nullable=True)

    started_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    inspection: Mapped["Inspection"] = relationship(back_populates="runs")


class Subtask(Base):
    __tablename__ = "subtasks"
    # ids are never reused, so kept activity rows cannot attach to a new subtask
    __table_args__ = (Index("ix_subtasks_inspection_id_id", "inspection_id", "id"), {"sqlite_autoincrement": True})

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # current location
    inspection_id: Mapped[int] = mapped_column(ForeignKey("inspections.id", ondelete="CASCADE"), nullable=False)
    # provenance: inspection the logical item was first authored under
    original_inspection_id: Mapped[int] = mapped_column(ForeignKey("inspections.id"), nullable=False, index=True)

    room_id: Mapped[Optional[int]] = mapped_column(ForeignKey("inspection_rooms.id"), nullable=True)
    room_name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    inspection_run_id: Mapped[Optional[int]] = mapped_column(ForeignKey("inspection_runs.id"), nullable=True)

    description: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(String(12), nullable=False, default="pending")
    status_changed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status_changed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    inventory_type_id: Mapped[Optional[int]] = mapped_column(ForeignKey("inventory_types.id"), nullable=True)
    inventory_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vendor_type_id: Mapped[Optional[int]] = mapped_column(ForeignKey("vendor_types.id"), nullable=True)

    assigned_users_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attachment_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)

    @property
    def assigned_user_ids(self) -> list[int]:
        if not self.assigned_users_json:
            return []
        try:
            raw = json.loads(self.assigned_users_json)
        except ValueError:
            return []
        return [int(x) for x in raw] if isinstance(raw, list) else []

    @assigned_user_ids.setter
    def assigned_user_ids(self, ids: list[int]) -> None:
        # set semantics, insertion order kept for stable output
        uniq = list(dict.fromkeys(int(x) for x in ids))
        self.assigned_users_json = json.dumps(uniq) if uniq else None


class SubtaskActivity(Base):
    """Append-only audit trail of a single subtask. Not a foreign key: rows outlive the subtask."""

    __tablename__ = "subtask_activity"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    subtask_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    activity_type: Mapped[str] = mapped_column(String(40), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    old_value: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)

    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.utcnow)
