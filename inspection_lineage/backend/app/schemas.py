# backend/app/schemas.py
from __future__ import annotations

from datetime import date, datetime
from typing import Optional, List, Any

from pydantic import BaseModel, Field, ConfigDict


# -------------------- Inspections --------------------

class InspectionCreate(BaseModel):
    property_id: int
    inspection_type: str
    scheduled_date: date
    scheduled_time: str = Field("12:00", pattern=r"^\d{2}:\d{2}$")
    unit_id: Optional[int] = None
    template_id: Optional[int] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None


class FollowUpCreate(BaseModel):
    scheduled_date: date
    scheduled_time: str = Field("12:00", pattern=r"^\d{2}:\d{2}$")
    # defaults to the parent's type
    inspection_type: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    notes: Optional[str] = None


class InspectionOut(BaseModel):
    id: int
    inspection_type: str
    scheduled_date: date
    scheduled_time: str
    duration_minutes: Optional[int] = None
    property_id: int
    unit_id: Optional[int] = None
    parent_inspection_id: Optional[int] = None
    template_id: Optional[int] = None
    status: str
    archived: bool
    completed: bool
    completed_by: Optional[int] = None
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_by: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class UnresolvableReferenceOut(BaseModel):
    subtask_id: int
    kind: str
    old_id: int
    reason: str


class FollowUpOut(BaseModel):
    inspection: InspectionOut
    subtasks_copied: int
    room_map: dict[int, int]
    run_map: dict[int, int]
    unresolved: List[UnresolvableReferenceOut] = Field(default_factory=list)


class CustomItemIn(BaseModel):
    description: str = Field(..., min_length=1)
    room_name: Optional[str] = None
    inventory_type_id: Optional[int] = None
    inventory_quantity: int = Field(0, ge=0)
    vendor_type_id: Optional[int] = None
    note: Optional[str] = None
    passed: bool = False


class StartInspectionIn(BaseModel):
    template_id: int
    unit_id: Optional[int] = None
    # template items that were checked off as fine; everything else becomes an issue
    passed_item_ids: List[int] = Field(default_factory=list)
    item_notes: dict[int, str] = Field(default_factory=dict)
    custom_items: List[CustomItemIn] = Field(default_factory=list)
    assignee_id: Optional[int] = None


class StartInspectionOut(BaseModel):
    inspection_id: int
    run_id: int
    rooms: List[str]
    issues: int


class CompleteInspectionIn(BaseModel):
    also_complete: List[int] = Field(default_factory=list)


class ChainOut(BaseModel):
    inspection_id: int
    chain: List[int]  # leaf first
    root_id: int


# -------------------- Subtasks --------------------

class SubtaskOut(BaseModel):
    id: int
    inspection_id: int
    original_inspection_id: int
    room_id: Optional[int] = None
    room_name: Optional[str] = None
    inspection_run_id: Optional[int] = None
    description: str
    status: str
    status_changed_by: Optional[int] = None
    status_changed_at: Optional[datetime] = None
    completed: bool
    completed_by: Optional[int] = None
    completed_at: Optional[datetime] = None
    inventory_type_id: Optional[int] = None
    inventory_quantity: int = 0
    vendor_type_id: Optional[int] = None
    assigned_user_ids: List[int] = Field(default_factory=list)
    attachment_url: Optional[str] = None
    created_by: int
    model_config = ConfigDict(from_attributes=True)


class ResolvedSubtaskOut(SubtaskOut):
    inherited: bool = False


class ChecklistOut(BaseModel):
    inspection_id: int
    chain: List[int]
    policy: str
    subtasks: List[ResolvedSubtaskOut]


class SubtaskCreate(BaseModel):
    description: str = Field(..., min_length=1)
    room_name: Optional[str] = None
    assigned_user_ids: List[int] = Field(default_factory=list)
    inventory_type_id: Optional[int] = None
    inventory_quantity: int = Field(0, ge=0)
    vendor_type_id: Optional[int] = None
    attachment_url: Optional[str] = None


class SubtaskEdit(BaseModel):
    # only the keys the client sends are applied
    description: Optional[str] = Field(default=None, min_length=1)
    assigned_user_ids: Optional[List[int]] = None
    inventory_type_id: Optional[int] = None
    inventory_quantity: Optional[int] = Field(default=None, ge=0)
    vendor_type_id: Optional[int] = None


class StatusChangeIn(BaseModel):
    status: str = Field(..., description="pass | fail")
    note: Optional[str] = None
    assignee_id: Optional[int] = None
    inventory_quantity: Optional[int] = None


class CompletionIn(BaseModel):
    completed: bool


class NoteIn(BaseModel):
    note: str


class TransitionOut(BaseModel):
    subtask: SubtaskOut
    from_status: str
    to_status: str
    activity_kind: str
    reconciled: bool


class ActivityOut(BaseModel):
    id: int
    subtask_id: int
    activity_type: str
    notes: Optional[str] = None
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_by: int
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# -------------------- Reporting --------------------

class TallyOut(BaseModel):
    id: int
    name: Optional[str] = None
    value: int


class SummaryOut(BaseModel):
    inspection_id: int
    total: int
    passed: int
    failed: int
    pending: int
    pass_rate: float
    fail_rate: float
    inventory: List[TallyOut]
    vendors: List[TallyOut]


class HistoryItemOut(BaseModel):
    task_id: int
    description: str
    room_name: Optional[str] = None
    initial_status: str
    initial_completed: bool
    current_status: str
    current_completed: bool
    status_changed: bool
    model_config = ConfigDict(from_attributes=True)


class HistoryEntryOut(BaseModel):
    inspection: InspectionOut
    items: List[HistoryItemOut]


class HealthOut(BaseModel):
    ok: bool
    env: str
    details: dict[str, Any] = Field(default_factory=dict)
