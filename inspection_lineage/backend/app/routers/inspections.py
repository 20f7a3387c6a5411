# backend/app/routers/inspections.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal
from ..db import get_db
from ..domain.lineage import summarize_checklist
from ..schemas import (
    ChainOut,
    ChecklistOut,
    CompleteInspectionIn,
    FollowUpCreate,
    FollowUpOut,
    HistoryEntryOut,
    HistoryItemOut,
    InspectionCreate,
    InspectionOut,
    ResolvedSubtaskOut,
    StartInspectionIn,
    StartInspectionOut,
    SubtaskCreate,
    SubtaskOut,
    SummaryOut,
)
from ..services.followups import create_follow_up
from ..services.inspections import (
    archive_inspection,
    complete_inspections,
    connected_inspections,
    create_inspection,
    inspection_history,
    inventory_type_names,
    list_inspections,
    must_get_inspection,
    vendor_type_names,
)
from ..services.lineage import resolve_checklist, walk_chain
from ..services.record_store import SqlRecordStore
from ..services.subtask_transitions import add_subtask
from ..services.template_start import CustomItem, start_inspection_from_template

router = APIRouter(prefix="/inspections", tags=["inspections"])


def _dedup_policy(policy: Optional[str] = Query(default=None, pattern="^(leaf_wins|root_wins)$")) -> Optional[str]:
    return policy


@router.post("", response_model=InspectionOut)
def schedule_inspection(
    payload: InspectionCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return create_inspection(db, actor_id=p.user_id, **payload.model_dump())


@router.get("", response_model=list[InspectionOut])
def list_(
    property_id: Optional[int] = Query(default=None),
    include_archived: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    return list_inspections(db, property_id=property_id, include_archived=include_archived)


@router.get("/{inspection_id}", response_model=InspectionOut)
def get_inspection(inspection_id: int, db: Session = Depends(get_db)):
    return must_get_inspection(db, inspection_id)


@router.post("/{inspection_id}/start", response_model=StartInspectionOut)
def start_inspection(
    inspection_id: int,
    payload: StartInspectionIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    res = start_inspection_from_template(
        db,
        inspection_id=inspection_id,
        template_id=payload.template_id,
        actor_id=p.user_id,
        unit_id=payload.unit_id,
        passed_item_ids=payload.passed_item_ids,
        item_notes=payload.item_notes,
        custom_items=[CustomItem(**ci.model_dump()) for ci in payload.custom_items],
        assignee_id=payload.assignee_id,
    )
    return StartInspectionOut(
        inspection_id=res.inspection_id,
        run_id=int(res.run.id),
        rooms=[r.name for r in res.rooms],
        issues=len(res.tasks),
    )


@router.post("/{inspection_id}/follow-ups", response_model=FollowUpOut)
def add_follow_up(
    inspection_id: int,
    payload: FollowUpCreate,
    policy: Optional[str] = Depends(_dedup_policy),
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    res = create_follow_up(db, parent_id=inspection_id, actor_id=p.user_id, policy=policy, **payload.model_dump())
    return FollowUpOut(
        inspection=InspectionOut.model_validate(res.inspection),
        subtasks_copied=len(res.tasks),
        room_map=res.room_map,
        run_map=res.run_map,
        unresolved=[r.as_dict() for r in res.unresolved],
    )


@router.post("/{inspection_id}/subtasks", response_model=SubtaskOut)
def create_subtask(
    inspection_id: int,
    payload: SubtaskCreate,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return add_subtask(SqlRecordStore(db), inspection_id=inspection_id, actor_id=p.user_id, **payload.model_dump())


@router.get("/{inspection_id}/checklist", response_model=ChecklistOut)
def checklist(
    inspection_id: int,
    policy: Optional[str] = Depends(_dedup_policy),
    db: Session = Depends(get_db),
):
    resolved = resolve_checklist(SqlRecordStore(db), inspection_id, policy=policy)
    return ChecklistOut(
        inspection_id=resolved.inspection_id,
        chain=resolved.chain,
        policy=resolved.policy,
        subtasks=[
            ResolvedSubtaskOut.model_validate(r.task).model_copy(update={"inherited": r.inherited})
            for r in resolved.items
        ],
    )


@router.get("/{inspection_id}/summary", response_model=SummaryOut)
def summary(
    inspection_id: int,
    policy: Optional[str] = Depends(_dedup_policy),
    db: Session = Depends(get_db),
):
    resolved = resolve_checklist(SqlRecordStore(db), inspection_id, policy=policy)
    s = summarize_checklist(
        resolved.items,
        inventory_names=inventory_type_names(db),
        vendor_names=vendor_type_names(db),
    )
    return SummaryOut(inspection_id=inspection_id, **s.as_dict())


@router.get("/{inspection_id}/chain", response_model=ChainOut)
def chain(inspection_id: int, db: Session = Depends(get_db)):
    ids = [int(i.id) for i in walk_chain(SqlRecordStore(db), inspection_id)]
    return ChainOut(inspection_id=inspection_id, chain=ids, root_id=ids[-1])


@router.get("/{inspection_id}/connected", response_model=list[InspectionOut])
def connected(inspection_id: int, db: Session = Depends(get_db)):
    return connected_inspections(db, inspection_id)


@router.post("/{inspection_id}/complete", response_model=list[InspectionOut])
def complete(
    inspection_id: int,
    payload: CompleteInspectionIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return complete_inspections(db, inspection_id=inspection_id, actor_id=p.user_id, also_complete=payload.also_complete)


@router.post("/{inspection_id}/archive", response_model=InspectionOut)
def archive(
    inspection_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return archive_inspection(db, inspection_id=inspection_id, actor_id=p.user_id)


@router.get("/{inspection_id}/history", response_model=list[HistoryEntryOut])
def history(
    inspection_id: int,
    problems_only: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    entries = inspection_history(db, inspection_id, problems_only=problems_only)
    return [
        HistoryEntryOut(
            inspection=InspectionOut.model_validate(e.inspection),
            items=[HistoryItemOut.model_validate(i) for i in e.items],
        )
        for e in entries
    ]
