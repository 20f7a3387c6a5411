# backend/app/routers/subtasks.py
from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth import Principal, get_principal
from ..db import get_db
from ..domain.errors import NotFound
from ..domain.lineage import TransitionRequest
from ..models import Subtask, SubtaskActivity
from ..schemas import ActivityOut, CompletionIn, NoteIn, StatusChangeIn, SubtaskEdit, SubtaskOut, TransitionOut
from ..services.record_store import SqlRecordStore
from ..services.subtask_transitions import (
    TransitionResult,
    add_subtask_note,
    delete_subtask,
    edit_subtask,
    set_subtask_completed,
    transition_subtask,
)

router = APIRouter(prefix="/subtasks", tags=["subtasks"])


def _out(res: TransitionResult) -> TransitionOut:
    return TransitionOut(
        subtask=SubtaskOut.model_validate(res.task),
        from_status=res.pending.from_status,
        to_status=res.pending.to_status,
        activity_kind=res.pending.activity_kind,
        reconciled=res.reconciled,
    )


@router.get("/{subtask_id}", response_model=SubtaskOut)
def get_subtask(subtask_id: int, db: Session = Depends(get_db)):
    row = db.get(Subtask, int(subtask_id))
    if row is None:
        raise NotFound(f"subtask {subtask_id} not found")
    return row


@router.patch("/{subtask_id}", response_model=SubtaskOut)
def edit(
    subtask_id: int,
    payload: SubtaskEdit,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return edit_subtask(SqlRecordStore(db), task_id=subtask_id, changes=payload.model_dump(exclude_unset=True), actor_id=p.user_id)


@router.post("/{subtask_id}/status", response_model=TransitionOut)
def change_status(
    subtask_id: int,
    payload: StatusChangeIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    req = TransitionRequest(
        target=payload.status,
        note=payload.note,
        assignee_id=payload.assignee_id,
        quantity=payload.inventory_quantity,
    )
    return _out(transition_subtask(SqlRecordStore(db), task_id=subtask_id, request=req, actor_id=p.user_id))


@router.post("/{subtask_id}/completion", response_model=TransitionOut)
def set_completion(
    subtask_id: int,
    payload: CompletionIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return _out(set_subtask_completed(SqlRecordStore(db), task_id=subtask_id, completed=payload.completed, actor_id=p.user_id))


@router.post("/{subtask_id}/notes", response_model=ActivityOut)
def add_note(
    subtask_id: int,
    payload: NoteIn,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    return add_subtask_note(SqlRecordStore(db), task_id=subtask_id, note=payload.note, actor_id=p.user_id)


@router.delete("/{subtask_id}", response_model=dict)
def remove(
    subtask_id: int,
    db: Session = Depends(get_db),
    p: Principal = Depends(get_principal),
):
    inspection_id = delete_subtask(SqlRecordStore(db), task_id=subtask_id, actor_id=p.user_id)
    return {"ok": True, "id": subtask_id, "inspection_id": inspection_id}


@router.get("/{subtask_id}/activity", response_model=list[ActivityOut])
def activity(subtask_id: int, db: Session = Depends(get_db)):
    if db.get(Subtask, int(subtask_id)) is None:
        raise NotFound(f"subtask {subtask_id} not found")
    stmt = select(SubtaskActivity).where(SubtaskActivity.subtask_id == int(subtask_id)).order_by(SubtaskActivity.id)
    return list(db.scalars(stmt).all())
