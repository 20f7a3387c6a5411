# backend/app/services/record_store.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.errors import NotFound, StoreReadFailed, StoreWriteFailed
from ..domain.events import SUBTASKS_CHANGED, emit_workflow_event
from ..models import Inspection, InspectionRoom, InspectionRun, Subtask, SubtaskActivity

log = logging.getLogger("inspections.store")

# Fields update_task may touch. Identity and provenance columns are not in here.
UPDATABLE_TASK_FIELDS = frozenset(
    {
        "status",
        "status_changed_by",
        "status_changed_at",
        "completed",
        "completed_by",
        "completed_at",
        "inventory_quantity",
        "assigned_users_json",
        "attachment_url",
        "description",
        "vendor_type_id",
        "inventory_type_id",
    }
)


class RecordStore(Protocol):
    """Typed repository over inspections, rooms, runs, subtasks and activity."""

    def get_inspection(self, inspection_id: int) -> Optional[Inspection]: ...

    def insert_inspection(self, inspection: Inspection) -> Inspection: ...

    def list_tasks(self, inspection_id: int, page: int, page_size: int) -> list[Subtask]: ...

    def get_task(self, task_id: int) -> Optional[Subtask]: ...

    def list_rooms(self, inspection_id: int) -> list[InspectionRoom]: ...

    def insert_rooms(self, rooms: Sequence[InspectionRoom]) -> list[InspectionRoom]: ...

    def list_runs(self, inspection_id: int) -> list[InspectionRun]: ...

    def insert_runs(self, runs: Sequence[InspectionRun]) -> list[InspectionRun]: ...

    def insert_tasks(self, tasks: Sequence[Subtask]) -> list[Subtask]: ...

    def update_task(self, task_id: int, fields: dict[str, Any]) -> Subtask: ...

    def delete_task(self, task_id: int) -> None: ...

    def insert_activity(self, activity: SubtaskActivity) -> SubtaskActivity: ...

    def signal_tasks_changed(self, inspection_id: int, *, actor_user_id: Optional[int], reason: str) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class SqlRecordStore:
    """
    RecordStore backed by a SQLAlchemy session.

    - Inserts flush (so ids are assigned) but never commit.
    - Callers bundle a whole logical operation and call commit() once.
    - Driver errors surface as StoreReadFailed / StoreWriteFailed.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _reading(self, what: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            log.exception("store read failed: %s", what)
            raise StoreReadFailed(f"could not read {what}") from e

    @contextmanager
    def _writing(self, what: str) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as e:
            log.exception("store write failed: %s", what)
            raise StoreWriteFailed(f"could not write {what}") from e

    # -----------------------------
    # Reads
    # -----------------------------
    def get_inspection(self, inspection_id: int) -> Optional[Inspection]:
        with self._reading(f"inspection {inspection_id}"):
            return self.db.get(Inspection, int(inspection_id))

    def list_tasks(self, inspection_id: int, page: int, page_size: int) -> list[Subtask]:
        with self._reading(f"subtasks of inspection {inspection_id} (page {page})"):
            stmt = (
                select(Subtask)
                .where(Subtask.inspection_id == int(inspection_id))
                .order_by(Subtask.id)
                .offset(int(page) * int(page_size))
                .limit(int(page_size))
            )
            return list(self.db.scalars(stmt).all())

    def get_task(self, task_id: int) -> Optional[Subtask]:
        with self._reading(f"subtask {task_id}"):
            return self.db.get(Subtask, int(task_id))

    def list_rooms(self, inspection_id: int) -> list[InspectionRoom]:
        with self._reading(f"rooms of inspection {inspection_id}"):
            stmt = (
                select(InspectionRoom)
                .where(InspectionRoom.inspection_id == int(inspection_id))
                .order_by(InspectionRoom.order_index, InspectionRoom.id)
            )
            return list(self.db.scalars(stmt).all())

    def list_runs(self, inspection_id: int) -> list[InspectionRun]:
        with self._reading(f"runs of inspection {inspection_id}"):
            stmt = select(InspectionRun).where(InspectionRun.inspection_id == int(inspection_id)).order_by(InspectionRun.id)
            return list(self.db.scalars(stmt).all())

    # -----------------------------
    # Writes
    # -----------------------------
    def _insert(self, rows: Sequence[Any], what: str) -> list[Any]:
        rows = list(rows)
        if not rows:
            return rows
        with self._writing(what):
            self.db.add_all(rows)
            self.db.flush()
        return rows

    def insert_inspection(self, inspection: Inspection) -> Inspection:
        self._insert([inspection], "inspection")
        return inspection

    def insert_rooms(self, rooms: Sequence[InspectionRoom]) -> list[InspectionRoom]:
        return self._insert(rooms, "rooms")

    def insert_runs(self, runs: Sequence[InspectionRun]) -> list[InspectionRun]:
        return self._insert(runs, "runs")

    def insert_tasks(self, tasks: Sequence[Subtask]) -> list[Subtask]:
        return self._insert(tasks, "subtasks")

    def update_task(self, task_id: int, fields: dict[str, Any]) -> Subtask:
        bad = set(fields) - UPDATABLE_TASK_FIELDS
        if bad:
            raise ValueError(f"update_task cannot change {sorted(bad)}")

        row = self.get_task(task_id)
        if row is None:
            raise NotFound(f"subtask {task_id} not found")

        with self._writing(f"subtask {task_id}"):
            for k, v in fields.items():
                setattr(row, k, v)
            self.db.flush()
        return row

    def delete_task(self, task_id: int) -> None:
        row = self.get_task(task_id)
        if row is None:
            raise NotFound(f"subtask {task_id} not found")
        with self._writing(f"subtask {task_id}"):
            self.db.delete(row)
            self.db.flush()

    def insert_activity(self, activity: SubtaskActivity) -> SubtaskActivity:
        self._insert([activity], f"activity for subtask {activity.subtask_id}")
        return activity

    def signal_tasks_changed(self, inspection_id: int, *, actor_user_id: Optional[int], reason: str) -> None:
        with self._writing(f"change signal for inspection {inspection_id}"):
            emit_workflow_event(
                self.db,
                event_type=SUBTASKS_CHANGED,
                inspection_id=inspection_id,
                actor_user_id=actor_user_id,
                payload={"reason": reason},
            )

    def commit(self) -> None:
        with self._writing("transaction commit"):
            self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
