# inspection_lineage/backend/tests/test_pagination_fetcher.py
from __future__ import annotations

from datetime import date

import pytest

from app.db import SessionLocal
from app.domain.errors import StoreReadFailed
from app.models import AppUser, Inspection, Property, Subtask
from app.services.record_store import SqlRecordStore
from app.services.task_fetcher import fetch_all_tasks


class CountingStore(SqlRecordStore):
    def __init__(self, db, *, fail_on_page=None):
        super().__init__(db)
        self.pages: list[int] = []
        self.fail_on_page = fail_on_page

    def list_tasks(self, inspection_id, page, page_size):
        self.pages.append(page)
        if page == self.fail_on_page:
            raise StoreReadFailed("simulated outage")
        return super().list_tasks(inspection_id, page, page_size)


def _inspection_with_tasks(db, n: int) -> int:
    user = AppUser(email="p@t.local", display_name="p")
    prop = Property(name="1 Main", address="1 Main St")
    db.add(user); db.add(prop); db.commit()
    db.refresh(user); db.refresh(prop)

    insp = Inspection(inspection_type="HUD", scheduled_date=date(2026, 1, 5), property_id=prop.id, created_by=user.id)
    db.add(insp); db.commit(); db.refresh(insp)

    db.add_all(
        Subtask(
            inspection_id=insp.id,
            original_inspection_id=insp.id,
            room_name="Kitchen",
            description=f"item {i}",
            created_by=user.id,
        )
        for i in range(n)
    )
    db.commit()
    return int(insp.id)


def test_fetch_pages_past_the_row_cap():
    db = SessionLocal()
    try:
        insp_id = _inspection_with_tasks(db, 2500)
        store = CountingStore(db)

        rows = fetch_all_tasks(store, insp_id, page_size=1000)

        assert len(rows) == 2500
        assert len({r.id for r in rows}) == 2500
        assert store.pages == [0, 1, 2]
    finally:
        db.close()


def test_short_first_page_is_a_single_request():
    db = SessionLocal()
    try:
        insp_id = _inspection_with_tasks(db, 3)
        store = CountingStore(db)
        assert len(fetch_all_tasks(store, insp_id, page_size=1000)) == 3
        assert store.pages == [0]
    finally:
        db.close()


def test_page_failure_aborts_the_whole_fetch():
    db = SessionLocal()
    try:
        insp_id = _inspection_with_tasks(db, 25)
        store = CountingStore(db, fail_on_page=1)
        with pytest.raises(StoreReadFailed):
            fetch_all_tasks(store, insp_id, page_size=10)
    finally:
        db.close()
