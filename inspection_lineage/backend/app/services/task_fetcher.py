# backend/app/services/task_fetcher.py
from __future__ import annotations

import logging
from typing import Optional

from ..config import settings
from ..models import Subtask
from .record_store import RecordStore

log = logging.getLogger("inspections.fetch")


def fetch_all_tasks(store: RecordStore, inspection_id: int, *, page_size: Optional[int] = None) -> list[Subtask]:
    """
    Every subtask owned by `inspection_id`, however many there are.

    Reads successive fixed-size windows until a short page comes back. A failed
    page read propagates (StoreReadFailed) and the pages already read are
    dropped with it; callers never see a silently truncated list.
    """
    if inspection_id is None:
        raise ValueError("inspection_id is required")

    size = int(page_size or settings.task_page_size)
    rows: list[Subtask] = []
    page = 0
    while True:
        batch = store.list_tasks(inspection_id, page, size)
        rows.extend(batch)
        if len(batch) < size:
            break
        page += 1

    log.debug(
        "fetched %d subtasks in %d page(s)",
        len(rows),
        page + 1,
        extra={"inspection_id": inspection_id},
    )
    return rows
