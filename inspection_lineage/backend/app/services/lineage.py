# backend/app/services/lineage.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from ..config import settings
from ..domain.errors import ChainDepthExceeded, LineageBroken
from ..domain.lineage.dedup import ResolvedTask, dedupe_segments
from ..models import Inspection, Subtask
from .record_store import RecordStore
from .task_fetcher import fetch_all_tasks

log = logging.getLogger("inspections.lineage")


@dataclass(frozen=True)
class ChainSegment:
    inspection_id: int
    tasks: list[Subtask]


@dataclass(frozen=True)
class ResolvedChecklist:
    inspection_id: int
    chain: list[int]  # leaf first, root last
    policy: str
    items: list[ResolvedTask]

    @property
    def tasks(self) -> list[Subtask]:
        return [r.task for r in self.items]

    @property
    def root_id(self) -> int:
        return self.chain[-1]


def walk_chain(store: RecordStore, leaf_id: int, *, max_depth: Optional[int] = None) -> list[Inspection]:
    """
    [leaf, parent, grandparent, ..., root].

    Iterative, bounded by max_depth parent hops, and refuses to revisit an
    inspection. Any unreadable link aborts the walk: a partial chain would
    yield a partial checklist.
    """
    limit = int(max_depth or settings.max_chain_depth)

    chain: list[Inspection] = []
    seen: set[int] = set()
    next_id: Optional[int] = int(leaf_id)

    while next_id is not None:
        if next_id in seen:
            raise ChainDepthExceeded(int(leaf_id), limit, cycle_at=next_id)
        if len(chain) > limit:
            raise ChainDepthExceeded(int(leaf_id), limit)

        insp = store.get_inspection(next_id)
        if insp is None:
            raise LineageBroken(next_id, leaf_id=int(leaf_id))

        chain.append(insp)
        seen.add(next_id)
        next_id = int(insp.parent_inspection_id) if insp.parent_inspection_id is not None else None

    return chain


def collect_segments(
    store: RecordStore,
    leaf_id: int,
    *,
    max_depth: Optional[int] = None,
    page_size: Optional[int] = None,
) -> list[ChainSegment]:
    chain = walk_chain(store, leaf_id, max_depth=max_depth)
    return [
        ChainSegment(inspection_id=int(insp.id), tasks=fetch_all_tasks(store, int(insp.id), page_size=page_size))
        for insp in chain
    ]


def resolve_checklist(
    store: RecordStore,
    inspection_id: int,
    *,
    policy: Optional[str] = None,
    max_depth: Optional[int] = None,
    page_size: Optional[int] = None,
) -> ResolvedChecklist:
    """The merged, deduplicated checklist visible from `inspection_id`."""
    eff_policy = policy or settings.dedup_policy
    segments = collect_segments(store, inspection_id, max_depth=max_depth, page_size=page_size)

    items = dedupe_segments(
        [s.tasks for s in segments],
        viewing_inspection_id=inspection_id,
        policy=eff_policy,
    )

    log.info(
        "resolved checklist: %d logical tasks from %d rows across %d inspection(s)",
        len(items),
        sum(len(s.tasks) for s in segments),
        len(segments),
        extra={"inspection_id": int(inspection_id)},
    )
    return ResolvedChecklist(
        inspection_id=int(inspection_id),
        chain=[s.inspection_id for s in segments],
        policy=eff_policy,
        items=items,
    )
