# backend/app/domain/lineage/dedup.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

# Which physical copy supplies the content of a logical task present in more
# than one chain segment. Output ORDER is first appearance either way.
LEAF_WINS = "leaf_wins"  # the copy nearest the inspection being viewed
ROOT_WINS = "root_wins"  # the copy nearest the root (last segment scanned)
DEDUP_POLICIES = (LEAF_WINS, ROOT_WINS)

NO_ROOM = "no-room"

IdentityKey = tuple[int, str, str]


def room_identity(task: Any) -> str:
    """
    Room rows are per-inspection and their ids change on every clone, so the
    chain-stable room identity is the room's name.
    """
    name = getattr(task, "room_name", None)
    if name:
        return str(name)
    return NO_ROOM


def task_identity(task: Any) -> IdentityKey:
    """(original_inspection_id, room identity, exact description)."""
    return (
        int(getattr(task, "original_inspection_id")),
        room_identity(task),
        str(getattr(task, "description", "") or ""),
    )


@dataclass(frozen=True)
class ResolvedTask:
    task: Any
    inherited: bool
    # index of the chain segment this row came from (0 = the viewed inspection)
    segment: int

    @property
    def key(self) -> IdentityKey:
        return task_identity(self.task)


def dedupe_segments(
    segments: Sequence[Iterable[Any]],
    *,
    viewing_inspection_id: int,
    policy: str = LEAF_WINS,
) -> list[ResolvedTask]:
    """
    Collapse chain-ordered segments ([leaf, parent, ..., root]) into one entry
    per logical task.

    - ordering: first appearance (so the leaf's own items lead)
    - content: first copy seen under LEAF_WINS, last copy seen under ROOT_WINS
      (a dict keeps a key's original position when its value is overwritten)
    """
    if policy not in DEDUP_POLICIES:
        raise ValueError(f"unknown dedup policy: {policy!r}")

    picked: dict[IdentityKey, tuple[Any, int]] = {}
    for idx, segment in enumerate(segments):
        for row in segment:
            key = task_identity(row)
            if key in picked and policy == LEAF_WINS:
                continue
            picked[key] = (row, idx)

    viewing = int(viewing_inspection_id)
    return [
        ResolvedTask(task=row, inherited=int(row.original_inspection_id) != viewing, segment=idx)
        for row, idx in picked.values()
    ]

