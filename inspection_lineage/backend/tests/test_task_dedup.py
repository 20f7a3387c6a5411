# inspection_lineage/backend/tests/test_task_dedup.py
from __future__ import annotations

from types import SimpleNamespace

import pytest

from app.domain.lineage import LEAF_WINS, NO_ROOM, ROOT_WINS, dedupe_segments, task_identity


def _t(id, original, desc, *, room="Kitchen", status="pending", inspection_id=None):
    return SimpleNamespace(
        id=id,
        inspection_id=inspection_id if inspection_id is not None else original,
        original_inspection_id=original,
        room_name=room,
        description=desc,
        status=status,
    )


def test_identity_triple_uses_room_name_and_exact_text():
    a = _t(1, 10, "Fix faucet")
    b = _t(2, 10, "Fix faucet", inspection_id=11)
    assert task_identity(a) == task_identity(b) == (10, "Kitchen", "Fix faucet")

    # any differing component makes a different logical task
    assert task_identity(_t(3, 11, "Fix faucet")) != task_identity(a)
    assert task_identity(_t(4, 10, "Fix faucet", room="Bath")) != task_identity(a)
    assert task_identity(_t(5, 10, "fix faucet")) != task_identity(a)


def test_identity_without_room_uses_sentinel():
    assert task_identity(_t(1, 10, "Caulk", room=None))[1] == NO_ROOM
    assert task_identity(_t(2, 10, "Caulk", room=""))[1] == NO_ROOM


def test_leaf_wins_keeps_leaf_copy_and_first_appearance_order():
    root = [_t(1, 10, "Fix faucet", status="fail"), _t(2, 10, "Paint wall", status="fail")]
    leaf = [_t(3, 10, "Fix faucet", inspection_id=11), _t(4, 11, "New crack", inspection_id=11)]

    out = dedupe_segments([leaf, root], viewing_inspection_id=11, policy=LEAF_WINS)

    assert [r.task.id for r in out] == [3, 4, 2]
    assert out[0].task.status == "pending"
    assert [r.inherited for r in out] == [True, False, True]
    assert [r.segment for r in out] == [0, 0, 1]


def test_root_wins_takes_root_content_but_keeps_order():
    root = [_t(1, 10, "Fix faucet", status="fail")]
    leaf = [_t(3, 10, "Fix faucet", inspection_id=11), _t(4, 11, "New crack", inspection_id=11)]

    out = dedupe_segments([leaf, root], viewing_inspection_id=11, policy=ROOT_WINS)

    assert [r.task.id for r in out] == [1, 4]
    assert out[0].task.status == "fail"
    assert out[0].segment == 1


def test_dedup_is_idempotent():
    segs = [
        [_t(3, 10, "Fix faucet", inspection_id=12), _t(5, 12, "Door", inspection_id=12)],
        [_t(2, 10, "Fix faucet", inspection_id=11)],
        [_t(1, 10, "Fix faucet"), _t(6, 10, "Window")],
    ]
    once = dedupe_segments(segs, viewing_inspection_id=12)
    twice = dedupe_segments([[r.task for r in once]], viewing_inspection_id=12)

    assert [r.task.id for r in twice] == [r.task.id for r in once] == [3, 5, 6]


def test_unknown_policy_is_rejected():
    with pytest.raises(ValueError):
        dedupe_segments([[]], viewing_inspection_id=1, policy="newest")
