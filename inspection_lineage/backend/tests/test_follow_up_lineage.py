# inspection_lineage/backend/tests/test_follow_up_lineage.py
from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.domain.errors import ChainDepthExceeded, LineageBroken, ValidationFailed
from app.domain.lineage import ROOT_WINS, TransitionRequest, summarize_checklist
from app.models import AuditEvent, Inspection, InspectionRoom, InspectionRun, InventoryType, Subtask, SubtaskActivity, WorkflowEvent
from app.services.followups import create_follow_up
from app.services.inspections import archive_inspection, create_inspection, inventory_type_names
from app.services.lineage import resolve_checklist, walk_chain
from app.services.record_store import SqlRecordStore
from app.services.subtask_transitions import add_subtask, edit_subtask, transition_subtask
from app.services.template_start import start_inspection_from_template


def _started_root(db, user, prop, tpl, day0, *, unit_id=None):
    root = create_inspection(
        db,
        actor_id=user.id,
        property_id=prop.id,
        inspection_type="S8 - RFT",
        scheduled_date=day0,
        unit_id=unit_id,
        template_id=tpl.id,
    )
    bath_item = tpl.rooms[1].items[0]
    start_inspection_from_template(
        db, inspection_id=root.id, template_id=tpl.id, actor_id=user.id, passed_item_ids=[bath_item.id]
    )
    return root


def _task(db, inspection_id, description):
    return db.scalar(select(Subtask).where(Subtask.inspection_id == inspection_id, Subtask.description == description))


def test_kitchen_faucet_scenario(db, user, prop, kitchen_template, day0):
    root = _started_root(db, user, prop, kitchen_template, day0)
    faucet = _task(db, root.id, "Fix faucet")

    transition_subtask(
        SqlRecordStore(db),
        task_id=faucet.id,
        request=TransitionRequest("fail", note="Drips", assignee_id=user.id),
        actor_id=user.id,
    )

    f1 = create_follow_up(db, parent_id=root.id, actor_id=user.id, scheduled_date=day0 + timedelta(days=7)).inspection

    resolved = resolve_checklist(SqlRecordStore(db), f1.id)
    faucets = [r for r in resolved.items if r.task.description == "Fix faucet"]
    assert len(faucets) == 1
    item = faucets[0]
    assert item.task.inspection_id == f1.id
    assert item.task.original_inspection_id == root.id
    assert item.task.status == "pending"
    assert item.inherited is True

    # the kitchen room on F1 is F1's own copy
    room = db.get(InspectionRoom, item.task.room_id)
    assert room.inspection_id == f1.id and room.name == "Kitchen"

    # the root still reports its own failure
    root_view = resolve_checklist(SqlRecordStore(db), root.id)
    assert summarize_checklist(root_view.items).failed == 1


def test_clone_preserves_provenance_and_resets_status(db, user, prop, kitchen_template, day0):
    root = _started_root(db, user, prop, kitchen_template, day0)
    res = create_follow_up(db, parent_id=root.id, actor_id=user.id, scheduled_date=day0 + timedelta(days=1))

    parent_rows = db.scalars(select(Subtask).where(Subtask.inspection_id == root.id)).all()
    assert len(res.tasks) == len(parent_rows) == 2
    for t in res.tasks:
        assert t.original_inspection_id == root.id
        assert t.status == "pending"
        assert t.completed is False
        assert t.inspection_run_id is not None
        assert db.get(InspectionRun, t.inspection_run_id).inspection_id == res.inspection.id
    assert res.unresolved == []

    child = res.inspection
    assert child.parent_inspection_id == root.id
    assert child.inspection_type == root.inspection_type
    assert child.template_id == root.template_id
    assert child.property_id == root.property_id


def test_chain_completeness_three_levels(db, user, prop, kitchen_template, day0):
    root = _started_root(db, user, prop, kitchen_template, day0)
    a = create_follow_up(db, parent_id=root.id, actor_id=user.id, scheduled_date=day0 + timedelta(days=7)).inspection

    # an item authored on A itself
    add_subtask(SqlRecordStore(db), inspection_id=a.id, description="Cabinet hinge", room_name="Kitchen", actor_id=user.id)

    b = create_follow_up(db, parent_id=a.id, actor_id=user.id, scheduled_date=day0 + timedelta(days=14)).inspection

    chain = walk_chain(SqlRecordStore(db), b.id)
    assert [int(i.id) for i in chain] == [b.id, a.id, root.id]

    resolved = resolve_checklist(SqlRecordStore(db), b.id)
    descs = sorted(r.task.description for r in resolved.items)
    assert descs == ["Cabinet hinge", "Fix faucet", "Replace smoke detector"]
    assert all(r.task.inspection_id == b.id for r in resolved.items)
    origins = {r.task.description: r.task.original_inspection_id for r in resolved.items}
    assert origins["Cabinet hinge"] == a.id
    assert origins["Fix faucet"] == root.id


def test_root_wins_policy_reads_root_content(db, user, prop, kitchen_template, day0):
    root = _started_root(db, user, prop, kitchen_template, day0)
    faucet = _task(db, root.id, "Fix faucet")
    transition_subtask(
        SqlRecordStore(db),
        task_id=faucet.id,
        request=TransitionRequest("fail", note="Drips", assignee_id=user.id),
        actor_id=user.id,
    )
    f1 = create_follow_up(db, parent_id=root.id, actor_id=user.id, scheduled_date=day0).inspection

    leaf = resolve_checklist(SqlRecordStore(db), f1.id)
    rooted = resolve_checklist(SqlRecordStore(db), f1.id, policy=ROOT_WINS)

    assert [r.key for r in leaf.items] == [r.key for r in rooted.items]
    by_desc = {r.task.description: r.task for r in rooted.items}
    assert by_desc["Fix faucet"].status == "fail"
    assert by_desc["Fix faucet"].inspection_id == root.id


def test_follow_up_date_cannot_precede_parent(db, user, prop, kitchen_template, day0):
    root = _started_root(db, user, prop, kitchen_template, day0)
    with pytest.raises(ValidationFailed) as ei:
        create_follow_up(db, parent_id=root.id, actor_id=user.id, scheduled_date=day0 - timedelta(days=1))
    assert ei.value.missing == ["scheduled_date"]
    assert db.scalar(select(func.count()).select_from(Inspection)) == 1


def test_archived_parent_cannot_be_followed_up(db, user, prop, kitchen_template, day0):
    root = _started_root(db, user, prop, kitchen_template, day0)
    archive_inspection(db, inspection_id=root.id, actor_id=user.id)
    with pytest.raises(ValidationFailed):
        create_follow_up(db, parent_id=root.id, actor_id=user.id, scheduled_date=day0)


def test_missing_parent_is_lineage_broken(db, user, day0):
    with pytest.raises(LineageBroken):
        create_follow_up(db, parent_id=999, actor_id=user.id, scheduled_date=day0)


def test_failed_clone_writes_nothing(db, user, prop, kitchen_template, day0, monkeypatch):
    root = _started_root(db, user, prop, kitchen_template, day0)
    before = db.scalar(select(func.count()).select_from(Subtask))

    def boom(self, tasks):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(SqlRecordStore, "insert_tasks", boom)
    with pytest.raises(RuntimeError):
        create_follow_up(db, parent_id=root.id, actor_id=user.id, scheduled_date=day0)

    assert db.scalar(select(func.count()).select_from(Inspection)) == 1
    assert db.scalar(select(func.count()).select_from(Subtask)) == before
    assert db.scalar(select(func.count()).select_from(InspectionRoom)) == 2


def test_follow_up_records_audit_and_change_signal(db, user, prop, kitchen_template, day0):
    root = _started_root(db, user, prop, kitchen_template, day0)
    f1 = create_follow_up(db, parent_id=root.id, actor_id=user.id, scheduled_date=day0).inspection

    audit = db.scalar(select(AuditEvent).where(AuditEvent.action == "inspection.follow_up"))
    assert audit is not None and audit.entity_id == str(f1.id)

    ev = db.scalar(select(WorkflowEvent).where(WorkflowEvent.inspection_id == f1.id))
    assert ev.event_type == "subtasks.changed"


def test_several_runs_leave_unmatched_run_unset(db, user, prop, kitchen_template, day0):
    unit_a, unit_b = prop.units
    root = _started_root(db, user, prop, kitchen_template, day0, unit_id=unit_a.id)
    start_inspection_from_template(db, inspection_id=root.id, template_id=kitchen_template.id, actor_id=user.id, unit_id=unit_b.id)

    # a stray task pointing at a run that is not one of the parent's
    stray_run = InspectionRun(inspection_id=root.id, template_id=None, unit_id=None)
    db.add(stray_run); db.commit(); db.refresh(stray_run)
    db.add(
        Subtask(
            inspection_id=root.id,
            original_inspection_id=root.id,
            room_name="Attic",
            description="Vent",
            inspection_run_id=stray_run.id + 1000,
            created_by=user.id,
        )
    )
    db.commit()

    res = create_follow_up(db, parent_id=root.id, actor_id=user.id, scheduled_date=day0)

    vent = next(t for t in res.tasks if t.description == "Vent")
    assert vent.inspection_run_id is None
    assert [(u.kind, u.subtask_id) for u in res.unresolved] == [("run", _task(db, root.id, "Vent").id)]


def test_cycle_is_detected(db, user, prop, day0):
    a = Inspection(inspection_type="HUD", scheduled_date=day0, property_id=prop.id, created_by=user.id)
    b = Inspection(inspection_type="HUD", scheduled_date=day0, property_id=prop.id, created_by=user.id)
    db.add(a); db.add(b); db.commit()
    a.parent_inspection_id = b.id
    b.parent_inspection_id = a.id
    db.commit()

    with pytest.raises(ChainDepthExceeded) as ei:
        walk_chain(SqlRecordStore(db), a.id)
    assert ei.value.cycle_at == a.id


def test_depth_cap(db, user, prop, day0):
    prev = None
    for _ in range(6):
        i = Inspection(inspection_type="HUD", scheduled_date=day0, property_id=prop.id, created_by=user.id, parent_inspection_id=prev)
        db.add(i); db.commit(); db.refresh(i)
        prev = i.id

    assert len(walk_chain(SqlRecordStore(db), prev, max_depth=5)) == 6
    with pytest.raises(ChainDepthExceeded):
        walk_chain(SqlRecordStore(db), prev, max_depth=4)


def test_kitchen_faucet_refailed_on_follow_up(db, user, prop, kitchen_template, day0):
    kit = InventoryType(name="Faucet Kit")
    db.add(kit); db.commit(); db.refresh(kit)

    root = _started_root(db, user, prop, kitchen_template, day0)
    faucet = _task(db, root.id, "Fix faucet")
    store = SqlRecordStore(db)
    edit_subtask(store, task_id=faucet.id, changes={"inventory_type_id": kit.id, "inventory_quantity": 2}, actor_id=user.id)
    transition_subtask(store, task_id=faucet.id, request=TransitionRequest("fail", note="Drips", assignee_id=user.id), actor_id=user.id)

    f1 = create_follow_up(db, parent_id=root.id, actor_id=user.id, scheduled_date=day0 + timedelta(days=7)).inspection
    copy = _task(db, f1.id, "Fix faucet")
    assert (copy.status, copy.inventory_type_id, copy.inventory_quantity) == ("pending", kit.id, 2)

    transition_subtask(
        SqlRecordStore(db),
        task_id=copy.id,
        request=TransitionRequest("fail", note="still leaking", assignee_id=user.id),
        actor_id=user.id,
    )
    acts = db.scalars(select(SubtaskActivity).where(SubtaskActivity.subtask_id == copy.id)).all()
    assert [(a.activity_type, a.notes) for a in acts] == [("note_added", "still leaking")]

    resolved = resolve_checklist(SqlRecordStore(db), f1.id)
    s = summarize_checklist(resolved.items, inventory_names=inventory_type_names(db))
    assert [t.as_dict() for t in s.inventory] == [{"id": kit.id, "name": "Faucet Kit", "value": 2}]


def test_unmapped_run_falls_back_to_the_single_new_run(db, user, prop, kitchen_template, day0):
    root = _started_root(db, user, prop, kitchen_template, day0)
    db.add(
        Subtask(
            inspection_id=root.id,
            original_inspection_id=root.id,
            room_name="Kitchen",
            description="Vent",
            inspection_run_id=9999,
            created_by=user.id,
        )
    )
    db.commit()

    res = create_follow_up(db, parent_id=root.id, actor_id=user.id, scheduled_date=day0)

    new_runs = db.scalars(select(InspectionRun).where(InspectionRun.inspection_id == res.inspection.id)).all()
    assert len(new_runs) == 1
    vent = next(t for t in res.tasks if t.description == "Vent")
    assert vent.inspection_run_id == new_runs[0].id
    assert res.unresolved == []


def test_missing_ancestor_aborts_the_whole_walk(db, user, prop, day0):
    orphan = Inspection(
        inspection_type="HUD", scheduled_date=day0, property_id=prop.id, created_by=user.id, parent_inspection_id=999
    )
    db.add(orphan); db.commit(); db.refresh(orphan)

    with pytest.raises(LineageBroken) as ei:
        resolve_checklist(SqlRecordStore(db), orphan.id)
    assert (ei.value.inspection_id, ei.value.leaf_id) == (999, orphan.id)

    with pytest.raises(LineageBroken):
        create_follow_up(db, parent_id=orphan.id, actor_id=user.id, scheduled_date=day0)
    assert db.scalar(select(func.count()).select_from(Inspection)) == 1
