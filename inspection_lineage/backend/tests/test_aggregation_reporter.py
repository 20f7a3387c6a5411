# inspection_lineage/backend/tests/test_aggregation_reporter.py
from __future__ import annotations

from types import SimpleNamespace

from app.domain.lineage import inventory_totals, summarize_checklist, vendor_task_counts


def _t(status, *, inv=None, qty=0, vendor=None, completed=False):
    return SimpleNamespace(
        status=status,
        inventory_type_id=inv,
        inventory_quantity=qty,
        vendor_type_id=vendor,
        completed=completed,
    )


def test_inventory_totals_only_count_failed_with_positive_quantity():
    tasks = [
        _t("fail", inv=1, qty=2),
        _t("fail", inv=1, qty=3),
        _t("pass", inv=1, qty=4),
        _t("fail", inv=2, qty=0),
        _t("fail", inv=None, qty=9),
    ]
    out = inventory_totals(tasks, names={1: "A"})
    assert [(x.key, x.name, x.value) for x in out] == [(1, "A", 5)]


def test_totals_sorted_descending_and_stable_for_ties():
    tasks = [
        _t("fail", inv=3, qty=1),
        _t("fail", inv=1, qty=4),
        _t("fail", inv=2, qty=1),
    ]
    assert [x.key for x in inventory_totals(tasks)] == [1, 3, 2]


def test_vendor_counts_over_failed_tasks():
    tasks = [
        _t("fail", vendor=7),
        _t("fail", vendor=7),
        _t("fail", vendor=8),
        _t("pending", vendor=8),
        _t("pass", vendor=8),
        _t("fail"),
    ]
    out = vendor_task_counts(tasks, names={7: "Plumber", 8: "Electrician"})
    assert [x.as_dict() for x in out] == [
        {"id": 7, "name": "Plumber", "value": 2},
        {"id": 8, "name": "Electrician", "value": 1},
    ]


def test_summary_rates_count_completed_as_passed():
    tasks = [
        _t("pass"),
        _t("pending", completed=True),
        _t("fail", inv=1, qty=2),
        _t("pending"),
    ]
    s = summarize_checklist(tasks, inventory_names={1: "Smoke detector"})
    assert (s.total, s.passed, s.failed, s.pending) == (4, 2, 1, 1)
    assert s.pass_rate == 50.0
    assert s.fail_rate == 25.0
    assert s.as_dict()["inventory"] == [{"id": 1, "name": "Smoke detector", "value": 2}]


def test_empty_summary():
    s = summarize_checklist([])
    assert s.total == 0
    assert s.pass_rate == 0.0
    assert s.inventory == [] and s.vendors == []
