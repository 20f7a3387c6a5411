# backend/app/domain/lineage/__init__.py
from .dedup import LEAF_WINS, ROOT_WINS, NO_ROOM, ResolvedTask, dedupe_segments, task_identity
from .aggregation import ChecklistSummary, Tally, inventory_totals, summarize_checklist, vendor_task_counts
from .task_state import (
    STATUS_FAIL,
    STATUS_PASS,
    STATUS_PENDING,
    PendingTransition,
    QuantityRequired,
    TransitionRequest,
    plan_completion,
    plan_transition,
)

__all__ = [
    "LEAF_WINS",
    "ROOT_WINS",
    "NO_ROOM",
    "ResolvedTask",
    "dedupe_segments",
    "task_identity",
    "ChecklistSummary",
    "Tally",
    "inventory_totals",
    "summarize_checklist",
    "vendor_task_counts",
    "STATUS_FAIL",
    "STATUS_PASS",
    "STATUS_PENDING",
    "PendingTransition",
    "QuantityRequired",
    "TransitionRequest",
    "plan_completion",
    "plan_transition",
]
