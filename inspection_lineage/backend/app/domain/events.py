# backend/app/domain/events.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import WorkflowEvent

SUBTASKS_CHANGED = "subtasks.changed"
INSPECTION_CHANGED = "inspection.changed"


def emit_workflow_event(
    db: Session,
    *,
    event_type: str,
    inspection_id: Optional[int] = None,
    actor_user_id: Optional[int] = None,
    payload: Optional[dict[str, Any]] = None,
) -> WorkflowEvent:
    """
    Records a change signal for the host's push channel.

    The engine never delivers these itself; clients that receive a
    "subtasks.changed" for an inspection re-resolve its checklist.

    NOTE: add + flush only. Callers decide when to commit.
    """
    ev = WorkflowEvent(
        inspection_id=int(inspection_id) if inspection_id is not None else None,
        actor_user_id=int(actor_user_id) if actor_user_id is not None else None,
        event_type=str(event_type),
        payload_json=json.dumps(payload or {}, ensure_ascii=False, default=str),
        created_at=datetime.utcnow(),
    )
    db.add(ev)
    db.flush()
    return ev
