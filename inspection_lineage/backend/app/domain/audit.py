# backend/app/domain/audit.py
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..models import AuditEvent, Inspection


def _dumps(v: Optional[dict[str, Any]]) -> Optional[str]:
    if v is None:
        return None
    return json.dumps(v, sort_keys=True, default=str)


def inspection_snapshot(insp: Inspection) -> dict[str, Any]:
    return {
        "inspection_type": insp.inspection_type,
        "scheduled_date": insp.scheduled_date.isoformat() if insp.scheduled_date else None,
        "scheduled_time": insp.scheduled_time,
        "property_id": insp.property_id,
        "unit_id": insp.unit_id,
        "parent_inspection_id": insp.parent_inspection_id,
        "template_id": insp.template_id,
        "status": insp.status,
        "archived": bool(insp.archived),
        "completed": bool(insp.completed),
    }


def audit_write(
    db: Session,
    *,
    actor_user_id: Optional[int],
    action: str,
    entity_type: str,
    entity_id: str,
    before: Optional[dict[str, Any]] = None,
    after: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """
    Adds one AuditEvent row to the current transaction.

    Does NOT commit: the service that performed the change commits once, so the
    audit row lands (or is rolled back) together with the change it describes.
    """
    row = AuditEvent(
        actor_user_id=actor_user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        before_json=_dumps(before),
        after_json=_dumps(after),
        created_at=datetime.utcnow(),
    )
    db.add(row)
    return row
