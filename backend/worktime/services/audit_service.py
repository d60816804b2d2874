# Overview: Service-layer operations for the time-tracking audit trail.

from __future__ import annotations

import json
from typing import Any, Optional
from datetime import datetime

from ..extensions import db
from ..models import AuditEvent
"""
Audit trail invariants

- Append-only: no updates, no deletes of existing events.
- Events are written inside the same DB transaction as the change they record;
  a rolled-back operation leaves no event behind.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_audit_event(
    *,
    employee_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int | None = None,
    actor_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict[str, Any]] = None,
) -> AuditEvent:
    """
    Append-only audit event.

    - No domain logic here.
    - payload is serialized to JSON text (datetimes/dates as ISO strings).
    """
    ev = AuditEvent(
        employee_id=employee_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        occurred_at=occurred_at,  # if None, db default applies
        note=note,
        payload=json.dumps(payload, default=str, sort_keys=True) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_audit_events(*, employee_id: int, limit: int = 100) -> list[AuditEvent]:
    limit = max(1, min(limit, 500))
    return (
        db.session.query(AuditEvent)
        .filter_by(employee_id=employee_id)
        .order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc())
        .limit(limit)
        .all()
    )
