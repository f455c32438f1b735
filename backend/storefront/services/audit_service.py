# Overview: Service-layer operations for the audit trail; append-only event log.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditEvent
from .actor import Actor
"""
Audit Trail Invariants (authoritative)

- Append-only log for cross-cutting settlement events.
- No domain/business logic in the audit log itself.
- Events are written inside the same DB transaction as the change they record.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_audit_event(
    *,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor: Actor,
    order_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> AuditEvent:
    """
    Append an audit event. Flushes, never commits.
    """
    ev = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor.actor_id,
        actor_kind=actor.kind,
        order_id=order_id,
        note=note[:255] if note else None,
        payload=payload,
    )
    if occurred_at is not None:
        ev.occurred_at = occurred_at
    db.session.add(ev)
    db.session.flush()
    return ev


def list_audit_events(
    *,
    order_id: int | None = None,
    event_type: str | None = None,
    limit: int = 100,
) -> list[AuditEvent]:
    q = db.session.query(AuditEvent)
    if order_id is not None:
        q = q.filter(AuditEvent.order_id == order_id)
    if event_type:
        q = q.filter(AuditEvent.event_type == event_type)
    return q.order_by(AuditEvent.id.asc()).limit(limit).all()
