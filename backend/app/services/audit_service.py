# Overview: Audit trail writer for register session transitions.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import AuditEvent, RegisterSession
from app.time_utils import utcnow
"""
Audit trail invariants

- Append-only: no updates or deletes of existing events.
- No business logic here; callers decide what to record.
- append_audit_event() only flushes so the event commits (or rolls back)
  with the transition it records.
- record_audit_event_once() is for post-commit emission and is idempotent on
  idempotency_key.
"""


def append_audit_event(
    *,
    event_type: str,
    session: RegisterSession,
    actor_user_id: int | None,
    supervisor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    before_state: dict | None = None,
    after_state: dict | None = None,
    note: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> AuditEvent:
    ev = AuditEvent(
        event_type=event_type,
        entity_type="register_session",
        entity_id=session.id,
        branch_id=session.branch_id,
        register_id=session.register_id,
        register_session_id=session.id,
        actor_user_id=actor_user_id,
        supervisor_user_id=supervisor_user_id,
        occurred_at=occurred_at or utcnow(),
        before_state=before_state,
        after_state=after_state,
        note=note,
        idempotency_key=idempotency_key,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def record_audit_event_once(*, idempotency_key: str, **fields) -> AuditEvent:
    """
    Write and commit an audit event unless one with this key already exists.

    Safe to call repeatedly (at-least-once delivery).
    """
    existing = db.session.query(AuditEvent).filter_by(idempotency_key=idempotency_key).first()
    if existing:
        return existing

    try:
        ev = append_audit_event(idempotency_key=idempotency_key, **fields)
        db.session.commit()
        return ev
    except IntegrityError:
        # A concurrent redelivery won the insert
        db.session.rollback()
        return db.session.query(AuditEvent).filter_by(idempotency_key=idempotency_key).one()


def list_session_events(session_id: int) -> list[AuditEvent]:
    return (
        db.session.query(AuditEvent)
        .filter_by(register_session_id=session_id)
        .order_by(AuditEvent.occurred_at.asc(), AuditEvent.id.asc())
        .all()
    )
