from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Append-only audit trail for register session transitions.

    INVARIANTS:
    - Rows are never updated or deleted.
    - Events for open/close/force-close/cancel are written in the same
      transaction as the transition they record.
    - Reopen events are written right after the reopen commits and carry an
      idempotency_key (session id + reopened_at) so redelivery is safe.
    - occurred_at is business time; created_at is system time (DB default).
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_session_occurred", "register_session_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # What happened (e.g., register.session_closed)
    event_type = db.Column(db.String(64), nullable=False, index=True)

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False, index=True)

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=True, index=True)
    register_session_id = db.Column(db.Integer, db.ForeignKey("register_sessions.id"), nullable=True)

    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    supervisor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    before_state = db.Column(db.JSON, nullable=True)
    after_state = db.Column(db.JSON, nullable=True)
    note = db.Column(db.Text, nullable=True)

    idempotency_key = db.Column(db.String(128), nullable=True, unique=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "branch_id": self.branch_id,
            "register_id": self.register_id,
            "register_session_id": self.register_session_id,
            "actor_user_id": self.actor_user_id,
            "supervisor_user_id": self.supervisor_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "before_state": self.before_state,
            "after_state": self.after_state,
            "note": self.note,
        }
