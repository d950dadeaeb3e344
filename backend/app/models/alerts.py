from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


ALERT_LOW_PETTY_CASH = "LOW_PETTY_CASH"
ALERT_AFTER_HOURS_CLOSING = "AFTER_HOURS_CLOSING"
ALERT_SESSION_REOPENED = "SESSION_REOPENED"

PRIORITY_NORMAL = "NORMAL"
PRIORITY_HIGH = "HIGH"


class Alert(db.Model):
    """
    Alert queued for branch owners/managers.

    Delivery transport (push, e-mail, dashboard) reads this table.
    idempotency_key makes re-emission of the same alert a no-op.
    """
    __tablename__ = "alerts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    alert_type = db.Column(db.String(32), nullable=False, index=True)
    priority = db.Column(db.String(16), nullable=False, default=PRIORITY_NORMAL)  # NORMAL, HIGH

    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    register_session_id = db.Column(db.Integer, db.ForeignKey("register_sessions.id"), nullable=True, index=True)

    # JSON array of role names, e.g. ["OWNER", "MANAGER"]
    target_roles = db.Column(db.JSON, nullable=False)

    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    details = db.Column(db.JSON, nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    idempotency_key = db.Column(db.String(128), nullable=False, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "alert_type": self.alert_type,
            "priority": self.priority,
            "branch_id": self.branch_id,
            "register_session_id": self.register_session_id,
            "target_roles": self.target_roles,
            "title": self.title,
            "message": self.message,
            "details": self.details,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
