from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


SESSION_OPEN = "OPEN"
SESSION_CLOSED = "CLOSED"
SESSION_CANCELLED = "CANCELLED"
SESSION_REOPENED = "REOPENED"
SESSION_STATUSES = (SESSION_OPEN, SESSION_CLOSED, SESSION_CANCELLED, SESSION_REOPENED)
ACTIVE_SESSION_STATUSES = (SESSION_OPEN, SESSION_REOPENED)

SHIFT_MORNING = "MORNING"
SHIFT_AFTERNOON = "AFTERNOON"
SHIFT_FULL_DAY = "FULL_DAY"
SHIFT_TYPES = (SHIFT_MORNING, SHIFT_AFTERNOON, SHIFT_FULL_DAY)

_ACTIVE_STATUS_SQL = "status IN ('OPEN', 'REOPENED')"


def _money(value) -> str | None:
    return str(value) if value is not None else None


class Register(db.Model):
    """
    Physical POS register/terminal with its own cash drawer.

    DESIGN: Registers are persistent (not deleted when inactive).
    Each register can have many sessions over time, at most one active.

    current_session_id is a cache of "the session of this register in OPEN or
    REOPENED". It is rewritten in the same transaction as every session
    transition; the query in register_service is the source of truth.
    """
    __tablename__ = "registers"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "register_number", name="uq_registers_branch_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    register_number = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(128), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Plain integer, not a FK: registers <-> sessions would otherwise be a cycle
    current_session_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("registers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "register_number": self.register_number,
            "name": self.name,
            "is_active": self.is_active,
            "current_session_id": self.current_session_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RegisterSession(db.Model):
    """
    One cashier shift on one register, from open to close.

    LIFECYCLE:
    - OPEN: drawer counted in, sales accumulate
    - CLOSED: blind count declared, expected/discrepancy computed
    - REOPENED: supervisor-authorized reopen of a CLOSED session
    - CANCELLED: opened by mistake, no sales, never reconciled

    declared_*, expected_* and discrepancy_* are written together by a close
    and cleared together by a reopen. Earlier snapshots live in audit_events.
    """
    __tablename__ = "register_sessions"
    __table_args__ = (
        # At most one active session per register, enforced by the database too
        db.Index(
            "uq_register_sessions_active_register",
            "register_id",
            unique=True,
            sqlite_where=db.text(_ACTIVE_STATUS_SQL),
            postgresql_where=db.text(_ACTIVE_STATUS_SQL),
        ),
        db.UniqueConstraint("branch_id", "session_number", name="uq_register_sessions_branch_number"),
        db.Index("ix_register_sessions_branch_opened", "branch_id", "opened_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    register_id = db.Column(db.Integer, db.ForeignKey("registers.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    # Human-readable identifier (e.g., "R01-20260315-02"), unique within the branch
    session_number = db.Column(db.String(32), nullable=False)
    business_date = db.Column(db.Date, nullable=False, index=True)
    shift_type = db.Column(db.String(16), nullable=False, default=SHIFT_FULL_DAY)

    status = db.Column(db.String(16), nullable=False, default=SESSION_OPEN, index=True)

    opener_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    closer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    opening_cash = db.Column(db.Numeric(12, 2), nullable=False)
    opening_denominations = db.Column(db.JSON, nullable=True)
    opening_notes = db.Column(db.Text, nullable=True)

    # Blind count declared by the cashier
    declared_cash = db.Column(db.Numeric(12, 2), nullable=True)
    declared_card = db.Column(db.Numeric(12, 2), nullable=True)
    declared_qr = db.Column(db.Numeric(12, 2), nullable=True)
    declared_transfer = db.Column(db.Numeric(12, 2), nullable=True)
    closing_denominations = db.Column(db.JSON, nullable=True)
    closing_notes = db.Column(db.Text, nullable=True)

    # System totals from the sales ledger at close time
    expected_cash = db.Column(db.Numeric(12, 2), nullable=True)
    expected_card = db.Column(db.Numeric(12, 2), nullable=True)
    expected_qr = db.Column(db.Numeric(12, 2), nullable=True)
    expected_transfer = db.Column(db.Numeric(12, 2), nullable=True)

    # declared - expected (negative = shortfall)
    discrepancy_cash = db.Column(db.Numeric(12, 2), nullable=True)
    discrepancy_card = db.Column(db.Numeric(12, 2), nullable=True)
    discrepancy_qr = db.Column(db.Numeric(12, 2), nullable=True)
    discrepancy_transfer = db.Column(db.Numeric(12, 2), nullable=True)

    force_close_reason = db.Column(db.Text, nullable=True)

    reopened_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reopen_reason = db.Column(db.Text, nullable=True)
    reopened_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reopen_authorized_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    register = db.relationship("Register", backref=db.backref("sessions", lazy=True))
    branch = db.relationship("Branch")
    opener = db.relationship("User", foreign_keys=[opener_id])
    closer = db.relationship("User", foreign_keys=[closer_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_SESSION_STATUSES

    def closing_snapshot(self) -> dict:
        """Declared/expected/discrepancy figures as written by the last close."""
        return {
            "declared": {
                "cash": _money(self.declared_cash),
                "card": _money(self.declared_card),
                "qr": _money(self.declared_qr),
                "transfer": _money(self.declared_transfer),
            },
            "expected": {
                "cash": _money(self.expected_cash),
                "card": _money(self.expected_card),
                "qr": _money(self.expected_qr),
                "transfer": _money(self.expected_transfer),
            },
            "discrepancy": {
                "cash": _money(self.discrepancy_cash),
                "card": _money(self.discrepancy_card),
                "qr": _money(self.discrepancy_qr),
                "transfer": _money(self.discrepancy_transfer),
            },
            "closing_denominations": self.closing_denominations,
            "closed_at": to_utc_z(self.closed_at),
            "closer_id": self.closer_id,
        }

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "register_id": self.register_id,
            "branch_id": self.branch_id,
            "session_number": self.session_number,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "shift_type": self.shift_type,
            "status": self.status,
            "opener_id": self.opener_id,
            "opened_at": to_utc_z(self.opened_at),
            "opening_cash": _money(self.opening_cash),
            "opening_denominations": self.opening_denominations,
            "opening_notes": self.opening_notes,
            "closing_notes": self.closing_notes,
            "force_close_reason": self.force_close_reason,
            "reopened_at": to_utc_z(self.reopened_at),
            "reopen_reason": self.reopen_reason,
            "reopened_by": self.reopened_by,
            "reopen_authorized_by": self.reopen_authorized_by,
            "version_id": self.version_id,
        }
        data.update(self.closing_snapshot())
        return data
