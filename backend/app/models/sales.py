from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


SALE_COMPLETED = "COMPLETED"
SALE_VOIDED = "VOIDED"

METHOD_CASH = "CASH"
METHOD_CARD = "CARD"
METHOD_QR = "QR"
METHOD_TRANSFER = "TRANSFER"
PAYMENT_METHODS = (METHOD_CASH, METHOD_CARD, METHOD_QR, METHOD_TRANSFER)

MOVEMENT_DEPOSIT = "DEPOSIT"
MOVEMENT_WITHDRAWAL = "WITHDRAWAL"
MOVEMENT_EXPENSE = "EXPENSE"
MOVEMENT_TYPES = (MOVEMENT_DEPOSIT, MOVEMENT_WITHDRAWAL, MOVEMENT_EXPENSE)


class Sale(db.Model):
    """
    Sale recorded against a register session.

    Sales are captured by the checkout pipeline; this subsystem only reads
    them to compute expected totals and to enforce the void gate.

    VOID APPROVAL: a VOIDED sale blocks its session's close until
    void_approved_by is stamped by a manager or owner.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "sale_number", name="uq_sales_branch_number"),
        db.Index("ix_sales_session_status", "register_session_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)
    register_session_id = db.Column(db.Integer, db.ForeignKey("register_sessions.id"), nullable=False, index=True)

    sale_number = db.Column(db.String(64), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED, index=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Void audit trail
    voided_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)
    void_approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    void_approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    register_session = db.relationship("RegisterSession", backref=db.backref("sales", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "register_session_id": self.register_session_id,
            "sale_number": self.sale_number,
            "total_amount": str(self.total_amount),
            "status": self.status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "voided_by": self.voided_by,
            "voided_at": to_utc_z(self.voided_at),
            "void_reason": self.void_reason,
            "void_approved_by": self.void_approved_by,
            "void_approved_at": to_utc_z(self.void_approved_at),
        }


class SalePayment(db.Model):
    """Tender applied to a sale. Cash amounts are net of change given."""
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    method = db.Column(db.String(16), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount": str(self.amount),
        }


class CashMovement(db.Model):
    """
    Cash put into or taken out of a drawer outside a sale.

    DEPOSIT adds to expected cash; WITHDRAWAL and EXPENSE subtract from it.
    """
    __tablename__ = "cash_movements"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    register_session_id = db.Column(db.Integer, db.ForeignKey("register_sessions.id"), nullable=False, index=True)
    movement_type = db.Column(db.String(16), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    performed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "register_session_id": self.register_session_id,
            "movement_type": self.movement_type,
            "amount": str(self.amount),
            "reason": self.reason,
            "performed_by": self.performed_by,
            "created_at": to_utc_z(self.created_at),
        }
