"""
Session Ledger Reader

WHY: Closing a register compares the cashier's count against what the sales
ledger says the drawer and the other channels should hold. This module is the
read-only contract the session state machine consumes; sales capture itself
lives elsewhere.

CONTRACT:
- get_expected_totals(session_id) -> ChannelAmounts
- get_unapproved_voids(session_id) -> UnapprovedVoidSummary
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from ..errors import NotFoundError
from ..extensions import db
from ..models import CashMovement, RegisterSession, Sale, SalePayment
from ..models.sales import (
    METHOD_CARD,
    METHOD_CASH,
    METHOD_QR,
    METHOD_TRANSFER,
    MOVEMENT_DEPOSIT,
    MOVEMENT_EXPENSE,
    MOVEMENT_WITHDRAWAL,
    SALE_COMPLETED,
    SALE_VOIDED,
)
from app.time_utils import to_utc_z
from .reconciliation_service import ZERO, ChannelAmounts


@dataclass(frozen=True)
class UnapprovedVoid:
    sale_id: int
    sale_number: str
    amount: Decimal
    reason: str | None
    voided_at: datetime | None
    voided_by: int | None
    created_by: int | None

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "sale_number": self.sale_number,
            "amount": str(self.amount),
            "reason": self.reason,
            "voided_at": to_utc_z(self.voided_at),
            "voided_by": self.voided_by,
            "created_by": self.created_by,
        }


@dataclass(frozen=True)
class UnapprovedVoidSummary:
    voids: list[UnapprovedVoid] = field(default_factory=list)

    @property
    def has_unapproved_voids(self) -> bool:
        return bool(self.voids)

    @property
    def count(self) -> int:
        return len(self.voids)

    @property
    def total_amount(self) -> Decimal:
        return sum((v.amount for v in self.voids), ZERO)

    def to_dict(self) -> dict:
        return {
            "has_unapproved_voids": self.has_unapproved_voids,
            "count": self.count,
            "total_amount": str(self.total_amount),
            "voids": [v.to_dict() for v in self.voids],
        }


def _get_session(session_id: int) -> RegisterSession:
    session = db.session.get(RegisterSession, session_id)
    if not session:
        raise NotFoundError("Session not found")
    return session


def _payment_totals(session_id: int) -> dict[str, Decimal]:
    rows = (
        db.session.query(SalePayment.method, func.sum(SalePayment.amount))
        .join(Sale, Sale.id == SalePayment.sale_id)
        .filter(Sale.register_session_id == session_id, Sale.status == SALE_COMPLETED)
        .group_by(SalePayment.method)
        .all()
    )
    return {method: Decimal(total or 0) for method, total in rows}


def _movement_totals(session_id: int) -> dict[str, Decimal]:
    rows = (
        db.session.query(CashMovement.movement_type, func.sum(CashMovement.amount))
        .filter(CashMovement.register_session_id == session_id)
        .group_by(CashMovement.movement_type)
        .all()
    )
    return {kind: Decimal(total or 0) for kind, total in rows}


def get_expected_totals(session_id: int) -> ChannelAmounts:
    """
    Expected amount per channel for a session.

    Cash = opening float + cash taken on completed sales + deposits
           - withdrawals - expenses.
    Card / QR / transfer = tenders taken on completed sales.
    Voided sales contribute nothing.
    """
    session = _get_session(session_id)
    payments = _payment_totals(session_id)
    movements = _movement_totals(session_id)

    cash = (
        Decimal(session.opening_cash or 0)
        + payments.get(METHOD_CASH, ZERO)
        + movements.get(MOVEMENT_DEPOSIT, ZERO)
        - movements.get(MOVEMENT_WITHDRAWAL, ZERO)
        - movements.get(MOVEMENT_EXPENSE, ZERO)
    )
    return ChannelAmounts(
        cash=cash.quantize(ZERO),
        card=payments.get(METHOD_CARD, ZERO).quantize(ZERO),
        qr=payments.get(METHOD_QR, ZERO).quantize(ZERO),
        transfer=payments.get(METHOD_TRANSFER, ZERO).quantize(ZERO),
    )


def get_unapproved_voids(session_id: int) -> UnapprovedVoidSummary:
    """Voided sales of this session still waiting for manager/owner approval."""
    _get_session(session_id)
    sales = (
        db.session.query(Sale)
        .filter(
            Sale.register_session_id == session_id,
            Sale.status == SALE_VOIDED,
            Sale.void_approved_by.is_(None),
        )
        .order_by(Sale.voided_at.asc(), Sale.id.asc())
        .all()
    )
    return UnapprovedVoidSummary(voids=[
        UnapprovedVoid(
            sale_id=s.id,
            sale_number=s.sale_number,
            amount=Decimal(s.total_amount),
            reason=s.void_reason,
            voided_at=s.voided_at,
            voided_by=s.voided_by,
            created_by=s.created_by,
        )
        for s in sales
    ])


def count_session_sales(session_id: int) -> int:
    return db.session.query(func.count(Sale.id)).filter(Sale.register_session_id == session_id).scalar() or 0


def get_session_sales_summary(session_id: int) -> dict:
    """
    Sales figures for a session: completed count/total/average, voided
    count/total, and tender totals per method.
    """
    _get_session(session_id)

    completed_count, completed_total = (
        db.session.query(func.count(Sale.id), func.sum(Sale.total_amount))
        .filter(Sale.register_session_id == session_id, Sale.status == SALE_COMPLETED)
        .one()
    )
    voided_count, voided_total = (
        db.session.query(func.count(Sale.id), func.sum(Sale.total_amount))
        .filter(Sale.register_session_id == session_id, Sale.status == SALE_VOIDED)
        .one()
    )

    completed_total = Decimal(completed_total or 0).quantize(ZERO)
    average = (completed_total / completed_count).quantize(ZERO) if completed_count else ZERO
    payments = _payment_totals(session_id)

    return {
        "sales": {
            "count": completed_count,
            "total": str(completed_total),
            "average": str(average),
        },
        "voided": {
            "count": voided_count,
            "total": str(Decimal(voided_total or 0).quantize(ZERO)),
        },
        "payments": [
            {"method": method, "total": str(payments.get(method, ZERO).quantize(ZERO))}
            for method in (METHOD_CASH, METHOD_CARD, METHOD_QR, METHOD_TRANSFER)
        ],
    }
