"""
Cash Reconciliation Engine

WHY: At close, the cashier's blind count is compared against what the sales
ledger says should be in each payment channel. The signed difference per
channel is the discrepancy (negative = shortfall, positive = overage).

DESIGN PRINCIPLES:
- Payment channels are a closed set (cash, card, qr, transfer); arithmetic is
  spelled out per field so adding a channel forces every site to change
- Warnings (petty cash, after hours) are informational; they never block a
  close and never alter the persisted discrepancies
- Pure helpers take plain values; reconcile() gathers branch configuration
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time
from decimal import Decimal
from enum import Enum

from flask import current_app

from ..models import RegisterSession
from app.time_utils import to_local, to_utc_z
from . import branch_service

ZERO = Decimal("0.00")

_WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class PaymentChannel(str, Enum):
    CASH = "cash"
    CARD = "card"
    QR = "qr"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class ChannelAmounts:
    """One amount per payment channel."""
    cash: Decimal = ZERO
    card: Decimal = ZERO
    qr: Decimal = ZERO
    transfer: Decimal = ZERO

    def get(self, channel: PaymentChannel) -> Decimal:
        return getattr(self, channel.value)

    def minus(self, other: "ChannelAmounts") -> "ChannelAmounts":
        return ChannelAmounts(
            cash=self.cash - other.cash,
            card=self.card - other.card,
            qr=self.qr - other.qr,
            transfer=self.transfer - other.transfer,
        )

    def total(self) -> Decimal:
        return self.cash + self.card + self.qr + self.transfer

    def to_dict(self) -> dict:
        return {
            "cash": str(self.cash),
            "card": str(self.card),
            "qr": str(self.qr),
            "transfer": str(self.transfer),
        }


@dataclass(frozen=True)
class PettyCashWarning:
    declared_cash: Decimal
    petty_cash_required: Decimal
    deficit: Decimal

    @property
    def message(self) -> str:
        return (
            f"Declared cash {self.declared_cash} is below the branch petty-cash minimum "
            f"of {self.petty_cash_required}. The next shift starts {self.deficit} short "
            "for making change."
        )

    def to_dict(self) -> dict:
        return {
            "declared_cash": str(self.declared_cash),
            "petty_cash_required": str(self.petty_cash_required),
            "deficit": str(self.deficit),
            "message": self.message,
        }


@dataclass(frozen=True)
class AfterHoursWarning:
    closed_at: datetime
    local_time: str
    weekday: str
    windows: tuple[str, ...]

    @property
    def message(self) -> str:
        if not self.windows:
            return f"Register closed at {self.local_time} on {self.weekday}, a day the branch does not open."
        return (
            f"Register closed at {self.local_time} on {self.weekday}, outside operating hours "
            f"({', '.join(self.windows)})."
        )

    def to_dict(self) -> dict:
        return {
            "closed_at": to_utc_z(self.closed_at),
            "local_time": self.local_time,
            "weekday": self.weekday,
            "operating_windows": list(self.windows),
            "message": self.message,
        }


@dataclass(frozen=True)
class ReconciliationResult:
    declared: ChannelAmounts
    expected: ChannelAmounts
    discrepancy: ChannelAmounts
    petty_cash_warning: PettyCashWarning | None = None
    after_hours_warning: AfterHoursWarning | None = None

    @property
    def total_discrepancy(self) -> Decimal:
        return self.discrepancy.total()

    def to_dict(self) -> dict:
        return {
            "declared": self.declared.to_dict(),
            "expected": self.expected.to_dict(),
            "discrepancy": self.discrepancy.to_dict(),
            "total_discrepancy": str(self.total_discrepancy),
            "petty_cash_warning": self.petty_cash_warning.to_dict() if self.petty_cash_warning else None,
            "after_hours_warning": self.after_hours_warning.to_dict() if self.after_hours_warning else None,
        }


def compute_discrepancies(declared: ChannelAmounts, expected: ChannelAmounts) -> ChannelAmounts:
    """declared - expected, per channel."""
    return declared.minus(expected)


def check_petty_cash(declared_cash: Decimal, petty_cash_required: Decimal) -> PettyCashWarning | None:
    if petty_cash_required is None or declared_cash >= petty_cash_required:
        return None
    return PettyCashWarning(
        declared_cash=declared_cash,
        petty_cash_required=petty_cash_required,
        deficit=petty_cash_required - declared_cash,
    )


def _minutes(value: time) -> float:
    return value.hour * 60 + value.minute + value.second / 60


def is_within_windows(local_time: time, windows: list[tuple[time, time]], grace_minutes: int = 0) -> bool:
    """True when local_time falls inside any [open, close + grace] window."""
    now = _minutes(local_time)
    for opening, closing in windows:
        start = _minutes(opening)
        end = _minutes(closing) + grace_minutes
        if start <= _minutes(closing):
            if start <= now <= end:
                return True
        # Window crossing midnight (e.g. 18:00 -> 02:00)
        elif now >= start or now <= end:
            return True
    return False


def check_after_hours(
    closed_at: datetime,
    local_dt: datetime,
    windows: list[tuple[time, time]],
    grace_minutes: int = 0,
) -> AfterHoursWarning | None:
    if is_within_windows(local_dt.time(), windows, grace_minutes):
        return None
    return AfterHoursWarning(
        closed_at=closed_at,
        local_time=local_dt.strftime("%H:%M"),
        weekday=_WEEKDAY_NAMES[local_dt.weekday()],
        windows=tuple(f"{o.strftime('%H:%M')}-{c.strftime('%H:%M')}" for o, c in windows),
    )


def reconcile(
    session: RegisterSession,
    declared: ChannelAmounts,
    expected: ChannelAmounts,
    *,
    closed_at: datetime,
) -> ReconciliationResult:
    """
    Compare a blind count against ledger totals for one session.

    closed_at is UTC-naive; the after-hours check runs in branch-local time.
    """
    branch = branch_service.get_branch(session.branch_id)

    petty_cash_warning = check_petty_cash(declared.cash, branch_service.get_petty_cash_amount(branch.id))

    local_dt = to_local(closed_at, branch_service.get_branch_zone(branch))
    windows = branch_service.get_operating_windows(branch, local_dt.weekday())
    after_hours_warning = check_after_hours(
        closed_at,
        local_dt,
        windows,
        current_app.config.get("AFTER_HOURS_GRACE_MINUTES", 0),
    )

    return ReconciliationResult(
        declared=declared,
        expected=expected,
        discrepancy=compute_discrepancies(declared, expected),
        petty_cash_warning=petty_cash_warning,
        after_hours_warning=after_hours_warning,
    )
