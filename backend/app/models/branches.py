from __future__ import annotations

from datetime import time
from decimal import Decimal

from ..extensions import db
from app.time_utils import to_utc_z


def _fmt_time(value: time | None) -> str | None:
    return value.strftime("%H:%M") if value else None


class Branch(db.Model):
    """
    Retail branch (store location).

    Holds the configuration the cash subsystem consumes: petty-cash float,
    timezone, and the operating-hours schedule used for after-hours warnings.

    SCHEDULE:
    - Monday-Saturday: weekday_opening_time -> weekday_closing_time
    - Split shift (has_shift_change): closes at midday_closing_time and reopens
      at afternoon_opening_time
    - Sunday: sunday_opening_time -> sunday_closing_time (both null = closed)
    """
    __tablename__ = "branches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)

    timezone = db.Column(db.String(64), nullable=True)

    # Minimum cash float that must stay in the drawer after a close
    petty_cash_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    weekday_opening_time = db.Column(db.Time, nullable=False, default=time(8, 30))
    weekday_closing_time = db.Column(db.Time, nullable=False, default=time(20, 0))
    has_shift_change = db.Column(db.Boolean, nullable=False, default=False)
    midday_closing_time = db.Column(db.Time, nullable=True)
    afternoon_opening_time = db.Column(db.Time, nullable=True)
    sunday_opening_time = db.Column(db.Time, nullable=True, default=time(9, 0))
    sunday_closing_time = db.Column(db.Time, nullable=True, default=time(13, 45))

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Branch id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "timezone": self.timezone,
            "petty_cash_amount": str(self.petty_cash_amount) if self.petty_cash_amount is not None else None,
            "weekday_opening_time": _fmt_time(self.weekday_opening_time),
            "weekday_closing_time": _fmt_time(self.weekday_closing_time),
            "has_shift_change": self.has_shift_change,
            "midday_closing_time": _fmt_time(self.midday_closing_time),
            "afternoon_opening_time": _fmt_time(self.afternoon_opening_time),
            "sunday_opening_time": _fmt_time(self.sunday_opening_time),
            "sunday_closing_time": _fmt_time(self.sunday_closing_time),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
