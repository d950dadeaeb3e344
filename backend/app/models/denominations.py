from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


class Denomination(db.Model):
    """
    Configured currency unit (bill or coin) used to build a cash count.

    DESIGN: Rows are never deleted. Session breakdowns copy value and label at
    capture time, so deactivating or relabeling a denomination never rewrites
    historical counts. `value` stays unique across active and inactive rows.
    """
    __tablename__ = "denominations"
    __table_args__ = (
        db.UniqueConstraint("value", name="uq_denominations_value"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    value = db.Column(db.Numeric(12, 2), nullable=False)
    label = db.Column(db.String(50), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Lower = shown first; ties broken by value descending
    display_order = db.Column(db.Integer, nullable=False, default=0, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Denomination id={self.id} value={self.value} active={self.is_active}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "value": str(self.value),
            "label": self.label,
            "is_active": self.is_active,
            "display_order": self.display_order,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
