from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


ROLE_OWNER = "OWNER"
ROLE_MANAGER = "MANAGER"
ROLE_CASHIER = "CASHIER"
ROLES = (ROLE_OWNER, ROLE_MANAGER, ROLE_CASHIER)
SUPERVISOR_ROLES = (ROLE_OWNER, ROLE_MANAGER)


class User(db.Model):
    """
    User accounts for attribution and supervisor authorization.

    Login/authentication happens upstream; this table only backs the
    attribution of session actions and the supervisor PIN check.

    OWNER users may have no branch (they oversee every branch).
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(128), nullable=True)

    role = db.Column(db.String(16), nullable=False, default=ROLE_CASHIER, index=True)

    # Optional 4-6 digit PIN for supervisor authorization (bcrypt hashed)
    pin_hash = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    branch = db.relationship("Branch", backref=db.backref("users", lazy=True))

    @property
    def is_supervisor(self) -> bool:
        return self.role in SUPERVISOR_ROLES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "username": self.username,
            "full_name": self.full_name,
            "role": self.role,
            "has_pin": self.pin_hash is not None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
