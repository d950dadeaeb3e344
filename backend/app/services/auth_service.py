# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Supervisor Credential Verification

WHY: Exceptional register operations (reopening a closed session) need a
manager or owner to authorize them on the spot, at the cashier's terminal.
Supervisors type a short PIN; we verify it against a bcrypt hash.

SECURITY NOTES:
- PINs hashed with bcrypt (cost factor from PIN_HASH_ROUNDS, default 12)
- PINs are 4-6 digits
- Only active users with role MANAGER or OWNER can authorize
- Login/authentication itself happens upstream and is not handled here
"""

import re
from dataclasses import dataclass

import bcrypt
from flask import current_app
from sqlalchemy import or_

from ..errors import DuplicateValueError, NotFoundError, ValidationError
from ..extensions import db
from ..models import User
from ..models.auth import ROLES, ROLE_OWNER, SUPERVISOR_ROLES

_PIN_RE = re.compile(r"^\d{4,6}$")


@dataclass(frozen=True)
class SupervisorCredential:
    """PIN typed by a supervisor, optionally with the supervisor's user id."""
    pin: str
    user_id: int | None = None


def validate_pin_format(pin: str) -> None:
    if not isinstance(pin, str) or not _PIN_RE.match(pin):
        raise ValidationError("PIN must be 4 to 6 digits")


def hash_pin(pin: str) -> str:
    """
    Hash a PIN using bcrypt.

    PIN is validated for format before hashing.
    """
    validate_pin_format(pin)
    rounds = current_app.config.get("PIN_HASH_ROUNDS", 12)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(pin.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_pin(pin: str, pin_hash: str | None) -> bool:
    """
    Verify PIN against bcrypt hash.

    Returns True if PIN matches hash, False otherwise (including no hash set).
    """
    if not pin or not pin_hash:
        return False
    try:
        return bcrypt.checkpw(pin.encode('utf-8'), pin_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    username: str,
    role: str,
    *,
    branch_id: int | None = None,
    full_name: str | None = None,
    pin: str | None = None,
) -> User:
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    if not username or not username.strip():
        raise ValidationError("username is required")
    if db.session.query(User).filter_by(username=username.strip()).first():
        raise DuplicateValueError(f"User '{username}' already exists")

    user = User(
        username=username.strip(),
        role=role,
        branch_id=branch_id,
        full_name=full_name,
        pin_hash=hash_pin(pin) if pin else None,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def set_user_pin(user_id: int, pin: str) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    user.pin_hash = hash_pin(pin)
    db.session.commit()
    return user


def get_active_user(user_id: int | None) -> User | None:
    if user_id is None:
        return None
    user = db.session.get(User, user_id)
    if not user or not user.is_active:
        return None
    return user


def verify_supervisor_pin(user_id: int, pin: str) -> str | None:
    """
    Check that `user_id` is an active MANAGER/OWNER whose PIN matches.

    Returns the supervisor's role, or None when the credential is rejected.
    """
    user = get_active_user(user_id)
    if not user or user.role not in SUPERVISOR_ROLES:
        return None
    if not verify_pin(pin, user.pin_hash):
        return None
    return user.role


def find_supervisor_by_pin(pin: str, branch_id: int | None) -> User | None:
    """
    Find the active supervisor a bare PIN belongs to.

    Managers are matched within the branch; owners oversee every branch.
    """
    if not pin:
        return None
    query = db.session.query(User).filter(
        User.is_active.is_(True),
        User.pin_hash.isnot(None),
        User.role.in_(SUPERVISOR_ROLES),
    )
    if branch_id is not None:
        query = query.filter(or_(User.branch_id == branch_id, User.role == ROLE_OWNER))

    for user in query.order_by(User.id).all():
        if verify_pin(pin, user.pin_hash):
            return user
    return None


def resolve_supervisor(credential: SupervisorCredential, branch_id: int | None) -> User | None:
    """Resolve a credential to the authorizing supervisor, or None."""
    if credential.user_id is not None:
        role = verify_supervisor_pin(credential.user_id, credential.pin)
        if role is None:
            return None
        user = db.session.get(User, credential.user_id)
        if role != ROLE_OWNER and branch_id is not None and user.branch_id not in (None, branch_id):
            return None
        return user
    return find_supervisor_by_pin(credential.pin, branch_id)
