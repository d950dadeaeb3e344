from __future__ import annotations

from datetime import time
from decimal import Decimal
from zoneinfo import ZoneInfo

from flask import current_app
from sqlalchemy.orm.attributes import flag_modified

from app.errors import DuplicateValueError, NotFoundError, ValidationError
from app.extensions import db
from app.models import Branch
from app.services.concurrency import lock_for_update, run_with_retry
from app.time_utils import get_zone
from app.validation import ModelValidationPolicy, validate_payload

SUNDAY = 6

BRANCH_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "code",
        "timezone",
        "petty_cash_amount",
        "weekday_opening_time",
        "weekday_closing_time",
        "has_shift_change",
        "midday_closing_time",
        "afternoon_opening_time",
        "sunday_opening_time",
        "sunday_closing_time",
        "is_active",
    },
    required_on_create={"name", "code"},
)


def create_branch(data: dict) -> Branch:
    patch = validate_payload(model=Branch, payload=data, policy=BRANCH_POLICY, partial=False)
    _check_petty_cash(patch)

    def _op():
        if db.session.query(Branch).filter_by(code=patch["code"]).first():
            raise DuplicateValueError(f"Branch code '{patch['code']}' already exists")
        branch = Branch(**patch)
        db.session.add(branch)
        db.session.flush()
        # Insert defaults replace explicit nulls (e.g. "closed on Sunday")
        for key, value in patch.items():
            if value is None:
                setattr(branch, key, None)
                flag_modified(branch, key)
        db.session.commit()
        return branch

    return run_with_retry(_op)


def update_branch(branch_id: int, data: dict) -> Branch:
    patch = validate_payload(model=Branch, payload=data, policy=BRANCH_POLICY, partial=True)
    _check_petty_cash(patch)

    def _op():
        branch = lock_for_update(db.session.query(Branch).filter_by(id=branch_id)).first()
        if not branch:
            raise NotFoundError("Branch not found")
        for key, value in patch.items():
            setattr(branch, key, value)
        db.session.commit()
        return branch

    return run_with_retry(_op)


def _check_petty_cash(patch: dict) -> None:
    amount = patch.get("petty_cash_amount")
    if amount is not None and amount < 0:
        raise ValidationError("petty_cash_amount cannot be negative")


def get_branch(branch_id: int) -> Branch:
    branch = db.session.get(Branch, branch_id)
    if not branch:
        raise NotFoundError("Branch not found")
    return branch


def list_branches() -> list[Branch]:
    return db.session.query(Branch).order_by(Branch.name.asc()).all()


def get_petty_cash_amount(branch_id: int) -> Decimal:
    """Minimum float the branch wants left in a drawer after closing."""
    branch = get_branch(branch_id)
    return branch.petty_cash_amount if branch.petty_cash_amount is not None else Decimal("0.00")


def get_branch_zone(branch: Branch) -> ZoneInfo:
    return get_zone(branch.timezone, current_app.config.get("DEFAULT_BRANCH_TIMEZONE", "UTC"))


def get_operating_windows(branch: Branch, weekday: int) -> list[tuple[time, time]]:
    """
    Opening windows for a day of week (Monday=0 ... Sunday=6), branch-local.

    An empty list means the branch does not open that day.
    """
    if weekday == SUNDAY:
        if branch.sunday_opening_time and branch.sunday_closing_time:
            return [(branch.sunday_opening_time, branch.sunday_closing_time)]
        return []

    opening = branch.weekday_opening_time
    closing = branch.weekday_closing_time
    if not opening or not closing:
        return []

    if branch.has_shift_change and branch.midday_closing_time and branch.afternoon_opening_time:
        return [
            (opening, branch.midday_closing_time),
            (branch.afternoon_opening_time, closing),
        ]
    return [(opening, closing)]
