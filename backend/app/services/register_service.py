"""
Register and Session Management Service

WHY: Every cash drawer is accountable per shift. A session binds one
register to one shift from opening count to blind close, and the difference
between what the cashier counts and what the ledger expects is the shift's
discrepancy.

DESIGN PRINCIPLES:
- At most one OPEN/REOPENED session per register (register row lock,
  version_id columns, and a partial unique index)
- Blind close: the declared cash must match the denomination count, and that
  count is what gets reconciled
- A register never closes while voided sales of the session lack approval
- declared/expected/discrepancy are written together, once per close
- Register.current_session_id is a cache rewritten with every transition
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    BlockedByUnapprovedVoidsError,
    DuplicateValueError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Register, RegisterSession
from ..models.alerts import (
    ALERT_AFTER_HOURS_CLOSING,
    ALERT_LOW_PETTY_CASH,
    PRIORITY_HIGH,
    PRIORITY_NORMAL,
)
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..models.registers import (
    ACTIVE_SESSION_STATUSES,
    SESSION_CANCELLED,
    SESSION_CLOSED,
    SESSION_OPEN,
    SESSION_REOPENED,
    SESSION_STATUSES,
    SHIFT_FULL_DAY,
    SHIFT_TYPES,
)
from app.time_utils import local_business_date, to_utc_z, utcnow
from app.validation import (
    ModelValidationPolicy,
    enforce_rules_register,
    to_non_negative_money,
    to_text,
    validate_payload,
)
from . import alert_service, auth_service, branch_service, denomination_service, sales_ledger_service
from .audit_service import append_audit_event
from .concurrency import lock_for_update, lock_register, run_with_retry
from .reconciliation_service import ChannelAmounts, ReconciliationResult, reconcile


REGISTER_POLICY = ModelValidationPolicy(
    writable_fields={"branch_id", "register_number", "name", "is_active"},
    required_on_create={"branch_id", "register_number", "name"},
)

REGISTER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"register_number", "name", "is_active"},
)


# =============================================================================
# REGISTER MANAGEMENT
# =============================================================================

def create_register(data: dict) -> Register:
    """
    Create a new POS register.

    register_number is unique within the branch.
    """
    patch = validate_payload(model=Register, payload=data, policy=REGISTER_POLICY, partial=False)
    enforce_rules_register(patch)
    branch_service.get_branch(patch["branch_id"])

    def _op():
        existing = db.session.query(Register).filter_by(
            branch_id=patch["branch_id"],
            register_number=patch["register_number"],
        ).first()
        if existing:
            raise DuplicateValueError(f"Register {patch['register_number']} already exists in this branch")

        register = Register(
            branch_id=patch["branch_id"],
            register_number=patch["register_number"],
            name=patch["name"],
            is_active=patch.get("is_active", True) is not False,
        )
        db.session.add(register)
        db.session.commit()
        return register

    register = run_with_retry(_op)
    current_app.logger.info("Register %s created (branch=%s number=%s)", register.id, register.branch_id, register.register_number)
    return register


def list_registers(branch_id: int | None = None, *, include_inactive: bool = False) -> list[Register]:
    query = db.session.query(Register)
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)
    if not include_inactive:
        query = query.filter(Register.is_active.is_(True))
    return query.order_by(Register.branch_id.asc(), Register.register_number.asc()).all()


def get_register(register_id: int) -> Register:
    register = db.session.get(Register, register_id)
    if not register:
        raise NotFoundError("Register not found")
    return register


def update_register(register_id: int, data: dict) -> Register:
    patch = validate_payload(model=Register, payload=data, policy=REGISTER_UPDATE_POLICY, partial=True)
    enforce_rules_register(patch)

    def _op():
        register = lock_register(register_id)
        if not register:
            raise NotFoundError("Register not found")

        number = patch.get("register_number")
        if number is not None and number != register.register_number:
            clash = db.session.query(Register).filter(
                Register.branch_id == register.branch_id,
                Register.register_number == number,
                Register.id != register.id,
            ).first()
            if clash:
                raise DuplicateValueError(f"Register {number} already exists in this branch")

        if patch.get("is_active") is False and find_active_session(register.id):
            raise InvalidStateError("Cannot deactivate register with an active session. Close it first.")

        for key, value in patch.items():
            setattr(register, key, value)
        db.session.commit()
        return register

    return run_with_retry(_op)


def deactivate_register(register_id: int) -> Register:
    """
    Deactivate a register (soft delete).

    Registers are never deleted. Inactive registers cannot open sessions.
    """
    def _op():
        register = lock_register(register_id)
        if not register:
            raise NotFoundError("Register not found")
        active = find_active_session(register.id)
        if active:
            raise InvalidStateError(
                f"Cannot deactivate register with active session {active.session_number}. Close it first."
            )
        register.is_active = False
        db.session.commit()
        return register

    register = run_with_retry(_op)
    current_app.logger.info("Register %s deactivated", register_id)
    return register


def find_active_session(register_id: int) -> RegisterSession | None:
    """The OPEN/REOPENED session of a register; authoritative over the cached id."""
    return db.session.query(RegisterSession).filter(
        RegisterSession.register_id == register_id,
        RegisterSession.status.in_(ACTIVE_SESSION_STATUSES),
    ).first()


def get_current_session(register_id: int) -> RegisterSession | None:
    get_register(register_id)
    return find_active_session(register_id)


# =============================================================================
# SESSION LIFECYCLE
# =============================================================================

@dataclass(frozen=True)
class ClosingResult:
    """Outcome of a blind close: the closed session plus its reconciliation."""
    session: RegisterSession
    reconciliation: ReconciliationResult

    @property
    def declared(self) -> ChannelAmounts:
        return self.reconciliation.declared

    @property
    def expected(self) -> ChannelAmounts:
        return self.reconciliation.expected

    @property
    def discrepancy(self) -> ChannelAmounts:
        return self.reconciliation.discrepancy

    @property
    def total_discrepancy(self):
        return self.reconciliation.total_discrepancy

    @property
    def petty_cash_warning(self):
        return self.reconciliation.petty_cash_warning

    @property
    def after_hours_warning(self):
        return self.reconciliation.after_hours_warning

    def to_dict(self) -> dict:
        data = {"session": self.session.to_dict()}
        data.update(self.reconciliation.to_dict())
        return data


def _next_session_number(register: Register, business_date: date) -> str:
    same_day = db.session.query(RegisterSession).filter_by(
        register_id=register.id,
        business_date=business_date,
    ).count()
    return f"R{register.register_number:02d}-{business_date:%Y%m%d}-{same_day + 1:02d}"


def _locked_session(session_id: int) -> tuple[RegisterSession, Register]:
    """
    Lock the register that owns `session_id`, then the session row.

    Every transition goes through the register lock so concurrent actions on
    one register serialize while separate registers stay independent.
    """
    register_id = db.session.query(RegisterSession.register_id).filter_by(id=session_id).scalar()
    if register_id is None:
        raise NotFoundError("Session not found")
    register = lock_register(register_id)
    session = lock_for_update(db.session.query(RegisterSession).filter_by(id=session_id)).first()
    if not session or not register:
        raise NotFoundError("Session not found")
    return session, register


def _clear_back_reference(register: Register, session: RegisterSession) -> None:
    if register.current_session_id in (None, session.id):
        register.current_session_id = None
    else:
        # Stale cache; recompute from the authoritative query
        other = find_active_session(register.id)
        register.current_session_id = other.id if other and other.id != session.id else None


def _ensure_void_gate(session: RegisterSession) -> None:
    summary = sales_ledger_service.get_unapproved_voids(session.id)
    if summary.has_unapproved_voids:
        raise BlockedByUnapprovedVoidsError(summary)


def open_session(
    register_id: int,
    opener_id: int,
    *,
    opening_cash,
    opening_denominations: dict | None = None,
    coins=None,
    shift_type: str = SHIFT_FULL_DAY,
    notes: str | None = None,
) -> RegisterSession:
    """
    Open a new session on a register.

    opening_cash must equal the denomination count (bills plus coins).

    Raises:
        NotFoundError: unknown register or opener
        InvalidStateError: register inactive or already has an active session
        ValidationError: bad shift_type or count mismatch
    """
    if shift_type not in SHIFT_TYPES:
        raise ValidationError(f"shift_type must be one of {', '.join(SHIFT_TYPES)}")
    opening_cash = to_non_negative_money(opening_cash, "opening_cash")

    def _op():
        register = lock_register(register_id)
        if not register:
            raise NotFoundError("Register not found")
        if not register.is_active:
            raise InvalidStateError(f"Register {register.register_number} is inactive")

        active = find_active_session(register.id)
        if active:
            raise InvalidStateError(
                f"Register {register.register_number} already has an active session ({active.session_number})"
            )

        if auth_service.get_active_user(opener_id) is None:
            raise NotFoundError("User not found or inactive")

        count = denomination_service.count_cash(opening_denominations, coins)
        if count.total != opening_cash:
            raise ValidationError(
                f"opening_cash {opening_cash} does not match the counted total {count.total}"
            )

        now = utcnow()
        business_date = local_business_date(now, branch_service.get_branch_zone(register.branch))

        session = RegisterSession(
            register_id=register.id,
            branch_id=register.branch_id,
            session_number=_next_session_number(register, business_date),
            business_date=business_date,
            shift_type=shift_type,
            status=SESSION_OPEN,
            opener_id=opener_id,
            opened_at=now,
            opening_cash=opening_cash,
            opening_denominations=count.to_dict(),
            opening_notes=notes,
        )
        try:
            db.session.add(session)
            db.session.flush()
            register.current_session_id = session.id

            append_audit_event(
                event_type="register.session_opened",
                session=session,
                actor_user_id=opener_id,
                occurred_at=now,
                after_state={
                    "status": SESSION_OPEN,
                    "opening_cash": str(opening_cash),
                    "opening_denominations": session.opening_denominations,
                },
                note=notes,
            )
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            # Lost a race to another open on this register
            winner = find_active_session(register_id)
            if winner is not None:
                raise InvalidStateError(
                    f"Register {register_id} already has an active session ({winner.session_number})"
                )
            raise
        return session

    session = run_with_retry(_op)
    current_app.logger.info(
        "Session %s opened on register %s by user %s (opening_cash=%s)",
        session.id, session.register_id, opener_id, session.opening_cash,
    )
    return session


def close_session(
    session_id: int,
    closer_id: int,
    *,
    declared_cash,
    declared_card=0,
    declared_qr=0,
    declared_transfer=0,
    closing_denominations: dict | None = None,
    coins=None,
    notes: str | None = None,
) -> ClosingResult:
    """
    Blind close of an OPEN or REOPENED session.

    Order of checks: state, void gate, count. The reconciled cash figure is
    the denomination count, not the raw declared number.

    Raises:
        NotFoundError, InvalidStateError, BlockedByUnapprovedVoidsError,
        ValidationError
    """
    declared_cash = to_non_negative_money(declared_cash, "declared_cash")
    declared_card = to_non_negative_money(declared_card or 0, "declared_card")
    declared_qr = to_non_negative_money(declared_qr or 0, "declared_qr")
    declared_transfer = to_non_negative_money(declared_transfer or 0, "declared_transfer")

    def _op():
        session, register = _locked_session(session_id)
        if session.status not in ACTIVE_SESSION_STATUSES:
            raise InvalidStateError(
                f"Session {session.session_number} is {session.status}; only OPEN or REOPENED sessions can be closed"
            )

        _ensure_void_gate(session)

        count = denomination_service.count_cash(closing_denominations, coins)
        if count.total != declared_cash:
            raise ValidationError(
                f"declared_cash {declared_cash} does not match the counted total {count.total}"
            )

        declared = ChannelAmounts(
            cash=count.total,
            card=declared_card,
            qr=declared_qr,
            transfer=declared_transfer,
        )
        expected = sales_ledger_service.get_expected_totals(session.id)
        now = utcnow()
        result = reconcile(session, declared, expected, closed_at=now)

        before_status = session.status
        session.declared_cash = declared.cash
        session.declared_card = declared.card
        session.declared_qr = declared.qr
        session.declared_transfer = declared.transfer
        session.expected_cash = expected.cash
        session.expected_card = expected.card
        session.expected_qr = expected.qr
        session.expected_transfer = expected.transfer
        session.discrepancy_cash = result.discrepancy.cash
        session.discrepancy_card = result.discrepancy.card
        session.discrepancy_qr = result.discrepancy.qr
        session.discrepancy_transfer = result.discrepancy.transfer
        session.closing_denominations = count.to_dict()
        session.closing_notes = notes
        session.status = SESSION_CLOSED
        session.closed_at = now
        session.closer_id = closer_id
        _clear_back_reference(register, session)

        after_state = session.closing_snapshot()
        after_state["status"] = SESSION_CLOSED
        after_state["total_discrepancy"] = str(result.total_discrepancy)
        append_audit_event(
            event_type="register.session_closed",
            session=session,
            actor_user_id=closer_id,
            occurred_at=now,
            before_state={"status": before_status},
            after_state=after_state,
            note=notes,
        )
        db.session.commit()
        return ClosingResult(session=session, reconciliation=result)

    closing = run_with_retry(_op)
    current_app.logger.info(
        "Session %s closed on register %s by user %s (total_discrepancy=%s)",
        closing.session.id, closing.session.register_id, closer_id, closing.total_discrepancy,
    )
    dispatch_closing_alerts(closing)
    return closing


def dispatch_closing_alerts(closing: ClosingResult) -> None:
    """
    Route close warnings to owners/managers after the close has committed.

    Delivery failures are logged; the close stands.
    """
    session = closing.session
    stamp = to_utc_z(session.closed_at)
    roles = [ROLE_OWNER, ROLE_MANAGER]

    pending = []
    if closing.petty_cash_warning:
        warning = closing.petty_cash_warning
        pending.append(dict(
            alert_type=ALERT_LOW_PETTY_CASH,
            idempotency_key=f"{ALERT_LOW_PETTY_CASH}:{session.id}:{stamp}",
            priority=PRIORITY_HIGH,
            title=f"Low petty cash on {session.session_number}",
            message=warning.message,
            details=warning.to_dict(),
        ))
    if closing.after_hours_warning:
        warning = closing.after_hours_warning
        pending.append(dict(
            alert_type=ALERT_AFTER_HOURS_CLOSING,
            idempotency_key=f"{ALERT_AFTER_HOURS_CLOSING}:{session.id}:{stamp}",
            priority=PRIORITY_NORMAL,
            title=f"After-hours close of {session.session_number}",
            message=warning.message,
            details=warning.to_dict(),
        ))

    for alert in pending:
        try:
            alert_service.emit_alert(
                target_roles=roles,
                branch_id=session.branch_id,
                register_session_id=session.id,
                **alert,
            )
        except Exception:
            db.session.rollback()
            current_app.logger.exception(
                "Failed to emit %s alert for session %s", alert["alert_type"], session.id
            )


def force_close_session(session_id: int, actor_id: int, reason: str) -> RegisterSession:
    """
    Close an abandoned session without a blind count.

    Skips reconciliation but still honors the void gate.
    """
    reason = to_text(reason, "reason")
    if not reason:
        raise ValidationError("reason is required to force-close a session")

    def _op():
        session, register = _locked_session(session_id)
        if session.status not in ACTIVE_SESSION_STATUSES:
            raise InvalidStateError(
                f"Session {session.session_number} is {session.status}; only OPEN or REOPENED sessions can be closed"
            )
        _ensure_void_gate(session)

        now = utcnow()
        before_status = session.status
        session.status = SESSION_CLOSED
        session.closed_at = now
        session.closer_id = actor_id
        session.force_close_reason = reason
        _clear_back_reference(register, session)

        append_audit_event(
            event_type="register.session_force_closed",
            session=session,
            actor_user_id=actor_id,
            occurred_at=now,
            before_state={"status": before_status},
            after_state={"status": SESSION_CLOSED, "force_close_reason": reason},
            note=reason,
        )
        db.session.commit()
        return session

    session = run_with_retry(_op)
    current_app.logger.info(
        "Session %s force-closed on register %s by user %s", session.id, session.register_id, actor_id
    )
    return session


def cancel_session(session_id: int, actor_id: int, reason: str | None = None) -> RegisterSession:
    """Cancel a session opened by mistake. Only OPEN sessions without sales."""
    reason = to_text(reason, "reason") or None

    def _op():
        session, register = _locked_session(session_id)
        if session.status != SESSION_OPEN:
            raise InvalidStateError(
                f"Session {session.session_number} is {session.status}; only OPEN sessions can be cancelled"
            )
        if sales_ledger_service.count_session_sales(session.id):
            raise InvalidStateError(
                f"Session {session.session_number} has sales recorded; close it instead of cancelling"
            )

        now = utcnow()
        session.status = SESSION_CANCELLED
        session.closed_at = now
        session.closer_id = actor_id
        session.closing_notes = reason
        _clear_back_reference(register, session)

        append_audit_event(
            event_type="register.session_cancelled",
            session=session,
            actor_user_id=actor_id,
            occurred_at=now,
            before_state={"status": SESSION_OPEN},
            after_state={"status": SESSION_CANCELLED},
            note=reason,
        )
        db.session.commit()
        return session

    session = run_with_retry(_op)
    current_app.logger.info(
        "Session %s cancelled on register %s by user %s", session.id, session.register_id, actor_id
    )
    return session


def mark_reopened(
    session: RegisterSession,
    register: Register,
    *,
    requester_id: int,
    supervisor_id: int,
    reason: str,
    reopened_at,
) -> None:
    """
    CLOSED -> REOPENED on locked rows. The caller owns the transaction.

    The closing snapshot is cleared; the next close writes a fresh one.
    """
    session.status = SESSION_REOPENED
    session.reopened_at = reopened_at
    session.reopen_reason = reason
    session.reopened_by = requester_id
    session.reopen_authorized_by = supervisor_id

    session.declared_cash = None
    session.declared_card = None
    session.declared_qr = None
    session.declared_transfer = None
    session.expected_cash = None
    session.expected_card = None
    session.expected_qr = None
    session.expected_transfer = None
    session.discrepancy_cash = None
    session.discrepancy_card = None
    session.discrepancy_qr = None
    session.discrepancy_transfer = None
    session.closing_denominations = None
    session.closed_at = None
    session.closer_id = None
    session.force_close_reason = None

    register.current_session_id = session.id


# =============================================================================
# QUERIES
# =============================================================================

def get_session(session_id: int) -> RegisterSession:
    session = db.session.get(RegisterSession, session_id)
    if not session:
        raise NotFoundError("Session not found")
    return session


def get_user_active_session(user_id: int) -> RegisterSession | None:
    """The most recent OPEN/REOPENED session the user opened, if any."""
    return (
        db.session.query(RegisterSession)
        .filter(
            RegisterSession.opener_id == user_id,
            RegisterSession.status.in_(ACTIVE_SESSION_STATUSES),
        )
        .order_by(RegisterSession.opened_at.desc(), RegisterSession.id.desc())
        .first()
    )


def _parse_date(value, field: str):
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError(f"{field} must be a date (YYYY-MM-DD)")


def list_sessions(
    *,
    branch_id: int | None = None,
    register_id: int | None = None,
    opener_id: int | None = None,
    status: str | None = None,
    date_from=None,
    date_to=None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Session history, newest first, filtered by business date range.

    Returns {"items", "count"} plus "pagination" when page is given.
    """
    if status is not None and status not in SESSION_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(SESSION_STATUSES)}")
    date_from = _parse_date(date_from, "date_from")
    date_to = _parse_date(date_to, "date_to")

    query = db.session.query(RegisterSession)
    if branch_id is not None:
        query = query.filter(RegisterSession.branch_id == branch_id)
    if register_id is not None:
        query = query.filter(RegisterSession.register_id == register_id)
    if opener_id is not None:
        query = query.filter(RegisterSession.opener_id == opener_id)
    if status is not None:
        query = query.filter(RegisterSession.status == status)
    if date_from is not None:
        query = query.filter(RegisterSession.business_date >= date_from)
    if date_to is not None:
        query = query.filter(RegisterSession.business_date <= date_to)
    query = query.order_by(RegisterSession.opened_at.desc(), RegisterSession.id.desc())

    if page is None:
        sessions = query.all()
        return {"items": [s.to_dict() for s in sessions], "count": len(sessions)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    sessions = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [s.to_dict() for s in sessions],
        "count": len(sessions),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_session_summary(session_id: int) -> dict:
    """
    Session details plus sales figures and, once closed, the reconciliation.
    """
    session = get_session(session_id)
    summary = {
        "session": session.to_dict(),
        "unapproved_voids": sales_ledger_service.get_unapproved_voids(session.id).to_dict(),
    }
    summary.update(sales_ledger_service.get_session_sales_summary(session.id))
    if session.status == SESSION_CLOSED and session.force_close_reason is None:
        summary["reconciliation"] = session.closing_snapshot()
    return summary
