# Overview: Supervisor-authorized reopening of closed register sessions.

"""
Reopen Authorization Gate

WHY: Reopening a closed drawer rewrites its reconciliation, so it needs an
on-the-spot manager/owner authorization and a written justification.

ORDER OF CHECKS (each a distinct failure):
1. session exists and is CLOSED              -> NotFoundError / InvalidStateError
2. reason has at least 10 characters        -> ValidationError
3. credential is an active MANAGER/OWNER    -> UnauthorizedError
4. register has no other active session     -> InvalidStateError

SIDE EFFECTS: the transition commits first. The audit event and the
high-priority owner alert are emitted afterwards, keyed on session id +
reopened_at, and can be redelivered. A failed emission never undoes the
reopen. Reopen is never retried automatically.
"""

from __future__ import annotations

from datetime import timezone

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import CashDeskError, InvalidStateError, NotFoundError, UnauthorizedError, ValidationError
from ..extensions import db
from ..models import RegisterSession
from ..models.alerts import ALERT_SESSION_REOPENED, PRIORITY_HIGH
from ..models.auth import ROLE_OWNER
from ..models.registers import SESSION_CLOSED, SESSION_REOPENED
from app.time_utils import to_utc_z, utcnow
from app.validation import to_text
from . import alert_service, auth_service
from .audit_service import list_session_events, record_audit_event_once
from .auth_service import SupervisorCredential
from .concurrency import lock_for_update, lock_register
from .register_service import find_active_session, mark_reopened

MIN_REASON_LENGTH = 10

_CLOSE_EVENTS = ("register.session_closed", "register.session_force_closed")


def reopen_session(
    session_id: int,
    requester_id: int,
    reason: str,
    credential: SupervisorCredential,
) -> RegisterSession:
    """
    Transition a CLOSED session to REOPENED.

    Returns the reopened session. Emission of audit/alert is best-effort.
    """
    try:
        session, before_state = _apply_reopen(session_id, requester_id, reason, credential)
    except CashDeskError:
        db.session.rollback()
        raise
    except (IntegrityError, StaleDataError, OperationalError):
        db.session.rollback()
        current_app.logger.warning("Reopen of session %s lost a concurrent update", session_id)
        raise InvalidStateError(
            "Session changed while it was being reopened; reload it and try again"
        )

    current_app.logger.info(
        "Session %s reopened on register %s by user %s (authorized by %s)",
        session.id, session.register_id, requester_id, session.reopen_authorized_by,
    )
    _emit_reopen_notifications(session, before_state)
    return session


def _apply_reopen(session_id, requester_id, reason, credential):
    register_id = db.session.query(RegisterSession.register_id).filter_by(id=session_id).scalar()
    if register_id is None:
        raise NotFoundError("Session not found")
    register = lock_register(register_id)
    session = lock_for_update(db.session.query(RegisterSession).filter_by(id=session_id)).first()
    if not session or not register:
        raise NotFoundError("Session not found")

    # 1. state
    if session.status != SESSION_CLOSED:
        raise InvalidStateError(
            f"Session {session.session_number} is {session.status}; only CLOSED sessions can be reopened"
        )

    # 2. justification
    reason = to_text(reason, "reason")
    if len(reason) < MIN_REASON_LENGTH:
        raise ValidationError(f"reason must be at least {MIN_REASON_LENGTH} characters")

    # 3. supervisor
    if credential is None or not credential.pin:
        raise UnauthorizedError("Manager or owner PIN is required to reopen a session")
    supervisor = auth_service.resolve_supervisor(credential, session.branch_id)
    if supervisor is None:
        raise UnauthorizedError("Invalid PIN or user is not an active manager/owner")

    # 4. register free
    other = find_active_session(register.id)
    if other is not None and other.id != session.id:
        raise InvalidStateError(
            f"Register {register.register_number} already has an active session ({other.session_number})"
        )

    before_state = session.closing_snapshot()
    before_state["status"] = SESSION_CLOSED
    before_state["force_close_reason"] = session.force_close_reason

    mark_reopened(
        session,
        register,
        requester_id=requester_id,
        supervisor_id=supervisor.id,
        reason=reason,
        reopened_at=utcnow(),
    )
    db.session.commit()
    return session, before_state


def _reopen_key(session: RegisterSession) -> str:
    stamp = session.reopened_at
    if stamp.tzinfo is not None:
        stamp = stamp.astimezone(timezone.utc).replace(tzinfo=None)
    return f"reopen:{session.id}:{stamp.isoformat()}"


def _emit_reopen_notifications(session: RegisterSession, before_state: dict | None) -> None:
    """Audit then alert, each independently; failures are logged only."""
    key = _reopen_key(session)
    try:
        record_audit_event_once(
            idempotency_key=key,
            event_type="register.session_reopened",
            session=session,
            actor_user_id=session.reopened_by,
            supervisor_user_id=session.reopen_authorized_by,
            occurred_at=session.reopened_at,
            before_state=before_state,
            after_state={
                "status": SESSION_REOPENED,
                "reopened_at": to_utc_z(session.reopened_at),
                "reopen_reason": session.reopen_reason,
                "reopened_by": session.reopened_by,
                "reopen_authorized_by": session.reopen_authorized_by,
            },
            note=session.reopen_reason,
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record reopen audit event for session %s", session.id)

    try:
        alert_service.emit_alert(
            alert_type=ALERT_SESSION_REOPENED,
            idempotency_key=key,
            priority=PRIORITY_HIGH,
            target_roles=[ROLE_OWNER],
            branch_id=session.branch_id,
            register_session_id=session.id,
            title=f"Register session {session.session_number} reopened",
            message=(
                f"Session {session.session_number} was reopened by user {session.reopened_by} "
                f"with authorization from user {session.reopen_authorized_by}: {session.reopen_reason}"
            ),
            details={
                "session_id": session.id,
                "register_id": session.register_id,
                "requester_id": session.reopened_by,
                "supervisor_id": session.reopen_authorized_by,
                "reason": session.reopen_reason,
                "reopened_at": to_utc_z(session.reopened_at),
            },
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to emit reopen alert for session %s", session.id)


def redeliver_reopen_notifications(session_id: int) -> str:
    """
    Re-emit the audit event and alert for the latest reopen of a session.

    Idempotent: existing rows for the same reopen are left untouched.
    Returns the delivery key.
    """
    session = db.session.get(RegisterSession, session_id)
    if not session:
        raise NotFoundError("Session not found")
    if session.reopened_at is None:
        raise InvalidStateError(f"Session {session.session_number} has never been reopened")
    _emit_reopen_notifications(session, _last_close_state(session))
    return _reopen_key(session)


def _last_close_state(session: RegisterSession) -> dict | None:
    """after_state of the close that preceded the latest reopen."""
    closes = [
        ev for ev in list_session_events(session.id)
        if ev.event_type in _CLOSE_EVENTS and ev.occurred_at <= session.reopened_at
    ]
    return closes[-1].after_state if closes else None
