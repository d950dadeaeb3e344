# Overview: Alert queue for owners/managers; idempotent on a delivery key.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Alert
from ..models.alerts import PRIORITY_NORMAL


def emit_alert(
    *,
    alert_type: str,
    idempotency_key: str,
    title: str,
    message: str,
    target_roles: list[str],
    branch_id: int | None = None,
    register_session_id: int | None = None,
    priority: str = PRIORITY_NORMAL,
    details: dict | None = None,
) -> Alert:
    """
    Queue an alert and commit it.

    Emitting the same idempotency_key twice returns the first alert.
    """
    existing = db.session.query(Alert).filter_by(idempotency_key=idempotency_key).first()
    if existing:
        return existing

    alert = Alert(
        alert_type=alert_type,
        priority=priority,
        branch_id=branch_id,
        register_session_id=register_session_id,
        target_roles=list(target_roles),
        title=title,
        message=message,
        details=details,
        idempotency_key=idempotency_key,
    )
    db.session.add(alert)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return db.session.query(Alert).filter_by(idempotency_key=idempotency_key).one()
    return alert


def list_alerts(
    branch_id: int | None = None,
    *,
    alert_type: str | None = None,
    unread_only: bool = False,
) -> list[Alert]:
    query = db.session.query(Alert)
    if branch_id is not None:
        query = query.filter_by(branch_id=branch_id)
    if alert_type:
        query = query.filter_by(alert_type=alert_type)
    if unread_only:
        query = query.filter_by(is_read=False)
    return query.order_by(Alert.created_at.desc(), Alert.id.desc()).all()
