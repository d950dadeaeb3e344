# Overview: Row locking and retry-on-conflict helpers for session transitions.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import CashDeskError
from ..extensions import db
from ..models import Register


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id columns
    and the partial unique index on active sessions do the guarding.
    """
    return query.with_for_update()


def lock_register(register_id: int) -> Register | None:
    """Lock the register row that serializes every transition on its sessions."""
    return lock_for_update(db.session.query(Register).filter_by(id=register_id)).first()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.05):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Domain errors propagate untouched.
    `func` must be safe to re-run from scratch after a rollback.
    """
    if attempts is None:
        attempts = current_app.config.get("SESSION_RETRY_ATTEMPTS", 3)
    for attempt in range(attempts):
        try:
            return func()
        except CashDeskError:
            # Release locks and discard partial work before surfacing the error
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after concurrent modification (attempt %s/%s): %s",
                attempt + 1, attempts, exc.__class__.__name__,
            )
            time.sleep(backoff_base * (2 ** attempt))
