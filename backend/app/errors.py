# Overview: Domain error taxonomy shared by services and routes.

from __future__ import annotations


class CashDeskError(Exception):
    """Base class for every error the register/cash subsystem raises on purpose."""

    status_code = 400
    code = "error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        payload.update(self.details)
        return payload


class ValidationError(CashDeskError, ValueError):
    """400-level input problem (malformed or inconsistent input)."""

    status_code = 400
    code = "validation_error"


class UnauthorizedError(CashDeskError):
    """Credential was rejected (wrong PIN, inactive user, insufficient role)."""

    status_code = 403
    code = "unauthorized"


class NotFoundError(CashDeskError):
    status_code = 404
    code = "not_found"


class InvalidStateError(CashDeskError):
    """Operation attempted from the wrong lifecycle state."""

    status_code = 409
    code = "invalid_state"


class DuplicateValueError(CashDeskError):
    status_code = 409
    code = "duplicate_value"


class BlockedByUnapprovedVoidsError(CashDeskError):
    """
    Close refused because voided sales of this session lack manager/owner sign-off.

    Carries the full summary so the caller can show which sales need approval.
    """

    status_code = 409
    code = "blocked_by_unapproved_voids"

    def __init__(self, summary):
        message = (
            f"Cannot close register: {summary.count} voided sale(s) pending "
            "manager/owner approval"
        )
        super().__init__(message, details={"unapproved_voids": summary.to_dict()})
        self.summary = summary
