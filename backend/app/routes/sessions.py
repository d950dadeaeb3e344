# Overview: Flask API routes for register sessions; parses input and returns JSON responses.

# backend/app/routes/sessions.py
"""
Register Session API Routes

WHY: Cashiers open and blind-close their drawer from the terminal; managers
resolve abandoned sessions and authorize reopens.

DESIGN:
- Session lifecycle: open -> close -> (reopen -> close)*, or open -> cancel
- Close is blind: the response is the first time the cashier sees expected
  totals and discrepancies
- Close blocked by unapproved voids returns 409 with every blocking sale

SECURITY:
- Acting user comes from the upstream-authenticated X-User-Id header
- force-close requires MANAGER or OWNER
- reopen requires a MANAGER/OWNER PIN in the body
- Non-owners only act on registers of their own branch
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CashDeskError
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import register_service, reopen_service, sales_ledger_service
from ..services.auth_service import SupervisorCredential
from ..decorators import require_auth, require_role


sessions_bp = Blueprint("sessions", __name__, url_prefix="/api/sessions")


def _ensure_branch_scope(branch_id: int | None):
    user = g.current_user
    if user.role == ROLE_OWNER or user.branch_id is None:
        return None
    if branch_id is not None and user.branch_id != branch_id:
        return jsonify({"error": "Branch access denied", "code": "unauthorized"}), 403
    return None


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# =============================================================================
# LIFECYCLE
# =============================================================================

@sessions_bp.post("/open")
@require_auth
def open_session_route():
    """
    Open a session on a register.

    Request body:
    {
        "register_id": 1,
        "shift_type": "MORNING" | "AFTERNOON" | "FULL_DAY",
        "opening_cash": "6050.00",
        "opening_denominations": {"1000": 5, "500": 2},
        "coins": "50.00",
        "notes": "optional"
    }
    """
    try:
        data = _json_body()
        register_id = data.get("register_id")
        if register_id is None or data.get("opening_cash") is None:
            return jsonify({"error": "register_id and opening_cash required", "code": "validation_error"}), 400

        register = register_service.get_register(int(register_id))
        denied = _ensure_branch_scope(register.branch_id)
        if denied:
            return denied

        session = register_service.open_session(
            register.id,
            g.current_user.id,
            opening_cash=data.get("opening_cash"),
            opening_denominations=data.get("opening_denominations"),
            coins=data.get("coins"),
            shift_type=data.get("shift_type") or "FULL_DAY",
            notes=data.get("notes"),
        )
        return jsonify({"session": session.to_dict()}), 201

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except (TypeError, ValueError):
        return jsonify({"error": "register_id must be an integer", "code": "validation_error"}), 400
    except Exception:
        current_app.logger.exception("Failed to open session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/<int:session_id>/close")
@require_auth
def close_session_route(session_id: int):
    """
    Blind close.

    Request body:
    {
        "declared_cash": "9500.00",
        "declared_card": "0", "declared_qr": "0", "declared_transfer": "0",
        "closing_denominations": {"1000": 9, "500": 1},
        "coins": "0",
        "notes": "optional"
    }

    Returns declared/expected/discrepancy per channel plus warnings.
    """
    try:
        data = _json_body()
        if data.get("declared_cash") is None:
            return jsonify({"error": "declared_cash required", "code": "validation_error"}), 400

        session = register_service.get_session(session_id)
        denied = _ensure_branch_scope(session.branch_id)
        if denied:
            return denied

        closing = register_service.close_session(
            session_id,
            g.current_user.id,
            declared_cash=data.get("declared_cash"),
            declared_card=data.get("declared_card", 0),
            declared_qr=data.get("declared_qr", 0),
            declared_transfer=data.get("declared_transfer", 0),
            closing_denominations=data.get("closing_denominations"),
            coins=data.get("coins"),
            notes=data.get("notes"),
        )
        return jsonify(closing.to_dict()), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/<int:session_id>/force-close")
@require_auth
@require_role(ROLE_MANAGER, ROLE_OWNER)
def force_close_session_route(session_id: int):
    """
    Close an abandoned session without a count. Body: {"reason": "..."}
    """
    try:
        data = _json_body()
        session = register_service.get_session(session_id)
        denied = _ensure_branch_scope(session.branch_id)
        if denied:
            return denied

        session = register_service.force_close_session(session_id, g.current_user.id, data.get("reason"))
        return jsonify({"session": session.to_dict()}), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to force-close session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/<int:session_id>/cancel")
@require_auth
def cancel_session_route(session_id: int):
    """
    Cancel a session opened by mistake (no sales yet).

    The opener or a manager/owner may cancel.
    """
    try:
        data = _json_body()
        session = register_service.get_session(session_id)
        denied = _ensure_branch_scope(session.branch_id)
        if denied:
            return denied
        if session.opener_id != g.current_user.id and not g.current_user.is_supervisor:
            return jsonify({"error": "Only the opener or a manager can cancel this session", "code": "unauthorized"}), 403

        session = register_service.cancel_session(session_id, g.current_user.id, data.get("reason"))
        return jsonify({"session": session.to_dict()}), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel session")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.post("/<int:session_id>/reopen")
@require_auth
def reopen_session_route(session_id: int):
    """
    Reopen a CLOSED session with supervisor authorization.

    Request body:
    {
        "reason": "at least 10 characters",
        "supervisor_pin": "1234",
        "supervisor_user_id": 2   (optional)
    }

    Errors: 404 unknown session, 409 wrong state, 400 short reason,
    403 rejected credential.
    """
    try:
        data = _json_body()
        session = register_service.get_session(session_id)
        denied = _ensure_branch_scope(session.branch_id)
        if denied:
            return denied

        pin = data.get("supervisor_pin") or data.get("pin")
        supervisor_user_id = data.get("supervisor_user_id")
        credential = SupervisorCredential(
            pin=str(pin) if pin is not None else "",
            user_id=int(supervisor_user_id) if supervisor_user_id is not None else None,
        )

        session = reopen_service.reopen_session(session_id, g.current_user.id, data.get("reason"), credential)
        return jsonify({"session": session.to_dict()}), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except (TypeError, ValueError):
        return jsonify({"error": "supervisor_user_id must be an integer", "code": "validation_error"}), 400
    except Exception:
        current_app.logger.exception("Failed to reopen session")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@sessions_bp.get("/<int:session_id>/unapproved-voids")
@require_auth
def unapproved_voids_route(session_id: int):
    """Voided sales that would block closing this session."""
    try:
        session = register_service.get_session(session_id)
        denied = _ensure_branch_scope(session.branch_id)
        if denied:
            return denied
        return jsonify(sales_ledger_service.get_unapproved_voids(session_id).to_dict()), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load unapproved voids")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/mine")
@require_auth
def my_session_route():
    session = register_service.get_user_active_session(g.current_user.id)
    return jsonify({"session": session.to_dict() if session else None}), 200


@sessions_bp.get("/<int:session_id>")
@require_auth
def get_session_route(session_id: int):
    try:
        session = register_service.get_session(session_id)
        denied = _ensure_branch_scope(session.branch_id)
        if denied:
            return denied
        return jsonify({"session": session.to_dict()}), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code


@sessions_bp.get("/<int:session_id>/summary")
@require_auth
def session_summary_route(session_id: int):
    try:
        session = register_service.get_session(session_id)
        denied = _ensure_branch_scope(session.branch_id)
        if denied:
            return denied
        return jsonify(register_service.get_session_summary(session_id)), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build session summary")
        return jsonify({"error": "Internal server error"}), 500


@sessions_bp.get("/")
@sessions_bp.get("")
@require_auth
def list_sessions_route():
    """
    Session history, newest first.

    Query params: branch_id, register_id, opener_id, status,
    date_from, date_to (YYYY-MM-DD business dates), page, per_page.
    Non-owners only see their own branch.
    """
    try:
        branch_id = request.args.get("branch_id", type=int)
        user = g.current_user
        if user.role != ROLE_OWNER and user.branch_id is not None:
            denied = _ensure_branch_scope(branch_id)
            if denied:
                return denied
            branch_id = user.branch_id

        result = register_service.list_sessions(
            branch_id=branch_id,
            register_id=request.args.get("register_id", type=int),
            opener_id=request.args.get("opener_id", type=int),
            status=request.args.get("status") or None,
            date_from=request.args.get("date_from") or None,
            date_to=request.args.get("date_to") or None,
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sessions")
        return jsonify({"error": "Internal server error"}), 500
