# Overview: Flask API routes for registers operations; parses input and returns JSON responses.

# backend/app/routes/registers.py
"""
Register Management API Routes

WHY: Registers must exist (and be active) before a session can be opened on
them. Registers are never deleted, only deactivated.

SECURITY:
- Create/update/deactivate: MANAGER or OWNER
- Read: any authenticated user of the branch
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import CashDeskError
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import register_service
from ..decorators import require_auth, require_role


registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


def _ensure_branch_scope(branch_id: int | None):
    user = g.current_user
    if user.role == ROLE_OWNER or user.branch_id is None:
        return None
    if branch_id is not None and user.branch_id != branch_id:
        return jsonify({"error": "Branch access denied", "code": "unauthorized"}), 403
    return None


# =============================================================================
# REGISTER MANAGEMENT (Manager/Owner)
# =============================================================================

@registers_bp.post("/")
@registers_bp.post("")
@require_auth
@require_role(ROLE_MANAGER, ROLE_OWNER)
def create_register_route():
    """
    Create a new POS register.

    Request body:
    {
        "branch_id": 1,
        "register_number": 1,
        "name": "Front Counter"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload", "code": "validation_error"}), 400

        if data.get("branch_id") is None and g.current_user.branch_id is not None:
            data = {**data, "branch_id": g.current_user.branch_id}
        denied = _ensure_branch_scope(data.get("branch_id"))
        if denied:
            return denied

        register = register_service.create_register(data)
        return jsonify({"register": register.to_dict()}), 201

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/")
@registers_bp.get("")
@require_auth
def list_registers_route():
    """
    List registers. Query params: branch_id, include_inactive=true.
    """
    branch_id = request.args.get("branch_id", type=int)
    user = g.current_user
    if user.role != ROLE_OWNER and user.branch_id is not None:
        denied = _ensure_branch_scope(branch_id)
        if denied:
            return denied
        branch_id = user.branch_id

    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    registers = register_service.list_registers(branch_id, include_inactive=include_inactive)
    return jsonify({"registers": [r.to_dict() for r in registers], "count": len(registers)}), 200


@registers_bp.get("/<int:register_id>")
@require_auth
def get_register_route(register_id: int):
    try:
        register = register_service.get_register(register_id)
        denied = _ensure_branch_scope(register.branch_id)
        if denied:
            return denied
        return jsonify({"register": register.to_dict()}), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code


@registers_bp.patch("/<int:register_id>")
@require_auth
@require_role(ROLE_MANAGER, ROLE_OWNER)
def update_register_route(register_id: int):
    """Update name, register_number or is_active."""
    try:
        register = register_service.get_register(register_id)
        denied = _ensure_branch_scope(register.branch_id)
        if denied:
            return denied

        register = register_service.update_register(register_id, request.get_json(silent=True))
        return jsonify({"register": register.to_dict()}), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/<int:register_id>/deactivate")
@require_auth
@require_role(ROLE_MANAGER, ROLE_OWNER)
def deactivate_register_route(register_id: int):
    """
    Deactivate a register (soft delete).

    409 while the register has an active session.
    """
    try:
        register = register_service.get_register(register_id)
        denied = _ensure_branch_scope(register.branch_id)
        if denied:
            return denied

        register = register_service.deactivate_register(register_id)
        return jsonify({"register": register.to_dict()}), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/<int:register_id>/current-session")
@require_auth
def current_session_route(register_id: int):
    """The register's OPEN/REOPENED session, or null."""
    try:
        register = register_service.get_register(register_id)
        denied = _ensure_branch_scope(register.branch_id)
        if denied:
            return denied

        session = register_service.get_current_session(register_id)
        return jsonify({"session": session.to_dict() if session else None}), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
