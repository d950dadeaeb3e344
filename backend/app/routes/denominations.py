# Overview: Flask API routes for the denomination catalog; parses input and returns JSON responses.

# backend/app/routes/denominations.py
"""
Denomination Catalog API Routes

DESIGN:
- DELETE is a soft delete (is_active = false); rows are never removed
- Reorder is all-or-nothing

SECURITY:
- Read: any authenticated user (terminals build the count form from it)
- Write: MANAGER or OWNER
"""

from flask import Blueprint, request, jsonify, current_app

from ..errors import CashDeskError
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import denomination_service
from ..decorators import require_auth, require_role


denominations_bp = Blueprint("denominations", __name__, url_prefix="/api/denominations")


@denominations_bp.get("/")
@denominations_bp.get("")
@require_auth
def list_denominations_route():
    """
    List denominations ordered by display_order, then value descending.

    Query params:
    - include_inactive: "true" to include deactivated rows
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    denominations = denomination_service.list_denominations(include_inactive=include_inactive)
    return jsonify({
        "denominations": [d.to_dict() for d in denominations],
        "count": len(denominations),
    }), 200


@denominations_bp.get("/<int:denomination_id>")
@require_auth
def get_denomination_route(denomination_id: int):
    try:
        denomination = denomination_service.get_denomination(denomination_id)
        return jsonify({"denomination": denomination.to_dict()}), 200
    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code


@denominations_bp.post("/")
@denominations_bp.post("")
@require_auth
@require_role(ROLE_MANAGER, ROLE_OWNER)
def create_denomination_route():
    """
    Request body:
    {
        "value": "1000",
        "label": "$1.000",
        "display_order": 5,
        "is_active": true  (optional)
    }
    """
    try:
        denomination = denomination_service.create_denomination(request.get_json(silent=True))
        return jsonify({"denomination": denomination.to_dict()}), 201

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create denomination")
        return jsonify({"error": "Internal server error"}), 500


@denominations_bp.put("/<int:denomination_id>")
@require_auth
@require_role(ROLE_MANAGER, ROLE_OWNER)
def update_denomination_route(denomination_id: int):
    try:
        denomination = denomination_service.update_denomination(denomination_id, request.get_json(silent=True))
        return jsonify({"denomination": denomination.to_dict()}), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update denomination")
        return jsonify({"error": "Internal server error"}), 500


@denominations_bp.delete("/<int:denomination_id>")
@require_auth
@require_role(ROLE_MANAGER, ROLE_OWNER)
def delete_denomination_route(denomination_id: int):
    """Soft delete."""
    try:
        denomination = denomination_service.deactivate_denomination(denomination_id)
        return jsonify({"denomination": denomination.to_dict()}), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate denomination")
        return jsonify({"error": "Internal server error"}), 500


@denominations_bp.post("/reorder")
@require_auth
@require_role(ROLE_MANAGER, ROLE_OWNER)
def reorder_denominations_route():
    """
    Request body: {"items": [{"id": 1, "display_order": 0}, ...]}
    (a bare list is accepted too)
    """
    try:
        data = request.get_json(silent=True)
        items = data.get("items") if isinstance(data, dict) else data
        denominations = denomination_service.reorder_denominations(items)
        return jsonify({
            "denominations": [d.to_dict() for d in denominations],
            "count": len(denominations),
        }), 200

    except CashDeskError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reorder denominations")
        return jsonify({"error": "Internal server error"}), 500
