# Overview: Flask API routes for location status; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user, require_role
from ..errors import WarehouseError
from ..models.catalog import ROLE_ADMIN, ROLE_MANAGER
from ..services import catalog_service


locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.put("/<int:location_id>/status")
@require_user
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_location_status_route(location_id: int):
    """
    Block or unblock a location.

    Request body:
    {
        "status": "ACTIVE" | "BLOCKED",
        "block_reason": str (optional, kept only when BLOCKED)
    }

    Requires: ADMIN or MANAGER
    """
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return jsonify({"error": "status required"}), 400

    try:
        location = catalog_service.update_location_status(
            location_id=location_id,
            user_id=g.current_user.id,
            status=data["status"],
            block_reason=data.get("block_reason"),
        )
        return jsonify({"location": location.to_dict()}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update location status")
        return jsonify({"error": "Internal server error"}), 500
