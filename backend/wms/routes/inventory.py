# Overview: Flask API routes for physical inventory counts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user, require_role
from ..errors import WarehouseError
from ..models.catalog import ROLE_ADMIN, ROLE_MANAGER
from ..services import count_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_user
def list_counts_route():
    try:
        counts, pagination = count_service.list_counts(
            status=request.args.get("status"),
            warehouse_id=request.args.get("warehouse_id", type=int),
            page=request.args.get("page"),
            limit=request.args.get("limit"),
        )
        return jsonify({
            "items": [c.to_dict() for c in counts],
            "pagination": pagination,
        }), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list inventory counts")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("")
@require_user
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_count_route():
    """
    Open a count and lock its locations.

    Requires: ADMIN or MANAGER

    Request body:
    {
        "warehouse_id": int,
        "name": str,
        "location_ids": [int] (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("warehouse_id") or not data.get("name"):
        return jsonify({"error": "warehouse_id and name required"}), 400

    try:
        count = count_service.create_count(
            user_id=g.current_user.id,
            warehouse_id=data["warehouse_id"],
            name=data["name"],
            location_ids=data.get("location_ids") or [],
        )
        return jsonify({"count": count.to_dict()}), 201

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create inventory count")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:count_id>")
@require_user
def get_count_route(count_id: int):
    try:
        return jsonify(count_service.get_count_summary(count_id)), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load inventory count")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.patch("/<int:count_id>")
@require_user
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def rename_count_route(count_id: int):
    data = request.get_json(silent=True) or {}

    try:
        count = count_service.rename_count(count_id=count_id, name=data.get("name"))
        return jsonify({"count": count.to_dict()}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to rename inventory count")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:count_id>/locations/<barcode>")
@require_user
def location_for_counting_route(count_id: int, barcode: str):
    try:
        result = count_service.get_location_for_counting(count_id=count_id, location_barcode=barcode)
        return jsonify(result), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load location for counting")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:count_id>/lines")
@require_user
def submit_line_route(count_id: int):
    """
    Submit a counted quantity.

    Request body:
    {
        "location": str,        // location barcode
        "product_code": str,    // EAN or SKU
        "counted_qty": int
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("location") or not data.get("product_code") or data.get("counted_qty") is None:
        return jsonify({"error": "location, product_code and counted_qty required"}), 400

    try:
        line = count_service.submit_count(
            count_id=count_id,
            user_id=g.current_user.id,
            location_barcode=data["location"],
            product_code=data["product_code"],
            counted_qty=data["counted_qty"],
        )
        return jsonify({"line": line.to_dict()}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to submit inventory line")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.put("/<int:count_id>/lines/<int:line_id>")
@require_user
def update_line_route(count_id: int, line_id: int):
    data = request.get_json(silent=True) or {}
    if data.get("counted_qty") is None:
        return jsonify({"error": "counted_qty required"}), 400

    try:
        line = count_service.update_count_line(
            count_id=count_id,
            line_id=line_id,
            user_id=g.current_user.id,
            counted_qty=data["counted_qty"],
        )
        return jsonify({"line": line.to_dict()}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update inventory line")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/<int:count_id>/lines/<int:line_id>")
@require_user
def delete_line_route(count_id: int, line_id: int):
    try:
        count_service.delete_count_line(count_id=count_id, line_id=line_id, user_id=g.current_user.id)
        return jsonify({"deleted": True}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete inventory line")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:count_id>/complete")
@require_user
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def complete_count_route(count_id: int):
    """
    Apply the count to the stock ledger.

    Requires: ADMIN or MANAGER
    Returns: {"count": ..., "adjustments": [...]}
    """
    try:
        count, adjustments = count_service.complete_count(count_id=count_id, user_id=g.current_user.id)
        return jsonify({"count": count.to_dict(), "adjustments": adjustments}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete inventory count")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:count_id>/cancel")
@require_user
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def cancel_count_route(count_id: int):
    try:
        count = count_service.cancel_count(count_id=count_id, user_id=g.current_user.id)
        return jsonify({"count": count.to_dict()}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel inventory count")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:count_id>/reopen")
@require_user
@require_role(ROLE_ADMIN)
def reopen_count_route(count_id: int):
    try:
        count = count_service.reopen_count(count_id=count_id, user_id=g.current_user.id)
        return jsonify({"count": count.to_dict()}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reopen inventory count")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/<int:count_id>")
@require_user
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def delete_count_route(count_id: int):
    """Requires: ADMIN or MANAGER. Completed counts cannot be deleted."""
    try:
        count_service.delete_count(count_id=count_id, user_id=g.current_user.id)
        return jsonify({"deleted": True}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete inventory count")
        return jsonify({"error": "Internal server error"}), 500
