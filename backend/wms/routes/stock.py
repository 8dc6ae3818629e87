# Overview: Flask API routes for stock lookups, containers and splits; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user
from ..errors import WarehouseError
from ..services import stock_service


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_user
def list_stock_route():
    """
    Paginated positive stock rows.

    Query params: product_id, location_id, warehouse_id, min_qty, max_qty, page, limit
    """
    try:
        rows, pagination = stock_service.list_stock(
            product_id=request.args.get("product_id", type=int),
            location_id=request.args.get("location_id", type=int),
            warehouse_id=request.args.get("warehouse_id", type=int),
            min_qty=request.args.get("min_qty", type=int),
            max_qty=request.args.get("max_qty", type=int),
            page=request.args.get("page"),
            limit=request.args.get("limit"),
        )
        return jsonify({"items": rows, "pagination": pagination}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/by-code")
@require_user
def stock_by_code_route():
    """Query params: product (EAN or SKU), location (barcode); at least one."""
    try:
        result = stock_service.get_stock_by_code(
            product_code=request.args.get("product"),
            location_barcode=request.args.get("location"),
        )
        return jsonify(result), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to look up stock by code")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/locations/<barcode>")
@require_user
def location_contents_route(barcode: str):
    try:
        return jsonify(stock_service.get_location_contents(barcode)), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load location contents")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/containers/<barcode>")
@require_user
def container_contents_route(barcode: str):
    try:
        return jsonify(stock_service.get_container_contents(barcode)), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load container contents")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/containers/<barcode>/move")
@require_user
def move_container_route(barcode: str):
    """
    Request body:
    {
        "location": str     // target location barcode
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("location"):
        return jsonify({"error": "location required"}), 400

    try:
        container = stock_service.move_container(
            user_id=g.current_user.id,
            container_barcode=barcode,
            location_barcode=data["location"],
        )
        return jsonify({"container": container.to_dict()}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to move container")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/split")
@require_user
def split_stock_route():
    """
    Put loose stock into a container at the same location.

    Request body:
    {
        "product_code": str,
        "location": str,
        "container": str,
        "qty": int
    }
    """
    data = request.get_json(silent=True) or {}
    required = ("product_code", "location", "container", "qty")
    if any(data.get(field) in (None, "") for field in required):
        return jsonify({"error": "product_code, location, container and qty required"}), 400

    try:
        row = stock_service.split_stock(
            user_id=g.current_user.id,
            product_code=data["product_code"],
            location_barcode=data["location"],
            container_barcode=data["container"],
            qty=data["qty"],
        )
        return jsonify({"stock": row.to_dict()}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to split stock")
        return jsonify({"error": "Internal server error"}), 500
