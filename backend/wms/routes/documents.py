# Overview: Flask API routes for stock documents (PZ/WZ/MM/INV_ADJ); parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_user
from ..errors import WarehouseError
from ..services import document_service
from wms.time_utils import parse_iso_datetime


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


@documents_bp.get("")
@require_user
def list_documents_route():
    """
    List documents, newest first.

    Query params: type, status, warehouse_id, created_by, date_from, date_to, page, limit
    """
    try:
        date_from = parse_iso_datetime(request.args.get("date_from"))
        date_to = parse_iso_datetime(request.args.get("date_to"))
    except ValueError:
        return jsonify({"error": "date_from and date_to must be ISO-8601 datetimes"}), 400

    try:
        documents, pagination = document_service.list_documents(
            document_type=request.args.get("type"),
            status=request.args.get("status"),
            warehouse_id=request.args.get("warehouse_id", type=int),
            created_by_user_id=request.args.get("created_by", type=int),
            date_from=date_from,
            date_to=date_to,
            page=request.args.get("page"),
            limit=request.args.get("limit"),
        )
        return jsonify({
            "items": [d.to_dict() for d in documents],
            "pagination": pagination,
        }), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list documents")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("")
@require_user
def create_document_route():
    """
    Create a DRAFT document.

    Request body:
    {
        "type": "PZ" | "WZ" | "MM" | "INV_ADJ",
        "warehouse_id": int,
        "reference_no": str (optional),
        "notes": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("type") or not data.get("warehouse_id"):
        return jsonify({"error": "type and warehouse_id required"}), 400

    try:
        document = document_service.create_document(
            user_id=g.current_user.id,
            document_type=data["type"],
            warehouse_id=data["warehouse_id"],
            reference_no=data.get("reference_no"),
            notes=data.get("notes"),
        )
        return jsonify({"document": document.to_dict()}), 201

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<int:document_id>")
@require_user
def get_document_route(document_id: int):
    try:
        return jsonify(document_service.get_document_summary(document_id)), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/lines")
@require_user
def add_line_route(document_id: int):
    """
    Scan a line onto a DRAFT document.

    Request body:
    {
        "product_code": str,    // EAN or SKU
        "qty": int,
        "from_location": str (optional),
        "to_location": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    if not data.get("product_code") or data.get("qty") is None:
        return jsonify({"error": "product_code and qty required"}), 400

    try:
        line = document_service.add_document_line(
            document_id=document_id,
            user_id=g.current_user.id,
            product_code=data["product_code"],
            qty=data["qty"],
            from_location_barcode=data.get("from_location"),
            to_location_barcode=data.get("to_location"),
        )
        return jsonify({"line": line.to_dict()}), 201

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add document line")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.delete("/<int:document_id>/lines/<int:line_id>")
@require_user
def delete_line_route(document_id: int, line_id: int):
    try:
        document_service.delete_document_line(document_id=document_id, line_id=line_id)
        return jsonify({"deleted": True}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete document line")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/confirm")
@require_user
def confirm_document_route(document_id: int):
    """
    Confirm a DRAFT document; applies every line to the stock ledger.

    Returns:
        200: {"document": ..., "movements": [...]}
        400: not DRAFT, empty, or insufficient stock (nothing applied)
        404: document not found
    """
    try:
        document, movements = document_service.confirm_document(
            document_id=document_id,
            user_id=g.current_user.id,
        )
        return jsonify({"document": document.to_dict(), "movements": movements}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<int:document_id>/cancel")
@require_user
def cancel_document_route(document_id: int):
    data = request.get_json(silent=True) or {}

    try:
        document = document_service.cancel_document(
            document_id=document_id,
            user_id=g.current_user.id,
            reason=data.get("reason"),
        )
        return jsonify({"document": document.to_dict()}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel document")
        return jsonify({"error": "Internal server error"}), 500
