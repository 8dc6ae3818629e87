# Overview: Flask API routes for reading the audit log; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_user, require_role
from ..errors import WarehouseError
from ..models.catalog import ROLE_ADMIN, ROLE_MANAGER
from ..services import audit_service
from wms.time_utils import parse_iso_datetime

"""
Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- date_from / date_to are inclusive.
"""

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_user
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def list_audit_logs_route():
    try:
        date_from = parse_iso_datetime(request.args.get("date_from"))
        date_to = parse_iso_datetime(request.args.get("date_to"))
    except ValueError:
        return jsonify({"error": "date_from and date_to must be ISO-8601 datetimes"}), 400

    action = request.args.get("action")
    if action and action not in audit_service.AUDIT_ACTIONS:
        return jsonify({"error": f"Unknown action: {action}"}), 400

    try:
        logs, pagination = audit_service.list_audit_logs(
            action=action,
            user_id=request.args.get("user_id", type=int),
            product_id=request.args.get("product_id", type=int),
            location_id=request.args.get("location_id", type=int),
            document_id=request.args.get("document_id", type=int),
            inventory_count_id=request.args.get("inventory_count_id", type=int),
            date_from=date_from,
            date_to=date_to,
            page=request.args.get("page"),
            limit=request.args.get("limit"),
        )
        return jsonify({
            "items": [log.to_dict() for log in logs],
            "pagination": pagination,
        }), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list audit logs")
        return jsonify({"error": "Internal server error"}), 500


@audit_bp.get("/actions")
@require_user
def list_actions_route():
    return jsonify({"actions": list(audit_service.AUDIT_ACTIONS)}), 200


@audit_bp.get("/documents/<int:document_id>")
@require_user
def document_history_route(document_id: int):
    try:
        events = audit_service.get_document_history(document_id)
        return jsonify({"items": [e.to_dict() for e in events]}), 200

    except WarehouseError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load document history")
        return jsonify({"error": "Internal server error"}), 500
