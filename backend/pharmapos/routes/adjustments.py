# Overview: Flask API routes for stock adjustments.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import PharmacyError, error_response
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import adjustment_service


adjustments_bp = Blueprint("stock_adjustments", __name__, url_prefix="/api/stock-adjustments")


@adjustments_bp.post("")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def create_adjustment_route():
    """
    Body: batch_id, adjustment_type, quantity (> 0), reason, notes (optional)

    A deduction larger than the batch holds empties the batch and is
    reported back with clamped=true.
    """
    try:
        data = request.get_json() or {}
        adjustment = adjustment_service.create_adjustment(
            batch_id=data.get("batch_id"),
            adjustment_type=data.get("adjustment_type"),
            quantity=data.get("quantity"),
            reason=data.get("reason"),
            notes=data.get("notes"),
            user_id=g.current_user.id,
            ip_address=request.remote_addr,
        )
        return jsonify({"adjustment": adjustment.to_dict()}), 201

    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create stock adjustment")
        return jsonify({"error": "Internal server error"}), 500


@adjustments_bp.get("")
@require_auth
def list_adjustments_route():
    adjustments = adjustment_service.list_adjustments(
        medicine_id=request.args.get("medicine_id", type=int),
        limit=min(request.args.get("limit", 200, type=int), 1000),
    )
    return jsonify({"adjustments": [a.to_dict() for a in adjustments]}), 200
