# Overview: Flask API routes for receiving and editing batches.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import PharmacyError, error_response
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import batch_service


batches_bp = Blueprint("batches", __name__, url_prefix="/api/batches")


@batches_bp.post("")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def create_batch_route():
    """Receive stock: one new batch with its prices, dates and quantity."""
    try:
        batch = batch_service.create_batch(request.get_json() or {}, user_id=g.current_user.id)
        return jsonify({"batch": batch.to_dict()}), 201
    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create batch")
        return jsonify({"error": "Internal server error"}), 500


@batches_bp.get("/<int:batch_id>")
@require_auth
def get_batch_route(batch_id: int):
    try:
        batch = batch_service.get_batch(batch_id)
        return jsonify({"batch": batch.to_dict()}), 200
    except PharmacyError as e:
        return error_response(e)


@batches_bp.put("/<int:batch_id>")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def update_batch_route(batch_id: int):
    """Prices and batch details only; quantity moves through sales and adjustments."""
    try:
        batch = batch_service.update_batch(batch_id, request.get_json() or {})
        return jsonify({"batch": batch.to_dict()}), 200
    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update batch")
        return jsonify({"error": "Internal server error"}), 500
