# Overview: Flask API routes for purchase orders.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import PharmacyError, error_response
from ..models.auth import ROLE_MANAGER, ROLE_OWNER
from ..services import purchase_order_service


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.post("")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def create_purchase_order_route():
    try:
        data = request.get_json() or {}
        po = purchase_order_service.create_purchase_order(
            supplier_id=data.get("supplier_id"),
            items=data.get("items"),
            notes=data.get("notes"),
            user_id=g.current_user.id,
            ip_address=request.remote_addr,
        )
        return jsonify({"purchase_order": po.to_dict(include_items=True)}), 201

    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create purchase order")
        return jsonify({"error": "Internal server error"}), 500


@purchase_orders_bp.get("")
@require_auth
def list_purchase_orders_route():
    try:
        orders = purchase_order_service.list_purchase_orders(status=request.args.get("status"))
        return jsonify({"purchase_orders": [po.to_dict() for po in orders]}), 200
    except PharmacyError as e:
        return error_response(e)


@purchase_orders_bp.get("/<int:po_id>")
@require_auth
def get_purchase_order_route(po_id: int):
    try:
        po = purchase_order_service.get_purchase_order(po_id)
        return jsonify({"purchase_order": po.to_dict(include_items=True)}), 200
    except PharmacyError as e:
        return error_response(e)


@purchase_orders_bp.patch("/<int:po_id>/status")
@require_auth
@require_role(ROLE_OWNER, ROLE_MANAGER)
def update_purchase_order_status_route(po_id: int):
    try:
        data = request.get_json() or {}
        po = purchase_order_service.update_status(
            po_id,
            data.get("status"),
            user_id=g.current_user.id,
            ip_address=request.remote_addr,
        )
        return jsonify({"purchase_order": po.to_dict()}), 200

    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update purchase order")
        return jsonify({"error": "Internal server error"}), 500
