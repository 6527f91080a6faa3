# Overview: Flask API routes for user management (owner only).

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..errors import PharmacyError, error_response
from ..models.auth import ROLE_OWNER
from ..services import auth_service


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role(ROLE_OWNER)
def list_users_route():
    users = auth_service.list_users()
    return jsonify({"users": [u.to_dict() for u in users]}), 200


@users_bp.post("")
@require_auth
@require_role(ROLE_OWNER)
def create_user_route():
    """Create a staff account with an explicit role."""
    try:
        data = request.get_json() or {}
        user = auth_service.create_user(
            username=data.get("username"),
            password=data.get("password") or "",
            name=data.get("name"),
            email=data.get("email"),
            role=data.get("role"),
        )
        return jsonify({"user": user.to_dict()}), 201

    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/<int:user_id>")
@require_auth
@require_role(ROLE_OWNER)
def update_user_route(user_id: int):
    try:
        data = request.get_json() or {}
        user = auth_service.update_user(user_id, data)
        return jsonify({"user": user.to_dict()}), 200

    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500
