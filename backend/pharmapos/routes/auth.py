# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/pharmapos/routes/auth.py
"""
Authentication API routes

- register: open; the very first account becomes the owner, later
  self-registered accounts are cashiers (owners assign other roles via /api/users)
- login/logout: opaque bearer tokens, hashed at rest
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..errors import PharmacyError, error_response
from ..services import auth_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    try:
        data = request.get_json() or {}
        user = auth_service.create_user(
            username=data.get("username"),
            password=data.get("password") or "",
            name=data.get("name"),
            email=data.get("email"),
        )
        return jsonify({"user": user.to_dict()}), 201

    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    """
    try:
        data = request.get_json() or {}
        user, token = auth_service.authenticate(
            data.get("username"),
            data.get("password"),
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "message": "Login successful",
        }), 200

    except PharmacyError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the presented session token."""
    try:
        auth_service.logout(g.current_user, g.auth_token, ip_address=request.remote_addr)
        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200
