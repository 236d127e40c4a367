# Overview: Flask API routes for user administration; parses input and returns JSON responses.

"""
User administration.

SUPER_ADMIN manages every role; ADMIN manages SALES and WAREHOUSE users
only. Hierarchy violations surface as 403 from the service layer.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import user_service


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("/")
@require_auth
@require_permission("MANAGE_USERS")
def list_users_route():
    return jsonify({"items": user_service.list_users(g.current_user)}), 200


@users_bp.get("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def get_user_route(user_id: int):
    user = user_service.get_visible_user(g.current_user, user_id)
    return jsonify({"user": user.to_dict()}), 200


@users_bp.post("/")
@require_auth
@require_permission("MANAGE_USERS")
def create_user_route():
    """
    Request body:
    {
        "name": "Jane", "email": "jane@example.com", "phone": "optional",
        "role": "SALES", "password": "Str0ng!pass"
    }
    """
    user = user_service.create_user(request.get_json(silent=True), actor=g.current_user)
    return jsonify({"user": user.to_dict()}), 201


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user_route(user_id: int):
    user = user_service.update_user(user_id, request.get_json(silent=True), actor=g.current_user)
    return jsonify({"user": user.to_dict()}), 200


@users_bp.post("/<int:user_id>/toggle-status")
@require_auth
@require_permission("MANAGE_USERS")
def toggle_user_status_route(user_id: int):
    user = user_service.toggle_user_status(user_id, actor=g.current_user)
    return jsonify({"user": user.to_dict()}), 200


@users_bp.post("/<int:user_id>/reset-password")
@require_auth
@require_permission("MANAGE_USERS")
def reset_password_route(user_id: int):
    """Set a new password; all of the user's sessions are revoked."""
    data = request.get_json(silent=True) or {}
    user_service.reset_password(user_id, data.get("password"), actor=g.current_user)
    return jsonify({"message": "Password reset"}), 200
