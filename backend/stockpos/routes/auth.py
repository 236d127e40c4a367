# Overview: Flask API routes for auth; login, logout and current user.

from flask import Blueprint, current_app, g, jsonify, request

from .. import permissions
from ..decorators import require_auth
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by email and password.

    Request body:
    {
        "email": "sales@example.com",
        "password": "secret"
    }

    Returns user info, the role's permissions and a bearer token on success.
    The token is only ever returned here; the database stores its hash.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return jsonify({"error": "Email and password are required"}), 400

    user = auth_service.authenticate(email, password)
    if not user:
        current_app.logger.info("Failed login for %s", auth_service.normalize_email(email))
        return jsonify({"error": "Invalid email or password"}), 401

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )

    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permissions.get_role_permissions(user.role)),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the bearer token used for this request."""
    token = request.headers["Authorization"].split(" ", 1)[1]
    session_service.revoke_session(token, reason="User logout")
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(),
        "permissions": sorted(permissions.get_role_permissions(user.role)),
    }), 200
