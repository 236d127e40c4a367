# Overview: Flask API routes for settings; company profile and document prefixes.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import settings_service
from ..services.concurrency import atomic


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/company")
@require_auth
def get_company_route():
    """Any signed-in user may read the profile (invoice headers need it)."""
    with atomic("Failed to load company profile"):
        profile = settings_service.get_company_profile()
    return jsonify({"company": profile.to_dict()}), 200


@settings_bp.put("/company")
@require_auth
@require_permission("MANAGE_SETTINGS")
def update_company_route():
    """
    Request body (all optional):
    {
        "name": "...", "address": "...", "phone": "...", "email": "...",
        "tax_number": "...", "invoice_prefix": "INV", "stock_entry_prefix": "SE"
    }

    Prefix changes apply to the next generated number; existing numbers
    are never rewritten.
    """
    profile = settings_service.update_company_profile(
        request.get_json(silent=True), user_id=g.current_user.id
    )
    return jsonify({"company": profile.to_dict()}), 200
