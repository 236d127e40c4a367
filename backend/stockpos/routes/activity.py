# Overview: Flask API routes for the activity log.

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import activity_service
from ..validation import coerce_int


activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity")


@activity_bp.get("/")
@require_auth
@require_permission("VIEW_ACTIVITY_LOG")
def recent_activity_route():
    """Query params: limit (1-100, default 10), user_id, action, entity_type"""
    limit = request.args.get("limit")
    user_id = request.args.get("user_id")
    items = activity_service.list_activity(
        limit=coerce_int(limit, "limit") if limit else 10,
        user_id=coerce_int(user_id, "user_id") if user_id else None,
        action=request.args.get("action"),
        entity_type=request.args.get("entity_type"),
    )
    return jsonify({"items": items}), 200
