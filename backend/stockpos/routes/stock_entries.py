# Overview: Flask API routes for stock entries; incoming stock records and their cancellation.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..services import stock_entry_service
from ..validation import parse_date, parse_optional_int, parse_page


stock_entries_bp = Blueprint("stock_entries", __name__, url_prefix="/api/stock-entries")


@stock_entries_bp.get("/")
@require_auth
@require_permission("VIEW_STOCK_ENTRIES")
def list_stock_entries_route():
    """Query params: page, date_from, date_to, status, search (entry number), recorded_by_id"""
    result = stock_entry_service.list_stock_entries(
        page=parse_page(request.args.get("page")),
        date_from=parse_date(request.args.get("date_from"), "date_from"),
        date_to=parse_date(request.args.get("date_to"), "date_to"),
        status=request.args.get("status"),
        search=request.args.get("search"),
        recorded_by_id=parse_optional_int(request.args.get("recorded_by_id"), "recorded_by_id"),
    )
    return jsonify(result), 200


@stock_entries_bp.get("/variants")
@require_auth
@require_permission("CREATE_STOCK_ENTRY")
def stock_entry_variants_route():
    items = stock_entry_service.list_variants_for_stock_entry(request.args.get("search"))
    return jsonify({"items": items}), 200


@stock_entries_bp.post("/")
@require_auth
@require_permission("CREATE_STOCK_ENTRY")
def create_stock_entry_route():
    """
    Record incoming stock. Each line increments stock and overwrites the
    variant's cost price.

    Request body:
    {
        "items": [
            {"variant_id": 1, "quantity": 20, "cost_price_cents": 450}
        ],
        "notes": "Supplier delivery"
    }
    """
    data = request.get_json(silent=True) or {}
    entry = stock_entry_service.create_stock_entry(
        recorded_by_id=g.current_user.id,
        items=data.get("items"),
        notes=data.get("notes"),
    )
    return jsonify({"stock_entry": entry.to_dict()}), 201


@stock_entries_bp.get("/<int:entry_id>")
@require_auth
@require_permission("VIEW_STOCK_ENTRIES")
def get_stock_entry_route(entry_id: int):
    entry = stock_entry_service.get_stock_entry(entry_id)
    return jsonify({"stock_entry": entry.to_dict()}), 200


@stock_entries_bp.post("/<int:entry_id>/cancel")
@require_auth
@require_permission("CANCEL_STOCK_ENTRY")
def cancel_stock_entry_route(entry_id: int):
    """
    Cancel a stock entry. Refused with 409 when any of its quantity has
    already been sold.
    """
    data = request.get_json(silent=True) or {}
    entry = stock_entry_service.cancel_stock_entry(
        entry_id, user_id=g.current_user.id, reason=data.get("reason")
    )
    return jsonify({"stock_entry": entry.to_dict(), "message": "Stock entry cancelled"}), 200
