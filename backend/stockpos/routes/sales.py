# Overview: Flask API routes for sales; list, create, view and cancel.

from flask import Blueprint, g, jsonify, request

from ..decorators import own_records_only, require_auth, require_permission
from ..services import sales_service
from ..validation import parse_date, parse_optional_int, parse_page


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("/")
@require_auth
@require_permission("VIEW_SALES")
def list_sales_route():
    """
    Query params:
        page, date_from, date_to (YYYY-MM-DD, business timezone),
        status, search (invoice number or customer name), salesperson_id

    SALES users only see their own sales; salesperson_id is ignored for them.
    """
    salesperson_id = own_records_only()
    if salesperson_id is None:
        salesperson_id = parse_optional_int(request.args.get("salesperson_id"), "salesperson_id")

    result = sales_service.list_sales(
        page=parse_page(request.args.get("page")),
        date_from=parse_date(request.args.get("date_from"), "date_from"),
        date_to=parse_date(request.args.get("date_to"), "date_to"),
        salesperson_id=salesperson_id,
        status=request.args.get("status"),
        search=request.args.get("search"),
    )
    return jsonify(result), 200


@sales_bp.get("/available-variants")
@require_auth
@require_permission("CREATE_SALE")
def available_variants_route():
    items = sales_service.list_available_variants(request.args.get("search"))
    return jsonify({"items": items}), 200


@sales_bp.post("/")
@require_auth
@require_permission("CREATE_SALE")
def create_sale_route():
    """
    Create a completed sale and decrement stock.

    Request body:
    {
        "customer_id": 12,                 // or customer_name (+ phone, address) for a new customer
        "items": [
            {"variant_id": 1, "quantity": 2, "discount_percent": 10}
        ],
        "payment_method": "CASH",
        "discount_cents": 0,
        "notes": "optional"
    }
    """
    data = request.get_json(silent=True) or {}

    sale = sales_service.create_sale(
        salesperson_id=g.current_user.id,
        items=data.get("items"),
        customer_id=data.get("customer_id"),
        customer_name=data.get("customer_name"),
        customer_phone=data.get("customer_phone"),
        customer_address=data.get("customer_address"),
        payment_method=data.get("payment_method") or "CASH",
        discount_cents=data.get("discount_cents") or 0,
        notes=data.get("notes"),
    )
    return jsonify({"sale": sale.to_dict()}), 201


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission("VIEW_SALES")
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(sale_id, salesperson_id=own_records_only())
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_permission("CANCEL_SALE")
def cancel_sale_route(sale_id: int):
    """
    Cancel a completed sale and restore its stock.

    Request body:
    {
        "reason": "Customer changed their mind"   // required
    }
    """
    data = request.get_json(silent=True) or {}
    sale = sales_service.cancel_sale(sale_id, user_id=g.current_user.id, reason=data.get("reason"))
    return jsonify({"sale": sale.to_dict(), "message": "Sale cancelled"}), 200
