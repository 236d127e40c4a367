# Overview: Flask API routes for customers; list, lookup, stats and edits.

from flask import Blueprint, jsonify, request

from ..decorators import own_records_only, require_auth, require_permission
from ..services import customer_service
from ..validation import parse_page


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def list_customers_route():
    result = customer_service.list_customers(
        page=parse_page(request.args.get("page")),
        search=request.args.get("search"),
        salesperson_id=own_records_only(),
    )
    return jsonify(result), 200


@customers_bp.get("/search")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def search_customers_route():
    """Autocomplete for the sale form: ?q=<name, phone or email fragment>"""
    items = customer_service.search_customers(request.args.get("q"), salesperson_id=own_records_only())
    return jsonify({"items": items}), 200


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def get_customer_route(customer_id: int):
    customer = customer_service.get_customer(customer_id, salesperson_id=own_records_only())
    return jsonify({
        "customer": customer.to_dict(),
        "stats": customer_service.customer_stats(customer.id),
    }), 200


@customers_bp.post("/")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def create_customer_route():
    customer = customer_service.create_customer(request.get_json(silent=True))
    return jsonify({"customer": customer.to_dict()}), 201


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_permission("MANAGE_CUSTOMERS")
def update_customer_route(customer_id: int):
    customer = customer_service.update_customer(
        customer_id, request.get_json(silent=True), salesperson_id=own_records_only()
    )
    return jsonify({"customer": customer.to_dict()}), 200
