# Overview: Flask API routes for the catalog; categories, products, variants and stock levels.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import ValidationError
from ..services import catalog_service
from ..validation import coerce_int, parse_page


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


def _bool_arg(name: str):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    lowered = raw.strip().lower()
    if lowered in ("1", "true", "yes"):
        return True
    if lowered in ("0", "false", "no"):
        return False
    raise ValidationError(f"{name} must be true or false")


def _int_arg(name: str):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    return coerce_int(raw, name)


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_bp.get("/categories")
@require_auth
@require_permission("VIEW_CATALOG")
def list_categories_route():
    include_inactive = bool(_bool_arg("include_inactive"))
    return jsonify({"items": catalog_service.list_categories(include_inactive=include_inactive)}), 200


@catalog_bp.post("/categories")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_category_route():
    category = catalog_service.create_category(request.get_json(silent=True))
    return jsonify({"category": category.to_dict()}), 201


@catalog_bp.delete("/categories/<int:category_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def delete_category_route(category_id: int):
    catalog_service.delete_category(category_id)
    return jsonify({"message": "Category deleted"}), 200


# =============================================================================
# PRODUCTS
# =============================================================================

@catalog_bp.get("/products")
@require_auth
@require_permission("VIEW_CATALOG")
def list_products_route():
    """
    Query params:
        page, search, category_id, active (true/false)
    """
    result = catalog_service.list_products(
        page=parse_page(request.args.get("page")),
        search=request.args.get("search"),
        category_id=_int_arg("category_id"),
        active=_bool_arg("active"),
    )
    return jsonify(result), 200


@catalog_bp.post("/products")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_product_route():
    product = catalog_service.create_product(request.get_json(silent=True), user_id=g.current_user.id)
    return jsonify({"product": product.to_dict(include_variants=True)}), 201


@catalog_bp.get("/products/<int:product_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_product_route(product_id: int):
    product = catalog_service.get_product(product_id)
    return jsonify({"product": product.to_dict(include_variants=True)}), 200


@catalog_bp.put("/products/<int:product_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def update_product_route(product_id: int):
    product = catalog_service.update_product(
        product_id, request.get_json(silent=True), user_id=g.current_user.id
    )
    return jsonify({"product": product.to_dict(include_variants=True)}), 200


@catalog_bp.post("/products/<int:product_id>/toggle")
@require_auth
@require_permission("MANAGE_CATALOG")
def toggle_product_route(product_id: int):
    product = catalog_service.toggle_product(product_id, user_id=g.current_user.id)
    return jsonify({"product": product.to_dict()}), 200


@catalog_bp.delete("/products/<int:product_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def delete_product_route(product_id: int):
    catalog_service.delete_product(product_id, user_id=g.current_user.id)
    return jsonify({"message": "Product deleted"}), 200


# =============================================================================
# VARIANT TYPES / OPTIONS
# =============================================================================

@catalog_bp.post("/products/<int:product_id>/variant-types")
@require_auth
@require_permission("MANAGE_CATALOG")
def add_variant_type_route(product_id: int):
    data = request.get_json(silent=True) or {}
    variant_type = catalog_service.add_variant_type(product_id, data.get("name"), data.get("options"))
    return jsonify({"variant_type": variant_type.to_dict()}), 201


@catalog_bp.put("/variant-types/<int:type_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def rename_variant_type_route(type_id: int):
    data = request.get_json(silent=True) or {}
    variant_type = catalog_service.rename_variant_type(type_id, data.get("name"))
    return jsonify({"variant_type": variant_type.to_dict()}), 200


@catalog_bp.post("/variant-types/<int:type_id>/options")
@require_auth
@require_permission("MANAGE_CATALOG")
def add_variant_option_route(type_id: int):
    data = request.get_json(silent=True) or {}
    option = catalog_service.add_variant_option(type_id, data.get("value"))
    return jsonify({"option": option.to_dict()}), 201


@catalog_bp.delete("/variant-types/<int:type_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def delete_variant_type_route(type_id: int):
    catalog_service.delete_variant_type(type_id)
    return jsonify({"message": "Variant type deleted"}), 200


# =============================================================================
# VARIANTS
# =============================================================================

@catalog_bp.post("/products/<int:product_id>/variants")
@require_auth
@require_permission("MANAGE_CATALOG")
def create_variant_route(product_id: int):
    """
    Request body:
    {
        "sku": "TSHIRT-RED-M",
        "option_ids": [3, 7],
        "cost_price_cents": 600,
        "selling_price_cents": 1200,
        "min_stock_level": 5
    }

    New variants start with zero stock; stock arrives via stock entries.
    """
    variant = catalog_service.create_variant(
        product_id, request.get_json(silent=True), user_id=g.current_user.id
    )
    return jsonify({"variant": variant.to_dict()}), 201


@catalog_bp.get("/variants/<int:variant_id>")
@require_auth
@require_permission("VIEW_CATALOG")
def get_variant_route(variant_id: int):
    return jsonify({"variant": catalog_service.get_variant(variant_id).to_dict()}), 200


@catalog_bp.put("/variants/<int:variant_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def update_variant_route(variant_id: int):
    variant = catalog_service.update_variant(
        variant_id, request.get_json(silent=True), user_id=g.current_user.id
    )
    return jsonify({"variant": variant.to_dict()}), 200


@catalog_bp.post("/variants/<int:variant_id>/toggle")
@require_auth
@require_permission("MANAGE_CATALOG")
def toggle_variant_route(variant_id: int):
    variant = catalog_service.toggle_variant(variant_id, user_id=g.current_user.id)
    return jsonify({"variant": variant.to_dict()}), 200


@catalog_bp.delete("/variants/<int:variant_id>")
@require_auth
@require_permission("MANAGE_CATALOG")
def delete_variant_route(variant_id: int):
    catalog_service.delete_variant(variant_id, user_id=g.current_user.id)
    return jsonify({"message": "Variant deleted"}), 200


# =============================================================================
# STOCK LEVELS
# =============================================================================

@catalog_bp.get("/stock-levels")
@require_auth
@require_permission("VIEW_STOCK_LEVELS")
def stock_levels_route():
    """Query params: page, filter (all | low | out), search"""
    result = catalog_service.list_stock_levels(
        page=parse_page(request.args.get("page")),
        stock_filter=request.args.get("filter", "all"),
        search=request.args.get("search"),
    )
    result["summary"] = catalog_service.stock_summary()
    return jsonify(result), 200
