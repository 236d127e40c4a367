# backend/stockpos/services/catalog_service.py
"""
Catalog Service: categories, products, variant types/options and variants.

Stock quantity and cost price are never edited here: stock only moves through
sales and stock entries (services/stock_ledger.py). A new variant starts at
zero stock with its initial cost price.

Deleting anything with sales or stock entry history is refused; deactivate
it instead so historical documents keep their references.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Category,
    Product,
    ProductVariant,
    ProductVariantValue,
    SaleItem,
    StockEntryItem,
    VariantOption,
    VariantType,
)
from ..validation import (
    ModelValidationPolicy,
    coerce_int,
    enforce_rules_variant,
    require_text,
    validate_payload,
)
from . import activity_service
from .concurrency import atomic
from .pagination import paginate


CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "is_active"},
    required_on_create={"name"},
)
PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category_id", "image_url", "is_active"},
    required_on_create={"name", "category_id"},
)
VARIANT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "cost_price_cents", "selling_price_cents", "min_stock_level", "is_active"},
    required_on_create={"sku", "selling_price_cents"},
)
# cost_price_cents is owned by stock entries once the variant exists
VARIANT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "selling_price_cents", "min_stock_level", "is_active"},
)

STOCK_FILTERS = ("all", "low", "out")


def _split_payload(payload, *keys) -> tuple[dict, dict]:
    """Separate non-column keys (e.g. option_ids) from a JSON payload."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    extras = {k: payload[k] for k in keys if k in payload}
    rest = {k: v for k, v in payload.items() if k not in keys}
    return rest, extras


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories(*, include_inactive: bool = False) -> list[dict]:
    query = db.session.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    counts = dict(
        db.session.query(Product.category_id, func.count(Product.id))
        .group_by(Product.category_id)
        .all()
    )
    rows = []
    for category in query.order_by(Category.name.asc()).all():
        data = category.to_dict()
        data["product_count"] = counts.get(category.id, 0)
        rows.append(data)
    return rows


def create_category(payload: dict) -> Category:
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)

    with atomic("Failed to create category"):
        existing = (
            db.session.query(Category)
            .filter(func.lower(Category.name) == patch["name"].lower())
            .first()
        )
        if existing:
            raise ConflictError("A category with this name already exists")
        category = Category(**patch)
        db.session.add(category)

    return category


def delete_category(category_id: int) -> None:
    with atomic("Failed to delete category"):
        category = db.session.query(Category).filter_by(id=category_id).first()
        if not category:
            raise NotFoundError("Category not found")
        in_use = db.session.query(Product.id).filter(Product.category_id == category_id).first()
        if in_use:
            raise ConflictError("Category still has products")
        db.session.delete(category)


# =============================================================================
# PRODUCTS
# =============================================================================

def _require_category(category_id: int) -> Category:
    category = db.session.query(Category).filter_by(id=category_id).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


def _parse_variant_types(raw_types) -> list[tuple[str, list[str]]]:
    if raw_types is None:
        return []
    if not isinstance(raw_types, list):
        raise ValidationError("variant_types must be a list")
    parsed = []
    seen = set()
    for raw in raw_types:
        if not isinstance(raw, dict):
            raise ValidationError("Each variant type must be an object")
        name = require_text(raw.get("name"), "Variant type name is required")
        if name.lower() in seen:
            raise ValidationError(f"Duplicate variant type: {name}")
        seen.add(name.lower())
        parsed.append((name, _parse_option_values(raw.get("options"))))
    return parsed


def _parse_option_values(values) -> list[str]:
    if not isinstance(values, list) or not values:
        raise ValidationError("At least one option is required")
    cleaned = []
    for value in values:
        value = require_text(value, "Option value cannot be blank")
        if value.lower() in (v.lower() for v in cleaned):
            raise ValidationError(f"Duplicate option: {value}")
        cleaned.append(value)
    return cleaned


def list_products(
    *,
    page: int = 1,
    search: str | None = None,
    category_id: int | None = None,
    active: bool | None = None,
) -> dict:
    query = db.session.query(Product)
    if search:
        query = query.filter(Product.name.ilike(f"%{search.strip()}%"))
    if category_id:
        query = query.filter(Product.category_id == category_id)
    if active is not None:
        query = query.filter(Product.is_active.is_(active))

    query = query.order_by(Product.created_at.desc(), Product.id.desc())
    return paginate(query, page=page)


def get_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def create_product(payload: dict, *, user_id: int) -> Product:
    """
    Create a product, optionally with its variant types in one go:
    {"name": ..., "category_id": ..., "variant_types": [{"name": "Size", "options": ["S", "M"]}]}
    """
    payload, extras = _split_payload(payload, "variant_types")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    variant_types = _parse_variant_types(extras.get("variant_types"))

    with atomic("Failed to create product"):
        _require_category(patch["category_id"])
        product = Product(**patch)
        db.session.add(product)
        db.session.flush()

        for name, options in variant_types:
            variant_type = VariantType(product=product, name=name)
            variant_type.options = [VariantOption(value=value) for value in options]
            db.session.add(variant_type)

        activity_service.log_activity(
            user_id=user_id,
            action=activity_service.CREATE_PRODUCT,
            entity_type="Product",
            entity_id=product.id,
            details={"name": product.name},
        )

    current_app.logger.info("Product %s created by user %s", product.id, user_id)
    return product


def update_product(product_id: int, payload: dict, *, user_id: int) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    if not patch:
        raise ValidationError("No fields to update")

    with atomic("Failed to update product"):
        product = get_product(product_id)
        if "category_id" in patch:
            _require_category(patch["category_id"])
        for key, value in patch.items():
            setattr(product, key, value)
        activity_service.log_activity(
            user_id=user_id,
            action=activity_service.UPDATE_PRODUCT,
            entity_type="Product",
            entity_id=product.id,
            details={"fields": sorted(patch)},
        )

    return product


def toggle_product(product_id: int, *, user_id: int) -> Product:
    with atomic("Failed to update product"):
        product = get_product(product_id)
        product.is_active = not product.is_active
        activity_service.log_activity(
            user_id=user_id,
            action=activity_service.UPDATE_PRODUCT,
            entity_type="Product",
            entity_id=product.id,
            details={"is_active": product.is_active},
        )
    return product


def _variants_with_history(variant_ids: list[int]) -> bool:
    if not variant_ids:
        return False
    sold = db.session.query(SaleItem.id).filter(SaleItem.variant_id.in_(variant_ids)).first()
    received = db.session.query(StockEntryItem.id).filter(StockEntryItem.variant_id.in_(variant_ids)).first()
    return bool(sold or received)


def delete_product(product_id: int, *, user_id: int) -> None:
    with atomic("Failed to delete product"):
        product = get_product(product_id)
        variant_ids = [v.id for v in product.variants]
        if _variants_with_history(variant_ids):
            raise ConflictError(
                "Product has sales or stock entry history; deactivate it instead"
            )

        # Variants, variant types and their options cascade with the product
        db.session.delete(product)

        activity_service.log_activity(
            user_id=user_id,
            action=activity_service.DELETE_PRODUCT,
            entity_type="Product",
            entity_id=product_id,
            details={"name": product.name},
        )

    current_app.logger.info("Product %s deleted by user %s", product_id, user_id)


# =============================================================================
# VARIANT TYPES / OPTIONS
# =============================================================================

def _get_variant_type(type_id: int) -> VariantType:
    variant_type = db.session.query(VariantType).filter_by(id=type_id).first()
    if not variant_type:
        raise NotFoundError("Variant type not found")
    return variant_type


def _type_name_taken(product_id: int, name: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(VariantType.id).filter(
        VariantType.product_id == product_id,
        func.lower(VariantType.name) == name.lower(),
    )
    if exclude_id:
        query = query.filter(VariantType.id != exclude_id)
    return query.first() is not None


def add_variant_type(product_id: int, name, options) -> VariantType:
    name = require_text(name, "Variant type name is required")
    values = _parse_option_values(options)

    with atomic("Failed to add variant type"):
        product = get_product(product_id)
        if _type_name_taken(product_id, name):
            raise ConflictError(f"Variant type '{name}' already exists for this product")
        variant_type = VariantType(product=product, name=name)
        variant_type.options = [VariantOption(value=value) for value in values]
        db.session.add(variant_type)

    return variant_type


def rename_variant_type(type_id: int, name) -> VariantType:
    name = require_text(name, "Variant type name is required")

    with atomic("Failed to rename variant type"):
        variant_type = _get_variant_type(type_id)
        if _type_name_taken(variant_type.product_id, name, exclude_id=type_id):
            raise ConflictError(f"Variant type '{name}' already exists for this product")
        variant_type.name = name

    return variant_type


def add_variant_option(type_id: int, value) -> VariantOption:
    value = require_text(value, "Option value cannot be blank")

    with atomic("Failed to add option"):
        variant_type = _get_variant_type(type_id)
        if any(o.value.lower() == value.lower() for o in variant_type.options):
            raise ConflictError(f"Option '{value}' already exists")
        option = VariantOption(variant_type=variant_type, value=value)
        db.session.add(option)

    return option


def delete_variant_type(type_id: int) -> None:
    with atomic("Failed to delete variant type"):
        variant_type = _get_variant_type(type_id)
        option_ids = [o.id for o in variant_type.options]
        if option_ids:
            in_use = (
                db.session.query(ProductVariantValue.id)
                .filter(ProductVariantValue.option_id.in_(option_ids))
                .first()
            )
            if in_use:
                raise ConflictError("Variant type is used by existing variants")
        db.session.delete(variant_type)


# =============================================================================
# VARIANTS
# =============================================================================

def get_variant(variant_id: int) -> ProductVariant:
    variant = db.session.query(ProductVariant).filter_by(id=variant_id).first()
    if not variant:
        raise NotFoundError("Variant not found")
    return variant


def _sku_taken(sku: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(ProductVariant.id).filter(func.lower(ProductVariant.sku) == sku.lower())
    if exclude_id:
        query = query.filter(ProductVariant.id != exclude_id)
    return query.first() is not None


def _resolve_option_ids(product: Product, raw_option_ids) -> list[int]:
    """
    Validate that the chosen options cover each of the product's variant
    types exactly once.
    """
    if raw_option_ids is None:
        raw_option_ids = []
    if not isinstance(raw_option_ids, list):
        raise ValidationError("option_ids must be a list")
    option_ids = sorted({coerce_int(v, "option_ids") for v in raw_option_ids})

    options_by_type: dict[int, int] = {}
    known = {o.id: t.id for t in product.variant_types for o in t.options}
    for option_id in option_ids:
        type_id = known.get(option_id)
        if type_id is None:
            raise ValidationError(f"Option {option_id} does not belong to this product")
        if type_id in options_by_type:
            raise ValidationError("Only one option per variant type is allowed")
        options_by_type[type_id] = option_id

    if len(options_by_type) != len(product.variant_types):
        raise ValidationError("Choose one option for each variant type")
    return option_ids


def create_variant(product_id: int, payload: dict, *, user_id: int) -> ProductVariant:
    payload, extras = _split_payload(payload, "option_ids")
    patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_CREATE_POLICY, partial=False)
    enforce_rules_variant(patch)

    with atomic("Failed to create variant"):
        product = get_product(product_id)
        option_ids = _resolve_option_ids(product, extras.get("option_ids"))

        if _sku_taken(patch["sku"]):
            raise ConflictError("SKU already exists")
        for existing in product.variants:
            if sorted(v.option_id for v in existing.values) == option_ids:
                raise ConflictError(
                    f"A variant with these options already exists ({existing.sku})"
                )

        variant = ProductVariant(product=product, current_stock=0, **patch)
        variant.values = [ProductVariantValue(option_id=option_id) for option_id in option_ids]
        db.session.add(variant)
        db.session.flush()

        activity_service.log_activity(
            user_id=user_id,
            action=activity_service.CREATE_VARIANT,
            entity_type="ProductVariant",
            entity_id=variant.id,
            details={"sku": variant.sku},
        )

    current_app.logger.info("Variant %s created by user %s", variant.sku, user_id)
    return variant


def update_variant(variant_id: int, payload: dict, *, user_id: int) -> ProductVariant:
    patch = validate_payload(model=ProductVariant, payload=payload, policy=VARIANT_UPDATE_POLICY, partial=True)
    if not patch:
        raise ValidationError("No fields to update")
    enforce_rules_variant(patch)

    with atomic("Failed to update variant"):
        variant = get_variant(variant_id)
        if "sku" in patch and _sku_taken(patch["sku"], exclude_id=variant.id):
            raise ConflictError("SKU already exists")
        for key, value in patch.items():
            setattr(variant, key, value)
        activity_service.log_activity(
            user_id=user_id,
            action=activity_service.UPDATE_VARIANT,
            entity_type="ProductVariant",
            entity_id=variant.id,
            details={"fields": sorted(patch)},
        )

    return variant


def toggle_variant(variant_id: int, *, user_id: int) -> ProductVariant:
    with atomic("Failed to update variant"):
        variant = get_variant(variant_id)
        variant.is_active = not variant.is_active
        activity_service.log_activity(
            user_id=user_id,
            action=activity_service.UPDATE_VARIANT,
            entity_type="ProductVariant",
            entity_id=variant.id,
            details={"is_active": variant.is_active},
        )
    return variant


def delete_variant(variant_id: int, *, user_id: int) -> None:
    with atomic("Failed to delete variant"):
        variant = get_variant(variant_id)
        if _variants_with_history([variant.id]):
            raise ConflictError("Variant has sales or stock entry history; deactivate it instead")
        sku = variant.sku
        db.session.delete(variant)
        activity_service.log_activity(
            user_id=user_id,
            action=activity_service.DELETE_VARIANT,
            entity_type="ProductVariant",
            entity_id=variant_id,
            details={"sku": sku},
        )


# =============================================================================
# STOCK LEVELS
# =============================================================================

def _stock_level_query():
    return (
        db.session.query(ProductVariant)
        .join(Product, Product.id == ProductVariant.product_id)
        .filter(ProductVariant.is_active.is_(True), Product.is_active.is_(True))
    )


def list_stock_levels(*, page: int = 1, stock_filter: str = "all", search: str | None = None) -> dict:
    """
    low: at or below the variant's minimum level (out-of-stock included)
    out: nothing on hand
    """
    stock_filter = (stock_filter or "all").lower()
    if stock_filter not in STOCK_FILTERS:
        raise ValidationError(f"filter must be one of {', '.join(STOCK_FILTERS)}")

    query = _stock_level_query()
    if stock_filter == "low":
        query = query.filter(ProductVariant.current_stock <= ProductVariant.min_stock_level)
    elif stock_filter == "out":
        query = query.filter(ProductVariant.current_stock == 0)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), ProductVariant.sku.ilike(pattern)))

    query = query.order_by(ProductVariant.current_stock.asc(), ProductVariant.sku.asc())
    return paginate(query, page=page)


def stock_summary() -> dict:
    base = _stock_level_query()
    return {
        "total": base.count(),
        "low": base.filter(ProductVariant.current_stock <= ProductVariant.min_stock_level).count(),
        "out": base.filter(ProductVariant.current_stock == 0).count(),
    }
