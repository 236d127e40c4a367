"""
Sales Service - one-shot sale creation and cancellation

A sale is created COMPLETED in a single transaction: stock check, customer,
invoice number, sale + items, stock decrement and the CREATE_SALE activity
either all commit or none of them do. Cancellation is the only transition
(COMPLETED -> CANCELLED) and restores the sold quantities.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy import or_

from ..errors import (
    InsufficientStockError,
    InvalidStateError,
    MissingReasonError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Customer, Product, ProductVariant, Sale, SaleItem
from ..time_utils import local_day_bounds, utcnow
from ..validation import coerce_int, enforce_money_range, optional_text, parse_discount_bps, require_text
from . import activity_service
from .concurrency import atomic, lock_for_update
from .pagination import paginate
from .sequence_service import SALE, next_document_number
from .settings_service import get_company_profile
from .stock_ledger import adjust_stock, lock_variants


PAYMENT_METHODS = ("CASH", "BANK_TRANSFER", "CREDIT_CARD", "DEBIT_CARD", "EWALLET", "OTHER")

STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELLED = "CANCELLED"
STATUS_VOIDED = "VOIDED"
SALE_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED, STATUS_VOIDED)


@dataclass(frozen=True)
class SaleLineInput:
    variant_id: int
    quantity: int
    unit_price_cents: int | None
    discount_bps: int


def compute_line_amounts(unit_price_cents: int, quantity: int, discount_bps: int) -> tuple[int, int]:
    """
    Return (discount_cents, total_cents) for one sale line.

    The discount is rounded half-up to the cent so that the stored line total
    plus its discount always equals unit price times quantity exactly.
    """
    gross = unit_price_cents * quantity
    discount = (gross * discount_bps + 5_000) // 10_000
    return discount, gross - discount


def _parse_items(items) -> list[SaleLineInput]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    lines = []
    for index, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {index} must be an object")
        if raw.get("variant_id") is None:
            raise ValidationError(f"Item {index}: variant_id is required")
        variant_id = coerce_int(raw.get("variant_id"), "variant_id")
        quantity = coerce_int(raw.get("quantity"), "quantity")
        if quantity < 1:
            raise ValidationError(f"Item {index}: quantity must be at least 1")

        unit_price = raw.get("unit_price_cents")
        if unit_price is not None:
            unit_price = enforce_money_range(coerce_int(unit_price, "unit_price_cents"), "unit_price_cents")

        lines.append(SaleLineInput(
            variant_id=variant_id,
            quantity=quantity,
            unit_price_cents=unit_price,
            discount_bps=parse_discount_bps(raw.get("discount_percent")),
        ))
    return lines


def _requested_by_variant(lines) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.variant_id] = totals.get(line.variant_id, 0) + line.quantity
    return totals


def _resolve_customer(customer_id, name, phone, address) -> Customer:
    if customer_id is not None:
        customer = db.session.query(Customer).filter_by(id=customer_id).first()
        if not customer:
            raise NotFoundError("Customer not found")
        return customer

    customer = Customer(name=name, phone=phone, address=address)
    db.session.add(customer)
    db.session.flush()
    return customer


def create_sale(
    *,
    salesperson_id: int,
    items,
    customer_id=None,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    customer_address: str | None = None,
    payment_method: str = "CASH",
    discount_cents=0,
    notes: str | None = None,
) -> Sale:
    """
    Create a COMPLETED sale and decrement stock for every item.

    Raises:
        ValidationError: malformed input (before any database work)
        NotFoundError: unknown variant or customer
        InsufficientStockError: a variant has less stock than requested
        PersistenceError: the transaction failed and was rolled back
    """
    lines = _parse_items(items)

    if payment_method is None or payment_method == "":
        payment_method = "CASH"
    if not isinstance(payment_method, str):
        raise ValidationError("payment_method must be a string")
    payment_method = payment_method.strip().upper()
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {', '.join(PAYMENT_METHODS)}")

    sale_discount = coerce_int(discount_cents or 0, "discount_cents")
    enforce_money_range(sale_discount, "discount_cents")

    if customer_id is not None and customer_id != "":
        customer_id = coerce_int(customer_id, "customer_id")
    else:
        customer_id = None
        customer_name = require_text(customer_name, "Customer name is required")

    customer_phone = optional_text(customer_phone, "customer_phone")
    customer_address = optional_text(customer_address, "customer_address")
    notes = optional_text(notes, "notes")

    requested = _requested_by_variant(lines)

    with atomic("Failed to create sale"):
        variants = lock_variants(requested)

        # Availability is checked against locked rows; adjust_stock re-checks
        # in its UPDATE so a concurrent writer still cannot oversell.
        for variant_id, quantity in requested.items():
            variant = variants.get(variant_id)
            if variant is None:
                raise NotFoundError(f"Variant {variant_id} not found")
            if not variant.is_active or not variant.product.is_active:
                raise InvalidStateError(f"{variant.sku} is not available for sale")
            if variant.current_stock < quantity:
                raise InsufficientStockError(variant.sku, variant.current_stock, quantity)

        customer = _resolve_customer(
            customer_id,
            customer_name,
            customer_phone,
            customer_address,
        )

        priced = []
        subtotal = 0
        for line in lines:
            variant = variants[line.variant_id]
            unit_price = line.unit_price_cents
            if unit_price is None:
                unit_price = variant.selling_price_cents
            discount, total = compute_line_amounts(unit_price, line.quantity, line.discount_bps)
            subtotal += total
            priced.append((line, unit_price, discount, total))

        if sale_discount > subtotal:
            raise ValidationError("Discount cannot exceed the subtotal")

        profile = get_company_profile()
        sale = Sale(
            invoice_number=next_document_number(SALE, profile.invoice_prefix),
            sale_date=utcnow(),
            customer=customer,
            salesperson_id=salesperson_id,
            subtotal_cents=subtotal,
            discount_cents=sale_discount,
            total_cents=subtotal - sale_discount,
            payment_method=payment_method,
            status=STATUS_COMPLETED,
            notes=notes,
        )
        db.session.add(sale)
        db.session.flush()

        for line, unit_price, discount, total in priced:
            db.session.add(SaleItem(
                sale_id=sale.id,
                variant_id=line.variant_id,
                quantity=line.quantity,
                unit_price_cents=unit_price,
                discount_bps=line.discount_bps,
                discount_cents=discount,
                total_cents=total,
            ))

        for variant_id in sorted(requested):
            adjust_stock(variant_id, -requested[variant_id])

        activity_service.log_activity(
            user_id=salesperson_id,
            action=activity_service.CREATE_SALE,
            entity_type="Sale",
            entity_id=sale.id,
            details={
                "invoice_number": sale.invoice_number,
                "total_cents": sale.total_cents,
                "item_count": len(lines),
            },
        )

    current_app.logger.info(
        "Sale %s created by user %s (total_cents=%s)",
        sale.invoice_number, salesperson_id, sale.total_cents,
    )
    return sale


def cancel_sale(sale_id: int, *, user_id: int, reason: str | None) -> Sale:
    """
    Cancel a COMPLETED sale and restore its quantities to stock.

    Raises MissingReasonError (before any database work), NotFoundError,
    InvalidStateError for a sale that is not COMPLETED.
    """
    reason = optional_text(reason, "reason")
    if reason is None:
        raise MissingReasonError()

    with atomic("Failed to cancel sale"):
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            raise NotFoundError("Sale not found")
        if sale.status != STATUS_COMPLETED:
            raise InvalidStateError(
                f"Only completed sales can be cancelled (status: {sale.status})",
                details={"status": sale.status},
            )

        restore = _requested_by_variant(sale.items)
        lock_variants(restore)
        for variant_id in sorted(restore):
            adjust_stock(variant_id, restore[variant_id])

        sale.status = STATUS_CANCELLED
        sale.cancel_reason = reason
        sale.cancelled_at = utcnow()
        sale.approved_by_id = user_id

        activity_service.log_activity(
            user_id=user_id,
            action=activity_service.CANCEL_SALE,
            entity_type="Sale",
            entity_id=sale.id,
            details={"invoice_number": sale.invoice_number, "reason": reason},
        )

    current_app.logger.info("Sale %s cancelled by user %s", sale.invoice_number, user_id)
    return sale


def get_sale(sale_id: int, *, salesperson_id: int | None = None) -> Sale:
    """Fetch a sale; when salesperson_id is given, other users' sales are hidden."""
    query = db.session.query(Sale).filter(Sale.id == sale_id)
    if salesperson_id is not None:
        query = query.filter(Sale.salesperson_id == salesperson_id)
    sale = query.first()
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def list_sales(
    *,
    page: int = 1,
    date_from: date | None = None,
    date_to: date | None = None,
    salesperson_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
) -> dict:
    query = db.session.query(Sale).join(Customer, Customer.id == Sale.customer_id)

    if date_from:
        start, _ = local_day_bounds(date_from)
        query = query.filter(Sale.sale_date >= start)
    if date_to:
        _, end = local_day_bounds(date_to)
        query = query.filter(Sale.sale_date < end)
    if salesperson_id:
        query = query.filter(Sale.salesperson_id == salesperson_id)
    if status:
        status = status.upper()
        if status not in SALE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(SALE_STATUSES)}")
        query = query.filter(Sale.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Sale.invoice_number.ilike(pattern), Customer.name.ilike(pattern)))

    query = query.order_by(Sale.sale_date.desc(), Sale.id.desc())
    return paginate(query, page=page, serialize=lambda s: s.to_dict(include_items=False))


def list_available_variants(search: str | None = None, limit: int = 50) -> list[dict]:
    """Active variants of active products that have stock on hand."""
    query = (
        db.session.query(ProductVariant)
        .join(Product, Product.id == ProductVariant.product_id)
        .filter(
            ProductVariant.is_active.is_(True),
            Product.is_active.is_(True),
            ProductVariant.current_stock > 0,
        )
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), ProductVariant.sku.ilike(pattern)))

    variants = query.order_by(Product.name.asc(), ProductVariant.sku.asc()).limit(limit).all()
    return [v.to_dict() for v in variants]
