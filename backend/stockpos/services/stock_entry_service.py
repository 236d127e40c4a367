# Overview: Service-layer operations for stock entries; receiving goods and reversing them.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from flask import current_app
from sqlalchemy import or_

from ..errors import (
    CannotReverseError,
    InsufficientStockError,
    InvalidStateError,
    MissingReasonError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Product, ProductVariant, StockEntry, StockEntryItem
from ..time_utils import local_day_bounds, utcnow
from ..validation import coerce_int, enforce_money_range, optional_text
from . import activity_service
from .concurrency import atomic, lock_for_update
from .pagination import paginate
from .sequence_service import STOCK_ENTRY, next_document_number
from .settings_service import get_company_profile
from .stock_ledger import adjust_stock, lock_variants, set_cost_price


STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELLED = "CANCELLED"
ENTRY_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)


@dataclass(frozen=True)
class StockEntryLineInput:
    variant_id: int
    quantity: int
    cost_price_cents: int


def _parse_items(items) -> list[StockEntryLineInput]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")

    lines = []
    for index, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {index} must be an object")
        if raw.get("variant_id") is None:
            raise ValidationError(f"Item {index}: variant_id is required")
        if raw.get("cost_price_cents") is None:
            raise ValidationError(f"Item {index}: cost_price_cents is required")
        quantity = coerce_int(raw.get("quantity"), "quantity")
        if quantity < 1:
            raise ValidationError(f"Item {index}: quantity must be at least 1")
        lines.append(StockEntryLineInput(
            variant_id=coerce_int(raw.get("variant_id"), "variant_id"),
            quantity=quantity,
            cost_price_cents=enforce_money_range(
                coerce_int(raw.get("cost_price_cents"), "cost_price_cents"),
                "cost_price_cents",
            ),
        ))
    return lines


def _quantity_by_variant(lines) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        totals[line.variant_id] = totals.get(line.variant_id, 0) + line.quantity
    return totals


def create_stock_entry(*, recorded_by_id: int, items, notes: str | None = None) -> StockEntry:
    """
    Record incoming stock.

    Each item adds its quantity to the variant and overwrites the variant's
    cost price; when a variant appears twice the later item's cost wins.
    There is no upper bound on incoming stock.
    """
    lines = _parse_items(items)
    received = _quantity_by_variant(lines)
    notes = optional_text(notes, "notes")

    with atomic("Failed to create stock entry"):
        variants = lock_variants(received)
        for variant_id in received:
            if variant_id not in variants:
                raise NotFoundError(f"Variant {variant_id} not found")

        profile = get_company_profile()
        entry = StockEntry(
            entry_number=next_document_number(STOCK_ENTRY, profile.stock_entry_prefix),
            entry_date=utcnow(),
            recorded_by_id=recorded_by_id,
            status=STATUS_COMPLETED,
            notes=notes,
        )
        db.session.add(entry)
        db.session.flush()

        for line in lines:
            db.session.add(StockEntryItem(
                stock_entry_id=entry.id,
                variant_id=line.variant_id,
                quantity=line.quantity,
                cost_price_cents=line.cost_price_cents,
            ))
            adjust_stock(line.variant_id, line.quantity)
            set_cost_price(line.variant_id, line.cost_price_cents)

        activity_service.log_activity(
            user_id=recorded_by_id,
            action=activity_service.CREATE_STOCK_ENTRY,
            entity_type="StockEntry",
            entity_id=entry.id,
            details={
                "entry_number": entry.entry_number,
                "item_count": len(lines),
                "total_quantity": sum(received.values()),
            },
        )

    current_app.logger.info(
        "Stock entry %s recorded by user %s (%s units)",
        entry.entry_number, recorded_by_id, sum(received.values()),
    )
    return entry


def cancel_stock_entry(entry_id: int, *, user_id: int, reason: str | None) -> StockEntry:
    """
    Cancel a COMPLETED stock entry by removing its quantities again.

    Refused with CannotReverseError when stock from the entry has already
    been sold, i.e. a variant now holds less than the entry added. The cost
    price overwrite is not undone.
    """
    reason = optional_text(reason, "reason")
    if reason is None:
        raise MissingReasonError()

    with atomic("Failed to cancel stock entry"):
        entry = lock_for_update(db.session.query(StockEntry).filter_by(id=entry_id)).first()
        if not entry:
            raise NotFoundError("Stock entry not found")
        if entry.status != STATUS_COMPLETED:
            raise InvalidStateError(
                f"Only completed stock entries can be cancelled (status: {entry.status})",
                details={"status": entry.status},
            )

        reverse = _quantity_by_variant(entry.items)
        variants = lock_variants(reverse)

        shortfalls = []
        for variant_id in sorted(reverse):
            variant = variants[variant_id]
            if variant.current_stock < reverse[variant_id]:
                shortfalls.append({
                    "sku": variant.sku,
                    "current_stock": variant.current_stock,
                    "entry_quantity": reverse[variant_id],
                })
        if shortfalls:
            first = shortfalls[0]
            raise CannotReverseError(
                f"Cannot cancel: stock of {first['sku']} has already been used "
                f"(current {first['current_stock']}, entry {first['entry_quantity']})",
                details={"items": shortfalls},
            )

        for variant_id in sorted(reverse):
            try:
                adjust_stock(variant_id, -reverse[variant_id])
            except InsufficientStockError as exc:
                raise CannotReverseError(exc.message, details=exc.details) from exc

        entry.status = STATUS_CANCELLED
        entry.cancel_reason = reason
        entry.cancelled_at = utcnow()
        entry.cancelled_by_id = user_id

        activity_service.log_activity(
            user_id=user_id,
            action=activity_service.CANCEL_STOCK_ENTRY,
            entity_type="StockEntry",
            entity_id=entry.id,
            details={"entry_number": entry.entry_number, "reason": reason},
        )

    current_app.logger.info("Stock entry %s cancelled by user %s", entry.entry_number, user_id)
    return entry


def get_stock_entry(entry_id: int) -> StockEntry:
    entry = db.session.query(StockEntry).filter_by(id=entry_id).first()
    if not entry:
        raise NotFoundError("Stock entry not found")
    return entry


def list_stock_entries(
    *,
    page: int = 1,
    date_from: date | None = None,
    date_to: date | None = None,
    status: str | None = None,
    search: str | None = None,
    recorded_by_id: int | None = None,
) -> dict:
    query = db.session.query(StockEntry)

    if date_from:
        start, _ = local_day_bounds(date_from)
        query = query.filter(StockEntry.entry_date >= start)
    if date_to:
        _, end = local_day_bounds(date_to)
        query = query.filter(StockEntry.entry_date < end)
    if status:
        status = status.upper()
        if status not in ENTRY_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(ENTRY_STATUSES)}")
        query = query.filter(StockEntry.status == status)
    if recorded_by_id:
        query = query.filter(StockEntry.recorded_by_id == recorded_by_id)
    if search:
        query = query.filter(StockEntry.entry_number.ilike(f"%{search.strip()}%"))

    query = query.order_by(StockEntry.entry_date.desc(), StockEntry.id.desc())
    return paginate(query, page=page, serialize=lambda e: e.to_dict(include_items=False))


def list_variants_for_stock_entry(search: str | None = None, limit: int = 50) -> list[dict]:
    """Active variants of active products, regardless of stock."""
    query = (
        db.session.query(ProductVariant)
        .join(Product, Product.id == ProductVariant.product_id)
        .filter(ProductVariant.is_active.is_(True), Product.is_active.is_(True))
    )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), ProductVariant.sku.ilike(pattern)))

    variants = query.order_by(Product.name.asc(), ProductVariant.sku.asc()).limit(limit).all()
    return [v.to_dict() for v in variants]
