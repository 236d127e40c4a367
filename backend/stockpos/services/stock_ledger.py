# Overview: Service-layer operations for on-hand stock; the only writer of variant stock and cost price.

from __future__ import annotations

from typing import Iterable

from sqlalchemy import update

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import ProductVariant
from .concurrency import lock_for_update

"""
Stock ledger invariants (authoritative)

- ProductVariant.current_stock is only changed through adjust_stock().
- ProductVariant.cost_price_cents is only changed through set_cost_price().
- current_stock never goes below zero: the guard is part of the UPDATE
  statement itself, so a concurrent writer cannot slip between check and act.
- Nothing here commits. Callers own the transaction (see concurrency.atomic).
"""


def _expire_cached(variant_id: int, *attrs: str) -> None:
    # Bulk UPDATEs bypass the identity map; drop stale attribute values
    key = db.session.identity_key(ProductVariant, variant_id)
    variant = db.session.identity_map.get(key)
    if variant is not None:
        db.session.expire(variant, list(attrs))


def get_on_hand(variant_id: int) -> int:
    on_hand = (
        db.session.query(ProductVariant.current_stock)
        .filter(ProductVariant.id == variant_id)
        .scalar()
    )
    if on_hand is None:
        raise NotFoundError(f"Variant {variant_id} not found")
    return on_hand


def lock_variants(variant_ids: Iterable[int]) -> dict[int, ProductVariant]:
    """
    Lock variants FOR UPDATE in ascending id order and return them by id.

    A fixed lock order keeps two coordinators touching the same variants
    from deadlocking. Missing ids are simply absent from the result.
    """
    ids = sorted(set(variant_ids))
    if not ids:
        return {}
    query = (
        db.session.query(ProductVariant)
        .filter(ProductVariant.id.in_(ids))
        .order_by(ProductVariant.id.asc())
        .populate_existing()
    )
    return {v.id: v for v in lock_for_update(query).all()}


def adjust_stock(variant_id: int, delta: int) -> int:
    """
    Add `delta` (may be negative) to a variant's on-hand stock.

    Returns the new on-hand quantity. Raises InsufficientStockError when the
    result would be negative and NotFoundError for an unknown variant.
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer")
    if delta == 0:
        return get_on_hand(variant_id)

    stmt = (
        update(ProductVariant)
        .where(
            ProductVariant.id == variant_id,
            ProductVariant.current_stock + delta >= 0,
        )
        .values(current_stock=ProductVariant.current_stock + delta)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)

    if not result.rowcount:
        row = (
            db.session.query(ProductVariant.sku, ProductVariant.current_stock)
            .filter(ProductVariant.id == variant_id)
            .first()
        )
        if row is None:
            raise NotFoundError(f"Variant {variant_id} not found")
        raise InsufficientStockError(row.sku, row.current_stock, -delta)

    _expire_cached(variant_id, "current_stock")
    return get_on_hand(variant_id)


def set_cost_price(variant_id: int, cost_price_cents: int) -> None:
    """
    Overwrite the variant's cost basis (last write wins).

    Only the stock entry coordinator calls this. Reports compute profit from
    the current value, so a new stock entry changes the profit of past sales.
    """
    if isinstance(cost_price_cents, bool) or not isinstance(cost_price_cents, int) or cost_price_cents < 0:
        raise ValidationError("cost_price_cents must be a non-negative integer")

    stmt = (
        update(ProductVariant)
        .where(ProductVariant.id == variant_id)
        .values(cost_price_cents=cost_price_cents)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise NotFoundError(f"Variant {variant_id} not found")
    _expire_cached(variant_id, "cost_price_cents")
