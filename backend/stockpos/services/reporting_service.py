# Overview: Service-layer operations for reporting; dashboard figures and period sales reports.

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Customer, Product, ProductVariant, Sale, SaleItem, StockEntry
from ..time_utils import local_day_bounds, local_today

"""
Only COMPLETED sales count toward any figure here.

Gross profit uses each variant's *current* cost price. Cost price is
overwritten by every stock entry (no weighted average), so a new stock entry
at a different cost changes the reported profit of earlier sales.
"""

PERIODS = ("week", "month", "year")
TOP_LIMIT = 5


def _completed():
    return Sale.status == "COMPLETED"


def _in_range(column, start: datetime, end: datetime):
    return (column >= start) & (column < end)


def _range_from_days(first: date, last_exclusive: date) -> tuple[datetime, datetime]:
    start, _ = local_day_bounds(first)
    end, _ = local_day_bounds(last_exclusive)
    return start, end


def period_bounds(period: str, today: date) -> tuple[tuple[datetime, datetime], tuple[datetime, datetime]]:
    """
    Return ((start, end), (prev_start, prev_end)) as UTC-naive half-open ranges.

    week:  the last 7 days up to the end of today, and the 7 days before that
    month: this calendar month so far, and the whole previous month
    year:  this calendar year so far, and the whole previous year
    """
    tomorrow = today + timedelta(days=1)
    if period == "week":
        first = tomorrow - timedelta(days=7)
        return (
            _range_from_days(first, tomorrow),
            _range_from_days(first - timedelta(days=7), first),
        )
    if period == "month":
        first = today.replace(day=1)
        prev_first = (first - timedelta(days=1)).replace(day=1)
        return _range_from_days(first, tomorrow), _range_from_days(prev_first, first)
    if period == "year":
        first = date(today.year, 1, 1)
        prev_first = date(today.year - 1, 1, 1)
        return _range_from_days(first, tomorrow), _range_from_days(prev_first, first)
    raise ValidationError(f"period must be one of {', '.join(PERIODS)}")


def _sales_totals(start: datetime, end: datetime) -> dict:
    count, revenue, discounts = (
        db.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_cents), 0),
            func.coalesce(func.sum(Sale.discount_cents), 0),
        )
        .filter(_completed(), _in_range(Sale.sale_date, start, end))
        .one()
    )
    return {"count": count, "revenue_cents": int(revenue), "discount_cents": int(discounts)}


def _gross_profit(start: datetime, end: datetime) -> tuple[int, int]:
    """Return (item discounts, gross profit) for completed sales in range."""
    item_discounts, item_revenue, cost = (
        db.session.query(
            func.coalesce(func.sum(SaleItem.discount_cents), 0),
            func.coalesce(func.sum(SaleItem.total_cents), 0),
            func.coalesce(func.sum(ProductVariant.cost_price_cents * SaleItem.quantity), 0),
        )
        .join(Sale, Sale.id == SaleItem.sale_id)
        .join(ProductVariant, ProductVariant.id == SaleItem.variant_id)
        .filter(_completed(), _in_range(Sale.sale_date, start, end))
        .one()
    )
    return int(item_discounts), int(item_revenue) - int(cost)


def _top_products(start: datetime, end: datetime) -> list[dict]:
    rows = (
        db.session.query(
            SaleItem.variant_id,
            func.sum(SaleItem.quantity).label("quantity"),
            func.sum(SaleItem.total_cents).label("revenue"),
        )
        .join(Sale, Sale.id == SaleItem.sale_id)
        .filter(_completed(), _in_range(Sale.sale_date, start, end))
        .group_by(SaleItem.variant_id)
        .order_by(func.sum(SaleItem.quantity).desc(), SaleItem.variant_id.asc())
        .limit(TOP_LIMIT)
        .all()
    )
    variants = {
        v.id: v
        for v in db.session.query(ProductVariant).filter(ProductVariant.id.in_([r.variant_id for r in rows])).all()
    }
    return [
        {
            "variant_id": r.variant_id,
            "sku": variants[r.variant_id].sku,
            "name": variants[r.variant_id].display_name,
            "quantity": int(r.quantity),
            "revenue_cents": int(r.revenue),
        }
        for r in rows
    ]


def _top_customers(start: datetime, end: datetime) -> list[dict]:
    rows = (
        db.session.query(
            Customer.id,
            Customer.name,
            func.count(Sale.id).label("sale_count"),
            func.sum(Sale.total_cents).label("total"),
        )
        .join(Sale, Sale.customer_id == Customer.id)
        .filter(_completed(), _in_range(Sale.sale_date, start, end))
        .group_by(Customer.id, Customer.name)
        .order_by(func.sum(Sale.total_cents).desc(), Customer.id.asc())
        .limit(TOP_LIMIT)
        .all()
    )
    return [
        {"customer_id": r.id, "name": r.name, "sale_count": r.sale_count, "total_cents": int(r.total)}
        for r in rows
    ]


def _by_payment_method(start: datetime, end: datetime) -> list[dict]:
    rows = (
        db.session.query(Sale.payment_method, func.count(Sale.id), func.sum(Sale.total_cents))
        .filter(_completed(), _in_range(Sale.sale_date, start, end))
        .group_by(Sale.payment_method)
        .order_by(Sale.payment_method.asc())
        .all()
    )
    return [{"payment_method": m, "count": c, "total_cents": int(t or 0)} for m, c, t in rows]


def _daily_revenue(today: date, days: int = 7) -> list[dict]:
    out = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        start, end = local_day_bounds(day)
        totals = _sales_totals(start, end)
        out.append({"date": day.isoformat(), "count": totals["count"], "revenue_cents": totals["revenue_cents"]})
    return out


def _percent_change(current: int, previous: int) -> float:
    if previous <= 0:
        return 0.0
    return round((current - previous) * 100 / previous, 1)


def sales_report(period: str = "month", now: datetime | None = None) -> dict:
    period = (period or "month").lower()
    today = local_today(now)
    (start, end), (prev_start, prev_end) = period_bounds(period, today)

    current = _sales_totals(start, end)
    previous = _sales_totals(prev_start, prev_end)
    item_discounts, profit = _gross_profit(start, end)

    return {
        "period": period,
        "current_period": {
            "revenue_cents": current["revenue_cents"],
            "transactions": current["count"],
            "discount_cents": current["discount_cents"],
            "item_discount_cents": item_discounts,
            "gross_profit_cents": profit,
            "average_sale_cents": current["revenue_cents"] // current["count"] if current["count"] else 0,
        },
        "previous_period": {
            "revenue_cents": previous["revenue_cents"],
            "transactions": previous["count"],
        },
        "revenue_change_percent": _percent_change(current["revenue_cents"], previous["revenue_cents"]),
        "top_products": _top_products(start, end),
        "top_customers": _top_customers(start, end),
        "by_payment_method": _by_payment_method(start, end),
        "daily": _daily_revenue(today),
    }


def dashboard_summary(now: datetime | None = None) -> dict:
    today = local_today(now)
    day_start, day_end = local_day_bounds(today)
    month_start, _ = local_day_bounds(today.replace(day=1))

    active_variants = (
        db.session.query(ProductVariant)
        .join(Product, Product.id == ProductVariant.product_id)
        .filter(ProductVariant.is_active.is_(True), Product.is_active.is_(True))
    )
    low_stock = active_variants.filter(ProductVariant.current_stock <= ProductVariant.min_stock_level)

    recent_sales = db.session.query(Sale).order_by(Sale.sale_date.desc(), Sale.id.desc()).limit(5).all()
    recent_entries = (
        db.session.query(StockEntry).order_by(StockEntry.entry_date.desc(), StockEntry.id.desc()).limit(5).all()
    )

    return {
        "product_count": db.session.query(Product).filter(Product.is_active.is_(True)).count(),
        "variant_count": active_variants.count(),
        "low_stock_count": low_stock.count(),
        "low_stock": [
            v.to_dict()
            for v in low_stock.order_by(ProductVariant.current_stock.asc(), ProductVariant.id.asc()).limit(10).all()
        ],
        "today": _sales_totals(day_start, day_end),
        "this_month": _sales_totals(month_start, day_end),
        "recent_sales": [s.to_dict(include_items=False) for s in recent_sales],
        "recent_stock_entries": [e.to_dict(include_items=False) for e in recent_entries],
    }
