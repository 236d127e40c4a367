# Overview: Service-layer operations for customers; CRUD, lookup and purchase statistics.

from __future__ import annotations

from sqlalchemy import func, or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Sale
from ..time_utils import to_utc_z
from ..validation import ModelValidationPolicy, validate_payload
from .concurrency import atomic
from .pagination import paginate


CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address", "notes"},
    required_on_create={"name"},
)


def _scoped_query(salesperson_id: int | None):
    """
    Base customer query. With salesperson_id, only customers that user has
    sold to are visible.
    """
    query = db.session.query(Customer)
    if salesperson_id is not None:
        sold_to = db.session.query(Sale.customer_id).filter(Sale.salesperson_id == salesperson_id)
        query = query.filter(Customer.id.in_(sold_to))
    return query


def _search_filter(query, search: str | None):
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Customer.phone.ilike(pattern),
            Customer.email.ilike(pattern),
        ))
    return query


def list_customers(*, page: int = 1, search: str | None = None, salesperson_id: int | None = None) -> dict:
    query = _search_filter(_scoped_query(salesperson_id), search)
    query = query.order_by(Customer.created_at.desc(), Customer.id.desc())
    return paginate(query, page=page)


def search_customers(term: str | None, *, salesperson_id: int | None = None, limit: int = 10) -> list[dict]:
    """Autocomplete lookup used by the sale form."""
    if not term or not term.strip():
        return []
    query = _search_filter(_scoped_query(salesperson_id), term)
    return [c.to_summary() for c in query.order_by(Customer.name.asc()).limit(limit).all()]


def get_customer(customer_id: int, *, salesperson_id: int | None = None) -> Customer:
    customer = _scoped_query(salesperson_id).filter(Customer.id == customer_id).first()
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def customer_stats(customer_id: int) -> dict:
    """Purchase totals over COMPLETED sales only."""
    count, total = (
        db.session.query(func.count(Sale.id), func.coalesce(func.sum(Sale.total_cents), 0))
        .filter(Sale.customer_id == customer_id, Sale.status == "COMPLETED")
        .one()
    )
    last_sale = (
        db.session.query(func.max(Sale.sale_date))
        .filter(Sale.customer_id == customer_id, Sale.status == "COMPLETED")
        .scalar()
    )
    recent = (
        db.session.query(Sale)
        .filter(Sale.customer_id == customer_id)
        .order_by(Sale.sale_date.desc(), Sale.id.desc())
        .limit(10)
        .all()
    )
    return {
        "sale_count": count,
        "total_spent_cents": int(total),
        "last_sale_date": to_utc_z(last_sale),
        "recent_sales": [s.to_dict(include_items=False) for s in recent],
    }


def create_customer(payload: dict) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)

    with atomic("Failed to create customer"):
        customer = Customer(**patch)
        db.session.add(customer)

    return customer


def update_customer(customer_id: int, payload: dict, *, salesperson_id: int | None = None) -> Customer:
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    if not patch:
        raise ValidationError("No fields to update")

    with atomic("Failed to update customer"):
        customer = get_customer(customer_id, salesperson_id=salesperson_id)
        for key, value in patch.items():
            setattr(customer, key, value)

    return customer
