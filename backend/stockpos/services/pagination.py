# Overview: Page-number pagination shared by list endpoints.

from __future__ import annotations

from typing import Callable

from flask import current_app, has_app_context


def default_page_size() -> int:
    if has_app_context():
        return int(current_app.config.get("PAGE_SIZE", 10))
    return 10


def paginate(query, *, page: int = 1, per_page: int | None = None, serialize: Callable | None = None) -> dict:
    """
    Return {"items", "count", "pagination"} for an ordered query.

    page is 1-indexed; values below 1 are treated as 1.
    """
    per_page = min(per_page or default_page_size(), 100)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()
    serialize = serialize or (lambda row: row.to_dict())

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
