# Overview: Service-layer operations for the activity log; append-only audit trail.

from __future__ import annotations

import json

from ..extensions import db
from ..models import ActivityLog

"""
Activity log invariants (authoritative)

- Append-only: rows are added, never updated or deleted.
- Rows are written inside the same transaction as the change they record,
  so a rolled-back sale leaves no CREATE_SALE entry behind.
- No domain logic here.
"""

CREATE_SALE = "CREATE_SALE"
CANCEL_SALE = "CANCEL_SALE"
CREATE_STOCK_ENTRY = "CREATE_STOCK_ENTRY"
CANCEL_STOCK_ENTRY = "CANCEL_STOCK_ENTRY"
UPDATE_COMPANY_PROFILE = "UPDATE_COMPANY_PROFILE"
CREATE_PRODUCT = "CREATE_PRODUCT"
UPDATE_PRODUCT = "UPDATE_PRODUCT"
DELETE_PRODUCT = "DELETE_PRODUCT"
CREATE_VARIANT = "CREATE_VARIANT"
UPDATE_VARIANT = "UPDATE_VARIANT"
DELETE_VARIANT = "DELETE_VARIANT"
CREATE_USER = "CREATE_USER"
UPDATE_USER = "UPDATE_USER"
ACTIVATE_USER = "ACTIVATE_USER"
DEACTIVATE_USER = "DEACTIVATE_USER"
RESET_PASSWORD = "RESET_PASSWORD"


def log_activity(
    *,
    user_id: int,
    action: str,
    entity_type: str,
    entity_id,
    details: dict | None = None,
) -> ActivityLog:
    entry = ActivityLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details=json.dumps(details, sort_keys=True) if details else None,
    )
    db.session.add(entry)
    return entry


def list_activity(
    *,
    limit: int = 10,
    user_id: int | None = None,
    action: str | None = None,
    entity_type: str | None = None,
) -> list[dict]:
    query = db.session.query(ActivityLog)
    if user_id:
        query = query.filter(ActivityLog.user_id == user_id)
    if action:
        query = query.filter(ActivityLog.action == action)
    if entity_type:
        query = query.filter(ActivityLog.entity_type == entity_type)

    limit = min(max(limit, 1), 100)
    rows = query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit).all()
    return [row.to_dict() for row in rows]
