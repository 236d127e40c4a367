from __future__ import annotations

import json

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class ActivityLog(db.Model):
    """
    Append-only audit trail of business actions.

    Rows are written in the same transaction as the change they describe and
    are never updated or deleted.
    """
    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("ix_activity_logs_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # e.g., CREATE_SALE, CANCEL_STOCK_ENTRY
    action = db.Column(db.String(64), nullable=False, index=True)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.String(64), nullable=False)

    # JSON text; keep small
    details = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user": self.user.to_summary() if self.user else None,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": json.loads(self.details) if self.details else None,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Per-day document counters.

    One row per (document_type, prefix, day). next_number is the number the
    next allocation will hand out; it only ever grows.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "prefix", "day", name="uq_document_sequences_type_prefix_day"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    prefix = db.Column(db.String(10), nullable=False)
    # YYMMDD in the business timezone
    day = db.Column(db.String(6), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "prefix": self.prefix,
            "day": self.day,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
