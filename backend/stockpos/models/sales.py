from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Sale(db.Model):
    """
    Sale document.

    Sales are created COMPLETED in one transaction (items, stock decrement,
    activity log) and may later move to CANCELLED. Amounts are frozen at
    creation; cancelling restores stock but never rewrites prices.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_number", name="uq_sales_invoice_number"),
        db.Index("ix_sales_status_date", "status", "sale_date"),
        db.Index("ix_sales_salesperson_date", "salesperson_id", "sale_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "INV-250101-0001")
    invoice_number = db.Column(db.String(64), nullable=False)
    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    salesperson_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # All amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(32), nullable=False, default="CASH")

    # COMPLETED, CANCELLED, VOIDED
    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    notes = db.Column(db.Text, nullable=True)

    # Cancellation audit trail
    cancel_reason = db.Column(db.Text, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))
    salesperson = db.relationship("User", foreign_keys=[salesperson_id])
    approved_by = db.relationship("User", foreign_keys=[approved_by_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "sale_date": to_utc_z(self.sale_date),
            "customer": self.customer.to_summary() if self.customer else None,
            "salesperson": self.salesperson.to_summary() if self.salesperson else None,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "payment_method": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "cancel_reason": self.cancel_reason,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "approved_by": self.approved_by.to_summary() if self.approved_by else None,
            "item_count": len(self.items),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """Individual line on a sale; prices are frozen at sale time."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        db.CheckConstraint("discount_bps >= 0 AND discount_bps <= 10000", name="discount_bps_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    # Discount percent in basis points (1250 == 12.5%)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "sku": self.variant.sku if self.variant else None,
            "name": self.variant.display_name if self.variant else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_bps": self.discount_bps,
            "discount_percent": self.discount_bps / 100,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }
