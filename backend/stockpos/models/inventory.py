from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_categories_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    A product is never sold directly: every sellable unit is a ProductVariant
    with its own SKU, prices and on-hand stock.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category_active", "category_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)
    image_url = db.Column(db.String(512), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r}>"

    def to_dict(self, include_variants: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "image_url": self.image_url,
            "is_active": self.is_active,
            "variant_count": len(self.variants),
            "total_stock": sum(v.current_stock for v in self.variants),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_variants:
            data["variant_types"] = [t.to_dict() for t in self.variant_types]
            data["variants"] = [v.to_dict() for v in self.variants]
        return data


class VariantType(db.Model):
    """A product-specific axis of variation, e.g. "Size" or "Color"."""
    __tablename__ = "variant_types"
    __table_args__ = (
        db.UniqueConstraint("product_id", "name", name="uq_variant_types_product_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)

    product = db.relationship(
        "Product",
        backref=db.backref("variant_types", lazy=True, order_by="VariantType.id", cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.name,
            "options": [o.to_dict() for o in self.options],
        }


class VariantOption(db.Model):
    __tablename__ = "variant_options"
    __table_args__ = (
        db.UniqueConstraint("variant_type_id", "value", name="uq_variant_options_type_value"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_type_id = db.Column(db.Integer, db.ForeignKey("variant_types.id"), nullable=False, index=True)
    value = db.Column(db.String(64), nullable=False)

    variant_type = db.relationship(
        "VariantType",
        backref=db.backref("options", lazy=True, order_by="VariantOption.id", cascade="all, delete-orphan"),
    )

    def to_dict(self) -> dict:
        return {"id": self.id, "variant_type_id": self.variant_type_id, "value": self.value}


class ProductVariantValue(db.Model):
    """Links a variant to one chosen option per variant type."""
    __tablename__ = "product_variant_values"
    __table_args__ = (
        db.UniqueConstraint("variant_id", "option_id", name="uq_product_variant_values_variant_option"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)
    option_id = db.Column(db.Integer, db.ForeignKey("variant_options.id"), nullable=False, index=True)

    option = db.relationship("VariantOption")


class ProductVariant(db.Model):
    """
    Sellable unit with its own SKU, prices and on-hand stock.

    INVARIANT: current_stock and cost_price_cents are only written by the
    stock ledger (services/stock_ledger.py). current_stock never drops below 0.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_product_variants_sku"),
        db.CheckConstraint("current_stock >= 0", name="current_stock_non_negative"),
        db.Index("ix_product_variants_product_active", "product_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)

    # Authoritative storage in cents
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock_level = db.Column(db.Integer, nullable=False, default=10)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship(
        "Product",
        backref=db.backref("variants", lazy=True, order_by="ProductVariant.id", cascade="all, delete-orphan"),
    )
    values = db.relationship(
        "ProductVariantValue",
        backref="variant",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} sku={self.sku!r} stock={self.current_stock}>"

    @property
    def option_label(self) -> str:
        """Chosen option values in variant type order, e.g. "Red / L"."""
        options = sorted((v.option for v in self.values), key=lambda o: o.variant_type_id)
        return " / ".join(o.value for o in options)

    @property
    def display_name(self) -> str:
        label = self.option_label
        name = self.product.name if self.product else self.sku
        return f"{name} ({label})" if label else name

    @property
    def stock_status(self) -> str:
        if self.current_stock == 0:
            return "OUT"
        if self.current_stock <= self.min_stock_level:
            return "LOW"
        return "OK"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku": self.sku,
            "name": self.display_name,
            "options": self.option_label,
            "option_ids": sorted(v.option_id for v in self.values),
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "current_stock": self.current_stock,
            "min_stock_level": self.min_stock_level,
            "stock_status": self.stock_status,
            "is_active": self.is_active,
        }


class StockEntry(db.Model):
    """
    Stock-in document: goods received into the warehouse.

    Lifecycle: COMPLETED -> CANCELLED (terminal). Cancelling reverses the
    stock increments but never the cost price overwrite.
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.UniqueConstraint("entry_number", name="uq_stock_entries_entry_number"),
        db.Index("ix_stock_entries_status_date", "status", "entry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "SE-250101-0001")
    entry_number = db.Column(db.String(64), nullable=False)
    entry_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    recorded_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="COMPLETED", index=True)
    notes = db.Column(db.Text, nullable=True)

    # Cancellation audit trail
    cancel_reason = db.Column(db.Text, nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    recorded_by = db.relationship("User", foreign_keys=[recorded_by_id])
    cancelled_by = db.relationship("User", foreign_keys=[cancelled_by_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "entry_number": self.entry_number,
            "entry_date": to_utc_z(self.entry_date),
            "recorded_by": self.recorded_by.to_summary() if self.recorded_by else None,
            "status": self.status,
            "notes": self.notes,
            "cancel_reason": self.cancel_reason,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by": self.cancelled_by.to_summary() if self.cancelled_by else None,
            "item_count": len(self.items),
            "total_quantity": self.total_quantity,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class StockEntryItem(db.Model):
    __tablename__ = "stock_entry_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_entry_id = db.Column(db.Integer, db.ForeignKey("stock_entries.id"), nullable=False, index=True)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    cost_price_cents = db.Column(db.Integer, nullable=False)

    stock_entry = db.relationship(
        "StockEntry",
        backref=db.backref("items", lazy=True, order_by="StockEntryItem.id"),
    )
    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "sku": self.variant.sku if self.variant else None,
            "name": self.variant.display_name if self.variant else None,
            "quantity": self.quantity,
            "cost_price_cents": self.cost_price_cents,
            "total_cost_cents": self.quantity * self.cost_price_cents,
        }
