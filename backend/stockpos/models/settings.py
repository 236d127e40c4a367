from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class CompanyProfile(db.Model):
    """
    Single-row company profile.

    The invoice and stock entry prefixes feed document numbering, so changing
    them only affects numbers allocated afterwards.
    """
    __tablename__ = "company_profiles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False, default="My Company")
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    tax_number = db.Column(db.String(64), nullable=True)

    invoice_prefix = db.Column(db.String(10), nullable=False, default="INV")
    stock_entry_prefix = db.Column(db.String(10), nullable=False, default="SE")

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "tax_number": self.tax_number,
            "invoice_prefix": self.invoice_prefix,
            "stock_entry_prefix": self.stock_entry_prefix,
            "updated_at": to_utc_z(self.updated_at),
        }
