from .settings import CompanyProfile
from .auth import User, SessionToken
from .inventory import (
    Category, Product, VariantType, VariantOption, ProductVariantValue, ProductVariant,
    StockEntry, StockEntryItem,
)
from .customers import Customer
from .sales import Sale, SaleItem
from .documents import ActivityLog, DocumentSequence

__all__ = [
    'CompanyProfile',
    'User', 'SessionToken',
    'Category', 'Product', 'VariantType', 'VariantOption', 'ProductVariantValue', 'ProductVariant',
    'StockEntry', 'StockEntryItem',
    'Customer',
    'Sale', 'SaleItem',
    'ActivityLog', 'DocumentSequence',
]
