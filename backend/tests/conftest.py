"""
Pytest fixtures for stockpos backend tests.

Provides the application on an in-memory database, one user per role,
bearer-token headers, and a small catalog with stock on hand.
"""

import pytest

from stockpos import create_app
from stockpos import permissions
from stockpos.config import TestConfig
from stockpos.extensions import db
from stockpos.models import ProductVariant
from stockpos.services import catalog_service, session_service, stock_entry_service, user_service


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh data for each test; the schema is kept."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()
    db.session.expunge_all()

    yield db.session

    db.session.rollback()


def _make_user(name: str, email: str, role: str):
    return user_service.create_user({"name": name, "email": email, "role": role, "password": PASSWORD})


@pytest.fixture
def super_admin(db_session):
    return _make_user("Super Admin", "superadmin@test.local", permissions.SUPER_ADMIN)


@pytest.fixture
def admin(db_session):
    return _make_user("Admin", "admin@test.local", permissions.ADMIN)


@pytest.fixture
def sales_user(db_session):
    return _make_user("Sales One", "sales@test.local", permissions.SALES)


@pytest.fixture
def other_sales_user(db_session):
    return _make_user("Sales Two", "sales2@test.local", permissions.SALES)


@pytest.fixture
def warehouse_user(db_session):
    return _make_user("Warehouse", "warehouse@test.local", permissions.WAREHOUSE)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


def headers_for(user) -> dict:
    _, token = session_service.create_session(user.id)
    return auth_headers(token)


@pytest.fixture
def super_admin_headers(super_admin):
    return headers_for(super_admin)


@pytest.fixture
def admin_headers(admin):
    return headers_for(admin)


@pytest.fixture
def sales_headers(sales_user):
    return headers_for(sales_user)


@pytest.fixture
def warehouse_headers(warehouse_user):
    return headers_for(warehouse_user)


@pytest.fixture
def category(db_session):
    return catalog_service.create_category({"name": "Apparel"})


@pytest.fixture
def product(category, super_admin):
    """A product with one variant type: Size (S, M, L)."""
    return catalog_service.create_product(
        {
            "name": "Basic T-Shirt",
            "category_id": category.id,
            "variant_types": [{"name": "Size", "options": ["S", "M", "L"]}],
        },
        user_id=super_admin.id,
    )


def option_id(product, value: str) -> int:
    for variant_type in product.variant_types:
        for option in variant_type.options:
            if option.value == value:
                return option.id
    raise KeyError(value)


@pytest.fixture
def make_variant(product, super_admin):
    """
    Factory: make_variant("TS-M", stock=10) creates a variant of `product`
    and receives `stock` units through a stock entry.
    """
    sizes = iter(["S", "M", "L"])

    def _make(sku: str, *, stock: int = 0, selling_price_cents: int = 1000, cost_price_cents: int = 400):
        variant = catalog_service.create_variant(
            product.id,
            {
                "sku": sku,
                "option_ids": [option_id(product, next(sizes))],
                "cost_price_cents": cost_price_cents,
                "selling_price_cents": selling_price_cents,
                "min_stock_level": 3,
            },
            user_id=super_admin.id,
        )
        if stock:
            stock_entry_service.create_stock_entry(
                recorded_by_id=super_admin.id,
                items=[{"variant_id": variant.id, "quantity": stock, "cost_price_cents": cost_price_cents}],
            )
        return variant

    return _make


@pytest.fixture
def variant(make_variant):
    """Variant with 10 units on hand, selling at 10.00, cost 4.00."""
    return make_variant("TS-S", stock=10)


def stock_of(variant_id: int) -> int:
    """Read on-hand stock straight from the database."""
    return db.session.query(ProductVariant.current_stock).filter_by(id=variant_id).scalar()
