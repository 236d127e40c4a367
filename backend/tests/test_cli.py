"""
CLI command tests (system init, users, seed demo).
"""

from stockpos.extensions import db
from stockpos.models import CompanyProfile, ProductVariant, StockEntry, User


def test_system_init_is_idempotent(app):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init", "--company", "Toko Maju"])
    second = runner.invoke(args=["system", "init"])

    assert first.exit_code == 0, first.output
    assert "DONE System Initialized Successfully!" in first.output
    assert "already exists" in second.output
    assert db.session.query(User).count() == 4
    assert db.session.query(CompanyProfile).one().name == "Toko Maju"


def test_users_create_rejects_weak_password(app):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "users", "create", "--name", "Jane", "--email", "jane@example.com",
        "--password", "weak", "--role", "sales",
    ])

    assert "FAIL Password validation failed" in result.output
    assert db.session.query(User).count() == 0


def test_users_create_and_list(app):
    runner = app.test_cli_runner()

    created = runner.invoke(args=[
        "users", "create", "--name", "Jane", "--email", "jane@example.com",
        "--password", "Password123!", "--role", "warehouse",
    ])
    listed = runner.invoke(args=["users", "list"])

    assert "PASS Created user: jane@example.com with role 'WAREHOUSE'" in created.output
    assert "jane@example.com" in listed.output


def test_seed_demo(app):
    runner = app.test_cli_runner()
    runner.invoke(args=["system", "init"])

    result = runner.invoke(args=["seed", "demo"])

    assert result.exit_code == 0, result.output
    # 3 sizes x 2 colours + 2 tote colours
    assert db.session.query(ProductVariant).count() == 8
    entry = db.session.query(StockEntry).one()
    assert entry.total_quantity == 6 * 20 + 2 * 12
    assert db.session.query(ProductVariant).filter(ProductVariant.current_stock == 0).count() == 0

    again = runner.invoke(args=["seed", "demo"])
    assert "skipping demo seed" in again.output


def test_seed_demo_requires_init(app):
    result = app.test_cli_runner().invoke(args=["seed", "demo"])
    assert "Run 'python -m flask system init' first" in result.output
