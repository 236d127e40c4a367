"""
Customer service tests: CRUD, lookup, purchase stats and salesperson scoping.
"""

import pytest

from stockpos.errors import NotFoundError, ValidationError
from stockpos.services import customer_service, sales_service


def _sell_to(user, variant, customer_id, quantity=1):
    return sales_service.create_sale(
        salesperson_id=user.id,
        items=[{"variant_id": variant.id, "quantity": quantity}],
        customer_id=customer_id,
    )


@pytest.fixture
def customer(db_session):
    return customer_service.create_customer({"name": "Dewi", "phone": "0811", "email": "dewi@example.com"})


class TestCustomerCrud:

    def test_create_requires_name(self, db_session):
        with pytest.raises(ValidationError):
            customer_service.create_customer({"phone": "0811"})

    @pytest.mark.parametrize("payload", [{"name": {"x": 1}}, {"name": "Eko", "phone": 811}])
    def test_non_string_text_rejected(self, db_session, payload):
        with pytest.raises(ValidationError):
            customer_service.create_customer(payload)

    def test_blank_optional_fields_stored_as_null(self, db_session):
        created = customer_service.create_customer({"name": "Eko", "phone": "  "})
        assert created.phone is None

    def test_update(self, customer):
        updated = customer_service.update_customer(customer.id, {"address": "Jl. Merdeka 1"})
        assert updated.address == "Jl. Merdeka 1"

    def test_update_requires_fields(self, customer):
        with pytest.raises(ValidationError):
            customer_service.update_customer(customer.id, {})

    def test_search(self, customer):
        assert [c["id"] for c in customer_service.search_customers("081")] == [customer.id]
        assert [c["id"] for c in customer_service.search_customers("DEWI")] == [customer.id]
        assert customer_service.search_customers("  ") == []


class TestCustomerStats:

    def test_stats_count_completed_sales_only(self, customer, sales_user, admin, variant):
        _sell_to(sales_user, variant, customer.id, quantity=2)
        cancelled = _sell_to(sales_user, variant, customer.id, quantity=1)
        sales_service.cancel_sale(cancelled.id, user_id=admin.id, reason="x")

        stats = customer_service.customer_stats(customer.id)

        assert stats["sale_count"] == 1
        assert stats["total_spent_cents"] == 2000
        assert stats["last_sale_date"] is not None
        assert len(stats["recent_sales"]) == 2

    def test_stats_without_sales(self, customer):
        stats = customer_service.customer_stats(customer.id)
        assert stats == {
            "sale_count": 0,
            "total_spent_cents": 0,
            "last_sale_date": None,
            "recent_sales": [],
        }


class TestSalespersonScoping:

    def test_sales_user_sees_only_their_customers(self, customer, sales_user, other_sales_user, variant):
        _sell_to(other_sales_user, variant, customer.id)

        assert customer_service.list_customers(salesperson_id=sales_user.id)["items"] == []
        with pytest.raises(NotFoundError):
            customer_service.get_customer(customer.id, salesperson_id=sales_user.id)
        with pytest.raises(NotFoundError):
            customer_service.update_customer(customer.id, {"name": "X"}, salesperson_id=sales_user.id)

        visible = customer_service.list_customers(salesperson_id=other_sales_user.id)
        assert [c["id"] for c in visible["items"]] == [customer.id]

    def test_unscoped_sees_everyone(self, customer):
        assert customer_service.get_customer(customer.id).id == customer.id
        assert customer_service.list_customers()["pagination"]["total"] == 1
