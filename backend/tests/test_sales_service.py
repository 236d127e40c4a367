"""
Sale coordinator tests.

Verifies:
- A sale decrements stock and freezes its amounts
- sum(item totals) - sale discount == sale total, with half-up cent rounding
- Any failure leaves no partial state (sale, items, stock, customer, log, number)
- Cancellation restores stock exactly once
"""

import pytest

from stockpos.errors import (
    InsufficientStockError,
    InvalidStateError,
    MissingReasonError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from stockpos.extensions import db
from stockpos.models import ActivityLog, Customer, DocumentSequence, Sale, SaleItem
from stockpos.services import catalog_service, sales_service
from stockpos.services.sales_service import compute_line_amounts
from stockpos.time_utils import local_today

from conftest import stock_of


def _today() -> str:
    return local_today().strftime("%y%m%d")


def _sell(user, variant, quantity, **kwargs):
    kwargs.setdefault("customer_name", "Walk-in")
    items = kwargs.pop("items", None) or [{"variant_id": variant.id, "quantity": quantity}]
    return sales_service.create_sale(salesperson_id=user.id, items=items, **kwargs)


def _assert_totals_consistent(sale: Sale):
    items_total = sum(item.total_cents for item in sale.items)
    assert items_total == sale.subtotal_cents
    assert items_total - sale.discount_cents == sale.total_cents
    for item in sale.items:
        assert item.total_cents + item.discount_cents == item.unit_price_cents * item.quantity


class TestLineAmounts:

    def test_no_discount(self):
        assert compute_line_amounts(1000, 3, 0) == (0, 3000)

    def test_percentage_discount(self):
        # 12.5% of 30.00
        assert compute_line_amounts(1000, 3, 1250) == (375, 2625)

    def test_half_cent_rounds_up(self):
        # 10% of 0.05 is 0.005
        assert compute_line_amounts(5, 1, 1000) == (1, 4)

    def test_below_half_cent_rounds_down(self):
        # 10% of 3.33 is 0.333
        assert compute_line_amounts(333, 1, 1000) == (33, 300)

    def test_full_discount(self):
        assert compute_line_amounts(999, 2, 10_000) == (1998, 0)


class TestCreateSale:

    def test_sale_decrements_stock_and_matches_totals(self, sales_user, variant):
        sale = _sell(sales_user, variant, 4)

        assert stock_of(variant.id) == 6
        assert sale.status == "COMPLETED"
        assert sale.subtotal_cents == 4000
        assert sale.total_cents == 4000
        assert sale.invoice_number == f"INV-{_today()}-0001"
        _assert_totals_consistent(sale)

    def test_discounts(self, sales_user, variant):
        sale = _sell(
            sales_user,
            variant,
            None,
            items=[{"variant_id": variant.id, "quantity": 3, "discount_percent": 12.5}],
            discount_cents=125,
        )

        item = sale.items[0]
        assert item.discount_bps == 1250
        assert item.discount_cents == 375
        assert item.total_cents == 2625
        assert sale.subtotal_cents == 2625
        assert sale.discount_cents == 125
        assert sale.total_cents == 2500
        _assert_totals_consistent(sale)

    def test_unit_price_defaults_to_selling_price(self, sales_user, variant):
        sale = _sell(sales_user, variant, 1)
        assert sale.items[0].unit_price_cents == 1000

    def test_explicit_unit_price(self, sales_user, variant):
        sale = _sell(
            sales_user,
            variant,
            None,
            items=[{"variant_id": variant.id, "quantity": 2, "unit_price_cents": 850}],
        )
        assert sale.items[0].unit_price_cents == 850
        assert sale.total_cents == 1700

    def test_multiple_lines(self, sales_user, make_variant):
        a = make_variant("TS-S", stock=5, selling_price_cents=1000)
        b = make_variant("TS-M", stock=5, selling_price_cents=1500)

        sale = _sell(
            sales_user,
            None,
            None,
            items=[
                {"variant_id": a.id, "quantity": 2, "discount_percent": 10},
                {"variant_id": b.id, "quantity": 1},
            ],
        )

        assert len(sale.items) == 2
        assert sale.subtotal_cents == 1800 + 1500
        assert stock_of(a.id) == 3
        assert stock_of(b.id) == 4
        _assert_totals_consistent(sale)

    def test_invoice_numbers_increase(self, sales_user, variant):
        first = _sell(sales_user, variant, 1)
        second = _sell(sales_user, variant, 1)

        assert first.invoice_number == f"INV-{_today()}-0001"
        assert second.invoice_number == f"INV-{_today()}-0002"

    def test_new_customer_is_created(self, sales_user, variant):
        sale = _sell(sales_user, variant, 1, customer_name="Ana", customer_phone=" 0812 ")

        customer = db.session.get(Customer, sale.customer_id)
        assert customer.name == "Ana"
        assert customer.phone == "0812"

    def test_existing_customer_is_reused(self, sales_user, variant):
        first = _sell(sales_user, variant, 1, customer_name="Ana")
        second = _sell(sales_user, variant, 1, customer_name=None, customer_id=first.customer_id)

        assert second.customer_id == first.customer_id
        assert db.session.query(Customer).count() == 1

    def test_activity_logged(self, sales_user, variant):
        sale = _sell(sales_user, variant, 2)

        log = db.session.query(ActivityLog).filter_by(action="CREATE_SALE").one()
        assert log.user_id == sales_user.id
        assert log.entity_id == str(sale.id)
        assert log.to_dict()["details"]["invoice_number"] == sale.invoice_number


class TestCreateSaleFailures:

    def _assert_nothing_written(self, variant, stock):
        assert stock_of(variant.id) == stock
        assert db.session.query(Sale).count() == 0
        assert db.session.query(SaleItem).count() == 0
        assert db.session.query(ActivityLog).filter_by(action="CREATE_SALE").count() == 0

    def test_insufficient_stock(self, sales_user, variant):
        with pytest.raises(InsufficientStockError) as exc_info:
            _sell(sales_user, variant, 11, customer_name="Should Not Exist")

        assert exc_info.value.available == 10
        self._assert_nothing_written(variant, 10)
        assert db.session.query(Customer).count() == 0

    def test_insufficient_stock_across_lines_of_same_variant(self, sales_user, variant):
        items = [
            {"variant_id": variant.id, "quantity": 6},
            {"variant_id": variant.id, "quantity": 6},
        ]
        with pytest.raises(InsufficientStockError):
            _sell(sales_user, variant, None, items=items)

        self._assert_nothing_written(variant, 10)

    def test_one_short_line_blocks_the_whole_sale(self, sales_user, make_variant):
        a = make_variant("TS-S", stock=5)
        b = make_variant("TS-M", stock=1)

        with pytest.raises(InsufficientStockError) as exc_info:
            _sell(sales_user, None, None, items=[
                {"variant_id": a.id, "quantity": 2},
                {"variant_id": b.id, "quantity": 2},
            ])

        assert exc_info.value.sku == "TS-M"
        assert stock_of(a.id) == 5
        assert stock_of(b.id) == 1

    def test_failed_sale_does_not_consume_an_invoice_number(self, sales_user, variant):
        with pytest.raises(InsufficientStockError):
            _sell(sales_user, variant, 50)

        sale = _sell(sales_user, variant, 1)
        assert sale.invoice_number.endswith("-0001")

    def test_unknown_variant(self, sales_user, variant):
        with pytest.raises(NotFoundError):
            _sell(sales_user, None, None, items=[{"variant_id": 404040, "quantity": 1}])
        self._assert_nothing_written(variant, 10)

    def test_unknown_customer(self, sales_user, variant):
        with pytest.raises(NotFoundError):
            _sell(sales_user, variant, 1, customer_id=777)
        self._assert_nothing_written(variant, 10)

    def test_inactive_variant_cannot_be_sold(self, sales_user, super_admin, variant):
        catalog_service.toggle_variant(variant.id, user_id=super_admin.id)

        with pytest.raises(InvalidStateError):
            _sell(sales_user, variant, 1)
        self._assert_nothing_written(variant, 10)

    def test_sale_discount_above_subtotal(self, sales_user, variant):
        with pytest.raises(ValidationError):
            _sell(sales_user, variant, 1, discount_cents=1001)
        self._assert_nothing_written(variant, 10)

    @pytest.mark.parametrize(
        "items",
        [
            [],
            None,
            [{"quantity": 1}],
            [{"variant_id": 1, "quantity": 0}],
            [{"variant_id": 1, "quantity": -2}],
            [{"variant_id": 1, "quantity": 1.5}],
            [{"variant_id": 1, "quantity": 1, "discount_percent": 101}],
            [{"variant_id": 1, "quantity": 1, "discount_percent": 10.555}],
            [{"variant_id": 1, "quantity": 1, "unit_price_cents": -1}],
            ["not-an-object"],
        ],
    )
    def test_malformed_items(self, sales_user, variant, items):
        with pytest.raises(ValidationError):
            sales_service.create_sale(salesperson_id=sales_user.id, items=items, customer_name="X")
        self._assert_nothing_written(variant, 10)

    def test_unknown_payment_method(self, sales_user, variant):
        with pytest.raises(ValidationError):
            _sell(sales_user, variant, 1, payment_method="BARTER")

    @pytest.mark.parametrize("payment_method", [5, ["CASH"], {"type": "CASH"}, True])
    def test_non_string_payment_method(self, sales_user, variant, payment_method):
        with pytest.raises(ValidationError):
            _sell(sales_user, variant, 1, payment_method=payment_method)
        self._assert_nothing_written(variant, 10)

    def test_payment_method_is_case_insensitive(self, sales_user, variant):
        sale = _sell(sales_user, variant, 1, payment_method=" ewallet ")
        assert sale.payment_method == "EWALLET"

    @pytest.mark.parametrize(
        "field, value",
        [
            ("customer_name", {"x": 1}),
            ("customer_name", 42),
            ("customer_phone", 5550100),
            ("customer_address", ["Main St"]),
            ("notes", {"note": "gift"}),
        ],
    )
    def test_non_string_text_fields(self, sales_user, variant, field, value):
        with pytest.raises(ValidationError):
            _sell(sales_user, variant, 1, **{field: value})
        self._assert_nothing_written(variant, 10)
        assert db.session.query(Customer).count() == 0

    def test_customer_name_required_without_customer_id(self, sales_user, variant):
        with pytest.raises(ValidationError):
            _sell(sales_user, variant, 1, customer_name="  ")

    def test_number_collision_surfaces_as_persistence_failure(self, sales_user, variant):
        _sell(sales_user, variant, 1)
        # Rewind today's counter so the next allocation collides
        db.session.query(DocumentSequence).update({"next_number": 1})
        db.session.commit()

        with pytest.raises(PersistenceError) as exc_info:
            _sell(sales_user, variant, 2)

        assert exc_info.value.message == "Failed to create sale"
        assert stock_of(variant.id) == 9
        assert db.session.query(Sale).count() == 1


class TestCancelSale:

    def test_cancel_restores_stock(self, sales_user, admin, variant):
        sale = _sell(sales_user, variant, 4)
        assert stock_of(variant.id) == 6

        cancelled = sales_service.cancel_sale(sale.id, user_id=admin.id, reason="Customer returned goods")

        assert stock_of(variant.id) == 10
        assert cancelled.status == "CANCELLED"
        assert cancelled.cancel_reason == "Customer returned goods"
        assert cancelled.cancelled_at is not None
        assert cancelled.approved_by_id == admin.id

    def test_cancel_restores_every_line(self, sales_user, admin, make_variant):
        a = make_variant("TS-S", stock=5)
        b = make_variant("TS-M", stock=5)
        sale = _sell(sales_user, None, None, items=[
            {"variant_id": a.id, "quantity": 2},
            {"variant_id": b.id, "quantity": 3},
            {"variant_id": a.id, "quantity": 1},
        ])

        sales_service.cancel_sale(sale.id, user_id=admin.id, reason="Wrong order")

        assert stock_of(a.id) == 5
        assert stock_of(b.id) == 5

    def test_amounts_are_not_rewritten(self, sales_user, admin, variant):
        sale = _sell(sales_user, variant, 2, discount_cents=100)
        total = sale.total_cents

        cancelled = sales_service.cancel_sale(sale.id, user_id=admin.id, reason="x")

        assert cancelled.total_cents == total

    def test_cancel_twice_rejected(self, sales_user, admin, variant):
        sale = _sell(sales_user, variant, 4)
        sales_service.cancel_sale(sale.id, user_id=admin.id, reason="first")

        with pytest.raises(InvalidStateError):
            sales_service.cancel_sale(sale.id, user_id=admin.id, reason="second")

        assert stock_of(variant.id) == 10
        assert db.session.query(ActivityLog).filter_by(action="CANCEL_SALE").count() == 1

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_reason_required(self, sales_user, admin, variant, reason):
        sale = _sell(sales_user, variant, 4)

        with pytest.raises(MissingReasonError):
            sales_service.cancel_sale(sale.id, user_id=admin.id, reason=reason)

        assert stock_of(variant.id) == 6
        assert db.session.get(Sale, sale.id).status == "COMPLETED"

    def test_non_string_reason_rejected(self, sales_user, admin, variant):
        sale = _sell(sales_user, variant, 4)

        with pytest.raises(ValidationError):
            sales_service.cancel_sale(sale.id, user_id=admin.id, reason={"why": "returned"})

        assert stock_of(variant.id) == 6
        assert db.session.get(Sale, sale.id).status == "COMPLETED"

    def test_unknown_sale(self, admin):
        with pytest.raises(NotFoundError):
            sales_service.cancel_sale(5555, user_id=admin.id, reason="x")

    def test_cancel_logged(self, sales_user, admin, variant):
        sale = _sell(sales_user, variant, 1)
        sales_service.cancel_sale(sale.id, user_id=admin.id, reason="Duplicate")

        log = db.session.query(ActivityLog).filter_by(action="CANCEL_SALE").one()
        assert log.user_id == admin.id
        assert log.to_dict()["details"]["reason"] == "Duplicate"


class TestQueries:

    def test_salesperson_scoping(self, sales_user, other_sales_user, variant):
        mine = _sell(sales_user, variant, 1)
        theirs = _sell(other_sales_user, variant, 1)

        assert sales_service.get_sale(mine.id, salesperson_id=sales_user.id).id == mine.id
        with pytest.raises(NotFoundError):
            sales_service.get_sale(theirs.id, salesperson_id=sales_user.id)

        listed = sales_service.list_sales(salesperson_id=sales_user.id)
        assert [s["id"] for s in listed["items"]] == [mine.id]

    def test_list_filters(self, sales_user, admin, variant):
        kept = _sell(sales_user, variant, 1, customer_name="Budi")
        gone = _sell(sales_user, variant, 1, customer_name="Citra")
        sales_service.cancel_sale(gone.id, user_id=admin.id, reason="x")

        completed = sales_service.list_sales(status="completed")
        assert [s["id"] for s in completed["items"]] == [kept.id]

        by_customer = sales_service.list_sales(search="citr")
        assert [s["id"] for s in by_customer["items"]] == [gone.id]

        by_date = sales_service.list_sales(date_from=local_today(), date_to=local_today())
        assert by_date["pagination"]["total"] == 2

    def test_list_rejects_unknown_status(self):
        with pytest.raises(ValidationError):
            sales_service.list_sales(status="PENDING")

    def test_available_variants_excludes_empty_stock(self, make_variant):
        stocked = make_variant("TS-S", stock=2)
        make_variant("TS-M", stock=0)

        available = sales_service.list_available_variants()
        assert [v["id"] for v in available] == [stocked.id]
