"""
Reporting tests: only COMPLETED sales count, and profit uses current cost.
"""

from datetime import date, datetime

import pytest

from stockpos.errors import ValidationError
from stockpos.services import reporting_service, sales_service, stock_entry_service
from stockpos.services.reporting_service import period_bounds


def _sell(user, variant, quantity, **kwargs):
    return sales_service.create_sale(
        salesperson_id=user.id,
        items=[{"variant_id": variant.id, "quantity": quantity}],
        customer_name=kwargs.pop("customer_name", "Walk-in"),
        **kwargs,
    )


class TestPeriodBounds:

    def test_week(self):
        (start, end), (prev_start, prev_end) = period_bounds("week", date(2026, 10, 19))
        assert (start, end) == (datetime(2026, 10, 13), datetime(2026, 10, 20))
        assert (prev_start, prev_end) == (datetime(2026, 10, 6), datetime(2026, 10, 13))

    def test_month_crosses_year(self):
        (start, end), (prev_start, prev_end) = period_bounds("month", date(2026, 1, 15))
        assert (start, end) == (datetime(2026, 1, 1), datetime(2026, 1, 16))
        assert (prev_start, prev_end) == (datetime(2025, 12, 1), datetime(2026, 1, 1))

    def test_year(self):
        (start, _), (prev_start, prev_end) = period_bounds("year", date(2026, 10, 19))
        assert start == datetime(2026, 1, 1)
        assert (prev_start, prev_end) == (datetime(2025, 1, 1), datetime(2026, 1, 1))

    def test_local_midnight_boundaries(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "BUSINESS_TIMEZONE", "Asia/Jakarta")
        (start, end), _ = period_bounds("week", date(2026, 10, 19))
        # Jakarta is UTC+7
        assert start == datetime(2026, 10, 12, 17, 0)
        assert end == datetime(2026, 10, 19, 17, 0)

    def test_unknown_period(self):
        with pytest.raises(ValidationError):
            period_bounds("decade", date(2026, 10, 19))


class TestSalesReport:

    def test_completed_sales_only(self, sales_user, admin, variant):
        _sell(sales_user, variant, 3)
        cancelled = _sell(sales_user, variant, 2)
        sales_service.cancel_sale(cancelled.id, user_id=admin.id, reason="x")

        report = reporting_service.sales_report("week")
        current = report["current_period"]

        assert current["transactions"] == 1
        assert current["revenue_cents"] == 3000
        assert current["average_sale_cents"] == 3000
        # Cost price is 400 per unit
        assert current["gross_profit_cents"] == 1800
        assert report["top_products"][0]["quantity"] == 3
        assert report["by_payment_method"] == [{"payment_method": "CASH", "count": 1, "total_cents": 3000}]
        assert report["daily"][-1]["revenue_cents"] == 3000

    def test_profit_follows_current_cost_price(self, sales_user, warehouse_user, variant):
        _sell(sales_user, variant, 3)
        stock_entry_service.create_stock_entry(
            recorded_by_id=warehouse_user.id,
            items=[{"variant_id": variant.id, "quantity": 1, "cost_price_cents": 600}],
        )

        report = reporting_service.sales_report("month")
        assert report["current_period"]["gross_profit_cents"] == 3000 - 1800

    def test_discounts_reported(self, sales_user, variant):
        sales_service.create_sale(
            salesperson_id=sales_user.id,
            items=[{"variant_id": variant.id, "quantity": 2, "discount_percent": 10}],
            customer_name="Walk-in",
            discount_cents=200,
        )

        current = reporting_service.sales_report("year")["current_period"]
        assert current["item_discount_cents"] == 200
        assert current["discount_cents"] == 200
        assert current["revenue_cents"] == 1600

    def test_top_customers(self, sales_user, variant):
        _sell(sales_user, variant, 1, customer_name="Small")
        _sell(sales_user, variant, 4, customer_name="Big")

        top = reporting_service.sales_report("month")["top_customers"]
        assert [c["name"] for c in top] == ["Big", "Small"]
        assert top[0]["total_cents"] == 4000

    def test_no_previous_period_change_is_zero(self, sales_user, variant):
        _sell(sales_user, variant, 1)
        assert reporting_service.sales_report("week")["revenue_change_percent"] == 0.0

    def test_empty_report(self, db_session):
        report = reporting_service.sales_report("month")
        assert report["current_period"]["transactions"] == 0
        assert report["current_period"]["average_sale_cents"] == 0
        assert report["top_products"] == []


class TestDashboard:

    def test_summary(self, sales_user, make_variant):
        stocked = make_variant("TS-S", stock=10)
        make_variant("TS-M", stock=2)
        _sell(sales_user, stocked, 1)

        summary = reporting_service.dashboard_summary()

        assert summary["product_count"] == 1
        assert summary["variant_count"] == 2
        assert summary["low_stock_count"] == 1
        assert summary["low_stock"][0]["sku"] == "TS-M"
        assert summary["today"]["count"] == 1
        assert summary["this_month"]["revenue_cents"] == 1000
        assert len(summary["recent_sales"]) == 1
        assert len(summary["recent_stock_entries"]) == 2
