"""
Company profile tests: defaults, validation and the effect of prefixes on numbering.
"""

import pytest

from stockpos.errors import ValidationError
from stockpos.extensions import db
from stockpos.models import ActivityLog, CompanyProfile
from stockpos.services import sales_service, settings_service, stock_entry_service


class TestCompanyProfile:

    def test_default_profile_created_once(self, db_session):
        first = settings_service.get_company_profile()
        db.session.commit()
        second = settings_service.get_company_profile()

        assert first.id == second.id
        assert (first.invoice_prefix, first.stock_entry_prefix) == ("INV", "SE")
        assert db.session.query(CompanyProfile).count() == 1

    def test_update(self, super_admin):
        profile = settings_service.update_company_profile(
            {"name": "Toko Maju", "invoice_prefix": "tm", "email": "hi@tokomaju.id"},
            user_id=super_admin.id,
        )

        assert profile.name == "Toko Maju"
        assert profile.invoice_prefix == "TM"
        log = db.session.query(ActivityLog).filter_by(action="UPDATE_COMPANY_PROFILE").one()
        assert log.to_dict()["details"]["fields"] == ["email", "invoice_prefix", "name"]

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"invoice_prefix": ""},
            {"invoice_prefix": "INV-2"},
            {"stock_entry_prefix": "TOOLONGPREFIX"},
            {"email": "nope"},
            {"unknown": "x"},
        ],
    )
    def test_invalid_updates(self, super_admin, payload):
        with pytest.raises(ValidationError):
            settings_service.update_company_profile(payload, user_id=super_admin.id)

    def test_prefix_change_applies_to_next_numbers(self, super_admin, sales_user, variant):
        before = sales_service.create_sale(
            salesperson_id=sales_user.id,
            items=[{"variant_id": variant.id, "quantity": 1}],
            customer_name="Walk-in",
        )

        settings_service.update_company_profile(
            {"invoice_prefix": "TM", "stock_entry_prefix": "GR"}, user_id=super_admin.id
        )

        after = sales_service.create_sale(
            salesperson_id=sales_user.id,
            items=[{"variant_id": variant.id, "quantity": 1}],
            customer_name="Walk-in",
        )
        entry = stock_entry_service.create_stock_entry(
            recorded_by_id=super_admin.id,
            items=[{"variant_id": variant.id, "quantity": 1, "cost_price_cents": 400}],
        )

        assert before.invoice_number.startswith("INV-")
        assert after.invoice_number.startswith("TM-")
        # Each prefix has its own daily counter
        assert after.invoice_number.endswith("-0001")
        assert entry.entry_number.startswith("GR-")
        assert db.session.get(type(before), before.id).invoice_number.startswith("INV-")
