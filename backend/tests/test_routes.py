"""
HTTP API tests.

Verifies:
- Login, logout and /me
- 401 without a valid token, 403 without the permission
- Ledger errors map to status codes with {"error", "code"} bodies
- Sale and stock entry flows end to end
"""

import pytest

from stockpos.extensions import db
from stockpos.models import Sale
from stockpos.services import sales_service, settings_service, stock_entry_service

from conftest import PASSWORD, auth_headers, stock_of


class TestAuthRoutes:

    def test_login_returns_token_and_permissions(self, client, sales_user):
        response = client.post("/api/auth/login", json={"email": "SALES@test.local", "password": PASSWORD})

        assert response.status_code == 200
        data = response.get_json()
        assert data["user"]["id"] == sales_user.id
        assert "CREATE_SALE" in data["permissions"]
        assert "CANCEL_SALE" not in data["permissions"]

        me = client.get("/api/auth/me", headers=auth_headers(data["token"]))
        assert me.status_code == 200
        assert me.get_json()["user"]["email"] == "sales@test.local"

    def test_login_bad_password(self, client, sales_user):
        response = client.post("/api/auth/login", json={"email": sales_user.email, "password": "Wrong123!"})
        assert response.status_code == 401

    def test_login_missing_fields(self, client):
        assert client.post("/api/auth/login", json={"email": "a@b.c"}).status_code == 400

    def test_logout_revokes_token(self, client, sales_headers):
        assert client.post("/api/auth/logout", headers=sales_headers).status_code == 200
        assert client.get("/api/auth/me", headers=sales_headers).status_code == 401

    def test_missing_and_bogus_tokens(self, client):
        assert client.get("/api/auth/me").status_code == 401
        assert client.get("/api/auth/me", headers=auth_headers("not-a-token")).status_code == 401


class TestPermissionMatrix:

    @pytest.mark.parametrize(
        "headers_fixture, method, url, expected",
        [
            ("sales_headers", "post", "/api/stock-entries/", 403),
            ("sales_headers", "post", "/api/sales/1/cancel", 403),
            ("sales_headers", "get", "/api/reports/dashboard", 403),
            ("sales_headers", "get", "/api/users/", 403),
            ("warehouse_headers", "post", "/api/sales/", 403),
            ("warehouse_headers", "get", "/api/customers/", 403),
            ("warehouse_headers", "put", "/api/settings/company", 403),
            ("admin_headers", "get", "/api/activity/", 403),
            ("super_admin_headers", "get", "/api/activity/", 200),
            ("admin_headers", "get", "/api/reports/dashboard", 200),
            ("warehouse_headers", "get", "/api/catalog/stock-levels", 200),
            ("sales_headers", "get", "/api/settings/company", 200),
        ],
    )
    def test_role_access(self, request, client, headers_fixture, method, url, expected):
        headers = request.getfixturevalue(headers_fixture)
        response = getattr(client, method)(url, headers=headers, json={})

        assert response.status_code == expected
        if expected == 403:
            assert response.get_json()["code"] == "PERMISSION_DENIED"


class TestSaleRoutes:

    def test_create_and_cancel_sale(self, client, sales_headers, admin_headers, variant):
        response = client.post(
            "/api/sales/",
            headers=sales_headers,
            json={
                "items": [{"variant_id": variant.id, "quantity": 4, "discount_percent": 12.5}],
                "customer_name": "Ana",
                "payment_method": "ewallet",
            },
        )

        assert response.status_code == 201
        sale = response.get_json()["sale"]
        assert sale["status"] == "COMPLETED"
        assert sale["total_cents"] == 3500
        assert sale["payment_method"] == "EWALLET"
        assert sale["items"][0]["sku"] == "TS-S"
        assert stock_of(variant.id) == 6

        cancelled = client.post(f"/api/sales/{sale['id']}/cancel", headers=admin_headers, json={"reason": "Returned"})
        assert cancelled.status_code == 200
        assert cancelled.get_json()["sale"]["status"] == "CANCELLED"
        assert stock_of(variant.id) == 10

        again = client.post(f"/api/sales/{sale['id']}/cancel", headers=admin_headers, json={"reason": "Returned"})
        assert again.status_code == 409
        assert again.get_json()["code"] == "INVALID_STATE"

    def test_insufficient_stock_maps_to_409(self, client, sales_headers, variant):
        response = client.post(
            "/api/sales/",
            headers=sales_headers,
            json={"items": [{"variant_id": variant.id, "quantity": 11}], "customer_name": "Ana"},
        )

        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "INSUFFICIENT_STOCK"
        assert body["details"] == {"sku": "TS-S", "available": 10, "requested": 11}
        assert db.session.query(Sale).count() == 0

    def test_validation_error_maps_to_400(self, client, sales_headers):
        response = client.post("/api/sales/", headers=sales_headers, json={"items": []})
        assert response.status_code == 400
        assert response.get_json() == {"error": "At least one item is required", "code": "VALIDATION_ERROR"}

    def test_missing_reason_maps_to_400(self, client, sales_user, admin_headers, variant):
        sale = sales_service.create_sale(
            salesperson_id=sales_user.id,
            items=[{"variant_id": variant.id, "quantity": 1}],
            customer_name="Walk-in",
        )
        response = client.post(f"/api/sales/{sale.id}/cancel", headers=admin_headers, json={})

        assert response.status_code == 400
        assert response.get_json()["code"] == "MISSING_REASON"

    def test_unknown_sale_maps_to_404(self, client, admin_headers):
        response = client.get("/api/sales/999", headers=admin_headers)
        assert response.status_code == 404
        assert response.get_json()["code"] == "NOT_FOUND"

    def test_sales_user_sees_only_own_sales(self, client, other_sales_user, sales_headers, variant):
        theirs = sales_service.create_sale(
            salesperson_id=other_sales_user.id,
            items=[{"variant_id": variant.id, "quantity": 1}],
            customer_name="Walk-in",
        )

        listed = client.get("/api/sales/", headers=sales_headers)
        assert listed.get_json()["items"] == []
        assert client.get(f"/api/sales/{theirs.id}", headers=sales_headers).status_code == 404

    def test_bad_date_filter(self, client, admin_headers):
        response = client.get("/api/sales/?date_from=19-10-2026", headers=admin_headers)
        assert response.status_code == 400

    def test_non_string_payment_method_maps_to_400(self, client, sales_headers, variant):
        response = client.post(
            "/api/sales/",
            headers=sales_headers,
            json={
                "items": [{"variant_id": variant.id, "quantity": 1}],
                "customer_name": "Walk-in",
                "payment_method": 5,
            },
        )
        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"
        assert stock_of(variant.id) == 10

    def test_object_customer_name_maps_to_400(self, client, sales_headers, variant):
        response = client.post(
            "/api/sales/",
            headers=sales_headers,
            json={"items": [{"variant_id": variant.id, "quantity": 1}], "customer_name": {"x": 1}},
        )
        assert response.status_code == 400
        assert db.session.query(Sale).count() == 0

    def test_admin_filters_by_salesperson(self, client, admin_headers, sales_user, other_sales_user, variant):
        mine = sales_service.create_sale(
            salesperson_id=sales_user.id,
            items=[{"variant_id": variant.id, "quantity": 1}],
            customer_name="Walk-in",
        )
        sales_service.create_sale(
            salesperson_id=other_sales_user.id,
            items=[{"variant_id": variant.id, "quantity": 1}],
            customer_name="Walk-in",
        )

        filtered = client.get(f"/api/sales/?salesperson_id={sales_user.id}", headers=admin_headers).get_json()
        assert filtered["count"] == 1
        assert filtered["items"][0]["id"] == mine.id

        assert client.get("/api/sales/", headers=admin_headers).get_json()["count"] == 2

    def test_sales_user_cannot_widen_scope(self, client, other_sales_user, sales_headers, variant):
        sales_service.create_sale(
            salesperson_id=other_sales_user.id,
            items=[{"variant_id": variant.id, "quantity": 1}],
            customer_name="Walk-in",
        )

        listed = client.get(f"/api/sales/?salesperson_id={other_sales_user.id}", headers=sales_headers)
        assert listed.status_code == 200
        assert listed.get_json()["items"] == []

    def test_non_integer_salesperson_filter(self, client, admin_headers):
        response = client.get("/api/sales/?salesperson_id=abc", headers=admin_headers)
        assert response.status_code == 400


class TestStockEntryRoutes:

    def test_create_and_refused_cancel(self, client, warehouse_headers, sales_user, variant):
        response = client.post(
            "/api/stock-entries/",
            headers=warehouse_headers,
            json={"items": [{"variant_id": variant.id, "quantity": 5, "cost_price_cents": 550}]},
        )
        assert response.status_code == 201
        entry = response.get_json()["stock_entry"]
        assert entry["total_quantity"] == 5
        assert stock_of(variant.id) == 15

        sales_service.create_sale(
            salesperson_id=sales_user.id,
            items=[{"variant_id": variant.id, "quantity": 13}],
            customer_name="Walk-in",
        )

        cancel = client.post(
            f"/api/stock-entries/{entry['id']}/cancel", headers=warehouse_headers, json={"reason": "Wrong"}
        )
        assert cancel.status_code == 409
        assert cancel.get_json()["code"] == "CANNOT_REVERSE"
        assert stock_of(variant.id) == 2

    def test_filter_by_recorder(self, client, warehouse_headers, warehouse_user, variant):
        # The variant fixture's opening stock was recorded by the super admin
        entry = stock_entry_service.create_stock_entry(
            recorded_by_id=warehouse_user.id,
            items=[{"variant_id": variant.id, "quantity": 3, "cost_price_cents": 400}],
        )

        filtered = client.get(
            f"/api/stock-entries/?recorded_by_id={warehouse_user.id}", headers=warehouse_headers
        ).get_json()
        assert filtered["count"] == 1
        assert filtered["items"][0]["id"] == entry.id

        assert client.get("/api/stock-entries/", headers=warehouse_headers).get_json()["count"] == 2
        assert client.get("/api/stock-entries/?recorded_by_id=x", headers=warehouse_headers).status_code == 400


class TestCatalogRoutes:

    def test_product_and_variant_lifecycle(self, client, admin_headers, category):
        created = client.post(
            "/api/catalog/products",
            headers=admin_headers,
            json={
                "name": "Cap",
                "category_id": category.id,
                "variant_types": [{"name": "Color", "options": ["Black"]}],
            },
        )
        assert created.status_code == 201
        product = created.get_json()["product"]
        option_id = product["variant_types"][0]["options"][0]["id"]

        variant = client.post(
            f"/api/catalog/products/{product['id']}/variants",
            headers=admin_headers,
            json={"sku": "CAP-BLK", "option_ids": [option_id], "selling_price_cents": 800},
        )
        assert variant.status_code == 201
        assert variant.get_json()["variant"]["current_stock"] == 0

        duplicate = client.post(
            f"/api/catalog/products/{product['id']}/variants",
            headers=admin_headers,
            json={"sku": "CAP-BLK-2", "option_ids": [option_id], "selling_price_cents": 800},
        )
        assert duplicate.status_code == 409
        assert duplicate.get_json()["code"] == "CONFLICT"

    def test_stock_levels_include_summary(self, client, warehouse_headers, variant):
        response = client.get("/api/catalog/stock-levels?filter=low", headers=warehouse_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body["items"] == []
        assert body["summary"] == {"total": 1, "low": 0, "out": 0}


class TestSettingsAndActivityRoutes:

    def test_update_company(self, client, admin_headers):
        response = client.put("/api/settings/company", headers=admin_headers, json={"invoice_prefix": "tk"})
        assert response.status_code == 200
        assert response.get_json()["company"]["invoice_prefix"] == "TK"

        bad = client.put("/api/settings/company", headers=admin_headers, json={"invoice_prefix": "T K"})
        assert bad.status_code == 400

    def test_activity_filters(self, client, super_admin_headers, sales_user, variant):
        response = client.get("/api/activity/?action=CREATE_STOCK_ENTRY&limit=5", headers=super_admin_headers)

        assert response.status_code == 200
        items = response.get_json()["items"]
        assert len(items) == 1
        assert items[0]["action"] == "CREATE_STOCK_ENTRY"

    def test_activity_rejects_non_integer_limit(self, client, super_admin_headers):
        response = client.get("/api/activity/?limit=ten", headers=super_admin_headers)
        assert response.status_code == 400


class TestHealth:

    def test_uninitialized_is_degraded(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "degraded"

    def test_healthy_once_initialized(self, client, super_admin):
        settings_service.get_company_profile()
        db.session.commit()

        response = client.get("/health")
        assert response.get_json()["status"] == "healthy"
        assert response.get_json()["checks"]["database"]["details"]["users"] == 1
