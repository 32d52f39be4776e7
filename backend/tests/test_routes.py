# Overview: Pytest coverage for the HTTP surface (status codes and error payloads).

import pytest

from stockledger.services import balance_service

from conftest import stock_in, tenant_headers


def balance_of(tenant, product, warehouse):
    return balance_service.get_balance(tenant.id, product.id, warehouse.id)


def _invoice_body(customer, warehouse, product, quantity, key="route-1", price="2.50"):
    return {
        "customer_id": customer.id,
        "warehouse_id": warehouse.id,
        "idempotency_key": key,
        "items": [{"product_id": product.id, "quantity": quantity, "unit_price": price}],
    }


class TestStockRoutes:

    def test_post_in_movement(self, client, db_session, tenant, product, warehouse):
        resp = client.post(
            "/api/stock-movements",
            json={"product_id": product.id, "warehouse_id": warehouse.id, "type": "in", "quantity": 12},
            headers=tenant_headers(tenant.id, user_id=5),
        )

        assert resp.status_code == 201
        movement = resp.get_json()["movement"]
        assert movement["type"] == "IN"
        assert movement["quantity"] == 12
        assert movement["created_at"].endswith("Z")

    def test_out_beyond_stock_is_conflict(self, client, db_session, tenant, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 2)

        resp = client.post(
            "/api/stock-movements",
            json={"product_id": product.id, "warehouse_id": warehouse.id, "type": "OUT", "quantity": 3},
            headers=tenant_headers(tenant.id),
        )

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["kind"] == "INSUFFICIENT_STOCK"
        assert body["details"]["available"] == 2
        assert body["details"]["requested"] == 3

    def test_unknown_field_rejected(self, client, db_session, tenant, product, warehouse):
        resp = client.post(
            "/api/stock-movements",
            json={
                "product_id": product.id,
                "warehouse_id": warehouse.id,
                "type": "IN",
                "quantity": 1,
                "balance": 1000,
            },
            headers=tenant_headers(tenant.id),
        )

        assert resp.status_code == 400
        assert resp.get_json()["kind"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("quantity", ["1.5", 1.5, True, "1e3"])
    def test_non_integer_quantity_rejected(self, client, db_session, tenant, product, warehouse, quantity):
        resp = client.post(
            "/api/stock-movements",
            json={"product_id": product.id, "warehouse_id": warehouse.id, "type": "IN", "quantity": quantity},
            headers=tenant_headers(tenant.id),
        )
        assert resp.status_code == 400

    def test_balance_reads(self, client, db_session, tenant, product, warehouse, second_warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 8)
        headers = tenant_headers(tenant.id)

        single = client.get(
            f"/api/stock-balance?product_id={product.id}&warehouse_id={warehouse.id}",
            headers=headers,
        )
        total = client.get(f"/api/stock-balance-total?product_id={product.id}", headers=headers)
        by_wh = client.get(f"/api/stock-balance-by-warehouse?product_id={product.id}", headers=headers)

        assert single.get_json()["quantity"] == 8
        assert total.get_json()["quantity"] == 8
        assert {r["warehouse_name"]: r["quantity"] for r in by_wh.get_json()["balances"]} == {
            "Central": 8,
            "Depot": 0,
        }

    def test_balance_of_unknown_product_is_not_found(self, client, db_session, tenant, warehouse):
        headers = tenant_headers(tenant.id)

        single = client.get(f"/api/stock-balance?product_id=999999&warehouse_id={warehouse.id}", headers=headers)
        total = client.get("/api/stock-balance-total?product_id=999999", headers=headers)
        by_wh = client.get("/api/stock-balance-by-warehouse?product_id=999999", headers=headers)

        for resp in (single, total, by_wh):
            assert resp.status_code == 404
            assert resp.get_json()["kind"] == "NOT_FOUND"
            assert resp.get_json()["details"]["entity"] == "product"

    def test_balance_requires_product(self, client, db_session, tenant):
        resp = client.get("/api/stock-balance-total", headers=tenant_headers(tenant.id))

        assert resp.status_code == 400
        assert resp.get_json()["details"]["field"] == "product_id"

    def test_movement_listing(self, client, db_session, tenant, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 1)
        stock_in(tenant.id, product.id, warehouse.id, 2)

        resp = client.get(
            f"/api/stock-movements?product_id={product.id}&limit=1",
            headers=tenant_headers(tenant.id),
        )

        assert resp.status_code == 200
        assert [m["quantity"] for m in resp.get_json()["movements"]] == [2]


class TestInvoiceRoutes:

    def test_create_then_replay(self, client, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)
        body = _invoice_body(customer, warehouse, product, 3)
        headers = tenant_headers(tenant.id)

        first = client.post("/api/invoices", json=body, headers=headers)
        replay = client.post("/api/invoices", json=body, headers=headers)

        assert first.status_code == 201
        assert first.get_json()["created"] is True
        assert replay.status_code == 200
        assert replay.get_json()["created"] is False
        assert replay.get_json()["invoice"]["id"] == first.get_json()["invoice"]["id"]

    def test_key_reuse_with_other_body_is_conflict(self, client, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)
        headers = tenant_headers(tenant.id)
        client.post("/api/invoices", json=_invoice_body(customer, warehouse, product, 3), headers=headers)

        resp = client.post("/api/invoices", json=_invoice_body(customer, warehouse, product, 4), headers=headers)

        assert resp.status_code == 409
        assert resp.get_json()["details"]["reason"] == "IDEMPOTENCY_MISMATCH"

    def test_insufficient_stock(self, client, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 1)

        resp = client.post(
            "/api/invoices",
            json=_invoice_body(customer, warehouse, product, 2),
            headers=tenant_headers(tenant.id),
        )

        assert resp.status_code == 409
        assert resp.get_json()["details"] == {
            "product_id": product.id,
            "warehouse_id": warehouse.id,
            "available": 1,
            "requested": 2,
        }

    @pytest.mark.parametrize("price", [12.5, "12.50", "12.5"])
    def test_decimal_unit_price(self, client, db_session, tenant, customer, product, warehouse, price):
        stock_in(tenant.id, product.id, warehouse.id, 10)

        resp = client.post(
            "/api/invoices",
            json=_invoice_body(customer, warehouse, product, 2, price=price),
            headers=tenant_headers(tenant.id),
        )

        assert resp.status_code == 201
        invoice = resp.get_json()["invoice"]
        assert invoice["total_amount"] == "25.00"
        assert invoice["items"][0]["unit_price"] == "12.50"
        assert invoice["items"][0]["line_total"] == "25.00"

    def test_equal_prices_in_other_notation_replay(self, client, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)
        headers = tenant_headers(tenant.id)

        first = client.post("/api/invoices", json=_invoice_body(customer, warehouse, product, 2, price="12.50"),
                            headers=headers)
        replay = client.post("/api/invoices", json=_invoice_body(customer, warehouse, product, 2, price=12.5),
                             headers=headers)

        assert first.status_code == 201
        assert replay.status_code == 200

    @pytest.mark.parametrize("price", ["12.345", 0.001, "abc", True, "NaN", [1]])
    def test_bad_unit_price_rejected(self, client, db_session, tenant, customer, product, warehouse, price):
        stock_in(tenant.id, product.id, warehouse.id, 10)

        resp = client.post(
            "/api/invoices",
            json=_invoice_body(customer, warehouse, product, 1, price=price),
            headers=tenant_headers(tenant.id),
        )

        assert resp.status_code == 400
        details = resp.get_json()["details"]
        assert details["field"] == "unit_price"
        assert details["item_index"] == 0
        assert balance_of(tenant, product, warehouse) == 10

    def test_cents_field_name_rejected(self, client, db_session, tenant, customer, product, warehouse):
        body = _invoice_body(customer, warehouse, product, 1)
        body["items"] = [{"product_id": product.id, "quantity": 1, "unit_price_cents": 250}]

        resp = client.post("/api/invoices", json=body, headers=tenant_headers(tenant.id))

        assert resp.status_code == 400
        assert resp.get_json()["details"]["missing"] == ["unit_price"]
        assert resp.get_json()["details"]["item_index"] == 0

    def test_padded_idempotency_key_rejected(self, client, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)
        headers = tenant_headers(tenant.id)
        client.post("/api/invoices", json=_invoice_body(customer, warehouse, product, 1, key="abc"), headers=headers)

        resp = client.post(
            "/api/invoices",
            json=_invoice_body(customer, warehouse, product, 1, key=" abc "),
            headers=headers,
        )

        assert resp.status_code == 400
        assert resp.get_json()["details"]["field"] == "idempotency_key"
        assert balance_of(tenant, product, warehouse) == 9

    def test_missing_fields(self, client, db_session, tenant):
        resp = client.post("/api/invoices", json={"items": []}, headers=tenant_headers(tenant.id))

        assert resp.status_code == 400
        assert "customer_id" in resp.get_json()["details"]["missing"]

    def test_detail_and_list(self, client, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)
        headers = tenant_headers(tenant.id)
        created = client.post(
            "/api/invoices", json=_invoice_body(customer, warehouse, product, 2), headers=headers
        ).get_json()["invoice"]

        detail = client.get(f"/api/invoices/{created['id']}", headers=headers)
        listing = client.get(f"/api/invoices?customer_id={customer.id}", headers=headers)
        missing = client.get("/api/invoices/999999", headers=headers)

        assert detail.get_json()["invoice"]["items"][0]["product_name"] == "Bolt"
        assert [i["id"] for i in listing.get_json()["invoices"]] == [created["id"]]
        assert missing.status_code == 404


class TestReturnAndLedgerRoutes:

    def test_return_flow(self, client, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)
        headers = tenant_headers(tenant.id)
        client.post("/api/invoices", json=_invoice_body(customer, warehouse, product, 4), headers=headers)

        ok = client.post("/api/returns", json={
            "customer_id": customer.id,
            "product_id": product.id,
            "warehouse_id": warehouse.id,
            "quantity": 3,
            "unit_price": 2.5,
        }, headers=headers)
        too_many = client.post("/api/returns", json={
            "customer_id": customer.id,
            "product_id": product.id,
            "warehouse_id": warehouse.id,
            "quantity": 2,
            "unit_price": 2.5,
        }, headers=headers)
        purchases = client.get(f"/api/returns/customer-purchases/{customer.id}", headers=headers)

        assert ok.status_code == 201
        assert ok.get_json()["return"]["total"] == "7.50"
        assert too_many.status_code == 409
        assert too_many.get_json()["kind"] == "RETURN_EXCEEDS_PURCHASE"
        assert too_many.get_json()["details"]["max_returnable"] == 1
        assert purchases.get_json()["purchases"][0]["returnable_qty"] == 1
        assert purchases.get_json()["purchases"][0]["last_unit_price"] == "2.50"

    def test_customer_ledger(self, client, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)
        headers = tenant_headers(tenant.id)
        client.post("/api/invoices", json=_invoice_body(customer, warehouse, product, 4), headers=headers)

        resp = client.get(f"/api/customers/{customer.id}/ledger?period=month", headers=headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["period"] == "month"
        assert body["ledger"][0]["sales_amount"] == "10.00"
        assert body["ledger"][0]["net_amount"] == "10.00"

    def test_customer_ledger_bad_period(self, client, db_session, tenant, customer):
        resp = client.get(f"/api/customers/{customer.id}/ledger?period=decade", headers=tenant_headers(tenant.id))

        assert resp.status_code == 400
        assert resp.get_json()["details"]["field"] == "period"

    def test_transfer(self, client, db_session, tenant, product, warehouse, second_warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 5)

        resp = client.post("/api/transfers", json={
            "product_id": product.id,
            "from_warehouse_id": warehouse.id,
            "to_warehouse_id": second_warehouse.id,
            "quantity": 5,
        }, headers=tenant_headers(tenant.id))

        assert resp.status_code == 201
        assert resp.get_json()["transfer"]["transfer_number"].startswith("TRF-")


def test_health(client, db_session):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    assert resp.get_json()["checks"]["database"]["status"] == "healthy"
