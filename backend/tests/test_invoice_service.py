# Overview: Pytest coverage for atomic invoice posting and idempotency.

"""
Invoice Coordinator Tests

1. A sale decrements stock and writes one SALE movement per line
2. A refused sale leaves every balance untouched, including lines that fit
3. Idempotency keys replay the stored invoice or raise a conflict
4. Invoice numbers are sequential per tenant
"""

import pytest

from stockledger.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from stockledger.models import AuditLog, Invoice, InvoiceItem, StockMovement
from stockledger.services import balance_service, invoice_service
from stockledger.time_utils import utcnow

from conftest import stock_in


def _sell(tenant, customer, warehouse, items, key="key-1"):
    return invoice_service.create_invoice(
        tenant_id=tenant.id,
        customer_id=customer.id,
        warehouse_id=warehouse.id,
        idempotency_key=key,
        items=items,
    )


class TestCreateInvoice:

    def test_sale_decrements_stock(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 100)

        invoice, created = _sell(tenant, customer, warehouse, [
            {"product_id": product.id, "quantity": 30, "unit_price_cents": 1250},
        ])

        assert created is True
        assert invoice.total_amount_cents == 30 * 1250
        assert invoice.items[0].line_total_cents == 30 * 1250
        assert balance_service.get_balance(tenant.id, product.id, warehouse.id) == 70

        sale = db_session.query(StockMovement).filter_by(type="SALE").one()
        assert sale.quantity == -30
        assert sale.reference_type == "INVOICE"
        assert sale.reference_id == invoice.id

    def test_scenario_sale_beyond_stock_fails_with_fields(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 100)
        _sell(tenant, customer, warehouse, [
            {"product_id": product.id, "quantity": 30, "unit_price_cents": 100},
        ])

        with pytest.raises(InsufficientStockError) as exc:
            _sell(tenant, customer, warehouse, [
                {"product_id": product.id, "quantity": 80, "unit_price_cents": 100},
            ], key="key-2")

        assert exc.value.available == 70
        assert exc.value.requested == 80
        assert exc.value.product_id == product.id
        assert exc.value.warehouse_id == warehouse.id
        assert balance_service.get_balance(tenant.id, product.id, warehouse.id) == 70
        assert db_session.query(Invoice).count() == 1

    def test_multi_line_failure_is_atomic(self, db_session, tenant, customer, product, second_product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)

        with pytest.raises(InsufficientStockError) as exc:
            _sell(tenant, customer, warehouse, [
                {"product_id": product.id, "quantity": 5, "unit_price_cents": 100},
                {"product_id": second_product.id, "quantity": 1, "unit_price_cents": 100},
            ])

        assert exc.value.product_id == second_product.id
        assert exc.value.available == 0
        assert balance_service.get_balance(tenant.id, product.id, warehouse.id) == 10
        assert db_session.query(Invoice).count() == 0
        assert db_session.query(InvoiceItem).count() == 0
        assert db_session.query(StockMovement).filter_by(type="SALE").count() == 0

    def test_lines_of_same_product_checked_together(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)

        with pytest.raises(InsufficientStockError) as exc:
            _sell(tenant, customer, warehouse, [
                {"product_id": product.id, "quantity": 6, "unit_price_cents": 100},
                {"product_id": product.id, "quantity": 6, "unit_price_cents": 90},
            ])

        assert exc.value.requested == 12
        assert balance_service.get_balance(tenant.id, product.id, warehouse.id) == 10

    def test_exact_stock_can_be_sold(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 4)

        _sell(tenant, customer, warehouse, [
            {"product_id": product.id, "quantity": 4, "unit_price_cents": 0},
        ])

        assert balance_service.get_balance(tenant.id, product.id, warehouse.id) == 0

    def test_invoice_is_audited(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 4)

        invoice, _ = invoice_service.create_invoice(
            tenant_id=tenant.id,
            customer_id=customer.id,
            warehouse_id=warehouse.id,
            idempotency_key="audit-1",
            items=[{"product_id": product.id, "quantity": 1, "unit_price_cents": 10}],
            user_id=77,
        )

        entry = db_session.query(AuditLog).filter_by(entity_type="INVOICE").one()
        assert entry.entity_id == invoice.id
        assert entry.user_id == 77
        assert invoice.created_by_user_id == 77

    def test_refused_invoice_leaves_no_audit_entry(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 1)

        with pytest.raises(InsufficientStockError):
            _sell(tenant, customer, warehouse, [
                {"product_id": product.id, "quantity": 2, "unit_price_cents": 10},
            ])

        assert db_session.query(AuditLog).filter_by(entity_type="INVOICE").count() == 0


class TestInvoiceValidation:

    def test_empty_items(self, db_session, tenant, customer, warehouse):
        with pytest.raises(ValidationError) as exc:
            _sell(tenant, customer, warehouse, [])
        assert exc.value.details["field"] == "items"

    def test_non_positive_quantity(self, db_session, tenant, customer, product, warehouse):
        with pytest.raises(ValidationError) as exc:
            _sell(tenant, customer, warehouse, [
                {"product_id": product.id, "quantity": 0, "unit_price_cents": 100},
            ])
        assert exc.value.details["item_index"] == 0

    def test_negative_price(self, db_session, tenant, customer, product, warehouse):
        with pytest.raises(ValidationError) as exc:
            _sell(tenant, customer, warehouse, [
                {"product_id": product.id, "quantity": 1, "unit_price_cents": 100},
                {"product_id": product.id, "quantity": 1, "unit_price_cents": -1},
            ])
        assert exc.value.details["item_index"] == 1
        assert exc.value.details["field"] == "unit_price_cents"

    def test_blank_idempotency_key(self, db_session, tenant, customer, product, warehouse):
        with pytest.raises(ValidationError):
            _sell(tenant, customer, warehouse, [
                {"product_id": product.id, "quantity": 1, "unit_price_cents": 1},
            ], key="  ")

    @pytest.mark.parametrize("key", [" abc", "abc ", " abc ", "abc\n"])
    def test_padded_idempotency_key_is_not_trimmed(self, db_session, tenant, customer, product, warehouse, key):
        stock_in(tenant.id, product.id, warehouse.id, 10)
        line = [{"product_id": product.id, "quantity": 1, "unit_price_cents": 1}]
        _sell(tenant, customer, warehouse, line, key="abc")

        with pytest.raises(ValidationError) as exc:
            _sell(tenant, customer, warehouse, line, key=key)

        assert exc.value.field == "idempotency_key"
        assert db_session.query(Invoice).count() == 1
        assert balance_service.get_balance(tenant.id, product.id, warehouse.id) == 9

    def test_unknown_customer(self, db_session, tenant, product, warehouse):
        with pytest.raises(NotFoundError) as exc:
            invoice_service.create_invoice(
                tenant_id=tenant.id,
                customer_id=4242,
                warehouse_id=warehouse.id,
                idempotency_key="k",
                items=[{"product_id": product.id, "quantity": 1, "unit_price_cents": 1}],
            )
        assert exc.value.entity == "customer"

    def test_unknown_product(self, db_session, tenant, customer, warehouse):
        with pytest.raises(NotFoundError) as exc:
            _sell(tenant, customer, warehouse, [
                {"product_id": 5150, "quantity": 1, "unit_price_cents": 1},
            ])
        assert exc.value.details == {"entity": "product", "id": 5150}


class TestIdempotency:

    def test_replay_returns_stored_invoice(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)
        items = [{"product_id": product.id, "quantity": 2, "unit_price_cents": 500}]

        first, created_first = _sell(tenant, customer, warehouse, items, key="same")
        second, created_second = _sell(tenant, customer, warehouse, items, key="same")

        assert created_first is True
        assert created_second is False
        assert second.id == first.id
        assert balance_service.get_balance(tenant.id, product.id, warehouse.id) == 8
        assert db_session.query(StockMovement).filter_by(type="SALE").count() == 1

    def test_replay_with_different_payload_conflicts(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)
        _sell(tenant, customer, warehouse, [
            {"product_id": product.id, "quantity": 2, "unit_price_cents": 500},
        ], key="same")

        with pytest.raises(ConflictError) as exc:
            _sell(tenant, customer, warehouse, [
                {"product_id": product.id, "quantity": 3, "unit_price_cents": 500},
            ], key="same")

        assert exc.value.reason == "IDEMPOTENCY_MISMATCH"
        assert exc.value.retryable is False
        assert balance_service.get_balance(tenant.id, product.id, warehouse.id) == 8

    def test_replay_after_stock_ran_out_still_returns_invoice(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 2)
        items = [{"product_id": product.id, "quantity": 2, "unit_price_cents": 500}]

        first, _ = _sell(tenant, customer, warehouse, items, key="retry-me")
        again, created = _sell(tenant, customer, warehouse, items, key="retry-me")

        assert created is False
        assert again.id == first.id


class TestNumberingAndQueries:

    def test_sequential_numbers(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 10)
        year = utcnow().year

        numbers = []
        for i in range(3):
            invoice, _ = _sell(tenant, customer, warehouse, [
                {"product_id": product.id, "quantity": 1, "unit_price_cents": 10},
            ], key=f"n-{i}")
            numbers.append(invoice.invoice_number)

        assert numbers == [f"INV-{year}-00001", f"INV-{year}-00002", f"INV-{year}-00003"]

    def test_failed_invoice_does_not_consume_number(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 1)
        with pytest.raises(InsufficientStockError):
            _sell(tenant, customer, warehouse, [
                {"product_id": product.id, "quantity": 5, "unit_price_cents": 10},
            ], key="fails")

        invoice, _ = _sell(tenant, customer, warehouse, [
            {"product_id": product.id, "quantity": 1, "unit_price_cents": 10},
        ], key="works")

        assert invoice.invoice_number.endswith("-00001")

    def test_detail_includes_names(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 5)
        invoice, _ = _sell(tenant, customer, warehouse, [
            {"product_id": product.id, "quantity": 2, "unit_price_cents": 300},
        ])

        detail = invoice_service.get_invoice_detail(tenant.id, invoice.id)

        assert detail["customer_name"] == "Customer C"
        assert detail["warehouse_name"] == "Central"
        assert detail["items"][0]["product_name"] == "Bolt"
        assert detail["items"][0]["product_unit"] == "adet"
        assert detail["total_amount"] == "6.00"

    def test_detail_unknown_invoice(self, db_session, tenant):
        with pytest.raises(NotFoundError):
            invoice_service.get_invoice_detail(tenant.id, 123)

    def test_list_newest_first(self, db_session, tenant, customer, product, warehouse):
        stock_in(tenant.id, product.id, warehouse.id, 5)
        first, _ = _sell(tenant, customer, warehouse, [
            {"product_id": product.id, "quantity": 1, "unit_price_cents": 1},
        ], key="a")
        second, _ = _sell(tenant, customer, warehouse, [
            {"product_id": product.id, "quantity": 1, "unit_price_cents": 1},
        ], key="b")

        assert [i.id for i in invoice_service.list_invoices(tenant.id)] == [second.id, first.id]
