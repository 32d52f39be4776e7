# Overview: Pytest coverage for per-customer period ledgers.

from datetime import datetime

import pytest

from stockledger import create_app
from stockledger.errors import NotFoundError, ValidationError
from stockledger.models import CustomerReturn, Invoice
from stockledger.services import customer_ledger_service
from stockledger.time_utils import resolve_timezone, truncate_to_period


def _invoice(db_session, tenant, customer, warehouse, created_at, total, number):
    invoice = Invoice(
        tenant_id=tenant.id,
        invoice_number=number,
        customer_id=customer.id,
        warehouse_id=warehouse.id,
        total_amount_cents=total,
        idempotency_key=number,
        request_fingerprint="x" * 64,
        created_at=created_at,
    )
    db_session.add(invoice)
    db_session.commit()
    return invoice


def _customer_return(db_session, tenant, customer, product, warehouse, created_at, total):
    ret = CustomerReturn(
        tenant_id=tenant.id,
        customer_id=customer.id,
        product_id=product.id,
        warehouse_id=warehouse.id,
        quantity=1,
        unit_price_cents=total,
        total_cents=total,
        created_at=created_at,
    )
    db_session.add(ret)
    db_session.commit()
    return ret


@pytest.fixture
def history(db_session, tenant, customer, product, warehouse):
    _invoice(db_session, tenant, customer, warehouse, datetime(2026, 3, 2, 9, 0), 10_000, "INV-1")
    _invoice(db_session, tenant, customer, warehouse, datetime(2026, 3, 2, 17, 30), 5_000, "INV-2")
    _invoice(db_session, tenant, customer, warehouse, datetime(2026, 3, 4, 12, 0), 2_000, "INV-3")
    _invoice(db_session, tenant, customer, warehouse, datetime(2026, 4, 1, 8, 0), 7_000, "INV-4")
    _customer_return(db_session, tenant, customer, product, warehouse, datetime(2026, 3, 2, 18, 0), 1_500)


def test_daily_buckets_newest_first(db_session, tenant, customer, history):
    rows = customer_ledger_service.get_customer_ledger(tenant.id, customer.id, "day")

    assert rows == [
        {
            "period_start": "2026-04-01T00:00:00+00:00",
            "sales_amount": "70.00",
            "return_amount": "0.00",
            "net_amount": "70.00",
        },
        {
            "period_start": "2026-03-04T00:00:00+00:00",
            "sales_amount": "20.00",
            "return_amount": "0.00",
            "net_amount": "20.00",
        },
        {
            "period_start": "2026-03-02T00:00:00+00:00",
            "sales_amount": "150.00",
            "return_amount": "15.00",
            "net_amount": "135.00",
        },
    ]


def test_weekly_buckets_start_monday(db_session, tenant, customer, history):
    rows = customer_ledger_service.get_customer_ledger(tenant.id, customer.id, "week")

    # 2026-03-02 is a Monday; 2026-04-01 falls in the week of 2026-03-30
    assert [r["period_start"] for r in rows] == [
        "2026-03-30T00:00:00+00:00",
        "2026-03-02T00:00:00+00:00",
    ]
    assert rows[1]["sales_amount"] == "170.00"
    assert rows[1]["net_amount"] == "155.00"


def test_monthly_buckets(db_session, tenant, customer, history):
    rows = customer_ledger_service.get_customer_ledger(tenant.id, customer.id, "month")

    assert [(r["period_start"], r["net_amount"]) for r in rows] == [
        ("2026-04-01T00:00:00+00:00", "70.00"),
        ("2026-03-01T00:00:00+00:00", "155.00"),
    ]


def test_reference_timezone_shifts_buckets(app, db_session, tenant, customer, warehouse, monkeypatch):
    monkeypatch.setitem(app.config, "REFERENCE_TIMEZONE", "Europe/Istanbul")
    # 22:30 UTC on Mar 1 is 01:30 on Mar 2 in Istanbul (UTC+3)
    _invoice(db_session, tenant, customer, warehouse, datetime(2026, 3, 1, 22, 30), 900, "INV-TZ")

    rows = customer_ledger_service.get_customer_ledger(tenant.id, customer.id, "day")

    assert rows[0]["period_start"] == "2026-03-02T00:00:00+03:00"


def test_date_range_filter(db_session, tenant, customer, history):
    rows = customer_ledger_service.get_customer_ledger(
        tenant.id, customer.id, "month", start="2026-04-01T00:00:00Z",
    )

    assert [r["sales_amount"] for r in rows] == ["70.00"]


def test_invalid_period(db_session, tenant, customer):
    with pytest.raises(ValidationError) as exc:
        customer_ledger_service.get_customer_ledger(tenant.id, customer.id, "year")
    assert exc.value.details["field"] == "period"


def test_unknown_customer(db_session, tenant):
    with pytest.raises(NotFoundError):
        customer_ledger_service.get_customer_ledger(tenant.id, 404, "day")


def test_customer_without_activity(db_session, tenant, customer):
    assert customer_ledger_service.get_customer_ledger(tenant.id, customer.id, "day") == []


def test_bucket_cap(db_session, tenant, customer, warehouse):
    for day in range(105):
        _invoice(
            db_session, tenant, customer, warehouse,
            datetime(2026, 1, 1) + (datetime(2026, 1, 2) - datetime(2026, 1, 1)) * day,
            100, f"INV-{day}",
        )

    rows = customer_ledger_service.get_customer_ledger(tenant.id, customer.id, "day")

    assert len(rows) == customer_ledger_service.MAX_LEDGER_BUCKETS
    assert rows[0]["period_start"].startswith("2026-04-15")


def test_truncate_to_period_month_in_zone():
    tz = resolve_timezone("Europe/Istanbul")
    start = truncate_to_period(datetime(2026, 5, 31, 22, 0), "month", tz)

    assert start.isoformat() == "2026-06-01T00:00:00+03:00"


@pytest.mark.parametrize("zone", ["Mars/Base", "Not A Zone"])
def test_unknown_reference_timezone_fails_at_startup(zone):
    with pytest.raises(ValueError, match="unknown timezone"):
        create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "REFERENCE_TIMEZONE": zone,
        })
