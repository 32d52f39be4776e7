# Overview: Read-only per-customer sales/returns totals bucketed by day, week or month.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import CustomerReturn, Invoice
from ..money import format_amount
from ..time_utils import parse_iso_datetime, resolve_timezone, truncate_to_period
from .masterdata_service import require_customer


LEDGER_PERIODS = ("day", "week", "month")
MAX_LEDGER_BUCKETS = 100


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes", field="start" if start else "end")
    return start_dt, end_dt


def get_customer_ledger(
    tenant_id: int,
    customer_id: int,
    period: str,
    *,
    start: str | None = None,
    end: str | None = None,
) -> list[dict]:
    """
    Sales and return totals for one customer, grouped into periods.

    Buckets start at midnight / Monday / the 1st in REFERENCE_TIMEZONE.
    Newest bucket first, at most MAX_LEDGER_BUCKETS. Periods with neither
    sales nor returns are omitted. Amounts are two-place decimal strings.
    """
    if period not in LEDGER_PERIODS:
        raise ValidationError(
            f"period must be one of {', '.join(LEDGER_PERIODS)}",
            field="period",
            details={"value": period},
        )
    require_customer(tenant_id, customer_id)
    start_dt, end_dt = _parse_range(start, end)
    tz = resolve_timezone(current_app.config.get("REFERENCE_TIMEZONE"))

    invoices = db.session.query(Invoice.created_at, Invoice.total_amount_cents).filter(
        Invoice.tenant_id == tenant_id,
        Invoice.customer_id == customer_id,
    )
    returns = db.session.query(CustomerReturn.created_at, CustomerReturn.total_cents).filter(
        CustomerReturn.tenant_id == tenant_id,
        CustomerReturn.customer_id == customer_id,
    )
    if start_dt:
        invoices = invoices.filter(Invoice.created_at >= start_dt)
        returns = returns.filter(CustomerReturn.created_at >= start_dt)
    if end_dt:
        invoices = invoices.filter(Invoice.created_at <= end_dt)
        returns = returns.filter(CustomerReturn.created_at <= end_dt)

    buckets: dict[datetime, dict] = {}

    def _bucket(created_at: datetime) -> dict:
        # created_at is stored UTC-naive
        if created_at.tzinfo is not None:
            created_at = created_at.replace(tzinfo=None)
        key = truncate_to_period(created_at, period, tz)
        if key not in buckets:
            buckets[key] = {"sales": 0, "returns": 0}
        return buckets[key]

    for created_at, amount in invoices.all():
        _bucket(created_at)["sales"] += int(amount or 0)
    for created_at, amount in returns.all():
        _bucket(created_at)["returns"] += int(amount or 0)

    rows = []
    for period_start in sorted(buckets, reverse=True)[:MAX_LEDGER_BUCKETS]:
        totals = buckets[period_start]
        rows.append({
            "period_start": period_start.isoformat(),
            "sales_amount": format_amount(totals["sales"]),
            "return_amount": format_amount(totals["returns"]),
            "net_amount": format_amount(totals["sales"] - totals["returns"]),
        })
    return rows
