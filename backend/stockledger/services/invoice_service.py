"""
Invoice Coordinator: Atomic Sale Posting

WHY: An invoice, its lines, the SALE movements they cause and the balance
updates those movements imply must appear together or not at all. A sale
that is refused for stock reasons must leave every balance untouched, even
for lines that on their own would have fit.

DESIGN:
- All work for one invoice runs in a single transaction inside run_with_retry.
- Requested quantities are aggregated per product first, so two lines of the
  same product are checked against the balance together.
- Balance rows are locked in (product_id, warehouse_id) order; invoices that
  share products cannot deadlock each other.
- (tenant_id, idempotency_key) is unique. A repeated key returns the stored
  invoice when the payload matches and raises IDEMPOTENCY_MISMATCH otherwise.
  Two requests racing with the same key: the loser's INSERT fails on the
  unique key, the retry loop re-runs it, and the re-run takes the replay path.

USAGE:
    invoice, created = create_invoice(
        tenant_id=1, customer_id=4, warehouse_id=2,
        idempotency_key="c0ffee-1",
        items=[{"product_id": 9, "quantity": 3, "unit_price_cents": 1250}],
    )
"""

from __future__ import annotations

import hashlib
import json

from flask import current_app

from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, Invoice, InvoiceItem, Product, Warehouse
from ..models.inventory import MOVEMENT_TYPE_SALE, REFERENCE_TYPE_INVOICE
from ..validation import normalize_invoice_items
from .audit_service import append_audit_event
from .balance_service import lock_balances
from .concurrency import begin_write, run_with_retry
from .document_service import DOCUMENT_TYPE_INVOICE, next_document_number
from .ledger_service import append_movement
from .masterdata_service import require_customer, require_products, require_warehouse


MAX_IDEMPOTENCY_KEY_LENGTH = 128


def _request_fingerprint(customer_id: int, warehouse_id: int, items: list[dict]) -> str:
    """Stable hash of the normalized request; line order is significant."""
    body = {
        "customer_id": customer_id,
        "warehouse_id": warehouse_id,
        "items": [
            [item["product_id"], item["quantity"], item["unit_price_cents"]]
            for item in items
        ],
    }
    encoded = json.dumps(body, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _validate_idempotency_key(idempotency_key) -> str:
    """Keys are matched byte-exact, so surrounding whitespace is rejected rather than trimmed."""
    if not isinstance(idempotency_key, str) or not idempotency_key.strip():
        raise ValidationError("idempotency_key is required", field="idempotency_key")
    if idempotency_key != idempotency_key.strip():
        raise ValidationError(
            "idempotency_key cannot have leading or trailing whitespace",
            field="idempotency_key",
        )
    key = idempotency_key
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationError(
            f"idempotency_key exceeds max length {MAX_IDEMPOTENCY_KEY_LENGTH}",
            field="idempotency_key",
        )
    return key


def _find_by_idempotency_key(tenant_id: int, idempotency_key: str) -> Invoice | None:
    return db.session.query(Invoice).filter_by(
        tenant_id=tenant_id,
        idempotency_key=idempotency_key,
    ).first()


def _requested_per_product(items: list[dict]) -> dict[int, int]:
    totals: dict[int, int] = {}
    for item in items:
        totals[item["product_id"]] = totals.get(item["product_id"], 0) + item["quantity"]
    return totals


def create_invoice(
    *,
    tenant_id: int,
    customer_id: int,
    warehouse_id: int,
    idempotency_key: str,
    items,
    user_id: int | None = None,
) -> tuple[Invoice, bool]:
    """
    Create an invoice and post its SALE movements atomically.

    Returns (invoice, created). created is False when the idempotency key
    was already used with the same payload and the stored invoice is returned.

    Raises:
        ValidationError: empty items, bad quantity/price, missing key
        NotFoundError: customer, warehouse or product not in tenant
        InsufficientStockError: first product (in lock order) that falls short
        ConflictError: key reused with a different payload, or contention
    """
    key = _validate_idempotency_key(idempotency_key)
    lines = normalize_invoice_items(items)
    fingerprint = _request_fingerprint(customer_id, warehouse_id, lines)

    def _op() -> tuple[Invoice, bool]:
        begin_write()

        existing = _find_by_idempotency_key(tenant_id, key)
        if existing is not None:
            if existing.request_fingerprint != fingerprint:
                raise ConflictError(
                    "idempotency_key was already used with a different request",
                    reason="IDEMPOTENCY_MISMATCH",
                    details={"idempotency_key": key, "invoice_id": existing.id},
                )
            db.session.rollback()
            return existing, False

        require_customer(tenant_id, customer_id)
        require_warehouse(tenant_id, warehouse_id)
        require_products(tenant_id, [line["product_id"] for line in lines])

        requested = _requested_per_product(lines)
        balances = lock_balances(tenant_id, [(pid, warehouse_id) for pid in requested])

        # Check everything before writing anything
        for product_id, warehouse in sorted(balances):
            balance = balances[(product_id, warehouse)]
            if balance.quantity < requested[product_id]:
                raise InsufficientStockError(
                    product_id=product_id,
                    warehouse_id=warehouse,
                    available=balance.quantity,
                    requested=requested[product_id],
                )

        invoice = Invoice(
            tenant_id=tenant_id,
            invoice_number=next_document_number(
                tenant_id=tenant_id,
                document_type=DOCUMENT_TYPE_INVOICE,
            ),
            customer_id=customer_id,
            warehouse_id=warehouse_id,
            total_amount_cents=sum(line["quantity"] * line["unit_price_cents"] for line in lines),
            idempotency_key=key,
            request_fingerprint=fingerprint,
            created_by_user_id=user_id,
        )
        db.session.add(invoice)
        db.session.flush()

        for line in lines:
            db.session.add(InvoiceItem(
                tenant_id=tenant_id,
                invoice_id=invoice.id,
                product_id=line["product_id"],
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                line_total_cents=line["quantity"] * line["unit_price_cents"],
            ))
            append_movement(
                tenant_id=tenant_id,
                product_id=line["product_id"],
                warehouse_id=warehouse_id,
                quantity=-line["quantity"],
                movement_type=MOVEMENT_TYPE_SALE,
                reference_id=invoice.id,
                reference_type=REFERENCE_TYPE_INVOICE,
                user_id=user_id,
                balance=balances[(line["product_id"], warehouse_id)],
            )

        append_audit_event(
            tenant_id=tenant_id,
            entity_type="INVOICE",
            entity_id=invoice.id,
            action="CREATE",
            user_id=user_id,
            payload={
                "invoice_number": invoice.invoice_number,
                "total_amount_cents": invoice.total_amount_cents,
                "item_count": len(lines),
            },
        )

        db.session.commit()
        return invoice, True

    invoice, created = run_with_retry(_op, retry_on_integrity=True, operation="invoice creation")
    if created:
        current_app.logger.info(
            "invoice %s created: tenant=%s customer=%s total_cents=%s lines=%d",
            invoice.invoice_number, tenant_id, customer_id, invoice.total_amount_cents, len(lines),
        )
    else:
        current_app.logger.info("invoice %s replayed for idempotency key", invoice.invoice_number)
    return invoice, created


def get_invoice_detail(tenant_id: int, invoice_id: int) -> dict:
    """Invoice header with customer/warehouse names and lines with product name and unit."""
    invoice = db.session.query(Invoice).filter_by(id=invoice_id, tenant_id=tenant_id).first()
    if invoice is None:
        raise NotFoundError("invoice", invoice_id)

    customer = db.session.query(Customer).filter_by(id=invoice.customer_id, tenant_id=tenant_id).first()
    warehouse = db.session.query(Warehouse).filter_by(id=invoice.warehouse_id, tenant_id=tenant_id).first()

    product_ids = {item.product_id for item in invoice.items}
    products = {
        p.id: p
        for p in db.session.query(Product).filter(
            Product.tenant_id == tenant_id,
            Product.id.in_(product_ids),
        ).all()
    } if product_ids else {}

    data = invoice.to_dict(include_items=False)
    data["customer_name"] = customer.name if customer else ""
    data["warehouse_name"] = warehouse.name if warehouse else ""

    items = []
    for item in invoice.items:
        row = item.to_dict()
        product = products.get(item.product_id)
        row["product_name"] = product.name if product else ""
        row["product_unit"] = product.unit if product else "adet"
        items.append(row)
    data["items"] = items
    return data


def list_invoices(tenant_id: int, customer_id: int | None = None, limit: int = 100) -> list[Invoice]:
    """Newest first."""
    q = db.session.query(Invoice).filter(Invoice.tenant_id == tenant_id)
    if customer_id is not None:
        q = q.filter(Invoice.customer_id == customer_id)
    return q.order_by(Invoice.created_at.desc(), Invoice.id.desc()).limit(limit).all()
