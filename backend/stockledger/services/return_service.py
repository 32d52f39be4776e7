"""
Customer Return Processing Service

WHY: A customer may bring back goods bought earlier. Stock is restored to the
warehouse the goods were sold from, but only up to what the customer actually
bought there: cumulative returns per (customer, product, warehouse) never
exceed cumulative purchases for that key.

DESIGN PRINCIPLES:
- Returns are independent documents. They do not reference, modify or void
  the original invoice; the bound is checked against purchase history.
- Restock posts one IN movement (positive quantity, reference RETURN).
- The return, its movement and the balance update commit together.
- The balance row for the key is locked before the returnable quantity is
  read, so a concurrent return for the same key waits and then sees the
  first one's row.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..errors import ReturnExceedsPurchaseError
from ..extensions import db
from ..models import CustomerReturn, Invoice, InvoiceItem, Product, Warehouse
from ..models.inventory import MOVEMENT_TYPE_IN, REFERENCE_TYPE_RETURN
from ..money import format_amount
from ..validation import enforce_positive_quantity, enforce_price_cents
from .audit_service import append_audit_event
from .balance_service import lock_balances
from .concurrency import begin_write, run_with_retry
from .ledger_service import append_movement
from .masterdata_service import require_customer, require_product, require_warehouse


def _purchased_quantity(tenant_id: int, customer_id: int, product_id: int, warehouse_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(InvoiceItem.quantity), 0)
    ).join(
        Invoice, Invoice.id == InvoiceItem.invoice_id
    ).filter(
        Invoice.tenant_id == tenant_id,
        Invoice.customer_id == customer_id,
        Invoice.warehouse_id == warehouse_id,
        InvoiceItem.tenant_id == tenant_id,
        InvoiceItem.product_id == product_id,
    )
    return int(q.scalar() or 0)


def _returned_quantity(tenant_id: int, customer_id: int, product_id: int, warehouse_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(CustomerReturn.quantity), 0)
    ).filter(
        CustomerReturn.tenant_id == tenant_id,
        CustomerReturn.customer_id == customer_id,
        CustomerReturn.product_id == product_id,
        CustomerReturn.warehouse_id == warehouse_id,
    )
    return int(q.scalar() or 0)


def get_returnable_quantity(tenant_id: int, customer_id: int, product_id: int, warehouse_id: int) -> int:
    purchased = _purchased_quantity(tenant_id, customer_id, product_id, warehouse_id)
    returned = _returned_quantity(tenant_id, customer_id, product_id, warehouse_id)
    return max(purchased - returned, 0)


def create_return(
    *,
    tenant_id: int,
    customer_id: int,
    product_id: int,
    warehouse_id: int,
    quantity: int,
    unit_price_cents: int,
    reason: str | None = None,
    user_id: int | None = None,
) -> CustomerReturn:
    """
    Accept a customer return and restock the warehouse.

    Raises:
        ValidationError: quantity <= 0 or negative unit price
        NotFoundError: customer, product or warehouse not in tenant
        ReturnExceedsPurchaseError: quantity above the returnable quantity
    """
    enforce_positive_quantity(quantity)
    enforce_price_cents(unit_price_cents)

    def _op() -> CustomerReturn:
        begin_write()

        require_customer(tenant_id, customer_id)
        require_product(tenant_id, product_id)
        require_warehouse(tenant_id, warehouse_id)

        balance = lock_balances(tenant_id, [(product_id, warehouse_id)])[(product_id, warehouse_id)]

        returnable = get_returnable_quantity(tenant_id, customer_id, product_id, warehouse_id)
        if quantity > returnable:
            raise ReturnExceedsPurchaseError(
                customer_id=customer_id,
                product_id=product_id,
                warehouse_id=warehouse_id,
                requested=quantity,
                max_returnable=returnable,
            )

        ret = CustomerReturn(
            tenant_id=tenant_id,
            customer_id=customer_id,
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            total_cents=quantity * unit_price_cents,
            reason=reason or None,
            created_by_user_id=user_id,
        )
        db.session.add(ret)
        db.session.flush()

        append_movement(
            tenant_id=tenant_id,
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=quantity,
            movement_type=MOVEMENT_TYPE_IN,
            reference_id=ret.id,
            reference_type=REFERENCE_TYPE_RETURN,
            user_id=user_id,
            balance=balance,
        )

        append_audit_event(
            tenant_id=tenant_id,
            entity_type="RETURN",
            entity_id=ret.id,
            action="CREATE",
            user_id=user_id,
            payload={"quantity": quantity, "total_cents": ret.total_cents},
        )

        db.session.commit()
        return ret

    ret = run_with_retry(_op, retry_on_integrity=True, operation="customer return")
    current_app.logger.info(
        "return %s accepted: customer=%s product=%s warehouse=%s qty=%d",
        ret.id, customer_id, product_id, warehouse_id, quantity,
    )
    return ret


def get_customer_purchases(tenant_id: int, customer_id: int) -> list[dict]:
    """
    Purchase summary per (product, warehouse) the customer ever bought from.

    Rows stay listed after everything was returned (returnable_qty 0).
    last_unit_price is the unit price of the most recent sale line.
    Ordered by product name, then warehouse name.
    """
    require_customer(tenant_id, customer_id)

    sale_lines = db.session.query(
        InvoiceItem.product_id,
        Invoice.warehouse_id,
        InvoiceItem.quantity,
        InvoiceItem.unit_price_cents,
    ).join(
        Invoice, Invoice.id == InvoiceItem.invoice_id
    ).filter(
        Invoice.tenant_id == tenant_id,
        Invoice.customer_id == customer_id,
        InvoiceItem.tenant_id == tenant_id,
    ).order_by(
        Invoice.created_at.asc(),
        InvoiceItem.id.asc(),
    ).all()

    purchased: dict[tuple[int, int], int] = {}
    last_price: dict[tuple[int, int], int] = {}
    for line in sale_lines:
        key = (line.product_id, line.warehouse_id)
        purchased[key] = purchased.get(key, 0) + line.quantity
        last_price[key] = line.unit_price_cents  # ascending order, so the last write wins

    if not purchased:
        return []

    returned_rows = db.session.query(
        CustomerReturn.product_id,
        CustomerReturn.warehouse_id,
        func.sum(CustomerReturn.quantity).label("returned_qty"),
    ).filter(
        CustomerReturn.tenant_id == tenant_id,
        CustomerReturn.customer_id == customer_id,
    ).group_by(
        CustomerReturn.product_id,
        CustomerReturn.warehouse_id,
    ).all()
    returned = {(r.product_id, r.warehouse_id): int(r.returned_qty or 0) for r in returned_rows}

    product_ids = {pid for pid, _ in purchased}
    warehouse_ids = {wid for _, wid in purchased}
    products = {
        p.id: p
        for p in db.session.query(Product).filter(
            Product.tenant_id == tenant_id,
            Product.id.in_(product_ids),
        ).all()
    }
    warehouses = {
        w.id: w
        for w in db.session.query(Warehouse).filter(
            Warehouse.tenant_id == tenant_id,
            Warehouse.id.in_(warehouse_ids),
        ).all()
    }

    summaries = []
    for (product_id, warehouse_id), purchased_qty in purchased.items():
        product = products.get(product_id)
        warehouse = warehouses.get(warehouse_id)
        returned_qty = returned.get((product_id, warehouse_id), 0)
        summaries.append({
            "customer_id": customer_id,
            "product_id": product_id,
            "product_name": product.name if product else "",
            "product_unit": product.unit if product else "adet",
            "warehouse_id": warehouse_id,
            "warehouse_name": warehouse.name if warehouse else "",
            "purchased_qty": purchased_qty,
            "returned_qty": returned_qty,
            "returnable_qty": max(purchased_qty - returned_qty, 0),
            "last_unit_price": format_amount(last_price[(product_id, warehouse_id)]),
        })

    summaries.sort(key=lambda s: (s["product_name"], s["warehouse_name"], s["product_id"], s["warehouse_id"]))
    return summaries


def list_returns(tenant_id: int, customer_id: int | None = None, limit: int = 100) -> list[CustomerReturn]:
    """Newest first."""
    q = db.session.query(CustomerReturn).filter(CustomerReturn.tenant_id == tenant_id)
    if customer_id is not None:
        q = q.filter(CustomerReturn.customer_id == customer_id)
    return q.order_by(CustomerReturn.created_at.desc(), CustomerReturn.id.desc()).limit(limit).all()
