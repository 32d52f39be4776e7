"""
Inter-warehouse transfer service.

WHY: Moving stock between two warehouses of the same tenant is one business
event. Posting it as two unrelated movements would let a crash or a failed
check leave stock removed from the source but never added at the
destination. A transfer is posted as a single transaction:

- TRANSFER movement of -quantity at the source warehouse
- TRANSFER movement of +quantity at the destination warehouse
- the Transfer record both movements reference

Both balance rows are locked in (product_id, warehouse_id) order, the same
order invoices use, so transfers and sales cannot deadlock.
"""
from __future__ import annotations

from flask import current_app

from ..errors import InsufficientStockError, ValidationError
from ..extensions import db
from ..models import Transfer
from ..models.inventory import MOVEMENT_TYPE_TRANSFER, REFERENCE_TYPE_TRANSFER
from ..validation import enforce_positive_quantity
from .audit_service import append_audit_event
from .balance_service import lock_balances
from .concurrency import begin_write, run_with_retry
from .document_service import DOCUMENT_TYPE_TRANSFER, next_document_number
from .ledger_service import append_movement
from .masterdata_service import require_product, require_warehouse


def create_transfer(
    *,
    tenant_id: int,
    product_id: int,
    from_warehouse_id: int,
    to_warehouse_id: int,
    quantity: int,
    note: str | None = None,
    user_id: int | None = None,
) -> Transfer:
    """
    Move quantity of a product from one warehouse to another.

    Raises:
        ValidationError: same source and destination, or quantity <= 0
        NotFoundError: product or either warehouse not in tenant
        InsufficientStockError: source balance below quantity
    """
    if from_warehouse_id == to_warehouse_id:
        raise ValidationError(
            "Cannot transfer to the same warehouse",
            field="to_warehouse_id",
        )
    enforce_positive_quantity(quantity)

    def _op() -> Transfer:
        begin_write()

        require_product(tenant_id, product_id)
        require_warehouse(tenant_id, from_warehouse_id)
        require_warehouse(tenant_id, to_warehouse_id)

        source_key = (product_id, from_warehouse_id)
        dest_key = (product_id, to_warehouse_id)
        balances = lock_balances(tenant_id, [source_key, dest_key])

        source = balances[source_key]
        if source.quantity < quantity:
            raise InsufficientStockError(
                product_id=product_id,
                warehouse_id=from_warehouse_id,
                available=source.quantity,
                requested=quantity,
            )

        transfer = Transfer(
            tenant_id=tenant_id,
            transfer_number=next_document_number(
                tenant_id=tenant_id,
                document_type=DOCUMENT_TYPE_TRANSFER,
            ),
            product_id=product_id,
            from_warehouse_id=from_warehouse_id,
            to_warehouse_id=to_warehouse_id,
            quantity=quantity,
            note=note or None,
            created_by_user_id=user_id,
        )
        db.session.add(transfer)
        db.session.flush()  # Get ID

        append_movement(
            tenant_id=tenant_id,
            product_id=product_id,
            warehouse_id=from_warehouse_id,
            quantity=-quantity,
            movement_type=MOVEMENT_TYPE_TRANSFER,
            reference_id=transfer.id,
            reference_type=REFERENCE_TYPE_TRANSFER,
            note=note,
            user_id=user_id,
            balance=source,
        )
        append_movement(
            tenant_id=tenant_id,
            product_id=product_id,
            warehouse_id=to_warehouse_id,
            quantity=quantity,
            movement_type=MOVEMENT_TYPE_TRANSFER,
            reference_id=transfer.id,
            reference_type=REFERENCE_TYPE_TRANSFER,
            note=note,
            user_id=user_id,
            balance=balances[dest_key],
        )

        append_audit_event(
            tenant_id=tenant_id,
            entity_type="TRANSFER",
            entity_id=transfer.id,
            action="CREATE",
            user_id=user_id,
            payload={
                "transfer_number": transfer.transfer_number,
                "quantity": quantity,
                "from_warehouse_id": from_warehouse_id,
                "to_warehouse_id": to_warehouse_id,
            },
        )

        db.session.commit()
        return transfer

    transfer = run_with_retry(_op, retry_on_integrity=True, operation="warehouse transfer")
    current_app.logger.info(
        "transfer %s posted: product=%s %s -> %s qty=%d",
        transfer.transfer_number, product_id, from_warehouse_id, to_warehouse_id, quantity,
    )
    return transfer


def list_transfers(tenant_id: int, product_id: int | None = None, limit: int = 100) -> list[Transfer]:
    q = db.session.query(Transfer).filter(Transfer.tenant_id == tenant_id)
    if product_id is not None:
        q = q.filter(Transfer.product_id == product_id)
    return q.order_by(Transfer.created_at.desc(), Transfer.id.desc()).limit(limit).all()
