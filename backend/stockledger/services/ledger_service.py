# Overview: Ledger store; the single append path for stock movements.

from __future__ import annotations

from flask import current_app

from ..errors import InsufficientStockError, ValidationError
from ..extensions import db
from ..models import StockBalance, StockMovement
from ..models.inventory import (
    MOVEMENT_TYPES,
    MOVEMENT_TYPE_ADJUSTMENT,
    MOVEMENT_TYPE_IN,
    MOVEMENT_TYPE_OUT,
    MOVEMENT_TYPE_SALE,
)
from ..time_utils import utcnow
from .audit_service import append_audit_event
from .balance_service import lock_balances
from .concurrency import begin_write, run_with_retry
from .masterdata_service import require_product, require_warehouse
"""
Stock Ledger Invariants (authoritative)

- stock_movements is append-only: rows are never updated or deleted.
  Corrections are new compensating movements.
- append_movement() is the only mutation primitive. It never commits;
  callers compose one or more appends with their owning record (invoice,
  return, transfer) inside a single transaction.
- Each append applies its delta to the locked StockBalance row for the key.
  A delta that would make the balance negative raises InsufficientStockError
  before anything is flushed.
- created_at is assigned here, never by callers. Replay order is (created_at, id).

Sign rules by type:
- IN          quantity > 0
- OUT         quantity < 0
- SALE        quantity < 0
- TRANSFER    quantity != 0 (paired: -q at source, +q at destination)
- ADJUSTMENT  quantity != 0
"""

# Types a client may post directly; SALE and TRANSFER come from their coordinators
MANUAL_MOVEMENT_TYPES = (MOVEMENT_TYPE_IN, MOVEMENT_TYPE_OUT, MOVEMENT_TYPE_ADJUSTMENT)

_POSITIVE_ONLY = {MOVEMENT_TYPE_IN}
_NEGATIVE_ONLY = {MOVEMENT_TYPE_OUT, MOVEMENT_TYPE_SALE}


def validate_movement(quantity, movement_type: str) -> None:
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(
            f"type must be one of {', '.join(MOVEMENT_TYPES)}",
            field="type",
            details={"value": movement_type},
        )
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise ValidationError("quantity must be an integer", field="quantity")
    if quantity == 0:
        raise ValidationError("quantity must be non-zero", field="quantity")
    if movement_type in _POSITIVE_ONLY and quantity < 0:
        raise ValidationError(f"{movement_type} movements must have a positive quantity", field="quantity")
    if movement_type in _NEGATIVE_ONLY and quantity > 0:
        raise ValidationError(f"{movement_type} movements must have a negative quantity", field="quantity")


def append_movement(
    *,
    tenant_id: int,
    product_id: int,
    warehouse_id: int,
    quantity: int,
    movement_type: str,
    reference_id: int | None = None,
    reference_type: str | None = None,
    note: str | None = None,
    user_id: int | None = None,
    balance: StockBalance | None = None,
) -> StockMovement:
    """
    Append one movement and apply it to the key's balance.

    `balance` is the already-locked row when the caller locked several keys
    up front (multi-line invoices, transfers); otherwise the row is locked here.
    Does not commit.
    """
    validate_movement(quantity, movement_type)

    if balance is None:
        balance = lock_balances(tenant_id, [(product_id, warehouse_id)])[(product_id, warehouse_id)]
    elif balance.key != (product_id, warehouse_id) or balance.tenant_id != tenant_id:
        raise ValueError("balance row does not match movement key")

    new_quantity = balance.quantity + quantity
    if new_quantity < 0:
        raise InsufficientStockError(
            product_id=product_id,
            warehouse_id=warehouse_id,
            available=balance.quantity,
            requested=-quantity,
        )

    movement = StockMovement(
        tenant_id=tenant_id,
        product_id=product_id,
        warehouse_id=warehouse_id,
        quantity=quantity,
        type=movement_type,
        reference_id=reference_id,
        reference_type=reference_type,
        note=note,
        created_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)
    balance.quantity = new_quantity
    db.session.flush()  # version check on the balance row happens here
    return movement


def record_manual_movement(
    *,
    tenant_id: int,
    product_id: int,
    warehouse_id: int,
    quantity: int,
    movement_type: str,
    note: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """
    Post a manual IN / OUT / ADJUSTMENT movement in its own transaction.

    Request semantics follow the stock screen: IN and OUT take a positive
    quantity (OUT is stored negated); ADJUSTMENT takes a signed quantity.
    OUT and negative ADJUSTMENT fail with InsufficientStockError when they
    exceed the balance.
    """
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError(
            f"type must be one of {', '.join(MANUAL_MOVEMENT_TYPES)}",
            field="type",
            details={"value": movement_type},
        )
    if movement_type in (MOVEMENT_TYPE_IN, MOVEMENT_TYPE_OUT) and quantity <= 0:
        raise ValidationError("quantity must be > 0", field="quantity")

    signed = -quantity if movement_type == MOVEMENT_TYPE_OUT else quantity
    validate_movement(signed, movement_type)

    def _op():
        begin_write()
        require_product(tenant_id, product_id)
        require_warehouse(tenant_id, warehouse_id)

        movement = append_movement(
            tenant_id=tenant_id,
            product_id=product_id,
            warehouse_id=warehouse_id,
            quantity=signed,
            movement_type=movement_type,
            note=note,
            user_id=user_id,
        )
        append_audit_event(
            tenant_id=tenant_id,
            entity_type="STOCK_MOVEMENT",
            entity_id=movement.id,
            action="CREATE",
            user_id=user_id,
            payload={"type": movement_type, "quantity": signed},
        )
        db.session.commit()
        return movement

    movement = run_with_retry(_op, retry_on_integrity=True, operation="stock movement")
    current_app.logger.info(
        "stock movement %s: %s %+d product=%s warehouse=%s",
        movement.id, movement_type, signed, product_id, warehouse_id,
    )
    return movement


def list_movements(
    *,
    tenant_id: int,
    product_id: int | None = None,
    warehouse_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    limit: int = 100,
) -> list[StockMovement]:
    """Newest first."""
    q = db.session.query(StockMovement).filter(StockMovement.tenant_id == tenant_id)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if warehouse_id is not None:
        q = q.filter(StockMovement.warehouse_id == warehouse_id)
    if reference_type is not None:
        q = q.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        q = q.filter(StockMovement.reference_id == reference_id)

    return q.order_by(
        StockMovement.created_at.desc(),
        StockMovement.id.desc(),
    ).limit(limit).all()
