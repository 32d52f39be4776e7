# Overview: Balance projector; derives on-hand quantities from the stock movement ledger.

from __future__ import annotations

from typing import Iterable

from sqlalchemy import func

from ..extensions import db
from ..models import StockBalance, StockMovement, Warehouse
from .concurrency import lock_for_update
from .masterdata_service import require_product, require_warehouse
"""
Balance Invariants (authoritative)

- The balance for a (tenant, product, warehouse) key is SUM(stock_movements.quantity)
  for that key. stock_balances is a materialized copy maintained inside the
  same transaction as every ledger append; it is never written by anyone else.
- A balance is never negative at a committed state.
- Reads return the latest committed state (no caching layer).
- Reads for an unknown product or warehouse raise NotFoundError instead of reporting 0.
- Writers lock balance rows in (product_id, warehouse_id) order so that
  multi-key operations cannot deadlock each other.
"""


def get_balance(tenant_id: int, product_id: int, warehouse_id: int) -> int:
    require_product(tenant_id, product_id)
    require_warehouse(tenant_id, warehouse_id)
    qty = db.session.query(StockBalance.quantity).filter_by(
        tenant_id=tenant_id,
        product_id=product_id,
        warehouse_id=warehouse_id,
    ).scalar()
    return int(qty or 0)


def get_total_balance(tenant_id: int, product_id: int) -> int:
    require_product(tenant_id, product_id)
    q = db.session.query(
        func.coalesce(func.sum(StockBalance.quantity), 0)
    ).filter(
        StockBalance.tenant_id == tenant_id,
        StockBalance.product_id == product_id,
    )
    return int(q.scalar() or 0)


def get_balances_by_warehouse(tenant_id: int, product_id: int) -> list[dict]:
    """
    Per-warehouse on-hand for a product, including warehouses with no stock.

    Ordered by quantity (highest first), then warehouse name.
    """
    require_product(tenant_id, product_id)
    qty = func.coalesce(StockBalance.quantity, 0)
    rows = db.session.query(
        Warehouse.id,
        Warehouse.name,
        qty.label("quantity"),
    ).outerjoin(
        StockBalance,
        (StockBalance.warehouse_id == Warehouse.id)
        & (StockBalance.tenant_id == tenant_id)
        & (StockBalance.product_id == product_id),
    ).filter(
        Warehouse.tenant_id == tenant_id,
    ).order_by(
        qty.desc(),
        Warehouse.name.asc(),
    ).all()

    return [
        {
            "warehouse_id": row.id,
            "warehouse_name": row.name,
            "quantity": int(row.quantity or 0),
        }
        for row in rows
    ]


def replay_balance(tenant_id: int, product_id: int, warehouse_id: int) -> int:
    """Recompute a balance by summing the ledger (ignores the materialized row)."""
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity), 0)
    ).filter(
        StockMovement.tenant_id == tenant_id,
        StockMovement.product_id == product_id,
        StockMovement.warehouse_id == warehouse_id,
    )
    return int(q.scalar() or 0)


def lock_balances(tenant_id: int, keys: Iterable[tuple[int, int]]) -> dict[tuple[int, int], StockBalance]:
    """
    Lock (and create if missing) the balance rows for the given
    (product_id, warehouse_id) keys, in deterministic sorted order.

    Must be called inside the caller's transaction. A missing row is
    inserted with quantity 0; a concurrent insert of the same key surfaces
    as IntegrityError, which the caller's retry loop handles.
    """
    locked: dict[tuple[int, int], StockBalance] = {}
    for product_id, warehouse_id in sorted(set(keys)):
        query = db.session.query(StockBalance).filter_by(
            tenant_id=tenant_id,
            product_id=product_id,
            warehouse_id=warehouse_id,
        ).populate_existing()
        balance = lock_for_update(query).first()
        if balance is None:
            balance = StockBalance(
                tenant_id=tenant_id,
                product_id=product_id,
                warehouse_id=warehouse_id,
                quantity=0,
            )
            db.session.add(balance)
            db.session.flush()
        locked[(product_id, warehouse_id)] = balance
    return locked


def _ledger_sums(tenant_id: int | None) -> dict[tuple[int, int, int], int]:
    q = db.session.query(
        StockMovement.tenant_id,
        StockMovement.product_id,
        StockMovement.warehouse_id,
        func.sum(StockMovement.quantity).label("quantity"),
    )
    if tenant_id is not None:
        q = q.filter(StockMovement.tenant_id == tenant_id)
    q = q.group_by(StockMovement.tenant_id, StockMovement.product_id, StockMovement.warehouse_id)
    return {(r.tenant_id, r.product_id, r.warehouse_id): int(r.quantity or 0) for r in q.all()}


def verify_balances(tenant_id: int | None = None) -> list[dict]:
    """
    Compare every materialized balance against a full ledger replay.

    Returns one entry per drifted key: {tenant_id, product_id, warehouse_id,
    materialized, ledger}. An empty list means projection and ledger agree.
    """
    ledger = _ledger_sums(tenant_id)

    q = db.session.query(StockBalance)
    if tenant_id is not None:
        q = q.filter(StockBalance.tenant_id == tenant_id)
    materialized = {(b.tenant_id, b.product_id, b.warehouse_id): b.quantity for b in q.all()}

    drift = []
    for key in sorted(set(ledger) | set(materialized)):
        expected = ledger.get(key, 0)
        actual = materialized.get(key, 0)
        if expected != actual:
            drift.append({
                "tenant_id": key[0],
                "product_id": key[1],
                "warehouse_id": key[2],
                "materialized": actual,
                "ledger": expected,
            })
    return drift


def rebuild_balances(tenant_id: int | None = None) -> int:
    """
    Overwrite materialized balances with ledger replay values.

    Returns the number of rows changed. Does not commit.
    """
    changed = 0
    for entry in verify_balances(tenant_id):
        balance = lock_for_update(
            db.session.query(StockBalance).filter_by(
                tenant_id=entry["tenant_id"],
                product_id=entry["product_id"],
                warehouse_id=entry["warehouse_id"],
            )
        ).first()
        if balance is None:
            balance = StockBalance(
                tenant_id=entry["tenant_id"],
                product_id=entry["product_id"],
                warehouse_id=entry["warehouse_id"],
            )
            db.session.add(balance)
        balance.quantity = entry["ledger"]
        changed += 1
    db.session.flush()
    return changed
