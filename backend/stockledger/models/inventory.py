from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


MOVEMENT_TYPE_IN = "IN"
MOVEMENT_TYPE_OUT = "OUT"
MOVEMENT_TYPE_SALE = "SALE"
MOVEMENT_TYPE_TRANSFER = "TRANSFER"
MOVEMENT_TYPE_ADJUSTMENT = "ADJUSTMENT"

MOVEMENT_TYPES = (
    MOVEMENT_TYPE_IN,
    MOVEMENT_TYPE_OUT,
    MOVEMENT_TYPE_SALE,
    MOVEMENT_TYPE_TRANSFER,
    MOVEMENT_TYPE_ADJUSTMENT,
)

REFERENCE_TYPE_INVOICE = "INVOICE"
REFERENCE_TYPE_RETURN = "RETURN"
REFERENCE_TYPE_TRANSFER = "TRANSFER"

PRODUCT_UNITS = ("adet", "kg")


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to tenants via tenant_id.
    SKUs are unique within a tenant.

    vat_rate_bps is stored for invoicing display only (flat percentage in
    basis points, e.g. 1800 = 18%); the ledger never computes tax.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(128), nullable=True)

    # "adet" (piece) or "kg"
    unit = db.Column(db.String(10), nullable=False, default="adet")

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=True)
    vat_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} tenant_id={self.tenant_id}>"


class StockMovement(db.Model):
    """
    Immutable signed quantity change against a (product, warehouse) pair.

    APPEND-ONLY: rows are never updated or deleted. Corrections are new
    compensating movements. The mapper listeners below reject any attempt
    to flush an UPDATE or DELETE for a persisted movement.

    Ordering key for replay and period bucketing: (created_at, id).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_key_created", "tenant_id", "product_id", "warehouse_id", "created_at"),
        db.Index("ix_stock_movements_reference", "tenant_id", "reference_type", "reference_id"),
        db.CheckConstraint("quantity <> 0", name="ck_stock_movements_nonzero"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    # Positive = increase, negative = decrease
    quantity = db.Column(db.Integer, nullable=False)

    # IN, OUT, SALE, TRANSFER, ADJUSTMENT
    type = db.Column(db.String(16), nullable=False, index=True)

    # INVOICE, RETURN, TRANSFER (null for manual movements)
    reference_id = db.Column(db.Integer, nullable=True)
    reference_type = db.Column(db.String(16), nullable=True)

    note = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, nullable=True)

    # Assigned by the ledger store, never by callers
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product")
    warehouse = db.relationship("Warehouse")

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} type={self.type} qty={self.quantity} "
            f"product_id={self.product_id} warehouse_id={self.warehouse_id}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity": self.quantity,
            "type": self.type,
            "reference_id": self.reference_id,
            "reference_type": self.reference_type,
            "note": self.note,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class ImmutableMovementError(RuntimeError):
    """Raised when code attempts to rewrite or delete ledger history."""


@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise ImmutableMovementError(f"stock movement {target.id} is immutable")


@event.listens_for(StockMovement, "before_delete")
def _reject_movement_delete(mapper, connection, target):
    raise ImmutableMovementError(f"stock movement {target.id} cannot be deleted")


class StockBalance(db.Model):
    """
    Derived on-hand quantity for a (tenant, product, warehouse) key.

    INVARIANTS:
    - quantity == SUM(stock_movements.quantity) for the key at every commit
    - quantity >= 0 (checked in code before flush and by the CHECK constraint)
    - only the ledger append path writes this row

    The row doubles as the lock target for the key: writers SELECT it
    FOR UPDATE, and version_id makes concurrent updates fail with
    StaleDataError where row locks are not honoured (SQLite).
    """
    __tablename__ = "stock_balances"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "product_id", "warehouse_id", name="uq_stock_balances_key"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_balances_non_negative"),
        db.Index("ix_stock_balances_tenant_product", "tenant_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def key(self) -> tuple[int, int]:
        return (self.product_id, self.warehouse_id)

    def __repr__(self) -> str:
        return (
            f"<StockBalance product_id={self.product_id} warehouse_id={self.warehouse_id} "
            f"qty={self.quantity} v={self.version_id}>"
        )

    def to_dict(self) -> dict:
        return {
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity": self.quantity,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
