"""
Master-Data Lookups: Tenant-Scoped Existence Checks

WHY: Customer, product and warehouse CRUD lives outside this core, but every
ledger operation must reject ids that do not exist inside the caller's
tenant. A row that exists under another tenant is reported exactly like a
missing row, so lookups never reveal cross-tenant data.

USAGE:
    from stockledger.services.masterdata_service import require_warehouse

    warehouse = require_warehouse(tenant_id, warehouse_id)
"""

from __future__ import annotations

from typing import Iterable

from ..errors import NotFoundError
from ..extensions import db
from ..models import Customer, Product, Tenant, Warehouse


def require_tenant(tenant_id: int) -> Tenant:
    """
    Validate that the tenant exists and is active.

    Raises NotFoundError for unknown or deactivated tenants.
    """
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if tenant is None or not tenant.is_active:
        raise NotFoundError("tenant", tenant_id)
    return tenant


def require_customer(tenant_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, tenant_id=tenant_id).first()
    if customer is None:
        raise NotFoundError("customer", customer_id)
    return customer


def require_warehouse(tenant_id: int, warehouse_id: int) -> Warehouse:
    warehouse = db.session.query(Warehouse).filter_by(id=warehouse_id, tenant_id=tenant_id).first()
    if warehouse is None:
        raise NotFoundError("warehouse", warehouse_id)
    return warehouse


def require_product(tenant_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id).first()
    if product is None:
        raise NotFoundError("product", product_id)
    return product


def require_products(tenant_id: int, product_ids: Iterable[int]) -> dict[int, Product]:
    """Resolve several products at once; the first missing id (sorted) raises."""
    wanted = set(product_ids)
    rows = db.session.query(Product).filter(
        Product.tenant_id == tenant_id,
        Product.id.in_(wanted),
    ).all()
    found = {p.id: p for p in rows}
    for product_id in sorted(wanted):
        if product_id not in found:
            raise NotFoundError("product", product_id)
    return found
