from .tenancy import Tenant, Warehouse
from .customers import Customer
from .inventory import Product, StockMovement, StockBalance
from .documents import Invoice, InvoiceItem, CustomerReturn, Transfer, DocumentSequence, AuditLog

__all__ = [
    'Tenant', 'Warehouse',
    'Customer',
    'Product', 'StockMovement', 'StockBalance',
    'Invoice', 'InvoiceItem', 'CustomerReturn', 'Transfer',
    'DocumentSequence', 'AuditLog',
]
