# Overview: Structured error taxonomy shared by services and routes.
"""
Ledger Error Taxonomy

Every error raised by the core carries a machine-readable `kind` and a
`details` dict of typed fields. Upstream callers read the fields; they never
parse the message text.

    ValidationError            400  malformed input, nothing written
    NotFoundError              404  unknown tenant/customer/product/warehouse/invoice
    InsufficientStockError     409  balance would go negative, nothing written
    ReturnExceedsPurchaseError 409  return quantity above returnable quantity
    ConflictError              409  idempotency replay mismatch or retry budget exhausted
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for structured core errors."""

    kind = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "kind": self.kind,
            "details": self.details,
        }


class ValidationError(LedgerError):
    """400-level input problem."""

    kind = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        details = dict(details or {})
        if field is not None:
            details.setdefault("field", field)
        super().__init__(message, details)
        self.field = field


class NotFoundError(LedgerError):
    kind = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity} {entity_id} not found",
            {"entity": entity, "id": entity_id},
        )
        self.entity = entity
        self.entity_id = entity_id


class InsufficientStockError(LedgerError):
    """Raised when a movement would drive a balance below zero."""

    kind = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, *, product_id: int, warehouse_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for product {product_id} in warehouse {warehouse_id}",
            {
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.available = available
        self.requested = requested


class ReturnExceedsPurchaseError(LedgerError):
    kind = "RETURN_EXCEEDS_PURCHASE"
    status_code = 409

    def __init__(
        self,
        *,
        customer_id: int,
        product_id: int,
        warehouse_id: int,
        requested: int,
        max_returnable: int,
    ):
        super().__init__(
            f"Cannot return {requested} units; at most {max_returnable} returnable",
            {
                "customer_id": customer_id,
                "product_id": product_id,
                "warehouse_id": warehouse_id,
                "requested": requested,
                "max_returnable": max_returnable,
            },
        )
        self.requested = requested
        self.max_returnable = max_returnable


class ConflictError(LedgerError):
    """
    409-level conflict.

    reason:
    - IDEMPOTENCY_MISMATCH: key replayed with a different payload (not retryable)
    - CONTENTION: retry budget exhausted under concurrent writers (retryable)
    """

    kind = "CONFLICT"
    status_code = 409

    def __init__(self, message: str, *, reason: str, retryable: bool = False, details: dict | None = None):
        details = dict(details or {})
        details["reason"] = reason
        details["retryable"] = retryable
        super().__init__(message, details)
        self.reason = reason
        self.retryable = retryable
