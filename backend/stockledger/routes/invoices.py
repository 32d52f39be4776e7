# Overview: Flask API routes for invoices; parses input and returns JSON responses.

"""
Invoice API Routes

DESIGN:
- POST creates the invoice and its SALE movements in one transaction.
- idempotency_key is required. Replaying a key with the same body returns
  the stored invoice with 200 instead of 201; a different body is 409.
- Insufficient stock is 409 with product_id/warehouse_id/available/requested
  in details so the client can point at the offending line.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..validation import (
    INT,
    LIST,
    TOKEN,
    PayloadPolicy,
    int_arg,
    invoice_items_from_request,
    limit_arg,
    validate_payload,
)
from ..decorators import require_tenant
from ..services import invoice_service


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

INVOICE_CREATE_POLICY = PayloadPolicy(
    fields={"customer_id": INT, "warehouse_id": INT, "idempotency_key": TOKEN, "items": LIST},
    required={"customer_id", "warehouse_id", "idempotency_key", "items"},
    max_lengths={"idempotency_key": 128},
)


@invoices_bp.post("")
@require_tenant
def create_invoice_route():
    """
    Create an invoice.

    Request body:
    {
        "customer_id": 4,
        "warehouse_id": 1,
        "idempotency_key": "5f0c7a1e-...",
        "items": [
            {"product_id": 3, "quantity": 2, "unit_price": "15.00"}
        ]
    }

    Returns:
        201: Invoice created
        200: Same request replayed; stored invoice returned
        400: Invalid input
        404: Customer, warehouse or product not found
        409: Insufficient stock, idempotency mismatch or contention
    """
    try:
        data = validate_payload(payload=request.get_json(silent=True), policy=INVOICE_CREATE_POLICY)

        invoice, created = invoice_service.create_invoice(
            tenant_id=g.tenant_id,
            customer_id=data["customer_id"],
            warehouse_id=data["warehouse_id"],
            idempotency_key=data["idempotency_key"],
            items=invoice_items_from_request(data["items"]),
            user_id=g.user_id,
        )
        return jsonify({"invoice": invoice.to_dict(), "created": created}), 201 if created else 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("")
@require_tenant
def list_invoices_route():
    try:
        invoices = invoice_service.list_invoices(
            g.tenant_id,
            customer_id=int_arg(request.args, "customer_id"),
            limit=limit_arg(request.args),
        )
        return jsonify({"invoices": [inv.to_dict(include_items=False) for inv in invoices]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_tenant
def get_invoice_route(invoice_id: int):
    try:
        detail = invoice_service.get_invoice_detail(g.tenant_id, invoice_id)
        return jsonify({"invoice": detail}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get invoice")
        return jsonify({"error": "Internal server error"}), 500
