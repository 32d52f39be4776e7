# Overview: Flask API routes for customer returns; parses input and returns JSON responses.

"""
Customer Return API Routes

DESIGN:
- A return restocks one product into one warehouse for one customer.
- The quantity is bounded by what the customer bought from that warehouse
  minus what was already returned (409 RETURN_EXCEEDS_PURCHASE otherwise).
- customer-purchases lists the bound per product/warehouse so the client
  can prefill the return form.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..validation import INT, MONEY, STR, PayloadPolicy, int_arg, limit_arg, validate_payload
from ..decorators import require_tenant
from ..services import return_service


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")

RETURN_CREATE_POLICY = PayloadPolicy(
    fields={
        "customer_id": INT,
        "product_id": INT,
        "warehouse_id": INT,
        "quantity": INT,
        "unit_price": MONEY,
        "reason": STR,
    },
    required={"customer_id", "product_id", "warehouse_id", "quantity", "unit_price"},
    max_lengths={"reason": 1000},
)


@returns_bp.post("")
@require_tenant
def create_return_route():
    """
    Accept a customer return.

    Request body:
    {
        "customer_id": 4,
        "product_id": 3,
        "warehouse_id": 1,
        "quantity": 2,
        "unit_price": "15.00",
        "reason": "Damaged packaging"  (optional)
    }

    Returns:
        201: Return accepted, stock restored
        400: Invalid input
        404: Customer, product or warehouse not found
        409: Quantity exceeds returnable quantity, or contention
    """
    try:
        data = validate_payload(payload=request.get_json(silent=True), policy=RETURN_CREATE_POLICY)

        ret = return_service.create_return(
            tenant_id=g.tenant_id,
            customer_id=data["customer_id"],
            product_id=data["product_id"],
            warehouse_id=data["warehouse_id"],
            quantity=data["quantity"],
            unit_price_cents=data["unit_price"],
            reason=data.get("reason"),
            user_id=g.user_id,
        )
        return jsonify({"return": ret.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
@require_tenant
def list_returns_route():
    try:
        returns = return_service.list_returns(
            g.tenant_id,
            customer_id=int_arg(request.args, "customer_id"),
            limit=limit_arg(request.args),
        )
        return jsonify({"returns": [r.to_dict() for r in returns]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/customer-purchases/<int:customer_id>")
@require_tenant
def customer_purchases_route(customer_id: int):
    try:
        purchases = return_service.get_customer_purchases(g.tenant_id, customer_id)
        return jsonify({"customer_id": customer_id, "purchases": purchases}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get customer purchases")
        return jsonify({"error": "Internal server error"}), 500
