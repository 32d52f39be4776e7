# Overview: Flask API routes for warehouse transfers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..validation import INT, STR, PayloadPolicy, int_arg, limit_arg, validate_payload
from ..decorators import require_tenant
from ..services import transfer_service


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")

TRANSFER_CREATE_POLICY = PayloadPolicy(
    fields={
        "product_id": INT,
        "from_warehouse_id": INT,
        "to_warehouse_id": INT,
        "quantity": INT,
        "note": STR,
    },
    required={"product_id", "from_warehouse_id", "to_warehouse_id", "quantity"},
    max_lengths={"note": 255},
)


@transfers_bp.post("")
@require_tenant
def create_transfer_route():
    """
    Move stock between two warehouses.

    Request body:
    {
        "product_id": 3,
        "from_warehouse_id": 1,
        "to_warehouse_id": 2,
        "quantity": 10,
        "note": "Rebalance"  (optional)
    }

    Returns:
        201: Transfer posted
        400: Invalid input (including same source and destination)
        404: Product or warehouse not found
        409: Insufficient stock at source, or contention
    """
    try:
        data = validate_payload(payload=request.get_json(silent=True), policy=TRANSFER_CREATE_POLICY)

        transfer = transfer_service.create_transfer(
            tenant_id=g.tenant_id,
            product_id=data["product_id"],
            from_warehouse_id=data["from_warehouse_id"],
            to_warehouse_id=data["to_warehouse_id"],
            quantity=data["quantity"],
            note=data.get("note"),
            user_id=g.user_id,
        )
        return jsonify({"transfer": transfer.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.get("")
@require_tenant
def list_transfers_route():
    try:
        transfers = transfer_service.list_transfers(
            g.tenant_id,
            product_id=int_arg(request.args, "product_id"),
            limit=limit_arg(request.args),
        )
        return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list transfers")
        return jsonify({"error": "Internal server error"}), 500
