# Overview: Flask API routes for stock movements and balances; parses input and returns JSON responses.

"""
Stock ledger routes.

All routes require tenant context (X-Tenant-ID).
- POST /stock-movements posts a manual IN / OUT / ADJUSTMENT movement.
  IN and OUT take a positive quantity; ADJUSTMENT takes a signed one.
- Balance reads return the latest committed state.

Time semantics:
- created_at is serialized as ISO-8601 UTC with a trailing Z.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..validation import INT, STR, PayloadPolicy, int_arg, limit_arg, validate_payload
from ..decorators import require_tenant
from ..services import balance_service, ledger_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api")

STOCK_MOVEMENT_POLICY = PayloadPolicy(
    fields={"product_id": INT, "warehouse_id": INT, "quantity": INT, "type": STR, "note": STR},
    required={"product_id", "warehouse_id", "quantity", "type"},
    max_lengths={"note": 255, "type": 16},
)


@inventory_bp.post("/stock-movements")
@require_tenant
def create_stock_movement_route():
    """
    Post a manual stock movement.

    Request body:
    {
        "product_id": 3,
        "warehouse_id": 1,
        "type": "IN",        (IN, OUT or ADJUSTMENT)
        "quantity": 100,
        "note": "Initial count"  (optional)
    }

    Returns:
        201: Movement created
        400: Invalid input
        404: Product or warehouse not found
        409: Insufficient stock or contention
    """
    try:
        data = validate_payload(payload=request.get_json(silent=True), policy=STOCK_MOVEMENT_POLICY)

        movement = ledger_service.record_manual_movement(
            tenant_id=g.tenant_id,
            product_id=data["product_id"],
            warehouse_id=data["warehouse_id"],
            quantity=data["quantity"],
            movement_type=data["type"].upper(),
            note=data.get("note") or None,
            user_id=g.user_id,
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create stock movement")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stock-movements")
@require_tenant
def list_stock_movements_route():
    try:
        movements = ledger_service.list_movements(
            tenant_id=g.tenant_id,
            product_id=int_arg(request.args, "product_id"),
            warehouse_id=int_arg(request.args, "warehouse_id"),
            limit=limit_arg(request.args),
        )
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stock-balance")
@require_tenant
def get_stock_balance_route():
    try:
        product_id = int_arg(request.args, "product_id", required=True)
        warehouse_id = int_arg(request.args, "warehouse_id", required=True)
        quantity = balance_service.get_balance(g.tenant_id, product_id, warehouse_id)
        return jsonify({
            "product_id": product_id,
            "warehouse_id": warehouse_id,
            "quantity": quantity,
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to read stock balance")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stock-balance-by-warehouse")
@require_tenant
def get_stock_balance_by_warehouse_route():
    try:
        product_id = int_arg(request.args, "product_id", required=True)
        rows = balance_service.get_balances_by_warehouse(g.tenant_id, product_id)
        return jsonify({"product_id": product_id, "balances": rows}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to read stock balance by warehouse")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/stock-balance-total")
@require_tenant
def get_stock_balance_total_route():
    try:
        product_id = int_arg(request.args, "product_id", required=True)
        quantity = balance_service.get_total_balance(g.tenant_id, product_id)
        return jsonify({"product_id": product_id, "quantity": quantity}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to read total stock balance")
        return jsonify({"error": "Internal server error"}), 500
