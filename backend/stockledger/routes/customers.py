# Overview: Flask API routes for customer ledger reads; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..decorators import require_tenant
from ..services import customer_ledger_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/<int:customer_id>/ledger")
@require_tenant
def customer_ledger_route(customer_id: int):
    """
    Sales vs. returns per period for a customer.

    Query: period=day|week|month (default day), optional start/end (ISO-8601).
    Newest period first.
    """
    try:
        period = (request.args.get("period") or "day").strip().lower()
        rows = customer_ledger_service.get_customer_ledger(
            g.tenant_id,
            customer_id,
            period,
            start=request.args.get("start"),
            end=request.args.get("end"),
        )
        return jsonify({"customer_id": customer_id, "period": period, "ledger": rows}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get customer ledger")
        return jsonify({"error": "Internal server error"}), 500
