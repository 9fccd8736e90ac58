# Overview: Flask API routes for customer account lookups.

from flask import Blueprint, jsonify, current_app

from ..errors import PosError
from ..services import customer_service
from .sales import error_response, internal_error


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/<int:customer_id>/balance")
def customer_balance_route(customer_id: int):
    """Current on-account balance and remaining credit."""
    try:
        summary = customer_service.get_credit_summary(customer_id)
        return jsonify({"success": True, "data": summary}), 200

    except PosError as e:
        return error_response(e)
    except Exception as e:
        current_app.logger.exception("Failed to read balance for customer %s", customer_id)
        return internal_error("CUSTOMER_BALANCE_ERROR", "Internal server error while reading the balance", e)
