# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/tillcore/routes/sales.py
"""Sales API routes: create, list, detail and cancel."""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..errors import PosError
from ..services import sales_service
from ..decorators import with_actor


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def error_response(exc: PosError):
    return jsonify(exc.to_dict()), exc.http_status


def internal_error(code: str, message: str, exc: Exception):
    db.session.rollback()
    body = {"success": False, "code": code, "message": message}
    if current_app.config.get("EXPOSE_ERROR_DETAILS"):
        body["details"] = str(exc)
    return jsonify(body), 500


@sales_bp.post("")
@sales_bp.post("/")
@with_actor
def create_sale_route():
    """
    Record a completed sale.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2, "unit_price": 50.0}],
        "subtotal": 100.0,
        "tax": 21.0,
        "total": 121.0,
        "payment_method": "cash",
        "payment_methods": [{"method": "cash", "amount": 121.0}],  (optional)
        "payment_data": {},  (optional)
        "customer_id": 3,  (optional)
        "notes": "..."  (optional)
    }
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            data = {}
        sale = sales_service.create_sale(data, g.actor_id)

        return jsonify({
            "success": True,
            "message": "Sale created successfully",
            "data": sales_service.serialize_sale(sale, include_items=True),
        }), 201

    except PosError as e:
        return error_response(e)
    except Exception as e:
        current_app.logger.exception("Failed to create sale")
        return internal_error("SALE_CREATE_ERROR", "Internal server error while creating the sale", e)


@sales_bp.get("")
@sales_bp.get("/")
def list_sales_route():
    """
    List sales, newest first.

    Query params: start_date, end_date (YYYY-MM-DD), payment_method, status,
    customer_id, search, page, limit (1-100, default 25)
    """
    try:
        result = sales_service.list_sales(request.args)
        return jsonify({"success": True, "data": result}), 200

    except PosError as e:
        return error_response(e)
    except Exception as e:
        current_app.logger.exception("Failed to list sales")
        return internal_error("SALES_FETCH_ERROR", "Internal server error while fetching sales", e)


@sales_bp.get("/<sale_id>")
def get_sale_route(sale_id: str):
    """Get a sale with its line items."""
    try:
        sale = sales_service.get_sale(sale_id)
        return jsonify({"success": True, "data": sale}), 200

    except PosError as e:
        return error_response(e)
    except Exception as e:
        current_app.logger.exception("Failed to fetch sale %s", sale_id)
        return internal_error("SALE_FETCH_ERROR", "Internal server error while fetching the sale", e)


@sales_bp.post("/<sale_id>/cancel")
@with_actor
def cancel_sale_route(sale_id: str):
    """
    Cancel a completed sale.

    Request body:
    {
        "reason": "Customer returned the goods"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = sales_service.cancel_sale(sale_id, data.get("reason"), g.actor_id)

        return jsonify({
            "success": True,
            "message": "Sale cancelled successfully",
            "data": result,
        }), 200

    except PosError as e:
        return error_response(e)
    except Exception as e:
        current_app.logger.exception("Failed to cancel sale %s", sale_id)
        return internal_error("SALE_CANCEL_ERROR", "Internal server error while cancelling the sale", e)
