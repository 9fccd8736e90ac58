# Overview: Flask API routes for the cash session; status, open and close.

# backend/tillcore/routes/registers.py
"""
Cash Session API Routes

DESIGN:
- At most one session is open; opening a second one is rejected
- Status includes the movement totals of the open session
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import PosError
from ..services import register_service
from ..decorators import with_actor
from .sales import error_response, internal_error


cash_bp = Blueprint("cash", __name__, url_prefix="/api/cash")


@cash_bp.get("/status")
def cash_status_route():
    try:
        session = register_service.get_open_session()
        if session is None:
            return jsonify({"success": True, "data": {"is_open": False, "session": None}}), 200

        summary = register_service.session_summary(session.id)
        return jsonify({"success": True, "data": {"is_open": True, **summary}}), 200

    except Exception as e:
        current_app.logger.exception("Failed to read cash status")
        return internal_error("CASH_STATUS_ERROR", "Internal server error while reading the cash status", e)


@cash_bp.post("/open")
@with_actor
def open_cash_route():
    """
    Open the cash session.

    Request body:
    {
        "opening_amount": 100.0,
        "notes": "Morning shift"  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        session = register_service.open_session(
            g.actor_id,
            data.get("opening_amount", 0),
            data.get("notes"),
        )
        return jsonify({
            "success": True,
            "message": "Cash session opened",
            "data": session.to_dict(),
        }), 201

    except PosError as e:
        return error_response(e)
    except Exception as e:
        current_app.logger.exception("Failed to open cash session")
        return internal_error("CASH_OPEN_ERROR", "Internal server error while opening the cash session", e)


@cash_bp.post("/close")
@with_actor
def close_cash_route():
    """
    Close the open cash session.

    Request body:
    {
        "closing_amount": 250.0,  (optional)
        "notes": "..."  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        session = register_service.close_session(
            g.actor_id,
            data.get("closing_amount"),
            data.get("notes"),
        )
        return jsonify({
            "success": True,
            "message": "Cash session closed",
            "data": register_service.session_summary(session.id),
        }), 200

    except PosError as e:
        return error_response(e)
    except Exception as e:
        current_app.logger.exception("Failed to close cash session")
        return internal_error("CASH_CLOSE_ERROR", "Internal server error while closing the cash session", e)
