# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/backoffice/routes/sales.py
"""
Sales API routes.

All routes require authentication. The caller's identity (g.identity) is
passed explicitly into the sales service, which enforces the
owner-or-admin rule for edits, confirmation and cancellation.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ServiceError, ValidationError
from ..services import sales_service
from ..validation import require_int
from ..decorators import require_auth


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    List sales, newest first. Admins see every sale, attendants their own.

    Query params:
    - status: open | confirmed | cancelled (optional)
    - client_id: int (optional)
    """
    try:
        sales = sales_service.list_sales(
            g.identity,
            status=request.args.get("status") or None,
            client_id=request.args.get("client_id", type=int),
        )
        return jsonify({"sales": [s.to_dict() for s in sales]}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.identity, sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Create an open sale.

    Body: client_id, payment_method, items[], sale_type?, observations?,
    general_discount_type?, general_discount_value?, service_id? (package
    sale), package_id? (package consumption), package_expires_at?
    """
    try:
        data = request.get_json(silent=True)
        sale = sales_service.create_sale(g.identity, data)
        return jsonify({"sale": sale.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.put("")
@require_auth
def update_sale_route():
    """Replace the items of an open sale. The sale id travels in the body."""
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        sale_id = require_int(data, "id")
        payload = {k: v for k, v in data.items() if k != "id"}
        sale = sales_service.update_sale(g.identity, sale_id, payload)
        return jsonify({"sale": sale.to_dict(), "total_cents": sale.total_cents}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/confirm")
@require_auth
def confirm_sale_route():
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.confirm_sale(g.identity, require_int(data, "sale_id"))
        return jsonify({"sale": sale.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to confirm sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/cancel")
@require_auth
def cancel_sale_route():
    """Cancel an open or confirmed sale. Repeating the call returns 200."""
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.cancel_sale(
            g.identity,
            require_int(data, "sale_id"),
            reason=data.get("reason"),
        )
        return jsonify({"sale": sale.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
