# Overview: Flask API routes for the service catalog and price ranges.

from flask import Blueprint, request, jsonify, current_app

from ..errors import ServiceError
from ..services import catalog_service
from ..services.pricing_service import quote_service
from ..validation import require_positive_int
from ..decorators import require_auth, require_admin


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/services")


@catalog_bp.get("")
@require_auth
def list_services_route():
    try:
        services = catalog_service.list_services(
            include_inactive=request.args.get("include_inactive", "").lower() == "true",
        )
        return jsonify({"services": [s.to_dict() for s in services]}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list services")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/<int:service_id>/quote")
@require_auth
def quote_route(service_id: int):
    """
    Price preview for the sale form.

    Query params: quantity (required), sale_type (common | package_sale).
    A misconfigured catalog comes back with a warning and a zero quote.
    """
    try:
        service = catalog_service.get_service(service_id)
        quantity = require_positive_int(dict(request.args), "quantity")
        quote = quote_service(service, quantity, request.args.get("sale_type") or "common")
        return jsonify({
            "service_id": service.id,
            "quantity": quote.quantity,
            "mode": quote.mode,
            "unit_price_cents": quote.unit_price_cents,
            "subtotal_cents": quote.subtotal_cents,
            "warning": quote.warning,
        }), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to quote service %s", service_id)
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("")
@require_auth
@require_admin
def create_service_route():
    """Body: name, description?, base_price_cents?, pricing_mode?, commission_rate_bps?, price_ranges[]"""
    try:
        service = catalog_service.create_service(request.get_json(silent=True) or {})
        return jsonify({"service": service.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create service")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.put("/<int:service_id>")
@require_auth
@require_admin
def update_service_route(service_id: int):
    try:
        service = catalog_service.update_service(service_id, request.get_json(silent=True) or {})
        return jsonify({"service": service.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update service")
        return jsonify({"error": "Internal server error"}), 500
