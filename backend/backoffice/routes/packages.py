# Overview: Flask API routes for client packages and their statements.

from flask import Blueprint, request, jsonify, current_app

from ..errors import ServiceError
from ..services import package_service
from ..decorators import require_auth


packages_bp = Blueprint("packages", __name__, url_prefix="/api/packages")


@packages_bp.get("")
@require_auth
def list_packages_route():
    """
    List client packages with their available_quantity.

    Query params:
    - client_id: int (optional)
    - active_only: "true" to hide inactive and exhausted packages
    """
    try:
        packages = package_service.list_packages(
            client_id=request.args.get("client_id", type=int),
            active_only=request.args.get("active_only", "").lower() in ("1", "true", "yes"),
        )
        return jsonify({"packages": packages}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list packages")
        return jsonify({"error": "Internal server error"}), 500


@packages_bp.get("/<int:package_id>/statement")
@require_auth
def package_statement_route(package_id: int):
    try:
        return jsonify(package_service.get_statement(package_id)), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load package statement")
        return jsonify({"error": "Internal server error"}), 500
