# Overview: Flask API routes for attendant commissions.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ServiceError
from ..services import commission_service
from ..validation import optional_date_arg
from ..decorators import require_auth


commissions_bp = Blueprint("commissions", __name__, url_prefix="/api/commissions")


@commissions_bp.get("")
@require_auth
def list_commissions_route():
    """
    Commissions for the caller (admins: everyone, or one attendant).

    Query params:
    - start_date, end_date: YYYY-MM-DD (optional, inclusive)
    - attendant_id: int (admin only)
    - status: active | reversed
    - day_type: weekday | non_working
    """
    try:
        result = commission_service.list_commissions(
            g.identity,
            start_date=optional_date_arg(request.args.get("start_date"), "start_date"),
            end_date=optional_date_arg(request.args.get("end_date"), "end_date"),
            attendant_id=request.args.get("attendant_id", type=int),
            status=request.args.get("status") or None,
            day_type=request.args.get("day_type") or None,
        )
        return jsonify(result), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list commissions")
        return jsonify({"error": "Internal server error"}), 500
