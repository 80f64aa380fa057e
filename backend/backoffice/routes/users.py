# Overview: Flask API routes for operator accounts (admin only).

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ServiceError
from ..services import auth_service
from ..decorators import require_auth, require_admin


users_bp = Blueprint("users", __name__, url_prefix="/api/admin/users")


@users_bp.get("")
@require_auth
@require_admin
def list_users_route():
    users = auth_service.list_users(
        include_inactive=request.args.get("include_inactive", "").lower() == "true",
    )
    return jsonify({"users": [u.to_dict() for u in users]}), 200


@users_bp.post("")
@require_auth
@require_admin
def create_user_route():
    """
    Body: first_name, last_name?, email, password, is_admin?

    Password must meet strength requirements (400 otherwise); duplicate
    email returns 409.
    """
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            first_name=data.get("first_name"),
            last_name=data.get("last_name") or "",
            email=data.get("email"),
            password=data.get("password"),
            is_admin=data.get("is_admin") is True,
        )
        return jsonify({"user": user.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.put("/<int:user_id>")
@require_auth
@require_admin
def update_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.update_user(user_id, data)
        return jsonify({"user": user.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.delete("/<int:user_id>")
@require_auth
@require_admin
def deactivate_user_route(user_id: int):
    """Soft-deactivate a user and revoke their sessions."""
    try:
        user = auth_service.deactivate_user(user_id, actor_user_id=g.identity.user_id)
        return jsonify({"user": user.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
