# Overview: Flask API routes for the client registry and client origins.

# backend/backoffice/routes/clients.py
"""
Client management routes.

SECURITY: All routes require authentication; writes require an admin.
Attendants can list clients (they pick one on every sale).
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ServiceError, ValidationError
from ..models import Client
from ..services import client_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_client,
)
from ..decorators import require_auth, require_admin

CLIENT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "birth_date", "tax_id", "origin_id"},
    required_on_create={"name"},
)

clients_bp = Blueprint("clients", __name__, url_prefix="/api/admin")


@clients_bp.get("/clients")
@require_auth
def list_clients_route():
    """
    Query params:
    - q: search on name, email, phone or tax_id (optional)
    - include_inactive: "true" to include deactivated clients
    """
    clients = client_service.list_clients(
        search=request.args.get("q") or None,
        include_inactive=request.args.get("include_inactive", "").lower() == "true",
    )
    return jsonify({"clients": [c.to_dict() for c in clients]}), 200


@clients_bp.get("/clients/<int:client_id>")
@require_auth
def get_client_route(client_id: int):
    try:
        return jsonify({"client": client_service.get_client(client_id).to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@clients_bp.post("/clients")
@require_auth
@require_admin
def create_client_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=False)
        enforce_rules_client(patch)
        client = client_service.create_client(patch=patch, created_by_user_id=g.identity.user_id)
        return jsonify({"client": client.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.put("/clients/<int:client_id>")
@require_auth
@require_admin
def update_client_route(client_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Client, payload=payload, policy=CLIENT_POLICY, partial=True)
        enforce_rules_client(patch)
        client = client_service.update_client(client_id, patch=patch)
        return jsonify({"client": client.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.delete("/clients/<int:client_id>")
@require_auth
@require_admin
def deactivate_client_route(client_id: int):
    """Soft delete: the client stays on historical sales and packages."""
    try:
        client = client_service.deactivate_client(client_id)
        return jsonify({"client": client.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@clients_bp.get("/origins")
@require_auth
def list_origins_route():
    origins = client_service.list_origins(
        include_inactive=request.args.get("include_inactive", "").lower() == "true",
    )
    return jsonify({"origins": [o.to_dict() for o in origins]}), 200


@clients_bp.post("/origins")
@require_auth
@require_admin
def create_origin_route():
    payload = request.get_json(silent=True) or {}
    try:
        origin = client_service.create_origin(payload.get("name"))
        return jsonify({"origin": origin.to_dict()}), 201
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code


@clients_bp.put("/origins/<int:origin_id>")
@require_auth
@require_admin
def update_origin_route(origin_id: int):
    payload = request.get_json(silent=True) or {}
    is_active = payload.get("is_active")
    try:
        if is_active is not None and not isinstance(is_active, bool):
            raise ValidationError("is_active must be a boolean")
        origin = client_service.update_origin(origin_id, name=payload.get("name"), is_active=is_active)
        return jsonify({"origin": origin.to_dict()}), 200
    except ServiceError as e:
        return jsonify(e.to_dict()), e.status_code
