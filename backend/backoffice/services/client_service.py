# Overview: Service-layer operations for clients and client origins.

"""
Client Registry

Clients are never hard-deleted: they own packages and appear on historical
sales. deactivate_client() hides a client from new sales instead.

tax_id (CPF or CNPJ) is unique when present; duplicates raise ConflictError.
"""

from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Client, ClientOrigin
from backoffice.time_utils import utcnow


def _check_origin(origin_id: Optional[int]) -> None:
    if origin_id is None:
        return
    origin = db.session.get(ClientOrigin, origin_id)
    if not origin or not origin.is_active:
        raise ValidationError("Client origin not found or inactive", details={"origin_id": origin_id})


def _check_tax_id_unique(tax_id: Optional[str], exclude_id: Optional[int] = None) -> None:
    if not tax_id:
        return
    query = db.session.query(Client.id).filter(Client.tax_id == tax_id)
    if exclude_id is not None:
        query = query.filter(Client.id != exclude_id)
    if query.first():
        raise ConflictError("A client with this tax_id already exists", details={"tax_id": tax_id})


def _commit_or_conflict(message: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(message)


def create_client(*, patch: dict, created_by_user_id: Optional[int] = None) -> Client:
    """Create a client from a validated patch (see routes/clients.py policy)."""
    _check_origin(patch.get("origin_id"))
    _check_tax_id_unique(patch.get("tax_id"))

    client = Client(**patch)
    client.created_by_user_id = created_by_user_id
    client.is_active = True
    db.session.add(client)
    _commit_or_conflict("A client with this tax_id already exists")

    current_app.logger.info("Client %s created by user %s", client.id, created_by_user_id)
    return client


def get_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if not client:
        raise NotFoundError("Client not found", details={"client_id": client_id})
    return client


def update_client(client_id: int, *, patch: dict) -> Client:
    client = get_client(client_id)
    if "origin_id" in patch:
        _check_origin(patch["origin_id"])
    if "tax_id" in patch:
        _check_tax_id_unique(patch["tax_id"], exclude_id=client_id)

    for key, value in patch.items():
        setattr(client, key, value)
    _commit_or_conflict("A client with this tax_id already exists")
    return client


def deactivate_client(client_id: int) -> Client:
    client = get_client(client_id)
    if client.is_active:
        client.is_active = False
        client.deactivated_at = utcnow()
        db.session.commit()
        current_app.logger.info("Client %s deactivated", client_id)
    return client


def list_clients(*, search: Optional[str] = None, include_inactive: bool = False) -> list[Client]:
    query = db.session.query(Client)
    if not include_inactive:
        query = query.filter(Client.is_active.is_(True))
    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(
            Client.name.ilike(term),
            Client.email.ilike(term),
            Client.phone.ilike(term),
            Client.tax_id.ilike(term),
        ))
    return query.order_by(Client.name.asc(), Client.id.asc()).all()


# Origins

def list_origins(include_inactive: bool = False) -> list[ClientOrigin]:
    query = db.session.query(ClientOrigin)
    if not include_inactive:
        query = query.filter(ClientOrigin.is_active.is_(True))
    return query.order_by(ClientOrigin.name.asc()).all()


def create_origin(name: str) -> ClientOrigin:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if db.session.query(ClientOrigin.id).filter(ClientOrigin.name == name).first():
        raise ConflictError("Client origin already exists", details={"name": name})
    origin = ClientOrigin(name=name, is_active=True)
    db.session.add(origin)
    _commit_or_conflict("Client origin already exists")
    return origin


def update_origin(origin_id: int, *, name: Optional[str] = None, is_active: Optional[bool] = None) -> ClientOrigin:
    origin = db.session.get(ClientOrigin, origin_id)
    if not origin:
        raise NotFoundError("Client origin not found", details={"origin_id": origin_id})
    if name is not None:
        name = name.strip()
        if not name:
            raise ValidationError("name cannot be blank")
        origin.name = name
    if is_active is not None:
        origin.is_active = bool(is_active)
    _commit_or_conflict("Client origin already exists")
    return origin
