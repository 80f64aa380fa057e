from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z, to_iso_date


class ClientOrigin(db.Model):
    """Acquisition channel for a client (referral, social media, walk-in...)."""
    __tablename__ = "client_origins"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_client_origins_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Client(db.Model):
    """
    Client registry.

    Client rows are never deleted: they own packages and appear on historical
    sales. is_active=False hides a client from new sales.
    """
    __tablename__ = "clients"
    __table_args__ = (
        # CPF / CNPJ is unique when present
        db.UniqueConstraint("tax_id", name="uq_clients_tax_id"),
        db.Index("ix_clients_active_name", "is_active", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    birth_date = db.Column(db.Date, nullable=True)
    tax_id = db.Column(db.String(18), nullable=True)

    origin_id = db.Column(db.Integer, db.ForeignKey("client_origins.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    origin = db.relationship("ClientOrigin", backref=db.backref("clients", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "birth_date": to_iso_date(self.birth_date),
            "tax_id": self.tax_id,
            "origin_id": self.origin_id,
            "origin_name": self.origin.name if self.origin else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "deactivated_at": to_utc_z(self.deactivated_at) if self.deactivated_at else None,
        }
