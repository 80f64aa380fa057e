from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


class ClientPackage(db.Model):
    """
    Prepaid credit balance of a client for one service.

    INVARIANT: available_quantity = initial_quantity - consumed_quantity >= 0.
    Enforced by check constraints and by package_service, which only mutates
    balances through conditional UPDATEs on a locked row.

    Packages are never deleted; a cancelled package sale deactivates it.
    """
    __tablename__ = "client_packages"
    __table_args__ = (
        db.CheckConstraint("initial_quantity > 0", name="ck_client_packages_initial_positive"),
        db.CheckConstraint("consumed_quantity >= 0", name="ck_client_packages_consumed_non_negative"),
        db.CheckConstraint("available_quantity >= 0", name="ck_client_packages_available_non_negative"),
        db.CheckConstraint(
            "initial_quantity = consumed_quantity + available_quantity",
            name="ck_client_packages_balance",
        ),
        db.Index("ix_client_packages_client_active", "client_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)
    # Originating package sale
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    initial_quantity = db.Column(db.Integer, nullable=False)
    consumed_quantity = db.Column(db.Integer, nullable=False, default=0)
    available_quantity = db.Column(db.Integer, nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_paid_cents = db.Column(db.Integer, nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deactivated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("packages", lazy=True))
    service = db.relationship("Service")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "service_id": self.service_id,
            "service_name": self.service.name if self.service else None,
            "sale_id": self.sale_id,
            "initial_quantity": self.initial_quantity,
            "consumed_quantity": self.consumed_quantity,
            "available_quantity": self.available_quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_paid_cents": self.total_paid_cents,
            "is_active": self.is_active,
            "expires_at": to_utc_z(self.expires_at) if self.expires_at else None,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class PackageConsumption(db.Model):
    """
    Debit of package credits by a package-consumption sale.

    Kept for audit and reversal: cancelling the sale flips status to
    "reversed" and restores the quantity exactly once.
    """
    __tablename__ = "package_consumptions"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_package_consumptions_quantity_positive"),
        db.Index("ix_package_consumptions_sale_status", "sale_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    package_id = db.Column(db.Integer, db.ForeignKey("client_packages.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active, reversed

    consumed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reversed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    package = db.relationship("ClientPackage", backref=db.backref("consumptions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "package_id": self.package_id,
            "sale_id": self.sale_id,
            "quantity": self.quantity,
            "status": self.status,
            "consumed_at": to_utc_z(self.consumed_at),
            "reversed_at": to_utc_z(self.reversed_at) if self.reversed_at else None,
        }
