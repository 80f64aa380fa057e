from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z

SALE_TYPES = ("common", "package_sale", "package_consumption")
SALE_STATUSES = ("open", "confirmed", "cancelled")
DISCOUNT_TYPES = ("percentage", "fixed")


class Sale(db.Model):
    """
    Sale document.

    LIFECYCLE:
    - open: items may be replaced by the owning attendant or an admin
    - confirmed: totals frozen, commissions generated
    - cancelled: terminal; commissions and package effects reversed

    MONEY: all amounts are integer cents.
    total_cents = subtotal_cents - total_discount_cents, never below zero.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_attendant_date", "attendant_id", "sale_date"),
        db.Index("ix_sales_status_date", "status", "sale_date"),
        db.CheckConstraint("total_cents >= 0", name="ck_sales_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    attendant_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False)
    observations = db.Column(db.Text, nullable=True)

    sale_type = db.Column(db.String(24), nullable=False, default="common", index=True)
    status = db.Column(db.String(16), nullable=False, default="open", index=True)
    payment_method = db.Column(db.String(32), nullable=False)

    # General (sale-level) discount; percentage values are basis points, fixed values are cents
    general_discount_type = db.Column(db.String(16), nullable=True)
    general_discount_value = db.Column(db.Integer, nullable=False, default=0)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    total_discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    # Package linkage: service sold as a package, or package being consumed.
    # package_id has no FK (client_packages.sale_id already points back here);
    # package_consumptions carries the enforced link.
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True, index=True)
    package_id = db.Column(db.Integer, nullable=True, index=True)

    confirmed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    confirmed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    attendant = db.relationship("User", foreign_keys=[attendant_id], backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="SaleItem.position",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client.name if self.client else None,
            "attendant_id": self.attendant_id,
            "attendant_name": self.attendant.full_name if self.attendant else None,
            "sale_date": to_utc_z(self.sale_date),
            "observations": self.observations,
            "sale_type": self.sale_type,
            "status": self.status,
            "payment_method": self.payment_method,
            "general_discount_type": self.general_discount_type,
            "general_discount_value": self.general_discount_value,
            "subtotal_cents": self.subtotal_cents,
            "total_discount_cents": self.total_discount_cents,
            "total_cents": self.total_cents,
            "service_id": self.service_id,
            "package_id": self.package_id,
            "confirmed_at": to_utc_z(self.confirmed_at) if self.confirmed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    Line item on a sale. Replaced wholesale (delete-all, insert-all) on edit.

    product_name is a snapshot so renaming a service never rewrites history.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        db.CheckConstraint("total_cents >= 0", name="ck_sale_items_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Integer, nullable=False, default=0)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "service_id": self.service_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }
