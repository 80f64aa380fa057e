from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z, to_iso_date


class Commission(db.Model):
    """
    Attendant commission on one confirmed sale item.

    Reversed (status="reversed"), never deleted, when the sale is cancelled.
    """
    __tablename__ = "commissions"
    __table_args__ = (
        db.Index("ix_commissions_user_reference", "user_id", "reference_date"),
        db.Index("ix_commissions_sale_status", "sale_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    # Nullable: sale items are replaced on edit, but only open sales are edited
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id", ondelete="SET NULL"), nullable=True, index=True)

    reference_date = db.Column(db.Date, nullable=False, index=True)

    base_cents = db.Column(db.Integer, nullable=False)
    rate_bps = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active, reversed

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reversed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", backref=db.backref("commissions", lazy=True))
    sale = db.relationship("Sale", backref=db.backref("commissions", lazy=True))
    sale_item = db.relationship("SaleItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "attendant_id": self.user_id,
            "attendant_name": self.user.full_name if self.user else None,
            "sale_id": self.sale_id,
            "sale_item_id": self.sale_item_id,
            "product_name": self.sale_item.product_name if self.sale_item else None,
            "reference_date": to_iso_date(self.reference_date),
            "base_cents": self.base_cents,
            "rate_bps": self.rate_bps,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "reversed_at": to_utc_z(self.reversed_at) if self.reversed_at else None,
        }


class Holiday(db.Model):
    """Non-working dates used to classify commission reference dates."""
    __tablename__ = "holidays"
    __table_args__ = (
        db.UniqueConstraint("date", name="uq_holidays_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False)
    name = db.Column(db.String(128), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": to_iso_date(self.date),
            "name": self.name,
            "is_active": self.is_active,
        }
