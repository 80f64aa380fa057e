from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z

# Sale types a price range can apply to. Package consumption is priced from
# the package itself, never from the catalog.
PRICE_RANGE_SALE_TYPES = ("common", "package_sale")

PRICING_MODES = ("tiered", "progressive")


class Service(db.Model):
    """
    A sellable service with quantity-based price tiers.

    PRICING MODES:
    - tiered: the single range containing the quantity prices every unit
    - progressive: each range prices only the units inside it (bracketed)
    """
    __tablename__ = "services"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_services_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    base_price_cents = db.Column(db.Integer, nullable=False, default=0)
    pricing_mode = db.Column(db.String(16), nullable=False, default="tiered")

    # Optional per-service override of the default commission rate
    commission_rate_bps = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    price_ranges = db.relationship(
        "PriceRange",
        backref="service",
        lazy=True,
        cascade="all, delete-orphan",
        order_by=lambda: [PriceRange.sale_type, PriceRange.min_quantity],
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "base_price_cents": self.base_price_cents,
            "pricing_mode": self.pricing_mode,
            "commission_rate_bps": self.commission_rate_bps,
            "is_active": self.is_active,
            "price_ranges": [r.to_dict() for r in self.price_ranges],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PriceRange(db.Model):
    """
    Quantity tier for a service.

    max_quantity NULL means unbounded. Ranges for one sale_type must be
    contiguous and non-overlapping (enforced by catalog_service).
    """
    __tablename__ = "service_price_ranges"
    __table_args__ = (
        db.UniqueConstraint("service_id", "sale_type", "min_quantity", name="uq_price_ranges_service_type_min"),
        db.CheckConstraint("min_quantity >= 1", name="ck_price_ranges_min_positive"),
        db.CheckConstraint("max_quantity IS NULL OR max_quantity >= min_quantity", name="ck_price_ranges_max_ge_min"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_price_ranges_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)

    sale_type = db.Column(db.String(16), nullable=False, default="common")
    min_quantity = db.Column(db.Integer, nullable=False)
    max_quantity = db.Column(db.Integer, nullable=True)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_type": self.sale_type,
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "unit_price_cents": self.unit_price_cents,
        }
