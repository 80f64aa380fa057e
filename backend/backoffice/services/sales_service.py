# Overview: Service-layer operations for sales; the sale aggregate and its state machine.

"""
Sales Service

Lifecycle: open -> confirmed -> cancelled, or open -> cancelled.

- create_sale(): prices items, applies discounts, and for package types
  creates or debits the package, all in one transaction.
- update_sale(): replaces the items of an open sale and re-syncs the
  package effect (re-debit for consumption, re-size for package sales).
- confirm_sale(): freezes totals and generates commissions.
- cancel_sale(): reverses commissions and package effects. Idempotent.

Only the attendant who owns a sale, or an admin, may change it. The caller's
Identity is always passed in explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from flask import current_app
from sqlalchemy.orm import selectinload

from ..errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Client, ClientPackage, Sale, SaleItem, Service
from ..validation import (
    coerce_int,
    optional_datetime,
    optional_int,
    optional_str,
    require_int,
    require_str,
)
from backoffice.time_utils import utcnow
from . import commission_service, package_service
from .concurrency import begin_write, lock_for_update, run_with_retry
from .discount_service import discount_amount, validate_discount
from .pricing_service import quote_service
from .session_service import Identity

COMMON = "common"
PACKAGE_SALE = "package_sale"
PACKAGE_CONSUMPTION = "package_consumption"
SALE_TYPES = (COMMON, PACKAGE_SALE, PACKAGE_CONSUMPTION)

# Numeric codes still sent by older clients
LEGACY_SALE_TYPE_CODES = {"01": COMMON, "02": PACKAGE_SALE, "03": PACKAGE_CONSUMPTION}

STATUS_OPEN = "open"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"

MAX_ITEMS = 100


@dataclass
class PricedItem:
    service_id: Optional[int]
    product_name: str
    quantity: int
    unit_price_cents: int
    discount_type: Optional[str]
    discount_value: int
    subtotal_cents: int
    discount_cents: int

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents - self.discount_cents


@dataclass(frozen=True)
class SaleTotals:
    subtotal_cents: int
    total_discount_cents: int
    total_cents: int


def normalize_sale_type(raw) -> str:
    if raw is None or raw == "":
        return COMMON
    value = str(raw).strip().lower()
    value = LEGACY_SALE_TYPE_CODES.get(value, value)
    if value not in SALE_TYPES:
        raise ValidationError(f"Invalid sale_type: {raw}", details={"allowed": list(SALE_TYPES)})
    return value


def compute_totals(items: list[PricedItem], general_type: Optional[str], general_value: int) -> SaleTotals:
    """
    Sale totals from priced items.

    The general discount applies to the sum of item totals (after item
    discounts) and is capped there, so total_cents never goes below zero.
    """
    subtotal = sum(i.subtotal_cents for i in items)
    items_discount = sum(i.discount_cents for i in items)
    general = discount_amount(subtotal - items_discount, general_type, general_value)
    total_discount = items_discount + general
    return SaleTotals(
        subtotal_cents=subtotal,
        total_discount_cents=total_discount,
        total_cents=max(0, subtotal - total_discount),
    )


def _parse_general_discount(payload: dict) -> tuple[Optional[str], int]:
    raw_value = payload.get("general_discount_value")
    value = coerce_int("general_discount_value", raw_value) if raw_value not in (None, "") else 0
    return validate_discount(optional_str(payload, "general_discount_type"), value)


def _parse_items(payload: dict, sale_type: str) -> list[dict]:
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    if len(raw_items) > MAX_ITEMS:
        raise ValidationError(f"A sale cannot have more than {MAX_ITEMS} items")
    if sale_type != COMMON and len(raw_items) != 1:
        raise ValidationError(
            f"A {sale_type} sale must have exactly one item",
            details={"item_count": len(raw_items)},
        )

    parsed = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        quantity = require_int(raw, "quantity")
        if quantity <= 0:
            raise ValidationError(
                "quantity must be a positive integer",
                details={"item_index": index, "quantity": quantity},
            )
        raw_discount = raw.get("discount_value")
        discount_value = coerce_int("discount_value", raw_discount) if raw_discount not in (None, "") else 0
        discount_type, discount_value = validate_discount(optional_str(raw, "discount_type"), discount_value)
        parsed.append({
            "index": index,
            "service_id": optional_int(raw, "service_id"),
            "product_name": optional_str(raw, "product_name", max_length=255),
            "quantity": quantity,
            "unit_price_cents": optional_int(raw, "unit_price_cents"),
            "discount_type": discount_type,
            "discount_value": discount_value,
        })
    return parsed


def _price_item(item: dict, sale_type: str, package: Optional[ClientPackage]) -> PricedItem:
    quantity = item["quantity"]

    if sale_type == PACKAGE_CONSUMPTION:
        if item["discount_type"] and item["discount_value"]:
            raise ValidationError("Discounts are not allowed when consuming a package")
        unit = package.unit_price_cents
        return PricedItem(
            service_id=package.service_id,
            product_name=package.service.name if package.service else f"Package {package.id}",
            quantity=quantity,
            unit_price_cents=unit,
            discount_type=None,
            discount_value=0,
            subtotal_cents=unit * quantity,
            discount_cents=0,
        )

    service_id = item["service_id"]
    if service_id is not None:
        service = db.session.get(Service, service_id)
        if not service or not service.is_active:
            raise NotFoundError("Service not found or inactive", details={"service_id": service_id})
        quote = quote_service(service, quantity, sale_type)
        if quote.is_misconfigured:
            current_app.logger.warning(
                "Pricing misconfigured for service %s (%s), quantity %s: %s",
                service.id, sale_type, quantity, quote.warning,
            )
            raise ValidationError(
                "Service pricing is not configured for this quantity",
                details={"service_id": service.id, "quantity": quantity, "warning": quote.warning},
                code="PRICING_NOT_CONFIGURED",
            )
        subtotal = quote.subtotal_cents
        unit = quote.unit_price_cents
        name = item["product_name"] or service.name
    else:
        if sale_type == PACKAGE_SALE:
            raise ValidationError("service_id is required for package sales")
        unit = item["unit_price_cents"]
        if unit is None:
            raise ValidationError(
                "unit_price_cents is required for items without a service",
                details={"item_index": item["index"]},
            )
        if unit < 0:
            raise ValidationError("unit_price_cents must be >= 0", details={"item_index": item["index"]})
        if not item["product_name"]:
            raise ValidationError(
                "product_name is required for items without a service",
                details={"item_index": item["index"]},
            )
        subtotal = unit * quantity
        name = item["product_name"]

    discount = discount_amount(subtotal, item["discount_type"], item["discount_value"])
    return PricedItem(
        service_id=service_id,
        product_name=name,
        quantity=quantity,
        unit_price_cents=unit,
        discount_type=item["discount_type"],
        discount_value=item["discount_value"],
        subtotal_cents=subtotal,
        discount_cents=discount,
    )


def _load_client(client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if not client:
        raise NotFoundError("Client not found", details={"client_id": client_id})
    if not client.is_active:
        raise ValidationError("Client is inactive", details={"client_id": client_id})
    return client


def _load_package_for_client(package_id: Optional[int], client_id: int) -> ClientPackage:
    if package_id is None:
        raise ValidationError("package_id is required for package consumption")
    package = package_service.get_consumable_package(package_id)
    if package.client_id != client_id:
        raise ValidationError(
            "Package does not belong to this client",
            details={"package_id": package_id, "client_id": client_id},
        )
    return package


def _sale_service_id(payload: dict, items: list[dict]) -> int:
    """The service sold as a package: explicit service_id or the item's."""
    service_id = optional_int(payload, "service_id") or items[0]["service_id"]
    if service_id is None:
        raise ValidationError("service_id is required for package sales")
    if items[0]["service_id"] is None:
        items[0]["service_id"] = service_id
    elif items[0]["service_id"] != service_id:
        raise ValidationError("Item service_id does not match the sale service_id")
    return service_id


def _build_items(priced: list[PricedItem]) -> list[SaleItem]:
    return [
        SaleItem(
            position=position,
            service_id=p.service_id,
            product_name=p.product_name,
            quantity=p.quantity,
            unit_price_cents=p.unit_price_cents,
            discount_type=p.discount_type,
            discount_value=p.discount_value,
            subtotal_cents=p.subtotal_cents,
            discount_cents=p.discount_cents,
            total_cents=p.total_cents,
        )
        for position, p in enumerate(priced)
    ]


def _apply_totals(sale: Sale, totals: SaleTotals) -> None:
    sale.subtotal_cents = totals.subtotal_cents
    sale.total_discount_cents = totals.total_discount_cents
    sale.total_cents = totals.total_cents


def _lock_sale(identity: Identity, sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    if not identity.can_act_on(sale.attendant_id):
        raise ForbiddenError("Only the sale's attendant or an admin can change this sale")
    return sale


def create_sale(identity: Identity, payload: dict) -> Sale:
    """
    Create an open sale.

    package_sale: creates a package for the client with the sold quantity,
    paid at the sale total.
    package_consumption: debits the client's package at its unit price; the
    sale is rejected if the balance is insufficient.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    sale_type = normalize_sale_type(payload.get("sale_type"))
    client_id = require_int(payload, "client_id")
    payment_method = require_str(payload, "payment_method", max_length=32)
    observations = optional_str(payload, "observations")
    sale_date = optional_datetime(payload, "sale_date")
    general_type, general_value = _parse_general_discount(payload)
    items = _parse_items(payload, sale_type)

    if sale_type == PACKAGE_CONSUMPTION and general_type and general_value:
        raise ValidationError("Discounts are not allowed when consuming a package")

    service_id = _sale_service_id(payload, items) if sale_type == PACKAGE_SALE else None
    package_id = optional_int(payload, "package_id")
    package_expires_at = optional_datetime(payload, "package_expires_at")

    def _op():
        begin_write()

        _load_client(client_id)

        package = None
        if sale_type == PACKAGE_CONSUMPTION:
            package = _load_package_for_client(package_id, client_id)

        priced = [_price_item(item, sale_type, package) for item in items]
        totals = compute_totals(priced, general_type, general_value)

        sale = Sale(
            client_id=client_id,
            attendant_id=identity.user_id,
            sale_date=sale_date or utcnow(),
            observations=observations,
            sale_type=sale_type,
            status=STATUS_OPEN,
            payment_method=payment_method,
            general_discount_type=general_type,
            general_discount_value=general_value,
            service_id=package.service_id if package else service_id,
            package_id=package.id if package else None,
        )
        _apply_totals(sale, totals)
        sale.items = _build_items(priced)
        db.session.add(sale)
        db.session.flush()

        if sale_type == PACKAGE_SALE:
            package_service.create_package(
                client_id=client_id,
                service_id=service_id,
                sale_id=sale.id,
                initial_quantity=priced[0].quantity,
                total_paid_cents=sale.total_cents,
                expires_at=package_expires_at,
                commit=False,
            )
        elif sale_type == PACKAGE_CONSUMPTION:
            package_service.consume(package.id, sale.id, priced[0].quantity, commit=False)

        db.session.commit()
        current_app.logger.info(
            "Sale %s created (%s) by user %s: total %s cents",
            sale.id, sale_type, identity.user_id, sale.total_cents,
        )
        return sale

    return run_with_retry(_op)


def update_sale(identity: Identity, sale_id: int, payload: dict) -> Sale:
    """
    Replace the items and header fields of an open sale.

    The sale type and, for package types, the client and package are fixed
    at creation.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    def _op():
        begin_write()

        sale = _lock_sale(identity, sale_id)
        if sale.status != STATUS_OPEN:
            raise InvalidStateError(
                f"Only open sales can be edited (status: {sale.status})",
                details={"sale_id": sale_id, "status": sale.status},
            )

        if payload.get("sale_type") not in (None, ""):
            if normalize_sale_type(payload["sale_type"]) != sale.sale_type:
                raise ValidationError("sale_type cannot be changed")

        client_id = optional_int(payload, "client_id") or sale.client_id
        if client_id != sale.client_id and sale.sale_type != COMMON:
            raise ValidationError("client_id cannot be changed on package sales")
        package_id = optional_int(payload, "package_id")
        if package_id is not None and package_id != sale.package_id:
            raise ValidationError("package_id cannot be changed")

        payment_method = optional_str(payload, "payment_method", max_length=32) or sale.payment_method
        if "general_discount_type" in payload or "general_discount_value" in payload:
            general_type, general_value = _parse_general_discount(payload)
        else:
            general_type, general_value = sale.general_discount_type, sale.general_discount_value

        items = _parse_items(payload, sale.sale_type)

        if sale.sale_type == PACKAGE_CONSUMPTION and general_type and general_value:
            raise ValidationError("Discounts are not allowed when consuming a package")

        if sale.sale_type == PACKAGE_SALE:
            if items[0]["service_id"] is None:
                items[0]["service_id"] = sale.service_id
            elif items[0]["service_id"] != sale.service_id:
                raise ValidationError("The service of a package sale cannot be changed")

        _load_client(client_id)

        package = None
        if sale.sale_type == PACKAGE_CONSUMPTION:
            package = package_service.get_package(sale.package_id)

        priced = [_price_item(item, sale.sale_type, package) for item in items]
        totals = compute_totals(priced, general_type, general_value)

        sale.client_id = client_id
        sale.payment_method = payment_method
        if "observations" in payload:
            sale.observations = optional_str(payload, "observations")
        sale_date = optional_datetime(payload, "sale_date")
        if sale_date:
            sale.sale_date = sale_date
        sale.general_discount_type = general_type
        sale.general_discount_value = general_value
        _apply_totals(sale, totals)
        sale.items = _build_items(priced)
        db.session.flush()

        if sale.sale_type == PACKAGE_CONSUMPTION:
            package_service.adjust_consumption(sale.id, sale.package_id, priced[0].quantity)
        elif sale.sale_type == PACKAGE_SALE:
            package_service.resync_for_sale(sale.id, priced[0].quantity, sale.total_cents)

        db.session.commit()
        current_app.logger.info("Sale %s updated by user %s", sale.id, identity.user_id)
        return sale

    return run_with_retry(_op)


def confirm_sale(identity: Identity, sale_id: int) -> Sale:
    """open -> confirmed. Generates one commission per item."""
    def _op():
        begin_write()

        sale = _lock_sale(identity, sale_id)
        if sale.status != STATUS_OPEN:
            raise InvalidStateError(
                f"Only open sales can be confirmed (status: {sale.status})",
                details={"sale_id": sale_id, "status": sale.status},
            )

        sale.status = STATUS_CONFIRMED
        sale.confirmed_at = utcnow()
        sale.confirmed_by_user_id = identity.user_id
        db.session.flush()

        commission_service.generate_for_sale(sale)

        db.session.commit()
        current_app.logger.info("Sale %s confirmed by user %s", sale.id, identity.user_id)
        return sale

    return run_with_retry(_op)


def cancel_sale(identity: Identity, sale_id: int, reason: Optional[str] = None) -> Sale:
    """
    open|confirmed -> cancelled.

    Reverses commissions, restores consumed package credits and deactivates
    a package created by this sale. Cancelling a cancelled sale is a no-op.
    """
    if reason is not None:
        reason = str(reason).strip()[:255] or None

    def _op():
        begin_write()

        sale = _lock_sale(identity, sale_id)
        if sale.status == STATUS_CANCELLED:
            return sale

        commission_service.reverse_for_sale(sale.id)
        package_service.reverse_consumption(sale.id, commit=False)
        if sale.sale_type == PACKAGE_SALE:
            package_service.deactivate_for_sale(sale.id)

        previous = sale.status
        sale.status = STATUS_CANCELLED
        sale.cancelled_at = utcnow()
        sale.cancelled_by_user_id = identity.user_id
        sale.cancel_reason = reason

        db.session.commit()
        current_app.logger.info(
            "Sale %s cancelled by user %s (was %s)", sale.id, identity.user_id, previous,
        )
        return sale

    return run_with_retry(_op)


def get_sale(identity: Identity, sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    if not identity.can_act_on(sale.attendant_id):
        raise ForbiddenError("Not allowed to view this sale")
    return sale


def list_sales(
    identity: Identity,
    *,
    status: Optional[str] = None,
    client_id: Optional[int] = None,
) -> list[Sale]:
    """Sales visible to the caller, newest first. Non-admins see only their own."""
    if status and status not in (STATUS_OPEN, STATUS_CONFIRMED, STATUS_CANCELLED):
        raise ValidationError(f"Invalid status: {status}")

    query = db.session.query(Sale).options(
        selectinload(Sale.items),
        selectinload(Sale.client),
        selectinload(Sale.attendant),
    )
    if not identity.is_admin:
        query = query.filter(Sale.attendant_id == identity.user_id)
    if status:
        query = query.filter(Sale.status == status)
    if client_id is not None:
        query = query.filter(Sale.client_id == client_id)
    return query.order_by(Sale.sale_date.desc(), Sale.id.desc()).all()
