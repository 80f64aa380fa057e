# Overview: Service-layer operations for the service catalog and its price ranges.

"""
Catalog Service

Price ranges are validated per sale type before they are stored:
- the first range starts at 1
- ranges are contiguous and non-overlapping (next.min == prev.max + 1)
- only the last range may be unbounded (max_quantity NULL)
- unit prices are >= 0

pricing_mode defaults to the mode inferred from the service name
(pricing_service.infer_pricing_mode) when the caller does not set one.
"""

from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import PriceRange, Service
from ..models.catalog import PRICE_RANGE_SALE_TYPES, PRICING_MODES
from ..validation import MAX_AMOUNT_CENTS, coerce_int, optional_int
from .pricing_service import infer_pricing_mode


def _parse_range(raw, index: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"price_ranges[{index}] must be an object")
    sale_type = (raw.get("sale_type") or "common").strip()
    if sale_type not in PRICE_RANGE_SALE_TYPES:
        raise ValidationError(
            f"Invalid sale_type in price_ranges[{index}]: {sale_type}",
            details={"allowed": list(PRICE_RANGE_SALE_TYPES)},
        )
    if raw.get("min_quantity") in (None, ""):
        raise ValidationError(f"price_ranges[{index}].min_quantity is required")
    if raw.get("unit_price_cents") in (None, ""):
        raise ValidationError(f"price_ranges[{index}].unit_price_cents is required")
    price = coerce_int("unit_price_cents", raw["unit_price_cents"])
    if price < 0 or price > MAX_AMOUNT_CENTS:
        raise ValidationError(f"price_ranges[{index}].unit_price_cents out of range")
    return {
        "sale_type": sale_type,
        "min_quantity": coerce_int("min_quantity", raw["min_quantity"]),
        "max_quantity": optional_int(raw, "max_quantity"),
        "unit_price_cents": price,
    }


def validate_price_ranges(raw_ranges) -> list[dict]:
    """Parse and check a price_ranges payload. Returns normalized dicts."""
    if not isinstance(raw_ranges, list):
        raise ValidationError("price_ranges must be a list")

    parsed = [_parse_range(raw, i) for i, raw in enumerate(raw_ranges)]

    for sale_type in PRICE_RANGE_SALE_TYPES:
        ranges = sorted((r for r in parsed if r["sale_type"] == sale_type), key=lambda r: r["min_quantity"])
        expected_min = 1
        for position, r in enumerate(ranges):
            if r["min_quantity"] != expected_min:
                raise ValidationError(
                    f"{sale_type} price ranges must be contiguous starting at 1",
                    details={"sale_type": sale_type, "expected_min": expected_min, "min_quantity": r["min_quantity"]},
                )
            if r["max_quantity"] is None:
                if position != len(ranges) - 1:
                    raise ValidationError(
                        f"Only the last {sale_type} price range may be unbounded",
                        details={"sale_type": sale_type},
                    )
                break
            if r["max_quantity"] < r["min_quantity"]:
                raise ValidationError(
                    "max_quantity must be >= min_quantity",
                    details={"sale_type": sale_type, "min_quantity": r["min_quantity"]},
                )
            expected_min = r["max_quantity"] + 1

    return parsed


def _apply_fields(service: Service, payload: dict) -> None:
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required")
        if len(name) > 255:
            raise ValidationError("name exceeds max length 255")
        service.name = name
    if "description" in payload:
        service.description = (payload.get("description") or "").strip() or None
    if "base_price_cents" in payload:
        base = coerce_int("base_price_cents", payload["base_price_cents"])
        if base < 0 or base > MAX_AMOUNT_CENTS:
            raise ValidationError("base_price_cents out of range")
        service.base_price_cents = base
    if "pricing_mode" in payload and payload["pricing_mode"] is not None:
        mode = str(payload["pricing_mode"]).strip()
        if mode not in PRICING_MODES:
            raise ValidationError(f"Invalid pricing_mode: {mode}", details={"allowed": list(PRICING_MODES)})
        service.pricing_mode = mode
    if "commission_rate_bps" in payload:
        rate = optional_int(payload, "commission_rate_bps")
        if rate is not None and not 0 <= rate <= 10_000:
            raise ValidationError("commission_rate_bps must be between 0 and 10000")
        service.commission_rate_bps = rate
    if "is_active" in payload:
        if not isinstance(payload["is_active"], bool):
            raise ValidationError("is_active must be a boolean")
        service.is_active = payload["is_active"]


def _replace_ranges(service: Service, ranges: list[dict]) -> None:
    # Old rows must be deleted before new rows reuse their (sale_type, min_quantity) keys
    service.price_ranges.clear()
    db.session.flush()
    service.price_ranges.extend(PriceRange(**r) for r in ranges)


_ALLOWED_FIELDS = {
    "name", "description", "base_price_cents", "pricing_mode",
    "commission_rate_bps", "is_active", "price_ranges",
}


def _check_fields(payload: dict) -> None:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = sorted(set(payload) - _ALLOWED_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")


def _conflict(exc: IntegrityError, name: str) -> ConflictError:
    message = str(exc.orig)
    if "uq_services_name" in message or "services.name" in message:
        return ConflictError("A service with this name already exists", details={"name": name})
    current_app.logger.warning("Integrity error saving service '%s': %s", name, message)
    return ConflictError("Service data conflicts with an existing record", details={"name": name})


def create_service(payload: dict) -> Service:
    _check_fields(payload)
    if not (payload.get("name") or "").strip():
        raise ValidationError("name is required")
    ranges = validate_price_ranges(payload.get("price_ranges") or [])

    service = Service(is_active=True, base_price_cents=0)
    _apply_fields(service, payload)
    if not payload.get("pricing_mode"):
        service.pricing_mode = infer_pricing_mode(service.name)
    service.price_ranges = [PriceRange(**r) for r in ranges]

    if db.session.query(Service.id).filter(Service.name == service.name).first():
        raise ConflictError("A service with this name already exists", details={"name": service.name})

    db.session.add(service)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise _conflict(exc, service.name)
    current_app.logger.info(
        "Service %s '%s' created (%s, %s price ranges)",
        service.id, service.name, service.pricing_mode, len(ranges),
    )
    return service


def get_service(service_id: int) -> Service:
    service = db.session.get(Service, service_id)
    if not service:
        raise NotFoundError("Service not found", details={"service_id": service_id})
    return service


def update_service(service_id: int, payload: dict) -> Service:
    """Patch fields; price_ranges, when present, replaces the whole set."""
    _check_fields(payload)
    service = get_service(service_id)

    ranges: Optional[list[dict]] = None
    if "price_ranges" in payload:
        ranges = validate_price_ranges(payload["price_ranges"])

    new_name = (payload.get("name") or "").strip()
    if new_name:
        clash = db.session.query(Service.id).filter(
            Service.name == new_name, Service.id != service_id,
        ).first()
        if clash:
            raise ConflictError("A service with this name already exists", details={"name": new_name})

    name = new_name or service.name
    try:
        _apply_fields(service, payload)
        if ranges is not None:
            _replace_ranges(service, ranges)
        db.session.commit()
    except ValidationError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        raise _conflict(exc, name)
    return service


def list_services(include_inactive: bool = False) -> list[Service]:
    query = db.session.query(Service)
    if not include_inactive:
        query = query.filter(Service.is_active.is_(True))
    return query.order_by(Service.name.asc()).all()
