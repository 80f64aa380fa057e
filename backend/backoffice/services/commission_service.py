# Overview: Service-layer operations for commissions; derives and reverses attendant commissions.

"""
Commission Generator

- generate_for_sale(): on confirmation, one active commission per sale item,
  attributed to the sale's attendant and dated on the sale date.
- reverse_for_sale(): on cancellation, active commissions become reversed.

RATE POLICY: the item's service commission_rate_bps when set, otherwise
the COMMISSION_RATE_BPS config value. Both functions run inside the
caller's transaction and are idempotent.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Commission, Holiday, Sale, SaleItem, Service
from backoffice.time_utils import utcnow

COMMISSION_ACTIVE = "active"
COMMISSION_REVERSED = "reversed"
DAY_TYPES = ("weekday", "non_working")


def rate_for_item(item: SaleItem) -> int:
    if item.service_id is not None:
        service = db.session.get(Service, item.service_id)
        if service is not None and service.commission_rate_bps is not None:
            return service.commission_rate_bps
    return int(current_app.config.get("COMMISSION_RATE_BPS", 0))


def commission_amount(base_cents: int, rate_bps: int) -> int:
    if base_cents <= 0 or rate_bps <= 0:
        return 0
    return (base_cents * rate_bps * 2 + 10_000) // 20_000


def generate_for_sale(sale: Sale) -> list[Commission]:
    """Create missing active commissions for every item of a confirmed sale."""
    existing_item_ids = {
        c.sale_item_id
        for c in db.session.query(Commission).filter_by(sale_id=sale.id, status=COMMISSION_ACTIVE)
    }

    created = []
    for item in sale.items:
        if item.id in existing_item_ids:
            continue
        rate = rate_for_item(item)
        commission = Commission(
            user_id=sale.attendant_id,
            sale_id=sale.id,
            sale_item_id=item.id,
            reference_date=sale.sale_date.date(),
            base_cents=item.total_cents,
            rate_bps=rate,
            amount_cents=commission_amount(item.total_cents, rate),
            status=COMMISSION_ACTIVE,
        )
        db.session.add(commission)
        created.append(commission)

    db.session.flush()
    if created:
        current_app.logger.info(
            "Generated %s commission(s) for sale %s (attendant %s)",
            len(created), sale.id, sale.attendant_id,
        )
    return created


def reverse_for_sale(sale_id: int) -> int:
    """Mark active commissions of a sale as reversed. Returns how many changed."""
    commissions = db.session.query(Commission).filter_by(sale_id=sale_id, status=COMMISSION_ACTIVE).all()
    now = utcnow()
    for commission in commissions:
        commission.status = COMMISSION_REVERSED
        commission.reversed_at = now
    db.session.flush()
    if commissions:
        current_app.logger.info("Reversed %s commission(s) for sale %s", len(commissions), sale_id)
    return len(commissions)


def _holiday_dates(start: Optional[date], end: Optional[date]) -> set[date]:
    query = db.session.query(Holiday.date).filter(Holiday.is_active.is_(True))
    if start:
        query = query.filter(Holiday.date >= start)
    if end:
        query = query.filter(Holiday.date <= end)
    return {row[0] for row in query.all()}


def classify_day(day: date, holidays: set[date]) -> str:
    """Saturdays, Sundays and active holidays are non-working days."""
    if day.weekday() >= 5 or day in holidays:
        return "non_working"
    return "weekday"


def list_commissions(
    identity,
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    attendant_id: Optional[int] = None,
    status: Optional[str] = None,
    day_type: Optional[str] = None,
) -> dict:
    """
    Commissions visible to the caller, newest reference date first.

    Non-admins only ever see their own commissions; attendant_id is an
    admin-only filter.
    """
    if status and status not in (COMMISSION_ACTIVE, COMMISSION_REVERSED):
        raise ValidationError(f"Invalid status: {status}")
    if day_type and day_type not in DAY_TYPES:
        raise ValidationError(f"Invalid day_type: {day_type}", details={"allowed": list(DAY_TYPES)})
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be on or before end_date")

    query = db.session.query(Commission)
    if not identity.is_admin:
        query = query.filter(Commission.user_id == identity.user_id)
    elif attendant_id is not None:
        query = query.filter(Commission.user_id == attendant_id)
    if start_date:
        query = query.filter(Commission.reference_date >= start_date)
    if end_date:
        query = query.filter(Commission.reference_date <= end_date)
    if status:
        query = query.filter(Commission.status == status)

    commissions = query.order_by(Commission.reference_date.desc(), Commission.id.desc()).all()

    if commissions:
        dates = [c.reference_date for c in commissions]
        holidays = _holiday_dates(min(dates), max(dates))
    else:
        holidays = set()

    items = []
    total_active = 0
    for commission in commissions:
        kind = classify_day(commission.reference_date, holidays)
        if day_type and kind != day_type:
            continue
        data = commission.to_dict()
        data["day_type"] = kind
        items.append(data)
        if commission.status == COMMISSION_ACTIVE:
            total_active += commission.amount_cents

    return {
        "commissions": items,
        "count": len(items),
        "total_active_cents": total_active,
    }
