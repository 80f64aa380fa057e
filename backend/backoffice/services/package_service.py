# Overview: Service-layer operations for client packages; the prepaid credit ledger.

"""
Package Ledger

Owns the invariant available_quantity = initial_quantity - consumed_quantity >= 0.

CONCURRENCY:
Every balance change is a conditional UPDATE evaluated by the database
(e.g. "... WHERE available_quantity >= :qty"), issued after the package
row is locked (SELECT ... FOR UPDATE; BEGIN IMMEDIATE on SQLite). Two
concurrent consumptions therefore serialize on the package row and the sum
of accepted quantities can never exceed initial_quantity. Balances are
never decided from values cached in Python.

TRANSACTIONS:
Functions take commit=True when called standalone. The sales service calls
them with commit=False so the ledger effect lands in the same transaction
as the sale; any failure then rolls back both.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import update

from ..errors import (
    InsufficientBalanceError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import ClientPackage, PackageConsumption, Sale
from backoffice.time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry

CONSUMPTION_ACTIVE = "active"
CONSUMPTION_REVERSED = "reversed"


def _require_positive_quantity(quantity, field: str = "quantity") -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(f"{field} must be a positive integer")
    return quantity


def unit_price_for(total_paid_cents: int, initial_quantity: int) -> int:
    """Per-credit price, rounded half up to the cent."""
    if initial_quantity <= 0:
        raise ValidationError(
            "initial_quantity must be > 0 to derive a unit price",
            details={"initial_quantity": initial_quantity},
            code="DIVIDE_BY_ZERO",
        )
    return (total_paid_cents * 2 + initial_quantity) // (2 * initial_quantity)


def _run(op, commit: bool):
    if not commit:
        return op()
    return run_with_retry(op)


def create_package(
    *,
    client_id: int,
    service_id: int,
    sale_id: int,
    initial_quantity: int,
    total_paid_cents: int,
    expires_at: Optional[datetime] = None,
    commit: bool = True,
) -> ClientPackage:
    """Create a package with its full balance available."""
    unit_price_cents = unit_price_for(total_paid_cents, initial_quantity)

    def _op():
        package = ClientPackage(
            client_id=client_id,
            service_id=service_id,
            sale_id=sale_id,
            initial_quantity=initial_quantity,
            consumed_quantity=0,
            available_quantity=initial_quantity,
            unit_price_cents=unit_price_cents,
            total_paid_cents=total_paid_cents,
            is_active=True,
            expires_at=expires_at,
        )
        db.session.add(package)
        db.session.flush()

        current_app.logger.info(
            "Package %s created for client %s: %s credits, %s cents paid (sale %s)",
            package.id, client_id, initial_quantity, total_paid_cents, sale_id,
        )

        if commit:
            db.session.commit()
        return package

    return _run(_op, commit)


def get_consumable_package(package_id: int) -> ClientPackage:
    """Locked read of a package that can currently be debited."""
    package = lock_for_update(db.session.query(ClientPackage).filter_by(id=package_id)).first()
    if not package or not package.is_active:
        raise NotFoundError("Package not found or inactive", details={"package_id": package_id})
    if package.expires_at is not None and package.expires_at < utcnow():
        raise InvalidStateError("Package expired", details={"package_id": package_id})
    return package


def consume(package_id: int, sale_id: int, quantity: int, *, commit: bool = True) -> PackageConsumption:
    """
    Debit `quantity` credits from a package on behalf of a sale.

    Raises NotFoundError (missing/inactive), InvalidStateError (expired) or
    InsufficientBalanceError (quantity > available). On failure the balance
    is unchanged.
    """
    _require_positive_quantity(quantity)

    def _op():
        if commit:
            begin_write()

        package = get_consumable_package(package_id)

        if quantity > package.available_quantity:
            raise InsufficientBalanceError(
                "Insufficient package balance",
                details={
                    "package_id": package_id,
                    "available": package.available_quantity,
                    "requested": quantity,
                },
            )

        result = db.session.execute(
            update(ClientPackage)
            .where(
                ClientPackage.id == package_id,
                ClientPackage.is_active.is_(True),
                ClientPackage.available_quantity >= quantity,
            )
            .values(
                consumed_quantity=ClientPackage.consumed_quantity + quantity,
                available_quantity=ClientPackage.available_quantity - quantity,
                version_id=ClientPackage.version_id + 1,
            )
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            # Balance moved between the locked read and the update (dialects without row locks)
            raise InsufficientBalanceError(
                "Insufficient package balance",
                details={"package_id": package_id, "requested": quantity},
            )

        consumption = PackageConsumption(
            package_id=package_id,
            sale_id=sale_id,
            quantity=quantity,
            status=CONSUMPTION_ACTIVE,
        )
        db.session.add(consumption)
        db.session.flush()

        current_app.logger.info(
            "Package %s consumed %s credits for sale %s", package_id, quantity, sale_id,
        )

        if commit:
            db.session.commit()
        return consumption

    return _run(_op, commit)


def reverse_consumption(sale_id: int, *, commit: bool = True) -> int:
    """
    Restore every active consumption recorded for a sale.

    Idempotent: consumptions already reversed are skipped. Returns the
    total quantity restored by this call.
    """
    def _op():
        if commit:
            begin_write()

        consumptions = lock_for_update(
            db.session.query(PackageConsumption)
            .filter_by(sale_id=sale_id, status=CONSUMPTION_ACTIVE)
            .order_by(PackageConsumption.id.asc())
        ).all()

        restored = 0
        for consumption in consumptions:
            result = db.session.execute(
                update(ClientPackage)
                .where(
                    ClientPackage.id == consumption.package_id,
                    ClientPackage.consumed_quantity >= consumption.quantity,
                )
                .values(
                    consumed_quantity=ClientPackage.consumed_quantity - consumption.quantity,
                    available_quantity=ClientPackage.available_quantity + consumption.quantity,
                    version_id=ClientPackage.version_id + 1,
                )
                .execution_options(synchronize_session="fetch")
            )
            if result.rowcount != 1:
                raise InvalidStateError(
                    "Package balance does not match its consumptions",
                    details={"package_id": consumption.package_id, "sale_id": sale_id},
                )

            consumption.status = CONSUMPTION_REVERSED
            consumption.reversed_at = utcnow()
            restored += consumption.quantity

            current_app.logger.info(
                "Package %s restored %s credits from sale %s",
                consumption.package_id, consumption.quantity, sale_id,
            )

        db.session.flush()
        if commit:
            db.session.commit()
        return restored

    return _run(_op, commit)


def adjust_consumption(sale_id: int, package_id: int, new_quantity: int) -> PackageConsumption:
    """
    Re-debit a package after a quantity edit on an open consumption sale.

    Runs inside the caller's transaction: the previous consumption is
    reversed and the new quantity consumed against the live balance.
    """
    _require_positive_quantity(new_quantity)
    reverse_consumption(sale_id, commit=False)
    return consume(package_id, sale_id, new_quantity, commit=False)


def resync_for_sale(sale_id: int, initial_quantity: int, total_paid_cents: int) -> Optional[ClientPackage]:
    """
    Keep the package created by an open package sale in step with its edits.

    Refuses once any credit has been consumed.
    """
    package = lock_for_update(db.session.query(ClientPackage).filter_by(sale_id=sale_id)).first()
    if package is None:
        return None

    unchanged = (
        package.initial_quantity == initial_quantity
        and package.total_paid_cents == total_paid_cents
    )
    if unchanged:
        return package

    if package.consumed_quantity > 0:
        raise InvalidStateError(
            "Package already has consumed credits; quantity and price are frozen",
            details={"package_id": package.id, "consumed_quantity": package.consumed_quantity},
            code="PACKAGE_IN_USE",
        )

    package.initial_quantity = initial_quantity
    package.available_quantity = initial_quantity
    package.total_paid_cents = total_paid_cents
    package.unit_price_cents = unit_price_for(total_paid_cents, initial_quantity)
    db.session.flush()
    return package


def deactivate_for_sale(sale_id: int) -> int:
    """
    Deactivate the package(s) created by a cancelled package sale.

    A package whose credits were already used cannot be withdrawn; the
    consuming sales must be cancelled first. Returns how many packages were
    deactivated.
    """
    packages = lock_for_update(db.session.query(ClientPackage).filter_by(sale_id=sale_id)).all()
    count = 0
    for package in packages:
        if package.consumed_quantity > 0:
            raise InvalidStateError(
                "Package credits already consumed; cancel the consuming sales first",
                details={"package_id": package.id, "consumed_quantity": package.consumed_quantity},
                code="PACKAGE_IN_USE",
            )
        if not package.is_active:
            continue
        package.is_active = False
        package.deactivated_at = utcnow()
        count += 1
        current_app.logger.info("Package %s deactivated by cancellation of sale %s", package.id, sale_id)
    db.session.flush()
    return count


def get_package(package_id: int) -> ClientPackage:
    package = db.session.get(ClientPackage, package_id)
    if not package:
        raise NotFoundError("Package not found", details={"package_id": package_id})
    return package


def list_packages(client_id: int | None = None, active_only: bool = False) -> list[dict]:
    query = db.session.query(ClientPackage)
    if client_id is not None:
        query = query.filter(ClientPackage.client_id == client_id)
    if active_only:
        query = query.filter(
            ClientPackage.is_active.is_(True),
            ClientPackage.available_quantity > 0,
        )
    packages = query.order_by(ClientPackage.created_at.desc(), ClientPackage.id.desc()).all()
    return [p.to_dict() for p in packages]


def get_statement(package_id: int) -> dict:
    """Package balance plus its full consumption history (newest first)."""
    package = get_package(package_id)

    rows = (
        db.session.query(PackageConsumption, Sale)
        .join(Sale, Sale.id == PackageConsumption.sale_id)
        .filter(PackageConsumption.package_id == package_id)
        .order_by(PackageConsumption.consumed_at.desc(), PackageConsumption.id.desc())
        .all()
    )

    entries = []
    for consumption, sale in rows:
        entry = consumption.to_dict()
        entry["sale_status"] = sale.status
        entry["attendant_id"] = sale.attendant_id
        entry["amount_cents"] = consumption.quantity * package.unit_price_cents
        entries.append(entry)

    return {
        "package": package.to_dict(),
        "consumptions": entries,
    }
