# Overview: Pure pricing functions; turns a quantity and a service's price tiers into a subtotal.

"""
Pricing Calculator

Pure functions: no database access, no Flask context. The sales service
converts Service rows into PriceTier values and asks for a quote.

TIER SELECTION:
- Use the tiers whose sale_type matches the sale; if none exist, fall back
  to the "common" tiers; if still none, the quote is 0 with a warning.

MODES:
- tiered: the single tier whose [min, max] contains the quantity prices
  every unit.
- progressive: like bracketed income tax. Each tier prices only the units
  that fall inside its own [min, max]. With [1-10]@40 and [11-inf]@15,
  quantity 15 costs 10*40 + 5*15 = 475.

A zero quote means the catalog is misconfigured. It carries a warning and
callers must not charge it as a free item.
"""

from __future__ import annotations

import unicodedata
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

FALLBACK_SALE_TYPE = "common"

# Normalized service names that price progressively when no mode is given
PROGRESSIVE_NAME_HINTS = ("reclamacao", "complaint")


@dataclass(frozen=True)
class PriceTier:
    sale_type: str
    min_quantity: int
    max_quantity: Optional[int]
    unit_price_cents: int

    def contains(self, quantity: int) -> bool:
        if quantity < self.min_quantity:
            return False
        return self.max_quantity is None or quantity <= self.max_quantity


@dataclass(frozen=True)
class PriceQuote:
    quantity: int
    subtotal_cents: int
    unit_price_cents: int
    mode: str
    warning: Optional[str] = None

    @property
    def is_misconfigured(self) -> bool:
        return self.warning is not None


def normalize_name(name: str) -> str:
    """Lowercase and strip diacritics ("Reclamação" -> "reclamacao")."""
    decomposed = unicodedata.normalize("NFKD", name or "")
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.casefold().strip()


def infer_pricing_mode(service_name: str) -> str:
    normalized = normalize_name(service_name)
    if any(hint in normalized for hint in PROGRESSIVE_NAME_HINTS):
        return "progressive"
    return "tiered"


def tiers_for_service(service) -> list[PriceTier]:
    """Build PriceTier values from a Service's price_ranges rows."""
    return [
        PriceTier(
            sale_type=r.sale_type,
            min_quantity=r.min_quantity,
            max_quantity=r.max_quantity,
            unit_price_cents=r.unit_price_cents,
        )
        for r in service.price_ranges
    ]


def select_tiers(tiers: Iterable[PriceTier], sale_type: str) -> list[PriceTier]:
    tiers = list(tiers)
    selected = [t for t in tiers if t.sale_type == sale_type]
    if not selected and sale_type != FALLBACK_SALE_TYPE:
        selected = [t for t in tiers if t.sale_type == FALLBACK_SALE_TYPE]
    return sorted(selected, key=lambda t: t.min_quantity)


def _progressive_subtotal(quantity: int, tiers: Sequence[PriceTier]) -> tuple[int, int]:
    """Return (subtotal, units priced). Units above the last bounded tier are left unpriced."""
    subtotal = 0
    priced = 0
    for tier in tiers:
        if quantity < tier.min_quantity:
            break
        upper = quantity if tier.max_quantity is None else min(quantity, tier.max_quantity)
        units = upper - tier.min_quantity + 1
        if units <= 0:
            continue
        subtotal += units * tier.unit_price_cents
        priced += units
    return subtotal, priced


def calculate_price(
    quantity: int,
    tiers: Iterable[PriceTier],
    sale_type: str = FALLBACK_SALE_TYPE,
    pricing_mode: str = "tiered",
) -> PriceQuote:
    """
    Price `quantity` units against the tier definition.

    quantity must already be a positive integer; this function never raises
    for bad quantities, it simply quotes 0.
    """
    if quantity <= 0:
        return PriceQuote(
            quantity=quantity,
            subtotal_cents=0,
            unit_price_cents=0,
            mode=pricing_mode,
            warning="Quantity must be a positive integer",
        )

    applicable = select_tiers(tiers, sale_type)
    if not applicable:
        return PriceQuote(
            quantity=quantity,
            subtotal_cents=0,
            unit_price_cents=0,
            mode=pricing_mode,
            warning=f"No price ranges configured for sale type '{sale_type}'",
        )

    if pricing_mode == "progressive":
        subtotal, priced = _progressive_subtotal(quantity, applicable)
        if priced != quantity:
            return PriceQuote(
                quantity=quantity,
                subtotal_cents=0,
                unit_price_cents=0,
                mode=pricing_mode,
                warning=f"Price ranges do not cover quantity {quantity}",
            )
        # Effective average, rounded half up
        unit = (subtotal * 2 + quantity) // (2 * quantity)
        return PriceQuote(quantity=quantity, subtotal_cents=subtotal, unit_price_cents=unit, mode=pricing_mode)

    tier = next((t for t in applicable if t.contains(quantity)), None)
    if tier is None:
        return PriceQuote(
            quantity=quantity,
            subtotal_cents=0,
            unit_price_cents=0,
            mode=pricing_mode,
            warning=f"No price range contains quantity {quantity}",
        )
    return PriceQuote(
        quantity=quantity,
        subtotal_cents=quantity * tier.unit_price_cents,
        unit_price_cents=tier.unit_price_cents,
        mode=pricing_mode,
    )


def quote_service(service, quantity: int, sale_type: str) -> PriceQuote:
    """Convenience wrapper over calculate_price for a Service row."""
    return calculate_price(
        quantity,
        tiers_for_service(service),
        sale_type=sale_type,
        pricing_mode=service.pricing_mode or infer_pricing_mode(service.name),
    )
