# Overview: Pure discount arithmetic for sale items and sale-level (general) discounts.

from __future__ import annotations

from typing import Optional

from ..errors import ValidationError

PERCENTAGE = "percentage"
FIXED = "fixed"

# 10000 bps = 100%
MAX_PERCENTAGE_BPS = 10_000


def _round_half_up_div(numerator: int, denominator: int) -> int:
    return (numerator * 2 + denominator) // (denominator * 2)


def validate_discount(discount_type: Optional[str], value: Optional[int]) -> tuple[Optional[str], int]:
    """
    Normalize a (type, value) pair.

    percentage values are basis points (1000 = 10%); fixed values are cents.
    Empty type means no discount; the value is then forced to 0.
    """
    if value is None:
        value = 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("discount_value must be an integer")
    if not discount_type:
        if value:
            raise ValidationError("discount_type is required when discount_value is set")
        return None, 0
    if discount_type not in (PERCENTAGE, FIXED):
        raise ValidationError(
            f"Invalid discount_type: {discount_type}",
            details={"allowed": [PERCENTAGE, FIXED]},
        )
    if value < 0:
        raise ValidationError("discount_value must be >= 0")
    if discount_type == PERCENTAGE and value > MAX_PERCENTAGE_BPS:
        raise ValidationError(f"percentage discount cannot exceed {MAX_PERCENTAGE_BPS} bps (100%)")
    return discount_type, value


def discount_amount(amount_cents: int, discount_type: Optional[str], value: int) -> int:
    """Discount in cents, never larger than the amount it applies to."""
    if amount_cents <= 0 or not discount_type or value <= 0:
        return 0
    if discount_type == PERCENTAGE:
        discount = _round_half_up_div(amount_cents * value, MAX_PERCENTAGE_BPS)
    elif discount_type == FIXED:
        discount = value
    else:
        raise ValidationError(f"Invalid discount_type: {discount_type}")
    return min(discount, amount_cents)


def apply_discount(amount_cents: int, discount_type: Optional[str], value: int) -> int:
    """Net amount after discount; max(0, amount - discount)."""
    return max(0, amount_cents - discount_amount(amount_cents, discount_type, value))
