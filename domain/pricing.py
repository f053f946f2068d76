"""
Domain: Pricing policy.

Pure functions for discount-rate derivation, margin-capped discounting and tax.

Business rules implemented here:
- Discounts are always requested as a percentage of the SELLING subtotal.
- A discount is capped at the line's margin (selling - cost) so a sale is never
  recorded below cost, and it is never negative.
- Tax is a pluggable rate supplied by the branch configuration.

Numeric tolerance: malformed input (None, NaN, infinities, non-numeric text)
is normalised instead of raising, so that partially filled forms never break
total computation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Hard ceiling for manually entered line discounts.
MAX_DISCOUNT_PERCENT = Decimal("40")


def to_decimal(value: Any) -> Decimal | None:
    """Convert value to a finite Decimal, or None when it is not a usable number."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None
    else:
        return None
    if not result.is_finite():
        return None
    return result


def valid_number_or_default(value: Any, default: Any = ZERO) -> Decimal:
    """
    Return value as a Decimal, falling back to default, then to zero.

    Example:
        valid_number_or_default("12.5")          # Decimal('12.5')
        valid_number_or_default(float("nan"), 3) # Decimal('3')
        valid_number_or_default(None, "x")       # Decimal('0')
    """

    result = to_decimal(value)
    if result is not None:
        return result
    fallback = to_decimal(default)
    return fallback if fallback is not None else ZERO


def discount_rate_from_price(actual_price: Any, discounted_price: Any) -> Decimal:
    """
    Percentage that takes actual_price down to discounted_price.

    Each argument falls back to the other when invalid, then to zero. A zero
    actual price yields 0 so the function never raises.
    """

    actual = valid_number_or_default(actual_price, discounted_price)
    discounted = valid_number_or_default(discounted_price, actual_price)
    if actual == ZERO:
        return ZERO
    return (actual - discounted) / actual * HUNDRED


def margin_capped_discount(selling_subtotal: Any, cost_subtotal: Any, discount_percent: Any) -> Decimal:
    """
    Discount amount for a line, clamped to [0, selling - cost].

    Example:
        margin_capped_discount(100, 70, 50)  # requested 50, margin 30 -> Decimal('30')
        margin_capped_discount(100, 120, 10) # cost above selling -> Decimal('0')
    """

    selling = valid_number_or_default(selling_subtotal)
    cost = valid_number_or_default(cost_subtotal)
    percent = valid_number_or_default(discount_percent)

    requested = selling * percent / HUNDRED
    max_allowed = selling - cost
    return max(ZERO, min(requested, max_allowed))


def clamp_discount_percent(percent: Any) -> Decimal:
    """Clamp a manual discount percentage into [0, MAX_DISCOUNT_PERCENT]."""

    value = valid_number_or_default(percent)
    return min(max(value, ZERO), MAX_DISCOUNT_PERCENT)


class TaxRateProvider(Protocol):
    """Supplies the decimal tax rate configured for a branch (e.g. Decimal('0.10'))."""

    def tax_rate(self, branch_id: Any) -> Decimal:
        ...


@dataclass(frozen=True, slots=True)
class PricingPolicy:
    """
    Explicit pricing configuration passed to line items and orders.

    The tax rate is a decimal fraction; 0 means no tax is charged.
    """

    tax_rate: Decimal = ZERO

    def __post_init__(self) -> None:
        object.__setattr__(self, "tax_rate", valid_number_or_default(self.tax_rate))

    @staticmethod
    def for_branch(provider: TaxRateProvider, branch_id: Any) -> "PricingPolicy":
        return PricingPolicy(tax_rate=provider.tax_rate(branch_id))

    def tax(self, amount: Any) -> Decimal:
        return valid_number_or_default(amount) * self.tax_rate

    def discount_rate_from_price(self, actual_price: Any, discounted_price: Any) -> Decimal:
        return discount_rate_from_price(actual_price, discounted_price)

    def margin_capped_discount(self, selling_subtotal: Any, cost_subtotal: Any, discount_percent: Any) -> Decimal:
        return margin_capped_discount(selling_subtotal, cost_subtotal, discount_percent)


NO_TAX = PricingPolicy()


__all__ = [
    "MAX_DISCOUNT_PERCENT",
    "NO_TAX",
    "PricingPolicy",
    "TaxRateProvider",
    "clamp_discount_percent",
    "discount_rate_from_price",
    "margin_capped_discount",
    "to_decimal",
    "valid_number_or_default",
]
