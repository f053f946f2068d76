"""
Tests for `domain/pricing.py`.

Covers rules:
- Discount rate is derived from selling -> discounted price and never raises.
- Margin-capped discount never drops revenue below cost and is never negative.
- Manual discounts are clamped to [0, 40].
- Tax is a pluggable rate, zero by default.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.pricing import (
    NO_TAX,
    PricingPolicy,
    clamp_discount_percent,
    discount_rate_from_price,
    margin_capped_discount,
    valid_number_or_default,
)


def test_valid_number_or_default_falls_back_to_default_then_zero() -> None:
    """Verify malformed numbers fall back to the default, then to zero."""

    assert valid_number_or_default("12.5") == Decimal("12.5")
    assert valid_number_or_default(7) == Decimal("7")
    assert valid_number_or_default(float("nan"), 3) == Decimal("3")
    assert valid_number_or_default(float("inf"), "4.5") == Decimal("4.5")
    assert valid_number_or_default(None, "not a number") == Decimal("0")
    assert valid_number_or_default("abc") == Decimal("0")
    assert valid_number_or_default(True) == Decimal("0")


def test_discount_rate_from_price_basic() -> None:
    """Verify the percentage that takes the actual price to the discounted price."""

    assert discount_rate_from_price(100, 85) == Decimal("15")
    assert discount_rate_from_price("200", "150") == Decimal("25")


@pytest.mark.parametrize("price", [Decimal("0.01"), 1, 99, "250.75"])
def test_discount_rate_from_equal_prices_is_zero(price) -> None:
    """Verify discount_rate_from_price(p, p) == 0 for any valid positive p."""

    assert discount_rate_from_price(price, price) == 0


@pytest.mark.parametrize("other", [0, 10, -5, None, "abc", float("nan")])
def test_discount_rate_from_zero_actual_price_is_zero(other) -> None:
    """Verify a zero actual price always yields 0."""

    assert discount_rate_from_price(0, other) == 0


def test_discount_rate_from_price_never_raises_on_bad_input() -> None:
    """Verify invalid inputs fall back to the other argument, then to zero."""

    assert discount_rate_from_price(None, None) == 0
    assert discount_rate_from_price("abc", 50) == 0
    assert discount_rate_from_price(float("nan"), float("nan")) == 0
    assert discount_rate_from_price(100, None) == 0


def test_margin_capped_discount_caps_at_margin() -> None:
    """Verify a requested 50% discount on 100 with cost 70 is capped at 30."""

    assert margin_capped_discount(100, 70, 50) == Decimal("30")


def test_margin_capped_discount_returns_requested_when_within_margin() -> None:
    assert margin_capped_discount(100, 70, 10) == Decimal("10")


def test_margin_capped_discount_is_zero_when_cost_exceeds_selling() -> None:
    """Verify a negative margin forces the discount to 0 rather than a negative value."""

    assert margin_capped_discount(100, 120, 10) == Decimal("0")


def test_margin_capped_discount_property_over_grid() -> None:
    """Verify 0 <= discount <= max(0, selling - cost) across a grid of inputs."""

    for selling in (0, 1, 50, 100, 999):
        for cost in (0, 1, 49, 100, 1500):
            for percent in (0, 5, 40, 75, 100):
                discount = margin_capped_discount(selling, cost, percent)
                assert discount >= 0
                assert discount <= max(Decimal("0"), Decimal(selling) - Decimal(cost))


def test_margin_capped_discount_tolerates_missing_numbers() -> None:
    assert margin_capped_discount(None, None, None) == Decimal("0")
    assert margin_capped_discount("100", "abc", "10") == Decimal("10")


@pytest.mark.parametrize(
    "requested, expected",
    [(-5, "0"), (0, "0"), (12.5, "12.5"), (40, "40"), (55, "40"), ("x", "0")],
)
def test_clamp_discount_percent(requested, expected) -> None:
    """Verify manual discounts are clamped into [0, 40]."""

    assert clamp_discount_percent(requested) == Decimal(expected)


def test_pricing_policy_tax_uses_configured_rate() -> None:
    """Verify tax = amount * rate, with a zero rate by default."""

    assert NO_TAX.tax(100) == Decimal("0")
    assert PricingPolicy(tax_rate=Decimal("0.1")).tax(90) == Decimal("9")
    assert PricingPolicy(tax_rate="not a rate").tax_rate == Decimal("0")


def test_pricing_policy_for_branch_reads_provider() -> None:
    """Verify the tax rate comes from the provider for the given branch."""

    class Provider:
        def __init__(self) -> None:
            self.requested = []

        def tax_rate(self, branch_id):
            self.requested.append(branch_id)
            return Decimal("0.05")

    provider = Provider()
    policy = PricingPolicy.for_branch(provider, 3)

    assert policy.tax_rate == Decimal("0.05")
    assert provider.requested == [3]
