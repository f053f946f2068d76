"""
Domain: Sale line items.

A SaleLineItem is one priced row of a sale. It aggregates one or more StockUnits
(or synthetic units generated from free text) that share a single discount
percentage.

Invariants:
- quantity == len(assigned_units); quantity is never stored separately.
- discount_percent set manually is clamped into [0, 40].
- row_discount never exceeds the line margin (selling - cost) and is never negative.
- Units are moved by identity between assigned_units and the reserve pool
  (the extra_linked_units of the first assigned unit); none are created or
  destroyed by quantity edits, except a zero-priced placeholder on an empty line.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional

from .errors import InvalidFieldError
from .pricing import (
    NO_TAX,
    ZERO,
    PricingPolicy,
    clamp_discount_percent,
    discount_rate_from_price,
    to_decimal,
    valid_number_or_default,
)
from .stock_unit import PRICE_FIELDS, StockUnit


class SaleLineItem:
    """
    One row of a sale with its assigned units, reserve pool and discount state.

    Discount/offer state machine:
        Normal --apply_offer_price()--> OfferApplied --revert_offer()--> Normal

    Example:
        line = SaleLineItem(units=[unit_a, unit_b, unit_c])
        line.set_quantity(1)   # unit_b and unit_c move to the reserve pool
        line.set_quantity(3)   # the same unit_b and unit_c come back
    """

    def __init__(
        self,
        units: Optional[Iterable[StockUnit]] = None,
        *,
        discount_percent: Any = 0,
        is_synthetic: bool = False,
        id: Optional[int] = None,
        external_id: Optional[str] = None,
        pricing: PricingPolicy = NO_TAX,
    ) -> None:
        self.id = id
        self.external_id = external_id
        self.assigned_units: List[StockUnit] = list(units or [])
        self.discount_percent: Decimal = valid_number_or_default(discount_percent)
        self.saved_discount_percent: Optional[Decimal] = None
        self.is_synthetic = is_synthetic
        self.pricing = pricing

    def __repr__(self) -> str:
        return (
            f"SaleLineItem(name={self.name!r}, quantity={self.quantity}, "
            f"discount_percent={self.discount_percent})"
        )

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    def add_unit(self, unit: StockUnit) -> None:
        self.assigned_units.append(unit)

    def first(self) -> Optional[StockUnit]:
        return self.assigned_units[0] if self.assigned_units else None

    @property
    def reserve_pool(self) -> List[StockUnit]:
        """Units detached from the active quantity but not released to the catalog."""

        first = self.first()
        return first.extra_linked_units if first is not None else []

    @property
    def quantity(self) -> int:
        return len(self.assigned_units)

    def set_quantity(self, quantity: Any) -> int:
        """
        Change quantity by moving units between assigned_units and the reserve pool.

        - Requests below 1 (or non-numeric) are ignored.
        - Decreasing pops units from the END of assigned_units into the reserve pool.
        - Increasing pulls units from the FRONT of the reserve pool. When the pool
          runs out the remaining shortfall is dropped; no new units are requested.

        Returns:
            The resulting quantity (len(assigned_units)).
        """

        requested = to_decimal(quantity)
        if requested is None or requested < 1:
            return self.quantity
        target = int(requested)

        if not self.assigned_units:
            self.assigned_units.append(StockUnit())

        pool = self.reserve_pool
        current = self.quantity

        if target < current:
            for _ in range(current - target):
                if len(self.assigned_units) <= 1:
                    break
                pool.append(self.assigned_units.pop())
        elif target > current:
            for _ in range(target - current):
                if not pool:
                    break
                self.assigned_units.append(pool.pop(0))

        return self.quantity

    def apply_to_all_units(self, **changes: Any) -> None:
        """
        Write the given fields on every assigned unit.

        Raises:
            InvalidFieldError: If a field is not editable on a StockUnit.
        """

        for unit in self.assigned_units:
            unit.update(**changes)
        if not self.assigned_units:
            # Validate even when there is nothing to write.
            StockUnit().update(**changes)

    def set_name(self, name: str) -> None:
        self.apply_to_all_units(name=name)

    def set_selling_price(self, price: Any) -> None:
        """Reprice a synthetic line; cost and offer follow the synthetic ratios."""

        template = StockUnit.synthetic(self.name, price)
        self.apply_to_all_units(
            selling_price=template.selling_price,
            cost_price=template.cost_price,
            offer_price=template.offer_price,
        )

    # ------------------------------------------------------------------
    # Representative values (first unit)
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        first = self.first()
        if first is None:
            return "Unnamed Item"
        if first.name:
            return first.name
        if first.product is not None and first.product.name:
            return first.product.name
        return "Unnamed Item"

    @property
    def selling_price(self) -> Decimal:
        first = self.first()
        return first.selling_price if first is not None else ZERO

    @property
    def cost_price(self) -> Decimal:
        first = self.first()
        return first.cost_price if first is not None else ZERO

    @property
    def offer_price(self) -> Decimal:
        first = self.first()
        if first is None or not first.offer_price:
            return self.selling_price
        return first.offer_price

    @property
    def is_dynamic_stock(self) -> bool:
        first = self.first()
        return first is not None and first.product is not None

    # ------------------------------------------------------------------
    # Discount / offer
    # ------------------------------------------------------------------

    def set_discount_percent(self, percent: Any) -> Decimal:
        self.discount_percent = clamp_discount_percent(percent)
        return self.discount_percent

    @property
    def offer_active(self) -> bool:
        return self.discount_percent == discount_rate_from_price(self.selling_price, self.offer_price)

    def apply_offer_price(self) -> Decimal:
        """
        Override the discount with the rate that reaches the offer price.

        The current percent is saved for revert_offer(). Applying twice saves the
        already offer-adjusted percent, so only one level of undo exists.
        """

        self.saved_discount_percent = self.discount_percent
        self.discount_percent = discount_rate_from_price(self.selling_price, self.offer_price)
        return self.discount_percent

    def revert_offer(self) -> Decimal:
        if self.saved_discount_percent is not None:
            self.discount_percent = self.saved_discount_percent
        self.saved_discount_percent = None
        return self.discount_percent

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def sum_by(self, field_name: str = "selling_price") -> Decimal:
        """
        Sum a price field across assigned units.

        Raises:
            InvalidFieldError: If field_name is not selling_price, cost_price or offer_price.
        """

        if field_name not in PRICE_FIELDS:
            raise InvalidFieldError(field_name, PRICE_FIELDS)
        return sum((unit.price_of(field_name) for unit in self.assigned_units), ZERO)

    @property
    def selling_subtotal(self) -> Decimal:
        return self.sum_by("selling_price")

    @property
    def cost_subtotal(self) -> Decimal:
        return self.sum_by("cost_price")

    @property
    def offer_subtotal(self) -> Decimal:
        return self.sum_by("offer_price")

    @property
    def unit_price(self) -> Decimal:
        if not self.assigned_units:
            return ZERO
        return self.selling_subtotal / self.quantity

    @property
    def unit_discounted_price(self) -> Decimal:
        price = self.unit_price
        return price - price * self.discount_percent / Decimal("100")

    @property
    def row_discount(self) -> Decimal:
        return self.pricing.margin_capped_discount(
            self.selling_subtotal, self.cost_subtotal, self.discount_percent
        )

    @property
    def discounted_subtotal(self) -> Decimal:
        return self.selling_subtotal - self.row_discount

    @property
    def tax(self) -> Decimal:
        return self.pricing.tax(self.discounted_subtotal)

    @property
    def total(self) -> Decimal:
        return self.discounted_subtotal + self.tax

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_payload(self) -> dict[str, Any]:
        """Canonical persisted projection of the line."""

        return {
            "quantity": self.quantity,
            "price": self.unit_price,
            "discount": self.row_discount,
            "discount_percentage": self.discount_percent,
            "subtotal": self.selling_subtotal,
            "tax": self.tax,
            "total": self.total,
        }

    @staticmethod
    def from_record(row: Mapping[str, Any], *, pricing: PricingPolicy = NO_TAX) -> "SaleLineItem":
        """Hydrate a stored line; discount_percentage is read, falling back to discount_percent."""

        percent = row.get("discount_percentage", row.get("discount_percent"))
        units = [StockUnit.from_record(r) for r in row.get("items") or row.get("stock_items") or []]
        return SaleLineItem(
            units,
            discount_percent=percent,
            is_synthetic=bool(row.get("is_synthetic", False)),
            id=row.get("id"),
            external_id=row.get("external_id") or row.get("documentId"),
            pricing=pricing,
        )


__all__ = ["SaleLineItem"]
