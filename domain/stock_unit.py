"""
Domain: Serialized stock units.

A StockUnit is one physical inventory item with its own cost, selling and offer
price. At any moment a unit is owned by exactly one of:
- the catalog (available pool),
- a SaleLineItem's assigned units,
- a SaleLineItem's reserve pool (the extra_linked_units of the line's first unit).

Units are moved between those collections by identity; they are never copied
or destroyed by the sale engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Hashable, List, Mapping, Optional

from .errors import InvalidFieldError
from .pricing import to_decimal, valid_number_or_default


class StockStatus(str, Enum):
    AVAILABLE = "Available"
    RECEIVED = "Received"
    RESERVED = "Reserved"
    SOLD = "Sold"
    RETURNED = "Returned"
    RETURNED_DAMAGED = "ReturnedDamaged"
    RETURNED_TO_SUPPLIER = "ReturnedToSupplier"
    DAMAGED = "Damaged"
    LOST = "Lost"
    EXPIRED = "Expired"

    @staticmethod
    def parse(value: Any) -> "StockStatus":
        """Resolve a stored status, treating the catalog's "InStock" as Available."""

        if isinstance(value, StockStatus):
            return value
        if value in (None, "", "InStock"):
            return StockStatus.AVAILABLE
        return StockStatus(str(value))


# Fields that carry money on a unit; the only fields a line may sum over.
PRICE_FIELDS: tuple[str, ...] = ("selling_price", "cost_price", "offer_price")

# Fields a line may fan out to all of its units.
EDITABLE_FIELDS: tuple[str, ...] = ("name",) + PRICE_FIELDS + ("status",)

# Derived prices for free-text (non-stock) entries.
SYNTHETIC_COST_RATIO = Decimal("0.75")
SYNTHETIC_OFFER_RATIO = Decimal("0.85")


@dataclass(frozen=True, slots=True)
class ProductRef:
    """Reference to the catalog product a unit was received against."""

    id: Optional[int] = None
    external_id: Optional[str] = None
    name: Optional[str] = None

    @staticmethod
    def from_record(row: Optional[Mapping[str, Any]]) -> Optional["ProductRef"]:
        if not row:
            return None
        return ProductRef(
            id=row.get("id"),
            external_id=row.get("external_id") or row.get("documentId"),
            name=row.get("name"),
        )


@dataclass(eq=False, slots=True)
class StockUnit:
    """
    One serialized inventory unit.

    Equality is identity: two units with the same product and prices are still
    different physical items. Use `same_line_as` for the structural match that
    folds such units into one sale line.
    """

    id: Optional[int] = None
    external_id: Optional[str] = None
    name: Optional[str] = None
    cost_price: Decimal = Decimal("0")
    selling_price: Decimal = Decimal("0")
    offer_price: Optional[Decimal] = None
    status: StockStatus = StockStatus.AVAILABLE
    product: Optional[ProductRef] = None
    barcode: Optional[str] = None
    extra_linked_units: List["StockUnit"] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._normalise()

    def _normalise(self) -> None:
        self.cost_price = valid_number_or_default(self.cost_price)
        self.selling_price = valid_number_or_default(self.selling_price)
        self.offer_price = to_decimal(self.offer_price)
        self.status = StockStatus.parse(self.status)

    @property
    def is_synthetic(self) -> bool:
        """True for units generated from free text (no catalog record behind them)."""

        return self.product is None and self.external_id is None and self.id is None

    @property
    def catalog_key(self) -> Hashable:
        if self.product is not None:
            return ("product", self.product.external_id or self.product.id)
        return ("name", self.name)

    @property
    def pricing_key(self) -> tuple[Decimal, Decimal, Optional[Decimal]]:
        return (self.cost_price, self.selling_price, self.offer_price)

    def same_line_as(self, other: "StockUnit") -> bool:
        """Structural match: same catalog product and same (cost, selling, offer) prices."""

        return self.catalog_key == other.catalog_key and self.pricing_key == other.pricing_key

    def is_same_unit(self, other: "StockUnit") -> bool:
        """Same physical item: the same object, or the same stored external_id or id."""

        if self is other:
            return True
        if self.external_id is not None and self.external_id == other.external_id:
            return True
        return self.id is not None and self.id == other.id

    def price_of(self, field_name: str) -> Decimal:
        value = getattr(self, field_name)
        return valid_number_or_default(value)

    def update(self, **changes: Any) -> None:
        """
        Write editable fields on this unit, normalising their values.

        Raises:
            InvalidFieldError: If a key is not an editable unit field.
        """

        for key in changes:
            if key not in EDITABLE_FIELDS:
                raise InvalidFieldError(key, EDITABLE_FIELDS)
        for key, value in changes.items():
            setattr(self, key, value)
        self._normalise()

    def to_payload(self) -> dict[str, Any]:
        """Persisted projection of the unit (the reserve pool is never persisted)."""

        return {
            "name": self.name,
            "barcode": self.barcode,
            "cost_price": self.cost_price,
            "selling_price": self.selling_price,
            "offer_price": self.offer_price,
            "status": self.status.value,
        }

    @staticmethod
    def synthetic(name: Optional[str], price: Any) -> "StockUnit":
        """Generate a non-catalog unit for a free-text entry, deriving cost and offer from price."""

        selling = valid_number_or_default(price)
        return StockUnit(
            name=name,
            selling_price=selling,
            cost_price=selling * SYNTHETIC_COST_RATIO,
            offer_price=selling * SYNTHETIC_OFFER_RATIO,
        )

    @staticmethod
    def from_record(row: Mapping[str, Any]) -> "StockUnit":
        """Build a unit from a catalog/persistence row, including any linked units."""

        return StockUnit(
            id=row.get("id"),
            external_id=row.get("external_id") or row.get("documentId"),
            name=row.get("name"),
            cost_price=row.get("cost_price"),
            selling_price=row.get("selling_price"),
            offer_price=row.get("offer_price"),
            status=row.get("status"),
            product=ProductRef.from_record(row.get("product")),
            barcode=row.get("barcode"),
            extra_linked_units=[StockUnit.from_record(r) for r in row.get("more") or []],
        )


__all__ = [
    "EDITABLE_FIELDS",
    "PRICE_FIELDS",
    "SYNTHETIC_COST_RATIO",
    "SYNTHETIC_OFFER_RATIO",
    "ProductRef",
    "StockStatus",
    "StockUnit",
]
