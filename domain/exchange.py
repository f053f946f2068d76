"""
Domain: Exchange returns.

An exchange return credits goods returned against a previous sale toward the
current sale. Return lines hydrated from storage carry line_total; lines staged
at the counter before saving carry only unit_price. Both shapes are totalled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Mapping, Optional

from .pricing import ZERO, to_decimal, valid_number_or_default
from .stock_unit import StockStatus


@dataclass(slots=True)
class ReturnLineItem:
    """One returned unit (or a stored group of units) from the original sale."""

    product_name: str = ""
    unit_price: Decimal = ZERO
    quantity: int = 1
    line_total: Optional[Decimal] = None
    stock_unit_external_id: Optional[str] = None
    sale_item_external_id: Optional[str] = None
    product_external_id: Optional[str] = None
    restock_status: StockStatus = StockStatus.RETURNED

    def __post_init__(self) -> None:
        self.unit_price = valid_number_or_default(self.unit_price)
        self.line_total = to_decimal(self.line_total)
        self.quantity = max(int(valid_number_or_default(self.quantity, 1)), 1)
        self.restock_status = StockStatus.parse(self.restock_status)

    @property
    def credit(self) -> Decimal:
        return self.line_total if self.line_total is not None else self.unit_price

    @staticmethod
    def from_record(row: Mapping[str, Any]) -> "ReturnLineItem":
        return ReturnLineItem(
            product_name=row.get("product_name") or row.get("name") or "",
            unit_price=row.get("unit_price", row.get("price")),
            quantity=row.get("quantity") or 1,
            line_total=row.get("line_total", row.get("total")),
            stock_unit_external_id=row.get("stock_unit_external_id") or row.get("stockItemDocId"),
            sale_item_external_id=row.get("sale_item_external_id") or row.get("saleItemDocId"),
            product_external_id=row.get("product_external_id") or row.get("productDocId"),
            restock_status=row.get("restock_status") or row.get("status") or StockStatus.RETURNED,
        )


@dataclass(slots=True)
class ExchangeReturn:
    original_sale_ref: Optional[str] = None
    return_line_items: List[ReturnLineItem] = field(default_factory=list)
    return_number: Optional[str] = None
    total_refund: Optional[Decimal] = None

    def __post_init__(self) -> None:
        self.total_refund = to_decimal(self.total_refund)

    @property
    def total(self) -> Decimal:
        return sum((item.credit for item in self.return_line_items), ZERO)

    @staticmethod
    def from_record(row: Optional[Mapping[str, Any]]) -> Optional["ExchangeReturn"]:
        if not row:
            return None
        items = row.get("return_line_items") or row.get("returnItems") or []
        return ExchangeReturn(
            original_sale_ref=row.get("original_sale_ref"),
            return_line_items=[ReturnLineItem.from_record(r) for r in items],
            return_number=row.get("return_number") or row.get("return_no"),
            total_refund=row.get("total_refund"),
        )


__all__ = ["ExchangeReturn", "ReturnLineItem"]
