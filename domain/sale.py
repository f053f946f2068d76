"""
Domain: Sale orders.

A SaleOrder is the aggregate root of a checkout session: ordered line items,
payments, an optional customer and an optional exchange return.

Rules implemented here:
- Stock units that match an existing line structurally (same product, same
  cost/selling/offer prices) are folded into that line. A physical unit the
  order already holds is never added twice, and a folded unit brings its
  linked extras into the line's reserve pool.
- Order totals are summed per line (subtotal, discount, tax, total), never
  derived by subtracting an aggregate discount from an aggregate subtotal.
- A sale becomes Paid when at least one payment exists and the cumulative
  amount covers the total. No other status is derived, and checkout requires it.

This module is pure: persistence and inventory status transitions live in
services.checkout_service.
"""

from __future__ import annotations

import random
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Iterator, List, Mapping, Optional, Union

from .context import BranchContext
from .customer import Customer
from .errors import LineItemNotFoundError, UnpaidSaleError
from .exchange import ExchangeReturn, ReturnLineItem
from .invoice import generate_invoice_number
from .line_item import SaleLineItem
from .parsing import parse_contact_line, parse_stock_line
from .payment import Payment, PaymentStatus
from .pricing import NO_TAX, ZERO, PricingPolicy
from .stock_unit import StockUnit
from .time import parse_utc_datetime, utc_now

# Stored sale dates earlier than this are treated as missing.
EARLIEST_SALE_DATE = datetime(2025, 1, 1, tzinfo=timezone.utc)


class SaleOrder:
    """
    In-progress or stored sale.

    Example:
        order = SaleOrder.start(context, pricing=PricingPolicy(tax_rate=Decimal("0.1")))
        order.add_stock_item(unit)
        order.add_non_stock_item("Gift Wrap 5 2 10%")
        order.add_payment(Payment(amount=order.total))
        assert order.payment_status is PaymentStatus.PAID
    """

    def __init__(
        self,
        *,
        id: Optional[int] = None,
        external_id: Optional[str] = None,
        invoice_number: Optional[str] = None,
        sale_date: Any = None,
        payment_status: Union[PaymentStatus, str, None] = PaymentStatus.UNPAID,
        customer: Optional[Customer] = None,
        line_items: Optional[List[SaleLineItem]] = None,
        payments: Optional[List[Payment]] = None,
        exchange_return: Optional[ExchangeReturn] = None,
        pricing: PricingPolicy = NO_TAX,
    ) -> None:
        self.id = id
        self.external_id = external_id
        self.invoice_number = invoice_number
        self.sale_date = self._sanitize_sale_date(sale_date)
        self.payment_status = PaymentStatus(payment_status) if payment_status else PaymentStatus.UNPAID
        self.customer = customer
        self.line_items: List[SaleLineItem] = list(line_items or [])
        self.payments: List[Payment] = list(payments or [])
        self.exchange_return = exchange_return
        self.pricing = pricing

    @staticmethod
    def _sanitize_sale_date(value: Any) -> datetime:
        parsed = parse_utc_datetime(value)
        if parsed is None or parsed < EARLIEST_SALE_DATE:
            return utc_now()
        return parsed

    @staticmethod
    def start(
        context: BranchContext,
        *,
        pricing: PricingPolicy = NO_TAX,
        now: Optional[datetime] = None,
        rng: Optional[random.Random] = None,
    ) -> "SaleOrder":
        """
        Begin a new sale with a freshly generated invoice number.

        Raises:
            ContextMissingError: If branch, desk or user is not set.
        """

        moment = now or utc_now()
        invoice_number = generate_invoice_number(context, now=moment, rng=rng)
        return SaleOrder(invoice_number=invoice_number, sale_date=moment, pricing=pricing)

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def add_stock_item(self, unit: StockUnit) -> SaleLineItem:
        """
        Fold unit into a structurally matching line, or open a new line for it.

        A unit the order already holds (assigned or in a reserve pool) is not
        added again; the line holding it is returned unchanged. Extras linked to
        the incoming unit join the reserve pool of the line it lands in, minus
        any the order already holds.
        """

        holder = self.line_holding(unit)
        if holder is not None:
            return holder

        extras = [u for u in unit.extra_linked_units if u is not unit and self.line_holding(u) is None]
        unit.extra_linked_units = []

        for line in self.line_items:
            first = line.first()
            if not line.is_synthetic and first is not None and first.same_line_as(unit):
                line.add_unit(unit)
                line.reserve_pool.extend(extras)
                return line

        unit.extra_linked_units = extras
        line = SaleLineItem([unit], pricing=self.pricing)
        self.line_items.append(line)
        return line

    def add_non_stock_item(self, text: str) -> Optional[SaleLineItem]:
        """
        Add a free-text entry such as "Gift Wrap 5 2 10%" as a synthetic line.

        Returns None for blank input.
        """

        if not text or not text.strip():
            return None

        parsed = parse_stock_line(text)
        units = [StockUnit.synthetic(parsed.name, parsed.price) for _ in range(max(parsed.quantity, 1))]
        line = SaleLineItem(units, is_synthetic=True, pricing=self.pricing)
        line.set_discount_percent(parsed.discount)
        self.line_items.append(line)
        return line

    def line_item(self, index: int) -> SaleLineItem:
        """
        Raises:
            LineItemNotFoundError: If index is out of range.
        """

        if index < 0 or index >= len(self.line_items):
            raise LineItemNotFoundError(index, len(self.line_items))
        return self.line_items[index]

    def update_line_item(self, index: int, updater: Callable[[SaleLineItem], Any]) -> SaleLineItem:
        line = self.line_item(index)
        updater(line)
        return line

    def remove_line_item(self, index: int) -> SaleLineItem:
        """
        Delete a line and return it.

        The removed line's units (assigned and reserved) are NOT released to the
        catalog here; the caller hands them back through the persistence layer.
        """

        line = self.line_item(index)
        del self.line_items[index]
        return line

    def assigned_units(self) -> Iterator[StockUnit]:
        for line in self.line_items:
            yield from line.assigned_units

    def held_units(self) -> Iterator[StockUnit]:
        """Assigned units plus every line's reserve pool."""

        for line in self.line_items:
            yield from line.assigned_units
            yield from line.reserve_pool

    def line_holding(self, unit: StockUnit) -> Optional[SaleLineItem]:
        """Line that already holds the same physical unit, matched by identity, external_id or id."""

        for line in self.line_items:
            if line.is_synthetic:
                continue
            for held in list(line.assigned_units) + list(line.reserve_pool):
                if held.is_same_unit(unit):
                    return line
        return None

    # ------------------------------------------------------------------
    # Customer
    # ------------------------------------------------------------------

    def set_customer(self, customer: Optional[Customer]) -> Optional[Customer]:
        self.customer = customer.copy() if customer is not None else None
        return self.customer

    def parse_and_set_customer(self, line: Union[str, Customer, Mapping[str, Any], None]) -> Optional[Customer]:
        if not line:
            return self.customer
        if isinstance(line, str):
            return self.set_customer(parse_contact_line(line))
        if isinstance(line, Customer):
            return self.set_customer(line)
        return self.set_customer(Customer.from_record(line))

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def add_payment(self, payment: Union[Payment, Mapping[str, Any], None]) -> Optional[Payment]:
        """Append a payment (missing fields default to Cash, 0, now) and re-evaluate status."""

        if payment is None:
            return None
        if not isinstance(payment, Payment):
            payment = Payment.from_record(payment)
        self.payments.append(payment)
        self.update_payment_status()
        return payment

    def remove_payment(self, index: int) -> Payment:
        return self.payments.pop(index)

    @property
    def total_paid(self) -> Decimal:
        return sum((p.amount for p in self.payments), ZERO)

    def update_payment_status(self) -> PaymentStatus:
        """Promote to Paid when covered; otherwise leave the current status untouched."""

        if self.payments and self.total_paid >= self.total:
            self.payment_status = PaymentStatus.PAID
        return self.payment_status

    @property
    def is_paid(self) -> bool:
        return self.update_payment_status() is PaymentStatus.PAID

    def require_paid(self) -> None:
        """
        Raises:
            UnpaidSaleError: Unless at least one payment exists and payments cover the total.
        """

        if not self.is_paid:
            raise UnpaidSaleError(self.total, self.total_paid, len(self.payments))

    # ------------------------------------------------------------------
    # Exchange return
    # ------------------------------------------------------------------

    def set_exchange_return(
        self,
        original_sale_ref: Optional[str],
        return_line_items: List[Union[ReturnLineItem, Mapping[str, Any]]],
    ) -> ExchangeReturn:
        items = [
            item if isinstance(item, ReturnLineItem) else ReturnLineItem.from_record(item)
            for item in return_line_items
        ]
        self.exchange_return = ExchangeReturn(original_sale_ref=original_sale_ref, return_line_items=items)
        return self.exchange_return

    def clear_exchange_return(self) -> None:
        self.exchange_return = None

    @property
    def exchange_return_total(self) -> Decimal:
        if self.exchange_return is None:
            return ZERO
        return self.exchange_return.total

    @property
    def amount_due(self) -> Decimal:
        return max(ZERO, self.total - self.exchange_return_total)

    # ------------------------------------------------------------------
    # Totals (summed per line)
    # ------------------------------------------------------------------

    @property
    def subtotal(self) -> Decimal:
        return sum((line.selling_subtotal for line in self.line_items), ZERO)

    @property
    def discount_total(self) -> Decimal:
        return sum((line.row_discount for line in self.line_items), ZERO)

    @property
    def tax(self) -> Decimal:
        return sum((line.tax for line in self.line_items), ZERO)

    @property
    def total(self) -> Decimal:
        return sum((line.total for line in self.line_items), ZERO)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_payload(self) -> dict[str, Any]:
        return {
            "invoice_no": self.invoice_number,
            "sale_date": self.sale_date.isoformat(),
            "subtotal": self.subtotal,
            "discount": self.discount_total,
            "tax": self.tax,
            "total": self.total,
            "payment_status": self.payment_status.value,
        }

    @staticmethod
    def from_record(row: Mapping[str, Any], *, pricing: PricingPolicy = NO_TAX) -> "SaleOrder":
        """Hydrate a stored sale with its line items, payments, customer and exchange return."""

        return SaleOrder(
            id=row.get("id"),
            external_id=row.get("external_id") or row.get("documentId"),
            invoice_number=row.get("invoice_no") or row.get("invoice_number"),
            sale_date=row.get("sale_date"),
            payment_status=row.get("payment_status"),
            customer=Customer.from_record(row.get("customer")),
            line_items=[
                SaleLineItem.from_record(r, pricing=pricing)
                for r in row.get("items") or row.get("sale_items") or []
            ],
            payments=[Payment.from_record(r) for r in row.get("payments") or []],
            exchange_return=ExchangeReturn.from_record(row.get("exchange_return")),
            pricing=pricing,
        )


__all__ = ["SaleOrder", "EARLIEST_SALE_DATE"]
