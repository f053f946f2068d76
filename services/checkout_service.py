"""
Checkout service for persisting sales.

Handles:
- Create/update of the sale header, customer, payments and line items
- Inventory status transition: every assigned unit becomes Sold on a paid checkout,
  and units left in reserve pools go back to the catalog
- Refusing checkout of a sale whose payments do not cover the total
- Persisting a staged exchange return (only when the sale is paid)
- Releasing units of removed lines back to the catalog
- Loading a stored sale back into a SaleOrder
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.exchange import ExchangeReturn, ReturnLineItem
from domain.invoice import to_radix32
from domain.line_item import SaleLineItem
from domain.pricing import NO_TAX, ZERO, PricingPolicy
from domain.sale import SaleOrder
from domain.stock_unit import StockStatus, StockUnit
from domain.time import utc_now
from repositories.customer_repository import upsert_customer
from repositories.payment_repository import upsert_payment
from repositories.sale_repository import attach_customer, get_sale_record, upsert_sale, upsert_sale_item
from repositories.sale_return_repository import create_sale_return, create_sale_return_item
from repositories.stock_repository import release_stock_units, update_stock_status, upsert_stock_unit

logger = logging.getLogger(__name__)


def save_sale(
    order: SaleOrder,
    *,
    paid: bool = False,
    cash_register_id: Optional[str] = None,
    client: Optional[Client] = None,
) -> str:
    """
    Persist a sale and everything it owns.

    Process:
    1. Create or update the sale header (payment_status as derived from the payments)
    2. Create or update the customer and link it to the sale
    3. Create or update every payment
    4. Create or update every line item, then link each assigned unit to its line
       (units are written with status Sold when paid=True, and reserve-pool
       units are released)
    5. When paid=True and an exchange return is staged, persist it

    Returns:
        The sale's external id

    Raises:
        UnpaidSaleError: If paid=True and the payments do not cover the total;
            nothing is written in that case
        RuntimeError: If any Supabase write fails
    """

    if paid:
        order.require_paid()
    else:
        order.update_payment_status()

    sale_id = upsert_sale(order, cash_register_id=cash_register_id, client=client)

    customer_id = upsert_customer(order.customer, client=client)
    attach_customer(sale_id, customer_id, client=client)

    for payment in order.payments:
        upsert_payment(payment, sale_external_id=sale_id, cash_register_id=cash_register_id, client=client)

    save_line_items(sale_id, order.line_items, paid=paid, client=client)
    if paid:
        release_units([u for line in order.line_items for u in line.reserve_pool], client=client)

    exchange = order.exchange_return
    if paid and exchange is not None and exchange.return_line_items:
        save_exchange_return(sale_id, exchange, client=client)

    logger.info(
        "Saved sale %s (invoice %s, %d lines, total %s, paid=%s)",
        sale_id,
        order.invoice_number,
        len(order.line_items),
        order.total,
        paid,
    )
    return sale_id


def save_line_items(
    sale_id: str,
    lines: Iterable[SaleLineItem],
    *,
    paid: bool = False,
    client: Optional[Client] = None,
) -> List[str]:
    status = StockStatus.SOLD if paid else None
    line_ids: List[str] = []
    for line in lines:
        line_id = upsert_sale_item(sale_id, line, client=client)
        for unit in line.assigned_units:
            upsert_stock_unit(unit, sale_item_external_id=line_id, status=status, client=client)
        line_ids.append(line_id)
    return line_ids


def _return_number(now: datetime) -> str:
    millis = int(now.timestamp() * 1000)
    return "EXC-" + to_radix32(millis)


def save_exchange_return(
    sale_id: str,
    exchange: ExchangeReturn,
    *,
    now: Optional[datetime] = None,
    client: Optional[Client] = None,
) -> str:
    """
    Persist an exchange return against the new sale.

    One return line is written per original sale item; every returned unit is
    moved to its restock status and linked to that return line.
    """

    moment = now or utc_now()
    return_number = exchange.return_number or _return_number(moment)
    total = exchange.total

    return_id = create_sale_return(
        return_number=return_number,
        returned_at=moment,
        total_refund=total,
        original_sale_external_id=exchange.original_sale_ref,
        exchange_sale_external_id=sale_id,
        client=client,
    )

    groups: dict[Optional[str], List[ReturnLineItem]] = {}
    for item in exchange.return_line_items:
        groups.setdefault(item.sale_item_external_id, []).append(item)

    for items in groups.values():
        group_total = sum((i.credit for i in items), ZERO)
        return_item_id = create_sale_return_item(
            sale_return_external_id=return_id,
            quantity=sum(i.quantity for i in items),
            price=items[0].unit_price,
            total=group_total,
            product_external_id=items[0].product_external_id,
            client=client,
        )
        for item in items:
            if item.stock_unit_external_id:
                update_stock_status(
                    item.stock_unit_external_id,
                    item.restock_status,
                    sale_return_item_external_id=return_item_id,
                    client=client,
                )

    exchange.return_number = return_number
    exchange.total_refund = total
    logger.info("Saved exchange return %s for sale %s (refund %s)", return_number, sale_id, total)
    return return_id


def checkout(
    order: SaleOrder,
    *,
    cash_register_id: Optional[str] = None,
    client: Optional[Client] = None,
) -> str:
    """
    Persist the sale as paid; every assigned unit is reported as Sold.

    Raises:
        UnpaidSaleError: If no payment exists or payments fall short of the total
    """

    return save_sale(order, paid=True, cash_register_id=cash_register_id, client=client)


def release_units(units: Iterable[StockUnit], *, client: Optional[Client] = None) -> int:
    """
    Hand units of a removed line back to the catalog.

    Only persisted units are released; synthetic units are simply dropped.

    Returns:
        Number of units released
    """

    external_ids = [u.external_id for u in units if u.external_id]
    release_stock_units(external_ids, client=client)
    if external_ids:
        logger.info("Released %d units back to the catalog", len(external_ids))
    return len(external_ids)


def release_line(line: SaleLineItem, *, client: Optional[Client] = None) -> int:
    """Release both the assigned units and the reserve pool of a removed line."""

    return release_units(list(line.assigned_units) + list(line.reserve_pool), client=client)


def load_sale(
    id_or_invoice: str,
    *,
    pricing: PricingPolicy = NO_TAX,
    client: Optional[Client] = None,
) -> Optional[SaleOrder]:
    row = get_sale_record(id_or_invoice, client=client)
    if row is None:
        return None
    return SaleOrder.from_record(row, pricing=pricing)


__all__ = [
    "checkout",
    "load_sale",
    "release_line",
    "release_units",
    "save_exchange_return",
    "save_line_items",
    "save_sale",
]
