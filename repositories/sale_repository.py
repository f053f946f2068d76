"""
Sale repository (persistence).

This module provides *only* persistence operations for sales and sale line
items. It does not enforce business rules (discount caps, payment status);
those live in the domain. Absence of an external id means "create", presence
means "update"; generated external ids are written back to the domain objects.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4

from supabase import Client  # type: ignore[import-not-found]

from domain.line_item import SaleLineItem
from domain.sale import SaleOrder
from repositories.client import execute, jsonable, resolve_client

# Supabase table names.
# Keep these aligned with your database schema.
_SALES_TABLE: str = "sales"
_SALE_ITEMS_TABLE: str = "sale_items"

# Embedded relations used to hydrate a full sale in one request.
_SALE_SELECT: str = (
    "*, customer:customers(*), payments(*), "
    "items:sale_items(*, items:stock_items(*, product:products(*)))"
)


def upsert_sale(
    order: SaleOrder,
    *,
    cash_register_id: Optional[str] = None,
    client: Optional[Client] = None,
) -> str:
    """
    Create or update the sale header.

    Args:
        order: SaleOrder to persist
        cash_register_id: Register the sale is rung up on (create only)

    Returns:
        The sale's external id
    """

    db = resolve_client(client)
    payload: dict[str, Any] = jsonable(order.to_payload())
    if order.external_id:
        execute(
            db.table(_SALES_TABLE).update(payload).eq("external_id", order.external_id),
            "update sale",
        )
        return order.external_id

    external_id = str(uuid4())
    payload["external_id"] = external_id
    if cash_register_id:
        payload["cash_register_external_id"] = cash_register_id

    rows = execute(db.table(_SALES_TABLE).insert(payload), "create sale")
    order.external_id = external_id
    if rows:
        order.id = rows[0].get("id", order.id)
    return external_id


def attach_customer(
    sale_external_id: str,
    customer_external_id: Optional[str],
    *,
    client: Optional[Client] = None,
) -> None:
    db = resolve_client(client)
    execute(
        db.table(_SALES_TABLE)
        .update({"customer_external_id": customer_external_id})
        .eq("external_id", sale_external_id),
        "attach customer",
    )


def upsert_sale_item(
    sale_external_id: str,
    line: SaleLineItem,
    *,
    client: Optional[Client] = None,
) -> str:
    """
    Create or update one sale line using the canonical line payload.

    Returns:
        The line's external id
    """

    db = resolve_client(client)
    payload: dict[str, Any] = jsonable(line.to_payload())
    payload["sale_external_id"] = sale_external_id
    payload["is_synthetic"] = line.is_synthetic

    first = line.first()
    if first is not None and first.product is not None and first.product.external_id:
        payload["product_external_id"] = first.product.external_id

    if line.external_id:
        execute(
            db.table(_SALE_ITEMS_TABLE).update(payload).eq("external_id", line.external_id),
            "update sale item",
        )
        return line.external_id

    external_id = str(uuid4())
    payload["external_id"] = external_id
    rows = execute(db.table(_SALE_ITEMS_TABLE).insert(payload), "create sale item")
    line.external_id = external_id
    if rows:
        line.id = rows[0].get("id", line.id)
    return external_id


def get_sale_record(id_or_invoice: str, *, client: Optional[Client] = None) -> Optional[dict[str, Any]]:
    """
    Fetch a stored sale by external id, falling back to invoice number.

    Returns:
        The raw sale row with embedded customer, payments and items, or None
    """

    db = resolve_client(client)
    for column in ("external_id", "invoice_no"):
        rows = execute(
            db.table(_SALES_TABLE).select(_SALE_SELECT).eq(column, id_or_invoice).limit(1),
            "get sale",
        )
        if rows:
            return rows[0]
    return None


__all__ = [
    "attach_customer",
    "get_sale_record",
    "upsert_sale",
    "upsert_sale_item",
]
