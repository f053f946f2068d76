"""
Sale return repository (persistence).

Stores exchange-return headers and their per-sale-item return lines.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import uuid4

from supabase import Client  # type: ignore[import-not-found]

from domain.time import to_iso_utc
from repositories.client import execute, jsonable, resolve_client

_SALE_RETURNS_TABLE: str = "sale_returns"
_SALE_RETURN_ITEMS_TABLE: str = "sale_return_items"


def create_sale_return(
    *,
    return_number: str,
    returned_at: datetime,
    total_refund: Decimal,
    original_sale_external_id: Optional[str],
    exchange_sale_external_id: str,
    client: Optional[Client] = None,
) -> str:
    db = resolve_client(client)
    external_id = str(uuid4())
    payload: dict[str, Any] = {
        "external_id": external_id,
        "return_no": return_number,
        "return_date": to_iso_utc(returned_at, name="returned_at"),
        "total_refund": total_refund,
        "type": "Exchange",
        "sale_external_id": original_sale_external_id,
        "exchange_sale_external_id": exchange_sale_external_id,
    }
    execute(db.table(_SALE_RETURNS_TABLE).insert(jsonable(payload)), "create sale return")
    return external_id


def create_sale_return_item(
    *,
    sale_return_external_id: str,
    quantity: int,
    price: Decimal,
    total: Decimal,
    product_external_id: Optional[str] = None,
    client: Optional[Client] = None,
) -> str:
    db = resolve_client(client)
    external_id = str(uuid4())
    payload: dict[str, Any] = {
        "external_id": external_id,
        "sale_return_external_id": sale_return_external_id,
        "quantity": quantity,
        "price": price,
        "total": total,
    }
    if product_external_id:
        payload["product_external_id"] = product_external_id
    execute(db.table(_SALE_RETURN_ITEMS_TABLE).insert(jsonable(payload)), "create sale return item")
    return external_id


__all__ = ["create_sale_return", "create_sale_return_item"]
