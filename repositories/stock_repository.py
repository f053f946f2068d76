"""
Stock unit repository (persistence).

Catalog search and stock-unit writes. Units returned by search carry prices
that the sale engine treats as correct; only synthetic units are priced locally.
"""

from __future__ import annotations

from typing import Any, List, Optional
from uuid import uuid4

from supabase import Client  # type: ignore[import-not-found]

from domain.stock_unit import StockStatus, StockUnit
from repositories.client import execute, jsonable, resolve_client

_STOCK_TABLE: str = "stock_items"
_STOCK_SELECT: str = "*, product:products(*)"


def _quote_filter_value(value: str) -> str:
    """Double-quote a value for a PostgREST logic filter so , ( ) and . stay literal."""

    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def search_stock_units(
    text: str,
    status: StockStatus = StockStatus.AVAILABLE,
    *,
    offset: int = 0,
    limit: int = 300,
    client: Optional[Client] = None,
) -> List[StockUnit]:
    """
    Search units by name or barcode with the given status.

    Example:
        units = search_stock_units("ring", StockStatus.AVAILABLE, limit=50)
    """

    db = resolve_client(client)
    query = db.table(_STOCK_TABLE).select(_STOCK_SELECT).eq("status", status.value)
    term = (text or "").strip()
    if term:
        query = query.or_(
            f"name.ilike.{_quote_filter_value(f'%{term}%')},barcode.eq.{_quote_filter_value(term)}"
        )
    rows = execute(query.range(offset, offset + limit - 1), "search stock units")
    return [StockUnit.from_record(row) for row in rows]


def upsert_stock_unit(
    unit: StockUnit,
    *,
    sale_item_external_id: Optional[str],
    status: Optional[StockStatus] = None,
    client: Optional[Client] = None,
) -> str:
    """
    Link a unit to a sale line, optionally moving it to a new status.

    Synthetic units (no external id) are created with their full price payload.
    """

    db = resolve_client(client)
    payload: dict[str, Any] = {"sale_item_external_id": sale_item_external_id}
    if status is not None:
        payload["status"] = status.value
    if unit.product is not None and unit.product.external_id:
        payload["product_external_id"] = unit.product.external_id

    if unit.external_id:
        execute(
            db.table(_STOCK_TABLE).update(jsonable(payload)).eq("external_id", unit.external_id),
            "update stock unit",
        )
    else:
        create_payload = {**unit.to_payload(), **payload, "external_id": str(uuid4())}
        rows = execute(db.table(_STOCK_TABLE).insert(jsonable(create_payload)), "create stock unit")
        unit.external_id = create_payload["external_id"]
        if rows:
            unit.id = rows[0].get("id", unit.id)

    if status is not None:
        unit.status = status
    return unit.external_id  # type: ignore[return-value]


def update_stock_status(
    external_id: str,
    status: StockStatus,
    *,
    sale_return_item_external_id: Optional[str] = None,
    client: Optional[Client] = None,
) -> None:
    db = resolve_client(client)
    payload: dict[str, Any] = {"status": status.value}
    if sale_return_item_external_id:
        payload["sale_return_item_external_id"] = sale_return_item_external_id
    execute(
        db.table(_STOCK_TABLE).update(payload).eq("external_id", external_id),
        "update stock status",
    )


def release_stock_units(external_ids: List[str], *, client: Optional[Client] = None) -> None:
    """Return units to the catalog: Available and unlinked from any sale line."""

    if not external_ids:
        return
    db = resolve_client(client)
    execute(
        db.table(_STOCK_TABLE)
        .update({"status": StockStatus.AVAILABLE.value, "sale_item_external_id": None})
        .in_("external_id", external_ids),
        "release stock units",
    )


def reserve_stock_units(external_ids: List[str], *, client: Optional[Client] = None) -> List[str]:
    """
    Move units from Available to Reserved in one conditional update.

    Units in any other status are left untouched.

    Returns:
        External ids of the units that were reserved by this call
    """

    if not external_ids:
        return []
    db = resolve_client(client)
    rows = execute(
        db.table(_STOCK_TABLE)
        .update({"status": StockStatus.RESERVED.value})
        .in_("external_id", external_ids)
        .eq("status", StockStatus.AVAILABLE.value),
        "reserve stock units",
    )
    return [row["external_id"] for row in rows if row.get("external_id")]


__all__ = [
    "release_stock_units",
    "reserve_stock_units",
    "search_stock_units",
    "update_stock_status",
    "upsert_stock_unit",
]
