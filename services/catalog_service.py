"""
Catalog service for the sale counter.

Searches available stock and groups the results so each product appears once.
The first unit of a group is what the cashier adds to the cart; the remaining
units ride along in its extra_linked_units and become the line's reserve pool,
which is what quantity increases draw from.

Units added to a cart are reserved with a conditional Available -> Reserved
update, so two counters cannot sell the same unit.
"""

from __future__ import annotations

import logging
from typing import Hashable, Iterable, List, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.stock_unit import StockStatus, StockUnit
from repositories.stock_repository import reserve_stock_units
from repositories.stock_repository import search_stock_units as _search_stock_units

logger = logging.getLogger(__name__)


def _group_key(unit: StockUnit) -> Hashable:
    product = unit.product
    if product is None:
        return ("name", unit.name or f"null-name-{unit.id}")
    if product.id is not None and product.id > 0:
        return ("product", product.id)
    return ("unit", f"{unit.id}-stock-id")


def aggregate_by_product(units: Iterable[StockUnit]) -> List[StockUnit]:
    """
    Group units by product id (or name when there is no product).

    Returns:
        One head unit per group, in first-seen order; every other unit of the
        group is appended to the head's extra_linked_units.

    Example:
        heads = aggregate_by_product([ring_1, ring_2, ring_3, bracelet])
        # [ring_1 (extra_linked_units=[ring_2, ring_3]), bracelet]
    """

    heads: dict[Hashable, StockUnit] = {}
    for unit in units:
        key = _group_key(unit)
        head = heads.get(key)
        if head is None:
            unit.extra_linked_units = []
            heads[key] = unit
        else:
            head.extra_linked_units.append(unit)
    return list(heads.values())


def search_stock_units(
    text: str,
    *,
    limit: int = 300,
    client: Optional[Client] = None,
) -> List[StockUnit]:
    """Search available units by name or barcode and aggregate them by product."""

    units = _search_stock_units(text, StockStatus.AVAILABLE, limit=limit, client=client)
    heads = aggregate_by_product(units)
    logger.debug("Catalog search %r: %d units in %d groups", text, len(units), len(heads))
    return heads


def reserve_units(units: Iterable[StockUnit], *, client: Optional[Client] = None) -> List[StockUnit]:
    """
    Reserve units for a cart.

    Returns:
        The units this call reserved, in input order. Units without an external
        id (free-text entries) have no catalog row and are always returned.
    """

    units = list(units)
    wanted = [u.external_id for u in units if u.external_id]
    reserved = set(reserve_stock_units(wanted, client=client))
    if len(reserved) < len(wanted):
        logger.info("Reserved %d of %d requested units", len(reserved), len(wanted))
    return [u for u in units if not u.external_id or u.external_id in reserved]


__all__ = ["aggregate_by_product", "reserve_units", "search_stock_units"]
