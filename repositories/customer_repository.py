"""
Customer repository (persistence).

Creates or updates the customer captured on a sale. Blank customers are not
persisted.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4

from supabase import Client  # type: ignore[import-not-found]

from domain.customer import Customer
from repositories.client import execute, resolve_client

_CUSTOMERS_TABLE: str = "customers"


def upsert_customer(customer: Optional[Customer], *, client: Optional[Client] = None) -> Optional[str]:
    """
    Returns:
        The customer's external id, or None when there is nothing to store
    """

    if customer is None or customer.is_empty:
        return None

    db = resolve_client(client)
    payload: dict[str, Any] = customer.to_payload()

    if customer.external_id:
        execute(
            db.table(_CUSTOMERS_TABLE).update(payload).eq("external_id", customer.external_id),
            "update customer",
        )
        return customer.external_id

    payload["external_id"] = str(uuid4())
    rows = execute(db.table(_CUSTOMERS_TABLE).insert(payload), "create customer")
    customer.external_id = payload["external_id"]
    if rows:
        customer.id = rows[0].get("id", customer.id)
    return customer.external_id


__all__ = ["upsert_customer"]
