"""
Payment repository (persistence).

Payments are created once and then only updated in place (status-neutral edits).
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import uuid4

from supabase import Client  # type: ignore[import-not-found]

from domain.payment import Payment
from repositories.client import execute, jsonable, resolve_client

_PAYMENTS_TABLE: str = "payments"


def upsert_payment(
    payment: Payment,
    *,
    sale_external_id: str,
    cash_register_id: Optional[str] = None,
    client: Optional[Client] = None,
) -> str:
    db = resolve_client(client)
    payload: dict[str, Any] = jsonable(payment.to_payload())
    payload["sale_external_id"] = sale_external_id
    if cash_register_id:
        payload["cash_register_external_id"] = cash_register_id

    if payment.external_id:
        execute(
            db.table(_PAYMENTS_TABLE).update(payload).eq("external_id", payment.external_id),
            "update payment",
        )
        return payment.external_id

    payload["external_id"] = str(uuid4())
    execute(db.table(_PAYMENTS_TABLE).insert(payload), "create payment")
    payment.external_id = payload["external_id"]
    return payment.external_id


__all__ = ["upsert_payment"]
