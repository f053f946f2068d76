"""
Branch repository (persistence).

Reads per-branch configuration. Only the tax rate is consumed by the sale engine.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.pricing import valid_number_or_default
from repositories.client import execute, resolve_client

_BRANCHES_TABLE: str = "branches"


class SupabaseTaxRateProvider:
    """
    Tax rate provider backed by the branches table.

    Example:
        pricing = PricingPolicy.for_branch(SupabaseTaxRateProvider(), branch_id=3)
    """

    def __init__(self, client: Optional[Client] = None) -> None:
        self._client = client

    def tax_rate(self, branch_id: Any) -> Decimal:
        if branch_id is None:
            return Decimal("0")
        db = resolve_client(self._client)
        rows = execute(
            db.table(_BRANCHES_TABLE).select("tax_rate").eq("id", branch_id).limit(1),
            "fetch branch tax rate",
        )
        if not rows:
            return Decimal("0")
        return valid_number_or_default(rows[0].get("tax_rate"))


__all__ = ["SupabaseTaxRateProvider"]
