"""
Application settings.

Values are read from the process environment after loading a `.env` file that
sits beside this module. Nothing here is cached as mutable module state; call
load_settings() and pass the result (or the objects it builds) explicitly.

Environment variables:
- SUPABASE_URL / SUPABASE_KEY: Supabase project URL and server-side key
  (required only once the persistence layer is used)
- POS_TAX_RATE: decimal tax fraction for the branch (default 0)
- POS_BRANCH_ID, POS_BRANCH_NAME, POS_DESK_ID, POS_DESK_NAME,
  POS_INVOICE_PREFIX, POS_USER_ID: till context for invoice numbering
- POS_LOG_LEVEL: logging level for the API process (default INFO)
- POS_SESSION_IDLE_MINUTES: minutes a draft sale may sit untouched before it
  is evicted and its units released (default 120)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from domain.context import Branch, BranchContext, Desk, User
from domain.pricing import PricingPolicy, valid_number_or_default

ENV_PATH = Path(__file__).parent / ".env"


def _int_or_none(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _positive_int(value: Optional[str], default: int) -> int:
    parsed = _int_or_none(value)
    return parsed if parsed is not None and parsed > 0 else default


@dataclass(frozen=True, slots=True)
class Settings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    tax_rate: Decimal = Decimal("0")
    branch_id: Optional[int] = None
    branch_name: str = ""
    desk_id: Optional[int] = None
    desk_name: str = ""
    invoice_prefix: Optional[str] = None
    user_id: Optional[int] = None
    log_level: str = "INFO"
    session_idle_minutes: int = 120

    def branch_context(self) -> BranchContext:
        """Build the till context; missing parts stay None until invoice time."""

        branch = Branch(self.branch_id, self.branch_name, self.tax_rate) if self.branch_id is not None else None
        desk = Desk(self.desk_id, self.desk_name, self.invoice_prefix) if self.desk_id is not None else None
        user = User(self.user_id) if self.user_id is not None else None
        return BranchContext(branch=branch, desk=desk, user=user)

    def tax_rate_provider(self) -> "StaticTaxRateProvider":
        return StaticTaxRateProvider(self.tax_rate)

    def pricing_policy(self) -> PricingPolicy:
        return PricingPolicy.for_branch(self.tax_rate_provider(), self.branch_id)

    def session_idle_timeout(self) -> timedelta:
        return timedelta(minutes=self.session_idle_minutes)


@dataclass(frozen=True, slots=True)
class StaticTaxRateProvider:
    """Tax rate taken from configuration, identical for every branch."""

    rate: Decimal = Decimal("0")

    def tax_rate(self, branch_id: Any) -> Decimal:
        return valid_number_or_default(self.rate)


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Read settings from environ (defaults to os.environ after loading .env).

    Example:
        settings = load_settings({"POS_TAX_RATE": "0.1", "POS_BRANCH_ID": "1"})
        settings.pricing_policy().tax_rate  # Decimal('0.1')
    """

    if environ is None:
        load_dotenv(dotenv_path=ENV_PATH)
        environ = os.environ

    return Settings(
        supabase_url=environ.get("SUPABASE_URL") or None,
        supabase_key=environ.get("SUPABASE_KEY") or None,
        tax_rate=valid_number_or_default(environ.get("POS_TAX_RATE")),
        branch_id=_int_or_none(environ.get("POS_BRANCH_ID")),
        branch_name=environ.get("POS_BRANCH_NAME", ""),
        desk_id=_int_or_none(environ.get("POS_DESK_ID")),
        desk_name=environ.get("POS_DESK_NAME", ""),
        invoice_prefix=environ.get("POS_INVOICE_PREFIX") or None,
        user_id=_int_or_none(environ.get("POS_USER_ID")),
        log_level=(environ.get("POS_LOG_LEVEL") or "INFO").upper(),
        session_idle_minutes=_positive_int(environ.get("POS_SESSION_IDLE_MINUTES"), 120),
    )


__all__ = ["Settings", "StaticTaxRateProvider", "load_settings"]
