"""
Supabase client initialization.

This module contains *only* the database connection setup and the small helpers
every repository uses to talk to it. The client is created on first use, so
importing a repository never requires credentials.

Environment variables required (see settings.py):
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (use a server-side key only on the backend)
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import Any, List, Mapping, Optional

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

from settings import load_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Official Supabase client instance shared by the repositories."""

    settings = load_settings()

    if not settings.supabase_url:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_URL. "
            "Set SUPABASE_URL to your Supabase project URL."
        )

    if not settings.supabase_key:
        raise RuntimeError(
            "Missing environment variable: SUPABASE_KEY. "
            "Set SUPABASE_KEY to your Supabase API key."
        )

    return create_client(settings.supabase_url, settings.supabase_key)


def resolve_client(client: Optional[Client]) -> Client:
    return client if client is not None else get_supabase()


def jsonable(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Convert Decimals, datetimes and enums so the payload can be sent as JSON."""

    def convert(value: Any) -> Any:
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, Mapping):
            return {k: convert(v) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [convert(v) for v in value]
        return value

    return {key: convert(value) for key, value in payload.items()}


def execute(query: Any, action: str) -> List[dict[str, Any]]:
    """
    Execute a query builder and return its rows.

    Raises:
        RuntimeError: If the response carries an error.
    """

    response = query.execute()
    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


__all__ = ["execute", "get_supabase", "jsonable", "resolve_client"]
