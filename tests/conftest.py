"""
Pytest configuration and shared fixtures.

This file adds the project root to the Python path so that tests can import
from the domain, services, repositories and api packages, and provides an
in-memory stand-in for the Supabase query builder.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.stock_unit import ProductRef, StockUnit  # noqa: E402


@dataclass
class FakeResponse:
    data: List[Dict[str, Any]]
    error: Optional[str] = None


class FakeQuery:
    """Records one chained query against a FakeSupabase table."""

    def __init__(self, db: "FakeSupabase", table: str) -> None:
        self.db = db
        self.table = table
        self.operation = "select"
        self.payload: Optional[Dict[str, Any]] = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self.limit_to: Optional[int] = None

    def select(self, columns: str = "*") -> "FakeQuery":
        self.operation = "select"
        return self

    def insert(self, payload: Dict[str, Any]) -> "FakeQuery":
        self.operation = "insert"
        self.payload = dict(payload)
        return self

    def update(self, payload: Dict[str, Any]) -> "FakeQuery":
        self.operation = "update"
        self.payload = dict(payload)
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def in_(self, column: str, values: List[Any]) -> "FakeQuery":
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def or_(self, expression: str) -> "FakeQuery":
        # Not evaluated; recorded so tests can inspect the filter text.
        self.db.or_filters.append(expression)
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.limit_to = count
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self.limit_to = end - start + 1
        return self

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table, self.operation, self.payload))
        if self.table in self.db.fail_tables:
            return FakeResponse(data=[], error=f"{self.table} unavailable")

        rows = self.db.tables.setdefault(self.table, [])
        if self.operation == "insert":
            row = dict(self.payload or {})
            row.setdefault("id", len(rows) + 1)
            rows.append(row)
            return FakeResponse(data=[row])

        matching = [row for row in rows if all(f(row) for f in self.filters)]
        if self.operation == "update":
            for row in matching:
                row.update(self.payload or {})
        if self.limit_to is not None:
            matching = matching[: self.limit_to]
        return FakeResponse(data=matching)


class FakeSupabase:
    """Minimal in-memory Supabase client: tables are lists of dict rows."""

    def __init__(self) -> None:
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.calls: List[tuple] = []
        self.fail_tables: set[str] = set()
        self.or_filters: List[str] = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def make_unit() -> Callable[..., StockUnit]:
    """Factory for catalog stock units of one product with given prices."""

    counter = {"next": 1}

    def _make(
        selling: Any = "100",
        cost: Any = "70",
        offer: Any = None,
        *,
        product_id: int = 7,
        name: str = "Silver Ring",
    ) -> StockUnit:
        n = counter["next"]
        counter["next"] += 1
        return StockUnit(
            id=n,
            external_id=f"su-{n}",
            name=name,
            cost_price=Decimal(str(cost)),
            selling_price=Decimal(str(selling)),
            offer_price=Decimal(str(offer)) if offer is not None else None,
            product=ProductRef(id=product_id, external_id=f"prod-{product_id}", name=name),
        )

    return _make
