"""Shared fixtures for the billing backend test suite.

FakeSupabase implements the slice of the supabase-py query builder the
store uses (table/select/insert/update/upsert/eq/order/limit/execute)
over in-memory lists, so handlers can be tested against real row state.
"""

from __future__ import annotations

import copy
import itertools
from dataclasses import dataclass
from typing import Any
from unittest.mock import MagicMock

import pytest
from postgrest.exceptions import APIError

from winprod.db.store import BillingStore


@dataclass
class FakeResponse:
    data: list[dict[str, Any]]


class FakeQuery:
    def __init__(self, db: FakeSupabase, table: str):
        self._db = db
        self._table = table
        self._op = "select"
        self._payload: Any = None
        self._filters: list[tuple[str, Any]] = []
        self._order: tuple[str, bool] | None = None
        self._limit: int | None = None
        self._on_conflict: str | None = None

    def select(self, columns: str = "*") -> FakeQuery:
        self._op = "select"
        return self

    def insert(self, row: dict) -> FakeQuery:
        self._op, self._payload = "insert", row
        return self

    def update(self, changes: dict) -> FakeQuery:
        self._op, self._payload = "update", changes
        return self

    def upsert(self, row: dict, on_conflict: str | None = None) -> FakeQuery:
        self._op, self._payload, self._on_conflict = "upsert", row, on_conflict
        return self

    def eq(self, column: str, value: Any) -> FakeQuery:
        self._filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False) -> FakeQuery:
        self._order = (column, desc)
        return self

    def limit(self, n: int) -> FakeQuery:
        self._limit = n
        return self

    def _matches(self, row: dict) -> bool:
        return all(row.get(col) == val for col, val in self._filters)

    def execute(self) -> FakeResponse:
        self._db.calls.append((self._table, self._op, copy.deepcopy(self._payload), list(self._filters)))
        if self._table in self._db.fail_tables:
            raise APIError({"message": "simulated failure", "code": "500"})

        rows = self._db.tables.setdefault(self._table, [])

        if self._op == "select":
            found = [copy.deepcopy(r) for r in rows if self._matches(r)]
            if self._order:
                col, desc = self._order
                found.sort(key=lambda r: str(r.get(col) or ""), reverse=desc)
            if self._limit is not None:
                found = found[: self._limit]
            return FakeResponse(found)

        if self._op == "insert":
            return FakeResponse([self._db.add(self._table, self._payload)])

        if self._op == "update":
            changed = []
            for row in rows:
                if self._matches(row):
                    row.update(self._payload)
                    changed.append(copy.deepcopy(row))
            return FakeResponse(changed)

        if self._op == "upsert":
            key = self._on_conflict or "id"
            for row in rows:
                if key in self._payload and row.get(key) == self._payload[key]:
                    row.update(self._payload)
                    return FakeResponse([copy.deepcopy(row)])
            return FakeResponse([self._db.add(self._table, self._payload)])

        raise AssertionError(f"unexpected op {self._op}")


class FakeSupabase:
    def __init__(self):
        self.tables: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple] = []
        self.fail_tables: set[str] = set()
        self.auth = MagicMock()
        self._ids = itertools.count(1)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def add(self, table: str, row: dict) -> dict:
        stored = {"id": next(self._ids), **copy.deepcopy(row)}
        self.tables.setdefault(table, []).append(stored)
        return copy.deepcopy(stored)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return self.tables.get(table, [])


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def store(fake_db: FakeSupabase) -> BillingStore:
    return BillingStore(fake_db)


@pytest.fixture
def customer(fake_db: FakeSupabase) -> dict:
    """A free customer already linked to Stripe and PayPal."""
    return fake_db.add(
        "customers",
        {
            "user_id": "user-1",
            "email": "jane@example.com",
            "full_name": "Jane",
            "stripe_customer_id": "cus_123",
            "paypal_customer_id": "PAYER1",
            "subscription_status": "free",
            "subscription_tier": "basic",
        },
    )


@pytest.fixture(autouse=True)
def _no_marketing_calls():
    """Keep Klaviyo disabled unless a test enables it explicitly."""
    from unittest.mock import patch

    with patch("winprod.config.KLAVIYO_API_KEY", ""):
        yield
