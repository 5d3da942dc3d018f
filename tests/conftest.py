"""Shared fixtures for tablesync tests."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple
from unittest.mock import MagicMock

import pytest

from tablesync.connection import DataSource


class FakeCursor:
    """Lightweight stand-in for a DB-API 2.0 cursor.

    Supply ``results`` as a list of lists -- each inner list is a set of rows
    returned by one successive ``execute()`` call.  ``executemany()`` calls
    are recorded in ``written``.
    """

    def __init__(
        self,
        results: Optional[List[List[Tuple[Any, ...]]]] = None,
        descriptions: Optional[List[List[Tuple[str, ...]]]] = None,
    ) -> None:
        self._results = list(results or [])
        self._descriptions = list(descriptions or [])
        self._call_idx = -1
        self._rows: List[Tuple[Any, ...]] = []
        self.description: Optional[List[Tuple[str, ...]]] = None
        self.executed: List[Tuple[str, Any]] = []
        self.written: List[Tuple[str, List[Tuple[Any, ...]]]] = []
        self.closed = False

    def execute(self, sql: str, params: Any = None) -> None:
        self.executed.append((sql, params))
        self._call_idx += 1
        if self._call_idx < len(self._results):
            self._rows = list(self._results[self._call_idx])
        else:
            self._rows = []
        if self._call_idx < len(self._descriptions):
            self.description = self._descriptions[self._call_idx]
        else:
            self.description = None

    def executemany(self, sql: str, rows: Sequence[Tuple[Any, ...]]) -> None:
        self.written.append((sql, list(rows)))

    def fetchall(self) -> List[Tuple[Any, ...]]:
        return self._rows

    def fetchmany(self, size: int = 1) -> List[Tuple[Any, ...]]:
        rows = self._rows[:size]
        self._rows = self._rows[size:]
        return rows

    def fetchone(self) -> Optional[Tuple[Any, ...]]:
        return self._rows[0] if self._rows else None

    def close(self) -> None:
        self.closed = True


def make_data_source(
    tables: Optional[Dict[str, List[Tuple[str, str]]]] = None,
    *,
    primary_keys: Optional[Dict[str, List[str]]] = None,
    search_path: Sequence[str] = ("pg_catalog", "public"),
    host: Optional[str] = None,
    dbname: str = "app",
) -> MagicMock:
    """Build a ``DataSource`` mock backed by an in-memory catalog.

    *tables* maps ``schema.table`` to ``[(column, type), ...]``.
    """
    tables = tables or {}
    primary_keys = primary_keys or {}
    ds = MagicMock(spec=DataSource)
    ds.url = f"postgres://{host or 'localhost'}/{dbname}"
    ds.host = host
    ds.port = None
    ds.dbname = dbname
    ds.exists.return_value = True
    ds.is_local.return_value = host is None
    ds.search_path.return_value = list(search_path)
    ds.tables.return_value = sorted(tables)
    ds.table_exists.side_effect = lambda name: name in tables
    ds.columns.side_effect = lambda name: list(tables.get(name, []))
    ds.primary_key.side_effect = lambda name: list(primary_keys.get(name, ["id"]))
    ds.execute.return_value = []
    ds.in_transaction.return_value = False
    return ds


USERS_ORDERS = {
    "public.users": [("id", "integer"), ("email", "text")],
    "public.orders": [("id", "integer"), ("user_id", "integer")],
}


@pytest.fixture()
def fake_cursor():
    """Return the ``FakeCursor`` *class* so tests can instantiate with custom data."""
    return FakeCursor


@pytest.fixture()
def source():
    return make_data_source(USERS_ORDERS, dbname="app_production")


@pytest.fixture()
def destination():
    return make_data_source(USERS_ORDERS, dbname="app_development")


@pytest.fixture()
def data_source_factory():
    """Return :func:`make_data_source` so tests can build custom catalogs."""
    return make_data_source
