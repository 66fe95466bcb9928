"""InMemoryBackend — dict-backed fake for unit tests."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

from ..exceptions import BackendError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class InMemoryBackend:
    """
    In-memory implementation of the conditional update, reader and writer ports.

    Tables are registered with their primary-key columns; rows are stored
    as plain dicts keyed by primary-key tuple. Each conditional update
    runs under a lock, so the predicate check and the write are atomic.

    ``calls`` counts conditional updates, which lets tests assert that a
    no-op save never reached the backend.
    """

    def __init__(self) -> None:
        self._tables: dict[str, tuple[str, ...]] = {}
        self._rows: dict[str, dict[tuple[Any, ...], dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self.calls = 0

    def create_table(self, table: str, primary_key: Iterable[str]) -> None:
        with self._lock:
            self._tables[table] = tuple(primary_key)
            self._rows.setdefault(table, {})

    def _table(self, table: str) -> dict[tuple[Any, ...], dict[str, Any]]:
        try:
            return self._rows[table]
        except KeyError:
            raise BackendError(f"unknown table {table!r}") from None

    def _key(self, table: str, values: Mapping[str, Any]) -> tuple[Any, ...]:
        try:
            return tuple(values[pk] for pk in self._tables[table])
        except KeyError as exc:
            raise BackendError(f"{table}: missing key column {exc}") from exc

    # -- ports --------------------------------------------------------------

    def insert(self, table: str, values: Mapping[str, Any]) -> None:
        with self._lock:
            rows = self._table(table)
            key = self._key(table, values)
            if key in rows:
                raise BackendError(f"{table}: duplicate key {key!r}")
            rows[key] = dict(values)

    def fetch(self, table: str, key: Mapping[str, Any]) -> dict[str, Any] | None:
        with self._lock:
            row = self._table(table).get(self._key(table, key))
            return dict(row) if row is not None else None

    def execute_conditional_update(
        self,
        table: str,
        values: Mapping[str, Any],
        predicate: Mapping[str, Any],
    ) -> int:
        with self._lock:
            self.calls += 1
            rows = self._table(table)
            matched = [
                key
                for key, row in rows.items()
                if all(row.get(col) == val for col, val in predicate.items())
            ]
            moved = {
                key: self._key(table, {**rows[key], **values}) for key in matched
            }
            # keys are checked before any row is written
            for key, new_key in moved.items():
                if new_key != key and new_key in rows and new_key not in moved:
                    raise BackendError(f"{table}: duplicate key {new_key!r}")
            if len(set(moved.values())) != len(moved):
                raise BackendError(f"{table}: update would merge {len(moved)} rows")
            updated = {key: {**rows.pop(key), **values} for key in matched}
            for key, row in updated.items():
                rows[moved[key]] = row
            return len(matched)

    # -- test helpers -------------------------------------------------------

    def rows(self, table: str) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._table(table).values()]

    def clear(self) -> None:
        with self._lock:
            for rows in self._rows.values():
                rows.clear()
            self.calls = 0
