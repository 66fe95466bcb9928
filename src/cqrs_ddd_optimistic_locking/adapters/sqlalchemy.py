"""SQLAlchemy Core implementation of the persistence backend ports."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, insert, select, update

from ..exceptions import BackendError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy import ColumnElement, Connection, MetaData, Table
    from sqlalchemy.orm import Session

    Executor = Connection | Session

logger = logging.getLogger("cqrs_ddd.optimistic_locking.sqlalchemy")


class SQLAlchemyBackend:
    """
    Runs conditional updates as a single ``UPDATE ... WHERE`` statement.

    Accepts either a ``Connection`` or an ORM ``Session``; transaction
    boundaries stay with the caller. Tables are resolved by name from
    *metadata*.

    The returned row count is the number of rows *matched*. SQLite and
    PostgreSQL report matched rows natively; SQLAlchemy's MySQL dialects
    enable ``CLIENT_FOUND_ROWS`` for the same reason.

    ``SQLAlchemyError`` raised by the driver propagates unmodified.

    Usage:
        ```python
        with engine.begin() as conn:
            backend = SQLAlchemyBackend(conn, metadata)
            repo = OptimisticRepository(schema, backend)
            repo.save(order)
        ```
    """

    def __init__(self, executor: Executor, metadata: MetaData) -> None:
        self._executor = executor
        self._metadata = metadata

    def _table(self, name: str) -> Table:
        try:
            return self._metadata.tables[name]
        except KeyError:
            raise BackendError(f"table {name!r} is not in the metadata") from None

    @staticmethod
    def _where(table: Table, predicate: Mapping[str, Any]) -> ColumnElement[bool]:
        clauses = [
            table.c[col].is_(None) if val is None else table.c[col] == val
            for col, val in predicate.items()
        ]
        return and_(*clauses)

    def execute_conditional_update(
        self,
        table: str,
        values: Mapping[str, Any],
        predicate: Mapping[str, Any],
    ) -> int:
        tbl = self._table(table)
        stmt = update(tbl).where(self._where(tbl, predicate)).values(dict(values))
        result = self._executor.execute(stmt)
        rowcount = result.rowcount  # type: ignore[attr-defined]
        logger.debug(
            "UPDATE %s matched %d row(s)",
            table,
            rowcount,
            extra={"table": table, "predicate_columns": list(predicate)},
        )
        return int(rowcount)

    def fetch(self, table: str, key: Mapping[str, Any]) -> dict[str, Any] | None:
        tbl = self._table(table)
        row = self._executor.execute(
            select(tbl).where(self._where(tbl, key))
        ).mappings().first()
        return dict(row) if row is not None else None

    def insert(self, table: str, values: Mapping[str, Any]) -> None:
        tbl = self._table(table)
        self._executor.execute(insert(tbl).values(dict(values)))
