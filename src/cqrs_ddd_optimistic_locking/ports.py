"""Persistence backend protocols consumed by :class:`OptimisticRepository`."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping


@runtime_checkable
class IConditionalUpdateBackend(Protocol):
    """
    Executes a single conditional ``UPDATE``.

    Implementations must check the predicate and write in one atomic step
    (a single ``UPDATE ... WHERE`` statement, or an equivalent critical
    section), so no read-then-write window exists between the two.

    Example:
        ```python
        rows = backend.execute_conditional_update(
            "orders",
            {"id": 1, "status": "paid"},
            {"id": 1, "status": "new"},
        )
        ```
    """

    def execute_conditional_update(
        self,
        table: str,
        values: Mapping[str, Any],
        predicate: Mapping[str, Any],
    ) -> int:
        """
        Set *values* on every row of *table* matching *predicate*.

        Args:
            table: Table name.
            values: Column assignments to write.
            predicate: Column -> required value. ``None`` matches NULL.

        Returns:
            The number of rows matched by the predicate.

        Backend failures (connectivity, unrelated constraint violations)
        are raised as-is.
        """
        ...


@runtime_checkable
class IRowReader(Protocol):
    """Loads a single row by primary key."""

    def fetch(self, table: str, key: Mapping[str, Any]) -> Mapping[str, Any] | None:
        """Return the row's column values, or ``None`` if it does not exist."""
        ...


@runtime_checkable
class IRowWriter(Protocol):
    """Inserts new rows."""

    def insert(self, table: str, values: Mapping[str, Any]) -> None:
        """Insert one row with *values*."""
        ...
