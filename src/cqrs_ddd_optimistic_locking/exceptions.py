"""Exceptions for optimistic locking."""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping


class OptimisticLockingError(Exception):
    """Root exception for the optimistic locking package."""


class ConfigurationError(OptimisticLockingError):
    """Raised when a locking policy or record schema is misconfigured.

    Always raised eagerly, when the configuration object is built, never
    on the first write.
    """


class ConcurrencyError(OptimisticLockingError):
    """Base class for all concurrency-related conflicts."""


class ConflictError(ConcurrencyError):
    """Raised when a conditional update matched zero rows.

    The row was either deleted or modified concurrently so that the
    predicate no longer holds. Carries the attempted predicate and values
    for diagnostics. Never retried by this package.
    """

    def __init__(
        self,
        table: str,
        identity: Mapping[str, Any],
        predicate: Mapping[str, Any],
        values: Mapping[str, Any],
    ) -> None:
        self.table = table
        self.identity = MappingProxyType(dict(identity))
        self.predicate = MappingProxyType(dict(predicate))
        self.values = MappingProxyType(dict(values))
        super().__init__(
            f"Update of {table} {dict(identity)!r} matched no rows; "
            f"expected {dict(predicate)!r}"
        )


class InvariantViolationError(OptimisticLockingError):
    """Raised when a conditional update reports neither zero nor one row.

    Indicates a missing or non-unique primary key, or a backend that could
    not report its row count. Not a conflict.
    """

    def __init__(
        self, table: str, identity: Mapping[str, Any], rows_affected: int
    ) -> None:
        self.table = table
        self.identity = MappingProxyType(dict(identity))
        self.rows_affected = rows_affected
        super().__init__(
            f"Update of {table} {dict(identity)!r} affected {rows_affected} rows; "
            "the primary key must identify exactly one row"
        )


class PersistenceError(OptimisticLockingError):
    """Base class for all persistence-related errors."""


class BackendError(PersistenceError):
    """Raised by a persistence backend for failures unrelated to the predicate."""


class RecordNotFoundError(PersistenceError):
    """Raised when a record's row no longer exists in the backend."""

    def __init__(self, table: str, identity: Mapping[str, Any]) -> None:
        self.table = table
        self.identity = MappingProxyType(dict(identity))
        super().__init__(f"{table} with key={dict(identity)!r} not found")


class RecordStateError(OptimisticLockingError):
    """Raised when a record is used in a state that does not allow the operation."""


class UnknownColumnError(OptimisticLockingError, KeyError):
    """Raised when a column is not declared on the record's schema."""

    def __init__(self, table: str, column: str) -> None:
        self.table = table
        self.column = column
        super().__init__(f"{table} has no column {column!r}")

    def __str__(self) -> str:
        return str(self.args[0])


__all__: list[str] = [
    "BackendError",
    "ConcurrencyError",
    "ConfigurationError",
    "ConflictError",
    "InvariantViolationError",
    "OptimisticLockingError",
    "PersistenceError",
    "RecordNotFoundError",
    "RecordStateError",
    "UnknownColumnError",
]
