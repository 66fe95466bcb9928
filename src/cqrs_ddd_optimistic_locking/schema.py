"""RecordSchema — table, columns, primary key and locking policy of a record type."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .exceptions import ConfigurationError
from .policy import LockingPolicy
from .strategy import LockingStrategy

if TYPE_CHECKING:
    from sqlalchemy import Table


@dataclass(frozen=True)
class RecordSchema:
    """
    Describes one record type. Built once and shared by all its records.

    Examples:
        >>> RecordSchema("orders", ("id", "status", "total"), ("id",))
        >>> RecordSchema(
        ...     "orders",
        ...     ("id", "status", "version"),
        ...     ("id",),
        ...     locking=LockingPolicy(strategy="version"),
        ... )
    """

    table: str
    columns: tuple[str, ...]
    primary_key: tuple[str, ...]
    locking: LockingPolicy = field(default_factory=LockingPolicy)

    def __post_init__(self) -> None:
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "primary_key", tuple(self.primary_key))

        if not self.table:
            raise ConfigurationError("record schema needs a table name")
        if not self.columns:
            raise ConfigurationError(f"{self.table}: no columns declared")
        if len(set(self.columns)) != len(self.columns):
            raise ConfigurationError(f"{self.table}: duplicate column names")
        if not self.primary_key:
            raise ConfigurationError(f"{self.table}: no primary key declared")
        undeclared = [c for c in self.primary_key if c not in self.columns]
        if undeclared:
            raise ConfigurationError(
                f"{self.table}: primary key column(s) {undeclared} not declared"
            )
        if (
            self.locking.strategy is LockingStrategy.VERSION
            and self.locking.version_column not in self.columns
        ):
            raise ConfigurationError(
                f"{self.table}: version column "
                f"{self.locking.version_column!r} not declared"
            )

    @classmethod
    def from_table(
        cls, table: Table, locking: LockingPolicy | None = None
    ) -> RecordSchema:
        """Derive the schema from SQLAlchemy table metadata."""
        return cls(
            table=table.name,
            columns=tuple(c.name for c in table.columns),
            primary_key=tuple(c.name for c in table.primary_key.columns),
            locking=locking or LockingPolicy(),
        )

    def has_column(self, name: str) -> bool:
        return name in self.columns

    def key_of(self, key: Any) -> dict[str, Any]:
        """Normalise a scalar, sequence or mapping into a primary-key mapping."""
        if isinstance(key, Mapping):
            return {pk: key[pk] for pk in self.primary_key}
        values: tuple[Any, ...] = (
            tuple(key) if isinstance(key, (tuple, list)) else (key,)
        )
        if len(values) != len(self.primary_key):
            raise ValueError(
                f"{self.table}: expected {len(self.primary_key)} key values, "
                f"got {len(values)}"
            )
        return dict(zip(self.primary_key, values))
