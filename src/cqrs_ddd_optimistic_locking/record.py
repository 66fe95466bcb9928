"""Record — one in-memory row with change tracking."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .exceptions import UnknownColumnError
from .state import RecordState

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .policy import LockingPolicy
    from .schema import RecordSchema


class Record:
    """
    A single row of a :class:`RecordSchema`.

    Column values are read and written through :meth:`get_column` /
    :meth:`set_column` (or item access). Every write goes through the
    record's private :class:`RecordState`, which captures the persisted
    value of a column the first time it changes.

    Usage:
        ```python
        order = Record(schema, {"id": 1, "status": "new"}, in_storage=True)
        order["status"] = "paid"
        order.is_changed()            # True
        order.get_original_column("status")  # "new"
        ```
    """

    __slots__ = ("_in_storage", "_schema", "_state")

    def __init__(
        self,
        schema: RecordSchema,
        values: Mapping[str, Any] | None = None,
        *,
        in_storage: bool = False,
    ) -> None:
        values = values or {}
        for name in values:
            if not schema.has_column(name):
                raise UnknownColumnError(schema.table, name)
        self._schema = schema
        self._state = RecordState(schema.columns, values)
        self._in_storage = in_storage

    def __repr__(self) -> str:
        return f"Record({self._schema.table!r}, {self._state.get_fields()!r})"

    def __getitem__(self, name: str) -> Any:
        return self.get_column(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.set_column(name, value)

    @property
    def schema(self) -> RecordSchema:
        return self._schema

    @property
    def state(self) -> RecordState:
        return self._state

    @property
    def locking(self) -> LockingPolicy:
        return self._schema.locking

    @property
    def in_storage(self) -> bool:
        """True once the row is known to exist in the backend."""
        return self._in_storage

    def mark_in_storage(self, value: bool = True) -> None:
        self._in_storage = value

    def _check(self, name: str) -> None:
        if not self._schema.has_column(name):
            raise UnknownColumnError(self._schema.table, name)

    # -- accessors ----------------------------------------------------------

    def get_column(self, name: str) -> Any:
        self._check(name)
        return self._state.get_field(name)

    def get_columns(self) -> dict[str, Any]:
        return self._state.get_fields()

    def set_column(self, name: str, value: Any) -> None:
        self._check(name)
        self._state.set_field(name, value)

    def set_columns(self, values: Mapping[str, Any]) -> None:
        """Set several columns; all names are checked before any is written."""
        for name in values:
            self._check(name)
        for name, value in values.items():
            self._state.set_field(name, value)

    def identity(self) -> dict[str, Any]:
        """Primary key at its persisted values."""
        return {
            pk: self._state.get_original_value(pk) for pk in self._schema.primary_key
        }

    # -- change tracking ----------------------------------------------------

    def is_changed(self) -> bool:
        return self._state.is_changed()

    def is_column_changed(self, name: str) -> bool:
        self._check(name)
        return self._state.is_field_changed(name)

    def get_dirty_columns(self) -> dict[str, Any]:
        return self._state.get_dirty_columns()

    def get_original_column(self, name: str) -> Any:
        self._check(name)
        return self._state.get_original_value(name)

    def get_original_columns(self) -> dict[str, Any]:
        return self._state.get_original_values()
