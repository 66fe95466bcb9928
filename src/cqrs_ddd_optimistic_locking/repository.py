"""OptimisticRepository — load, insert and conditionally update records."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from .exceptions import (
    ConflictError,
    InvariantViolationError,
    RecordNotFoundError,
    RecordStateError,
)
from .ports import IConditionalUpdateBackend, IRowReader, IRowWriter
from .record import Record
from .strategy import LockingStrategy

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .schema import RecordSchema

logger = logging.getLogger("cqrs_ddd.optimistic_locking")


class OptimisticRepository:
    """
    Persists records of one :class:`RecordSchema` with optimistic locking.

    ``save`` asks the schema's :class:`LockingPolicy` for an update plan,
    issues exactly one conditional update and interprets the row count:

    - ``1``: success, the record is rebased on its new values.
    - ``0``: :class:`ConflictError`, the row changed or vanished underneath.
    - any other count: :class:`InvariantViolationError`, the key is not
      unique or the backend could not report how many rows matched.

    Conflicts are never retried here. After a failed save the record's
    values and change tracking are exactly as they were before the call,
    so the caller can :meth:`refresh` and reapply.

    Usage:
        ```python
        repo = OptimisticRepository(schema, backend)
        order = repo.get(1)
        order["status"] = "paid"
        try:
            repo.save(order)
        except ConflictError:
            repo.refresh(order)
        ```
    """

    def __init__(
        self, schema: RecordSchema, backend: IConditionalUpdateBackend
    ) -> None:
        if not isinstance(backend, IConditionalUpdateBackend):
            raise TypeError(
                f"{type(backend).__name__} does not implement "
                "execute_conditional_update()"
            )
        self.schema = schema
        self._backend = backend

    def _reader(self) -> IRowReader:
        if not isinstance(self._backend, IRowReader):
            raise TypeError(f"{type(self._backend).__name__} cannot fetch rows")
        return self._backend

    def _writer(self) -> IRowWriter:
        if not isinstance(self._backend, IRowWriter):
            raise TypeError(f"{type(self._backend).__name__} cannot insert rows")
        return self._backend

    def _check_record(self, record: Record) -> None:
        if record.schema is not self.schema and record.schema != self.schema:
            raise RecordStateError(
                f"record of {record.schema.table!r} passed to the "
                f"{self.schema.table!r} repository"
            )

    def create(self, values: Mapping[str, Any] | None = None) -> Record:
        """Build a new, not yet stored record."""
        return Record(self.schema, values)

    # -- reads --------------------------------------------------------------

    def get(self, key: Any) -> Record | None:
        """Load a record by primary key (scalar, tuple or mapping)."""
        row = self._reader().fetch(self.schema.table, self.schema.key_of(key))
        if row is None:
            return None
        values = {c: row.get(c) for c in self.schema.columns}
        return Record(self.schema, values, in_storage=True)

    def refresh(self, record: Record) -> None:
        """
        Reload *record* from the backend, discarding unsaved changes.

        Raises:
            RecordNotFoundError: If the row no longer exists.
        """
        self._check_record(record)
        identity = record.identity()
        row = self._reader().fetch(self.schema.table, identity)
        if row is None:
            raise RecordNotFoundError(self.schema.table, identity)
        record.state.reset(row)
        record.mark_in_storage()

    # -- writes -------------------------------------------------------------

    def add(self, record: Record) -> None:
        """Insert a new record and rebase it on the inserted values."""
        self._check_record(record)
        if record.in_storage:
            raise RecordStateError(f"{self.schema.table} record is already stored")

        policy = self.schema.locking
        snapshot = record.state.snapshot()
        try:
            if (
                policy.strategy is LockingStrategy.VERSION
                and record.get_column(policy.version_column) is None
            ):
                record.set_column(policy.version_column, 1)
            self._writer().insert(self.schema.table, record.get_columns())
        except Exception:
            record.state.restore(snapshot)
            raise

        record.state.clear_session_state()
        record.mark_in_storage()
        logger.debug("Inserted %s %r", self.schema.table, record.identity())

    def save(self, record: Record, changes: Mapping[str, Any] | None = None) -> bool:
        """
        Write *record*'s changes under its locking policy.

        Args:
            record: A stored record of this repository's schema.
            changes: Optional column values applied before the plan is made.

        Returns:
            ``False`` if nothing changed (no backend call), ``True`` on success.

        Raises:
            ConflictError: The predicate matched no row.
            InvariantViolationError: The backend reported a row count other
                than 0 or 1.
            RecordStateError: The record was never stored.
        """
        self._check_record(record)
        if not record.in_storage:
            raise RecordStateError(
                f"{self.schema.table} record is not stored; add() it first"
            )

        snapshot = record.state.snapshot()
        try:
            if changes:
                record.set_columns(changes)

            plan = self.schema.locking.compute_update_plan(record)
            if plan is None:
                logger.debug("Skipping update of unchanged %s", self.schema.table)
                return False

            logger.debug(
                "Updating %s %r",
                plan.table,
                dict(plan.identity),
                extra={
                    "table": plan.table,
                    "strategy": plan.strategy.value,
                    "columns": list(plan.values),
                    "guard_columns": list(plan.guard_columns),
                },
            )
            rows = self._backend.execute_conditional_update(
                plan.table, plan.values, plan.predicate
            )

            if rows == 0:
                logger.warning(
                    "Optimistic locking conflict on %s %r",
                    plan.table,
                    dict(plan.identity),
                    extra={"table": plan.table, "strategy": plan.strategy.value},
                )
                raise ConflictError(
                    plan.table, plan.identity, plan.predicate, plan.values
                )
            if rows != 1:
                logger.error(
                    "Update of %s %r matched %d rows",
                    plan.table,
                    dict(plan.identity),
                    rows,
                )
                raise InvariantViolationError(plan.table, plan.identity, rows)
        except Exception:
            record.state.restore(snapshot)
            raise

        record.state.clear_session_state()
        logger.info(
            "Updated %s %r",
            plan.table,
            dict(plan.identity),
            extra={"table": plan.table, "strategy": plan.strategy.value},
        )
        return True
