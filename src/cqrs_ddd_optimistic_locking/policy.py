"""LockingPolicy — per-record-type optimistic locking configuration and planner."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, field_validator

from .exceptions import ConfigurationError
from .plan import UpdatePlan
from .strategy import LockingStrategy, validate_strategy

if TYPE_CHECKING:
    from .record import Record


class LockingPolicy(BaseModel):
    """
    Immutable optimistic locking configuration, shared by every record of a type.

    Attributes:
        strategy: Which columns guard an update (see :class:`LockingStrategy`).
        ignored_columns: Columns never used for conflict detection. With the
            ``version`` strategy, changing only these columns does not bump
            the version.
        version_column: Counter column used by the ``version`` strategy.

    An unknown strategy raises :class:`ConfigurationError` at construction::

        policy = LockingPolicy(strategy="version", ignored_columns=["updated_at"])
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    strategy: LockingStrategy = LockingStrategy.DIRTY
    ignored_columns: tuple[str, ...] = ()
    version_column: str = "version"

    @field_validator("strategy", mode="before")
    @classmethod
    def _check_strategy(cls, value: Any) -> LockingStrategy:
        return validate_strategy(value)

    @field_validator("ignored_columns", mode="before")
    @classmethod
    def _normalise_ignored(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,)
        return value

    @field_validator("version_column")
    @classmethod
    def _check_version_column(cls, value: str) -> str:
        if not value:
            raise ConfigurationError("optimistic locking version column must be named")
        return value

    def is_ignored(self, column: str) -> bool:
        return column in self.ignored_columns

    def compute_update_plan(self, record: Record) -> UpdatePlan | None:
        """
        Plan the conditional update for *record*, or return ``None`` for a no-op.

        For the ``version`` strategy this bumps the record's version column
        (registering it as changed) when any non-ignored column is dirty.
        The returned plan is frozen; recomputing it later is never needed.
        """
        state = record.state
        if not state.is_changed():
            return None

        if self.strategy is LockingStrategy.VERSION:
            self._bump_version(record)
            if not state.is_changed():
                return None

        schema = record.schema
        identity = {pk: state.get_original_value(pk) for pk in schema.primary_key}
        values = {pk: state.get_field(pk) for pk in schema.primary_key}
        values.update(state.get_dirty_columns())

        predicate = dict(identity)
        for column, value in self._guard_conditions(record).items():
            predicate.setdefault(column, value)

        return UpdatePlan(
            table=schema.table,
            strategy=self.strategy,
            identity=identity,
            values=values,
            predicate=predicate,
        )

    def _bump_version(self, record: Record) -> None:
        state = record.state
        significant = [
            c for c in state.get_changed_columns() if not self.is_ignored(c)
        ]
        persisted = state.get_original_value(self.version_column)
        if significant:
            state.set_field(self.version_column, (persisted or 0) + 1)
        else:
            # the version is never caller-controlled
            state.discard_field(self.version_column)

    def _guard_conditions(self, record: Record) -> dict[str, Any]:
        state = record.state
        if self.strategy is LockingStrategy.DIRTY:
            originals = state.get_captured_originals()
        elif self.strategy is LockingStrategy.ALL:
            originals = state.get_original_values()
        elif self.strategy is LockingStrategy.VERSION:
            return {
                self.version_column: state.get_original_value(self.version_column)
            }
        else:
            return {}
        return {c: v for c, v in originals.items() if not self.is_ignored(c)}
