"""Per-record edit-session state: current values, changed columns, originals."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


@dataclass(frozen=True)
class StateSnapshot:
    """Point-in-time copy of a :class:`RecordState`, used to undo a failed save."""

    current: dict[str, Any]
    changed: tuple[str, ...]
    originals: dict[str, Any] = field(default_factory=dict)


class RecordState:
    """
    Tracks one record's values across field-level mutations.

    The first time a column is set in an edit session, the value it held
    before that mutation is captured as its *original*. Later mutations of
    the same column leave the captured original alone, so the original
    always reflects the state last known to be persisted.

    A column has a captured original if and only if it is changed.
    """

    __slots__ = ("_changed", "_current", "_originals")

    def __init__(
        self,
        columns: Iterable[str],
        values: Mapping[str, Any] | None = None,
    ) -> None:
        values = values or {}
        self._current: dict[str, Any] = {c: values.get(c) for c in columns}
        # insertion-ordered set of changed columns
        self._changed: dict[str, None] = {}
        self._originals: dict[str, Any] = {}

    def __repr__(self) -> str:
        return (
            f"RecordState(current={self._current!r}, "
            f"changed={list(self._changed)!r})"
        )

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(self._current)

    def get_field(self, name: str) -> Any:
        return self._current[name]

    def get_fields(self) -> dict[str, Any]:
        return dict(self._current)

    def set_field(self, name: str, value: Any) -> None:
        """Set *name* to *value*, capturing the pre-mutation value on first change."""
        if name not in self._changed:
            self._originals[name] = self._current.get(name)
            self._changed[name] = None
        self._current[name] = value

    def discard_field(self, name: str) -> None:
        """Revert *name* to its captured original and stop tracking it as changed."""
        if name in self._changed:
            self._current[name] = self._originals.pop(name)
            del self._changed[name]

    def is_changed(self) -> bool:
        return bool(self._changed)

    def is_field_changed(self, name: str) -> bool:
        return name in self._changed

    def get_changed_columns(self) -> tuple[str, ...]:
        return tuple(self._changed)

    def get_dirty_columns(self) -> dict[str, Any]:
        """Changed columns paired with their current values."""
        return {name: self._current[name] for name in self._changed}

    def get_original_value(self, name: str) -> Any:
        """Captured original of *name*, or its current value if unchanged."""
        if name in self._originals:
            return self._originals[name]
        return self._current[name]

    def get_original_values(self) -> dict[str, Any]:
        """Every column at its last-persisted value."""
        return {**self._current, **self._originals}

    def get_captured_originals(self) -> dict[str, Any]:
        """Originals captured in this session, keyed by changed column."""
        return dict(self._originals)

    def clear_session_state(self) -> None:
        """Forget changes and originals; current values become the new baseline."""
        self._changed.clear()
        self._originals.clear()

    def reset(self, values: Mapping[str, Any]) -> None:
        """Replace every current value and start a fresh session."""
        self._current = {c: values.get(c) for c in self._current}
        self.clear_session_state()

    def snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            current=dict(self._current),
            changed=tuple(self._changed),
            originals=dict(self._originals),
        )

    def restore(self, snapshot: StateSnapshot) -> None:
        self._current = dict(snapshot.current)
        self._changed = dict.fromkeys(snapshot.changed)
        self._originals = dict(snapshot.originals)
