"""The frozen result of planning a conditional update."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .strategy import LockingStrategy


def _freeze(mapping: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class UpdatePlan:
    """
    Columns to write and the predicate guarding the write.

    ``predicate`` always contains the primary key at its persisted values
    (``identity``) plus the strategy-specific conflict-detection columns.
    All three mappings are read-only copies: once planned, a save attempt
    commits to this exact predicate even if the record changes afterwards.
    """

    table: str
    strategy: LockingStrategy
    identity: Mapping[str, Any] = field(default_factory=dict)
    values: Mapping[str, Any] = field(default_factory=dict)
    predicate: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "identity", _freeze(self.identity))
        object.__setattr__(self, "values", _freeze(self.values))
        object.__setattr__(self, "predicate", _freeze(self.predicate))

    @property
    def guard_columns(self) -> tuple[str, ...]:
        """Predicate columns beyond the primary key."""
        return tuple(c for c in self.predicate if c not in self.identity)
