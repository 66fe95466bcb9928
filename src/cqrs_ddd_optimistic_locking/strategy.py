"""Optimistic locking strategies."""

from __future__ import annotations

from enum import Enum
from typing import Any

from .exceptions import ConfigurationError


class LockingStrategy(str, Enum):
    """Selects which columns guard an ``UPDATE`` against lost updates.

    - ``DIRTY``: the original values of every changed column.
    - ``VERSION``: a counter column, incremented on each update.
    - ``ALL``: every declared column, changed or not.
    - ``NONE``: the primary key only.
    """

    DIRTY = "dirty"
    VERSION = "version"
    ALL = "all"
    NONE = "none"

    def __str__(self) -> str:
        return self.value


def validate_strategy(value: Any) -> LockingStrategy:
    """Return the :class:`LockingStrategy` for *value*.

    Raises:
        ConfigurationError: If *value* is not a recognised strategy.
    """
    if isinstance(value, LockingStrategy):
        return value
    try:
        return LockingStrategy(value)
    except ValueError:
        allowed = ", ".join(s.value for s in LockingStrategy)
        raise ConfigurationError(
            f"invalid optimistic locking strategy {value!r} "
            f"(expected one of: {allowed})"
        ) from None
