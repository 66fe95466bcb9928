"""Optimistic locking for row-oriented records."""

from __future__ import annotations

from .adapters import InMemoryBackend, SQLAlchemyBackend
from .exceptions import (
    BackendError,
    ConcurrencyError,
    ConfigurationError,
    ConflictError,
    InvariantViolationError,
    OptimisticLockingError,
    PersistenceError,
    RecordNotFoundError,
    RecordStateError,
    UnknownColumnError,
)
from .plan import UpdatePlan
from .policy import LockingPolicy
from .ports import IConditionalUpdateBackend, IRowReader, IRowWriter
from .record import Record
from .repository import OptimisticRepository
from .schema import RecordSchema
from .state import RecordState, StateSnapshot
from .strategy import LockingStrategy, validate_strategy

__all__ = [
    # Core
    "LockingPolicy",
    "LockingStrategy",
    "Record",
    "RecordSchema",
    "RecordState",
    "StateSnapshot",
    "UpdatePlan",
    "validate_strategy",
    # Persistence
    "OptimisticRepository",
    "IConditionalUpdateBackend",
    "IRowReader",
    "IRowWriter",
    "InMemoryBackend",
    "SQLAlchemyBackend",
    # Exceptions
    "OptimisticLockingError",
    "ConfigurationError",
    "ConcurrencyError",
    "ConflictError",
    "InvariantViolationError",
    "PersistenceError",
    "BackendError",
    "RecordNotFoundError",
    "RecordStateError",
    "UnknownColumnError",
]
