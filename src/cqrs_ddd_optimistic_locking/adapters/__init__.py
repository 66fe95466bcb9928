"""Persistence backends."""

from __future__ import annotations

from .memory import InMemoryBackend
from .sqlalchemy import SQLAlchemyBackend

__all__ = ["InMemoryBackend", "SQLAlchemyBackend"]
