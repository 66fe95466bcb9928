"""Shared fixtures for optimistic locking tests."""

from __future__ import annotations

import pytest
from factories import ROW, make_schema

from cqrs_ddd_optimistic_locking import InMemoryBackend, OptimisticRepository


@pytest.fixture
def backend() -> InMemoryBackend:
    return InMemoryBackend()


@pytest.fixture(params=["dirty", "version", "all", "none"])
def strategy(request: pytest.FixtureRequest) -> str:
    return str(request.param)


@pytest.fixture
def seeded(backend: InMemoryBackend, strategy: str) -> OptimisticRepository:
    """Repository over an in-memory table holding row id=1."""
    schema = make_schema(strategy)
    backend.create_table(schema.table, schema.primary_key)
    backend.insert(schema.table, ROW)
    return OptimisticRepository(schema, backend)
