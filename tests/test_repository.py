"""Tests for OptimisticRepository save semantics over the in-memory backend."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

import pytest
from factories import ROW, loaded, make_schema

from cqrs_ddd_optimistic_locking import (
    BackendError,
    ConflictError,
    InMemoryBackend,
    InvariantViolationError,
    OptimisticRepository,
    Record,
    RecordNotFoundError,
    RecordStateError,
)

if TYPE_CHECKING:
    from collections.abc import Mapping


class StubBackend:
    """Returns a fixed row count and records what it was asked to do."""

    def __init__(self, rows: int = 1, error: Exception | None = None) -> None:
        self.rows = rows
        self.error = error
        self.calls: list[tuple[str, dict[str, Any], dict[str, Any]]] = []

    def execute_conditional_update(
        self,
        table: str,
        values: Mapping[str, Any],
        predicate: Mapping[str, Any],
    ) -> int:
        self.calls.append((table, dict(values), dict(predicate)))
        if self.error is not None:
            raise self.error
        return self.rows


def _concurrent_write(repo: OptimisticRepository, **changes: Any) -> None:
    """Another client loads row 1 and saves *changes*."""
    other = repo.get(1)
    assert other is not None
    repo.save(other, changes)


class TestSave:
    def test_scenario_second_writer_conflicts(self, strategy: str) -> None:
        backend = InMemoryBackend()
        schema = make_schema(strategy)
        backend.create_table(schema.table, schema.primary_key)
        backend.insert(schema.table, ROW)
        repo = OptimisticRepository(schema, backend)

        order = repo.get(1)
        other_order = repo.get(1)
        assert order is not None
        assert other_order is not None
        order["col1"] = "fraud review"
        other_order["col1"] = "processed"

        assert repo.save(order) is True
        if strategy == "none":
            assert repo.save(other_order) is True
        else:
            with pytest.raises(ConflictError):
                repo.save(other_order)

    def test_dirty_end_to_end(self, backend: InMemoryBackend) -> None:
        schema = make_schema("dirty")
        backend.create_table(schema.table, schema.primary_key)
        backend.insert(schema.table, {**ROW, "col1": "A", "col2": "B"})
        repo = OptimisticRepository(schema, backend)
        record = repo.get(1)
        assert record is not None

        record["col1"] = "X"

        assert repo.save(record) is True
        assert backend.rows(schema.table)[0]["col1"] == "X"

    def test_dirty_conflict_when_guarded_column_changed(
        self, backend: InMemoryBackend
    ) -> None:
        schema = make_schema("dirty")
        backend.create_table(schema.table, schema.primary_key)
        backend.insert(schema.table, {**ROW, "col1": "A"})
        repo = OptimisticRepository(schema, backend)
        record = repo.get(1)
        assert record is not None
        record["col1"] = "X"

        _concurrent_write(repo, col1="C")

        with pytest.raises(ConflictError) as excinfo:
            repo.save(record)
        assert dict(excinfo.value.predicate) == {"id": 1, "col1": "A"}
        assert dict(excinfo.value.values) == {"id": 1, "col1": "X"}
        assert excinfo.value.table == "test_dirty"

    def test_dirty_ignores_concurrent_change_to_other_column(
        self, backend: InMemoryBackend
    ) -> None:
        schema = make_schema("dirty")
        backend.create_table(schema.table, schema.primary_key)
        backend.insert(schema.table, ROW)
        repo = OptimisticRepository(schema, backend)
        record = repo.get(1)
        assert record is not None
        record["col1"] = "X"

        _concurrent_write(repo, col2="other")

        assert repo.save(record) is True

    def test_all_conflicts_on_any_concurrent_change(
        self, backend: InMemoryBackend
    ) -> None:
        schema = make_schema("all")
        backend.create_table(schema.table, schema.primary_key)
        backend.insert(schema.table, ROW)
        repo = OptimisticRepository(schema, backend)
        record = repo.get(1)
        assert record is not None
        record["col1"] = "X"

        _concurrent_write(repo, col3="other")

        with pytest.raises(ConflictError):
            repo.save(record)

    def test_version_end_to_end(self, backend: InMemoryBackend) -> None:
        schema = make_schema("version")
        backend.create_table(schema.table, schema.primary_key)
        backend.insert(schema.table, ROW)
        repo = OptimisticRepository(schema, backend)
        record = repo.get(1)
        assert record is not None

        record["col1"] = "X"
        repo.save(record)

        assert record["version"] == 6
        assert backend.rows(schema.table)[0]["version"] == 6
        record["col2"] = "Y"
        repo.save(record)
        assert backend.rows(schema.table)[0]["version"] == 7

    def test_version_conflict_after_concurrent_bump(
        self, backend: InMemoryBackend
    ) -> None:
        schema = make_schema("version")
        backend.create_table(schema.table, schema.primary_key)
        backend.insert(schema.table, ROW)
        repo = OptimisticRepository(schema, backend)
        record = repo.get(1)
        assert record is not None
        record["col2"] = "X"

        _concurrent_write(repo, col1="other")

        with pytest.raises(ConflictError) as excinfo:
            repo.save(record)
        assert excinfo.value.predicate["version"] == 5

    def test_none_overwrites_concurrent_change(
        self, backend: InMemoryBackend
    ) -> None:
        schema = make_schema("none")
        backend.create_table(schema.table, schema.primary_key)
        backend.insert(schema.table, ROW)
        repo = OptimisticRepository(schema, backend)
        record = repo.get(1)
        assert record is not None
        record["col1"] = "mine"

        _concurrent_write(repo, col1="theirs")

        assert repo.save(record) is True
        assert backend.rows(schema.table)[0]["col1"] == "mine"

    def test_deleted_row_conflicts(self) -> None:
        backend = StubBackend(rows=0)
        repo = OptimisticRepository(make_schema(), backend)
        record = loaded(repo.schema)
        record["col1"] = "X"

        with pytest.raises(ConflictError):
            repo.save(record)

    def test_no_op_save_skips_backend(
        self, seeded: OptimisticRepository, backend: InMemoryBackend
    ) -> None:
        record = seeded.get(1)
        assert record is not None

        assert seeded.save(record) is False
        assert backend.calls == 0

    def test_save_applies_changes_first(self) -> None:
        backend = StubBackend()
        repo = OptimisticRepository(make_schema(), backend)
        record = loaded(repo.schema)

        repo.save(record, {"col1": "X"})

        assert backend.calls == [
            ("test_dirty", {"id": 1, "col1": "X"}, {"id": 1, "col1": "a"})
        ]
        assert record["col1"] == "X"

    def test_success_rebases_record(self, seeded: OptimisticRepository) -> None:
        record = seeded.get(1)
        assert record is not None
        record.set_columns({"col1": "X", "col3": "Z"})

        seeded.save(record)

        assert record.is_changed() is False
        assert record.get_original_columns() == record.get_columns()

    def test_conflict_leaves_state_untouched(
        self, seeded: OptimisticRepository, backend: InMemoryBackend, strategy: str
    ) -> None:
        record = seeded.get(1)
        assert record is not None
        record["col1"] = "X"
        record["col1"] = "Y"
        before = record.state.snapshot()

        if strategy == "none":
            # the key alone is guarded, so only a vanished row conflicts
            backend.clear()
        else:
            _concurrent_write(seeded, col1="theirs")

        with pytest.raises(ConflictError):
            seeded.save(record, {"col2": "Z"})
        assert record.state.snapshot() == before
        assert record["version"] == 5

    def test_multiple_rows_is_invariant_violation(self) -> None:
        backend = StubBackend(rows=2)
        repo = OptimisticRepository(make_schema("version"), backend)
        record = loaded(repo.schema)
        record["col1"] = "X"

        with pytest.raises(InvariantViolationError) as excinfo:
            repo.save(record)

        assert excinfo.value.rows_affected == 2
        assert not isinstance(excinfo.value, ConflictError)
        assert record.is_column_changed("version") is False

    def test_negative_row_count_is_invariant_violation(self) -> None:
        backend = StubBackend(rows=-1)
        repo = OptimisticRepository(make_schema("version"), backend)
        record = loaded(repo.schema)
        record["col1"] = "X"

        with pytest.raises(InvariantViolationError) as excinfo:
            repo.save(record)

        assert excinfo.value.rows_affected == -1
        assert record.get_dirty_columns() == {"col1": "X"}
        assert record["version"] == 5

    def test_key_change_onto_existing_row_rejected(
        self, backend: InMemoryBackend
    ) -> None:
        schema = make_schema("none")
        backend.create_table(schema.table, schema.primary_key)
        backend.insert(schema.table, ROW)
        backend.insert(schema.table, {**ROW, "id": 2, "col1": "second"})
        repo = OptimisticRepository(schema, backend)
        record = repo.get(1)
        assert record is not None
        record["id"] = 2

        with pytest.raises(BackendError, match="duplicate key"):
            repo.save(record)

        assert sorted(backend.rows(schema.table), key=lambda r: r["id"]) == [
            ROW,
            {**ROW, "id": 2, "col1": "second"},
        ]
        assert record["id"] == 2
        assert record.identity() == {"id": 1}
        assert record.get_dirty_columns() == {"id": 2}

    def test_backend_error_passes_through(self) -> None:
        error = BackendError("connection lost")
        backend = StubBackend(error=error)
        repo = OptimisticRepository(make_schema(), backend)
        record = loaded(repo.schema)
        record["col1"] = "X"

        with pytest.raises(BackendError) as excinfo:
            repo.save(record)

        assert excinfo.value is error
        assert record.get_dirty_columns() == {"col1": "X"}

    def test_unstored_record_rejected(self) -> None:
        repo = OptimisticRepository(make_schema(), StubBackend())
        record = Record(repo.schema, {"id": 1})
        record["col1"] = "X"

        with pytest.raises(RecordStateError, match="add"):
            repo.save(record)

    def test_foreign_record_rejected(self) -> None:
        repo = OptimisticRepository(make_schema(), StubBackend())
        record = loaded(make_schema("all"))

        with pytest.raises(RecordStateError):
            repo.save(record)


class TestLoadAndInsert:
    def test_backend_must_support_conditional_update(self) -> None:
        with pytest.raises(TypeError):
            OptimisticRepository(make_schema(), object())  # type: ignore[arg-type]

    def test_get_requires_reader(self) -> None:
        repo = OptimisticRepository(make_schema(), StubBackend())

        with pytest.raises(TypeError, match="cannot fetch"):
            repo.get(1)

    def test_get_missing_returns_none(self, seeded: OptimisticRepository) -> None:
        assert seeded.get(404) is None

    def test_get_loads_stored_record(self, seeded: OptimisticRepository) -> None:
        record = seeded.get(1)

        assert record is not None
        assert record.in_storage is True
        assert record.get_columns() == ROW
        assert record.is_changed() is False

    def test_add_inserts_and_rebases(self, backend: InMemoryBackend) -> None:
        schema = make_schema("dirty")
        backend.create_table(schema.table, schema.primary_key)
        repo = OptimisticRepository(schema, backend)
        record = repo.create({"id": 2})
        record["col1"] = "new"

        repo.add(record)

        assert record.in_storage is True
        assert record.is_changed() is False
        assert backend.rows(schema.table) == [
            {"id": 2, "col1": "new", "col2": None, "col3": None, "version": None}
        ]

    def test_add_initialises_version(self, backend: InMemoryBackend) -> None:
        schema = make_schema("version")
        backend.create_table(schema.table, schema.primary_key)
        repo = OptimisticRepository(schema, backend)
        record = repo.create({"id": 2, "col1": "new"})

        repo.add(record)

        assert record["version"] == 1
        stored = repo.get(2)
        assert stored is not None
        assert stored["version"] == 1

    def test_add_duplicate_key_restores_state(
        self, seeded: OptimisticRepository
    ) -> None:
        record = seeded.create({"id": 1})

        with pytest.raises(BackendError, match="duplicate"):
            seeded.add(record)

        assert record.in_storage is False
        assert record.is_changed() is False

    def test_add_twice_rejected(self, seeded: OptimisticRepository) -> None:
        record = seeded.get(1)
        assert record is not None

        with pytest.raises(RecordStateError):
            seeded.add(record)

    def test_refresh_after_conflict_then_reapply(
        self, seeded: OptimisticRepository, strategy: str
    ) -> None:
        if strategy == "none":
            pytest.skip("no conflicts without guard columns")
        record = seeded.get(1)
        assert record is not None
        record["col1"] = "mine"
        _concurrent_write(seeded, col1="theirs")
        with pytest.raises(ConflictError):
            seeded.save(record)

        seeded.refresh(record)
        assert record["col1"] == "theirs"
        assert record.is_changed() is False

        assert seeded.save(record, {"col1": "mine"}) is True

    def test_refresh_missing_row(self) -> None:
        backend = InMemoryBackend()
        schema = make_schema()
        backend.create_table(schema.table, schema.primary_key)
        repo = OptimisticRepository(schema, backend)

        with pytest.raises(RecordNotFoundError):
            repo.refresh(loaded(schema))


class TestConcurrentWriters:
    def test_exactly_one_of_many_writers_wins(self) -> None:
        """Writers racing on the same version: one saves, the rest conflict."""
        backend = InMemoryBackend()
        schema = make_schema("version")
        backend.create_table(schema.table, schema.primary_key)
        backend.insert(schema.table, ROW)
        repo = OptimisticRepository(schema, backend)
        records = [repo.get(1) for _ in range(8)]
        barrier = threading.Barrier(len(records))
        outcomes: list[str] = []
        lock = threading.Lock()

        def write(index: int) -> None:
            record = records[index]
            assert record is not None
            record["col1"] = f"writer-{index}"
            barrier.wait()
            try:
                repo.save(record)
                result = "saved"
            except ConflictError:
                result = "conflict"
            with lock:
                outcomes.append(result)

        threads = [
            threading.Thread(target=write, args=(i,)) for i in range(len(records))
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("saved") == 1
        assert outcomes.count("conflict") == len(records) - 1
        assert backend.rows(schema.table)[0]["version"] == 6
