"""
tests/test_migrations.py
Tests for tracks.migrations (MigrationRunner) against a temporary SQLite
database.

Tests cover:
- apply / revert step counts and ordering
- Idempotence of a fully applied set
- Batch failure semantics for apply and revert
- Order violations between applied and pending migrations
- reset and constructor preconditions
"""

from __future__ import annotations

import logging
import pathlib

import pytest
from sqlalchemy.engine import Engine

from tracks.errors import (
    MigrationBatchError,
    MigrationError,
    MigrationOrderError,
    MigrationsDirectoryError,
    NotConnectedError,
    RollbackError,
    UnsupportedDriverError,
)
from tracks.migrations import MigrationRunner, migrations_dir
from tracks.models import DatabaseDriver, MigrationDirection

ALL = ["001_create_users.sql", "002_create_posts.sql", "003_index_posts.sql"]


def _applied(runner: MigrationRunner):
    return [record.name for record in runner.status() if record.applied]


def _tables(engine: Engine):
    with engine.connect() as conn:
        rows = conn.exec_driver_sql("SELECT name FROM sqlite_master WHERE type = 'table'")
        return {row[0] for row in rows}


# ===========================================================================
# apply
# ===========================================================================


class TestApply:

    def test_apply_all(self, runner: MigrationRunner) -> None:
        result = runner.apply()
        assert result.direction is MigrationDirection.UP
        assert result.names == ALL
        assert all(record.applied and record.applied_at is not None for record in result.records)
        assert _applied(runner) == ALL

    def test_apply_steps(self, runner: MigrationRunner) -> None:
        assert runner.apply(2).names == ALL[:2]
        assert [record.name for record in runner.pending()] == ALL[2:]
        assert runner.apply(5).names == ALL[2:]

    @pytest.mark.parametrize("steps", [0, -3])
    def test_non_positive_steps_apply_everything(self, runner: MigrationRunner, steps: int) -> None:
        assert len(runner.apply(steps)) == 3

    def test_apply_is_idempotent(self, runner: MigrationRunner) -> None:
        runner.apply()
        before = runner.status()
        result = runner.apply()
        assert len(result) == 0
        assert [(r.version, r.applied) for r in runner.status()] == [
            (r.version, r.applied) for r in before
        ]

    def test_failure_mid_batch_keeps_earlier_steps(
        self, sqlite_engine: Engine, migrations_path: pathlib.Path, write_migration
    ) -> None:
        write_migration(
            migrations_path,
            "004_broken.sql",
            "INSERT INTO missing_table VALUES (1);",
            "SELECT 1;",
        )
        runner = MigrationRunner(sqlite_engine, "sqlite3", migrations_path)

        with pytest.raises(MigrationBatchError) as info:
            runner.apply()
        assert info.value.result.names == ALL
        assert isinstance(info.value.__cause__, MigrationError)
        assert _applied(runner) == ALL
        assert [record.name for record in runner.pending()] == ["004_broken.sql"]

    def test_failed_migration_rolls_back_its_ddl(
        self, sqlite_engine: Engine, migrations_path: pathlib.Path, write_migration
    ) -> None:
        path = write_migration(
            migrations_path,
            "004_half.sql",
            """
            CREATE TABLE half (id INTEGER);
            INSERT INTO missing_table VALUES (1);
            """,
            "DROP TABLE half;",
        )
        runner = MigrationRunner(sqlite_engine, "sqlite3", migrations_path)
        with pytest.raises(MigrationBatchError):
            runner.apply()
        assert "half" not in _tables(sqlite_engine)

        write_migration(migrations_path, path.name, "CREATE TABLE half (id INTEGER);", "DROP TABLE half;")
        runner = MigrationRunner(sqlite_engine, "sqlite3", migrations_path)
        assert runner.apply().names == ["004_half.sql"]
        assert "half" in _tables(sqlite_engine)


# ===========================================================================
# revert
# ===========================================================================


class TestRevert:

    def test_revert_one_removes_highest(self, runner: MigrationRunner) -> None:
        runner.apply()
        result = runner.revert(1)
        assert result.direction is MigrationDirection.DOWN
        assert result.names == ["003_index_posts.sql"]
        assert result.records[0].applied is False
        assert _applied(runner) == ALL[:2]

    @pytest.mark.parametrize("steps", [0, -1])
    def test_non_positive_steps_revert_one(self, runner: MigrationRunner, steps: int) -> None:
        runner.apply()
        assert len(runner.revert(steps)) == 1

    def test_revert_is_newest_first(self, runner: MigrationRunner) -> None:
        runner.apply()
        assert runner.revert(10).names == list(reversed(ALL))
        assert _applied(runner) == []

    def test_revert_with_nothing_applied(self, runner: MigrationRunner) -> None:
        result = runner.revert()
        assert len(result) == 0
        assert result.interrupted_by is None

    def test_first_step_failure_raises(
        self, sqlite_engine: Engine, tmp_path: pathlib.Path, write_migration
    ) -> None:
        directory = tmp_path / "strict"
        directory.mkdir()
        write_migration(directory, "001_a.sql", "CREATE TABLE a (id INTEGER);", "DROP TABLE a;")
        write_migration(directory, "002_b.sql", "CREATE TABLE b (id INTEGER);", "DROP TABLE nonexistent_table;")
        runner = MigrationRunner(sqlite_engine, "sqlite3", directory)
        runner.apply()

        with pytest.raises(RollbackError):
            runner.revert(2)
        assert _applied(runner) == ["001_a.sql", "002_b.sql"]

    def test_failed_revert_keeps_dropped_tables(
        self, sqlite_engine: Engine, tmp_path: pathlib.Path, write_migration
    ) -> None:
        directory = tmp_path / "atomic"
        directory.mkdir()
        write_migration(
            directory,
            "001_a.sql",
            "CREATE TABLE a (id INTEGER);",
            """
            DROP TABLE a;
            DROP TABLE nonexistent_table;
            """,
        )
        runner = MigrationRunner(sqlite_engine, "sqlite3", directory)
        runner.apply()

        with pytest.raises(RollbackError):
            runner.revert()
        assert "a" in _tables(sqlite_engine)
        assert _applied(runner) == ["001_a.sql"]

    def test_later_failure_returns_partial_result(
        self, sqlite_engine: Engine, tmp_path: pathlib.Path, write_migration
    ) -> None:
        directory = tmp_path / "partial"
        directory.mkdir()
        write_migration(directory, "001_a.sql", "CREATE TABLE a (id INTEGER);", "DROP TABLE nonexistent_table;")
        write_migration(directory, "002_b.sql", "CREATE TABLE b (id INTEGER);", "DROP TABLE b;")
        write_migration(directory, "003_c.sql", "CREATE TABLE c (id INTEGER);", "DROP TABLE c;")
        runner = MigrationRunner(sqlite_engine, "sqlite3", directory)
        runner.apply()

        result = runner.revert(3)
        assert result.names == ["003_c.sql", "002_b.sql"]
        assert isinstance(result.interrupted_by, MigrationError)
        assert _applied(runner) == ["001_a.sql"]


# ===========================================================================
# status / ordering
# ===========================================================================


class TestStatus:

    def test_status_is_ascending_and_complete(self, runner: MigrationRunner) -> None:
        runner.apply(1)
        records = runner.status()
        assert [r.version for r in records] == [1, 2, 3]
        assert [r.applied for r in records] == [True, False, False]
        assert records[0].applied_at is not None
        assert records[1].applied_at is None

    def test_status_reflects_external_changes(
        self, runner: MigrationRunner, sqlite_engine: Engine
    ) -> None:
        runner.apply()
        with sqlite_engine.begin() as conn:
            conn.exec_driver_sql("DELETE FROM goose_db_version WHERE version_id = 3")
        assert _applied(runner) == ALL[:2]

    def test_order_violation(
        self,
        runner: MigrationRunner,
        sqlite_engine: Engine,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        runner.apply()
        with sqlite_engine.begin() as conn:
            conn.exec_driver_sql("DELETE FROM goose_db_version WHERE version_id = 2")

        with caplog.at_level(logging.WARNING, logger="tracks.migrations"):
            records = runner.status()
        assert [r.applied for r in records] == [True, False, True]
        assert any("order violation" in r.message for r in caplog.records)

        with pytest.raises(MigrationOrderError):
            runner.apply()
        with pytest.raises(MigrationOrderError):
            runner.revert()
        with pytest.raises(MigrationOrderError):
            runner.pending()


# ===========================================================================
# reset
# ===========================================================================


class TestReset:

    def test_reset_reverts_then_reapplies(self, runner: MigrationRunner) -> None:
        runner.apply(2)
        reverted, applied = runner.reset()
        assert reverted.names == ["002_create_posts.sql", "001_create_users.sql"]
        assert applied.names == ALL
        assert _applied(runner) == ALL

    def test_reset_on_fresh_database(self, runner: MigrationRunner) -> None:
        reverted, applied = runner.reset()
        assert len(reverted) == 0
        assert applied.names == ALL

    def test_reset_stops_when_revert_is_interrupted(
        self, sqlite_engine: Engine, tmp_path: pathlib.Path, write_migration
    ) -> None:
        directory = tmp_path / "reset"
        directory.mkdir()
        write_migration(directory, "001_a.sql", "CREATE TABLE a (id INTEGER);", "DROP TABLE nonexistent_table;")
        write_migration(directory, "002_b.sql", "CREATE TABLE b (id INTEGER);", "DROP TABLE b;")
        runner = MigrationRunner(sqlite_engine, "sqlite3", directory)
        runner.apply()

        with pytest.raises(MigrationBatchError) as info:
            runner.reset()
        assert info.value.result.names == ["002_b.sql"]
        assert _applied(runner) == ["001_a.sql"]


# ===========================================================================
# Construction
# ===========================================================================


class TestConstruction:

    def test_engine_is_required(self, migrations_path: pathlib.Path) -> None:
        with pytest.raises(NotConnectedError):
            MigrationRunner(None, "sqlite3", migrations_path)

    def test_unknown_driver(self, sqlite_engine: Engine, migrations_path: pathlib.Path) -> None:
        with pytest.raises(UnsupportedDriverError):
            MigrationRunner(sqlite_engine, "mysql", migrations_path)

    def test_driver_must_match_engine(self, sqlite_engine: Engine, migrations_path: pathlib.Path) -> None:
        with pytest.raises(UnsupportedDriverError):
            MigrationRunner(sqlite_engine, "postgres", migrations_path)

    def test_libsql_driver_uses_sqlite_dialect(
        self, sqlite_engine: Engine, migrations_path: pathlib.Path
    ) -> None:
        runner = MigrationRunner(sqlite_engine, DatabaseDriver.GO_LIBSQL, migrations_path)
        assert len(runner.apply()) == 3

    def test_missing_directory(self, sqlite_engine: Engine, tmp_path: pathlib.Path) -> None:
        with pytest.raises(MigrationsDirectoryError) as info:
            MigrationRunner(sqlite_engine, "sqlite3", tmp_path / "nope")
        assert "migrations directory not found" in str(info.value)

    def test_path_is_a_file(self, sqlite_engine: Engine, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "migrations.sql"
        path.write_text("")
        with pytest.raises(MigrationsDirectoryError) as info:
            MigrationRunner(sqlite_engine, "sqlite3", path)
        assert "not a directory" in str(info.value)

    @pytest.mark.parametrize(
        "driver, folder",
        [("go-libsql", "sqlite"), ("sqlite3", "sqlite"), ("postgres", "postgres")],
    )
    def test_migrations_dir(self, tmp_path: pathlib.Path, driver: str, folder: str) -> None:
        assert migrations_dir(tmp_path, DatabaseDriver(driver)) == (
            tmp_path / "internal" / "db" / "migrations" / folder
        )
