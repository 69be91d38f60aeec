"""
tests/conftest.py
Shared fixtures for the tracks test suite.

Real file I/O is performed inside temporary directories managed by pytest's
tmp_path fixture; migrations run against a temporary SQLite database file.
"""

from __future__ import annotations

import logging
import pathlib
import textwrap
from datetime import datetime, timezone
from typing import Callable, Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from tracks.migrations import MigrationRunner
from tracks.models import ProjectDescriptor, TemplateContext
from tracks.templates import TemplateRenderer
from tracks.validators import build_descriptor


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_tracks_logger() -> Iterator[None]:
    """The CLI detaches the ``tracks`` logger; reattach it for caplog."""
    yield
    root_logger = logging.getLogger("tracks")
    root_logger.handlers.clear()
    root_logger.propagate = True
    root_logger.setLevel(logging.NOTSET)


# ---------------------------------------------------------------------------
# Generation fixtures
# ---------------------------------------------------------------------------

FIXED_NOW: datetime = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


@pytest.fixture()
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture()
def output_dir(tmp_path_factory: pytest.TempPathFactory) -> pathlib.Path:
    """Existing, writable directory in which projects are generated."""
    return tmp_path_factory.mktemp("out")


DescriptorFactory = Callable[..., ProjectDescriptor]


@pytest.fixture()
def make_descriptor(output_dir: pathlib.Path) -> DescriptorFactory:
    """Build a validated descriptor; git is off unless asked for."""

    def _make(
        project_name: str = "demo",
        module_path: str = "example.com/a/demo",
        database_driver: str = "go-libsql",
        **kwargs,
    ) -> ProjectDescriptor:
        kwargs.setdefault("init_git", False)
        kwargs.setdefault("output_path", output_dir)
        return build_descriptor(project_name, module_path, database_driver, **kwargs)

    return _make


@pytest.fixture()
def descriptor(make_descriptor: DescriptorFactory) -> ProjectDescriptor:
    return make_descriptor()


@pytest.fixture()
def context(descriptor: ProjectDescriptor, fixed_now: datetime) -> TemplateContext:
    return TemplateContext.from_descriptor(descriptor, now=fixed_now)


@pytest.fixture(scope="session")
def renderer() -> TemplateRenderer:
    return TemplateRenderer()


# ---------------------------------------------------------------------------
# Migration fixtures
# ---------------------------------------------------------------------------


def _write_migration(directory: pathlib.Path, file_name: str, up: str, down: str) -> pathlib.Path:
    """Write one goose-format migration file."""
    path = directory / file_name
    path.write_text(
        "-- +goose Up\n"
        + textwrap.dedent(up).strip()
        + "\n\n-- +goose Down\n"
        + textwrap.dedent(down).strip()
        + "\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def write_migration() -> Callable[..., pathlib.Path]:
    return _write_migration


@pytest.fixture()
def migrations_path(tmp_path: pathlib.Path) -> pathlib.Path:
    """Three ordered migrations, none applied."""
    path = tmp_path / "migrations"
    path.mkdir()
    _write_migration(
        path,
        "001_create_users.sql",
        "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL);",
        "DROP TABLE users;",
    )
    _write_migration(
        path,
        "002_create_posts.sql",
        """
        CREATE TABLE posts (
            id INTEGER PRIMARY KEY,
            user_id INTEGER NOT NULL REFERENCES users (id),
            title TEXT NOT NULL
        );
        """,
        "DROP TABLE posts;",
    )
    _write_migration(
        path,
        "003_index_posts.sql",
        "CREATE INDEX idx_posts_user ON posts (user_id);",
        "DROP INDEX idx_posts_user;",
    )
    return path


@pytest.fixture()
def sqlite_engine(tmp_path: pathlib.Path) -> Iterator[Engine]:
    engine = create_engine(f"sqlite:///{(tmp_path / 'app.db').as_posix()}")
    yield engine
    engine.dispose()


@pytest.fixture()
def runner(sqlite_engine: Engine, migrations_path: pathlib.Path) -> MigrationRunner:
    return MigrationRunner(sqlite_engine, "sqlite3", migrations_path)
