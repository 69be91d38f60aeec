# File: tracks/migration_source.py
"""
Tracks - Migration Source & Version Table
==========================================
Reads goose-format SQL migrations and keeps goose's applied-state table, so
a database migrated here and one migrated with ``make migrate-up`` agree on
what is applied.

Source files live flat in one directory and are named
``<version>_<description>.sql``.  Sections are delimited by directives::

    -- +goose Up
    CREATE TABLE t (id INTEGER);

    -- +goose Down
    DROP TABLE t;

Outside a ``-- +goose StatementBegin`` / ``StatementEnd`` block a statement
ends at a line terminated by ``;``.  Inside a block the whole block is one
statement (functions, triggers).  ``-- +goose NO TRANSACTION`` runs the
file's statements outside a transaction.

Bookkeeping table ``goose_db_version``::

    id          autoincrement primary key
    version_id  migration version (0 marks the table itself)
    is_applied  always true for live rows
    tstamp      time the row was written

Applying inserts a row; reverting deletes it.
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    Table,
    delete,
    event,
    insert,
    select,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from tracks.errors import MigrationError, MigrationsDirectoryError, UnsupportedDriverError
from tracks.models import MigrationDialect

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("tracks.migration_source")

VERSION_TABLE_NAME: str = "goose_db_version"

_FILENAME_RE: re.Pattern[str] = re.compile(r"(\d+)_(.+)\.sql")
_DIRECTIVE_RE: re.Pattern[str] = re.compile(r"^--\s*\+goose\s+(.+?)\s*$", re.IGNORECASE)

# SQLAlchemy dialect names accepted for each migration dialect.
_ENGINE_DIALECTS: Dict[MigrationDialect, Tuple[str, ...]] = {
    MigrationDialect.SQLITE3: ("sqlite",),
    MigrationDialect.POSTGRES: ("postgresql",),
}


# ---------------------------------------------------------------------------
# Source files
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MigrationSource:
    """One parsed migration file."""

    version: int
    name: str
    path: Path
    up_statements: Tuple[str, ...]
    down_statements: Tuple[str, ...]
    use_transaction: bool = True


def _ends_with_semicolon(line: str) -> bool:
    """True if the last word before any trailing ``--`` comment ends with ``;``."""
    last: str = ""
    for word in line.split():
        if word.startswith("--"):
            break
        last = word
    return last.endswith(";")


def _split_statements(lines: List[str], path: Path, section: str) -> Tuple[str, ...]:
    statements: List[str] = []
    buffer: List[str] = []
    in_block: bool = False

    for line in lines:
        stripped: str = line.strip()
        directive: Optional[re.Match[str]] = _DIRECTIVE_RE.match(stripped)
        if directive:
            word: str = directive.group(1).lower()
            if word == "statementbegin":
                if in_block:
                    raise MigrationsDirectoryError(
                        f"{path.name}: nested StatementBegin in {section} section"
                    )
                in_block = True
            elif word == "statementend":
                if not in_block:
                    raise MigrationsDirectoryError(
                        f"{path.name}: StatementEnd without StatementBegin in {section} section"
                    )
                in_block = False
                text: str = "\n".join(buffer).strip()
                if text:
                    statements.append(text)
                buffer = []
            continue

        if in_block:
            buffer.append(line)
            continue

        if not stripped or (stripped.startswith("--") and not buffer):
            continue
        buffer.append(line)
        if _ends_with_semicolon(stripped):
            statements.append("\n".join(buffer).strip())
            buffer = []

    if in_block:
        raise MigrationsDirectoryError(f"{path.name}: unterminated StatementBegin in {section} section")
    if any(part.strip() for part in buffer):
        raise MigrationsDirectoryError(
            f"{path.name}: unfinished SQL statement in {section} section (missing ';')"
        )
    return tuple(statements)


def parse_migration_file(path: Path) -> MigrationSource:
    """Parse one ``<version>_<description>.sql`` file."""
    match: Optional[re.Match[str]] = _FILENAME_RE.fullmatch(path.name)
    if not match:
        raise MigrationsDirectoryError(f"{path.name}: file name must be <version>_<name>.sql")
    version: int = int(match.group(1))
    if version < 1:
        raise MigrationsDirectoryError(f"{path.name}: version must be greater than zero")

    try:
        text: str = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise MigrationsDirectoryError(f"failed to read {path}: {exc}") from exc

    sections: Dict[str, List[str]] = {"up": [], "down": []}
    current: Optional[str] = None
    use_transaction: bool = True
    saw_up: bool = False

    for line in text.splitlines():
        directive: Optional[re.Match[str]] = _DIRECTIVE_RE.match(line.strip())
        if directive:
            word: str = directive.group(1).lower()
            if word == "up":
                current = "up"
                saw_up = True
                continue
            if word == "down":
                current = "down"
                continue
            if word == "no transaction":
                use_transaction = False
                continue
        if current is not None:
            sections[current].append(line)

    if not saw_up:
        raise MigrationsDirectoryError(f"{path.name}: missing '-- +goose Up' annotation")

    return MigrationSource(
        version=version,
        name=path.name,
        path=path,
        up_statements=_split_statements(sections["up"], path, "Up"),
        down_statements=_split_statements(sections["down"], path, "Down"),
        use_transaction=use_transaction,
    )


def collect_sources(directory: Path) -> List[MigrationSource]:
    """Every migration in *directory*, ascending by version."""
    try:
        names: List[str] = os.listdir(directory)
    except OSError as exc:
        raise MigrationsDirectoryError(f"failed to read migrations directory {directory}: {exc}") from exc

    by_version: Dict[int, MigrationSource] = {}
    for file_name in sorted(names):
        path: Path = directory / file_name
        if not file_name.endswith(".sql") or not path.is_file():
            continue
        source: MigrationSource = parse_migration_file(path)
        if source.version in by_version:
            raise MigrationsDirectoryError(
                f"duplicate migration version {source.version}: "
                f"{by_version[source.version].name} and {source.name}"
            )
        by_version[source.version] = source

    sources: List[MigrationSource] = [by_version[v] for v in sorted(by_version)]
    logger.debug("Collected %d migration(s) from %s", len(sources), directory)
    return sources


# ---------------------------------------------------------------------------
# Version table
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class VersionStore:
    """Reads and writes the ``goose_db_version`` table."""

    def __init__(self, table_name: str = VERSION_TABLE_NAME) -> None:
        self.metadata: MetaData = MetaData()
        self.table: Table = Table(
            table_name,
            self.metadata,
            Column("id", Integer, primary_key=True, autoincrement=True),
            Column("version_id", BigInteger, nullable=False),
            Column("is_applied", Boolean, nullable=False),
            Column("tstamp", DateTime, nullable=False, default=_utcnow),
        )

    def ensure(self, engine: Engine) -> None:
        """Create the table with its version-0 row if it does not exist yet."""
        with engine.begin() as conn:
            self.metadata.create_all(conn, tables=[self.table], checkfirst=True)
            has_rows: bool = conn.execute(select(self.table.c.id).limit(1)).first() is not None
            if not has_rows:
                conn.execute(insert(self.table).values(version_id=0, is_applied=True, tstamp=_utcnow()))
                logger.debug("Created version table %s", self.table.name)

    def applied(self, conn: Connection) -> Dict[int, datetime]:
        """Applied version → time it was applied; version 0 excluded."""
        rows = conn.execute(
            select(self.table.c.version_id, self.table.c.tstamp)
            .where(self.table.c.is_applied.is_(True))
            .order_by(self.table.c.id)
        )
        result: Dict[int, datetime] = {}
        for version_id, tstamp in rows:
            if version_id:
                result[int(version_id)] = tstamp
        return result

    def record_applied(self, conn: Connection, version: int) -> datetime:
        stamp: datetime = _utcnow()
        conn.execute(insert(self.table).values(version_id=version, is_applied=True, tstamp=stamp))
        return stamp

    def record_reverted(self, conn: Connection, version: int) -> None:
        conn.execute(delete(self.table).where(self.table.c.version_id == version))


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


def _sqlite_begin(conn: Connection) -> None:
    # pysqlite only opens a transaction before DML; take over BEGIN so DDL
    # rolls back with the rest of the migration.
    if conn.get_execution_options().get("isolation_level") == "AUTOCOMMIT":
        return
    conn.connection.dbapi_connection.isolation_level = None
    conn.exec_driver_sql("BEGIN")


def enable_sqlite_transactions(engine: Engine) -> None:
    """Make ``engine.begin()`` cover DDL on SQLite engines; idempotent."""
    if engine.dialect.name != "sqlite" or event.contains(engine, "begin", _sqlite_begin):
        return
    event.listen(engine, "begin", _sqlite_begin)
    logger.debug("Enabled transactional DDL for %s", engine.url.render_as_string(hide_password=True))


class MigrationProvider:
    """
    Applies and reverts single migrations against an engine.

    Each migration runs in one transaction together with its bookkeeping
    row, unless its file opts out with ``NO TRANSACTION``.
    """

    def __init__(self, engine: Engine, dialect: MigrationDialect, directory: Path) -> None:
        accepted: Tuple[str, ...] = _ENGINE_DIALECTS[dialect]
        if engine.dialect.name not in accepted:
            raise UnsupportedDriverError(
                f"{dialect.value} migrations cannot run against a {engine.dialect.name} database"
            )
        enable_sqlite_transactions(engine)
        self.engine: Engine = engine
        self.dialect: MigrationDialect = dialect
        self.directory: Path = directory
        self.store: VersionStore = VersionStore()
        self._sources: List[MigrationSource] = collect_sources(directory)

    def sources(self) -> List[MigrationSource]:
        return list(self._sources)

    def applied_versions(self) -> Dict[int, datetime]:
        """Persisted state, read fresh on every call."""
        try:
            self.store.ensure(self.engine)
            with self.engine.connect() as conn:
                return self.store.applied(conn)
        except SQLAlchemyError as exc:
            raise MigrationError(0, VERSION_TABLE_NAME, f"read version table: {exc}") from exc

    def apply(self, source: MigrationSource) -> datetime:
        """Run the Up section of *source* and record it."""
        logger.debug("Applying %s", source.name)
        try:
            if source.use_transaction:
                with self.engine.begin() as conn:
                    self._execute(conn, source.up_statements)
                    return self.store.record_applied(conn, source.version)
            with self.engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
                self._execute(conn, source.up_statements)
                return self.store.record_applied(conn, source.version)
        except SQLAlchemyError as exc:
            raise MigrationError(source.version, source.name, f"apply: {exc}") from exc

    def revert(self, source: MigrationSource) -> None:
        """Run the Down section of *source* and drop its record."""
        logger.debug("Reverting %s", source.name)
        try:
            if source.use_transaction:
                with self.engine.begin() as conn:
                    self._execute(conn, source.down_statements)
                    self.store.record_reverted(conn, source.version)
                return
            with self.engine.connect().execution_options(isolation_level="AUTOCOMMIT") as conn:
                self._execute(conn, source.down_statements)
                self.store.record_reverted(conn, source.version)
        except SQLAlchemyError as exc:
            raise MigrationError(source.version, source.name, f"revert: {exc}") from exc

    @staticmethod
    def _execute(conn: Connection, statements: Tuple[str, ...]) -> None:
        for statement in statements:
            conn.exec_driver_sql(statement)


__all__: List[str] = [
    "VERSION_TABLE_NAME",
    "MigrationSource",
    "parse_migration_file",
    "collect_sources",
    "VersionStore",
    "MigrationProvider",
    "enable_sqlite_transactions",
]
