# File: tracks/migrations.py
"""
Tracks - Migration Lifecycle Manager
=====================================
Applies, reverts, inspects and resets the ordered SQL migrations of a
generated project against a live SQLAlchemy engine.

A migration is either *pending* or *applied*, and migrations are totally
ordered by version.  The applied set must always be a prefix of that order;
an applied migration above a pending one raises ``MigrationOrderError``
from every mutating operation and is logged by ``status()``.

Batch semantics:

* ``apply(steps)``: ``steps <= 0`` applies everything pending, otherwise the
  next *steps* pending migrations.  Each migration is atomic; the batch is
  not.  A mid-batch failure raises ``MigrationBatchError`` whose ``result``
  lists the migrations applied before it.
* ``revert(steps)``: first-step-strict.  ``steps <= 0`` means 1.  If the
  first step fails ``RollbackError`` is raised and nothing was reverted; if
  a later step fails the batch stops and the partial result is returned
  with ``interrupted_by`` set.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

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
from tracks.migration_source import MigrationProvider, MigrationSource
from tracks.models import DatabaseDriver, MigrationDirection, MigrationRecord, MigrationResult

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("tracks.migrations")


def migrations_dir(project_dir: Union[str, Path], driver: DatabaseDriver) -> Path:
    """Migration source directory of *driver* inside a generated project."""
    return Path(project_dir) / "internal" / "db" / "migrations" / driver.migrations_dir_name


def _parse_driver(driver: Union[str, DatabaseDriver]) -> DatabaseDriver:
    if isinstance(driver, DatabaseDriver):
        return driver
    try:
        return DatabaseDriver(driver)
    except ValueError:
        raise UnsupportedDriverError(f"unsupported driver: {driver!r}") from None


def _check_directory(directory: Path) -> None:
    if not directory.exists():
        raise MigrationsDirectoryError(f"migrations directory not found: {directory}")
    if not directory.is_dir():
        raise MigrationsDirectoryError(f"migrations path is not a directory: {directory}")
    if not os.access(directory, os.R_OK | os.X_OK):
        raise MigrationsDirectoryError(f"migrations directory is not readable: {directory}")


class MigrationRunner:
    """
    Migration manager bound to one engine, driver and source directory.

    Every precondition is checked here, never on first use.
    """

    def __init__(
        self,
        engine: Optional[Engine],
        driver: Union[str, DatabaseDriver],
        migrations_path: Union[str, Path],
    ) -> None:
        if engine is None:
            raise NotConnectedError("a database connection is required")
        self.driver: DatabaseDriver = _parse_driver(driver)
        self.directory: Path = Path(migrations_path)
        _check_directory(self.directory)
        self._provider: MigrationProvider = MigrationProvider(
            engine, self.driver.dialect, self.directory
        )
        logger.debug(
            "MigrationRunner ready: driver=%s, dialect=%s, %d source(s) in %s",
            self.driver.value,
            self.driver.dialect.value,
            len(self._provider.sources()),
            self.directory,
        )

    # -----------------------------------------------------------------
    # State
    # -----------------------------------------------------------------

    def _records(self) -> List[MigrationRecord]:
        applied: Dict[int, datetime] = self._provider.applied_versions()
        return [
            MigrationRecord(
                version=source.version,
                name=source.name,
                applied=source.version in applied,
                applied_at=applied.get(source.version),
            )
            for source in self._provider.sources()
        ]

    @staticmethod
    def _order_violation(records: List[MigrationRecord]) -> Optional[str]:
        pending: List[int] = [r.version for r in records if not r.applied]
        applied: List[int] = [r.version for r in records if r.applied]
        if pending and applied and max(applied) > min(pending):
            return (
                f"migration {max(applied)} is applied but earlier migration "
                f"{min(pending)} is pending"
            )
        return None

    def _ordered_records(self) -> List[MigrationRecord]:
        records: List[MigrationRecord] = self._records()
        violation: Optional[str] = self._order_violation(records)
        if violation:
            raise MigrationOrderError(violation)
        return records

    def _source(self, version: int) -> MigrationSource:
        for source in self._provider.sources():
            if source.version == version:
                return source
        raise MigrationError(version, "", "no migration source for version")

    # -----------------------------------------------------------------
    # Operations
    # -----------------------------------------------------------------

    def status(self) -> List[MigrationRecord]:
        """Every known migration, ascending, read from the database now."""
        records: List[MigrationRecord] = self._records()
        violation: Optional[str] = self._order_violation(records)
        if violation:
            logger.warning("Migration order violation: %s", violation)
        return records

    def pending(self) -> List[MigrationRecord]:
        """Pending migrations in the order ``apply`` would run them."""
        return [record for record in self._ordered_records() if not record.applied]

    def apply(self, steps: int = 0) -> MigrationResult:
        """Apply pending migrations; ``steps <= 0`` applies all of them."""
        todo: List[MigrationRecord] = self.pending()
        if steps > 0:
            todo = todo[:steps]

        done: List[MigrationRecord] = []
        for record in todo:
            try:
                applied_at: datetime = self._provider.apply(self._source(record.version))
            except MigrationError as exc:
                partial: MigrationResult = MigrationResult(
                    direction=MigrationDirection.UP, records=tuple(done)
                )
                logger.error("Migration batch stopped after %d step(s): %s", len(done), exc)
                raise MigrationBatchError(f"migration failed: {exc}", partial) from exc
            done.append(MigrationRecord(
                version=record.version,
                name=record.name,
                applied=True,
                applied_at=applied_at,
            ))
            logger.info("Applied %s", record.name)

        return MigrationResult(direction=MigrationDirection.UP, records=tuple(done))

    def revert(self, steps: int = 1) -> MigrationResult:
        """Revert up to *steps* most recent migrations, newest first."""
        if steps <= 0:
            steps = 1
        applied: List[MigrationRecord] = [
            record for record in self._ordered_records() if record.applied
        ]
        todo: List[MigrationRecord] = list(reversed(applied))[:steps]

        done: List[MigrationRecord] = []
        for index, record in enumerate(todo):
            try:
                self._provider.revert(self._source(record.version))
            except MigrationError as exc:
                if index == 0:
                    raise RollbackError(f"rollback failed: {exc}") from exc
                logger.warning(
                    "Rollback stopped after %d of %d step(s): %s", len(done), len(todo), exc
                )
                return MigrationResult(
                    direction=MigrationDirection.DOWN,
                    records=tuple(done),
                    interrupted_by=exc,
                )
            done.append(MigrationRecord(version=record.version, name=record.name, applied=False))
            logger.info("Reverted %s", record.name)

        return MigrationResult(direction=MigrationDirection.DOWN, records=tuple(done))

    def reset(self) -> Tuple[MigrationResult, MigrationResult]:
        """
        Revert every applied migration, then apply every migration.

        Destructive; callers confirm with the user before invoking it.
        """
        applied_count: int = sum(1 for record in self._ordered_records() if record.applied)
        reverted: MigrationResult = MigrationResult(direction=MigrationDirection.DOWN)
        if applied_count:
            reverted = self.revert(applied_count)
            if reverted.interrupted_by is not None:
                raise MigrationBatchError(
                    f"reset stopped while reverting: {reverted.interrupted_by}", reverted
                ) from reverted.interrupted_by
        applied: MigrationResult = self.apply(0)
        return reverted, applied


__all__: List[str] = [
    "migrations_dir",
    "MigrationRunner",
]
