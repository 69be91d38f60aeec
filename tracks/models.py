# File: tracks/models.py
"""
Tracks - Core Data Models
==========================
Pydantic V2 and dataclass models shared by the generation pipeline and the
migration manager:

    ProjectDescriptor → TemplateContext → TemplateManifest   (generation)
    MigrationRecord   → MigrationResult                      (migrations)

``DatabaseDriver`` is the single closed enumeration of supported drivers.
It is parsed once at the boundary and every per-driver fact (dialect,
migration directory, Go import path, ``sql.Open`` name) hangs off it, so no
downstream component dispatches on raw strings.
"""

from __future__ import annotations

import base64
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("tracks.models")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

TRACKS_VERSION: str = "0.1.0"
GO_VERSION: str = "1.25"
DEFAULT_ENV_PREFIX: str = "APP"
SECRET_KEY_BYTES: int = 32
MIGRATION_TIMESTAMP_FORMAT: str = "%Y%m%d%H%M%S"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class MigrationDialect(str, Enum):
    """SQL dialects understood by the migration manager."""

    SQLITE3 = "sqlite3"
    POSTGRES = "postgres"


class DatabaseDriver(str, Enum):
    """Database drivers a generated project can target."""

    GO_LIBSQL = "go-libsql"
    SQLITE3 = "sqlite3"
    POSTGRES = "postgres"

    @property
    def dialect(self) -> MigrationDialect:
        """Migration dialect used for this driver."""
        if self is DatabaseDriver.POSTGRES:
            return MigrationDialect.POSTGRES
        return MigrationDialect.SQLITE3

    @property
    def migrations_dir_name(self) -> str:
        """Directory under ``internal/db/migrations`` holding this driver's scripts."""
        if self is DatabaseDriver.POSTGRES:
            return "postgres"
        return "sqlite"

    @property
    def sql_driver_name(self) -> str:
        """Name passed to ``sql.Open`` in the generated Go code."""
        return _SQL_DRIVER_NAMES[self]

    @property
    def go_import(self) -> str:
        """Blank-import path of the Go driver package."""
        return _GO_DRIVER_IMPORTS[self]

    @classmethod
    def choices(cls) -> Tuple[str, ...]:
        return tuple(member.value for member in cls)


_SQL_DRIVER_NAMES: Dict[DatabaseDriver, str] = {
    DatabaseDriver.GO_LIBSQL: "libsql",
    DatabaseDriver.SQLITE3: "sqlite3",
    DatabaseDriver.POSTGRES: "postgres",
}

_GO_DRIVER_IMPORTS: Dict[DatabaseDriver, str] = {
    DatabaseDriver.GO_LIBSQL: "github.com/tursodatabase/libsql-client-go/libsql",
    DatabaseDriver.SQLITE3: "github.com/mattn/go-sqlite3",
    DatabaseDriver.POSTGRES: "github.com/lib/pq",
}


class MigrationDirection(str, Enum):
    """Direction of a migration batch."""

    UP = "up"
    DOWN = "down"


# ---------------------------------------------------------------------------
# Project descriptor
# ---------------------------------------------------------------------------


class ProjectDescriptor(BaseModel):
    """
    Configuration driving one generation run.

    Field syntax is checked by ``tracks.validators`` so that failures come
    back as typed, field-scoped errors; the model itself only fixes types.
    Immutable once built.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
    )

    project_name: str = Field(..., description="Project slug, also the directory name.")
    module_path: str = Field(..., description="Go module import path.")
    database_driver: DatabaseDriver = Field(
        default=DatabaseDriver.GO_LIBSQL,
        description="Database driver of the generated project.",
    )
    env_prefix: str = Field(
        default=DEFAULT_ENV_PREFIX,
        description="Prefix of the generated application's environment variables.",
    )
    init_git: bool = Field(default=True, description="Initialize a git repository.")
    output_path: Path = Field(
        default_factory=Path.cwd,
        description="Directory in which the project directory is created.",
    )

    @property
    def project_root(self) -> Path:
        """Final location of the generated project."""
        return self.output_path / self.project_name


# ---------------------------------------------------------------------------
# Template context
# ---------------------------------------------------------------------------


def generate_secret_key() -> str:
    """Return a URL-safe base64 encoding of 32 random bytes."""
    return base64.urlsafe_b64encode(secrets.token_bytes(SECRET_KEY_BYTES)).decode("ascii")


@dataclass(frozen=True)
class TemplateContext:
    """
    Read-only projection of a descriptor plus computed values.

    Built once per run and shared by every render call.
    """

    project_name: str
    module_path: str
    db_driver: str
    env_prefix: str
    go_version: str
    tracks_version: str
    year: int
    secret_key: str
    db_import: str
    db_open_name: str
    migration_timestamp: str

    @classmethod
    def from_descriptor(
        cls,
        descriptor: ProjectDescriptor,
        now: Optional[datetime] = None,
    ) -> "TemplateContext":
        moment: datetime = now or datetime.now(timezone.utc)
        driver: DatabaseDriver = DatabaseDriver(descriptor.database_driver)
        return cls(
            project_name=descriptor.project_name,
            module_path=descriptor.module_path,
            db_driver=driver.value,
            env_prefix=descriptor.env_prefix,
            go_version=GO_VERSION,
            tracks_version=TRACKS_VERSION,
            year=moment.year,
            secret_key=generate_secret_key(),
            db_import=driver.go_import,
            db_open_name=driver.sql_driver_name,
            migration_timestamp=moment.strftime(MIGRATION_TIMESTAMP_FORMAT),
        )

    def as_dict(self) -> Dict[str, Any]:
        """Mapping handed to the template engine."""
        return {
            "project_name": self.project_name,
            "module_path": self.module_path,
            "db_driver": self.db_driver,
            "env_prefix": self.env_prefix,
            "go_version": self.go_version,
            "tracks_version": self.tracks_version,
            "year": self.year,
            "secret_key": self.secret_key,
            "db_import": self.db_import,
            "db_open_name": self.db_open_name,
            "migration_timestamp": self.migration_timestamp,
        }


# ---------------------------------------------------------------------------
# Migration records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MigrationRecord:
    """State of one migration: pending or applied."""

    version: int
    name: str
    applied: bool
    applied_at: Optional[datetime] = None


@dataclass(frozen=True)
class MigrationResult:
    """
    Migrations affected by one apply or revert invocation.

    ``interrupted_by`` is set when a revert batch stopped after its first
    step; the records listed were still reverted.
    """

    direction: MigrationDirection
    records: Tuple[MigrationRecord, ...] = field(default_factory=tuple)
    interrupted_by: Optional[BaseException] = None

    @property
    def names(self) -> List[str]:
        return [record.name for record in self.records]

    def __len__(self) -> int:
        return len(self.records)


# ---------------------------------------------------------------------------
# Success output value object
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SuccessOutput:
    """Summary of a finished generation, consumed by the output formatter."""

    project_name: str
    project_path: str
    module_path: str
    database_driver: str
    git_initialized: bool


__all__: List[str] = [
    "TRACKS_VERSION",
    "GO_VERSION",
    "DEFAULT_ENV_PREFIX",
    "MigrationDialect",
    "DatabaseDriver",
    "MigrationDirection",
    "ProjectDescriptor",
    "TemplateContext",
    "generate_secret_key",
    "MigrationRecord",
    "MigrationResult",
    "SuccessOutput",
]
