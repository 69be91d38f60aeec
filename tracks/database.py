# File: tracks/database.py
"""
Tracks - Database Connection Manager
=====================================
Loads ``DATABASE_URL`` for a generated project and opens the SQLAlchemy
engine handed to ``MigrationRunner``.

``DATABASE_URL`` is read with pydantic-settings: a variable already set in
the process environment wins over the value in ``<project>/.env``.

The generated Go project writes libSQL/SQLite URLs as ``file:<path>`` and
PostgreSQL URLs as ``postgres://...``; ``to_sqlalchemy_url`` maps both onto
SQLAlchemy URLs.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Union
from urllib.parse import urlsplit

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from tracks.errors import (
    AlreadyConnectedError,
    DatabaseConnectionError,
    DatabaseURLNotSetError,
    EnvNotLoadedError,
    NotConnectedError,
    UnsupportedDriverError,
)
from tracks.models import DatabaseDriver

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("tracks.database")

ENV_FILE_NAME: str = ".env"
INVALID_URL: str = "[invalid URL]"


class DatabaseSettings(BaseSettings):
    """Connection settings of a generated project."""

    model_config = SettingsConfigDict(
        env_file=ENV_FILE_NAME,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    database_url: str = Field(default="", description="Connection string of the project database.")


# ---------------------------------------------------------------------------
# URL helpers
# ---------------------------------------------------------------------------


def sanitize_url(raw_url: str) -> str:
    """Mask the credentials of *raw_url* for display."""
    try:
        parts = urlsplit(raw_url)
        host: str = parts.hostname or ""
        if parts.port is not None:
            host = f"{host}:{parts.port}"
    except ValueError:
        return INVALID_URL
    if parts.username is None and parts.password is None:
        return raw_url

    result: str = f"{parts.scheme}://****:****@{host}{parts.path}"
    if parts.query:
        result += f"?{parts.query}"
    if parts.fragment:
        result += f"#{parts.fragment}"
    return result


def to_sqlalchemy_url(raw_url: str, base_dir: Optional[Path] = None) -> str:
    """
    Translate a Go-style connection string into a SQLAlchemy URL.

    Relative ``file:`` paths are resolved against *base_dir*.
    """
    if raw_url.startswith(("postgres://", "postgresql://")):
        return "postgresql+psycopg2://" + raw_url.split("://", 1)[1]
    if raw_url.startswith("sqlite:"):
        return raw_url
    if raw_url.startswith("file:"):
        path_part: str = raw_url[len("file:"):].split("?", 1)[0]
        if path_part.startswith("//"):
            path_part = path_part[2:]
        path: Path = Path(path_part)
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        return f"sqlite:///{path.as_posix()}"
    if raw_url.startswith(("libsql://", "http://", "https://", "ws://", "wss://")):
        raise UnsupportedDriverError(
            f"remote libSQL databases are not supported: {sanitize_url(raw_url)}"
        )
    raise UnsupportedDriverError(f"unrecognized database URL: {sanitize_url(raw_url)}")


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class DatabaseManager:
    """
    Environment loading plus one engine at a time.

    ``load_env`` must run before ``connect``; ``connect`` refuses a second
    connection and ``close`` refuses when nothing is open.
    """

    def __init__(self, driver: Union[str, DatabaseDriver]) -> None:
        try:
            self.driver: DatabaseDriver = DatabaseDriver(driver)
        except ValueError:
            raise UnsupportedDriverError(f"unsupported driver: {driver!r}") from None
        self.database_url: str = ""
        self.project_dir: Optional[Path] = None
        self._env_loaded: bool = False
        self._engine: Optional[Engine] = None

    @property
    def engine(self) -> Optional[Engine]:
        return self._engine

    def load_env(self, project_dir: Union[str, Path]) -> str:
        """Read DATABASE_URL from the environment, falling back to ``.env``."""
        self.project_dir = Path(project_dir)
        env_path: Path = self.project_dir / ENV_FILE_NAME
        if env_path.is_file():
            logger.debug("Loading %s", env_path)
        else:
            logger.debug("%s not found, using environment variables only", env_path)
        settings: DatabaseSettings = DatabaseSettings(_env_file=env_path)
        self.database_url = settings.database_url
        self._env_loaded = True
        return self.database_url

    def connect(self) -> Engine:
        if not self._env_loaded:
            raise EnvNotLoadedError("environment not loaded: call load_env first")
        if self._engine is not None:
            raise AlreadyConnectedError("database already connected")
        if not self.database_url:
            raise DatabaseURLNotSetError("DATABASE_URL environment variable not set")

        url: str = to_sqlalchemy_url(self.database_url, self.project_dir)
        logger.debug("Connecting to %s (%s)", sanitize_url(self.database_url), self.driver.value)
        try:
            engine: Engine = create_engine(url)
        except (SQLAlchemyError, ImportError) as exc:
            raise DatabaseConnectionError(f"failed to open database: {exc}") from exc

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            engine.dispose()
            raise DatabaseConnectionError(f"failed to ping database: {exc}") from exc

        self._engine = engine
        logger.debug("Database connection established")
        return engine

    def close(self) -> None:
        if self._engine is None:
            raise NotConnectedError("database not connected")
        self._engine.dispose()
        self._engine = None


__all__: List[str] = [
    "DatabaseSettings",
    "sanitize_url",
    "to_sqlalchemy_url",
    "DatabaseManager",
]
