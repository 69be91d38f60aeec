# File: tracks/errors.py
"""
Tracks - Error Taxonomy
========================
Every failure raised by the generator and the migration manager derives from
``TracksError``.  Sentinel classes name the *cause* of a failure; wrapper
errors (``ValidationError``, ``GenerationError``, ``MigrationError``) carry
the operation context and keep the sentinel reachable through ``cause`` or
the ``__cause__`` chain.

Callers branch on cause with :func:`has_cause`::

    try:
        generator.generate(descriptor)
    except TracksError as exc:
        if has_cause(exc, DirectoryExistsError):
            ...
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Type

logger: logging.Logger = logging.getLogger("tracks.errors")


class TracksError(Exception):
    """Root of every error raised by this package."""


# ---------------------------------------------------------------------------
# Sentinel causes
# ---------------------------------------------------------------------------


class InvalidProjectNameError(TracksError):
    """Project name is empty, too long or contains forbidden characters."""


class InvalidModulePathError(TracksError):
    """Module path is not a valid import path."""


class InvalidDatabaseDriverError(TracksError):
    """Database driver is not one of the supported variants."""


class DirectoryExistsError(TracksError):
    """Target directory exists and is not empty (or is not a directory)."""


class DirectoryNotWritableError(TracksError):
    """Parent of the target directory is missing or not writable."""


class TemplateNotFoundError(TracksError):
    """Template identifier is not part of the embedded catalog."""

    def __init__(self, template: str) -> None:
        self.template: str = template
        super().__init__(f"template {template}: template not found")


class UnsupportedDriverError(TracksError):
    """Driver cannot be mapped to a migration dialect or connection."""


class DatabaseURLNotSetError(TracksError):
    """DATABASE_URL is missing from the environment and the .env file."""


class EnvNotLoadedError(TracksError):
    """connect() was called before load_env()."""


class AlreadyConnectedError(TracksError):
    """connect() was called while a connection is open."""


class NotConnectedError(TracksError):
    """An operation needed a database handle that is not available."""


class DatabaseConnectionError(TracksError):
    """The database could not be opened or did not answer a ping."""


class NotTracksProjectError(TracksError):
    """No .tracks.yaml marker was found."""


class MigrationsDirectoryError(TracksError):
    """Migration source directory is missing, unreadable or malformed."""


class MigrationOrderError(TracksError):
    """An applied migration has a higher version than a pending one."""


# ---------------------------------------------------------------------------
# Wrapper errors
# ---------------------------------------------------------------------------


class ValidationError(TracksError):
    """
    Field-scoped validation failure.

    Always recoverable; raised before any side effect is performed.
    """

    def __init__(
        self,
        field: str,
        value: Any,
        message: str,
        cause: Type[TracksError],
    ) -> None:
        self.field: str = field
        self.value: Any = value
        self.message: str = message
        self.cause: Type[TracksError] = cause
        super().__init__(self._format())

    def _format(self) -> str:
        if self.value not in (None, ""):
            return f"validation failed for {self.field} '{self.value}': {self.message}"
        return f"validation failed for {self.field}: {self.message}"


class TemplateRenderError(TracksError):
    """A catalog template failed to render or could not be written."""

    def __init__(self, template: str, reason: str) -> None:
        self.template: str = template
        self.reason: str = reason
        super().__init__(f"template {template}: {reason}")


class TemplateSyntaxInvalidError(TracksError):
    """A catalog template does not parse."""

    def __init__(self, template: str, message: str) -> None:
        self.template: str = template
        self.message: str = message
        super().__init__(f"template {template}: {message}")


class GenerationError(TracksError):
    """I/O failure during an otherwise valid generation run."""

    def __init__(self, phase: str, path: str, reason: str) -> None:
        self.phase: str = phase
        self.path: str = path
        self.reason: str = reason
        super().__init__(f"{phase} failed for {path}: {reason}")


class GitError(TracksError):
    """A git sub-command failed."""

    def __init__(self, message: str, command: str = "", output: str = "") -> None:
        self.command: str = command
        self.output: str = output
        super().__init__(message)


class MigrationError(TracksError):
    """A single migration failed to apply or revert."""

    def __init__(self, version: int, name: str, reason: str) -> None:
        self.version: int = version
        self.name: str = name
        self.reason: str = reason
        super().__init__(f"migration {version} ({name}): {reason}")


class MigrationBatchError(TracksError):
    """
    A multi-step apply stopped partway.

    ``result`` holds the migrations applied before the failure; they are not
    undone.
    """

    def __init__(self, message: str, result: Any) -> None:
        self.result: Any = result
        super().__init__(message)


class RollbackError(TracksError):
    """The first step of a revert batch failed."""


# ---------------------------------------------------------------------------
# Cause inspection
# ---------------------------------------------------------------------------


def has_cause(exc: Optional[BaseException], sentinel: Type[BaseException]) -> bool:
    """
    Return True if *exc* or anything it wraps is, or names, *sentinel*.

    Walks the ``cause`` attribute of ``ValidationError`` as well as the
    ``__cause__`` / ``__context__`` chain, so wrapping never hides a cause.
    """
    seen: List[int] = []
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.append(id(current))
        if isinstance(current, sentinel):
            return True
        named: Any = getattr(current, "cause", None)
        if isinstance(named, type) and issubclass(named, sentinel):
            return True
        current = current.__cause__ or current.__context__
    return False


__all__: List[str] = [
    "TracksError",
    "InvalidProjectNameError",
    "InvalidModulePathError",
    "InvalidDatabaseDriverError",
    "DirectoryExistsError",
    "DirectoryNotWritableError",
    "TemplateNotFoundError",
    "UnsupportedDriverError",
    "DatabaseURLNotSetError",
    "EnvNotLoadedError",
    "AlreadyConnectedError",
    "NotConnectedError",
    "DatabaseConnectionError",
    "NotTracksProjectError",
    "MigrationsDirectoryError",
    "MigrationOrderError",
    "ValidationError",
    "TemplateRenderError",
    "TemplateSyntaxInvalidError",
    "GenerationError",
    "GitError",
    "MigrationError",
    "MigrationBatchError",
    "RollbackError",
    "has_cause",
]
