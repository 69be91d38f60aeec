# File: tracks/validators.py
"""
Tracks - Project Descriptor Validators
=======================================
Four independent per-field checks run before the generator touches the
filesystem:

    validate_project_name    — pure
    validate_module_path     — pure
    validate_database_driver — pure, returns the parsed ``DatabaseDriver``
    validate_directory       — checks the filesystem (existence, emptiness,
                               write permission via a scratch file)

Each check raises ``tracks.errors.ValidationError`` carrying the field, the
offending value, a human message and a sentinel cause class.
``validate_descriptor`` composes all four; a failure means nothing has been
created on disk.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import List, Union

from tracks.errors import (
    DirectoryExistsError,
    DirectoryNotWritableError,
    InvalidDatabaseDriverError,
    InvalidModulePathError,
    InvalidProjectNameError,
    ValidationError,
)
from tracks.models import DEFAULT_ENV_PREFIX, DatabaseDriver, ProjectDescriptor
from tracks.utils import is_empty_directory

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("tracks.validators")

# ---------------------------------------------------------------------------
# Limits & patterns
# ---------------------------------------------------------------------------

MAX_PROJECT_NAME_LENGTH: int = 100
MAX_MODULE_PATH_LENGTH: int = 300
SCRATCH_FILE_NAME: str = ".tracks_write_test"

_PROJECT_NAME_RE: re.Pattern[str] = re.compile(r"[a-z0-9_-]+")
_MODULE_PATH_RE: re.Pattern[str] = re.compile(r"[a-zA-Z0-9._/-]+")


# ---------------------------------------------------------------------------
# Field checks
# ---------------------------------------------------------------------------


def validate_project_name(name: str) -> None:
    """Lowercase alphanumeric with hyphens/underscores, 1-100 characters."""
    if not name:
        raise ValidationError(
            "project_name", name, "cannot be empty", InvalidProjectNameError
        )
    if len(name) > MAX_PROJECT_NAME_LENGTH:
        raise ValidationError(
            "project_name",
            name,
            f"must be {MAX_PROJECT_NAME_LENGTH} characters or less",
            InvalidProjectNameError,
        )
    if not _PROJECT_NAME_RE.fullmatch(name):
        raise ValidationError(
            "project_name",
            name,
            "must be lowercase alphanumeric with hyphens/underscores",
            InvalidProjectNameError,
        )


def validate_module_path(path: str) -> None:
    """Import path with a domain and a path, no leading/trailing slash."""
    if not path:
        raise ValidationError(
            "module_path", path, "cannot be empty", InvalidModulePathError
        )
    if len(path) > MAX_MODULE_PATH_LENGTH:
        raise ValidationError(
            "module_path",
            path,
            f"must be {MAX_MODULE_PATH_LENGTH} characters or less",
            InvalidModulePathError,
        )
    if "/" not in path:
        raise ValidationError(
            "module_path",
            path,
            "must contain domain and path (e.g., github.com/user/project)",
            InvalidModulePathError,
        )
    if path.startswith("/") or path.endswith("/"):
        raise ValidationError(
            "module_path",
            path,
            "cannot start or end with slash",
            InvalidModulePathError,
        )
    if not _MODULE_PATH_RE.fullmatch(path):
        raise ValidationError(
            "module_path",
            path,
            "must be a valid import path",
            InvalidModulePathError,
        )


def validate_database_driver(driver: Union[str, DatabaseDriver]) -> DatabaseDriver:
    """Parse *driver* into the closed ``DatabaseDriver`` enum (case-sensitive)."""
    if isinstance(driver, DatabaseDriver):
        return driver
    try:
        return DatabaseDriver(driver)
    except ValueError:
        raise ValidationError(
            "database_driver",
            driver,
            f"must be one of: {', '.join(DatabaseDriver.choices())}",
            InvalidDatabaseDriverError,
        ) from None


def validate_directory(path: Path) -> None:
    """
    Check that *path* can become a new project directory.

    Valid when *path* does not exist and its parent exists and is writable,
    or when *path* is an existing empty directory with a writable parent.
    """
    target: Path = Path(path)

    if target.exists():
        if not target.is_dir():
            raise ValidationError(
                "output_path",
                str(target),
                "path exists but is not a directory",
                DirectoryExistsError,
            )
        if not is_empty_directory(target):
            raise ValidationError(
                "output_path",
                str(target),
                "directory must be empty",
                DirectoryExistsError,
            )
        # Generation stages its tree beside the target.
        _check_writable(target.parent, target)
        return

    parent: Path = target.parent
    if not parent.is_dir():
        raise ValidationError(
            "output_path",
            str(target),
            "parent directory does not exist",
            DirectoryNotWritableError,
        )

    _check_writable(parent, target)


def _check_writable(parent: Path, target: Path) -> None:
    """Create and remove a scratch file in *parent*; removal never raises."""
    scratch: Path = parent / SCRATCH_FILE_NAME
    try:
        scratch.write_bytes(b"")
    except OSError:
        raise ValidationError(
            "output_path",
            str(target),
            "parent directory is not writable",
            DirectoryNotWritableError,
        ) from None
    finally:
        _remove_scratch_file(scratch)


def _remove_scratch_file(scratch: Path) -> None:
    try:
        if scratch.exists():
            os.remove(scratch)
    except OSError as exc:
        logger.warning("Failed to clean up scratch file %s: %s", scratch, exc)


# ---------------------------------------------------------------------------
# Composition
# ---------------------------------------------------------------------------


def validate_descriptor(descriptor: ProjectDescriptor) -> None:
    """Run every check; raises the first ``ValidationError`` found."""
    validate_project_name(descriptor.project_name)
    validate_module_path(descriptor.module_path)
    validate_database_driver(descriptor.database_driver)
    validate_directory(descriptor.project_root)
    logger.debug("Descriptor for '%s' is valid.", descriptor.project_name)


def build_descriptor(
    project_name: str,
    module_path: str,
    database_driver: Union[str, DatabaseDriver],
    *,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    init_git: bool = True,
    output_path: Union[str, Path, None] = None,
) -> ProjectDescriptor:
    """
    Build a ``ProjectDescriptor`` from raw boundary values.

    The driver string is parsed here, once; everything downstream sees the
    enum.  All four checks run before the descriptor is returned.
    """
    driver: DatabaseDriver = validate_database_driver(database_driver)
    descriptor: ProjectDescriptor = ProjectDescriptor(
        project_name=project_name,
        module_path=module_path,
        database_driver=driver,
        env_prefix=env_prefix,
        init_git=init_git,
        output_path=Path(output_path) if output_path is not None else Path.cwd(),
    )
    validate_descriptor(descriptor)
    return descriptor


__all__: List[str] = [
    "MAX_PROJECT_NAME_LENGTH",
    "MAX_MODULE_PATH_LENGTH",
    "SCRATCH_FILE_NAME",
    "validate_project_name",
    "validate_module_path",
    "validate_database_driver",
    "validate_directory",
    "validate_descriptor",
    "build_descriptor",
]
