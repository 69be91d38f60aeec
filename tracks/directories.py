# File: tracks/directories.py
"""
Tracks - Directory Planner
===========================
The fixed directory skeleton of a generated project.  Every project gets the
same tree regardless of driver; driver-specific migration folders are
created by the renderer when the migration file is written.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Tuple

from tracks.errors import GenerationError
from tracks.utils import ensure_directory

logger: logging.Logger = logging.getLogger("tracks.directories")

PROJECT_DIRECTORIES: Tuple[str, ...] = (
    "cmd/server",
    "cmd/migrate",
    "internal/config",
    "internal/interfaces",
    "internal/logging",
    "internal/domain/health",
    "internal/assets/web/css",
    "internal/assets/web/js",
    "internal/assets/web/images",
    "internal/assets/dist/css",
    "internal/assets/dist/js",
    "internal/assets/dist/images",
    "internal/http/handlers",
    "internal/http/middleware",
    "internal/http/routes",
    "internal/http/views/layouts",
    "internal/http/views/components",
    "internal/db/migrations",
    "internal/db/queries",
    "internal/db/generated",
    "test/mocks",
)


def plan_directories(project_root: Path) -> List[Path]:
    """Absolute paths of the skeleton under *project_root*, parents first."""
    return [project_root.joinpath(*rel.split("/")) for rel in PROJECT_DIRECTORIES]


def skeleton_directories() -> List[str]:
    """Every directory implied by the skeleton, including intermediate ones."""
    seen: List[str] = []
    for rel in PROJECT_DIRECTORIES:
        parts: List[str] = rel.split("/")
        for depth in range(1, len(parts) + 1):
            candidate: str = "/".join(parts[:depth])
            if candidate not in seen:
                seen.append(candidate)
    return sorted(seen)


def create_project_directories(project_root: Path) -> List[Path]:
    """
    Materialize the skeleton under *project_root*.

    Idempotent: directories that already exist are left alone.
    """
    created: List[Path] = []
    for directory in plan_directories(project_root):
        try:
            ensure_directory(directory)
        except OSError as exc:
            raise GenerationError("create directory", str(directory), str(exc)) from exc
        created.append(directory)
    logger.debug("Created %d skeleton directories under %s", len(created), project_root)
    return created


__all__: List[str] = [
    "PROJECT_DIRECTORIES",
    "plan_directories",
    "skeleton_directories",
    "create_project_directories",
]
