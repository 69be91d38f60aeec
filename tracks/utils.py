# File: tracks/utils.py
"""
Tracks - Filesystem & Timing Helpers
=====================================
Small helpers shared by the renderer, the directory planner and the
generator: atomic file writes, directory creation, emptiness checks and a
context-manager timer used for per-phase metrics.
"""

from __future__ import annotations

import logging
import os
import tempfile
import time
from pathlib import Path
from typing import List, Optional

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("tracks.utils")

# Owner read/write, group/other read, never executable.
FILE_MODE: int = 0o644
DIRECTORY_MODE: int = 0o755


# ---------------------------------------------------------------------------
# File I/O helpers
# ---------------------------------------------------------------------------


def ensure_directory(path: Path) -> None:
    """Create *path* and its parents; an existing directory is not an error."""
    path.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
    logger.debug("Ensured directory exists: %s", path)


def is_empty_directory(path: Path) -> bool:
    """True when *path* is a directory with no entries."""
    with os.scandir(path) as entries:
        return next(entries, None) is None


def write_file(path: Path, content: str, mode: int = FILE_MODE) -> int:
    """
    Atomically write *content* to *path*.

    The text is staged in a temporary file beside the target and renamed over
    it, so a concurrent reader sees either the old file or the complete new
    one.  Returns the number of bytes written.
    """
    ensure_directory(path.parent)

    encoded: bytes = content.encode("utf-8")
    fd: int
    tmp_path: str
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(encoded)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, str(path))
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise

    logger.debug("Wrote %d bytes to %s", len(encoded), path)
    return len(encoded)


def relative_files(root: Path) -> List[str]:
    """Sorted POSIX-style paths of every regular file under *root*."""
    return sorted(
        p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_file()
    )


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Context-manager timer for generation phases.

    Usage:
        with Timer("render") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.debug("Timer [%s]: %.4f seconds", self.label, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


__all__: List[str] = [
    "FILE_MODE",
    "DIRECTORY_MODE",
    "ensure_directory",
    "is_empty_directory",
    "write_file",
    "relative_files",
    "Timer",
]
