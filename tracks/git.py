# File: tracks/git.py
"""
Tracks - Repository Initializer
================================
Creates a git repository in a freshly generated project and records the
initial commit.  The sub-commands run one after another; the first failure
raises ``GitError`` and the remaining steps are skipped.

The generator treats any ``GitError`` as a warning: a project without
version control is still a complete project.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import List, Sequence, Tuple, Union

from tracks.errors import GitError

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("tracks.git")

GIT_USER_NAME: str = "Tracks"
GIT_USER_EMAIL: str = "tracks@tracks.local"
INITIAL_COMMIT_MESSAGE: str = "Initial commit from Tracks"
GIT_TIMEOUT_SECONDS: float = 60.0


def initial_commit_steps() -> List[Tuple[str, ...]]:
    """Argument vectors, in order, for the initial repository setup."""
    return [
        ("init",),
        ("config", "--local", "user.name", GIT_USER_NAME),
        ("config", "--local", "user.email", GIT_USER_EMAIL),
        ("add", "."),
        ("commit", "-m", INITIAL_COMMIT_MESSAGE),
    ]


def run_git(*args: str, cwd: Union[str, Path], timeout: float = GIT_TIMEOUT_SECONDS) -> str:
    """
    Run ``git <args>`` in *cwd* and return its combined output.

    Raises GitError on a non-zero exit, a timeout or a missing git binary.
    """
    cmd: List[str] = ["git", *args]
    cmd_str: str = " ".join(cmd)
    logger.debug("Running %s in %s", cmd_str, cwd)

    try:
        completed: subprocess.CompletedProcess = subprocess.run(
            cmd,
            cwd=str(cwd),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise GitError(f"git executable not found: {exc}", command=cmd_str) from exc
    except subprocess.TimeoutExpired as exc:
        raise GitError(
            f"git command timed out after {timeout}s: {cmd_str}", command=cmd_str
        ) from exc

    output: str = (completed.stdout or b"").decode("utf-8", errors="replace").strip()
    if completed.returncode != 0:
        raise GitError(
            f"{cmd_str} failed (exit {completed.returncode}): {output}",
            command=cmd_str,
            output=output,
        )
    return output


def initialize_git(
    project_path: Union[str, Path],
    steps: Sequence[Tuple[str, ...]] = (),
) -> None:
    """Initialize a repository at *project_path* and commit every file."""
    for args in steps or initial_commit_steps():
        run_git(*args, cwd=project_path)
    logger.info("Initialized git repository in %s", project_path)


__all__: List[str] = [
    "GIT_USER_NAME",
    "GIT_USER_EMAIL",
    "INITIAL_COMMIT_MESSAGE",
    "initial_commit_steps",
    "run_git",
    "initialize_git",
]
