# File: tracks/project.py
"""
Tracks - Project Detection
===========================
Finds the ``.tracks.yaml`` marker of a generated project by walking upward
from a start directory, and reads it with PyYAML.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from tracks.errors import NotTracksProjectError, TracksError

logger: logging.Logger = logging.getLogger("tracks.project")

MARKER_FILE_NAME: str = ".tracks.yaml"


class TracksProject(BaseModel):
    """Project metadata stored in ``.tracks.yaml``."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = ""
    module_path: str = ""
    database_driver: str = Field(default="", description="Driver value as written by the generator.")
    env_prefix: str = ""
    tracks_version: str = ""
    last_upgraded_version: str = ""
    schema_version: str = ""


def load_marker(path: Path) -> TracksProject:
    """Parse one marker file."""
    try:
        text: str = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TracksError(f"failed to read {MARKER_FILE_NAME}: {exc}") from exc
    try:
        data: Any = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise TracksError(f"failed to parse {MARKER_FILE_NAME}: {exc}") from exc
    if not isinstance(data, dict):
        raise TracksError(f"failed to parse {MARKER_FILE_NAME}: expected a mapping")

    project: Dict[str, Any] = data.get("project") or {}
    if not isinstance(project, dict):
        raise TracksError(f"failed to parse {MARKER_FILE_NAME}: 'project' must be a mapping")
    fields: Dict[str, str] = {key: str(value) for key, value in project.items() if value is not None}
    fields["schema_version"] = str(data.get("schema_version", ""))
    return TracksProject.model_validate(fields)


class ProjectDetector:
    """Locates the generated project enclosing a directory."""

    def detect(self, start_dir: Union[str, Path] = ".") -> Tuple[TracksProject, Path]:
        """
        Return the project metadata and the directory holding the marker.

        Raises NotTracksProjectError when no ancestor has a marker.
        """
        directory: Path = Path(start_dir).resolve()
        while True:
            candidate: Path = directory / MARKER_FILE_NAME
            if candidate.is_file():
                logger.debug("Found %s", candidate)
                return load_marker(candidate), directory
            parent: Path = directory.parent
            if parent == directory:
                break
            directory = parent
        raise NotTracksProjectError(f"no {MARKER_FILE_NAME} found in {Path(start_dir).resolve()} or its parents")

    def find_root(self, start_dir: Union[str, Path] = ".") -> Optional[Path]:
        """Project directory, or None outside a project."""
        try:
            return self.detect(start_dir)[1]
        except NotTracksProjectError:
            return None


__all__: List[str] = [
    "MARKER_FILE_NAME",
    "TracksProject",
    "load_marker",
    "ProjectDetector",
]
