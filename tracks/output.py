# File: tracks/output.py
"""
Tracks - Command Output
========================
Formats what the commands print.

* ``render_success_output`` - the summary printed after ``tracks new``.  The
  caller passes an ``OutputStyle``; nothing here reads or writes shared
  style state.  Coloured output is produced with rich, plain output is pure
  text.
* ``render_success_json`` / ``render_migration_json`` - the ``--json``
  documents, one per command, serialized with pydantic.
"""

from __future__ import annotations

import io
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.text import Text

from tracks.models import MigrationRecord, SuccessOutput

logger: logging.Logger = logging.getLogger("tracks.output")

LABEL_WIDTH: int = 15


@dataclass(frozen=True)
class OutputStyle:
    """Colour switch plus rich style names for each element."""

    color: bool = True
    success: str = "bold bright_green"
    label: str = "bold bright_blue"
    value: str = "white"
    step: str = "bright_cyan"

    @classmethod
    def plain(cls) -> "OutputStyle":
        return cls(color=False)


def next_steps(output: SuccessOutput) -> List[str]:
    return [
        f"cd {output.project_name}",
        "go mod download",
        "make test",
        "make dev",
    ]


def _git_status(output: SuccessOutput) -> str:
    return "initialized" if output.git_initialized else "not initialized"


def _details(output: SuccessOutput) -> List[tuple]:
    return [
        ("Location:", output.project_path),
        ("Module:", output.module_path),
        ("Database:", output.database_driver),
        ("Git:", _git_status(output)),
    ]


def _render_plain(output: SuccessOutput) -> str:
    lines: List[str] = ["", f"✓ Project '{output.project_name}' created successfully!", ""]
    for label, value in _details(output):
        lines.append(f"{label:<{LABEL_WIDTH}}{value}")
    lines.append("")
    lines.append("Next steps:")
    for index, step in enumerate(next_steps(output), start=1):
        lines.append(f"  {index}. {step}")
    return "\n".join(lines) + "\n"


def _render_color(output: SuccessOutput, style: OutputStyle) -> str:
    text: Text = Text("\n")
    text.append(f"✓ Project '{output.project_name}' created successfully!", style=style.success)
    text.append("\n\n")
    for label, value in _details(output):
        text.append(f"{label:<{LABEL_WIDTH}}", style=style.label)
        value_style: str = style.success if value == "initialized" else style.value
        text.append(value, style=value_style)
        text.append("\n")
    text.append("\n")
    text.append("Next steps:", style=style.label)
    text.append("\n")
    for index, step in enumerate(next_steps(output), start=1):
        text.append(f"  {index}. ")
        text.append(step, style=style.step)
        text.append("\n")

    buffer: io.StringIO = io.StringIO()
    console: Console = Console(
        file=buffer,
        force_terminal=True,
        color_system="standard",
        width=max(120, len(output.project_path) + LABEL_WIDTH + 4),
        highlight=False,
        soft_wrap=True,
    )
    console.print(text, end="")
    return buffer.getvalue()


def render_success_output(output: SuccessOutput, style: OutputStyle = OutputStyle()) -> str:
    """Summary of a finished generation, coloured when ``style.color``."""
    if not style.color:
        return _render_plain(output)
    return _render_color(output, style)


# ---------------------------------------------------------------------------
# JSON documents (--json)
# ---------------------------------------------------------------------------


class ProjectDocument(BaseModel):
    """``tracks --json new`` result."""

    model_config = ConfigDict(frozen=True)

    project_name: str
    project_path: str
    module_path: str
    database_driver: str
    git_initialized: bool
    next_steps: List[str] = Field(default_factory=list)


class MigrationEntry(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    version: int
    name: str
    applied: bool
    applied_at: Optional[datetime] = None


class MigrationDocument(BaseModel):
    """
    ``tracks --json db ...`` result.

    ``migrations`` holds what the command applied, reverted, would apply
    (dry run) or, for ``status``, every known migration.  ``rolled_back`` is
    only filled by ``reset``.  ``error`` is set when a batch stopped early;
    the entries listed were still processed.
    """

    model_config = ConfigDict(frozen=True)

    command: str
    database: str
    driver: str
    dry_run: bool = False
    migrations: List[MigrationEntry] = Field(default_factory=list)
    rolled_back: List[MigrationEntry] = Field(default_factory=list)
    error: Optional[str] = None


def _dump(document: BaseModel) -> str:
    return document.model_dump_json(indent=2) + "\n"


def render_success_json(output: SuccessOutput) -> str:
    document: ProjectDocument = ProjectDocument(**asdict(output), next_steps=next_steps(output))
    return _dump(document)


def render_migration_json(
    command: str,
    records: Sequence[MigrationRecord],
    *,
    database: str,
    driver: str,
    dry_run: bool = False,
    rolled_back: Sequence[MigrationRecord] = (),
    error: Optional[str] = None,
) -> str:
    """One JSON document describing the outcome of a ``db`` command."""
    document: MigrationDocument = MigrationDocument(
        command=command,
        database=database,
        driver=driver,
        dry_run=dry_run,
        migrations=[MigrationEntry.model_validate(record) for record in records],
        rolled_back=[MigrationEntry.model_validate(record) for record in rolled_back],
        error=error,
    )
    return _dump(document)


__all__: List[str] = [
    "OutputStyle",
    "next_steps",
    "render_success_output",
    "ProjectDocument",
    "MigrationEntry",
    "MigrationDocument",
    "render_success_json",
    "render_migration_json",
]
