# File: tracks/__init__.py
"""
Tracks — Go Project Generator & Migration Manager
===================================================

Generates Go web-service projects from an embedded template catalog and
manages the ordered SQL migrations of those projects.

Architecture overview::

    ┌──────────────┐     ┌──────────────────┐     ┌──────────────────┐
    │  CLI / Entry │────▶│ ProjectGenerator │────▶│ TemplateRenderer │
    │   (cli.py)   │     │  (generator.py)  │     │  (templates.py)  │
    └──────┬───────┘     └────────┬─────────┘     └──────────────────┘
           │                      │
           │         ┌────────────┼────────────┐
           │         ▼            ▼            ▼
           │   ┌──────────┐ ┌───────────┐ ┌────────┐
           │   │validators│ │directories│ │  git   │
           │   └──────────┘ └───────────┘ └────────┘
           ▼
    ┌─────────────────┐     ┌──────────────────┐
    │ MigrationRunner │────▶│ migration_source │
    │ (migrations.py) │     │  (goose format)  │
    └─────────────────┘     └──────────────────┘

Usage::

    from tracks import ProjectGenerator, build_descriptor
    descriptor = build_descriptor("demo", "example.com/a/demo", "go-libsql")
    report = ProjectGenerator().generate(descriptor)

    python -m tracks new demo --db postgres
"""

from __future__ import annotations

from tracks.models import TRACKS_VERSION

__version__: str = TRACKS_VERSION

from tracks.errors import TracksError, ValidationError, has_cause
from tracks.models import (
    DatabaseDriver,
    MigrationDirection,
    MigrationRecord,
    MigrationResult,
    ProjectDescriptor,
    SuccessOutput,
    TemplateContext,
)
from tracks.validators import build_descriptor, validate_descriptor
from tracks.templates import TemplateRenderer
from tracks.generator import GenerationReport, ProjectGenerator, TemplateManifest, build_manifest
from tracks.migrations import MigrationRunner, migrations_dir
from tracks.database import DatabaseManager, sanitize_url

__all__: list[str] = [
    "__version__",
    "TracksError",
    "ValidationError",
    "has_cause",
    "DatabaseDriver",
    "MigrationDirection",
    "MigrationRecord",
    "MigrationResult",
    "ProjectDescriptor",
    "SuccessOutput",
    "TemplateContext",
    "build_descriptor",
    "validate_descriptor",
    "TemplateRenderer",
    "GenerationReport",
    "ProjectGenerator",
    "TemplateManifest",
    "build_manifest",
    "MigrationRunner",
    "migrations_dir",
    "DatabaseManager",
    "sanitize_url",
]
