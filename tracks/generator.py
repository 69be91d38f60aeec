# File: tracks/generator.py
"""
Tracks - Project Generation Pipeline (Orchestrator)
====================================================

Connects every generation phase together:

    Descriptor → Validate → Plan Directories → Select Templates → Render → Git

The ``ProjectGenerator`` class is both the programmatic API and the backend
of ``tracks new``.

Workflow::

    1. Build the ``TemplateContext`` once from the descriptor.
    2. Run every validator check; nothing is created on failure.
    3. Create a hidden staging directory beside the project root and
       materialize the directory skeleton inside it.
    4. Build the ``TemplateManifest``: the static catalog plus exactly one
       variant per driver-specific slot.
    5. Render every manifest entry into the staging tree.
    6. Move the staging tree onto the project root with one rename.
    7. Optionally initialize git; failure is downgraded to a warning.

Generation is all-or-nothing: if any of steps 3-6 fails the staging tree is
discarded and the project root is left exactly as it was.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from tracks.directories import create_project_directories
from tracks.errors import GenerationError, GitError, TemplateNotFoundError
from tracks.git import initialize_git
from tracks.models import DatabaseDriver, ProjectDescriptor, SuccessOutput, TemplateContext
from tracks.templates import TemplateRenderer
from tracks.utils import DIRECTORY_MODE, Timer
from tracks.validators import validate_descriptor

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("tracks.generator")


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------

STATIC_TEMPLATES: Mapping[str, str] = {
    "go.mod.j2": "go.mod",
    "README.md.j2": "README.md",
    "gitignore.j2": ".gitignore",
    "golangci.yml.j2": ".golangci.yml",
    "mockery.yaml.j2": ".mockery.yaml",
    "tracks.yaml.j2": ".tracks.yaml",
    "env.example.j2": ".env.example",
    "Makefile.j2": "Makefile",
    "sqlc.yaml.j2": "sqlc.yaml",
    "cmd/server/main.go.j2": "cmd/server/main.go",
    "internal/config/config.go.j2": "internal/config/config.go",
    "internal/interfaces/health.go.j2": "internal/interfaces/health.go",
    "internal/interfaces/logger.go.j2": "internal/interfaces/logger.go",
    "internal/logging/logger.go.j2": "internal/logging/logger.go",
    "internal/domain/health/service.go.j2": "internal/domain/health/service.go",
    "internal/http/server.go.j2": "internal/http/server.go",
    "internal/http/routes/routes.go.j2": "internal/http/routes/routes.go",
    "internal/http/routes/health.go.j2": "internal/http/routes/health.go",
    "internal/http/handlers/health.go.j2": "internal/http/handlers/health.go",
    "internal/http/middleware/logging.go.j2": "internal/http/middleware/logging.go",
    "cmd/migrate/main.go.j2": "cmd/migrate/main.go",
    # Web layer: live reload, asset pipeline and templ views.
    "air.toml.j2": ".air.toml",
    "package.json.j2": "package.json",
    "templui.json.j2": ".templui.json",
    "internal/assets/embed.go.j2": "internal/assets/embed.go",
    "internal/assets/web/css/app.css.j2": "internal/assets/web/css/app.css",
    "internal/assets/web/js/app.js.j2": "internal/assets/web/js/app.js",
    "internal/assets/web/images/gitkeep.j2": "internal/assets/web/images/.gitkeep",
    "internal/assets/dist/gitkeep.j2": "internal/assets/dist/.gitkeep",
    "internal/http/middleware/cache.go.j2": "internal/http/middleware/cache.go",
    "internal/http/middleware/compress.go.j2": "internal/http/middleware/compress.go",
    "internal/http/views/layouts/base.templ.j2": "internal/http/views/layouts/base.templ",
    "internal/http/views/components/htmx_config.templ.j2": "internal/http/views/components/htmx_config.templ",
}

DATABASE_SLOT: str = "database"
INITIAL_MIGRATION_SLOT: str = "initial_migration"

_DATABASE_TEMPLATES: Dict[DatabaseDriver, str] = {
    DatabaseDriver.GO_LIBSQL: "db/libsql.go.j2",
    DatabaseDriver.SQLITE3: "db/sqlite3.go.j2",
    DatabaseDriver.POSTGRES: "db/postgres.go.j2",
}

_MIGRATION_TEMPLATES: Dict[str, str] = {
    "sqlite": "migrations/sqlite/initial_schema.sql.j2",
    "postgres": "migrations/postgres/initial_schema.sql.j2",
}


@dataclass(frozen=True)
class ManifestEntry:
    """One template rendered to one project-relative path."""

    template: str
    output_path: str
    slot: Optional[str] = None


@dataclass(frozen=True)
class TemplateManifest:
    """Resolved template → output-path mapping for one run."""

    entries: Tuple[ManifestEntry, ...] = ()

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def output_paths(self) -> List[str]:
        return sorted(entry.output_path for entry in self.entries)

    def templates(self) -> List[str]:
        return [entry.template for entry in self.entries]

    def slot(self, name: str) -> List[ManifestEntry]:
        return [entry for entry in self.entries if entry.slot == name]

    def as_dict(self) -> Dict[str, str]:
        return {entry.template: entry.output_path for entry in self.entries}


def migration_output_path(driver: DatabaseDriver, timestamp: str) -> str:
    """Relative path of the initial schema migration for *driver*."""
    return f"internal/db/migrations/{driver.migrations_dir_name}/{timestamp}_initial_schema.sql"


def build_manifest(driver: DatabaseDriver, context: TemplateContext) -> TemplateManifest:
    """Static catalog plus exactly one variant for each driver-specific slot."""
    entries: List[ManifestEntry] = [
        ManifestEntry(template=template, output_path=path)
        for template, path in STATIC_TEMPLATES.items()
    ]
    entries.append(
        ManifestEntry(
            template=_DATABASE_TEMPLATES[driver],
            output_path="internal/db/db.go",
            slot=DATABASE_SLOT,
        )
    )
    entries.append(
        ManifestEntry(
            template=_MIGRATION_TEMPLATES[driver.migrations_dir_name],
            output_path=migration_output_path(driver, context.migration_timestamp),
            slot=INITIAL_MIGRATION_SLOT,
        )
    )
    return TemplateManifest(entries=tuple(entries))


# ---------------------------------------------------------------------------
# Generation report
# ---------------------------------------------------------------------------


@dataclass(frozen=False, slots=True)
class GenerationStepMetric:
    """Timing and outcome for a single pipeline step."""

    step_name: str = ""
    success: bool = True
    elapsed_seconds: float = 0.0
    detail: str = ""


@dataclass(frozen=False, slots=True)
class GenerationReport:
    """Outcome of ``ProjectGenerator.generate()``."""

    project_name: str = ""
    project_path: str = ""
    module_path: str = ""
    database_driver: str = ""

    files_written: List[str] = field(default_factory=list)
    total_bytes: int = 0
    total_elapsed_seconds: float = 0.0

    git_requested: bool = False
    git_initialized: bool = False
    git_error: Optional[str] = None

    manifest: Optional[TemplateManifest] = None
    step_metrics: List[GenerationStepMetric] = field(default_factory=list)

    def success_output(self) -> SuccessOutput:
        return SuccessOutput(
            project_name=self.project_name,
            project_path=self.project_path,
            module_path=self.module_path,
            database_driver=self.database_driver,
            git_initialized=self.git_initialized,
        )

    def summary(self) -> str:
        """Human-readable per-step breakdown."""
        lines: List[str] = [
            f"Project:  {self.project_name}",
            f"Location: {self.project_path}",
            f"Files:    {len(self.files_written)} ({self.total_bytes:,} bytes)",
            f"Time:     {self.total_elapsed_seconds:.3f}s",
        ]
        for step in self.step_metrics:
            icon: str = "✓" if step.success else "✗"
            lines.append(
                f"  {icon} {step.step_name:<20s} {step.elapsed_seconds:>7.3f}s  {step.detail}"
            )
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# ProjectGenerator
# ---------------------------------------------------------------------------

GitInitializer = Callable[[Path], None]


class ProjectGenerator:
    """
    Generation orchestrator.

    Usage::

        generator = ProjectGenerator()
        report = generator.generate(descriptor)
        print(report.summary())

    Reusable: one instance can generate any number of projects.
    """

    def __init__(
        self,
        renderer: Optional[TemplateRenderer] = None,
        *,
        git_initializer: GitInitializer = initialize_git,
    ) -> None:
        self.renderer: TemplateRenderer = renderer or TemplateRenderer()
        self._git_initializer: GitInitializer = git_initializer

    # -----------------------------------------------------------------
    # Public API
    # -----------------------------------------------------------------

    def validate(self, descriptor: ProjectDescriptor) -> None:
        """Run every validator check without touching the target."""
        validate_descriptor(descriptor)

    def generate(
        self,
        descriptor: ProjectDescriptor,
        now: Optional[datetime] = None,
    ) -> GenerationReport:
        """
        Generate the project described by *descriptor*.

        Raises ValidationError before any side effect, or GenerationError /
        TemplateRenderError / TemplateNotFoundError after which the project
        root is unchanged.
        """
        pipeline_start: float = time.perf_counter()
        context: TemplateContext = TemplateContext.from_descriptor(descriptor, now=now)
        driver: DatabaseDriver = DatabaseDriver(descriptor.database_driver)
        project_root: Path = descriptor.project_root

        report: GenerationReport = GenerationReport(
            project_name=descriptor.project_name,
            project_path=str(project_root.resolve()),
            module_path=descriptor.module_path,
            database_driver=driver.value,
            git_requested=descriptor.init_git,
        )

        with Timer("validate") as t_validate:
            self.validate(descriptor)
        report.step_metrics.append(GenerationStepMetric(
            step_name="Validate",
            elapsed_seconds=t_validate.elapsed,
            detail="all checks passed",
        ))

        staging: Path = self._create_staging(project_root)
        try:
            self._step_directories(staging, report)
            manifest: TemplateManifest = self._step_select(driver, context, report)
            self._step_render(manifest, context, staging, report)
            self._promote(staging, project_root)
        except BaseException:
            self._discard_staging(staging)
            raise

        logger.info("Generated %s (%d files) at %s", descriptor.project_name,
                    len(report.files_written), project_root)

        if descriptor.init_git:
            self._step_git(project_root, report)

        report.total_elapsed_seconds = time.perf_counter() - pipeline_start
        return report

    # -----------------------------------------------------------------
    # Pipeline steps
    # -----------------------------------------------------------------

    def _step_directories(self, staging: Path, report: GenerationReport) -> None:
        with Timer("directories") as t:
            created: List[Path] = create_project_directories(staging)
        report.step_metrics.append(GenerationStepMetric(
            step_name="Plan Directories",
            elapsed_seconds=t.elapsed,
            detail=f"{len(created)} directories",
        ))

    def _step_select(
        self,
        driver: DatabaseDriver,
        context: TemplateContext,
        report: GenerationReport,
    ) -> TemplateManifest:
        with Timer("select") as t:
            manifest: TemplateManifest = build_manifest(driver, context)
            for entry in manifest:
                if not self.renderer.has_template(entry.template):
                    raise TemplateNotFoundError(entry.template)
        report.manifest = manifest
        report.step_metrics.append(GenerationStepMetric(
            step_name="Select Templates",
            elapsed_seconds=t.elapsed,
            detail=f"{len(manifest)} templates for {driver.value}",
        ))
        return manifest

    def _step_render(
        self,
        manifest: TemplateManifest,
        context: TemplateContext,
        staging: Path,
        report: GenerationReport,
    ) -> None:
        with Timer("render") as t:
            for entry in manifest:
                target: Path = staging.joinpath(*entry.output_path.split("/"))
                self.renderer.render_to_file(entry.template, context, target)
                report.files_written.append(entry.output_path)
                report.total_bytes += target.stat().st_size
                logger.debug("Rendered %s -> %s", entry.template, entry.output_path)
        report.step_metrics.append(GenerationStepMetric(
            step_name="Render",
            elapsed_seconds=t.elapsed,
            detail=f"{len(report.files_written)} files, {report.total_bytes:,} bytes",
        ))

    def _step_git(self, project_root: Path, report: GenerationReport) -> None:
        with Timer("git") as t:
            try:
                self._git_initializer(project_root)
                report.git_initialized = True
            except GitError as exc:
                report.git_error = str(exc)
                logger.warning("Git initialization failed: %s", exc)
        report.step_metrics.append(GenerationStepMetric(
            step_name="Initialize Git",
            success=report.git_initialized,
            elapsed_seconds=t.elapsed,
            detail="initial commit created" if report.git_initialized else "skipped after failure",
        ))

    # -----------------------------------------------------------------
    # Staging
    # -----------------------------------------------------------------

    @staticmethod
    def _create_staging(project_root: Path) -> Path:
        try:
            staging: Path = Path(tempfile.mkdtemp(
                prefix=f".{project_root.name}.",
                suffix=".staging",
                dir=str(project_root.parent),
            ))
            os.chmod(staging, DIRECTORY_MODE)
        except OSError as exc:
            raise GenerationError("create staging directory", str(project_root.parent), str(exc)) from exc
        logger.debug("Staging generation in %s", staging)
        return staging

    @staticmethod
    def _promote(staging: Path, project_root: Path) -> None:
        # Validation guaranteed an existing root is empty.
        had_root: bool = project_root.is_dir()
        try:
            if had_root:
                project_root.rmdir()
            os.rename(staging, project_root)
        except OSError as exc:
            if had_root and not project_root.exists():
                project_root.mkdir(mode=DIRECTORY_MODE)
            raise GenerationError("move project into place", str(project_root), str(exc)) from exc

    @staticmethod
    def _discard_staging(staging: Path) -> None:
        try:
            shutil.rmtree(staging)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.warning("Failed to remove staging directory %s: %s", staging, exc)


__all__: List[str] = [
    "STATIC_TEMPLATES",
    "DATABASE_SLOT",
    "INITIAL_MIGRATION_SLOT",
    "ManifestEntry",
    "TemplateManifest",
    "migration_output_path",
    "build_manifest",
    "GenerationStepMetric",
    "GenerationReport",
    "ProjectGenerator",
]
