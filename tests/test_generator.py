"""
tests/test_generator.py
Tests for tracks.generator (ProjectGenerator, manifest) and
tracks.directories.

Tests cover:
- Manifest selection: one variant per driver slot
- Filesystem walk equals manifest plus skeleton
- Driver connection-file mutual exclusivity
- The "demo" scenario
- All-or-nothing generation on render failures
- Git step downgraded to a warning
"""

from __future__ import annotations

import os
import pathlib
import stat
from datetime import datetime
from typing import List, Set

import pytest
from jinja2 import DictLoader

from tracks.directories import (
    PROJECT_DIRECTORIES,
    create_project_directories,
    skeleton_directories,
)
from tracks.errors import (
    DirectoryExistsError,
    GitError,
    TemplateNotFoundError,
    TemplateRenderError,
    ValidationError,
    has_cause,
)
from tracks.generator import (
    DATABASE_SLOT,
    INITIAL_MIGRATION_SLOT,
    GenerationReport,
    ProjectGenerator,
    build_manifest,
)
from tracks.models import DatabaseDriver, TemplateContext
from tracks.project import ProjectDetector
from tracks.templates import TemplateRenderer
from tracks.utils import relative_files

OPEN_CALLS = {
    DatabaseDriver.GO_LIBSQL: 'sql.Open("libsql"',
    DatabaseDriver.SQLITE3: 'sql.Open("sqlite3"',
    DatabaseDriver.POSTGRES: 'sql.Open("postgres"',
}


def _relative_dirs(root: pathlib.Path) -> Set[str]:
    return {p.relative_to(root).as_posix() for p in root.rglob("*") if p.is_dir()}


def _parents(paths: List[str]) -> Set[str]:
    result: Set[str] = set()
    for path in paths:
        parts = path.split("/")[:-1]
        for depth in range(1, len(parts) + 1):
            result.add("/".join(parts[:depth]))
    return result


# ===========================================================================
# Directory planner
# ===========================================================================


class TestDirectories:

    def test_skeleton_includes_intermediate_directories(self) -> None:
        dirs = skeleton_directories()
        assert "internal" in dirs
        assert "internal/http" in dirs
        assert "internal/http/handlers" in dirs
        assert dirs == sorted(set(dirs))

    def test_skeleton_includes_asset_pipeline(self) -> None:
        dirs = skeleton_directories()
        for rel in ("internal/assets/web/css", "internal/assets/dist/js", "internal/http/views/layouts", "cmd/migrate"):
            assert rel in dirs

    def test_create_is_idempotent(self, tmp_path: pathlib.Path) -> None:
        create_project_directories(tmp_path)
        create_project_directories(tmp_path)
        for rel in PROJECT_DIRECTORIES:
            assert (tmp_path / rel).is_dir()


# ===========================================================================
# Manifest
# ===========================================================================


class TestManifest:

    @pytest.mark.parametrize("driver", list(DatabaseDriver))
    def test_one_variant_per_slot(self, driver: DatabaseDriver, context: TemplateContext) -> None:
        manifest = build_manifest(driver, context)
        assert len(manifest.slot(DATABASE_SLOT)) == 1
        assert len(manifest.slot(INITIAL_MIGRATION_SLOT)) == 1
        assert manifest.slot(DATABASE_SLOT)[0].output_path == "internal/db/db.go"

    def test_output_paths_are_unique(self, context: TemplateContext) -> None:
        manifest = build_manifest(DatabaseDriver.POSTGRES, context)
        paths = manifest.output_paths()
        assert len(paths) == len(set(paths)) == len(manifest)

    @pytest.mark.parametrize(
        "driver, folder",
        [
            (DatabaseDriver.GO_LIBSQL, "sqlite"),
            (DatabaseDriver.SQLITE3, "sqlite"),
            (DatabaseDriver.POSTGRES, "postgres"),
        ],
    )
    def test_migration_path_uses_dialect_folder_and_timestamp(
        self, driver: DatabaseDriver, folder: str, context: TemplateContext
    ) -> None:
        entry = build_manifest(driver, context).slot(INITIAL_MIGRATION_SLOT)[0]
        assert entry.output_path == (
            f"internal/db/migrations/{folder}/20250102030405_initial_schema.sql"
        )


# ===========================================================================
# Generation
# ===========================================================================


class TestGenerate:

    def test_demo_scenario(self, tmp_path: pathlib.Path, make_descriptor) -> None:
        out = tmp_path / "x"
        out.mkdir()
        descriptor = make_descriptor(
            "demo", "example.com/a/demo", "go-libsql", init_git=False, output_path=out
        )
        report = ProjectGenerator().generate(descriptor)

        root = out / "demo"
        assert root.is_dir()
        for rel in PROJECT_DIRECTORIES:
            assert (root / rel).is_dir(), rel
        db_go = (root / "internal" / "db" / "db.go").read_text()
        assert OPEN_CALLS[DatabaseDriver.GO_LIBSQL] in db_go
        assert not (root / ".git").exists()
        assert report.git_initialized is False
        assert sorted(p.name for p in out.iterdir()) == ["demo"]

    def test_web_layer_is_generated(self, descriptor) -> None:
        ProjectGenerator().generate(descriptor)
        root = descriptor.project_root
        for rel in (
            ".air.toml",
            "package.json",
            ".templui.json",
            "cmd/migrate/main.go",
            "internal/assets/embed.go",
            "internal/assets/web/css/app.css",
            "internal/assets/web/js/app.js",
            "internal/assets/web/images/.gitkeep",
            "internal/assets/dist/.gitkeep",
            "internal/http/middleware/cache.go",
            "internal/http/middleware/compress.go",
            "internal/http/views/layouts/base.templ",
            "internal/http/views/components/htmx_config.templ",
        ):
            assert (root / rel).is_file(), rel

    @pytest.mark.parametrize("driver", [d.value for d in DatabaseDriver])
    def test_walk_equals_manifest_plus_skeleton(
        self, make_descriptor, fixed_now: datetime, driver: str
    ) -> None:
        descriptor = make_descriptor(database_driver=driver)
        report = ProjectGenerator().generate(descriptor, now=fixed_now)
        root = descriptor.project_root

        assert report.manifest is not None
        manifest_paths = report.manifest.output_paths()
        assert relative_files(root) == manifest_paths
        assert sorted(report.files_written) == manifest_paths
        assert _relative_dirs(root) == set(skeleton_directories()) | _parents(manifest_paths)

    @pytest.mark.parametrize("driver", list(DatabaseDriver))
    def test_connection_file_is_driver_exclusive(self, make_descriptor, driver: DatabaseDriver) -> None:
        descriptor = make_descriptor(database_driver=driver.value)
        ProjectGenerator().generate(descriptor)
        db_go = (descriptor.project_root / "internal" / "db" / "db.go").read_text()

        assert db_go.count(OPEN_CALLS[driver]) == 1
        for other, call in OPEN_CALLS.items():
            if other is not driver:
                assert call not in db_go
        assert driver.go_import in db_go

    def test_existing_empty_directory_is_reused(self, make_descriptor, output_dir: pathlib.Path) -> None:
        (output_dir / "demo").mkdir()
        descriptor = make_descriptor()
        ProjectGenerator().generate(descriptor)
        assert (output_dir / "demo" / "go.mod").is_file()
        assert sorted(p.name for p in output_dir.iterdir()) == ["demo"]

    def test_non_empty_directory_is_rejected_untouched(
        self, make_descriptor, output_dir: pathlib.Path
    ) -> None:
        descriptor = make_descriptor()
        (output_dir / "demo").mkdir()
        (output_dir / "demo" / "keep.txt").write_text("mine")

        with pytest.raises(ValidationError) as info:
            ProjectGenerator().generate(descriptor)
        assert has_cause(info.value, DirectoryExistsError)
        assert [p.name for p in (output_dir / "demo").iterdir()] == ["keep.txt"]
        assert sorted(p.name for p in output_dir.iterdir()) == ["demo"]

    def test_validate_does_not_touch_disk(self, descriptor, output_dir: pathlib.Path) -> None:
        ProjectGenerator().validate(descriptor)
        assert list(output_dir.iterdir()) == []

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permission bits")
    def test_generated_files_are_0644(self, descriptor) -> None:
        ProjectGenerator().generate(descriptor)
        for rel in relative_files(descriptor.project_root):
            mode = stat.S_IMODE((descriptor.project_root / rel).stat().st_mode)
            assert mode == 0o644, rel

    def test_marker_is_detectable(self, make_descriptor) -> None:
        descriptor = make_descriptor(database_driver="postgres")
        ProjectGenerator().generate(descriptor)
        nested = descriptor.project_root / "internal" / "http"
        project, directory = ProjectDetector().detect(nested)
        assert directory == descriptor.project_root.resolve()
        assert project.name == "demo"
        assert project.module_path == "example.com/a/demo"
        assert project.database_driver == "postgres"

    def test_report_summary_and_success_output(self, descriptor) -> None:
        report: GenerationReport = ProjectGenerator().generate(descriptor)
        output = report.success_output()
        assert output.project_name == "demo"
        assert output.project_path == str(descriptor.project_root.resolve())
        assert output.database_driver == "go-libsql"
        assert [m.step_name for m in report.step_metrics] == [
            "Validate", "Plan Directories", "Select Templates", "Render",
        ]
        assert "demo" in report.summary()


# ===========================================================================
# All-or-nothing
# ===========================================================================


class _FailingRenderer(TemplateRenderer):
    """Real catalog; one template fails to write."""

    def __init__(self, failing: str) -> None:
        super().__init__()
        self.failing = failing

    def render_to_file(self, name, data, output_path):
        if name == self.failing:
            raise TemplateRenderError(name, "disk full")
        return super().render_to_file(name, data, output_path)


class TestAtomicity:

    def test_render_failure_leaves_no_trace(self, descriptor, output_dir: pathlib.Path) -> None:
        generator = ProjectGenerator(_FailingRenderer("Makefile.j2"))
        with pytest.raises(TemplateRenderError):
            generator.generate(descriptor)
        assert list(output_dir.iterdir()) == []

    def test_render_failure_keeps_empty_target(self, descriptor, output_dir: pathlib.Path) -> None:
        (output_dir / "demo").mkdir()
        generator = ProjectGenerator(_FailingRenderer("db/libsql.go.j2"))
        with pytest.raises(TemplateRenderError):
            generator.generate(descriptor)
        assert sorted(p.name for p in output_dir.iterdir()) == ["demo"]
        assert list((output_dir / "demo").iterdir()) == []

    def test_missing_catalog_entry_is_fatal(self, descriptor, output_dir: pathlib.Path) -> None:
        generator = ProjectGenerator(TemplateRenderer(DictLoader({"go.mod.j2": "module x\n"})))
        with pytest.raises(TemplateNotFoundError):
            generator.generate(descriptor)
        assert list(output_dir.iterdir()) == []


# ===========================================================================
# Git step
# ===========================================================================


class TestGitStep:

    def test_git_runs_after_move(self, make_descriptor) -> None:
        seen: List[pathlib.Path] = []

        def _init(path: pathlib.Path) -> None:
            assert (path / "go.mod").is_file()
            seen.append(path)

        descriptor = make_descriptor(init_git=True)
        report = ProjectGenerator(git_initializer=_init).generate(descriptor)
        assert seen == [descriptor.project_root]
        assert report.git_initialized is True

    def test_git_failure_is_a_warning(self, make_descriptor, caplog: pytest.LogCaptureFixture) -> None:
        def _init(path: pathlib.Path) -> None:
            raise GitError("git commit failed", command="git commit")

        descriptor = make_descriptor(init_git=True)
        with caplog.at_level("WARNING", logger="tracks.generator"):
            report = ProjectGenerator(git_initializer=_init).generate(descriptor)

        assert report.git_initialized is False
        assert report.git_error == "git commit failed"
        assert (descriptor.project_root / "go.mod").is_file()
        assert any("Git initialization failed" in r.message for r in caplog.records)

    def test_git_skipped_when_not_requested(self, descriptor) -> None:
        def _init(path: pathlib.Path) -> None:
            raise AssertionError("git must not run")

        report = ProjectGenerator(git_initializer=_init).generate(descriptor)
        assert report.git_requested is False
        assert report.git_initialized is False
