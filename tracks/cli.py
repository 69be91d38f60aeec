# File: tracks/cli.py
"""
Tracks - Command-Line Interface
================================

argparse front end for the project generator and the migration manager.

Usage examples::

    # New project with the default go-libsql driver
    python -m tracks new myapp

    # PostgreSQL project with a custom module path, no git
    python -m tracks new myapp --db postgres --module github.com/me/myapp --no-git

    # Migrations (run inside a generated project)
    python -m tracks db migrate --dry-run
    python -m tracks db migrate -n 1
    python -m tracks db rollback
    python -m tracks db status
    python -m tracks db reset --force

    # Machine-readable output, before or after the subcommand
    python -m tracks --json db status
    python -m tracks new myapp --no-git --json

Exit codes:
    0 — success
    1 — validation error
    2 — generation error
    3 — database / migration error
    4 — input/argument error
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, NoReturn, Optional, Sequence, Tuple

from tracks.database import DatabaseManager, sanitize_url
from tracks.errors import (
    MigrationBatchError,
    NotTracksProjectError,
    TracksError,
    ValidationError,
)
from tracks.generator import GenerationReport, ProjectGenerator
from tracks.migrations import MigrationRunner, migrations_dir
from tracks.models import DEFAULT_ENV_PREFIX, TRACKS_VERSION, DatabaseDriver, MigrationRecord, MigrationResult
from tracks.output import OutputStyle, render_migration_json, render_success_json, render_success_output
from tracks.project import ProjectDetector, TracksProject
from tracks.validators import build_descriptor

# ---------------------------------------------------------------------------
# Logger (configured in _setup_logging)
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("tracks")


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------

EXIT_SUCCESS: int = 0
EXIT_VALIDATION_ERROR: int = 1
EXIT_GENERATION_ERROR: int = 2
EXIT_DATABASE_ERROR: int = 3
EXIT_INPUT_ERROR: int = 4

# Drivers whose migrations the CLI runs itself; the rest use make targets.
CLI_MIGRATION_DRIVERS: FrozenSet[DatabaseDriver] = frozenset({DatabaseDriver.POSTGRES})

_MAKE_TARGETS: Dict[str, str] = {
    "migrate": "migrate-up",
    "rollback": "migrate-down",
    "status": "migrate-status",
    "reset": "migrate-reset",
}


class CommandError(TracksError):
    """A command failed; carries the process exit code."""

    def __init__(self, message: str, exit_code: int) -> None:
        self.exit_code: int = exit_code
        super().__init__(message)


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(verbosity: int) -> None:
    """
    Configure the root tracks logger.

    Args:
        verbosity: 0 = WARNING, 1 = INFO, 2+ = DEBUG, negative = ERROR.
    """
    if verbosity >= 2:
        level = logging.DEBUG
    elif verbosity >= 1:
        level = logging.INFO
    elif verbosity < 0:
        level = logging.ERROR
    else:
        level = logging.WARNING

    handler: logging.StreamHandler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    ))

    root_logger: logging.Logger = logging.getLogger("tracks")
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the argument parser."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="tracks",
        description="Tracks: generate Go web projects and manage their database migrations.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  %(prog)s new myapp\n"
            "  %(prog)s new myapp --db postgres --module github.com/me/myapp\n"
            "  %(prog)s db migrate --dry-run\n"
            "  %(prog)s db status\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"Tracks v{TRACKS_VERSION}")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (-v = INFO, -vv = DEBUG).",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors.")

    # --json is accepted before or after the subcommand; SUPPRESS keeps a
    # subparser from overwriting a value given on the root parser.
    output_flags: argparse.ArgumentParser = argparse.ArgumentParser(add_help=False)
    output_flags.add_argument(
        "--json",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Print one JSON document instead of text (useful for scripting).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print one JSON document instead of text (useful for scripting).",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    # --- new ---
    new = commands.add_parser("new", parents=[output_flags], help="Create a new project.")
    new.add_argument("project_name", metavar="NAME", help="Project name, also the directory name.")
    new.add_argument(
        "--module",
        default="",
        metavar="PATH",
        help="Go module path (default: example.com/NAME).",
    )
    new.add_argument(
        "--db",
        default=DatabaseDriver.GO_LIBSQL.value,
        choices=list(DatabaseDriver.choices()),
        help="Database driver (default: %(default)s).",
    )
    new.add_argument(
        "--env-prefix",
        default=DEFAULT_ENV_PREFIX,
        metavar="PREFIX",
        help="Environment variable prefix of the generated app (default: %(default)s).",
    )
    new.add_argument("--no-git", action="store_true", help="Skip git repository initialization.")
    new.add_argument(
        "-o", "--output",
        default=".",
        metavar="DIR",
        help="Directory in which the project directory is created (default: current).",
    )
    new.add_argument("--no-color", action="store_true", help="Disable coloured output.")
    new.set_defaults(handler=_run_new)

    # --- db ---
    db = commands.add_parser("db", help="Manage database migrations.")
    db_commands = db.add_subparsers(dest="db_command", metavar="SUBCOMMAND")
    db_commands.required = True

    migrate = db_commands.add_parser("migrate", parents=[output_flags], help="Apply pending migrations.")
    migrate.add_argument(
        "-n", "--steps",
        type=int,
        default=0,
        help="Number of migrations to apply (0 = all pending).",
    )
    migrate.add_argument("--dry-run", action="store_true", help="List pending migrations only.")
    migrate.set_defaults(handler=_run_migrate)

    rollback = db_commands.add_parser("rollback", parents=[output_flags], help="Roll back applied migrations.")
    rollback.add_argument(
        "-n", "--steps",
        type=int,
        default=1,
        help="Number of migrations to roll back (default: 1).",
    )
    rollback.set_defaults(handler=_run_rollback)

    status = db_commands.add_parser("status", parents=[output_flags], help="Show applied and pending migrations.")
    status.set_defaults(handler=_run_status)

    reset = db_commands.add_parser(
        "reset",
        parents=[output_flags],
        help="Roll back everything and re-apply (destroys data).",
    )
    reset.add_argument("--force", action="store_true", help="Skip the confirmation prompt.")
    reset.set_defaults(handler=_run_reset)

    return parser


# ---------------------------------------------------------------------------
# new
# ---------------------------------------------------------------------------


def _use_color(args: argparse.Namespace) -> bool:
    if args.no_color or "NO_COLOR" in os.environ:
        return False
    return sys.stdout.isatty()


def _run_new(args: argparse.Namespace) -> int:
    module_path: str = args.module or f"example.com/{args.project_name}"
    try:
        descriptor = build_descriptor(
            args.project_name,
            module_path,
            args.db,
            env_prefix=args.env_prefix,
            init_git=not args.no_git,
            output_path=Path(args.output).resolve(),
        )
    except ValidationError as exc:
        logger.error("%s", exc)
        return EXIT_VALIDATION_ERROR

    try:
        report: GenerationReport = ProjectGenerator().generate(descriptor)
    except ValidationError as exc:
        logger.error("%s", exc)
        return EXIT_VALIDATION_ERROR
    except TracksError as exc:
        logger.error("Generation failed: %s", exc)
        return EXIT_GENERATION_ERROR

    logger.info("Generation report:\n%s", report.summary())
    if args.json:
        sys.stdout.write(render_success_json(report.success_output()))
        return EXIT_SUCCESS
    style: OutputStyle = OutputStyle(color=_use_color(args))
    sys.stdout.write(render_success_output(report.success_output(), style))
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# db
# ---------------------------------------------------------------------------


def _detect_project(command: str) -> Tuple[TracksProject, Path, DatabaseDriver]:
    try:
        project, project_dir = ProjectDetector().detect(Path.cwd())
    except NotTracksProjectError as exc:
        raise CommandError(
            "not in a Tracks project directory (missing .tracks.yaml)", EXIT_INPUT_ERROR
        ) from exc

    try:
        driver: DatabaseDriver = DatabaseDriver(project.database_driver)
    except ValueError:
        raise CommandError(
            f"unsupported database driver in .tracks.yaml: {project.database_driver!r}",
            EXIT_INPUT_ERROR,
        ) from None

    if driver not in CLI_MIGRATION_DRIVERS:
        raise CommandError(
            f"tracks db {command} only supports Postgres projects (found: {driver.value}). "
            f"For SQLite/go-libsql projects, use: make {_MAKE_TARGETS[command]}",
            EXIT_INPUT_ERROR,
        )
    return project, project_dir, driver


def _with_runner(
    command: str,
    action: Callable[[MigrationRunner, DatabaseManager], int],
) -> int:
    _, project_dir, driver = _detect_project(command)

    manager: DatabaseManager = DatabaseManager(driver)
    manager.load_env(project_dir)
    if not manager.database_url:
        raise CommandError(
            "DATABASE_URL is not set (set it in .env or environment variables)",
            EXIT_DATABASE_ERROR,
        )

    engine = manager.connect()
    try:
        runner: MigrationRunner = MigrationRunner(engine, driver, migrations_dir(project_dir, driver))
        return action(runner, manager)
    finally:
        manager.close()


def _print_records(records: Sequence[MigrationRecord], suffix: str = "") -> None:
    for record in records:
        print(f"  ✓ {record.name}{suffix}")


def _write_json(
    args: argparse.Namespace,
    manager: DatabaseManager,
    records: Sequence[MigrationRecord],
    **extra: object,
) -> int:
    sys.stdout.write(render_migration_json(
        args.db_command,
        records,
        database=sanitize_url(manager.database_url),
        driver=manager.driver.value,
        **extra,
    ))
    return EXIT_SUCCESS


def _run_migrate(args: argparse.Namespace) -> int:
    def action(runner: MigrationRunner, manager: DatabaseManager) -> int:
        if args.dry_run:
            pending: List[MigrationRecord] = runner.pending()
            if args.json:
                return _write_json(args, manager, pending, dry_run=True)
            if not pending:
                print("No pending migrations")
                return EXIT_SUCCESS
            print("Dry run - migrations that would be applied:")
            for record in pending:
                print(f"  • {record.name}")
            print(f"\n{len(pending)} pending migration(s).")
            return EXIT_SUCCESS

        if not args.json:
            print("Running migrations...")
        try:
            result: MigrationResult = runner.apply(args.steps)
        except MigrationBatchError as exc:
            if args.json:
                _write_json(args, manager, exc.result.records, error=str(exc))
            else:
                _print_records(exc.result.records)
            raise
        if args.json:
            return _write_json(args, manager, result.records)
        if not result.records:
            print("No pending migrations")
            return EXIT_SUCCESS
        _print_records(result.records)
        print(f"\nSuccessfully applied {len(result)} migration(s).")
        return EXIT_SUCCESS

    return _with_runner("migrate", action)


def _run_rollback(args: argparse.Namespace) -> int:
    def action(runner: MigrationRunner, manager: DatabaseManager) -> int:
        if not args.json:
            print("Rolling back migrations...")
        result: MigrationResult = runner.revert(args.steps)
        if result.interrupted_by is not None:
            logger.warning("Rollback stopped early: %s", result.interrupted_by)
        if args.json:
            error: Optional[str] = None if result.interrupted_by is None else str(result.interrupted_by)
            return _write_json(args, manager, result.records, error=error)
        if not result.records:
            print("No migrations to roll back")
            return EXIT_SUCCESS
        _print_records(result.records, " (rolled back)")
        print(f"\nSuccessfully rolled back {len(result)} migration(s).")
        return EXIT_SUCCESS

    return _with_runner("rollback", action)


def _run_status(args: argparse.Namespace) -> int:
    def action(runner: MigrationRunner, manager: DatabaseManager) -> int:
        records: List[MigrationRecord] = runner.status()
        if args.json:
            return _write_json(args, manager, records)
        applied: List[MigrationRecord] = [r for r in records if r.applied]
        pending: List[MigrationRecord] = [r for r in records if not r.applied]

        print(f"Database: {sanitize_url(manager.database_url)}")
        print(f"Driver: {manager.driver.value}\n")
        if applied:
            print("Applied Migrations:")
            _print_records(applied)
            print()
        if pending:
            print("Pending Migrations:")
            for record in pending:
                print(f"  ○ {record.name}")
            print()
        print(f"Total: {len(applied)} applied, {len(pending)} pending")
        return EXIT_SUCCESS

    return _with_runner("status", action)


def _confirm_reset(database_url: str) -> bool:
    print(
        "\n⚠️  WARNING: This will delete all data in the database!\n\n"
        f"Database: {sanitize_url(database_url)}\n\n"
        "This action will:\n"
        "  - Drop all tables\n"
        "  - Re-run all migrations\n"
        "  - Delete all existing data\n"
    )
    try:
        response: str = input("Are you sure? (y/N): ")
    except EOFError:
        return False
    return response.strip().lower() in ("y", "yes")


def _run_reset(args: argparse.Namespace) -> int:
    # The confirmation prompt would corrupt the JSON document on stdout.
    if args.json and not args.force:
        raise CommandError("tracks db reset --json requires --force", EXIT_INPUT_ERROR)

    def action(runner: MigrationRunner, manager: DatabaseManager) -> int:
        if not args.force and not _confirm_reset(manager.database_url):
            print("Reset cancelled.")
            return EXIT_SUCCESS

        if not args.json:
            print("Resetting database...")
        reverted, applied = runner.reset()
        if args.json:
            return _write_json(args, manager, applied.records, rolled_back=reverted.records)
        if reverted.records:
            print("Rolled back migrations:")
            _print_records(reverted.records, " (rolled back)")
        if not applied.records:
            print("No migrations to apply after reset.")
            return EXIT_SUCCESS
        print("Applied migrations:")
        _print_records(applied.records)
        print(f"\nReset complete. Applied {len(applied)} migration(s).")
        return EXIT_SUCCESS

    return _with_runner("reset", action)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Parse *argv*, run the command and return its exit code."""
    parser: argparse.ArgumentParser = _build_parser()
    args: argparse.Namespace = parser.parse_args(argv)
    _setup_logging(-1 if args.quiet else args.verbose)

    try:
        return args.handler(args)
    except CommandError as exc:
        logger.error("%s", exc)
        return exc.exit_code
    except TracksError as exc:
        logger.error("%s", exc)
        return EXIT_DATABASE_ERROR
    except KeyboardInterrupt:
        logger.error("Interrupted.")
        return EXIT_INPUT_ERROR


def cli_main(argv: Optional[Sequence[str]] = None) -> NoReturn:
    """
    Main CLI entry point.

    Can be called from ``__main__.py`` or directly for testing.
    """
    sys.exit(run(argv))


__all__: List[str] = [
    "cli_main",
    "run",
    "CLI_MIGRATION_DRIVERS",
    "EXIT_SUCCESS",
    "EXIT_VALIDATION_ERROR",
    "EXIT_GENERATION_ERROR",
    "EXIT_DATABASE_ERROR",
    "EXIT_INPUT_ERROR",
]
