"""CLI for parallel, snapshot-consistent PostgreSQL dump and restore.

Usage:
    pg-parallel dump -d mydb -j 8 backups/mydb
    pg-parallel dump -d mydb -n public -T 'public.audit_*'
    pg-parallel restore -d newdb -j 8 backups/mydb
    pg-parallel restore --info backups/mydb

Commands:
    dump     - Dump schema sections and table data into a backup directory
    restore  - Restore a backup directory into a database

Exit codes:
    0 success, 1 interrupted, 2 fatal error, 3 one or more tables failed
"""

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from pg_parallel import __version__
from pg_parallel.backup.dump import backup_database
from pg_parallel.backup.layout import validate_backup
from pg_parallel.backup.models import RunResult
from pg_parallel.backup.restore import restore_database
from pg_parallel.config.loader import load_config, resolve_connection, resolve_jobs
from pg_parallel.errors import PgParallelError
from pg_parallel.logger import configure_logging, err_console
from pg_parallel.pgtools import DumpFilters
from pg_parallel.workers.cancel import CancellationToken

console = Console()

EXIT_OK = 0
EXIT_INTERRUPTED = 1
EXIT_FATAL = 2
EXIT_UNITS_FAILED = 3


# ============================================================================
# Result reporting
# ============================================================================


def _report(result: RunResult, verb: str) -> int:
    """Print a run summary and map it to an exit code."""
    if result.interrupted:
        err_console.print(f"[bold yellow]![/bold yellow] {verb} interrupted")
        return EXIT_INTERRUPTED

    pool = result.pool
    if pool is not None and not pool.ok:
        table = Table(title=f"{verb} failures", show_header=True, header_style="bold")
        table.add_column("Table")
        table.add_column("Worker", justify="right")
        table.add_column("Status")
        for outcome in pool.failed_units + pool.skipped_units:
            style = "red" if outcome.status == "failed" else "yellow"
            table.add_row(
                outcome.unit.display_name,
                str(outcome.slot),
                f"[{style}]{outcome.status.value}[/{style}]",
            )
        err_console.print(table)
        for worker in pool.failed_workers:
            if worker.stderr:
                err_console.print(f"[dim]worker {worker.slot}:[/dim] {worker.stderr[-1]}")
        err_console.print(
            f"[bold red]x[/bold red] {verb} incomplete: "
            f"{len(pool.done_units)} of {len(pool.outcomes)} tables transferred, "
            f"post-data section skipped"
        )
        return EXIT_UNITS_FAILED

    tables = len(pool.done_units) if pool is not None else 0
    console.print(
        f"[bold green]v[/bold green] {verb} complete: "
        f"[bold]{tables}[/bold] tables in {result.elapsed:.1f}s "
        f"([cyan]{result.directory}[/cyan])"
    )
    return EXIT_OK


def _show_info(directory: Path) -> int:
    """Print backup metadata without connecting to any database."""
    report = validate_backup(directory)
    metadata = report["metadata"]

    table = Table(title="Backup", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Directory", str(directory))
    if metadata is not None:
        table.add_row("Created", metadata.created_at.isoformat(timespec="seconds"))
        table.add_row("Database", f"[bold cyan]{metadata.database}[/bold cyan]")
        table.add_row("Server version", metadata.server_version)
        table.add_row("Tables", str(metadata.table_count))
        table.add_row("Jobs", str(metadata.jobs))
        if metadata.tool_version:
            table.add_row("Written by", f"pg-parallel {metadata.tool_version}")
    table.add_row("Data files", str(report["table_count"]))
    console.print(table)

    for warning in report["warnings"]:
        err_console.print(f"[yellow]warning:[/yellow] {warning}")
    for error in report["errors"]:
        err_console.print(f"[red]error:[/red] {error}")

    return EXIT_OK if report["valid"] else EXIT_FATAL


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_dump(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    connection = resolve_connection(
        config, args.profile,
        dbname=args.dbname, host=args.host, port=args.port, user=args.username,
    )
    jobs = resolve_jobs(config, args.profile, args.jobs)
    filters = DumpFilters(
        schemas=args.schema or [],
        exclude_schemas=args.exclude_schema or [],
        tables=args.table or [],
        exclude_tables=args.exclude_table or [],
    )

    cancel = CancellationToken()
    cancel.install_signal_handlers()
    try:
        result = await backup_database(
            connection,
            Path(args.directory) if args.directory else None,
            jobs,
            config.tools,
            filters=filters,
            cancel=cancel,
        )
    finally:
        cancel.remove_signal_handlers()
    return _report(result, "Dump")


async def _async_restore(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    connection = resolve_connection(
        config, args.profile,
        dbname=args.dbname, host=args.host, port=args.port, user=args.username,
    )
    jobs = resolve_jobs(config, args.profile, args.jobs)

    cancel = CancellationToken()
    cancel.install_signal_handlers()
    try:
        result = await restore_database(
            connection, Path(args.directory), jobs, config.tools, cancel=cancel,
        )
    finally:
        cancel.remove_signal_handlers()
    return _report(result, "Restore")


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_dump(args: argparse.Namespace) -> int:
    """Dump a database.  Wraps the async implementation with ``asyncio.run()``.

    Returns:
        Exit code (see module docstring).
    """
    try:
        return asyncio.run(_async_dump(args))
    except PgParallelError as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        return EXIT_FATAL


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore a backup, or describe it with ``--info``.

    Returns:
        Exit code (see module docstring).
    """
    try:
        if args.info:
            return _show_info(Path(args.directory))
        return asyncio.run(_async_restore(args))
    except PgParallelError as e:
        err_console.print(f"[bold red]Error:[/bold red] {e}")
        return EXIT_FATAL


# ============================================================================
# Main entry point
# ============================================================================


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    # -h is the host, as in pg_dump; help is --help only
    parser.add_argument("--help", action="help", help="Show this help message and exit")
    parser.add_argument("-d", "--dbname", help="Database name (default: $PGDATABASE)")
    parser.add_argument("-h", "--host", help="Database server host or socket directory")
    parser.add_argument("-p", "--port", type=int, help="Database server port")
    parser.add_argument("-U", "--username", help="Database user name")
    parser.add_argument(
        "-j", "--jobs",
        type=int,
        help="Number of parallel workers (default: 4)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pg-parallel",
        description="Snapshot-consistent parallel dump and restore for PostgreSQL",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to pg-parallel.toml (default: ./pg-parallel.toml if present)",
    )
    parser.add_argument("--profile", help="Connection profile from the config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # dump command
    p_dump = subparsers.add_parser(
        "dump",
        help="Dump a database into a backup directory",
        add_help=False,
    )
    _add_connection_args(p_dump)
    p_dump.add_argument(
        "-n", "--schema",
        action="append",
        help="Dump only matching schemas (can be used multiple times)",
    )
    p_dump.add_argument(
        "-N", "--exclude-schema",
        action="append",
        help="Do not dump matching schemas (can be used multiple times)",
    )
    p_dump.add_argument(
        "-t", "--table",
        action="append",
        help="Dump only matching tables (can be used multiple times)",
    )
    p_dump.add_argument(
        "-T", "--exclude-table",
        action="append",
        help="Do not dump matching tables (can be used multiple times)",
    )
    p_dump.add_argument(
        "directory",
        nargs="?",
        help="Output directory (default: pg-parallel-<timestamp>)",
    )
    p_dump.set_defaults(func=cmd_dump)

    # restore command
    p_restore = subparsers.add_parser(
        "restore",
        help="Restore a backup directory into a database",
        add_help=False,
    )
    _add_connection_args(p_restore)
    p_restore.add_argument(
        "--info",
        action="store_true",
        help="Show backup metadata and exit without restoring",
    )
    p_restore.add_argument("directory", help="Backup directory")
    p_restore.set_defaults(func=cmd_restore)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
