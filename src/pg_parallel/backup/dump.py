"""Dump driver: snapshot, pre-data, parallel table data, post-data.

Phases run strictly in order::

    connect & export snapshot -> pre-data -> catalog -> plan & spawn
        -> await workers -> post-data -> metadata -> release snapshot

Every consumer of the snapshot (``pg_dump`` for both sections and each
``psql`` worker) attaches to the token exported by one held connection, so
all of them see the same data.  The held connection is released exactly
once, whatever happens.

Usage:
    from pg_parallel.backup.dump import backup_database

    result = await backup_database(connection, Path("backup"), jobs=4, tools=tools)
"""

import logging
from datetime import datetime
from pathlib import Path

import psycopg

from pg_parallel import __version__
from pg_parallel.backup.layout import (
    POST_DATA,
    PRE_DATA,
    check_artifact_names,
    prepare_output_dir,
    write_metadata,
)
from pg_parallel.backup.models import BackupMetadata, RunResult
from pg_parallel.config.models import ConnectionSettings, ToolSettings
from pg_parallel.pgtools import DumpFilters, dump_section
from pg_parallel.plan.catalog import read_catalog
from pg_parallel.plan.copystream import drop_if_empty
from pg_parallel.plan.models import WorkUnit
from pg_parallel.plan.planner import plan
from pg_parallel.plan.scripts import render_dump_script
from pg_parallel.snapshot.coordinator import SnapshotCoordinator
from pg_parallel.workers.cancel import CancellationToken
from pg_parallel.workers.pool import WorkerPool

logger = logging.getLogger(__name__)


async def backup_database(
    connection: ConnectionSettings,
    output_dir: Path | None,
    jobs: int,
    tools: ToolSettings,
    filters: DumpFilters | None = None,
    cancel: CancellationToken | None = None,
    connect=psycopg.connect,
) -> RunResult:
    """Dump a database into a backup directory.

    Args:
        connection: Source database connection settings.
        output_dir: Backup directory (must be new or empty); ``None`` for a
            timestamped directory in the working directory.
        jobs: Number of parallel workers.
        tools: External tool settings.
        filters: Schema/table include and exclude patterns.
        cancel: Cancellation token; a fresh one if not given.
        connect: psycopg connection factory.

    Returns:
        RunResult.  ``interrupted`` is set if the run was cancelled; when any
        table failed, ``post_data_done`` is False and ``pool`` lists the
        failures.

    Raises:
        BackupLayoutError: Output directory unusable.
        UnsupportedServerError: Server cannot export snapshots.
        SnapshotError: Snapshot connection could not be set up.
        ToolError: ``pg_dump`` / ``pg_restore`` / ``psql`` failed to run.
    """
    cancel = cancel or CancellationToken()
    output_dir = prepare_output_dir(output_dir)
    result = RunResult(directory=output_dir, started_at=datetime.now())
    conninfo = connection.conninfo()

    with SnapshotCoordinator(conninfo, connect=connect) as coordinator:
        token = coordinator.acquire()

        logger.info("Dumping pre-data section")
        await dump_section("pre-data", output_dir / PRE_DATA, conninfo, token, tools, filters)

        if cancel.cancelled:
            return _interrupted(result)

        units = await read_catalog(output_dir / PRE_DATA, tools, coordinator.base_tables)
        check_artifact_names(output_dir, units)
        work_plan = plan(units, jobs)
        logger.info(
            "Dumping %d tables with %d worker(s)",
            work_plan.unit_count,
            len(work_plan.non_empty_slots()),
        )

        def finalize(unit: WorkUnit) -> bool:
            return drop_if_empty(output_dir / unit.artifact_name)

        def render(slot: int, slot_units: list[WorkUnit], gate: Path) -> str:
            return render_dump_script(
                slot, slot_units, coordinator.statements, token,
                output_dir, tools.compress, gate,
            )

        pool = WorkerPool(conninfo, tools, cancel, action="Dumping", finalize=finalize)
        result.pool = await pool.run(work_plan, render)

        # a table that failed mid-stream leaves a truncated artifact behind
        for outcome in result.pool.failed_units:
            (output_dir / outcome.unit.artifact_name).unlink(missing_ok=True)

        if result.pool.interrupted:
            return _interrupted(result)
        if not result.pool.ok:
            logger.error(
                "%d table(s) failed, skipping post-data section",
                len(result.pool.failed_units) + len(result.pool.skipped_units),
            )
            result.finished_at = datetime.now()
            return result

        logger.info("Dumping post-data section")
        await dump_section("post-data", output_dir / POST_DATA, conninfo, token, tools, filters)
        result.post_data_done = True

        kept = [o for o in result.pool.done_units if not o.dropped_empty]
        result.metadata = BackupMetadata(
            created_at=result.started_at,
            database=coordinator.database or connection.dbname,
            server_version=coordinator.server_version or "",
            table_count=len(kept),
            jobs=jobs,
            tool_version=__version__,
        )
        write_metadata(output_dir, result.metadata)

    result.finished_at = datetime.now()
    logger.info(
        "Dump completed in %.1fs: %d tables, %d empty",
        result.elapsed,
        len(kept),
        len(result.pool.done_units) - len(kept),
    )
    return result


def _interrupted(result: RunResult) -> RunResult:
    result.interrupted = True
    result.finished_at = datetime.now()
    logger.warning("Dump interrupted; post-data section not written")
    return result
