"""Restore driver: pre-data, parallel table data, post-data.

The work plan is rebuilt from the artifact file names alone, through the
same planner the dump used, so no catalog query is needed.  Post-data
(indexes, constraints, triggers) is restored in parallel by ``pg_restore``.

Usage:
    from pg_parallel.backup.restore import restore_database

    result = await restore_database(connection, Path("backup"), jobs=4, tools=tools)
"""

import logging
from datetime import datetime
from pathlib import Path

import psycopg

from pg_parallel.backup.layout import POST_DATA, PRE_DATA, read_metadata, require_sections
from pg_parallel.backup.models import RunResult
from pg_parallel.config.models import ConnectionSettings, ToolSettings
from pg_parallel.pgtools import restore_section
from pg_parallel.plan.catalog import units_from_artifacts
from pg_parallel.plan.models import WorkUnit
from pg_parallel.plan.planner import plan
from pg_parallel.plan.scripts import render_restore_script
from pg_parallel.snapshot.coordinator import probe_server_version
from pg_parallel.snapshot.session import session_statements
from pg_parallel.workers.cancel import CancellationToken
from pg_parallel.workers.pool import WorkerPool

logger = logging.getLogger(__name__)


async def restore_database(
    connection: ConnectionSettings,
    input_dir: Path,
    jobs: int,
    tools: ToolSettings,
    cancel: CancellationToken | None = None,
    connect=psycopg.connect,
) -> RunResult:
    """Restore a backup directory into the target database.

    Args:
        connection: Target database connection settings.
        input_dir: Backup directory written by ``backup_database``.
        jobs: Number of parallel workers (also ``pg_restore --jobs`` for
            post-data).
        tools: External tool settings.
        cancel: Cancellation token; a fresh one if not given.
        connect: psycopg connection factory.

    Returns:
        RunResult; see ``backup_database``.

    Raises:
        BackupLayoutError: Directory is not a complete backup.
        ConnectionSetupError: Target unreachable.
        ToolError: ``pg_restore`` / ``psql`` failed to run.
    """
    cancel = cancel or CancellationToken()
    require_sections(input_dir)
    result = RunResult(directory=input_dir, started_at=datetime.now())
    result.metadata = read_metadata(input_dir)
    if result.metadata is None:
        logger.warning("Backup has no metadata; restoring whatever data files are present")

    conninfo = connection.conninfo()
    version_num, version = probe_server_version(conninfo, connect=connect)
    logger.debug("Target server %s", version)

    logger.info("Restoring pre-data section")
    await restore_section(input_dir / PRE_DATA, conninfo, tools)

    if cancel.cancelled:
        return _interrupted(result)

    units = units_from_artifacts(input_dir)
    if result.metadata is not None and result.metadata.table_count != len(units):
        logger.warning(
            "Metadata records %d tables but %d data files were found",
            result.metadata.table_count,
            len(units),
        )
    work_plan = plan(units, jobs)
    logger.info(
        "Restoring %d tables with %d worker(s)",
        work_plan.unit_count,
        len(work_plan.non_empty_slots()),
    )

    session = session_statements(version_num)

    def render(slot: int, slot_units: list[WorkUnit], gate: Path) -> str:
        return render_restore_script(slot, slot_units, session, input_dir, tools.decompress, gate)

    pool = WorkerPool(conninfo, tools, cancel, action="Restoring")
    result.pool = await pool.run(work_plan, render)

    if result.pool.interrupted:
        return _interrupted(result)
    if not result.pool.ok:
        logger.error(
            "%d table(s) failed, skipping post-data section",
            len(result.pool.failed_units) + len(result.pool.skipped_units),
        )
        result.finished_at = datetime.now()
        return result

    logger.info("Restoring post-data section")
    await restore_section(input_dir / POST_DATA, conninfo, tools, jobs=jobs)
    result.post_data_done = True

    result.finished_at = datetime.now()
    logger.info("Restore completed in %.1fs: %d tables", result.elapsed, work_plan.unit_count)
    return result


def _interrupted(result: RunResult) -> RunResult:
    result.interrupted = True
    result.finished_at = datetime.now()
    logger.warning("Restore interrupted; post-data section not restored")
    return result
