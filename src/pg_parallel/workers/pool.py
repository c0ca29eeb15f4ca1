"""Worker pool: one psql process per plan slot.

The pool owns every worker it spawns.  Live workers sit in an in-memory map
keyed by pid; completion is collected with ``asyncio.wait`` over one task
per worker, and each worker is reaped (script removed, outcomes recorded)
as soon as its task finishes.  Nothing is killed: on cancellation the pool
closes the gate so workers stop after their current table, then waits for
all of them.

Usage:
    pool = WorkerPool(conninfo, tools, cancel)
    result = await pool.run(plan, render_script)
    if not result.ok:
        ...
"""

import asyncio
import logging
import tempfile
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from pg_parallel.config.models import ToolSettings
from pg_parallel.errors import ToolError
from pg_parallel.plan.models import WorkPlan, WorkUnit
from pg_parallel.plan.scripts import DONE_MARKER, GATE_STOP_SQL, START_MARKER, parse_marker
from pg_parallel.workers.cancel import CancellationToken
from pg_parallel.workers.models import (
    PoolResult,
    UnitOutcome,
    UnitStatus,
    WorkerRecord,
    WorkerState,
)

logger = logging.getLogger(__name__)

# (slot, units, gate path) -> script text
ScriptRenderer = Callable[[int, list[WorkUnit], Path], str]

# Called for each finished unit; returns True if the artifact was dropped as empty
UnitFinalizer = Callable[[WorkUnit], bool]

_STDERR_KEEP = 20
_STREAM_LIMIT = 1024 * 1024


async def read_lines(stream: asyncio.StreamReader) -> AsyncIterator[bytes]:
    """Yield lines from ``stream``, dropping any longer than its buffer limit."""
    while True:
        try:
            line = await stream.readline()
        except ValueError:
            # readline has already discarded the overlong line
            logger.debug("Dropped a worker output line over the stream limit")
            continue
        if not line:
            return
        yield line


@dataclass
class _Worker:
    record: WorkerRecord
    process: asyncio.subprocess.Process
    script: IO[str]
    task: asyncio.Task | None = None


class WorkerPool:
    """Runs a work plan on concurrent ``psql`` workers.

    Args:
        conninfo: libpq connection string every worker connects with.
        tools: Tool settings (``psql`` executable).
        cancel: Cancellation token checked before each spawn and after each reap.
        action: Verb used in progress messages ("Dumping", "Restoring").
        finalize: Optional hook run for each unit a worker finished.
    """

    def __init__(
        self,
        conninfo: str,
        tools: ToolSettings,
        cancel: CancellationToken,
        action: str = "Transferring",
        finalize: UnitFinalizer | None = None,
    ):
        self._conninfo = conninfo
        self._tools = tools
        self._cancel = cancel
        self._action = action
        self._finalize = finalize
        self._live: dict[int, _Worker] = {}
        self._reaped: list[WorkerRecord] = []
        self._outcomes: list[UnitOutcome] = []
        self._gate_dir: tempfile.TemporaryDirectory | None = None
        self.gate: Path | None = None

    @property
    def live_pids(self) -> list[int]:
        """Pids of workers spawned but not yet reaped."""
        return list(self._live)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self, plan: WorkPlan, render: ScriptRenderer) -> PoolResult:
        """Spawn a worker per non-empty slot and wait until all are reaped.

        Args:
            plan: The work plan.
            render: Builds a slot's script text.

        Returns:
            PoolResult with per-unit outcomes.  Units of slots never spawned
            (cancelled before spawning) are reported as skipped.
        """
        self._gate_dir = tempfile.TemporaryDirectory(prefix="pg-parallel-")
        self.gate = Path(self._gate_dir.name) / "gate.sql"
        self.gate.write_text("")

        try:
            try:
                for slot in plan.non_empty_slots():
                    if self._cancel.cancelled:
                        break
                    units = plan.slots[slot]
                    await self.spawn(slot, units, render(slot, units, self.gate))
            except ToolError:
                # stop the workers already running before giving up
                self._close_gate()
                await self._join()
                raise

            await self._join()

            spawned = {record.slot for record in self._reaped}
            for slot in plan.non_empty_slots():
                if slot not in spawned:
                    self._outcomes.extend(
                        UnitOutcome(unit=unit, slot=slot, status=UnitStatus.SKIPPED)
                        for unit in plan.slots[slot]
                    )
        finally:
            self._gate_dir.cleanup()

        return PoolResult(
            outcomes=self._outcomes,
            workers=self._reaped,
            interrupted=self._cancel.cancelled,
        )

    async def spawn(self, slot: int, units: list[WorkUnit], script_text: str) -> WorkerRecord:
        """Start a psql worker on a temporary copy of ``script_text``.

        The script file is deleted when the worker is reaped.

        Raises:
            ToolError: If psql cannot be started.
        """
        script = tempfile.NamedTemporaryFile(
            mode="w", prefix=f"pg-parallel-{slot}-", suffix=".sql", delete=True
        )
        script.write(script_text)
        script.flush()

        command = [
            self._tools.psql,
            "--no-psqlrc",
            "--quiet",
            "--no-align",
            "--tuples-only",
            "--set", "ON_ERROR_STOP=1",
            "--dbname", self._conninfo,
            "--file", script.name,
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_STREAM_LIMIT,
                # keep terminal SIGINT away from workers; the pool decides when they stop
                start_new_session=True,
            )
        except OSError as e:
            script.close()
            raise ToolError(command, 127, str(e)) from e

        record = WorkerRecord(slot=slot, pid=process.pid, units=units)
        worker = _Worker(record=record, process=process, script=script)
        worker.task = asyncio.create_task(self._supervise(worker))
        self._live[process.pid] = worker
        logger.debug("Worker %d started (pid %d, %d tables)", slot, process.pid, len(units))
        return record

    async def _join(self) -> None:
        """Wait for every live worker, reaping each as it completes."""
        cancel_wait = asyncio.create_task(self._cancel.wait())
        pending = {w.task for w in self._live.values()}
        try:
            while pending:
                waiting = pending | ({cancel_wait} if not cancel_wait.done() else set())
                done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)

                if cancel_wait in done:
                    self._close_gate()
                    logger.warning(
                        "Waiting for %d worker(s) to finish their current table",
                        len(self._live),
                    )

                for task in done - {cancel_wait}:
                    pending.discard(task)
                    self._reap(task.result())
        finally:
            cancel_wait.cancel()

    async def _supervise(self, worker: _Worker) -> _Worker:
        worker.record.state = WorkerState.RUNNING
        await asyncio.gather(
            self._read_stdout(worker),
            self._read_stderr(worker),
        )
        worker.record.returncode = await worker.process.wait()
        worker.record.state = WorkerState.EXITED
        return worker

    def _reap(self, worker: _Worker) -> None:
        record = worker.record
        del self._live[record.pid]
        worker.script.close()
        record.state = WorkerState.REAPED
        self._reaped.append(record)

        if record.succeeded:
            logger.debug("Worker %d finished", record.slot)
        elif not self._cancel.cancelled:
            logger.error("Worker %d exited with status %s", record.slot, record.returncode)

        for unit in record.units:
            if unit.key in record.finished:
                status = UnitStatus.DONE
            elif unit.key in record.started:
                status = UnitStatus.FAILED
            else:
                status = UnitStatus.SKIPPED
            dropped = False
            if status == UnitStatus.DONE and self._finalize is not None:
                dropped = self._finalize(unit)
            self._outcomes.append(
                UnitOutcome(unit=unit, slot=record.slot, status=status, dropped_empty=dropped)
            )

    # ------------------------------------------------------------------
    # Output handling
    # ------------------------------------------------------------------

    async def _read_stdout(self, worker: _Worker) -> None:
        record = worker.record
        names = {unit.key: unit for unit in record.units}
        async for raw in read_lines(worker.process.stdout):
            marker = parse_marker(raw.decode(errors="replace").strip())
            if marker is None:
                continue
            kind, slot, key = marker
            if slot != record.slot or key not in names:
                continue
            if kind == START_MARKER:
                record.started.append(key)
                logger.info("%s %s (worker %d)", self._action, names[key], slot)
            elif kind == DONE_MARKER:
                record.finished.append(key)

    async def _read_stderr(self, worker: _Worker) -> None:
        record = worker.record
        async for raw in read_lines(worker.process.stderr):
            line = raw.decode(errors="replace").rstrip()
            if not line:
                continue
            record.stderr = (record.stderr + [line])[-_STDERR_KEEP:]
            if not self._cancel.cancelled:
                logger.warning("worker %d: %s", record.slot, line)

    def _close_gate(self) -> None:
        if self.gate is not None and self.gate.exists() and not self.gate.read_text():
            self.gate.write_text(GATE_STOP_SQL)
