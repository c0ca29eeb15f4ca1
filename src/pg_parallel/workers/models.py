"""Worker records and per-unit outcomes."""

from enum import Enum

from pydantic import BaseModel, Field

from pg_parallel.plan.models import WorkUnit


class WorkerState(str, Enum):
    SPAWNED = "spawned"
    RUNNING = "running"
    EXITED = "exited"
    REAPED = "reaped"


class UnitStatus(str, Enum):
    DONE = "done"
    FAILED = "failed"         # started, never finished
    SKIPPED = "skipped"       # never started (worker stopped early)


class WorkerRecord(BaseModel):
    """One worker process and what it reported about its units."""

    slot: int
    pid: int
    units: list[WorkUnit]
    state: WorkerState = WorkerState.SPAWNED
    returncode: int | None = None
    started: list[str] = Field(default_factory=list)     # unit keys
    finished: list[str] = Field(default_factory=list)    # unit keys
    stderr: list[str] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class UnitOutcome(BaseModel):
    """Result of one unit's transfer."""

    unit: WorkUnit
    slot: int
    status: UnitStatus
    dropped_empty: bool = False


class PoolResult(BaseModel):
    """Everything the pool learned during one parallel phase."""

    outcomes: list[UnitOutcome] = Field(default_factory=list)
    workers: list[WorkerRecord] = Field(default_factory=list)
    interrupted: bool = False

    def _with_status(self, status: UnitStatus) -> list[UnitOutcome]:
        return [o for o in self.outcomes if o.status == status]

    @property
    def done_units(self) -> list[UnitOutcome]:
        return self._with_status(UnitStatus.DONE)

    @property
    def failed_units(self) -> list[UnitOutcome]:
        return self._with_status(UnitStatus.FAILED)

    @property
    def skipped_units(self) -> list[UnitOutcome]:
        return self._with_status(UnitStatus.SKIPPED)

    @property
    def failed_workers(self) -> list[WorkerRecord]:
        return [w for w in self.workers if not w.succeeded]

    @property
    def ok(self) -> bool:
        """True if every unit finished and every worker exited cleanly."""
        return (
            not self.interrupted
            and not self.failed_workers
            and all(o.status == UnitStatus.DONE for o in self.outcomes)
        )
