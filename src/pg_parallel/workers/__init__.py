"""Worker pool, cancellation and worker outcome models."""

from pg_parallel.workers.cancel import CancellationToken
from pg_parallel.workers.models import (
    PoolResult,
    UnitOutcome,
    UnitStatus,
    WorkerRecord,
    WorkerState,
)
from pg_parallel.workers.pool import WorkerPool

__all__ = [
    "CancellationToken",
    "PoolResult",
    "UnitOutcome",
    "UnitStatus",
    "WorkerPool",
    "WorkerRecord",
    "WorkerState",
]
