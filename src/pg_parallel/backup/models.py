"""Backup metadata and driver results."""

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from pg_parallel.workers.models import PoolResult

FORMAT_VERSION = "1"


class BackupMetadata(BaseModel):
    """Description of a backup, written next to its artifacts."""

    format_version: str = FORMAT_VERSION
    created_at: datetime
    database: str
    server_version: str
    table_count: int = Field(ge=0)                  # restorable tables (artifacts kept)
    jobs: int = Field(default=1, ge=1)
    tool_version: str = ""


class RunResult(BaseModel):
    """Outcome of a dump or restore run."""

    directory: Path
    started_at: datetime
    finished_at: datetime | None = None
    pool: PoolResult | None = None
    interrupted: bool = False
    post_data_done: bool = False
    metadata: BackupMetadata | None = None

    @property
    def ok(self) -> bool:
        return not self.interrupted and self.post_data_done

    @property
    def elapsed(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()
