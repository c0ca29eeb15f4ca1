"""pg-parallel: snapshot-consistent parallel dump and restore for PostgreSQL.

Schema sections are delegated to ``pg_dump`` / ``pg_restore``; table data is
moved by a pool of ``psql`` workers that all read one exported snapshot.

Usage:
    from pg_parallel import backup_database, restore_database
    from pg_parallel import ConnectionSettings, ToolSettings
    from pg_parallel import WorkUnit, plan
"""

__version__ = "0.1.0"

# Config
from pg_parallel.config.models import ConnectionSettings, ToolSettings

# Planning
from pg_parallel.plan.models import WorkPlan, WorkUnit
from pg_parallel.plan.planner import plan

# Drivers
from pg_parallel.backup.dump import backup_database
from pg_parallel.backup.restore import restore_database
from pg_parallel.backup.models import BackupMetadata, RunResult

# Errors
from pg_parallel.errors import PgParallelError

__all__ = [
    # Config
    "ConnectionSettings",
    "ToolSettings",
    # Planning
    "WorkPlan",
    "WorkUnit",
    "plan",
    # Drivers
    "backup_database",
    "restore_database",
    "BackupMetadata",
    "RunResult",
    # Errors
    "PgParallelError",
]
