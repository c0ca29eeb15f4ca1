"""Parallel dump and restore drivers and the backup directory layout.

Usage:
    from pg_parallel.backup import backup_database, restore_database, validate_backup
"""

from pg_parallel.backup.dump import backup_database
from pg_parallel.backup.layout import read_metadata, validate_backup
from pg_parallel.backup.models import BackupMetadata, RunResult
from pg_parallel.backup.restore import restore_database

__all__ = [
    "BackupMetadata",
    "RunResult",
    "backup_database",
    "restore_database",
    "read_metadata",
    "validate_backup",
]
