"""Snapshot export and the session settings shared with workers."""

from pg_parallel.snapshot.coordinator import (
    SnapshotCoordinator,
    check_server_version,
    format_server_version,
    probe_server_version,
)
from pg_parallel.snapshot.session import session_statements, set_snapshot_statement

__all__ = [
    "SnapshotCoordinator",
    "check_server_version",
    "format_server_version",
    "probe_server_version",
    "session_statements",
    "set_snapshot_statement",
]
