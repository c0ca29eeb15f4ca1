"""Session configuration replayed on every connection that reads the snapshot.

The exported snapshot fixes *which* rows are visible, not how they are
formatted, so the coordinator and every worker issue the same statements.
Version-gated entries follow the server versions that introduced the setting.
"""

# (minimum server_version_num, statement)
_SESSION_SETTINGS: list[tuple[int, str]] = [
    (0, "SELECT pg_catalog.set_config('search_path', '', false)"),
    (0, "SET client_encoding = 'UTF8'"),
    (0, "SET DateStyle = ISO"),
    (80400, "SET IntervalStyle = postgres"),
    (0, "SET extra_float_digits = 3"),
    (0, "SET synchronize_seqscans = off"),
    (0, "SET statement_timeout = 0"),
    (90300, "SET lock_timeout = 0"),
    (90600, "SET idle_in_transaction_session_timeout = 0"),
    (90500, "SET row_security = off"),
]

BEGIN_SNAPSHOT_TRANSACTION = "BEGIN TRANSACTION ISOLATION LEVEL REPEATABLE READ, READ ONLY"
EXPORT_SNAPSHOT = "SELECT pg_catalog.pg_export_snapshot()"


def session_statements(server_version_num: int) -> list[str]:
    """Return the ordered session SET statements for a server version."""
    return [sql for min_version, sql in _SESSION_SETTINGS if server_version_num >= min_version]


def set_snapshot_statement(token: str) -> str:
    """``SET TRANSACTION SNAPSHOT`` for a token, as a quoted literal."""
    return "SET TRANSACTION SNAPSHOT " + quote_literal(token)


def quote_literal(value: str) -> str:
    """Quote a string as a standard-conforming SQL literal."""
    return "'" + value.replace("'", "''") + "'"
