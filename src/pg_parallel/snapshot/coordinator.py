"""Snapshot coordinator: one held connection exporting a shared snapshot.

The coordinator opens a single psycopg connection, checks that the server
can export a snapshot, applies the session settings, opens a repeatable-read
read-only transaction and exports its snapshot token.  The connection must
stay open until every consumer of the token (``pg_dump`` and the ``psql``
workers) has attached to it, and is closed exactly once by ``release()``.

Usage:
    with SnapshotCoordinator(conninfo) as coordinator:
        token = coordinator.acquire()
        ...
"""

import logging

import psycopg
from psycopg import Connection

from pg_parallel.errors import ConnectionSetupError, SnapshotError, UnsupportedServerError
from pg_parallel.snapshot.session import (
    BEGIN_SNAPSHOT_TRANSACTION,
    EXPORT_SNAPSHOT,
    session_statements,
)

logger = logging.getLogger(__name__)

# pg_export_snapshot() exists from 9.2; standbys can export from 10
MIN_SERVER_VERSION = 90200
MIN_STANDBY_SERVER_VERSION = 100000

# relkind 'r' only: a partitioned parent holds no rows of its own
_BASE_TABLES_SQL = (
    "SELECT c.oid::pg_catalog.int8, n.nspname, c.relname "
    "FROM pg_catalog.pg_class c "
    "JOIN pg_catalog.pg_namespace n ON n.oid = c.relnamespace "
    "WHERE c.oid::pg_catalog.int8 = ANY(%s) AND c.relkind = 'r'"
)


def format_server_version(version_num: int) -> str:
    """Render ``server_version_num`` as ``major.minor`` (``90600`` -> ``9.6``)."""
    if version_num >= 100000:
        return f"{version_num // 10000}.{version_num % 10000}"
    return f"{version_num // 10000}.{version_num // 100 % 100}"


def check_server_version(version_num: int, in_recovery: bool) -> None:
    """Raise ``UnsupportedServerError`` if the server cannot export a snapshot.

    Args:
        version_num: ``server_version_num`` of the source server.
        in_recovery: Whether the server is a hot standby.
    """
    if version_num < MIN_SERVER_VERSION:
        raise UnsupportedServerError(
            f"Server version {format_server_version(version_num)} is not supported; "
            f"at least {format_server_version(MIN_SERVER_VERSION)} is required "
            f"to export snapshots"
        )
    if in_recovery and version_num < MIN_STANDBY_SERVER_VERSION:
        raise UnsupportedServerError(
            f"Server is a standby running {format_server_version(version_num)}; "
            f"exporting snapshots on a standby requires at least "
            f"{format_server_version(MIN_STANDBY_SERVER_VERSION)}"
        )


class SnapshotCoordinator:
    """Holds the connection whose transaction backs the exported snapshot.

    Args:
        conninfo: libpq connection string for the source database.
        connect: Connection factory (``psycopg.connect`` by default).
    """

    def __init__(self, conninfo: str, connect=psycopg.connect):
        self._conninfo = conninfo
        self._connect = connect
        self._conn: Connection | None = None
        self.token: str | None = None
        self.server_version_num: int | None = None
        self.server_version: str | None = None
        self.database: str | None = None
        self._in_recovery = False
        self.statements: list[str] = []

    def __enter__(self) -> "SnapshotCoordinator":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    @property
    def active(self) -> bool:
        """True while the snapshot connection is held."""
        return self._conn is not None

    def acquire(self) -> str:
        """Connect, check the server, configure the session and export a snapshot.

        Returns:
            The exported snapshot token.

        Raises:
            UnsupportedServerError: Server too old (connection closed, no
                session statement issued).
            SnapshotError: Connection or any control statement failed
                (connection closed).
        """
        if self._conn is not None:
            raise SnapshotError("Snapshot already acquired")

        try:
            self._conn = self._connect(self._conninfo, autocommit=True)
        except psycopg.Error as e:
            raise SnapshotError(f"Cannot connect to source database: {e}") from e

        try:
            self._inspect_server()
            check_server_version(self.server_version_num, self._in_recovery)

            self.statements = session_statements(self.server_version_num)
            for sql in self.statements:
                self._conn.execute(sql)
            self._conn.execute(BEGIN_SNAPSHOT_TRANSACTION)

            row = self._conn.execute(EXPORT_SNAPSHOT).fetchone()
            self.token = row[0]
        except UnsupportedServerError:
            self._close()
            raise
        except psycopg.Error as e:
            self._close()
            raise SnapshotError(f"Cannot set up snapshot transaction: {e}") from e

        logger.info("Exported snapshot %s", self.token)
        return self.token

    def base_tables(self, oids: list[int]) -> dict[int, tuple[str, str]]:
        """Exact ``(schema, table)`` names of the ordinary tables among ``oids``.

        Runs inside the snapshot transaction, so it sees the catalog exactly
        as ``pg_dump`` did.  Partitioned parents, views and other relation
        kinds are left out.

        Raises:
            SnapshotError: If no snapshot is held or the query fails.
        """
        if self._conn is None:
            raise SnapshotError("No snapshot connection is held")
        if not oids:
            return {}
        try:
            rows = self._conn.execute(_BASE_TABLES_SQL, (oids,)).fetchall()
        except psycopg.Error as e:
            raise SnapshotError(f"Cannot read table names from the catalog: {e}") from e
        return {oid: (schema_name, table_name) for oid, schema_name, table_name in rows}

    def release(self) -> bool:
        """Close the held connection.

        Safe to call more than once; only the first call after ``acquire``
        closes anything.

        Returns:
            True if this call closed the connection.
        """
        if self._conn is None:
            return False
        logger.debug("Releasing snapshot connection")
        self._close()
        return True

    def _inspect_server(self) -> None:
        row = self._conn.execute(
            "SELECT current_setting('server_version_num')::int, "
            "current_setting('server_version'), "
            "pg_catalog.pg_is_in_recovery(), "
            "pg_catalog.current_database()"
        ).fetchone()
        self.server_version_num, self.server_version, self._in_recovery, self.database = row
        logger.debug(
            "Server %s (%s), in recovery: %s",
            self.server_version,
            self.server_version_num,
            self._in_recovery,
        )

    def _close(self) -> None:
        conn, self._conn = self._conn, None
        if conn is not None:
            conn.close()


def probe_server_version(conninfo: str, connect=psycopg.connect) -> tuple[int, str]:
    """Return ``(server_version_num, server_version)`` of a server.

    Raises:
        ConnectionSetupError: If the server cannot be reached.
    """
    try:
        with connect(conninfo, autocommit=True) as conn:
            row = conn.execute(
                "SELECT current_setting('server_version_num')::int, "
                "current_setting('server_version')"
            ).fetchone()
    except psycopg.Error as e:
        raise ConnectionSetupError(f"Cannot connect to target database: {e}") from e
    return row[0], row[1]
