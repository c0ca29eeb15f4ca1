"""Tests for snapshot export, server checks and release semantics."""

import pytest

from conftest import SNAPSHOT_TOKEN
from pg_parallel.errors import ConnectionSetupError, SnapshotError, UnsupportedServerError
from pg_parallel.snapshot.coordinator import (
    SnapshotCoordinator,
    check_server_version,
    format_server_version,
    probe_server_version,
)
from pg_parallel.snapshot.session import session_statements, set_snapshot_statement


def _is_session_statement(sql: str) -> bool:
    return sql.startswith("SET ") or "set_config" in sql


class TestAcquire:
    """acquire() issues statements in a fixed order and returns the token."""

    def test_statement_order(self, fake_connect):
        connect, made = fake_connect()
        coordinator = SnapshotCoordinator("dbname=shop", connect=connect)

        token = coordinator.acquire()

        assert token == SNAPSHOT_TOKEN
        executed = made[0].executed
        assert "server_version_num" in executed[0]
        assert executed[1:-2] == session_statements(150004)
        assert executed[-2] == (
            "BEGIN TRANSACTION ISOLATION LEVEL REPEATABLE READ, READ ONLY"
        )
        assert "pg_export_snapshot" in executed[-1]
        assert coordinator.statements == session_statements(150004)
        assert coordinator.database == "shop"
        assert coordinator.server_version == "15.4"

    def test_connection_kept_open(self, fake_connect):
        connect, made = fake_connect()
        coordinator = SnapshotCoordinator("dbname=shop", connect=connect)

        coordinator.acquire()

        assert coordinator.active
        assert made[0].close_count == 0

    def test_second_acquire_rejected(self, fake_connect):
        connect, made = fake_connect()
        coordinator = SnapshotCoordinator("dbname=shop", connect=connect)
        coordinator.acquire()

        with pytest.raises(SnapshotError):
            coordinator.acquire()
        assert len(made) == 1

    @pytest.mark.parametrize(
        "fail_on",
        ["set_config", "SET DateStyle", "BEGIN TRANSACTION", "pg_export_snapshot"],
    )
    def test_failure_closes_connection(self, fake_connect, fail_on):
        connect, made = fake_connect(fail_on=fail_on)
        coordinator = SnapshotCoordinator("dbname=shop", connect=connect)

        with pytest.raises(SnapshotError):
            coordinator.acquire()

        assert made[0].close_count == 1
        assert not coordinator.active
        assert coordinator.token is None

    def test_connect_failure(self):
        import psycopg

        def connect(conninfo, autocommit=False):
            raise psycopg.OperationalError("connection refused")

        coordinator = SnapshotCoordinator("dbname=shop", connect=connect)
        with pytest.raises(SnapshotError, match="connection refused"):
            coordinator.acquire()


class TestServerPreconditions:
    """Old servers and old standbys are refused before any session statement."""

    def test_too_old(self, fake_connect):
        connect, made = fake_connect(version_num=90124)
        coordinator = SnapshotCoordinator("dbname=shop", connect=connect)

        with pytest.raises(UnsupportedServerError, match="9.1"):
            coordinator.acquire()

        conn = made[0]
        assert not any(_is_session_statement(sql) for sql in conn.executed)
        assert conn.close_count == 1

    def test_old_standby(self, fake_connect):
        connect, made = fake_connect(version_num=90600, in_recovery=True)
        coordinator = SnapshotCoordinator("dbname=shop", connect=connect)

        with pytest.raises(UnsupportedServerError, match="standby"):
            coordinator.acquire()
        assert made[0].close_count == 1

    def test_old_primary_allowed(self, fake_connect):
        connect, _ = fake_connect(version_num=90600, in_recovery=False)

        assert SnapshotCoordinator("dbname=shop", connect=connect).acquire()

    def test_recent_standby_allowed(self, fake_connect):
        connect, _ = fake_connect(version_num=100005, in_recovery=True)

        assert SnapshotCoordinator("dbname=shop", connect=connect).acquire()

    def test_check_server_version_boundaries(self):
        check_server_version(90200, False)
        check_server_version(100000, True)
        with pytest.raises(UnsupportedServerError):
            check_server_version(90199, False)
        with pytest.raises(UnsupportedServerError):
            check_server_version(90999, True)

    @pytest.mark.parametrize(
        "version_num,expected",
        [(90200, "9.2"), (90624, "9.6"), (100000, "10.0"), (150004, "15.4")],
    )
    def test_format_server_version(self, version_num, expected):
        assert format_server_version(version_num) == expected


class TestRelease:
    """release() closes the held connection exactly once."""

    def test_release_once(self, fake_connect):
        connect, made = fake_connect()
        coordinator = SnapshotCoordinator("dbname=shop", connect=connect)
        coordinator.acquire()

        assert coordinator.release() is True
        assert coordinator.release() is False
        assert made[0].close_count == 1

    def test_release_without_acquire(self):
        assert SnapshotCoordinator("dbname=shop").release() is False

    def test_context_manager_releases(self, fake_connect):
        connect, made = fake_connect()

        with SnapshotCoordinator("dbname=shop", connect=connect) as coordinator:
            coordinator.acquire()

        assert made[0].close_count == 1

    def test_context_manager_releases_on_error(self, fake_connect):
        connect, made = fake_connect()

        with pytest.raises(RuntimeError):
            with SnapshotCoordinator("dbname=shop", connect=connect) as coordinator:
                coordinator.acquire()
                raise RuntimeError("boom")

        assert made[0].close_count == 1


class TestSessionStatements:
    """Version gating of session settings."""

    def test_recent_server_gets_everything(self):
        statements = session_statements(150000)

        assert statements[0] == "SELECT pg_catalog.set_config('search_path', '', false)"
        assert "SET row_security = off" in statements
        assert "SET idle_in_transaction_session_timeout = 0" in statements
        assert "SET synchronize_seqscans = off" in statements

    def test_old_server_skips_newer_settings(self):
        statements = session_statements(90200)

        assert "SET lock_timeout = 0" not in statements
        assert "SET row_security = off" not in statements
        assert "SET idle_in_transaction_session_timeout = 0" not in statements
        assert "SET statement_timeout = 0" in statements

    def test_set_snapshot_quotes_token(self):
        assert set_snapshot_statement("abc'd") == "SET TRANSACTION SNAPSHOT 'abc''d'"


class TestProbeServerVersion:
    """probe_server_version reads the target's version and closes."""

    def test_reads_version(self, fake_connect):
        connect, made = fake_connect(version_num=140002)

        assert probe_server_version("dbname=shop", connect=connect) == (140002, "15.4")
        assert made[0].close_count == 1

    def test_connection_error(self):
        import psycopg

        def connect(conninfo, autocommit=False):
            raise psycopg.OperationalError("no route")

        with pytest.raises(ConnectionSetupError):
            probe_server_version("dbname=shop", connect=connect)
