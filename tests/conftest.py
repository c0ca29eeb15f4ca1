"""Shared fixtures: fake psycopg connections and a fake psql executable."""

import stat
from unittest.mock import MagicMock

import psycopg
import pytest

from pg_parallel.plan.models import WorkUnit

SNAPSHOT_TOKEN = "00000003-0000001B-1"


class FakeConnection:
    """Stands in for a psycopg connection; records every statement.

    ``relations`` maps oid -> (schema, name, relkind) for the pg_class lookup.
    """

    def __init__(self, version_num=150004, in_recovery=False, fail_on=None, database="shop",
                 relations=None):
        self.version_num = version_num
        self.in_recovery = in_recovery
        self.fail_on = fail_on
        self.database = database
        self.relations = relations or {}
        self.executed: list[str] = []
        self.params: list = []
        self.close_count = 0

    def execute(self, sql, params=None):
        self.executed.append(sql)
        self.params.append(params)
        if self.fail_on and self.fail_on in sql:
            raise psycopg.OperationalError(f"failed: {sql}")
        cursor = MagicMock()
        if "server_version_num" in sql:
            cursor.fetchone.return_value = (
                self.version_num, "15.4", self.in_recovery, self.database,
            )
        elif "pg_export_snapshot" in sql:
            cursor.fetchone.return_value = (SNAPSHOT_TOKEN,)
        elif "pg_class" in sql:
            wanted = set(params[0])
            cursor.fetchall.return_value = [
                (oid, schema_name, name)
                for oid, (schema_name, name, relkind) in self.relations.items()
                if oid in wanted and relkind == "r"
            ]
        return cursor

    def close(self):
        self.close_count += 1

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


@pytest.fixture
def fake_connect():
    """Factory returning (connect callable, list of connections made)."""

    def make(**kwargs):
        made: list[FakeConnection] = []

        def connect(conninfo, autocommit=False):
            conn = FakeConnection(**kwargs)
            made.append(conn)
            return conn

        return connect, made

    return make


# Interprets just enough of a worker script: \i gate includes and \echo markers.
# FAKE_PSQL_FAIL=<unit key> fails that unit after its start marker;
# FAKE_PSQL_DELAY=<seconds> sleeps after every start marker;
# FAKE_PSQL_NOISE=<bytes> first writes one stderr line of that length.
FAKE_PSQL = r"""#!/bin/sh
file=""
while [ $# -gt 0 ]; do
    case "$1" in
        --file) file="$2"; shift ;;
    esac
    shift
done
if [ -n "$FAKE_PSQL_NOISE" ]; then
    head -c "$FAKE_PSQL_NOISE" /dev/zero | tr '\0' x >&2
    echo >&2
fi
while IFS= read -r line; do
    case "$line" in
        '\i '*)
            gate=${line#\\i \'}
            gate=${gate%\'}
            if [ -s "$gate" ]; then
                echo "ERROR:  pg-parallel: run interrupted" >&2
                exit 3
            fi
            ;;
        '\echo '*)
            text=${line#\\echo \'}
            text=${text%\'}
            echo "$text"
            case "$text" in
                pg-parallel:start*)
                    if [ -n "$FAKE_PSQL_FAIL" ] && [ "${text##* }" = "$FAKE_PSQL_FAIL" ]; then
                        echo "ERROR:  relation does not exist" >&2
                        exit 3
                    fi
                    if [ -n "$FAKE_PSQL_DELAY" ]; then
                        sleep "$FAKE_PSQL_DELAY"
                    fi
                    ;;
            esac
            ;;
    esac
done < "$file"
exit 0
"""


@pytest.fixture
def fake_psql(tmp_path):
    """Path to an executable fake psql."""
    path = tmp_path / "bin" / "psql"
    path.parent.mkdir()
    path.write_text(FAKE_PSQL)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def units(*names: str) -> list[WorkUnit]:
    """``units("public.orders", ...)`` -> WorkUnits (split on the first dot)."""
    result = []
    for name in names:
        schema_name, table_name = name.split(".", 1)
        result.append(WorkUnit(schema_name=schema_name, table_name=table_name))
    return result
