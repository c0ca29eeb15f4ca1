"""Rendering of per-slot psql scripts.

Each worker runs one script under ``ON_ERROR_STOP``.  Around every table the
script echoes a start and a done marker on stdout; the pool reads them back
to tell which tables finished, which failed and which never started.
"""

import shlex
from pathlib import Path

from pg_parallel.plan.models import WorkUnit
from pg_parallel.snapshot.session import BEGIN_SNAPSHOT_TRANSACTION, set_snapshot_statement

MARKER_PREFIX = "pg-parallel:"
START_MARKER = MARKER_PREFIX + "start"
DONE_MARKER = MARKER_PREFIX + "done"

# Gate file content once cancelled: the next unit's include raises and
# ON_ERROR_STOP ends the worker between tables
GATE_STOP_SQL = "DO $$BEGIN RAISE EXCEPTION 'pg-parallel: run interrupted'; END$$;\n"


def marker_line(kind: str, slot: int, unit: WorkUnit) -> str:
    """The line a worker prints for a marker (as it appears on stdout)."""
    return f"{kind} {slot} {unit.key}"


def parse_marker(line: str) -> tuple[str, int, str] | None:
    """Split a stdout line into ``(kind, slot, unit key)`` if it is a marker."""
    if not line.startswith(MARKER_PREFIX):
        return None
    parts = line.split()
    if len(parts) != 3 or parts[0] not in (START_MARKER, DONE_MARKER):
        return None
    try:
        return parts[0], int(parts[1]), parts[2]
    except ValueError:
        return None


def _echo(kind: str, slot: int, unit: WorkUnit) -> str:
    # unit keys contain only [A-Za-z0-9_%.-], safe inside a psql quoted string
    return f"\\echo '{marker_line(kind, slot, unit)}'"


def _psql_quote(value: str) -> str:
    """Quote a value as a single-quoted psql meta-command argument."""
    return "'" + value.replace("'", "''") + "'"


def _gate(gate: Path | None) -> list[str]:
    return [f"\\i {_psql_quote(str(gate))}"] if gate is not None else []


def dump_fragment(
    slot: int, unit: WorkUnit, output_dir: Path, compress: str, gate: Path | None = None
) -> list[str]:
    """Script lines streaming one table to its compressed artifact."""
    target = shlex.quote(str(output_dir / unit.artifact_name))
    return [
        *_gate(gate),
        _echo(START_MARKER, slot, unit),
        f"\\o |{compress} > {target}",
        f"COPY {unit.qualified_name} TO STDOUT WITH (FORMAT binary);",
        "\\o",
        _echo(DONE_MARKER, slot, unit),
    ]


def restore_fragment(
    slot: int, unit: WorkUnit, input_dir: Path, decompress: str, gate: Path | None = None
) -> list[str]:
    """Script lines loading one table from its compressed artifact."""
    program = f"{decompress} {shlex.quote(str(input_dir / unit.artifact_name))}"
    return [
        *_gate(gate),
        _echo(START_MARKER, slot, unit),
        f"\\copy {unit.qualified_name} FROM PROGRAM {_psql_quote(program)} WITH (FORMAT binary)",
        _echo(DONE_MARKER, slot, unit),
    ]


def render_dump_script(
    slot: int,
    units: list[WorkUnit],
    session: list[str],
    token: str,
    output_dir: Path,
    compress: str,
    gate: Path | None = None,
) -> str:
    """Full script for a dump worker, bound to the exported snapshot.

    Args:
        slot: Worker slot index.
        units: The slot's units, in order.
        session: Session statements replayed from the coordinator.
        token: Exported snapshot token.
        output_dir: Backup directory receiving the artifacts.
        compress: Shell command compressing stdin to stdout.
        gate: File included before each unit (see ``GATE_STOP_SQL``).
    """
    lines = [f"{sql};" for sql in session]
    lines.append(f"{BEGIN_SNAPSHOT_TRANSACTION};")
    lines.append(f"{set_snapshot_statement(token)};")
    for unit in units:
        lines.extend(dump_fragment(slot, unit, output_dir, compress, gate))
    lines.append("COMMIT;")
    return "\n".join(lines) + "\n"


def render_restore_script(
    slot: int,
    units: list[WorkUnit],
    session: list[str],
    input_dir: Path,
    decompress: str,
    gate: Path | None = None,
) -> str:
    """Full script for a restore worker; each ``\\copy`` commits on its own."""
    lines = [f"{sql};" for sql in session]
    for unit in units:
        lines.extend(restore_fragment(slot, unit, input_dir, decompress, gate))
    return "\n".join(lines) + "\n"
