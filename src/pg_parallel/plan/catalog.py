"""Catalog reader: table list from a pre-data archive's table of contents.

``pg_restore --list`` prints one entry per line::

    215; 1259 16386 TABLE public orders postgres

Fields by position: dump id, catalog oid, object oid, description, schema,
name, owner.  ``TABLE`` entries are candidate work units.  Names in the
listing are printed unquoted, so a name containing a space shifts the
fields after it; the object oid comes before any name and is always
reliable.  When a resolver is given (the snapshot connection's
``base_tables``), units take their exact names from the catalog by oid, and
entries that are not ordinary tables (partitioned parents) are dropped.
"""

import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from pydantic import BaseModel, ConfigDict

from pg_parallel.config.models import ToolSettings
from pg_parallel.pgtools import list_archive
from pg_parallel.plan.models import WorkUnit
from pg_parallel.plan.naming import parse_artifact_name

logger = logging.getLogger(__name__)

_OID_FIELD = 2
_DESC_FIELD = 3
_SCHEMA_FIELD = 4
_NAME_FIELD = 5
_MIN_FIELDS = 6

# oids -> {oid: (schema, table)} for the ordinary tables among them
TableResolver = Callable[[list[int]], dict[int, tuple[str, str]]]


class TocEntry(BaseModel):
    """A ``TABLE`` line of the listing: object oid and the names as printed."""

    model_config = ConfigDict(frozen=True)

    oid: int
    schema_name: str
    table_name: str

    @property
    def unit(self) -> WorkUnit:
        return WorkUnit(schema_name=self.schema_name, table_name=self.table_name)


def parse_toc(listing: str) -> list[TocEntry]:
    """Parse ``pg_restore --list`` output into table entries.

    Comment lines and entries with too few fields are skipped.  Order is the
    listing's; duplicate oids keep their first position.

    Args:
        listing: Text output of ``pg_restore --list``.

    Returns:
        Table entries in catalog order.
    """
    entries: list[TocEntry] = []
    seen: set[int] = set()

    for line in listing.splitlines():
        line = line.strip()
        if not line or line.startswith(";"):
            continue
        fields = line.split()
        if len(fields) < _MIN_FIELDS:
            logger.debug("Skipping short TOC entry: %s", line)
            continue
        if fields[_DESC_FIELD] != "TABLE":
            continue
        # "TABLE DATA" splits into two words and shifts schema/name right by one
        if fields[_SCHEMA_FIELD] == "DATA" and len(fields) > _MIN_FIELDS + 1:
            continue
        try:
            oid = int(fields[_OID_FIELD])
        except ValueError:
            logger.debug("Skipping TOC entry without an oid: %s", line)
            continue

        if oid not in seen:
            seen.add(oid)
            entries.append(
                TocEntry(oid=oid, schema_name=fields[_SCHEMA_FIELD], table_name=fields[_NAME_FIELD])
            )

    return entries


def resolve_units(entries: list[TocEntry], resolve: TableResolver) -> list[WorkUnit]:
    """Work units with exact catalog names, in listing order.

    Entries the resolver does not return are not ordinary tables and are
    skipped.
    """
    names = resolve([entry.oid for entry in entries])
    units: list[WorkUnit] = []
    for entry in entries:
        if entry.oid not in names:
            logger.debug("Skipping %s: not an ordinary table", entry.unit)
            continue
        schema_name, table_name = names[entry.oid]
        units.append(WorkUnit(schema_name=schema_name, table_name=table_name))
    return units


def sort_units(units: Iterable[WorkUnit]) -> list[WorkUnit]:
    """Order by schema name, keeping the incoming order within a schema."""
    return sorted(units, key=lambda unit: unit.schema_name)


async def read_catalog(
    pre_data_path: Path,
    tools: ToolSettings,
    resolve: TableResolver | None = None,
) -> list[WorkUnit]:
    """List the tables recorded in a pre-data archive.

    Args:
        pre_data_path: The pre-data archive.
        tools: Tool settings (``pg_restore``).
        resolve: Oid-to-name lookup on the snapshot connection.  Without
            one, names are taken from the listing as printed.

    Raises:
        ToolError: If ``pg_restore --list`` fails.
        SnapshotError: If the resolver's catalog query fails.
    """
    listing = await list_archive(pre_data_path, tools)
    entries = parse_toc(listing)
    if resolve is None:
        units = [entry.unit for entry in entries]
    else:
        units = resolve_units(entries, resolve)
    logger.debug("Catalog lists %d tables", len(units))
    return units


def units_from_artifacts(directory: Path) -> list[WorkUnit]:
    """Rebuild the unit set from artifact file names in a backup directory.

    Units are ordered by (schema, table) name, which is the order
    ``pg_dump`` gives tables in its table of contents.
    """
    units = []
    for path in directory.iterdir():
        parsed = parse_artifact_name(path.name)
        if parsed is None or not path.is_file():
            continue
        units.append(WorkUnit(schema_name=parsed[0], table_name=parsed[1]))
    return sorted(units, key=lambda unit: (unit.schema_name, unit.table_name))
