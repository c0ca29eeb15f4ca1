"""Work units, catalog reading, planning and worker script rendering."""

from pg_parallel.plan.catalog import (
    TocEntry,
    parse_toc,
    read_catalog,
    resolve_units,
    sort_units,
    units_from_artifacts,
)
from pg_parallel.plan.copystream import drop_if_empty, is_empty_copy_stream
from pg_parallel.plan.models import WorkPlan, WorkUnit
from pg_parallel.plan.planner import plan

__all__ = [
    "WorkUnit",
    "WorkPlan",
    "plan",
    "TocEntry",
    "parse_toc",
    "resolve_units",
    "read_catalog",
    "sort_units",
    "units_from_artifacts",
    "drop_if_empty",
    "is_empty_copy_stream",
]
