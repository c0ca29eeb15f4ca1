"""Round-robin work distribution.

Units are ordered by schema name (stable within a schema) and dealt out to
slots ``1..N`` in turn.  Table size is not considered: a table is always
transferred as one unsplit stream, so there is nothing finer to balance.
"""

from collections.abc import Iterable

from pg_parallel.plan.catalog import sort_units
from pg_parallel.plan.models import WorkPlan, WorkUnit


def plan(units: Iterable[WorkUnit], worker_count: int) -> WorkPlan:
    """Assign units to worker slots.

    Args:
        units: Work units in catalog order.
        worker_count: Number of worker slots (at least 1).

    Returns:
        WorkPlan where unit *i* (in sorted order) sits in slot
        ``(i mod worker_count) + 1``.

    Raises:
        ValueError: If ``worker_count`` is less than 1.

    Example:
        >>> p = plan([orders, items, sales], 2)
        >>> [str(u) for u in p.slots[1]]
        ['public.orders', 'reporting.sales']
    """
    if worker_count < 1:
        raise ValueError(f"worker_count must be at least 1, got {worker_count}")

    slots: dict[int, list[WorkUnit]] = {slot: [] for slot in range(1, worker_count + 1)}
    for i, unit in enumerate(sort_units(units)):
        slots[(i % worker_count) + 1].append(unit)

    return WorkPlan(worker_count=worker_count, slots=slots)
