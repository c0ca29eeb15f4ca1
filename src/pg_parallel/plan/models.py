"""Work units and work plans."""

from pydantic import BaseModel, ConfigDict, Field

from pg_parallel.plan.naming import artifact_name, unit_key


def quote_ident(name: str) -> str:
    """Quote an SQL identifier (always quoted, embedded quotes doubled)."""
    return '"' + name.replace('"', '""') + '"'


class WorkUnit(BaseModel):
    """One table scheduled for independent data transfer.

    Identity is the exact (schema, table) pair as the server spells it.
    """

    model_config = ConfigDict(frozen=True)

    schema_name: str
    table_name: str

    @property
    def qualified_name(self) -> str:
        """Quoted ``"schema"."table"`` for use in SQL."""
        return f"{quote_ident(self.schema_name)}.{quote_ident(self.table_name)}"

    @property
    def display_name(self) -> str:
        return f"{self.schema_name}.{self.table_name}"

    @property
    def key(self) -> str:
        """Escaped ``schema.table``, safe in file names, shells and psql."""
        return unit_key(self.schema_name, self.table_name)

    @property
    def artifact_name(self) -> str:
        return artifact_name(self.schema_name, self.table_name)

    def __str__(self) -> str:
        return self.display_name


class WorkPlan(BaseModel):
    """Assignment of work units to worker slots ``1..worker_count``."""

    worker_count: int = Field(ge=1)
    slots: dict[int, list[WorkUnit]] = Field(default_factory=dict)

    def units(self) -> list[WorkUnit]:
        """All units, slot by slot."""
        return [unit for slot in sorted(self.slots) for unit in self.slots[slot]]

    def non_empty_slots(self) -> list[int]:
        return [slot for slot in sorted(self.slots) if self.slots[slot]]

    def slot_of(self, unit: WorkUnit) -> int | None:
        for slot, units in self.slots.items():
            if unit in units:
                return slot
        return None

    @property
    def unit_count(self) -> int:
        return sum(len(units) for units in self.slots.values())
