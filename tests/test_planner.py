"""Tests for round-robin planning and plan reconstruction from file names."""

import pytest

from conftest import units
from pg_parallel.plan.catalog import sort_units, units_from_artifacts
from pg_parallel.plan.models import WorkPlan, WorkUnit
from pg_parallel.plan.planner import plan


class TestRoundRobin:
    """Assignment of units to slots."""

    def test_scenario_two_workers(self):
        """Schemas sort alphabetically, tables keep catalog order, slots alternate."""
        result = plan(units("public.orders", "public.items", "reporting.sales"), 2)

        assert [str(u) for u in result.slots[1]] == ["public.orders", "reporting.sales"]
        assert [str(u) for u in result.slots[2]] == ["public.items"]

    def test_schema_order_wins_over_input_order(self):
        result = plan(units("zeta.a", "alpha.b", "zeta.c", "alpha.d"), 2)

        assert [str(u) for u in result.units()] == [
            "alpha.b", "zeta.a",      # slot 1
            "alpha.d", "zeta.c",      # slot 2
        ]

    @pytest.mark.parametrize("worker_count", [1, 2, 3, 7, 20])
    def test_every_unit_in_exactly_one_slot(self, worker_count):
        all_units = [
            WorkUnit(schema_name=f"s{i % 4}", table_name=f"t{i}") for i in range(13)
        ]
        result = plan(all_units, worker_count)

        assigned = [u for slot_units in result.slots.values() for u in slot_units]
        assert sorted(assigned, key=str) == sorted(all_units, key=str)
        assert len(assigned) == len(set(assigned))
        assert set(result.slots) == set(range(1, worker_count + 1))
        for u in all_units:
            assert 1 <= result.slot_of(u) <= worker_count

    def test_more_workers_than_units_leaves_empty_slots(self):
        result = plan(units("public.a", "public.b"), 5)

        assert result.non_empty_slots() == [1, 2]
        assert result.slots[5] == []
        assert result.unit_count == 2

    def test_no_units(self):
        result = plan([], 3)

        assert result.non_empty_slots() == []
        assert result.units() == []

    def test_deterministic(self):
        given = units("b.x", "a.y", "b.z", "a.w", "c.v")

        first = plan(given, 3)
        second = plan(list(given), 3)

        assert first == second

    @pytest.mark.parametrize("worker_count", [0, -1])
    def test_rejects_non_positive_worker_count(self, worker_count):
        with pytest.raises(ValueError):
            plan(units("public.a"), worker_count)


class TestSortUnits:
    """sort_units is stable within a schema."""

    def test_stable_within_schema(self):
        result = sort_units(units("b.z", "a.y", "b.a", "a.b"))

        assert [str(u) for u in result] == ["a.y", "a.b", "b.z", "b.a"]


class TestRestorePlanFromArtifacts:
    """Restore rebuilds the same plan from file names alone."""

    def test_matches_dump_plan(self, tmp_path):
        # pg_dump lists tables by schema, then name
        catalog = units(
            "public.items", "public.orders", "public.users",
            "reporting.daily", "reporting.sales", "weird.with.dots",
        )
        for u in catalog:
            (tmp_path / u.artifact_name).write_bytes(b"x")
        (tmp_path / "pre-data.dmp").write_bytes(b"x")
        (tmp_path / "metadata.json").write_text("{}")

        dump_plan = plan(catalog, 4)
        restore_plan = plan(units_from_artifacts(tmp_path), 4)

        assert restore_plan == dump_plan

    def test_ignores_non_artifact_files(self, tmp_path):
        (tmp_path / "data-public.orders.bin.gz").write_bytes(b"x")
        (tmp_path / "data-notes.txt").write_text("x")
        (tmp_path / "post-data.dmp").write_bytes(b"x")

        assert units_from_artifacts(tmp_path) == units("public.orders")


class TestWorkPlan:
    """WorkPlan helpers."""

    def test_slot_of_unknown_unit(self):
        p = WorkPlan(worker_count=1, slots={1: units("public.a")})

        assert p.slot_of(WorkUnit(schema_name="public", table_name="b")) is None

    def test_units_are_hashable_and_compare_by_pair(self):
        a = WorkUnit(schema_name="public", table_name="Orders")
        b = WorkUnit(schema_name="public", table_name="Orders")
        c = WorkUnit(schema_name="public", table_name="orders")

        assert a == b and hash(a) == hash(b)
        assert a != c
