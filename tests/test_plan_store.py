"""
PlanStore persistence: plans, execution state and both backends.
"""

from __future__ import annotations

from ColonyPlanner.construction import JsonFileStore, MemoryStore, PlanStore
from ColonyPlanner.construction.plan_types import (
    PLAN_VERSION,
    BasePhase,
    DefensePlan,
    ExecutionState,
    MisalignedRecord,
    Plan,
)
from ColonyPlanner.structures import StructureKind
from ColonyPlanner.terrain import Position

from conftest import ANCHOR, row, tier_plan

K = StructureKind


def _plan() -> Plan:
    top = tier_plan({K.SPAWN: [ANCHOR], K.EXTENSION: row(30, 5, 3, step=2), K.LINK: []})
    top.roles[K.LINK] = []
    top.roles[K.CONTAINER] = ["controller"]
    top.placements[K.CONTAINER] = [Position(11, 39)]
    top.caps[K.CONTAINER] = 1
    low = tier_plan({K.SPAWN: [ANCHOR]})
    return Plan(
        anchor=ANCHOR,
        tiers={2: top, 1: low},
        defenses=DefensePlan(barriers=[ANCHOR], perimeter=[Position(24, 24)], exits=[]),
        generated_at=42,
    )


def test_plan_round_trips_through_memory_store():
    store = PlanStore(MemoryStore())
    plan = _plan()

    store.save_plan("W1N1", plan)
    loaded = store.load_plan("W1N1")

    assert loaded == plan
    assert loaded.max_tier == 2
    assert store.tier_plan("W1N1", 2).positions(K.EXTENSION) == plan.tier(2).positions(K.EXTENSION)
    assert store.tier_plan("W1N1", 5) is None


def test_missing_or_deleted_plan_reads_as_none():
    store = PlanStore()
    assert store.load_plan("W1N1") is None
    store.save_plan("W1N1", _plan())
    store.delete_plan("W1N1")
    assert store.load_plan("W1N1") is None


def test_older_schema_version_reads_as_none():
    backend = MemoryStore()
    store = PlanStore(backend)
    raw = _plan().to_dict()
    raw["version"] = PLAN_VERSION - 1
    backend.set("plan:W1N1", raw)

    assert store.load_plan("W1N1") is None


def test_plan_without_anchor_reads_as_none():
    backend = MemoryStore()
    backend.set("plan:W1N1", {"tiers": {}})
    assert PlanStore(backend).load_plan("W1N1") is None


def test_plan_with_a_missing_tier_reads_as_none():
    backend = MemoryStore()
    raw = _plan().to_dict()
    del raw["tiers"]["1"]
    backend.set("plan:W1N1", raw)
    assert PlanStore(backend).load_plan("W1N1") is None

    raw["tiers"] = {}
    backend.set("plan:W1N1", raw)
    assert PlanStore(backend).load_plan("W1N1") is None


def test_unknown_kinds_are_dropped_on_load():
    raw = _plan().to_dict()
    raw["tiers"]["2"]["placements"]["teleporter"] = [{"x": 3, "y": 3}]
    loaded = Plan.from_dict(raw)
    assert set(loaded.tier(2).placements) == {K.SPAWN, K.EXTENSION, K.LINK, K.CONTAINER}


def test_fresh_state_when_nothing_stored():
    state = PlanStore().load_state("W1N1")
    assert state == ExecutionState()
    assert state.phase is BasePhase.UNPLANNED


def test_state_round_trip_and_defaults():
    store = PlanStore()
    state = ExecutionState(
        phase=BasePhase.EXECUTING,
        planned_flags={"extension": True},
        counts={"extension": 3},
        last_update_tick=99,
        misaligned=[MisalignedRecord(K.ROAD, Position(3, 4), 17)],
        rotation_cursor=4,
        last_non_transit_tick=90,
        last_audit_tick=12,
        last_tier=3,
    )
    store.save_state("W1N1", state)
    assert store.load_state("W1N1") == state

    partial = ExecutionState.from_dict({"phase": "converged", "counts": {"road": 2}})
    assert partial.phase is BasePhase.CONVERGED
    assert partial.counts == {"road": 2}
    assert partial.planned_flags == {}
    assert partial.last_audit_tick is None


def test_bad_phase_and_unknown_misaligned_kind_are_tolerated():
    state = ExecutionState.from_dict({
        "phase": "exploding",
        "misaligned": [{"kind": "teleporter", "position": {"x": 1, "y": 1}}],
    })
    assert state.phase is BasePhase.UNPLANNED
    assert state.misaligned == []


def test_reset_clears_progress():
    state = ExecutionState(phase=BasePhase.CONVERGED, planned_flags={"road": True}, rotation_cursor=9)
    state.misaligned.append(MisalignedRecord(K.ROAD, Position(1, 1)))
    state.reset()
    assert state.phase is BasePhase.UNPLANNED
    assert state.planned_flags == {}
    assert state.misaligned == []
    assert state.rotation_cursor == 0


def test_defense_plan_closed_cells():
    defenses = DefensePlan(
        perimeter=[Position(1, 1), Position(2, 1), Position(3, 1)],
        exits=[Position(2, 1)],
    )
    assert defenses.closed == [Position(1, 1), Position(3, 1)]


# ── JSON backend ─────────────────────────────────────────────────────────────

def test_json_store_persists_across_instances(tmp_path):
    path = tmp_path / "store" / "colony.json"
    PlanStore(JsonFileStore(path)).save_plan("W1N1", _plan())
    PlanStore(JsonFileStore(path)).save_state("W1N1", ExecutionState(last_tier=2))

    store = PlanStore(JsonFileStore(path))
    assert store.load_plan("W1N1") == _plan()
    assert store.load_state("W1N1").last_tier == 2
    assert not path.with_suffix(".json.tmp").exists()


def test_json_store_delete(tmp_path):
    path = tmp_path / "colony.json"
    backend = JsonFileStore(path)
    backend.set("a", 1)
    backend.delete("a")
    backend.delete("missing")
    assert JsonFileStore(path).get("a") is None


def test_corrupt_json_file_reads_as_empty(tmp_path):
    path = tmp_path / "colony.json"
    path.write_text("{not json", encoding="utf-8")

    store = PlanStore(JsonFileStore(path))

    assert store.load_plan("W1N1") is None
    assert store.load_state("W1N1") == ExecutionState()
