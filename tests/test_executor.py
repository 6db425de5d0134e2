"""
ConstructionExecutor: marker budget, kind rotation and failure isolation.
"""

from __future__ import annotations

from collections import Counter

from ColonyPlanner.construction import ConstructionExecutor, ExecutorConfig
from ColonyPlanner.construction.plan_types import ExecutionState
from ColonyPlanner.simulation import SimulatedWorld
from ColonyPlanner.structures import StructureKind
from ColonyPlanner.terrain import Position
from ColonyPlanner.world import PendingMarker, PlaceResult

from conftest import make_world, open_site, row, tier_plan

K = StructureKind


def _extension_plan(count=20):
    return tier_plan({K.EXTENSION: row(30, 5, count, step=2)})


def _mixed_plan():
    return tier_plan({
        K.EXTENSION: row(30, 5, 3, step=2),
        K.CONTAINER: row(32, 5, 3, step=2),
        K.TOWER:     row(34, 5, 3, step=2),
        K.ROAD:      row(36, 5, 3, step=2),
        K.LAB:       row(38, 5, 3, step=2),
    })


# ── Budget ───────────────────────────────────────────────────────────────────

def test_pass_places_up_to_per_base_target(world):
    executor = ConstructionExecutor()
    state = ExecutionState()
    plan = _extension_plan()

    assert executor.execute(world, "W1N1", plan, state) == 5
    assert executor.execute(world, "W1N1", plan, state) == 0
    assert len(world.find_pending_markers("W1N1")) == 5

    world.complete_markers(limit=2)
    assert executor.execute(world, "W1N1", plan, state) == 2
    assert len(world.find_pending_markers("W1N1")) == 5


def test_global_marker_cap_across_bases():
    sites = [open_site(base_id=f"B{i}") for i in range(21)]
    world = make_world(*sites)
    executor = ConstructionExecutor()
    plan = _extension_plan(10)

    placed = [executor.execute(world, s.base_id, plan, ExecutionState()) for s in sites]

    assert sum(placed) == 100
    assert placed[-1] == 0
    assert len(world.find_pending_markers()) == 100


def test_budget_is_the_smaller_headroom():
    executor = ConstructionExecutor(ExecutorConfig(max_global_markers=10, markers_per_base=5))
    assert executor.budget(0, 0) == 5
    assert executor.budget(8, 0) == 2
    assert executor.budget(10, 0) == 0
    assert executor.budget(3, 5) == 0


def test_missing_plan_places_nothing(world):
    assert ConstructionExecutor().execute(world, "W1N1", None, ExecutionState()) == 0
    assert world.find_pending_markers() == []


# ── Per position ─────────────────────────────────────────────────────────────

def test_built_and_marked_cells_are_skipped(world):
    executor = ConstructionExecutor()
    plan = _extension_plan(4)
    cells = plan.positions(K.EXTENSION)
    world.add_structure("W1N1", K.EXTENSION, cells[0])
    world.place_marker("W1N1", cells[1], K.EXTENSION)

    placed = executor.execute(world, "W1N1", plan, ExecutionState())

    assert placed == 2
    marked = [m.position for m in world.find_pending_markers("W1N1", K.EXTENSION)]
    assert sorted(marked) == sorted(cells[1:])


def test_blocking_kind_never_marked_on_another_blocking_structure(world):
    cell = Position(30, 30)
    world.add_structure("W1N1", K.TOWER, cell)
    plan = tier_plan({K.EXTENSION: [cell], K.ROAD: [cell]})

    ConstructionExecutor().execute(world, "W1N1", plan, ExecutionState())

    kinds = {m.kind for m in world.find_pending_markers("W1N1")}
    assert kinds == {K.ROAD}


def test_full_stops_the_pass():

    class FullWorld(SimulatedWorld):
        calls = 0

        def place_marker(self, base_id, position, kind):
            self.calls += 1
            return PlaceResult.FULL

    world = FullWorld()
    world.add_base(open_site(), spawn=Position(25, 25))

    assert ConstructionExecutor().execute(world, "W1N1", _extension_plan(), ExecutionState()) == 0
    assert world.calls == 1


def test_full_midway_keeps_earlier_placements():
    class CappedWorld(SimulatedWorld):
        calls = 0

        def place_marker(self, base_id, position, kind):
            self.calls += 1
            if self.calls > 2:
                return PlaceResult.FULL
            return super().place_marker(base_id, position, kind)

    world = CappedWorld()
    world.add_base(open_site(), spawn=Position(25, 25))
    state = ExecutionState()

    assert ConstructionExecutor().execute(world, "W1N1", _extension_plan(), state) == 2
    assert world.calls == 3
    assert len(world.find_pending_markers("W1N1")) == 2
    assert state.rotation_cursor == 1


def test_raising_placement_does_not_abort_the_pass():
    bad = Position(5, 30)

    class FlakyWorld(SimulatedWorld):
        def place_marker(self, base_id, position, kind):
            if position == bad:
                raise RuntimeError("host rejected request")
            return super().place_marker(base_id, position, kind)

    world = FlakyWorld()
    world.add_base(open_site(), spawn=Position(25, 25))
    plan = _extension_plan(3)
    assert plan.positions(K.EXTENSION)[0] == bad

    assert ConstructionExecutor().execute(world, "W1N1", plan, ExecutionState()) == 2


def test_error_result_is_skipped():

    class BrokenWorld(SimulatedWorld):
        def place_marker(self, base_id, position, kind):
            return PlaceResult.ERROR

    world = BrokenWorld()
    world.add_base(open_site(), spawn=Position(25, 25))
    state = ExecutionState()

    assert ConstructionExecutor().execute(world, "W1N1", _extension_plan(3), state) == 0
    assert state.rotation_cursor == 1


# ── Rotation ─────────────────────────────────────────────────────────────────

def test_rotation_gives_every_kind_a_turn(world):
    executor = ConstructionExecutor(ExecutorConfig(markers_per_base=1))
    state = ExecutionState()
    plan = _mixed_plan()

    for _ in range(10):
        world.advance()
        executor.execute(world, "W1N1", plan, state)
        world.complete_markers()

    built = Counter(s.kind for s in world.find_structures("W1N1"))
    for kind in (K.EXTENSION, K.CONTAINER, K.TOWER, K.ROAD, K.LAB):
        assert built[kind] >= 1, kind


def test_roads_go_last_when_other_kinds_starve():
    executor = ConstructionExecutor()
    plan = _mixed_plan()
    state = ExecutionState(rotation_cursor=3)

    assert executor.rotation(plan, state, [], tick=50)[0] == K.ROAD
    order = executor.rotation(plan, state, [], tick=500)
    assert order[-1] == K.ROAD
    assert order[0] == K.LAB


def test_roads_go_last_when_they_dominate_pending():
    executor = ConstructionExecutor()
    plan = _mixed_plan()
    state = ExecutionState(rotation_cursor=3)
    pending = [PendingMarker(K.ROAD, Position(10 + i, 10), "W1N1") for i in range(3)]
    pending.append(PendingMarker(K.EXTENSION, Position(20, 20), "W1N1"))

    assert executor.rotation(plan, state, pending, tick=1)[-1] == K.ROAD
    assert executor.rotation(plan, state, pending[2:], tick=1)[0] == K.ROAD


# ── Queries ──────────────────────────────────────────────────────────────────

def test_next_pending_positions_places_nothing(world):
    executor = ConstructionExecutor()
    plan = _extension_plan(20)

    preview = executor.next_pending_positions(world, "W1N1", plan, ExecutionState(), limit=7)

    assert len(preview) == 7
    assert all(kind == K.EXTENSION for kind, _ in preview)
    assert world.find_pending_markers() == []


def test_remaining_and_progress_flags(world):
    executor = ConstructionExecutor()
    plan = _extension_plan(3)
    state = ExecutionState()

    assert executor.remaining(world, "W1N1", plan) == 3
    executor.execute(world, "W1N1", plan, state)
    assert state.planned_flags["extension"] is True
    assert state.counts["extension"] == 0

    world.complete_markers()
    executor.execute(world, "W1N1", plan, state)
    assert executor.remaining(world, "W1N1", plan) == 0
    assert state.counts["extension"] == 3
