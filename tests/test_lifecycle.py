"""
ConstructionManager: the per-base state machine end to end, on a small
two-tier capability table so every transition is easy to follow.
"""

from __future__ import annotations

import pytest

from ColonyPlanner.construction import (
    BasePhase,
    ConstructionManager,
    LifecycleConfig,
    MemoryStore,
    PlannerConfig,
    PlanStore,
)
from ColonyPlanner.structures import CapabilityTable, StructureKind

from conftest import ANCHOR, make_world, open_site

K = StructureKind

SMALL_TABLE = {
    K.SPAWN:     {1: 1, 2: 1},
    K.EXTENSION: {1: 0, 2: 3},
    K.CONTAINER: {1: 1, 2: 1},
}


@pytest.fixture
def caps():
    return CapabilityTable(SMALL_TABLE, max_tier=2)


@pytest.fixture
def small_world(caps):
    return make_world(open_site(tier=1), capabilities=caps)


@pytest.fixture
def manager(small_world, caps, tmp_path):
    config = LifecycleConfig(
        render_dir=tmp_path / "plans",
        planner=PlannerConfig(deterministic=True),
    )
    return ConstructionManager(small_world, PlanStore(MemoryStore()), caps, config)


def test_full_lifecycle(manager, small_world):
    # Invocation 1 only generates.
    assert manager.run("W1N1") == 0
    assert manager.phase("W1N1") is BasePhase.EXECUTING
    tier1 = manager.get_plan("W1N1")
    assert tier1.positions(K.SPAWN) == [ANCHOR]
    assert len(tier1.positions(K.CONTAINER)) == 1
    assert tier1.positions(K.EXTENSION) == []

    # Invocation 2 marks the single buffer.
    assert manager.run("W1N1") == 1
    assert manager.phase("W1N1") is BasePhase.EXECUTING
    small_world.complete_markers()

    # Invocation 3 finds the tier built.
    assert manager.run("W1N1") == 0
    assert manager.phase("W1N1") is BasePhase.CONVERGED

    # Tier increase resumes execution with the new extensions.
    small_world.set_tier("W1N1", 2)
    assert manager.run("W1N1") == 3
    assert manager.phase("W1N1") is BasePhase.EXECUTING
    extensions = {m.position for m in small_world.find_pending_markers("W1N1", K.EXTENSION)}
    assert extensions == set(manager.get_plan("W1N1", tier=2).positions(K.EXTENSION))

    small_world.complete_markers()
    manager.run("W1N1")
    assert manager.phase("W1N1") is BasePhase.CONVERGED
    assert manager.alignment_report("W1N1").complete


def test_lost_structure_resumes_execution(manager, small_world):
    manager.run("W1N1")
    manager.run("W1N1")
    small_world.complete_markers()
    manager.run("W1N1")
    assert manager.phase("W1N1") is BasePhase.CONVERGED

    container = small_world.find_structures("W1N1", K.CONTAINER)[0]
    small_world.destroy(container.ref)

    assert manager.run("W1N1") == 1
    assert manager.phase("W1N1") is BasePhase.EXECUTING


def test_no_anchor_stays_unplanned(caps):
    world = make_world(open_site(tier=1), capabilities=caps, anchor=None)
    manager = ConstructionManager(world, capabilities=caps)

    assert manager.run("W1N1") == 0
    assert manager.phase("W1N1") is BasePhase.UNPLANNED
    assert manager.get_plan("W1N1") is None


def test_unknown_base_is_skipped(manager):
    assert manager.run("E5S5") == 0
    assert manager.phase("E5S5") is BasePhase.UNPLANNED


def test_missing_plan_is_regenerated(manager):
    manager.run("W1N1")
    manager.store.delete_plan("W1N1")

    assert manager.run("W1N1") == 0
    assert manager.phase("W1N1") is BasePhase.EXECUTING
    assert manager.get_plan("W1N1") is not None


def test_request_replan(manager):
    manager.run("W1N1")
    manager.request_replan("W1N1")

    assert manager.phase("W1N1") is BasePhase.UNPLANNED
    assert manager.get_plan("W1N1") is None

    manager.run("W1N1")
    assert manager.phase("W1N1") is BasePhase.EXECUTING


def test_operator_helpers(manager, small_world):
    plan = manager.generate_plan("W1N1")
    assert plan is not None
    assert manager.phase("W1N1") is BasePhase.EXECUTING

    preview = manager.next_pending_positions("W1N1", limit=5)
    assert [kind for kind, _ in preview] == [K.CONTAINER]
    assert small_world.find_pending_markers() == []

    assert manager.execute_once("W1N1") == 1
    assert manager.audit("W1N1") == []

    report = manager.alignment_report("W1N1")
    assert report.aligned
    assert report.kinds[K.CONTAINER].pending == 1


def test_visualize_writes_png_and_ascii(manager, tmp_path):
    assert manager.visualize("W1N1") is None

    manager.run("W1N1")
    png = manager.visualize("W1N1", tier=2)

    assert png == tmp_path / "plans" / "W1N1_tier2.png"
    assert png.read_bytes()[:4] == b"\x89PNG"
    text = png.with_suffix(".txt").read_text(encoding="utf-8").splitlines()
    assert len(text) == 50
    assert text[ANCHOR.y][ANCHOR.x] == "@"
    assert any("e" in line for line in text)


def test_lost_state_resumes_the_stored_plan(manager, small_world):
    manager.run("W1N1")
    manager.run("W1N1")
    small_world.complete_markers()
    stored = manager.store.load_plan("W1N1")

    manager.store.backend.delete("state:W1N1")
    small_world.set_tier("W1N1", 2)
    small_world.advance(50)

    assert manager.run("W1N1") == 3
    assert manager.phase("W1N1") is BasePhase.EXECUTING
    assert manager.store.load_plan("W1N1") == stored
    assert manager.store.load_plan("W1N1").generated_at == 0
    assert manager.store.load_state("W1N1").last_tier == 2


def test_incomplete_stored_plan_is_regenerated(manager, small_world):
    manager.run("W1N1")
    del manager.store.backend.data["plan:W1N1"]["tiers"]["1"]
    small_world.advance(10)

    assert manager.run("W1N1") == 0
    assert manager.phase("W1N1") is BasePhase.EXECUTING
    plan = manager.store.load_plan("W1N1")
    assert set(plan.tiers) == {1, 2}
    assert plan.generated_at == 10

    assert manager.run("W1N1") == 1
