"""
Multi-tier plan generation.

Layouts are checked for the properties every tier must have: caps honoured,
no two blocking structures on one cell, every cell inside the build bounds,
and each lower tier drawn from the max-tier layout.
"""

from __future__ import annotations

import copy

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from ColonyPlanner.construction import PlanGenerator, PlannerConfig
from ColonyPlanner.construction.plan_types import ROLE_CONTROLLER, ROLE_SOURCE
from ColonyPlanner.structures import (
    DEFAULT_CAPABILITIES,
    MAX_TIER,
    PLANNED_KINDS,
    CapabilityTable,
    StructureKind,
    is_blocking,
)
from ColonyPlanner.terrain import Position, TerrainGrid, TerrainType

from conftest import ANCHOR, CONTROLLER, make_world, open_site

K = StructureKind


def _generate(world=None, capabilities=None, **config):
    world = world or make_world()
    config.setdefault("deterministic", True)
    generator = PlanGenerator(capabilities, PlannerConfig(**config))
    return generator.generate(world, "W1N1")


def _assert_valid_tier(tier_plan):
    blocking = []
    for kind, positions in tier_plan.placements.items():
        assert len(positions) <= tier_plan.caps.get(kind, 0), kind
        assert len(set(positions)) == len(positions), kind
        for pos in positions:
            assert 2 <= pos.x <= 47 and 2 <= pos.y <= 47, (kind, pos)
        if is_blocking(kind):
            blocking.extend(positions)
    assert len(blocking) == len(set(blocking))


# ── Worked examples ──────────────────────────────────────────────────────────

def test_two_extension_cap_on_open_terrain():
    table = {
        K.SPAWN: {t: 1 for t in range(1, MAX_TIER + 1)},
        K.EXTENSION: {MAX_TIER: 2},
    }
    plan = _generate(capabilities=CapabilityTable(table), deterministic=False, seed=3)

    extensions = plan.tier(MAX_TIER).positions(K.EXTENSION)
    assert len(extensions) == 2
    a, b = extensions
    assert a.manhattan(ANCHOR) >= 2
    assert b.manhattan(ANCHOR) >= 2
    assert a.manhattan(b) >= 2
    for pos in extensions:
        assert 2 <= pos.x <= 47 and 2 <= pos.y <= 47


def test_low_tier_buffer_comes_from_controller_buffer():
    table = copy.deepcopy(DEFAULT_CAPABILITIES)
    table[K.CONTAINER] = dict(table[K.CONTAINER])
    table[K.CONTAINER][3] = 1
    site = open_site(sources=[Position(40, 10), Position(40, 40), Position(10, 10)])

    plan = _generate(make_world(site), CapabilityTable(table))

    top = plan.tier(MAX_TIER)
    tier3 = plan.tier(3)
    assert tier3.positions(K.CONTAINER) == [top.positions(K.CONTAINER)[0]]
    assert tier3.roles[K.CONTAINER] == [ROLE_CONTROLLER]
    assert tier3.positions(K.CONTAINER)[0].manhattan(CONTROLLER) <= 3


# ── Structure of a generated plan ────────────────────────────────────────────

def test_every_tier_present_and_valid():
    plan = _generate()

    assert sorted(plan.tiers) == list(range(1, MAX_TIER + 1))
    assert plan.anchor == ANCHOR
    for tier_plan in plan.tiers.values():
        _assert_valid_tier(tier_plan)


def test_max_tier_fills_default_caps_on_open_terrain():
    plan = _generate()
    top = plan.tier(MAX_TIER)

    assert top.positions(K.SPAWN)[0] == ANCHOR
    assert len(top.positions(K.SPAWN)) == 3
    assert len(top.positions(K.EXTENSION)) == 60
    assert len(top.positions(K.TOWER)) == 6
    assert 0 < len(top.positions(K.LAB)) <= 10
    assert len(top.positions(K.STORAGE)) == 1
    assert top.positions(K.ROAD)


def test_lower_tiers_are_prefixes_of_the_max_tier():
    plan = _generate()
    top = plan.tier(MAX_TIER)

    for tier in range(1, MAX_TIER):
        lower = plan.tier(tier)
        for kind in PLANNED_KINDS:
            if kind == K.CONTAINER:
                continue
            positions = lower.positions(kind)
            assert positions == top.positions(kind)[:len(positions)], (tier, kind)


def test_lower_tier_containers_come_from_buffers_or_source_links():
    plan = _generate()
    top = plan.tier(MAX_TIER)
    allowed = set(top.positions(K.CONTAINER)) | set(top.positions_with_role(K.LINK, ROLE_SOURCE))

    for tier in range(1, MAX_TIER):
        containers = plan.tier(tier).positions(K.CONTAINER)
        assert set(containers) <= allowed


def test_source_buffers_return_below_the_link_tier():
    plan = _generate()
    top = plan.tier(MAX_TIER)
    source_links = top.positions_with_role(K.LINK, ROLE_SOURCE)

    assert source_links
    assert set(source_links) <= set(plan.tier(4).positions(K.CONTAINER))
    assert not set(source_links) & set(plan.tier(5).positions(K.CONTAINER))


def test_roles_stay_parallel_to_positions():
    plan = _generate()
    for tier_plan in plan.tiers.values():
        for kind, tags in tier_plan.roles.items():
            assert len(tags) == len(tier_plan.positions(kind))


def test_roads_never_share_a_cell_with_non_buffer_structures():
    plan = _generate()
    top = plan.tier(MAX_TIER)
    roads = set(top.positions(K.ROAD))
    for kind in PLANNED_KINDS:
        if is_blocking(kind) and kind != K.CONTAINER:
            assert not roads & set(top.positions(kind)), kind


def test_generation_is_repeatable_without_shuffle():
    first = _generate()
    second = _generate()
    assert first.to_dict()["tiers"] == second.to_dict()["tiers"]


def test_defenses_cover_max_tier_layout():
    plan = _generate()
    top = plan.tier(MAX_TIER)

    assert plan.defenses is not None
    assert set(plan.defenses.barriers) == top.blocking_cells()
    assert not set(plan.defenses.perimeter) & top.blocking_cells()


def test_scored_layout_respects_caps_and_bounds():
    plan = _generate(extension_layout="scored")
    top = plan.tier(MAX_TIER)

    assert len(top.positions(K.EXTENSION)) == 60
    for tier_plan in plan.tiers.values():
        _assert_valid_tier(tier_plan)


def test_no_anchor_gives_no_plan():
    world = make_world(anchor=None)
    assert _generate(world) is None


def test_unknown_base_gives_no_plan():
    generator = PlanGenerator()
    assert generator.generate(make_world(), "E9S9") is None


def test_walls_are_never_planned_over():
    walls = [(x, 20) for x in range(10, 40)] + [(30, y) for y in range(21, 35)]
    terrain = TerrainGrid.open().with_cells(walls, TerrainType.WALL).with_border_walls()
    plan = _generate(make_world(open_site(terrain=terrain)))

    for tier_plan in plan.tiers.values():
        for positions in tier_plan.placements.values():
            for pos in positions:
                assert not terrain.is_wall(pos.x, pos.y)


@pytest.mark.parametrize("layout", ["ring", "scored"])
@settings(max_examples=10, derandomize=True, deadline=None)
@given(seed=st.integers(min_value=0, max_value=2**16))
def test_any_seed_gives_a_valid_plan(layout, seed):
    plan = _generate(extension_layout=layout, deterministic=False, seed=seed)
    for tier_plan in plan.tiers.values():
        _assert_valid_tier(tier_plan)
