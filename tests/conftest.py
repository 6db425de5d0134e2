"""
Shared builders for the colony planner test suite.

Every builder returns fresh objects; nothing is shared between tests.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional

import pytest

from ColonyPlanner.construction.plan_types import TierPlan
from ColonyPlanner.simulation import SimulatedWorld
from ColonyPlanner.structures import CapabilityTable, StructureKind
from ColonyPlanner.terrain import Position, TerrainGrid
from ColonyPlanner.world import BaseSite

ANCHOR = Position(25, 25)
CONTROLLER = Position(10, 40)
SOURCES = (Position(40, 10), Position(40, 40))


def open_site(
    base_id: str = "W1N1",
    terrain: Optional[TerrainGrid] = None,
    controller: Optional[Position] = CONTROLLER,
    sources: Iterable[Position] = SOURCES,
    minerals: Iterable[Position] = (),
    guardian_lairs: Iterable[Position] = (),
    tier: int = 8,
) -> BaseSite:
    """Base on an all-plain 50×50 grid (border walls) unless ``terrain`` is given."""
    return BaseSite(
        base_id=base_id,
        terrain=terrain if terrain is not None else TerrainGrid.open().with_border_walls(),
        controller=controller,
        sources=list(sources),
        minerals=list(minerals),
        guardian_lairs=list(guardian_lairs),
        tier=tier,
    )


def make_world(
    *sites: BaseSite,
    capabilities: Optional[CapabilityTable] = None,
    anchor: Optional[Position] = ANCHOR,
    max_global_markers: int = 100,
) -> SimulatedWorld:
    """SimulatedWorld holding ``sites`` (default: one open site), each with a spawn at ``anchor``."""
    world = SimulatedWorld(capabilities=capabilities, max_global_markers=max_global_markers)
    for site in sites or (open_site(),):
        world.add_base(site, spawn=anchor)
    return world


def row(y: int, x_start: int, count: int, step: int = 1) -> list[Position]:
    return [Position(x_start + i * step, y) for i in range(count)]


def tier_plan(placements: Dict[StructureKind, list], caps: Optional[Dict[StructureKind, int]] = None) -> TierPlan:
    """Hand-built TierPlan; caps default to the length of each list."""
    caps = caps or {kind: len(cells) for kind, cells in placements.items()}
    return TierPlan(placements={k: list(v) for k, v in placements.items()}, caps=dict(caps))


@pytest.fixture
def site() -> BaseSite:
    return open_site()


@pytest.fixture
def world(site: BaseSite) -> SimulatedWorld:
    return make_world(site)
