"""
Run script for the colony planner using config.py settings.

Builds a simulated world with random terrain, then drives every base through
the construction lifecycle tick by tick while a stub worker completes build
markers. At the end each base's alignment report is logged and its plan is
rendered.
"""

from pathlib import Path

import numpy as np

from ColonyPlanner.construction import (
    AuditConfig,
    ConstructionManager,
    JsonFileStore,
    LifecycleConfig,
    MemoryStore,
    PlannerConfig,
    PlanStore,
)
from ColonyPlanner.logger import get_logger
from ColonyPlanner.simulation import SimulatedWorld
from ColonyPlanner.terrain import GRID_SIZE, Position, TerrainGrid, TerrainType, in_build_bounds
from ColonyPlanner.world import BaseSite
from config import (
    AUDIT_INTERVAL,
    BASE_NAMES,
    EXTENSION_LAYOUT,
    RENDER_DIR,
    RENDER_PLANS,
    SEED,
    SLOW_DENSITY,
    SOURCES_PER_BASE,
    STORE_PATH,
    TICKS,
    TIER_SCHEDULE,
    WALL_DENSITY,
    WORKER_RATE,
)

log = get_logger()

ANCHOR = Position(25, 25)
CLEAR_RADIUS = 3


def random_site(base_id: str, rng: np.random.Generator) -> BaseSite:
    """Random terrain with a cleared anchor area, a controller and resource nodes."""
    noise = rng.random((GRID_SIZE, GRID_SIZE))
    cells = np.full((GRID_SIZE, GRID_SIZE), TerrainType.PLAIN, dtype=np.uint8)
    cells[noise < WALL_DENSITY + SLOW_DENSITY] = TerrainType.SLOW
    cells[noise < WALL_DENSITY] = TerrainType.WALL
    cells[
        ANCHOR.y - CLEAR_RADIUS:ANCHOR.y + CLEAR_RADIUS + 1,
        ANCHOR.x - CLEAR_RADIUS:ANCHOR.x + CLEAR_RADIUS + 1,
    ] = TerrainType.PLAIN
    terrain = TerrainGrid(cells).with_border_walls()

    taken = {ANCHOR}

    def pick() -> Position:
        while True:
            x, y = (int(v) for v in rng.integers(4, GRID_SIZE - 4, size=2))
            pos = Position(x, y)
            if pos in taken or terrain.is_wall(x, y) or pos.chebyshev(ANCHOR) < 6:
                continue
            if not in_build_bounds(x, y):
                continue
            taken.add(pos)
            return pos

    controller = pick()
    sources = [pick() for _ in range(SOURCES_PER_BASE)]
    minerals = [pick()]
    return BaseSite(base_id, terrain, controller=controller, sources=sources, minerals=minerals)


def tier_at(tick: int) -> int:
    return max(tier for start, tier in TIER_SCHEDULE.items() if start <= tick)


def build_store() -> PlanStore:
    if STORE_PATH is None:
        return PlanStore(MemoryStore())
    path = Path(STORE_PATH)
    if path.exists():
        path.unlink()
    return PlanStore(JsonFileStore(path))


def main():
    """Simulate TICKS ticks for every base in BASE_NAMES."""

    log.info("=" * 50)
    log.info("Colony planner | %d base(s) | %d ticks", len(BASE_NAMES), TICKS)
    log.info("=" * 50)

    rng = np.random.default_rng(SEED)
    world = SimulatedWorld()
    for base_id in BASE_NAMES:
        world.add_base(random_site(base_id, rng), spawn=ANCHOR)

    manager = ConstructionManager(
        world,
        store=build_store(),
        config=LifecycleConfig(
            render_dir=Path(RENDER_DIR),
            planner=PlannerConfig(extension_layout=EXTENSION_LAYOUT, seed=SEED),
            audit=AuditConfig(interval=AUDIT_INTERVAL),
        ),
    )

    placed = 0
    completed = 0
    for _ in range(TICKS):
        tick = world.advance()
        for base_id in BASE_NAMES:
            world.set_tier(base_id, tier_at(tick))
            placed += manager.run(base_id)
        completed += world.complete_markers(limit=WORKER_RATE)

    log.info("Done: %d markers placed, %d completed", placed, completed, tick=world.tick)

    for base_id in BASE_NAMES:
        report = manager.alignment_report(base_id)
        if report is not None:
            log.info("Alignment report\n%s", report.summary(), tick=world.tick)
        log.info("%s phase: %s", base_id, manager.phase(base_id).value, tick=world.tick)
        if RENDER_PLANS:
            manager.visualize(base_id)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        log.info("Run stopped by user")
    except Exception as e:
        log.exception("Unexpected error in main: %s", e)
