"""
DefensePlanner — single-cell barrier shell around the max-tier layout.

Every cell held by a blocking kind is "protected". The perimeter is the set
of cells that are neither protected nor wall and touch a protected cell in
the 8-neighbourhood: one binary dilation, not a flood fill, so the result is
exactly one cell thick.

Perimeter cells on the reserved edge band (outside the build bounds) are
exits and get passable barriers; every other perimeter cell gets a closed
barrier.

Uses scipy.ndimage.binary_dilation the same way the territory border map
builds its creep frontier.
"""

from __future__ import annotations

import numpy as np
from scipy.ndimage import binary_dilation

from ColonyPlanner.logger import get_logger
from ColonyPlanner.terrain import MARGIN, Position, TerrainGrid
from ColonyPlanner.construction.plan_types import DefensePlan, TierPlan

log = get_logger()

_EIGHT_NEIGHBOURHOOD = np.ones((3, 3), dtype=bool)


def _cells(mask: np.ndarray) -> list[Position]:
    ys, xs = np.nonzero(mask)
    return [Position(int(x), int(y)) for y, x in zip(ys, xs)]


class DefensePlanner:
    """Stateless; one instance can serve every base."""

    def protected_mask(self, terrain: TerrainGrid, tier_plan: TierPlan) -> np.ndarray:
        size = terrain.size
        protected = np.zeros((size, size), dtype=bool)
        for pos in tier_plan.blocking_cells():
            if 0 <= pos.x < size and 0 <= pos.y < size:
                protected[pos.y, pos.x] = True
        return protected

    def edge_mask(self, size: int) -> np.ndarray:
        """True on the reserved band along every grid edge."""
        edge = np.ones((size, size), dtype=bool)
        edge[MARGIN:size - MARGIN, MARGIN:size - MARGIN] = False
        return edge

    def plan(self, terrain: TerrainGrid, tier_plan: TierPlan) -> DefensePlan:
        protected = self.protected_mask(terrain, tier_plan)
        if not protected.any():
            return DefensePlan()

        shell = binary_dilation(protected, structure=_EIGHT_NEIGHBOURHOOD)
        shell &= ~protected
        shell &= ~terrain.wall_mask()

        exits = shell & self.edge_mask(terrain.size)

        defenses = DefensePlan(
            barriers=_cells(protected),
            perimeter=_cells(shell),
            exits=_cells(exits),
        )
        log.debug(
            "Defense shell: %d protected, %d perimeter, %d exits",
            len(defenses.barriers),
            len(defenses.perimeter),
            len(defenses.exits),
        )
        return defenses
