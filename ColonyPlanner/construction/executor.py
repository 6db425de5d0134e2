"""
ConstructionExecutor — turns the active tier's plan into build markers, a few
at a time.

Budget
------
Each pass may place at most

    min(max_global_markers - outstanding markers across all bases,
        markers_per_base   - outstanding markers in this base)

markers. At target (or at the global cap) a pass is a no-op.

Kind rotation
-------------
Kinds are tried in BUILD_PRIORITY order, filtered to kinds the tier plan
places, and rotated by ``state.rotation_cursor`` which advances every pass so
no kind is permanently starved. Roads are moved to the back when they make up
more than ``transit_share`` of the base's outstanding markers, or when no
non-road marker has been placed for ``starvation_ticks`` ticks.

Per position
------------
A planned cell is skipped when the same kind already stands or is marked
there, or when another blocking kind holds it. Placement outcomes:

    OK              counted
    FULL            marker cap hit; skipped, and the pass stops since no
                    later position can get past the same cap
    INVALID_TARGET  logged, skipped
    ERROR / raise   logged, skipped; the pass continues
"""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Set, Tuple

from ColonyPlanner.logger import get_logger
from ColonyPlanner.structures import BUILD_PRIORITY, TRANSIT_KINDS, StructureKind, is_blocking
from ColonyPlanner.terrain import Position
from ColonyPlanner.world import PendingMarker, PlaceResult
from ColonyPlanner.construction.plan_types import ExecutionState, TierPlan

if TYPE_CHECKING:
    from ColonyPlanner.world import World

log = get_logger()


@dataclass
class ExecutorConfig:
    """
    Fields
    ------
    max_global_markers : int
        Outstanding markers allowed across every base.
    markers_per_base : int
        Outstanding markers maintained per base.
    transit_share : float
        Road share of a base's outstanding markers above which roads go last.
    starvation_ticks : int
        Ticks without a non-road placement after which roads go last.
    """
    max_global_markers: int = 100
    markers_per_base: int = 5
    transit_share: float = 0.5
    starvation_ticks: int = 100


Occupancy = Dict[Position, Set[StructureKind]]


class ConstructionExecutor:

    def __init__(self, config: Optional[ExecutorConfig] = None) -> None:
        self.config = config or ExecutorConfig()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def execute(
        self,
        world: "World",
        base_id: str,
        tier_plan: Optional[TierPlan],
        state: ExecutionState,
    ) -> int:
        """Place up to the budget of new markers. Returns how many were placed."""
        tick = world.tick
        if tier_plan is None:
            log.warning("No tier plan for %s, nothing to execute", base_id, tick=tick)
            return 0

        all_pending = world.find_pending_markers()
        base_pending = [m for m in all_pending if m.base_id == base_id]
        budget = self.budget(len(all_pending), len(base_pending))
        if budget <= 0:
            log.debug(
                "%s at marker target (%d here, %d global)",
                base_id, len(base_pending), len(all_pending), tick=tick,
            )
            self._update_progress(world, base_id, tier_plan, state, tick)
            return 0

        order = self.rotation(tier_plan, state, base_pending, tick)
        occupancy, counts = self._occupancy(world, base_id, base_pending)

        placed = 0
        for kind, pos in self._candidates(tier_plan, order, occupancy, counts):
            if placed >= budget:
                break
            try:
                result = world.place_marker(base_id, pos, kind)
            except Exception as exc:
                log.error(
                    "place_marker(%s @ %s) in %s raised: %s",
                    kind, pos, base_id, exc, tick=tick,
                )
                continue

            log.placement(kind.value, (pos.x, pos.y), result.name, base=base_id, tick=tick)

            if result is PlaceResult.OK:
                placed += 1
                occupancy[pos].add(kind)
                counts[kind] += 1
                if kind not in TRANSIT_KINDS:
                    state.last_non_transit_tick = tick
            elif result is PlaceResult.FULL:
                # FULL is a marker cap, so every later attempt this pass would hit it too.
                log.debug("Marker cap reached while placing for %s", base_id, tick=tick)
                break
            elif result is PlaceResult.INVALID_TARGET:
                log.debug("Invalid target for %s @ %s in %s", kind, pos, base_id, tick=tick)
            else:
                log.warning("place_marker(%s @ %s) in %s failed: %s", kind, pos, base_id, result.name, tick=tick)

        state.rotation_cursor += 1
        self._update_progress(world, base_id, tier_plan, state, tick)
        if placed:
            log.info("%s: placed %d marker(s)", base_id, placed, tick=tick)
        return placed

    def budget(self, global_pending: int, base_pending: int) -> int:
        return min(
            self.config.max_global_markers - global_pending,
            self.config.markers_per_base - base_pending,
        )

    def rotation(
        self,
        tier_plan: TierPlan,
        state: ExecutionState,
        base_pending: List[PendingMarker],
        tick: int,
    ) -> List[StructureKind]:
        """Kind order for this pass."""
        kinds = [k for k in BUILD_PRIORITY if tier_plan.positions(k)]
        if not kinds:
            return []
        offset = state.rotation_cursor % len(kinds)
        order = kinds[offset:] + kinds[:offset]

        transit = sum(1 for m in base_pending if m.kind in TRANSIT_KINDS)
        dominated = bool(base_pending) and transit / len(base_pending) > self.config.transit_share
        starved = tick - state.last_non_transit_tick > self.config.starvation_ticks
        if dominated or starved:
            order = (
                [k for k in order if k not in TRANSIT_KINDS]
                + [k for k in order if k in TRANSIT_KINDS]
            )
        return order

    def next_pending_positions(
        self,
        world: "World",
        base_id: str,
        tier_plan: Optional[TierPlan],
        state: ExecutionState,
        limit: int = 10,
    ) -> List[Tuple[StructureKind, Position]]:
        """What the next passes would try to mark, in order. Places nothing."""
        if tier_plan is None or limit <= 0:
            return []
        base_pending = world.find_pending_markers(base_id)
        order = self.rotation(tier_plan, state, base_pending, world.tick)
        occupancy, counts = self._occupancy(world, base_id, base_pending)

        preview: List[Tuple[StructureKind, Position]] = []
        for kind, pos in self._candidates(tier_plan, order, occupancy, counts):
            preview.append((kind, pos))
            occupancy[pos].add(kind)
            counts[kind] += 1
            if len(preview) >= limit:
                break
        return preview

    def remaining(self, world: "World", base_id: str, tier_plan: TierPlan) -> int:
        """Planned positions of the tier not yet standing (capped per kind)."""
        built = self._built_cells(world, base_id)
        missing = 0
        for kind, positions in tier_plan.placements.items():
            cap = tier_plan.caps.get(kind, 0)
            have = len(built.get(kind, ()))
            todo = [p for p in positions if p not in built.get(kind, ())]
            missing += max(0, min(len(todo), cap - have))
        return missing

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _candidates(
        self,
        tier_plan: TierPlan,
        order: List[StructureKind],
        occupancy: Occupancy,
        counts: Counter,
    ) -> Iterator[Tuple[StructureKind, Position]]:
        """
        Free planned cells in rotation order. ``counts`` and ``occupancy``
        are read live, so the caller's updates between yields apply.
        """
        for kind in order:
            cap = tier_plan.caps.get(kind, 0)
            for pos in tier_plan.positions(kind):
                if counts[kind] >= cap:
                    break
                if self._occupied(kind, occupancy.get(pos, ())):
                    continue
                yield kind, pos

    @staticmethod
    def _occupied(kind: StructureKind, present) -> bool:
        if kind in present:
            return True
        return is_blocking(kind) and any(is_blocking(k) for k in present)

    @staticmethod
    def _occupancy(
        world: "World",
        base_id: str,
        base_pending: List[PendingMarker],
    ) -> Tuple[Occupancy, Counter]:
        """Kinds per cell (live + marked) and live + marked count per kind."""
        occupancy: Occupancy = defaultdict(set)
        counts: Counter = Counter()
        for s in world.find_structures(base_id):
            occupancy[s.position].add(s.kind)
            counts[s.kind] += 1
        for m in base_pending:
            occupancy[m.position].add(m.kind)
            counts[m.kind] += 1
        return occupancy, counts

    @staticmethod
    def _built_cells(world: "World", base_id: str) -> Dict[StructureKind, Set[Position]]:
        cells: Dict[StructureKind, Set[Position]] = defaultdict(set)
        for s in world.find_structures(base_id):
            cells[s.kind].add(s.position)
        return cells

    def _update_progress(
        self,
        world: "World",
        base_id: str,
        tier_plan: TierPlan,
        state: ExecutionState,
        tick: int,
    ) -> None:
        """Refresh built counts and per-kind planned flags."""
        live = Counter(s.kind for s in world.find_structures(base_id))
        marked = defaultdict(set)
        for s in world.find_structures(base_id):
            marked[s.kind].add(s.position)
        for m in world.find_pending_markers(base_id):
            marked[m.kind].add(m.position)

        state.counts = {kind.value: live[kind] for kind in tier_plan.placements}
        for kind, positions in tier_plan.placements.items():
            cap = tier_plan.caps.get(kind, 0)
            covered = sum(1 for p in positions if p in marked[kind])
            state.planned_flags[kind.value] = covered >= min(len(positions), cap)
        state.last_update_tick = tick
