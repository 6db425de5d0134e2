"""
SimulatedWorld — in-memory implementation of the World interface.

Used by ``run.py`` for offline runs and by the test suite. It models just
enough of the host game for the planner to be exercised end to end:

  - one terrain grid and landmark set per base
  - live structures keyed by an integer ref
  - outstanding build markers with a global cap
  - per-kind tier caps enforced at marker placement
  - a stub "worker" (``complete_markers``) that turns markers into structures

Placement rules mirror the host: a cell holds at most one blocking structure,
roads and barriers may share a cell with one blocking structure, walls and
landmark cells never accept anything.
"""

from __future__ import annotations

import itertools
from typing import Dict, List, Optional, Tuple

from ColonyPlanner.pathing import CostModel, find_path
from ColonyPlanner.structures import CapabilityTable, StructureKind, is_blocking
from ColonyPlanner.terrain import Position, in_grid
from ColonyPlanner.world import (
    BaseSite,
    LiveStructure,
    PendingMarker,
    PlaceResult,
    World,
)


MAX_GLOBAL_MARKERS: int = 100


class SimulatedWorld(World):
    """
    Single-process world with deterministic behaviour.

    Thread-safety: not required (the planner is single-threaded).
    """

    def __init__(
        self,
        capabilities: Optional[CapabilityTable] = None,
        max_global_markers: int = MAX_GLOBAL_MARKERS,
    ) -> None:
        self.capabilities = capabilities or CapabilityTable()
        self.max_global_markers = max_global_markers

        self._tick: int = 0
        self._sites: Dict[str, BaseSite] = {}
        self._structures: Dict[int, Tuple[str, LiveStructure]] = {}
        self._markers: List[PendingMarker] = []
        self._refs = itertools.count(1)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def add_base(self, site: BaseSite, spawn: Optional[Position] = None) -> None:
        """Register a base; ``spawn`` places its first primary production structure."""
        self._sites[site.base_id] = site
        if spawn is not None:
            self.add_structure(site.base_id, StructureKind.SPAWN, spawn)

    def add_structure(self, base_id: str, kind: StructureKind, position: Position) -> int:
        """Insert a live structure directly (bypassing markers). Returns its ref."""
        ref = next(self._refs)
        self._structures[ref] = (base_id, LiveStructure(kind, position, ref))
        return ref

    def set_tier(self, base_id: str, tier: int) -> None:
        self._sites[base_id].tier = tier

    def advance(self, ticks: int = 1) -> int:
        self._tick += ticks
        return self._tick

    # ------------------------------------------------------------------
    # World interface
    # ------------------------------------------------------------------

    @property
    def tick(self) -> int:
        return self._tick

    def site(self, base_id: str) -> Optional[BaseSite]:
        return self._sites.get(base_id)

    def find_structures(
        self,
        base_id: str,
        kind: Optional[StructureKind] = None,
    ) -> List[LiveStructure]:
        return [
            s for b, s in self._structures.values()
            if b == base_id and (kind is None or s.kind == kind)
        ]

    def find_pending_markers(
        self,
        base_id: Optional[str] = None,
        kind: Optional[StructureKind] = None,
    ) -> List[PendingMarker]:
        return [
            m for m in self._markers
            if (base_id is None or m.base_id == base_id)
            and (kind is None or m.kind == kind)
        ]

    def place_marker(
        self,
        base_id: str,
        position: Position,
        kind: StructureKind,
    ) -> PlaceResult:
        site = self._sites.get(base_id)
        if site is None:
            return PlaceResult.INVALID_TARGET

        if len(self._markers) >= self.max_global_markers:
            return PlaceResult.FULL

        if not in_grid(position.x, position.y, site.terrain.size):
            return PlaceResult.INVALID_TARGET
        if site.terrain.is_wall(position.x, position.y) or position in site.landmarks:
            return PlaceResult.INVALID_TARGET

        occupants = self._occupants(base_id, position)
        if kind in occupants:
            return PlaceResult.INVALID_TARGET
        if is_blocking(kind) and any(is_blocking(k) for k in occupants):
            return PlaceResult.INVALID_TARGET

        owned = len(self.find_structures(base_id, kind)) + len(self.find_pending_markers(base_id, kind))
        if owned >= self.capabilities.cap(kind, site.tier):
            return PlaceResult.INVALID_TARGET

        self._markers.append(PendingMarker(kind, position, base_id))
        return PlaceResult.OK

    def shortest_path(
        self,
        base_id: str,
        start: Position,
        goal: Position,
        cost_model: CostModel,
    ) -> List[Position]:
        site = self._sites.get(base_id)
        if site is None:
            return []
        return find_path(site.terrain, start, goal, cost_model)

    def destroy(self, ref) -> None:
        if ref not in self._structures:
            raise LookupError(f"no live structure with ref {ref!r}")
        del self._structures[ref]

    # ------------------------------------------------------------------
    # Stub worker
    # ------------------------------------------------------------------

    def complete_markers(
        self,
        base_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> int:
        """
        Turn outstanding markers into live structures, oldest first.
        Returns how many were completed.
        """
        done = 0
        remaining: List[PendingMarker] = []
        for marker in self._markers:
            if (base_id is None or marker.base_id == base_id) and (limit is None or done < limit):
                self.add_structure(marker.base_id, marker.kind, marker.position)
                done += 1
            else:
                remaining.append(marker)
        self._markers = remaining
        return done

    def clear_markers(self, base_id: Optional[str] = None) -> None:
        self._markers = [m for m in self._markers if base_id is not None and m.base_id != base_id]

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _occupants(self, base_id: str, position: Position) -> set[StructureKind]:
        kinds = {
            s.kind for b, s in self._structures.values()
            if b == base_id and s.position == position
        }
        kinds.update(
            m.kind for m in self._markers
            if m.base_id == base_id and m.position == position
        )
        return kinds
