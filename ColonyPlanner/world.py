"""
World interface — the planner's view of the external game world.

The planner never owns the world. Everything it needs is reached through
the abstract ``World`` below: terrain and landmarks of a base, live
structures, pending build markers, marker placement, pathing and removal.
A host adapter implements it for the real game; ``SimulatedWorld`` in
``ColonyPlanner.simulation`` implements it in memory for the runner and tests.

Placement outcomes
------------------
``place_marker`` never raises for expected rejections. It returns a
``PlaceResult``:

    OK              marker created
    FULL            a marker cap was hit (benign, skip)
    INVALID_TARGET  the cell cannot hold that kind right now (log, skip)
    ERROR           anything else the host reports

A host may still raise for genuinely unexpected failures; the executor
catches those per position.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, List, Optional

from ColonyPlanner.pathing import CostModel
from ColonyPlanner.structures import StructureKind
from ColonyPlanner.terrain import Position, TerrainGrid


class PlaceResult(Enum):
    OK             = auto()
    FULL           = auto()
    INVALID_TARGET = auto()
    ERROR          = auto()


@dataclass
class BaseSite:
    """
    Static description of one base: its terrain and fixed landmarks, plus
    the current progression tier.

    Fields
    ------
    base_id : str
        Unique base identifier (room name in the source game).
    terrain : TerrainGrid
        Read-only terrain classification.
    controller : Position | None
        The controller-equivalent the base upgrades.
    sources : list[Position]
        Resource nodes, in a stable order.
    minerals : list[Position]
        Secondary resource deposits; never built over.
    guardian_lairs : list[Position]
        Hostile guardian spawn points; buffers near them are skipped.
    tier : int
        Current progression tier.
    """
    base_id: str
    terrain: TerrainGrid
    controller: Optional[Position] = None
    sources: List[Position] = field(default_factory=list)
    minerals: List[Position] = field(default_factory=list)
    guardian_lairs: List[Position] = field(default_factory=list)
    tier: int = 1

    @property
    def landmarks(self) -> set[Position]:
        """Cells occupied by fixed world objects."""
        cells = set(self.sources) | set(self.minerals) | set(self.guardian_lairs)
        if self.controller is not None:
            cells.add(self.controller)
        return cells


@dataclass(frozen=True)
class LiveStructure:
    """A built structure as reported by the world."""
    kind: StructureKind
    position: Position
    ref: Any


@dataclass(frozen=True)
class PendingMarker:
    """An outstanding build marker (construction site)."""
    kind: StructureKind
    position: Position
    base_id: str


class World(ABC):
    """Abstract collaborator consumed by every planner component."""

    @property
    @abstractmethod
    def tick(self) -> int:
        """Current world tick."""

    @abstractmethod
    def site(self, base_id: str) -> Optional[BaseSite]:
        """Static description of ``base_id``, or None if unknown/not visible."""

    @abstractmethod
    def find_structures(
        self,
        base_id: str,
        kind: Optional[StructureKind] = None,
    ) -> List[LiveStructure]:
        """Live structures in ``base_id``, optionally filtered by kind."""

    @abstractmethod
    def find_pending_markers(
        self,
        base_id: Optional[str] = None,
        kind: Optional[StructureKind] = None,
    ) -> List[PendingMarker]:
        """Outstanding markers; ``base_id=None`` means across all bases."""

    @abstractmethod
    def place_marker(
        self,
        base_id: str,
        position: Position,
        kind: StructureKind,
    ) -> PlaceResult:
        """Request a build marker of ``kind`` at ``position``."""

    @abstractmethod
    def shortest_path(
        self,
        base_id: str,
        start: Position,
        goal: Position,
        cost_model: CostModel,
    ) -> List[Position]:
        """Cheapest path, excluding ``start`` and including ``goal``."""

    @abstractmethod
    def destroy(self, ref: Any) -> None:
        """Remove a live structure. Raises LookupError if ``ref`` is gone."""

    # ------------------------------------------------------------------
    # Convenience
    # ------------------------------------------------------------------

    def anchor(self, base_id: str) -> Optional[Position]:
        """Position of the first primary production structure, if any."""
        spawns = self.find_structures(base_id, StructureKind.SPAWN)
        if not spawns:
            return None
        return spawns[0].position
