"""
AlignmentAuditor — drift detection between live structures and the plan.

Runs on a long interval (``AuditConfig.interval`` ticks). For every live
structure of a planned kind, the structure is misaligned when its cell is
not in that kind's planned set for the active tier. Barrier kinds are never
audited; they come from the defense plan, not the tier plan.

Corrective removal is rate limited: only when more than
``removal_threshold`` structures are misaligned, and then only the single
highest-priority one per audit:

    road (1) > extension (2) > container (3) > tower (4) > anything else (99)

Primary production, reserve and exchange are never removed.

``report`` gives the operator view: per-kind planned / built / pending / cap
counts, planned cells still missing, and surplus structures.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from ColonyPlanner.logger import get_logger
from ColonyPlanner.structures import BARRIER_KINDS, StructureKind
from ColonyPlanner.terrain import Position
from ColonyPlanner.construction.plan_types import ExecutionState, MisalignedRecord, TierPlan

if TYPE_CHECKING:
    from ColonyPlanner.world import World

log = get_logger()

K = StructureKind

REMOVAL_PRIORITY: Dict[StructureKind, int] = {
    K.ROAD:      1,
    K.EXTENSION: 2,
    K.CONTAINER: 3,
    K.TOWER:     4,
}
DEFAULT_REMOVAL_PRIORITY = 99

PROTECTED_KINDS: frozenset[StructureKind] = frozenset({K.SPAWN, K.STORAGE, K.TERMINAL})


@dataclass
class AuditConfig:
    """
    Fields
    ------
    interval : int
        Minimum ticks between audits.
    removal_threshold : int
        Corrective removal starts above this many misaligned structures.
    """
    interval: int = 2000
    removal_threshold: int = 5


@dataclass
class KindAlignment:
    """Alignment counters for one structure kind."""
    kind: StructureKind
    planned: int = 0
    built: int = 0
    pending: int = 0
    cap: int = 0
    missing: List[Position] = field(default_factory=list)
    misaligned: int = 0

    @property
    def surplus(self) -> int:
        return max(0, self.built - self.cap)


@dataclass
class AlignmentReport:
    base_id: str
    tier: int
    kinds: Dict[StructureKind, KindAlignment] = field(default_factory=dict)
    misaligned: List[MisalignedRecord] = field(default_factory=list)

    @property
    def aligned(self) -> bool:
        return not self.misaligned

    @property
    def complete(self) -> bool:
        return all(not k.missing for k in self.kinds.values())

    def summary(self) -> str:
        lines = [f"{self.base_id} tier {self.tier}: "
                 f"{'aligned' if self.aligned else f'{len(self.misaligned)} misaligned'}"]
        for kind, row in self.kinds.items():
            if not (row.planned or row.built or row.pending):
                continue
            extra = []
            if row.missing:
                extra.append(f"{len(row.missing)} missing")
            if row.misaligned:
                extra.append(f"{row.misaligned} off-plan")
            if row.surplus:
                extra.append(f"{row.surplus} over cap")
            tail = f" ({', '.join(extra)})" if extra else ""
            lines.append(
                f"  {kind.value:<16} planned {row.planned:>3} | built {row.built:>3}"
                f" | pending {row.pending:>2} | cap {row.cap:>4}{tail}"
            )
        return "\n".join(lines)


class AlignmentAuditor:

    def __init__(self, config: Optional[AuditConfig] = None) -> None:
        self.config = config or AuditConfig()

    def due(self, state: ExecutionState, tick: int) -> bool:
        if state.last_audit_tick is None:
            return True
        return tick - state.last_audit_tick >= self.config.interval

    def find_misaligned(
        self,
        world: "World",
        base_id: str,
        tier_plan: TierPlan,
    ) -> List[MisalignedRecord]:
        """Live structures of planned kinds standing outside their planned set."""
        planned = {kind: set(positions) for kind, positions in tier_plan.placements.items()}
        records: List[MisalignedRecord] = []
        for s in world.find_structures(base_id):
            if s.kind in BARRIER_KINDS or s.kind not in planned:
                continue
            if s.position not in planned[s.kind]:
                records.append(MisalignedRecord(s.kind, s.position, s.ref))
        return records

    def audit(
        self,
        world: "World",
        base_id: str,
        tier_plan: Optional[TierPlan],
        state: ExecutionState,
    ) -> List[MisalignedRecord]:
        tick = world.tick
        if tier_plan is None:
            log.warning("No tier plan for %s, skipping audit", base_id, tick=tick)
            return []

        records = self.find_misaligned(world, base_id, tier_plan)
        state.misaligned = list(records)
        state.last_audit_tick = tick

        if records:
            log.info("%s: %d misaligned structure(s)", base_id, len(records), tick=tick)
        if len(records) > self.config.removal_threshold:
            self._remove_one(world, base_id, state, tick)
        return records

    def report(
        self,
        world: "World",
        base_id: str,
        tier_plan: TierPlan,
        tier: int,
    ) -> AlignmentReport:
        rows: Dict[StructureKind, KindAlignment] = {
            kind: KindAlignment(kind, planned=len(positions), cap=tier_plan.caps.get(kind, 0))
            for kind, positions in tier_plan.placements.items()
        }
        built_cells: Dict[StructureKind, set] = defaultdict(set)
        for s in world.find_structures(base_id):
            if s.kind in rows:
                rows[s.kind].built += 1
                built_cells[s.kind].add(s.position)
        for m in world.find_pending_markers(base_id):
            if m.kind in rows:
                rows[m.kind].pending += 1

        misaligned = self.find_misaligned(world, base_id, tier_plan)
        for record in misaligned:
            rows[record.kind].misaligned += 1
        for kind, row in rows.items():
            row.missing = [p for p in tier_plan.positions(kind) if p not in built_cells[kind]]

        return AlignmentReport(base_id=base_id, tier=tier, kinds=rows, misaligned=misaligned)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _remove_one(self, world: "World", base_id: str, state: ExecutionState, tick: int) -> None:
        candidates = [r for r in state.misaligned if r.kind not in PROTECTED_KINDS]
        if not candidates:
            log.debug("%s: only protected kinds misaligned, nothing removed", base_id, tick=tick)
            return
        target = min(
            candidates,
            key=lambda r: REMOVAL_PRIORITY.get(r.kind, DEFAULT_REMOVAL_PRIORITY),
        )
        try:
            world.destroy(target.ref)
        except Exception as exc:
            log.error(
                "%s: could not remove %s @ %s (ref %r): %s",
                base_id, target.kind, target.position, target.ref, exc, tick=tick,
            )
            return
        state.misaligned.remove(target)
        log.plan_event("REMOVED", f"{base_id} | {target.kind} @ {target.position}", tick=tick)
