"""
ConstructionManager — per-base state machine and the operator surface.

State machine
-------------
    UNPLANNED ──(anchor exists)──► GENERATING ──(plan stored)──► EXECUTING
         ▲                              │                           │  ▲
         │                       (no anchor)                (tier built)│
         └──────────────────────────────┘                           ▼  │
                                                              CONVERGED ─┘
                                                   (tier up / structure lost)

A base whose ExecutionState is gone but whose plan is still stored goes
straight from UNPLANNED to EXECUTING on the stored plan, so built
structures are never re-planned away.

Auditing is orthogonal: in EXECUTING and CONVERGED an audit runs whenever
``AuditConfig.interval`` ticks have passed since the last one.

One ``run(base_id)`` call is one invocation. It does at most one major
operation (plan generation, or one executor pass plus a due audit) and
writes ExecutionState back last, so an interrupted invocation simply
repeats on the next call.

Operator helpers
----------------
    manager.generate_plan("W1N1")              # force generation now
    manager.get_plan("W1N1", tier=4)           # TierPlan or None
    manager.execute_once("W1N1")               # one executor pass
    manager.audit("W1N1")                      # forced audit
    manager.next_pending_positions("W1N1", 10)
    manager.alignment_report("W1N1")
    manager.visualize("W1N1", tier=8)          # PNG + ASCII next to it
    manager.request_replan("W1N1")
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from ColonyPlanner.logger import get_logger
from ColonyPlanner.structures import CapabilityTable, StructureKind
from ColonyPlanner.terrain import Position
from ColonyPlanner.world import World
from ColonyPlanner import visualize as render
from ColonyPlanner.construction.auditor import AlignmentAuditor, AlignmentReport, AuditConfig
from ColonyPlanner.construction.executor import ConstructionExecutor, ExecutorConfig
from ColonyPlanner.construction.plan_generator import PlanGenerator, PlannerConfig
from ColonyPlanner.construction.plan_store import PlanStore
from ColonyPlanner.construction.plan_types import (
    BasePhase,
    ExecutionState,
    MisalignedRecord,
    Plan,
    TierPlan,
)

log = get_logger()


@dataclass
class LifecycleConfig:
    """
    Fields
    ------
    render_dir : Path
        Where ``visualize`` writes its PNG and ASCII files.
    planner, executor, audit
        Component configs handed to the generator, executor and auditor.
    """
    render_dir: Path = Path("plans")
    planner: PlannerConfig = field(default_factory=PlannerConfig)
    executor: ExecutorConfig = field(default_factory=ExecutorConfig)
    audit: AuditConfig = field(default_factory=AuditConfig)


class ConstructionManager:
    """
    Owns one generator, executor and auditor and drives every base through
    the lifecycle. All persisted data goes through ``store``.
    """

    def __init__(
        self,
        world: World,
        store: Optional[PlanStore] = None,
        capabilities: Optional[CapabilityTable] = None,
        config: Optional[LifecycleConfig] = None,
    ) -> None:
        self.world = world
        self.store = store or PlanStore()
        self.capabilities = capabilities or CapabilityTable()
        self.config = config or LifecycleConfig()

        self.generator = PlanGenerator(self.capabilities, self.config.planner)
        self.executor = ConstructionExecutor(self.config.executor)
        self.auditor = AlignmentAuditor(self.config.audit)

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    def run(self, base_id: str) -> int:
        """One scheduled invocation for ``base_id``. Returns markers placed."""
        tick = self.world.tick
        site = self.world.site(base_id)
        if site is None:
            log.warning("Base %s not visible, skipping", base_id, tick=tick)
            return 0

        state = self.store.load_state(base_id)
        plan = self.store.load_plan(base_id)
        placed = 0

        if plan is None and state.phase in (BasePhase.EXECUTING, BasePhase.CONVERGED):
            log.warning("Plan for %s missing, replanning", base_id, tick=tick)
            state.phase = BasePhase.UNPLANNED

        if state.phase is BasePhase.UNPLANNED:
            if plan is not None:
                log.info("Resuming stored plan for %s", base_id, tick=tick)
                state.phase = BasePhase.EXECUTING
                state.last_tier = site.tier
            elif self.world.anchor(base_id) is None:
                log.debug("%s has no anchor yet", base_id, tick=tick)
            else:
                state.phase = BasePhase.GENERATING

        if state.phase is BasePhase.GENERATING:
            self._generate(base_id, state)
        elif plan is not None and state.phase in (BasePhase.EXECUTING, BasePhase.CONVERGED):
            placed = self._advance(base_id, plan, site.tier, state)

        self.store.save_state(base_id, state)
        return placed

    def _generate(self, base_id: str, state: ExecutionState) -> Optional[Plan]:
        plan = self.generator.generate(self.world, base_id)
        if plan is None:
            state.phase = BasePhase.UNPLANNED
            return None
        self.store.save_plan(base_id, plan)
        state.phase = BasePhase.EXECUTING
        state.planned_flags.clear()
        site = self.world.site(base_id)
        state.last_tier = site.tier if site is not None else 0
        return plan

    def _advance(self, base_id: str, plan: Plan, tier: int, state: ExecutionState) -> int:
        tick = self.world.tick
        if tier != state.last_tier:
            event = "TIER_UP" if tier > state.last_tier else "TIER_DOWN"
            log.plan_event(event, f"{base_id} | {state.last_tier} -> {tier}", tick=tick)
            state.last_tier = tier
            state.planned_flags.clear()
            state.phase = BasePhase.EXECUTING

        tier_plan = plan.tier(tier)
        if tier_plan is None:
            log.warning("Plan for %s has no tier %d", base_id, tier, tick=tick)
            return 0

        if self.auditor.due(state, tick):
            self.auditor.audit(self.world, base_id, tier_plan, state)

        remaining = self.executor.remaining(self.world, base_id, tier_plan)
        if state.phase is BasePhase.CONVERGED:
            if remaining == 0:
                return 0
            log.info("%s lost %d planned structure(s), resuming", base_id, remaining, tick=tick)
            state.phase = BasePhase.EXECUTING

        placed = self.executor.execute(self.world, base_id, tier_plan, state)
        if remaining == 0 and not self.world.find_pending_markers(base_id):
            state.phase = BasePhase.CONVERGED
            log.plan_event("CONVERGED", f"{base_id} | tier {tier}", tick=tick)
        return placed

    # ------------------------------------------------------------------
    # Operator surface
    # ------------------------------------------------------------------

    def phase(self, base_id: str) -> BasePhase:
        return self.store.load_state(base_id).phase

    def generate_plan(self, base_id: str) -> Optional[Plan]:
        """Generate and store a plan now, regardless of phase."""
        state = self.store.load_state(base_id)
        state.phase = BasePhase.GENERATING
        plan = self._generate(base_id, state)
        self.store.save_state(base_id, state)
        return plan

    def get_plan(self, base_id: str, tier: Optional[int] = None) -> Optional[TierPlan]:
        """Stored TierPlan for ``tier`` (default: the base's current tier)."""
        tier = self._tier(base_id, tier)
        if tier is None:
            return None
        return self.store.tier_plan(base_id, tier)

    def execute_once(self, base_id: str) -> int:
        """One executor pass against the current tier, outside the state machine."""
        tier_plan = self.get_plan(base_id)
        state = self.store.load_state(base_id)
        placed = self.executor.execute(self.world, base_id, tier_plan, state)
        self.store.save_state(base_id, state)
        return placed

    def audit(self, base_id: str) -> List[MisalignedRecord]:
        """Audit now, ignoring the interval."""
        tier_plan = self.get_plan(base_id)
        state = self.store.load_state(base_id)
        records = self.auditor.audit(self.world, base_id, tier_plan, state)
        self.store.save_state(base_id, state)
        return records

    def next_pending_positions(
        self,
        base_id: str,
        limit: int = 10,
    ) -> List[Tuple[StructureKind, Position]]:
        state = self.store.load_state(base_id)
        return self.executor.next_pending_positions(
            self.world, base_id, self.get_plan(base_id), state, limit,
        )

    def alignment_report(self, base_id: str, tier: Optional[int] = None) -> Optional[AlignmentReport]:
        tier = self._tier(base_id, tier)
        tier_plan = self.get_plan(base_id, tier)
        if tier_plan is None:
            return None
        return self.auditor.report(self.world, base_id, tier_plan, tier)

    def visualize(self, base_id: str, tier: Optional[int] = None) -> Optional[Path]:
        """
        Render the plan for ``tier`` to ``<render_dir>/<base>_tier<N>.png``
        plus a ``.txt`` ASCII grid. Returns the PNG path, or None without a plan.
        """
        site = self.world.site(base_id)
        plan = self.store.load_plan(base_id)
        tier = self._tier(base_id, tier)
        if site is None or plan is None or tier is None:
            log.warning("Nothing to visualize for %s", base_id, tick=self.world.tick)
            return None

        tier_plan = plan.tier(tier)
        defenses = plan.defenses if tier == plan.max_tier else None
        stem = self.config.render_dir / f"{base_id}_tier{tier}"

        png = render.render_png(
            site.terrain, tier_plan, stem.with_suffix(".png"),
            defenses=defenses, anchor=plan.anchor, title=f"{base_id} tier {tier}",
        )
        text = render.render_ascii(site.terrain, tier_plan, defenses=defenses, anchor=plan.anchor)
        stem.with_suffix(".txt").write_text(text + "\n", encoding="utf-8")
        log.info("Rendered %s tier %d to %s", base_id, tier, png, tick=self.world.tick)
        return png

    def request_replan(self, base_id: str) -> None:
        """Drop the stored plan and progress flags; the next run regenerates."""
        state = self.store.load_state(base_id)
        state.reset()
        self.store.delete_plan(base_id)
        self.store.save_state(base_id, state)
        log.plan_event("REPLAN", f"{base_id} | requested", tick=self.world.tick)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _tier(self, base_id: str, tier: Optional[int]) -> Optional[int]:
        if tier is not None:
            return tier
        site = self.world.site(base_id)
        return site.tier if site is not None else None
