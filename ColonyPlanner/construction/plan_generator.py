"""
PlanGenerator — top-down layout generation for every progression tier.

How it works
------------
1. Build the max-tier layout straight from terrain, one placement strategy
   per kind, in a fixed order so earlier kinds claim cells first:

       spawn → extension → road → storage → container → link → tower
             → terminal → lab → factory → observer → powerSpawn → nuker

   In the "scored" extension layout the trunk roads are laid before the
   extensions so road adjacency can score them.

2. Derive every lower tier from the max tier, top down:
     - caps come from the capability table; cap 0 → empty list
     - most kinds: first ``cap`` positions of the max-tier list
     - containers below the link tier: the max-tier list extended with the
       cells that hold source-side transfer nodes at max tier
     - containers at or above the link tier: the first ``kept_buffers`` of
       the max-tier list
     - links: truncated in generation order; roles stay with positions

   Every lower tier is therefore a subset (or a role-tagged substitution) of
   the final layout, so a tier increase only ever adds structures.

3. Derive the defense shell from the max-tier layout.

No anchor (no primary production structure) → ``generate`` returns None and
the caller retries later.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional

from ColonyPlanner.logger import get_logger
from ColonyPlanner.structures import (
    LINK_TIER,
    MIN_TIER,
    PLANNED_KINDS,
    CapabilityTable,
    StructureKind,
    is_blocking,
)
from ColonyPlanner.terrain import Position
from ColonyPlanner.world import World
from ColonyPlanner.construction import placement
from ColonyPlanner.construction.defense_planner import DefensePlanner
from ColonyPlanner.construction.placement import LayoutContext, NoShuffle, RandomShuffle
from ColonyPlanner.construction.plan_types import (
    PLAN_VERSION,
    ROLE_SOURCE,
    Plan,
    TierPlan,
)

log = get_logger()

K = StructureKind


@dataclass
class PlannerConfig:
    """
    Tunables for plan generation.

    Fields
    ------
    extension_layout : str
        "ring" (ring sweep + spiral) or "scored" (candidate pools + greedy).
    seed : int | None
        Seed for the ring shuffle. None draws a fresh seed per generation.
    deterministic : bool
        Skip the ring shuffle entirely (NoShuffle).
    link_tier : int
        Tier from which transfer nodes replace source-side buffers.
    kept_buffers : int
        Buffers kept from the max-tier list at or above ``link_tier``.
    """
    extension_layout: str = "ring"
    seed: Optional[int] = None
    deterministic: bool = False
    link_tier: int = LINK_TIER
    kept_buffers: int = 2


class PlanGenerator:
    """
    Builds a full multi-tier Plan for one base.

    Stateless between calls apart from configuration.
    """

    def __init__(
        self,
        capabilities: Optional[CapabilityTable] = None,
        config: Optional[PlannerConfig] = None,
        defense_planner: Optional[DefensePlanner] = None,
    ) -> None:
        self.capabilities = capabilities or CapabilityTable()
        self.config = config or PlannerConfig()
        self.defense_planner = defense_planner or DefensePlanner()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate(
        self,
        world: World,
        base_id: str,
        anchor: Optional[Position] = None,
    ) -> Optional[Plan]:
        site = world.site(base_id)
        if site is None:
            log.warning("Cannot plan %s: base not visible", base_id, tick=world.tick)
            return None

        anchor = anchor or world.anchor(base_id)
        if anchor is None:
            log.warning("Cannot plan %s: no anchor structure", base_id, tick=world.tick)
            return None

        max_tier = self.capabilities.max_tier
        ctx = LayoutContext(
            site=site,
            anchor=anchor,
            path_fn=lambda start, goal, cost: world.shortest_path(base_id, start, goal, cost),
            shuffle=self._shuffle(),
        )
        top = self.build_max_tier(ctx, max_tier)

        plan = Plan(
            anchor=anchor,
            tiers={max_tier: top},
            version=PLAN_VERSION,
            generated_at=world.tick,
        )
        for tier in range(max_tier - 1, MIN_TIER - 1, -1):
            plan.tiers[tier] = self.derive_tier(top, tier)

        plan.defenses = self.defense_planner.plan(site.terrain, top)

        log.plan_event(
            "GENERATED",
            f"{base_id} | anchor {anchor} | {len(plan.tiers)} tiers | {top.total()} cells",
            tick=world.tick,
        )
        return plan

    def build_max_tier(self, ctx: LayoutContext, max_tier: int) -> TierPlan:
        caps = self.capabilities.caps_for_tier(max_tier)
        placements: Dict[StructureKind, List[Position]] = {}
        roles: Dict[StructureKind, List[str]] = {}

        placements[K.SPAWN] = placement.plan_spawns(ctx, caps[K.SPAWN])

        if self.config.extension_layout == "scored":
            placement.plan_trunk_roads(ctx)
            placements[K.EXTENSION] = placement.plan_extensions_scored(ctx, caps[K.EXTENSION])
        else:
            placements[K.EXTENSION] = placement.plan_extensions(ctx, caps[K.EXTENSION])
            placement.plan_trunk_roads(ctx)
        placement.plan_road_rings(ctx, [ctx.anchor] + placements[K.EXTENSION])

        placements[K.STORAGE] = placement.plan_storage(ctx, caps[K.STORAGE])
        storage = placements[K.STORAGE][0] if placements[K.STORAGE] else None

        buffers = placement.plan_buffers(ctx, storage)
        placements[K.LINK], roles[K.LINK] = placement.plan_links(ctx, caps[K.LINK], storage, buffers)
        placements[K.CONTAINER], roles[K.CONTAINER] = placement.assemble_containers(
            buffers, placements[K.LINK], caps[K.CONTAINER],
        )

        placements[K.TOWER] = placement.plan_towers(ctx, caps[K.TOWER])
        placements[K.TERMINAL] = placement.plan_terminal(ctx, caps[K.TERMINAL], storage)
        placements[K.LAB] = placement.plan_labs(ctx, caps[K.LAB])
        placements[K.FACTORY] = placement.plan_factory(ctx, caps[K.FACTORY], storage)
        placements[K.OBSERVER] = placement.plan_observer(ctx, caps[K.OBSERVER])
        placements[K.POWER_SPAWN] = placement.plan_power_spawn(ctx, caps[K.POWER_SPAWN], storage)
        placements[K.NUKER] = placement.plan_nuker(ctx, caps[K.NUKER])

        # Roads may share a cell with a container, never with another blocking kind.
        occupied = {
            pos
            for kind, positions in placements.items()
            if is_blocking(kind) and kind != K.CONTAINER
            for pos in positions
        }
        placements[K.ROAD] = placement.prune_roads(ctx.roads, occupied)[:caps[K.ROAD]]

        ordered = {kind: placements.get(kind, [])[:caps[kind]] for kind in PLANNED_KINDS}
        return TierPlan(placements=ordered, caps=caps, roles=roles)

    def derive_tier(self, top: TierPlan, tier: int) -> TierPlan:
        """Lower-tier layout taken from the max-tier layout."""
        caps = self.capabilities.caps_for_tier(tier)
        placements: Dict[StructureKind, List[Position]] = {}
        roles: Dict[StructureKind, List[str]] = {}

        for kind in PLANNED_KINDS:
            cap = caps[kind]
            positions = top.positions(kind)
            tags = top.roles.get(kind, [])
            if cap <= 0:
                placements[kind] = []
                if tags:
                    roles[kind] = []
                continue

            if kind == K.CONTAINER:
                placements[kind], roles[kind] = self._derive_buffers(top, tier, cap, caps[K.LINK])
            else:
                placements[kind] = list(positions[:cap])
                if tags:
                    roles[kind] = list(tags[:cap])

        return TierPlan(placements=placements, caps=caps, roles=roles)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _derive_buffers(
        self,
        top: TierPlan,
        tier: int,
        cap: int,
        link_cap: int,
    ) -> tuple[List[Position], List[str]]:
        positions = list(top.positions(K.CONTAINER))
        tags = list(top.roles.get(K.CONTAINER, []))
        tags += [ROLE_SOURCE] * (len(positions) - len(tags))

        if tier >= self.config.link_tier:
            keep = min(self.config.kept_buffers, cap)
            return positions[:keep], tags[:keep]

        active_links = set(top.positions(K.LINK)[:link_cap])
        seen = set(positions)
        for pos in top.positions_with_role(K.LINK, ROLE_SOURCE):
            if len(positions) >= cap:
                break
            if pos in seen or pos in active_links:
                continue
            seen.add(pos)
            positions.append(pos)
            tags.append(ROLE_SOURCE)
        return positions[:cap], tags[:cap]

    def _shuffle(self):
        if self.config.deterministic:
            return NoShuffle()
        return RandomShuffle(self.config.seed)
