"""
Structure kinds and the capability table.

The capability table answers one question: "how many structures of kind K
may a base own at progression tier T?" It is an external, fixed input to the
planner; the default below mirrors the standard per-tier unlock schedule but
any mapping can be injected (tests use tiny custom tables).
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, Mapping, Optional


class StructureKind(str, Enum):
    SPAWN       = "spawn"          # primary production, first one is the anchor
    EXTENSION   = "extension"      # capacity extension
    ROAD        = "road"           # transit network (non-blocking)
    CONTAINER   = "container"      # resource buffer
    TOWER       = "tower"          # defense emitter
    STORAGE     = "storage"        # reserve
    LINK        = "link"           # transfer node
    TERMINAL    = "terminal"       # exchange
    LAB         = "lab"            # synthesis cluster
    FACTORY     = "factory"
    OBSERVER    = "observer"       # remote sensing
    POWER_SPAWN = "powerSpawn"     # power handling
    NUKER       = "nuker"          # area denial
    RAMPART     = "rampart"        # passable barrier (non-blocking)
    WALL        = "constructedWall"  # closed barrier (non-blocking for planning)

    def __str__(self) -> str:
        return self.value


MIN_TIER: int = 1
MAX_TIER: int = 8

# Below this tier transfer nodes are unavailable and resource buffers stand in
# for them.
LINK_TIER: int = 5

TRANSIT_KINDS: frozenset[StructureKind] = frozenset({StructureKind.ROAD})
BARRIER_KINDS: frozenset[StructureKind] = frozenset({StructureKind.RAMPART, StructureKind.WALL})

# Kinds the layout planner places; barriers come from the defense plan.
PLANNED_KINDS: tuple[StructureKind, ...] = (
    StructureKind.SPAWN,
    StructureKind.EXTENSION,
    StructureKind.ROAD,
    StructureKind.STORAGE,
    StructureKind.CONTAINER,
    StructureKind.LINK,
    StructureKind.TOWER,
    StructureKind.TERMINAL,
    StructureKind.LAB,
    StructureKind.FACTORY,
    StructureKind.OBSERVER,
    StructureKind.POWER_SPAWN,
    StructureKind.NUKER,
)

BLOCKING_KINDS: frozenset[StructureKind] = frozenset(
    k for k in StructureKind if k not in TRANSIT_KINDS and k not in BARRIER_KINDS
)

# Executor attempt order before rotation.
BUILD_PRIORITY: tuple[StructureKind, ...] = (
    StructureKind.SPAWN,
    StructureKind.EXTENSION,
    StructureKind.CONTAINER,
    StructureKind.TOWER,
    StructureKind.STORAGE,
    StructureKind.ROAD,
    StructureKind.LINK,
    StructureKind.TERMINAL,
    StructureKind.LAB,
    StructureKind.FACTORY,
    StructureKind.OBSERVER,
    StructureKind.POWER_SPAWN,
    StructureKind.NUKER,
)


def is_blocking(kind: StructureKind) -> bool:
    return kind in BLOCKING_KINDS


def parse_kind(value) -> Optional[StructureKind]:
    """StructureKind from its string value, or None for unknown kinds."""
    if isinstance(value, StructureKind):
        return value
    try:
        return StructureKind(value)
    except ValueError:
        return None


# ── Default capability table ────────────────────────────────────────────────
# kind -> {tier: max count}; missing tiers read as 0.

_ALL_TIERS = range(0, MAX_TIER + 1)

DEFAULT_CAPABILITIES: Dict[StructureKind, Dict[int, int]] = {
    StructureKind.SPAWN:       {0: 0, 1: 1, 2: 1, 3: 1, 4: 1, 5: 1, 6: 1, 7: 2, 8: 3},
    StructureKind.EXTENSION:   {0: 0, 1: 0, 2: 5, 3: 10, 4: 20, 5: 30, 6: 40, 7: 50, 8: 60},
    StructureKind.ROAD:        {t: 2500 for t in _ALL_TIERS},
    StructureKind.CONTAINER:   {t: 5 for t in _ALL_TIERS},
    StructureKind.TOWER:       {3: 1, 4: 1, 5: 2, 6: 2, 7: 3, 8: 6},
    StructureKind.STORAGE:     {4: 1, 5: 1, 6: 1, 7: 1, 8: 1},
    StructureKind.LINK:        {5: 2, 6: 3, 7: 4, 8: 6},
    StructureKind.TERMINAL:    {6: 1, 7: 1, 8: 1},
    StructureKind.LAB:         {6: 3, 7: 6, 8: 10},
    StructureKind.FACTORY:     {7: 1, 8: 1},
    StructureKind.OBSERVER:    {8: 1},
    StructureKind.POWER_SPAWN: {8: 1},
    StructureKind.NUKER:       {8: 1},
    StructureKind.RAMPART:     {t: 2500 for t in range(2, MAX_TIER + 1)},
    StructureKind.WALL:        {t: 2500 for t in range(2, MAX_TIER + 1)},
}


class CapabilityTable:
    """
    Read-only kind × tier → max count mapping.

    Stateless; pass a custom ``table`` to override the default schedule.
    """

    def __init__(
        self,
        table: Optional[Mapping[StructureKind, Mapping[int, int]]] = None,
        max_tier: int = MAX_TIER,
    ) -> None:
        source = DEFAULT_CAPABILITIES if table is None else table
        self._table: Dict[StructureKind, Dict[int, int]] = {
            StructureKind(k): {int(t): int(n) for t, n in v.items()}
            for k, v in source.items()
        }
        self.max_tier = max_tier

    def cap(self, kind: StructureKind, tier: int) -> int:
        return self._table.get(kind, {}).get(tier, 0)

    def caps_for_tier(self, tier: int) -> Dict[StructureKind, int]:
        """Caps of every planned kind at ``tier``."""
        return {kind: self.cap(kind, tier) for kind in PLANNED_KINDS}
