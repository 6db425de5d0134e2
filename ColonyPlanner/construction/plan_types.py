"""
Plan data model — the persisted layout of one base and its execution record.

Objects
-------
  Plan            anchor + one TierPlan per progression tier + optional defenses
  TierPlan        per-kind ordered positions, per-kind caps, role tags
  DefensePlan     barrier cells derived from the max-tier layout
  ExecutionState  incremental progress of the executor/auditor for one base
  MisalignedRecord  a live structure that sits off-plan

Everything here round-trips through plain dicts (``to_dict`` / ``from_dict``)
so a PlanStore can persist it as JSON. Decoding is forgiving: any missing
field falls back to its default (empty maps, zero counts) instead of raising.

Role tags
---------
Transfer nodes and resource buffers carry a role per position, parallel to
``placements[kind]``:

    storage     next to the reserve
    controller  next to the controller
    source      next to a resource node

Tier derivation looks positions up by role rather than by list index.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ColonyPlanner.structures import StructureKind, is_blocking, parse_kind
from ColonyPlanner.terrain import Position


PLAN_VERSION: int = 2

ROLE_STORAGE    = "storage"
ROLE_CONTROLLER = "controller"
ROLE_SOURCE     = "source"


def _positions_from(raw) -> List[Position]:
    return [Position.from_dict(p) for p in (raw or [])]


def _positions_to(positions) -> List[dict]:
    return [p.to_dict() for p in positions]


# ---------------------------------------------------------------------------
# TierPlan
# ---------------------------------------------------------------------------

@dataclass
class TierPlan:
    """
    Target layout for one progression tier.

    Fields
    ------
    placements : dict[StructureKind, list[Position]]
        Ordered positions per kind. Order matters: executor attempts and
        lower-tier truncation both follow it.
    caps : dict[StructureKind, int]
        Capability-table cap per kind at this tier.
    roles : dict[StructureKind, list[str]]
        Role tag per position for links and containers, parallel to
        ``placements[kind]``.
    """
    placements: Dict[StructureKind, List[Position]] = field(default_factory=dict)
    caps: Dict[StructureKind, int] = field(default_factory=dict)
    roles: Dict[StructureKind, List[str]] = field(default_factory=dict)

    def positions(self, kind: StructureKind) -> List[Position]:
        return self.placements.get(kind, [])

    def role_of(self, kind: StructureKind, index: int) -> Optional[str]:
        tags = self.roles.get(kind, [])
        return tags[index] if index < len(tags) else None

    def positions_with_role(self, kind: StructureKind, role: str) -> List[Position]:
        return [
            pos for i, pos in enumerate(self.positions(kind))
            if self.role_of(kind, i) == role
        ]

    def blocking_cells(self) -> set[Position]:
        """Every position held by a blocking kind."""
        return {
            pos
            for kind, positions in self.placements.items()
            if is_blocking(kind)
            for pos in positions
        }

    def total(self) -> int:
        return sum(len(v) for v in self.placements.values())

    def to_dict(self) -> dict:
        return {
            "placements": {k.value: _positions_to(v) for k, v in self.placements.items()},
            "caps": {k.value: n for k, n in self.caps.items()},
            "roles": {k.value: list(v) for k, v in self.roles.items()},
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "TierPlan":
        data = data or {}
        placements: Dict[StructureKind, List[Position]] = {}
        for key, raw in (data.get("placements") or {}).items():
            kind = parse_kind(key)
            if kind is not None:
                placements[kind] = _positions_from(raw)
        caps: Dict[StructureKind, int] = {}
        for key, n in (data.get("caps") or {}).items():
            kind = parse_kind(key)
            if kind is not None:
                caps[kind] = int(n)
        roles: Dict[StructureKind, List[str]] = {}
        for key, tags in (data.get("roles") or {}).items():
            kind = parse_kind(key)
            if kind is not None:
                roles[kind] = [str(t) for t in tags]
        return cls(placements=placements, caps=caps, roles=roles)


# ---------------------------------------------------------------------------
# DefensePlan
# ---------------------------------------------------------------------------

@dataclass
class DefensePlan:
    """
    Fields
    ------
    barriers : list[Position]
        Protected structure cells, covered by passable barriers.
    perimeter : list[Position]
        Single-cell shell around the protected cells.
    exits : list[Position]
        Shell cells on the reserved edge band; these get open barriers, the
        rest of the shell gets closed ones.
    """
    barriers: List[Position] = field(default_factory=list)
    perimeter: List[Position] = field(default_factory=list)
    exits: List[Position] = field(default_factory=list)

    @property
    def closed(self) -> List[Position]:
        exits = set(self.exits)
        return [p for p in self.perimeter if p not in exits]

    def to_dict(self) -> dict:
        return {
            "barriers": _positions_to(self.barriers),
            "perimeter": _positions_to(self.perimeter),
            "exits": _positions_to(self.exits),
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "DefensePlan":
        data = data or {}
        return cls(
            barriers=_positions_from(data.get("barriers")),
            perimeter=_positions_from(data.get("perimeter")),
            exits=_positions_from(data.get("exits")),
        )


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------

@dataclass
class Plan:
    """
    Root layout object for one base.

    Fields
    ------
    anchor : Position
        First primary production structure; every placement is relative to it.
    tiers : dict[int, TierPlan]
        One entry for each tier 1..max.
    defenses : DefensePlan | None
        Filled in after the max-tier layout exists.
    version : int
        Schema version; stored plans with an older version are regenerated.
    generated_at : int
        World tick of generation.
    """
    anchor: Position
    tiers: Dict[int, TierPlan] = field(default_factory=dict)
    defenses: Optional[DefensePlan] = None
    version: int = PLAN_VERSION
    generated_at: int = 0

    @property
    def max_tier(self) -> int:
        return max(self.tiers) if self.tiers else 0

    def tier(self, n: int) -> Optional[TierPlan]:
        return self.tiers.get(n)

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "anchor": self.anchor.to_dict(),
            "tiers": {str(t): tp.to_dict() for t, tp in sorted(self.tiers.items())},
            "version": self.version,
            "generatedAt": self.generated_at,
        }
        if self.defenses is not None:
            data["defenses"] = self.defenses.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Plan":
        defenses = data.get("defenses")
        return cls(
            anchor=Position.from_dict(data.get("anchor") or {}),
            tiers={int(t): TierPlan.from_dict(tp) for t, tp in (data.get("tiers") or {}).items()},
            defenses=DefensePlan.from_dict(defenses) if defenses is not None else None,
            version=int(data.get("version", 0)),
            generated_at=int(data.get("generatedAt", 0)),
        )


# ---------------------------------------------------------------------------
# Execution state
# ---------------------------------------------------------------------------

class BasePhase(str, Enum):
    UNPLANNED  = "unplanned"    # no usable plan stored
    GENERATING = "generating"   # plan generation scheduled for this invocation
    EXECUTING  = "executing"    # placing markers for the active tier
    CONVERGED  = "converged"    # every planned position of the tier is built


@dataclass
class MisalignedRecord:
    """A live structure whose position is absent from its kind's planned set."""
    kind: StructureKind
    position: Position
    ref: Any = None

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "position": self.position.to_dict(), "ref": self.ref}

    @classmethod
    def from_dict(cls, data: dict) -> Optional["MisalignedRecord"]:
        kind = parse_kind(data.get("kind"))
        if kind is None:
            return None
        return cls(kind, Position.from_dict(data.get("position") or {}), data.get("ref"))


@dataclass
class ExecutionState:
    """
    Persisted per-base progress record.

    Fields
    ------
    phase : BasePhase
        Lifecycle state of the base.
    planned_flags : dict[str, bool]
        Kinds whose every planned position at the active tier is built or
        marked.
    counts : dict[str, int]
        Built count per kind at the last executor pass.
    last_update_tick : int
        Tick of the last executor pass.
    misaligned : list[MisalignedRecord]
        Off-plan structures from the last audit.
    rotation_cursor : int
        Start offset into the kind rotation; advanced every pass.
    last_non_transit_tick : int
        Tick of the last marker placed for a non-road kind.
    last_audit_tick : int | None
        Tick of the last audit; None until the first one runs.
    last_tier : int
        Tier the executor last worked on; used to detect tier increases.
    """
    phase: BasePhase = BasePhase.UNPLANNED
    planned_flags: Dict[str, bool] = field(default_factory=dict)
    counts: Dict[str, int] = field(default_factory=dict)
    last_update_tick: int = 0
    misaligned: List[MisalignedRecord] = field(default_factory=list)
    rotation_cursor: int = 0
    last_non_transit_tick: int = 0
    last_audit_tick: Optional[int] = None
    last_tier: int = 0

    def reset(self) -> None:
        """Forget progress so the base is replanned from scratch."""
        self.phase = BasePhase.UNPLANNED
        self.planned_flags.clear()
        self.misaligned.clear()
        self.rotation_cursor = 0

    def to_dict(self) -> dict:
        return {
            "phase": self.phase.value,
            "plannedFlags": dict(self.planned_flags),
            "counts": dict(self.counts),
            "lastUpdateTick": self.last_update_tick,
            "misaligned": [m.to_dict() for m in self.misaligned],
            "rotationCursor": self.rotation_cursor,
            "lastNonTransitTick": self.last_non_transit_tick,
            "lastAuditTick": self.last_audit_tick,
            "lastTier": self.last_tier,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ExecutionState":
        data = data or {}
        try:
            phase = BasePhase(data.get("phase", BasePhase.UNPLANNED.value))
        except ValueError:
            phase = BasePhase.UNPLANNED
        records = (MisalignedRecord.from_dict(m) for m in data.get("misaligned") or [])
        last_audit = data.get("lastAuditTick")
        return cls(
            phase=phase,
            planned_flags={str(k): bool(v) for k, v in (data.get("plannedFlags") or {}).items()},
            counts={str(k): int(v) for k, v in (data.get("counts") or {}).items()},
            last_update_tick=int(data.get("lastUpdateTick", 0)),
            misaligned=[r for r in records if r is not None],
            rotation_cursor=int(data.get("rotationCursor", 0)),
            last_non_transit_tick=int(data.get("lastNonTransitTick", 0)),
            last_audit_tick=int(last_audit) if last_audit is not None else None,
            last_tier=int(data.get("lastTier", 0)),
        )
