"""
Placement strategies — one policy per structure kind, all built on a shared
ring search.

Design notes
------------
Every strategy is a plain function of a ``LayoutContext`` (terrain, anchor,
landmarks, cells already claimed in this generation pass) and the cap it may
fill. Nothing here touches the world or persisted state; the only outside
call is the injected ``path_fn`` used for the transit network.

Two shared primitives:

  find_open_position   Chebyshev ring search around a reference cell. Each
                       ring is shuffled before scanning; the shuffle is a
                       named strategy (RandomShuffle / NoShuffle) so tests
                       can make placement deterministic.
  score_position       openness heuristic: non-wall cells in the 3×3 block.

Claims
------
Cells of blocking kinds are claimed as soon as a strategy returns them, and
every later strategy rejects claimed cells. Landmarks (resource nodes,
controller, minerals, guardian lairs) are claimed up front. Roads do not
claim: they are pruned at the end wherever a blocking kind took the cell.

Public API
----------
    ctx = LayoutContext(site, anchor, path_fn, shuffle=NoShuffle())
    spawns = plan_spawns(ctx, 3)
    extensions = plan_extensions(ctx, 60)
    pos = find_open_position(terrain, anchor, 2, 4, claimed=ctx.claimed)
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set, Tuple

import numpy as np

from ColonyPlanner.logger import get_logger
from ColonyPlanner.pathing import CostModel
from ColonyPlanner.structures import StructureKind
from ColonyPlanner.terrain import Position, TerrainGrid
from ColonyPlanner.world import BaseSite
from ColonyPlanner.construction.plan_types import (
    ROLE_CONTROLLER,
    ROLE_SOURCE,
    ROLE_STORAGE,
)

log = get_logger()

PathFn = Callable[[Position, Position, CostModel], List[Position]]


# ---------------------------------------------------------------------------
# Shuffle strategies
# ---------------------------------------------------------------------------

class RandomShuffle:
    """Shuffles each ring in place with its own seeded generator."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._rng = random.Random(seed)

    def __call__(self, cells: List[Position]) -> None:
        self._rng.shuffle(cells)


class NoShuffle:
    """Leaves rings in scan order. Used for deterministic layouts."""

    def __call__(self, cells: List[Position]) -> None:
        return None


# ---------------------------------------------------------------------------
# Shared primitives
# ---------------------------------------------------------------------------

SPACING: int = 2              # minimum Manhattan distance between spaced cells
GUARDIAN_SAFETY_RANGE: int = 5
ROOM_CENTER = Position(25, 25)
OBSERVER_REF = Position(10, 10)


def ring_cells(center: Position, radius: int) -> List[Position]:
    """Perimeter of the Chebyshev square of ``radius`` around ``center``."""
    if radius <= 0:
        return [center]
    cells: List[Position] = []
    for dx in range(-radius, radius + 1):
        cells.append(center.offset(dx, -radius))
        cells.append(center.offset(dx, radius))
    for dy in range(-radius + 1, radius):
        cells.append(center.offset(-radius, dy))
        cells.append(center.offset(radius, dy))
    return cells


def _spaced(pos: Position, existing: Iterable[Position], spacing: int = SPACING) -> bool:
    return all(pos.manhattan(e) >= spacing for e in existing)


def find_open_position(
    terrain: TerrainGrid,
    ref: Position,
    min_range: int,
    max_range: int,
    existing: Sequence[Position] = (),
    claimed: Optional[Set[Position]] = None,
    shuffle: Optional[Callable[[List[Position]], None]] = None,
) -> Optional[Position]:
    """
    First acceptable cell on the rings ``min_range..max_range`` around ``ref``.

    A cell is acceptable when it is inside the build bounds, not wall, not
    claimed, and at least SPACING (Manhattan) from every cell in ``existing``.
    Returns None when no ring in range has one.
    """
    claimed = claimed or set()
    for radius in range(min_range, max_range + 1):
        cells = ring_cells(ref, radius)
        if shuffle is not None:
            shuffle(cells)
        for pos in cells:
            if not terrain.is_buildable(pos.x, pos.y):
                continue
            if pos in claimed:
                continue
            if _spaced(pos, existing):
                return pos
    return None


def score_position(terrain: TerrainGrid, x: int, y: int) -> int:
    """Number of non-wall cells in the 3×3 block centred on (x, y)."""
    return sum(
        1
        for dy in (-1, 0, 1)
        for dx in (-1, 0, 1)
        if not terrain.is_wall(x + dx, y + dy)
    )


# ---------------------------------------------------------------------------
# Layout context
# ---------------------------------------------------------------------------

@dataclass
class LayoutContext:
    """
    Mutable state of one generation pass.

    Fields
    ------
    site : BaseSite
        Terrain and landmarks of the base.
    anchor : Position
        First primary production structure.
    path_fn : PathFn
        ``(start, goal, cost_model) -> [Position]``; usually bound to
        ``World.shortest_path`` for the base.
    shuffle : callable
        Ring shuffle strategy passed to every ``find_open_position`` call.
    claimed : set[Position]
        Cells held by landmarks and blocking kinds planned so far.
    roads : list[Position]
        Transit cells in generation order.
    """
    site: BaseSite
    anchor: Position
    path_fn: PathFn
    shuffle: Callable[[List[Position]], None] = field(default_factory=RandomShuffle)
    claimed: Set[Position] = field(default_factory=set)
    roads: List[Position] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.claimed |= self.site.landmarks

    @property
    def terrain(self) -> TerrainGrid:
        return self.site.terrain

    def is_free(self, pos: Position) -> bool:
        return self.terrain.is_buildable(pos.x, pos.y) and pos not in self.claimed

    def claim(self, positions: Iterable[Position]) -> None:
        self.claimed.update(positions)

    def find(
        self,
        ref: Position,
        min_range: int,
        max_range: int,
        existing: Sequence[Position] = (),
    ) -> Optional[Position]:
        return find_open_position(
            self.terrain, ref, min_range, max_range,
            existing=existing, claimed=self.claimed, shuffle=self.shuffle,
        )

    def add_road(self, pos: Position, seen: Set[Position]) -> None:
        if pos not in seen:
            seen.add(pos)
            self.roads.append(pos)


# ---------------------------------------------------------------------------
# Primary production
# ---------------------------------------------------------------------------

def plan_spawns(ctx: LayoutContext, cap: int) -> List[Position]:
    if cap <= 0:
        return []
    spawns = [ctx.anchor]
    ctx.claim(spawns)
    while len(spawns) < cap:
        pos = ctx.find(ctx.anchor, 2, 3, existing=spawns)
        if pos is None:
            break
        spawns.append(pos)
        ctx.claim([pos])
    return spawns


# ---------------------------------------------------------------------------
# Capacity extensions
# ---------------------------------------------------------------------------

EXTENSION_MAX_RADIUS: int = 10
SPIRAL_OFFSET: Tuple[int, int] = (4, 4)
SPIRAL_STEPS: int = 20 * 20


def plan_extensions(ctx: LayoutContext, cap: int) -> List[Position]:
    """
    Ring sweep from radius 2 outward, perimeter cells only, spaced by 2.
    Falls back to a bounded spiral when the rings run out.
    """
    extensions: List[Position] = []
    if cap <= 0:
        return extensions

    radius = 2
    while len(extensions) < cap and radius < EXTENSION_MAX_RADIUS:
        for dx in range(-radius, radius + 1):
            for dy in range(-radius, radius + 1):
                if len(extensions) >= cap:
                    break
                if abs(dx) != radius and abs(dy) != radius:
                    continue
                pos = ctx.anchor.offset(dx, dy)
                if ctx.is_free(pos) and _spaced(pos, extensions):
                    extensions.append(pos)
                    ctx.claim([pos])
        radius += 1

    if len(extensions) < cap:
        _spiral_fill(ctx, extensions, cap, spaced=True)
    return extensions


def _spiral_fill(ctx: LayoutContext, extensions: List[Position], cap: int, spaced: bool) -> None:
    """Square spiral walk from anchor + SPIRAL_OFFSET, bounded by SPIRAL_STEPS."""
    origin = ctx.anchor.offset(*SPIRAL_OFFSET)
    x = y = 0
    dx, dy = 0, -1
    for _ in range(SPIRAL_STEPS):
        if len(extensions) >= cap:
            return
        pos = origin.offset(x, y)
        if ctx.is_free(pos) and (not spaced or _spaced(pos, extensions)):
            extensions.append(pos)
            ctx.claim([pos])
        if x == y or (x < 0 and x == -y) or (x > 0 and x == 1 - y):
            dx, dy = -dy, dx
        x, y = x + dx, y + dy


# ── Scored layout ───────────────────────────────────────────────────────────

CLUSTER_RANGE: Tuple[int, int] = (2, 8)
OPEN_AREA_SPAN: Tuple[int, int, int] = (5, 45, 2)   # start, stop, step
OPEN_AREA_MIN: int = 15


def _blocked_mask(ctx: LayoutContext) -> np.ndarray:
    """``[y, x]`` mask of cells scored extensions may not use."""
    size = ctx.terrain.size
    blocked = ctx.terrain.wall_mask().copy()
    for pos in list(ctx.claimed) + ctx.roads:
        if 0 <= pos.x < size and 0 <= pos.y < size:
            blocked[pos.y, pos.x] = True
    for node in ctx.site.sources + ctx.site.minerals:
        blocked[max(0, node.y - 1):node.y + 2, max(0, node.x - 1):node.x + 2] = True
    return blocked


def _extension_candidates(ctx: LayoutContext, blocked: np.ndarray) -> List[Position]:
    anchor = ctx.anchor
    seen: Set[Position] = set()
    candidates: List[Position] = []

    def consider(pos: Position) -> None:
        if pos in seen or not ctx.terrain.in_bounds(pos.x, pos.y):
            return
        if blocked[pos.y, pos.x]:
            return
        seen.add(pos)
        candidates.append(pos)

    lo, hi = CLUSTER_RANGE
    for dx in range(-hi, hi + 1):
        for dy in range(-hi, hi + 1):
            if lo <= abs(dx) + abs(dy) <= hi:
                consider(anchor.offset(dx, dy))

    for road in ctx.roads:
        for pos in road.neighbours():
            consider(pos)

    start, stop, step = OPEN_AREA_SPAN
    for x in range(start, stop, step):
        for y in range(start, stop, step):
            if blocked[y, x]:
                continue
            window = blocked[max(0, y - 2):y + 3, max(0, x - 2):x + 3]
            if int((~window).sum()) >= OPEN_AREA_MIN:
                consider(Position(x, y))

    return candidates


def plan_extensions_scored(ctx: LayoutContext, cap: int) -> List[Position]:
    """
    Candidate pools (clustered near the anchor, next to trunk roads, open
    areas) scored by anchor distance, road adjacency, centre distance and
    clustering with already accepted extensions; greedy acceptance up to
    ``cap``, then the spiral fallback.
    """
    extensions: List[Position] = []
    if cap <= 0:
        return extensions

    blocked = _blocked_mask(ctx)
    road_cells = set(ctx.roads)
    scores: Dict[Position, float] = {}
    for pos in _extension_candidates(ctx, blocked):
        score = 100 - min(pos.manhattan(ctx.anchor), 20)
        if any(n in road_cells for n in pos.neighbours()):
            score += 20
        score -= min(pos.manhattan(ROOM_CENTER) / 2, 15)
        scores[pos] = score

    while scores and len(extensions) < cap:
        best = max(scores, key=lambda p: (scores[p], -p.y, -p.x))
        del scores[best]
        extensions.append(best)
        ctx.claim([best])
        for pos in scores:
            if pos.manhattan(best) <= 2:
                scores[pos] += 5

    if len(extensions) < cap:
        _spiral_fill(ctx, extensions, cap, spaced=False)
    return extensions


# ---------------------------------------------------------------------------
# Transit network
# ---------------------------------------------------------------------------

def plan_trunk_roads(ctx: LayoutContext) -> None:
    """Cheapest paths from the anchor to every resource node and the controller."""
    seen = set(ctx.roads)
    cost = CostModel(blocked=frozenset(ctx.claimed))
    goals = list(ctx.site.sources)
    if ctx.site.controller is not None:
        goals.append(ctx.site.controller)
    for goal in goals:
        path = ctx.path_fn(ctx.anchor, goal, cost)
        if not path:
            log.debug("No trunk path %s -> %s in %s", ctx.anchor, goal, ctx.site.base_id)
        for step in path:
            if step != goal and ctx.terrain.is_buildable(step.x, step.y):
                ctx.add_road(step, seen)


def plan_road_rings(ctx: LayoutContext, centres: Iterable[Position]) -> None:
    """One-cell ring of road around each centre, skipping claimed cells."""
    seen = set(ctx.roads)
    for centre in centres:
        for pos in centre.neighbours():
            if ctx.is_free(pos):
                ctx.add_road(pos, seen)


def prune_roads(roads: List[Position], occupied: Set[Position]) -> List[Position]:
    """Drop road cells taken by a kind that cannot share its cell with one."""
    return [r for r in roads if r not in occupied]


# ---------------------------------------------------------------------------
# Resource buffers and transfer nodes
# ---------------------------------------------------------------------------

@dataclass
class BufferLayout:
    """
    Buffer cells chosen before transfer nodes are placed.

    ``sources`` pairs each eligible resource node with its buffer cell, in
    the site's source order.
    """
    controller: Optional[Position] = None
    storage: Optional[Position] = None
    sources: List[Tuple[Position, Position]] = field(default_factory=list)


def is_guarded(site: BaseSite, node: Position) -> bool:
    """True if a hostile guardian lair is within the safety range of ``node``."""
    return any(node.manhattan(lair) <= GUARDIAN_SAFETY_RANGE for lair in site.guardian_lairs)


def source_buffer_position(ctx: LayoutContext, source: Position) -> Optional[Position]:
    """The free neighbour of ``source`` with the best openness score."""
    best, best_score = None, -1
    for dx in (-1, 0, 1):
        for dy in (-1, 0, 1):
            if not dx and not dy:
                continue
            pos = source.offset(dx, dy)
            if not ctx.is_free(pos):
                continue
            score = score_position(ctx.terrain, pos.x, pos.y)
            if score > best_score:
                best, best_score = pos, score
    return best


def controller_buffer_position(ctx: LayoutContext) -> Optional[Position]:
    """Cell at Manhattan 1–3 of the controller, favouring close and open cells."""
    controller = ctx.site.controller
    if controller is None:
        return None
    best, best_score = None, -1
    for dx in range(-2, 3):
        for dy in range(-2, 3):
            dist = abs(dx) + abs(dy)
            if dist < 1 or dist > 3:
                continue
            pos = controller.offset(dx, dy)
            if not ctx.is_free(pos):
                continue
            score = (4 - dist) + score_position(ctx.terrain, pos.x, pos.y)
            if score > best_score:
                best, best_score = pos, score
    return best


def plan_buffers(ctx: LayoutContext, storage: Optional[Position]) -> BufferLayout:
    """Choose the controller, storage and per-source buffer cells and claim them."""
    layout = BufferLayout()

    layout.controller = controller_buffer_position(ctx)
    if layout.controller is not None:
        ctx.claim([layout.controller])

    for source in ctx.site.sources:
        if is_guarded(ctx.site, source):
            log.debug("Skipping buffer for guarded source %s in %s", source, ctx.site.base_id)
            continue
        pos = source_buffer_position(ctx, source)
        if pos is not None:
            layout.sources.append((source, pos))
            ctx.claim([pos])

    if storage is not None:
        taken = [p for p in [layout.controller] if p is not None] + [p for _, p in layout.sources]
        layout.storage = ctx.find(storage, 1, 2, existing=taken)
        if layout.storage is not None:
            ctx.claim([layout.storage])

    return layout


def plan_links(
    ctx: LayoutContext,
    cap: int,
    storage: Optional[Position],
    buffers: BufferLayout,
) -> Tuple[List[Position], List[str]]:
    """
    Transfer nodes: storage-side, controller-side, then one per source
    colocated with that source's buffer. Returns ``(positions, roles)``.

    The controller-side node gets its own cell 1–3 from the controller
    instead of the controller buffer's cell. The controller buffer is kept
    at every tier, so the two would otherwise be planned on one cell.
    """
    links: List[Position] = []
    roles: List[str] = []
    if cap <= 0:
        return links, roles

    def add(pos: Optional[Position], role: str) -> None:
        if pos is not None:
            links.append(pos)
            roles.append(role)
            ctx.claim([pos])

    if storage is not None:
        add(ctx.find(storage, 1, 2, existing=links), ROLE_STORAGE)
    else:
        add(ctx.find(ctx.anchor, 2, 3, existing=links), ROLE_STORAGE)

    if len(links) < cap and ctx.site.controller is not None:
        add(ctx.find(ctx.site.controller, 1, 3, existing=links), ROLE_CONTROLLER)

    for source, buffer in buffers.sources:
        if len(links) >= cap:
            break
        if buffer not in links:
            add(buffer, ROLE_SOURCE)
        else:
            add(ctx.find(source, 1, 2, existing=links), ROLE_SOURCE)

    return links, roles


def assemble_containers(
    buffers: BufferLayout,
    links: Sequence[Position],
    cap: int,
) -> Tuple[List[Position], List[str]]:
    """
    Max-tier buffer list: controller, storage, then any source buffer that
    no transfer node took over. Returns ``(positions, roles)``.
    """
    positions: List[Position] = []
    roles: List[str] = []
    if buffers.controller is not None:
        positions.append(buffers.controller)
        roles.append(ROLE_CONTROLLER)
    if buffers.storage is not None:
        positions.append(buffers.storage)
        roles.append(ROLE_STORAGE)
    taken = set(links)
    for _, pos in buffers.sources:
        if pos not in taken:
            positions.append(pos)
            roles.append(ROLE_SOURCE)
    return positions[:cap], roles[:cap]


# ---------------------------------------------------------------------------
# Defense emitters and single structures
# ---------------------------------------------------------------------------

def plan_towers(ctx: LayoutContext, cap: int) -> List[Position]:
    towers: List[Position] = []
    if cap <= 0:
        return towers

    def add(pos: Optional[Position]) -> bool:
        if pos is None:
            return False
        towers.append(pos)
        ctx.claim([pos])
        return True

    add(ctx.find(ctx.anchor, 2, 4, existing=towers))
    if cap >= 2:
        add(ctx.find(ROOM_CENTER, 5, 10, existing=towers))
    while len(towers) < cap:
        if not add(ctx.find(ctx.anchor, 3, 6, existing=towers)):
            break
    return towers


def _single(ctx: LayoutContext, cap: int, ref: Position, lo: int, hi: int) -> List[Position]:
    if cap <= 0:
        return []
    pos = ctx.find(ref, lo, hi)
    if pos is None:
        return []
    ctx.claim([pos])
    return [pos]


def plan_storage(ctx: LayoutContext, cap: int) -> List[Position]:
    return _single(ctx, cap, ctx.anchor, 2, 4)


def plan_terminal(ctx: LayoutContext, cap: int, storage: Optional[Position]) -> List[Position]:
    return _single(ctx, cap, storage or ctx.anchor, 1, 3)


def plan_factory(ctx: LayoutContext, cap: int, storage: Optional[Position]) -> List[Position]:
    return _single(ctx, cap, storage or ctx.anchor, 2, 4)


def plan_observer(ctx: LayoutContext, cap: int) -> List[Position]:
    return _single(ctx, cap, OBSERVER_REF, 0, 40)


def plan_power_spawn(ctx: LayoutContext, cap: int, storage: Optional[Position]) -> List[Position]:
    return _single(ctx, cap, storage or ctx.anchor, 2, 5)


def plan_nuker(ctx: LayoutContext, cap: int) -> List[Position]:
    return _single(ctx, cap, ctx.anchor, 6, 10)


# Compact lab cluster around a centre cell.
LAB_PATTERN: Tuple[Tuple[int, int], ...] = (
    (0, 0), (1, 0), (0, 1), (-1, 0), (0, -1),
    (1, 1), (-1, 1), (-1, -1), (1, -1), (2, 0),
)


def plan_labs(ctx: LayoutContext, cap: int) -> List[Position]:
    labs: List[Position] = []
    if cap <= 0:
        return labs
    centre = ctx.find(ctx.anchor, 6, 10)
    if centre is None:
        return labs
    for dx, dy in LAB_PATTERN[:cap]:
        pos = centre.offset(dx, dy)
        if ctx.is_free(pos):
            labs.append(pos)
            ctx.claim([pos])
    return labs
