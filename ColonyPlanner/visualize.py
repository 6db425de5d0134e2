"""
Plan rendering — PNG (matplotlib, Agg backend) and plain-text grids.

    from ColonyPlanner.visualize import render_png, render_ascii

    render_png(site.terrain, plan.tier(8), Path("plans/W1N1_t8.png"),
               defenses=plan.defenses, anchor=plan.anchor, title="W1N1 tier 8")
    print(render_ascii(site.terrain, plan.tier(8), anchor=plan.anchor))

ASCII legend
------------
    #  wall           ~  slow terrain     .  plain
    @  anchor         S  spawn            e  extension
    +  road           c  container        T  tower
    s  storage        l  link             t  terminal
    L  lab            F  factory          O  observer
    P  power spawn    N  nuker
    r  barrier (exit) w  barrier (closed)

Structures win over barriers, barriers over terrain.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Dict, Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import ListedColormap
from matplotlib.patches import Patch

from ColonyPlanner.structures import StructureKind
from ColonyPlanner.terrain import Position, TerrainGrid, TerrainType

if TYPE_CHECKING:
    from ColonyPlanner.construction.plan_types import DefensePlan, TierPlan

K = StructureKind

KIND_COLOURS: Dict[StructureKind, str] = {
    K.SPAWN:       "#ff0000",
    K.EXTENSION:   "#ffaa00",
    K.ROAD:        "#999999",
    K.CONTAINER:   "#ffff00",
    K.TOWER:       "#0000ff",
    K.STORAGE:     "#006600",
    K.LINK:        "#ff00ff",
    K.TERMINAL:    "#00ffff",
    K.LAB:         "#ff00aa",
    K.FACTORY:     "#aa00ff",
    K.OBSERVER:    "#00ffaa",
    K.POWER_SPAWN: "#aaff00",
    K.NUKER:       "#ff0055",
    K.RAMPART:     "#00ff00",
    K.WALL:        "#cccccc",
}

KIND_CHARS: Dict[StructureKind, str] = {
    K.SPAWN:       "S",
    K.EXTENSION:   "e",
    K.ROAD:        "+",
    K.CONTAINER:   "c",
    K.TOWER:       "T",
    K.STORAGE:     "s",
    K.LINK:        "l",
    K.TERMINAL:    "t",
    K.LAB:         "L",
    K.FACTORY:     "F",
    K.OBSERVER:    "O",
    K.POWER_SPAWN: "P",
    K.NUKER:       "N",
}

_TERRAIN_CHARS = {TerrainType.PLAIN: ".", TerrainType.WALL: "#", TerrainType.SLOW: "~"}

# Roads are drawn first so blocking kinds sharing a cell stay visible.
_DRAW_ORDER = [K.ROAD] + [k for k in KIND_CHARS if k != K.ROAD]


def render_ascii(
    terrain: TerrainGrid,
    tier_plan: Optional[TierPlan],
    defenses: Optional[DefensePlan] = None,
    anchor: Optional[Position] = None,
) -> str:
    size = terrain.size
    grid = [
        [_TERRAIN_CHARS[terrain.classify(x, y)] for x in range(size)]
        for y in range(size)
    ]

    def put(pos: Position, ch: str) -> None:
        if 0 <= pos.x < size and 0 <= pos.y < size:
            grid[pos.y][pos.x] = ch

    if defenses is not None:
        for pos in defenses.closed:
            put(pos, "w")
        for pos in defenses.exits:
            put(pos, "r")
    if tier_plan is not None:
        for kind in _DRAW_ORDER:
            for pos in tier_plan.positions(kind):
                put(pos, KIND_CHARS[kind])
    if anchor is not None:
        put(anchor, "@")

    return "\n".join("".join(row) for row in grid)


def render_png(
    terrain: TerrainGrid,
    tier_plan: Optional[TierPlan],
    path: Path,
    defenses: Optional[DefensePlan] = None,
    anchor: Optional[Position] = None,
    title: str = "",
) -> Path:
    """Draw terrain, planned structures and defenses; returns the written path."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    # plain / wall / slow
    terrain_cmap = ListedColormap(["#2b2b2b", "#111111", "#3a4a2b"])

    fig, ax = plt.subplots(figsize=(8, 8))
    ax.imshow(np.asarray(terrain.cells), cmap=terrain_cmap, vmin=0, vmax=2, interpolation="nearest")

    handles = []
    if defenses is not None:
        for kind, cells, marker in (
            (K.WALL, defenses.closed, "s"),
            (K.RAMPART, defenses.exits, "s"),
        ):
            if cells:
                ax.scatter([p.x for p in cells], [p.y for p in cells],
                           c=KIND_COLOURS[kind], marker=marker, s=30, alpha=0.5)
                handles.append(Patch(color=KIND_COLOURS[kind], label=f"{kind.value} ({len(cells)})"))

    if tier_plan is not None:
        for kind in _DRAW_ORDER:
            cells = tier_plan.positions(kind)
            if not cells:
                continue
            dot = 14 if kind == K.ROAD else 40
            ax.scatter([p.x for p in cells], [p.y for p in cells],
                       c=KIND_COLOURS[kind], marker="o" if kind == K.ROAD else "s", s=dot)
            handles.append(Patch(color=KIND_COLOURS[kind], label=f"{kind.value} ({len(cells)})"))

    if anchor is not None:
        ax.scatter([anchor.x], [anchor.y], c="#ffffff", marker="*", s=120)

    ax.set_xlim(-0.5, terrain.size - 0.5)
    ax.set_ylim(terrain.size - 0.5, -0.5)
    ax.set_title(title)
    if handles:
        ax.legend(handles=handles, loc="upper left", bbox_to_anchor=(1.01, 1.0), fontsize=7)
    fig.tight_layout()
    fig.savefig(path, dpi=120)
    plt.close(fig)
    return path
