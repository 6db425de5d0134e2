"""
DefensePlanner: barrier shell around the protected layout.
"""

from __future__ import annotations

from ColonyPlanner.construction import DefensePlanner
from ColonyPlanner.structures import StructureKind
from ColonyPlanner.terrain import Position, TerrainGrid, TerrainType

from conftest import tier_plan

K = StructureKind


def test_single_structure_gets_an_eight_cell_shell():
    plan = tier_plan({K.TOWER: [Position(20, 20)]})

    defenses = DefensePlanner().plan(TerrainGrid.open(), plan)

    assert defenses.barriers == [Position(20, 20)]
    assert len(defenses.perimeter) == 8
    assert all(p.chebyshev(Position(20, 20)) == 1 for p in defenses.perimeter)
    assert defenses.exits == []
    assert defenses.closed == defenses.perimeter


def test_shell_is_one_cell_thick_around_a_block():
    cells = [Position(x, y) for x in range(20, 23) for y in range(20, 23)]
    plan = tier_plan({K.EXTENSION: cells})

    defenses = DefensePlanner().plan(TerrainGrid.open(), plan)

    assert len(defenses.perimeter) == 16
    assert not set(defenses.perimeter) & set(cells)


def test_roads_are_not_protected():
    plan = tier_plan({K.ROAD: [Position(20, 20)], K.SPAWN: [Position(30, 30)]})

    defenses = DefensePlanner().plan(TerrainGrid.open(), plan)

    assert defenses.barriers == [Position(30, 30)]
    assert Position(20, 20) not in defenses.perimeter


def test_walls_are_left_out_of_the_shell():
    terrain = TerrainGrid.open().with_cells([(19, 20), (21, 20)], TerrainType.WALL)
    plan = tier_plan({K.TOWER: [Position(20, 20)]})

    defenses = DefensePlanner().plan(terrain, plan)

    assert len(defenses.perimeter) == 6
    assert Position(19, 20) not in defenses.perimeter


def test_shell_cells_on_the_edge_band_are_exits():
    plan = tier_plan({K.EXTENSION: [Position(2, 10)]})

    defenses = DefensePlanner().plan(TerrainGrid.open(), plan)

    assert sorted(defenses.exits) == [Position(1, 9), Position(1, 10), Position(1, 11)]
    assert len(defenses.closed) == 5


def test_empty_layout_gives_empty_defenses():
    defenses = DefensePlanner().plan(TerrainGrid.open(), tier_plan({K.ROAD: [Position(5, 5)]}))
    assert defenses.barriers == []
    assert defenses.perimeter == []
    assert defenses.exits == []


def test_edge_mask_band_width():
    mask = DefensePlanner().edge_mask(10)
    assert mask[0, 5] and mask[1, 5]
    assert not mask[2, 5]
    assert not mask[7, 7]
    assert mask[8, 8]
