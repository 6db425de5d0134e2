"""
ColonyPlanner — base layout planning and incremental construction for a
grid colony.

Public API
----------
    from ColonyPlanner.construction import ConstructionManager, PlanStore
    from ColonyPlanner.simulation import SimulatedWorld
    from ColonyPlanner.world import World, BaseSite
"""
