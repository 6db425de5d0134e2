"""
ColonyPlanner.construction — layout planning and build-marker execution.

Public API
----------
    from ColonyPlanner.construction import (
        ConstructionManager,
        LifecycleConfig,
        PlanGenerator,
        PlannerConfig,
        DefensePlanner,
        PlanStore,
        MemoryStore,
        JsonFileStore,
        ConstructionExecutor,
        ExecutorConfig,
        AlignmentAuditor,
        AuditConfig,
    )
    from ColonyPlanner.construction.plan_types import Plan, TierPlan, ExecutionState
    from ColonyPlanner.construction.placement import find_open_position, score_position
"""

from ColonyPlanner.construction.plan_types import (
    BasePhase,
    DefensePlan,
    ExecutionState,
    MisalignedRecord,
    Plan,
    TierPlan,
)
from ColonyPlanner.construction.plan_generator import PlanGenerator, PlannerConfig
from ColonyPlanner.construction.defense_planner import DefensePlanner
from ColonyPlanner.construction.plan_store import JsonFileStore, MemoryStore, PlanStore
from ColonyPlanner.construction.executor import ConstructionExecutor, ExecutorConfig
from ColonyPlanner.construction.auditor import AlignmentAuditor, AlignmentReport, AuditConfig
from ColonyPlanner.construction.lifecycle import ConstructionManager, LifecycleConfig

__all__ = [
    "AlignmentAuditor",
    "AlignmentReport",
    "AuditConfig",
    "BasePhase",
    "ConstructionExecutor",
    "ConstructionManager",
    "DefensePlan",
    "DefensePlanner",
    "ExecutionState",
    "ExecutorConfig",
    "JsonFileStore",
    "LifecycleConfig",
    "MemoryStore",
    "MisalignedRecord",
    "Plan",
    "PlanGenerator",
    "PlanStore",
    "PlannerConfig",
    "TierPlan",
]
