"""
PlanStore — persisted Plan and ExecutionState per base.

The store is passed into every component that needs it; nothing reaches for
a shared global. Records live in a ``KeyValueStore`` under

    plan:<base_id>    Plan.to_dict()
    state:<base_id>   ExecutionState.to_dict()

Two backends ship with the package: ``MemoryStore`` (a dict, used by tests
and the runner) and ``JsonFileStore`` (one JSON document on disk).

Reads never raise on bad data. A missing or unreadable plan, one with an
older schema version, or one without every tier from 1 to its max reads as
None and the lifecycle regenerates it.
Missing ExecutionState fields are defaulted.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from ColonyPlanner.logger import get_logger
from ColonyPlanner.structures import MIN_TIER
from ColonyPlanner.construction.plan_types import (
    PLAN_VERSION,
    ExecutionState,
    Plan,
    TierPlan,
)

log = get_logger()


class KeyValueStore(Protocol):
    """Minimal persistence contract used by :class:`PlanStore`."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store. Values are kept as given (plain dicts)."""

    def __init__(self) -> None:
        self.data: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self.data.get(key)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def delete(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStore:
    """
    Single JSON document on disk, rewritten on every ``set``/``delete``.

    The file is written to a sibling temp file and moved into place so a
    crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError) as exc:
            log.warning("Ignoring unreadable store %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _flush(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            json.dump(self._data, fh, indent=1, sort_keys=True)
        tmp.replace(self.path)

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._flush()

    def delete(self, key: str) -> None:
        if self._data.pop(key, None) is not None:
            self._flush()


class PlanStore:
    """Typed view over a KeyValueStore."""

    def __init__(self, backend: Optional[KeyValueStore] = None) -> None:
        self.backend: KeyValueStore = backend if backend is not None else MemoryStore()

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    @staticmethod
    def _plan_key(base_id: str) -> str:
        return f"plan:{base_id}"

    @staticmethod
    def _state_key(base_id: str) -> str:
        return f"state:{base_id}"

    def load_plan(self, base_id: str) -> Optional[Plan]:
        raw = self.backend.get(self._plan_key(base_id))
        if not isinstance(raw, dict) or "anchor" not in raw:
            return None
        if int(raw.get("version", 0)) < PLAN_VERSION:
            log.info(
                "Stored plan for %s is version %s (< %d), will regenerate",
                base_id, raw.get("version", 0), PLAN_VERSION,
            )
            return None
        plan = Plan.from_dict(raw)
        gaps = [t for t in range(MIN_TIER, plan.max_tier + 1) if t not in plan.tiers]
        if not plan.tiers or gaps:
            log.warning(
                "Stored plan for %s is missing tier(s) %s, will regenerate",
                base_id, gaps or "all",
            )
            return None
        return plan

    def save_plan(self, base_id: str, plan: Plan) -> None:
        self.backend.set(self._plan_key(base_id), plan.to_dict())

    def delete_plan(self, base_id: str) -> None:
        self.backend.delete(self._plan_key(base_id))

    def tier_plan(self, base_id: str, tier: int) -> Optional[TierPlan]:
        plan = self.load_plan(base_id)
        if plan is None:
            return None
        return plan.tier(tier)

    # ------------------------------------------------------------------
    # Execution state
    # ------------------------------------------------------------------

    def load_state(self, base_id: str) -> ExecutionState:
        """Stored state for ``base_id``, or a fresh one if none exists yet."""
        raw = self.backend.get(self._state_key(base_id))
        return ExecutionState.from_dict(raw if isinstance(raw, dict) else None)

    def save_state(self, base_id: str, state: ExecutionState) -> None:
        self.backend.set(self._state_key(base_id), state.to_dict())
