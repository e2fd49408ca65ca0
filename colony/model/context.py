"""Quick card: the explicit per-tick world context handed to every component call."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from colony.model.memory_store import StateStore
from colony.model.movement import MovementCostModel
from colony.model.scheduler import DutyCycleScheduler
from colony.model.world import SimWorld

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.planner import ZoneDemand
    from colony.model.tasks import TaskAllocator

# Error log entries kept for inspection
ERROR_LOG_LIMIT = 50


@dataclass
class Analytics:
    """Running counters that outlive a single tick; the DataCollector reads these."""

    errors: int = 0
    recoveries: int = 0
    state_resets: int = 0
    stale_targets: int = 0
    spawned: int = 0
    error_log: List[Dict[str, Any]] = field(default_factory=list)

    def record_error(self, tick: int, agent_id: str, exc: BaseException) -> None:
        self.errors += 1
        self.error_log.append({"tick": tick, "agent": agent_id, "error": f"{type(exc).__name__}: {exc}"})
        del self.error_log[:-ERROR_LOG_LIMIT]


@dataclass
class TickContext:
    """Context card: everything one tick may read or write, bounded to that tick."""

    tick: int
    world: SimWorld
    store: StateStore
    movement: MovementCostModel
    allocator: "TaskAllocator"
    agents: Dict[str, "WorkerAgent"] = field(default_factory=dict)
    demands: Dict[str, "ZoneDemand"] = field(default_factory=dict)
    schedulers: Dict[str, DutyCycleScheduler] = field(default_factory=dict)
    analytics: Analytics = field(default_factory=Analytics)

    def agents_in(self, zone: str) -> List["WorkerAgent"]:
        return [agent for agent in self.agents.values() if agent.zone == zone]

    def demand_for(self, zone: str) -> Optional["ZoneDemand"]:
        return self.demands.get(zone)

    def scheduler(self, name: str) -> Optional[DutyCycleScheduler]:
        return self.schedulers.get(name)
