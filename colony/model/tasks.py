"""Quick card: the task pool; create, assign, execute, and retire units of demand."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

import config
from colony.agents.body import Capability
from colony.model.actions import (
    FULL,
    NOT_ENOUGH_RESOURCES,
    ActionKind,
    ActionResult,
    action_range,
)
from colony.model.memory_store import TASKS, Scope, StateStore
from colony.model.world import ConstructionSite, Controller, Structure, StructureKind

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.context import TickContext
    from colony.model.planner import ZoneDemand

log = logging.getLogger(__name__)


class TaskKind(str, Enum):
    HARVEST = "harvest"
    UPGRADE = "upgrade"
    BUILD = "build"
    REPAIR = "repair"
    TRANSFER = "transfer"
    WITHDRAW = "withdraw"
    PICKUP = "pickup"
    ATTACK = "attack"
    HEAL = "heal"
    RANGED_ATTACK = "ranged_attack"
    DISMANTLE = "dismantle"
    CLAIM_CONTROLLER = "claim_controller"
    RESERVE_CONTROLLER = "reserve_controller"


class TaskStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class Retention(str, Enum):
    """What cleanup does with a task nobody holds: keep it while the opportunity lasts, or drop it."""

    PERSIST = "persist"
    DROP = "drop"


REQUIRED_CAPABILITY: Dict[TaskKind, Capability] = {
    TaskKind.HARVEST: Capability.GATHER,
    TaskKind.UPGRADE: Capability.GATHER,
    TaskKind.BUILD: Capability.GATHER,
    TaskKind.REPAIR: Capability.GATHER,
    TaskKind.DISMANTLE: Capability.GATHER,
    TaskKind.TRANSFER: Capability.TRANSPORT,
    TaskKind.WITHDRAW: Capability.TRANSPORT,
    TaskKind.PICKUP: Capability.TRANSPORT,
    TaskKind.ATTACK: Capability.MELEE,
    TaskKind.RANGED_ATTACK: Capability.RANGED,
    TaskKind.HEAL: Capability.HEAL,
    TaskKind.CLAIM_CONTROLLER: Capability.CLAIM,
    TaskKind.RESERVE_CONTROLLER: Capability.CLAIM,
}

TASK_ACTION: Dict[TaskKind, ActionKind] = {
    TaskKind.HARVEST: ActionKind.GATHER,
    TaskKind.UPGRADE: ActionKind.UPGRADE,
    TaskKind.BUILD: ActionKind.BUILD,
    TaskKind.REPAIR: ActionKind.REPAIR,
    TaskKind.DISMANTLE: ActionKind.DISMANTLE,
    TaskKind.TRANSFER: ActionKind.TRANSFER,
    TaskKind.WITHDRAW: ActionKind.WITHDRAW,
    TaskKind.PICKUP: ActionKind.PICKUP,
    TaskKind.ATTACK: ActionKind.MELEE_ATTACK,
    TaskKind.RANGED_ATTACK: ActionKind.RANGED_ATTACK,
    TaskKind.HEAL: ActionKind.HEAL,
    TaskKind.CLAIM_CONTROLLER: ActionKind.CLAIM,
    TaskKind.RESERVE_CONTROLLER: ActionKind.RESERVE,
}

# Economy tasks tied to a standing opportunity persist; combat and filler work is recomputed each tick.
RETENTION: Dict[TaskKind, Retention] = {
    TaskKind.HARVEST: Retention.PERSIST,
    TaskKind.BUILD: Retention.PERSIST,
    TaskKind.REPAIR: Retention.PERSIST,
    TaskKind.TRANSFER: Retention.PERSIST,
    TaskKind.WITHDRAW: Retention.PERSIST,
    TaskKind.PICKUP: Retention.PERSIST,
    TaskKind.CLAIM_CONTROLLER: Retention.PERSIST,
    TaskKind.RESERVE_CONTROLLER: Retention.PERSIST,
    TaskKind.UPGRADE: Retention.DROP,
    TaskKind.ATTACK: Retention.DROP,
    TaskKind.RANGED_ATTACK: Retention.DROP,
    TaskKind.HEAL: Retention.DROP,
    TaskKind.DISMANTLE: Retention.DROP,
}

# Kinds that spend carried energy vs. kinds that fill the agent's store
SPENDS_ENERGY = frozenset({TaskKind.UPGRADE, TaskKind.BUILD, TaskKind.REPAIR, TaskKind.TRANSFER})
FILLS_STORE = frozenset({TaskKind.HARVEST, TaskKind.WITHDRAW, TaskKind.PICKUP})


class InvalidTarget(LookupError):
    """Raised when a task is created for a target that does not resolve."""


class UnknownTask(LookupError):
    """Raised when an operation names a task id that is not in the pool."""


class UnknownAgent(LookupError):
    """Raised when an operation names an agent that is not alive this tick."""


@dataclass
class Task:
    id: int
    kind: TaskKind
    target_id: str
    priority: int
    zone: str
    created_at: int
    assigned: List[str] = field(default_factory=list)
    resource: Optional[str] = None
    amount: Optional[int] = None
    max_agents: Optional[int] = None

    def is_full(self) -> bool:
        return self.max_agents is not None and len(self.assigned) >= self.max_agents

    def age(self, tick: int) -> int:
        return tick - self.created_at

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        payload = dict(data)
        payload["kind"] = TaskKind(payload["kind"])
        payload["assigned"] = list(payload.get("assigned") or [])
        return cls(**payload)


@dataclass
class TaskStats:
    completed: int = 0
    failed: int = 0
    idle: int = 0
    created: int = 0
    removed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


def load_compatible(agent: "WorkerAgent", task: Task) -> bool:
    """Offer cue: don't hand delivery work to an empty agent or collection work to a full one."""
    if task.kind in SPENDS_ENERGY:
        return agent.energy > 0
    if task.kind in FILLS_STORE:
        return agent.free_capacity > 0
    return True


class TaskAllocator:
    """Allocator card: one task pool for the colony, indexed by zone at query time."""

    def __init__(self, age_ceiling: int = config.TASK_AGE_CEILING) -> None:
        self.age_ceiling = age_ceiling
        self.tasks: Dict[int, Task] = {}
        self._agent_tasks: Dict[str, int] = {}
        self._next_id = 1
        self.stats = TaskStats()

    # ---------------------------------------------------------------- queries
    def get(self, task_id: int) -> Optional[Task]:
        return self.tasks.get(task_id)

    def task_for(self, agent_id: str) -> Optional[Task]:
        task_id = self._agent_tasks.get(agent_id)
        return self.tasks.get(task_id) if task_id is not None else None

    def tasks_in(self, zone: str, kind: Optional[TaskKind] = None) -> List[Task]:
        return [t for t in self.tasks.values() if t.zone == zone and (kind is None or t.kind is kind)]

    def counts_by_kind(self) -> Dict[str, int]:
        return dict(Counter(task.kind.value for task in self.tasks.values()))

    def __len__(self) -> int:
        return len(self.tasks)

    def __contains__(self, task_id: int) -> bool:
        return task_id in self.tasks

    # --------------------------------------------------------------- mutation
    def create_task(
        self,
        ctx: "TickContext",
        kind: TaskKind,
        target_id: str,
        priority: int,
        zone: Optional[str] = None,
        resource: Optional[str] = None,
        amount: Optional[int] = None,
        max_agents: Optional[int] = None,
    ) -> int:
        target = ctx.world.resolve(target_id)
        if target is None:
            raise InvalidTarget(target_id)
        if max_agents is None:
            max_agents = config.TASK_MAX_AGENTS.get(kind.value)
        task = Task(
            id=self._next_id,
            kind=kind,
            target_id=target_id,
            priority=int(priority),
            zone=zone or target.pos.zone,
            created_at=ctx.tick,
            resource=resource,
            amount=amount,
            max_agents=max_agents,
        )
        self._next_id += 1
        self.tasks[task.id] = task
        self.stats.created += 1
        return task.id

    def assign(self, ctx: "TickContext", agent_id: str, task_id: int) -> Task:
        """Assign cue: drop whatever the agent held before, then join the new task."""
        task = self.tasks.get(task_id)
        if task is None:
            raise UnknownTask(task_id)
        if agent_id not in ctx.agents:
            raise UnknownAgent(agent_id)
        self.unassign(agent_id)
        task.assigned.append(agent_id)
        self._agent_tasks[agent_id] = task_id
        return task

    def unassign(self, agent_id: str) -> Optional[int]:
        """Idempotent; returns the task id the agent held, if any."""
        task_id = self._agent_tasks.pop(agent_id, None)
        if task_id is None:
            return None
        task = self.tasks.get(task_id)
        if task is not None and agent_id in task.assigned:
            task.assigned.remove(agent_id)
        return task_id

    def remove(self, task_id: int) -> Optional[Task]:
        task = self.tasks.pop(task_id, None)
        if task is None:
            return None
        for agent_id in task.assigned:
            if self._agent_tasks.get(agent_id) == task_id:
                del self._agent_tasks[agent_id]
        self.stats.removed += 1
        return task

    # --------------------------------------------------------------- matching
    def find_best_task(
        self,
        ctx: "TickContext",
        agent: "WorkerAgent",
        predicate: Optional[Callable[[Task], bool]] = None,
    ) -> Optional[Task]:
        """Match card: same zone, capability present, room left; highest priority, then lowest id."""
        capabilities = agent.capabilities
        held = self._agent_tasks.get(agent.name)
        candidates = [
            task
            for task in self.tasks.values()
            if task.zone == agent.zone
            and REQUIRED_CAPABILITY[task.kind] in capabilities
            and (task.id == held or not task.is_full())
            and (predicate is None or predicate(task))
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda task: (-task.priority, task.id))

    # -------------------------------------------------------------- execution
    def execute_task(self, ctx: "TickContext", agent: "WorkerAgent", task: Task) -> TaskStatus:
        """Run one step of the task through the agent's guarded actuator and count the outcome."""
        target = ctx.world.resolve(task.target_id)
        if target is None:
            status = TaskStatus.FAILED
        else:
            status = getattr(self, f"_exec_{task.kind.value}")(ctx, agent, task, target)
        if status is TaskStatus.COMPLETED:
            self.stats.completed += 1
        elif status is TaskStatus.FAILED:
            self.stats.failed += 1
        return status

    def _act(self, agent: "WorkerAgent", task: Task, target: Any, **kwargs: Any) -> ActionResult:
        kind = TASK_ACTION[task.kind]
        result = agent.actuator.perform(kind, target, **kwargs)
        if result.not_in_range:
            agent.move_to(target.pos, reach=action_range(kind))
        return result

    @staticmethod
    def _pending(result: ActionResult) -> bool:
        return result.not_in_range or result.ignored

    def _exec_harvest(self, ctx, agent, task, source) -> TaskStatus:
        if agent.free_capacity <= 0:
            return TaskStatus.COMPLETED
        result = self._act(agent, task, source)
        if result.ok or self._pending(result):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.COMPLETED if result.reason == FULL else TaskStatus.FAILED

    def _exec_upgrade(self, ctx, agent, task, controller) -> TaskStatus:
        if agent.energy <= 0:
            return TaskStatus.COMPLETED
        result = self._act(agent, task, controller)
        if result.ok or self._pending(result):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.FAILED

    def _exec_build(self, ctx, agent, task, site) -> TaskStatus:
        if agent.energy <= 0 or (isinstance(site, ConstructionSite) and site.complete):
            return TaskStatus.COMPLETED
        result = self._act(agent, task, site)
        if result.ok:
            return TaskStatus.COMPLETED if ctx.world.resolve(site.id) is None else TaskStatus.IN_PROGRESS
        if self._pending(result):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.COMPLETED if result.reason == NOT_ENOUGH_RESOURCES else TaskStatus.FAILED

    def _exec_repair(self, ctx, agent, task, structure) -> TaskStatus:
        if agent.energy <= 0:
            return TaskStatus.COMPLETED
        if isinstance(structure, Structure) and structure.hits >= structure.hits_max:
            return TaskStatus.COMPLETED
        result = self._act(agent, task, structure)
        if result.ok or self._pending(result):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.COMPLETED if result.reason == FULL else TaskStatus.FAILED

    def _exec_transfer(self, ctx, agent, task, target) -> TaskStatus:
        if agent.energy <= 0:
            return TaskStatus.COMPLETED
        result = self._act(agent, task, target, amount=task.amount)
        if result.ok or result.reason == FULL:
            return TaskStatus.COMPLETED
        if self._pending(result):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.FAILED

    def _exec_withdraw(self, ctx, agent, task, structure) -> TaskStatus:
        if agent.free_capacity <= 0:
            return TaskStatus.COMPLETED
        result = self._act(agent, task, structure, amount=task.amount)
        if result.ok or result.reason == NOT_ENOUGH_RESOURCES:
            return TaskStatus.COMPLETED
        if self._pending(result):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.FAILED

    def _exec_pickup(self, ctx, agent, task, drop) -> TaskStatus:
        if agent.free_capacity <= 0:
            return TaskStatus.COMPLETED
        result = self._act(agent, task, drop)
        if result.ok:
            return TaskStatus.COMPLETED
        if self._pending(result):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.FAILED

    def _strike(self, ctx, agent, task, target) -> TaskStatus:
        result = self._act(agent, task, target)
        if result.ok:
            return TaskStatus.COMPLETED if ctx.world.resolve(target.id) is None else TaskStatus.IN_PROGRESS
        if self._pending(result):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.FAILED

    _exec_attack = _strike
    _exec_ranged_attack = _strike
    _exec_dismantle = _strike

    def _exec_heal(self, ctx, agent, task, patient) -> TaskStatus:
        if patient.hits >= patient.hits_max:
            return TaskStatus.COMPLETED
        result = self._act(agent, task, patient)
        if result.ok:
            return TaskStatus.COMPLETED if patient.hits >= patient.hits_max else TaskStatus.IN_PROGRESS
        if self._pending(result):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.FAILED

    def _exec_claim_controller(self, ctx, agent, task, controller) -> TaskStatus:
        result = self._act(agent, task, controller)
        if result.ok:
            return TaskStatus.COMPLETED
        if self._pending(result):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.FAILED

    def _exec_reserve_controller(self, ctx, agent, task, controller) -> TaskStatus:
        result = self._act(agent, task, controller)
        if result.ok or self._pending(result):
            return TaskStatus.IN_PROGRESS
        return TaskStatus.COMPLETED if result.reason == FULL else TaskStatus.FAILED

    # ---------------------------------------------------------------- cleanup
    def cleanup(self, ctx: "TickContext") -> Dict[int, str]:
        """Cleanup card: first thing each tick, so nothing stale can be handed out.

        Returns removed task ids mapped to the reason they went.
        """
        live = set(ctx.agents)
        for agent_id in [a for a in self._agent_tasks if a not in live]:
            del self._agent_tasks[agent_id]
        removed: Dict[int, str] = {}
        for task in list(self.tasks.values()):
            task.assigned = [agent_id for agent_id in task.assigned if agent_id in live]
            reason = self._removal_reason(ctx, task)
            if reason is not None:
                self.remove(task.id)
                removed[task.id] = reason
        if ctx.tick % config.STATS_LOG_INTERVAL == 0:
            log.info("tick %d: %d tasks %s", ctx.tick, len(self.tasks), self.counts_by_kind())
        return removed

    def _removal_reason(self, ctx: "TickContext", task: Task) -> Optional[str]:
        if task.age(ctx.tick) >= self.age_ceiling:
            return "expired"
        target = ctx.world.resolve(task.target_id)
        if target is None:
            return "target_gone"
        if self._satisfied(task, target):
            return "satisfied"
        if not task.assigned:
            if RETENTION[task.kind] is Retention.DROP:
                return "unclaimed"
            if not self._opportunity_live(task, target):
                return "no_opportunity"
        return None

    @staticmethod
    def _satisfied(task: Task, target: Any) -> bool:
        kind = task.kind
        if kind is TaskKind.BUILD:
            return isinstance(target, ConstructionSite) and target.complete
        if kind in (TaskKind.REPAIR, TaskKind.HEAL):
            return target.hits >= target.hits_max
        if kind is TaskKind.HARVEST:
            return target.energy <= 0
        if kind is TaskKind.TRANSFER:
            return target.free_capacity <= 0
        if kind is TaskKind.WITHDRAW:
            return target.energy <= 0
        if kind is TaskKind.PICKUP:
            return target.amount <= 0
        if kind is TaskKind.CLAIM_CONTROLLER:
            return isinstance(target, Controller) and target.owner is not None
        if kind is TaskKind.RESERVE_CONTROLLER:
            return isinstance(target, Controller) and (
                target.owner is not None or target.reservation >= config.RESERVATION_MAX_TICKS
            )
        return False

    @staticmethod
    def _opportunity_live(task: Task, target: Any) -> bool:
        kind = task.kind
        if kind is TaskKind.PICKUP:
            return target.amount > config.PICKUP_MIN_AMOUNT
        if kind is TaskKind.REPAIR:
            return target.hits < target.hits_max * config.REPAIR_HEALTH_FRACTION
        if kind in (TaskKind.HARVEST, TaskKind.WITHDRAW):
            return target.energy > 0
        if kind is TaskKind.TRANSFER:
            return target.free_capacity > 0
        return True

    # ------------------------------------------------------------- allocation
    def allocate(self, ctx: "TickContext", demand: "ZoneDemand") -> Dict[str, int]:
        """Allocation card: turn the zone's demand into tasks, then offer them to idle task-takers."""
        created = self._materialize(ctx, demand)
        assigned = idle = 0
        for agent in sorted(ctx.agents_in(demand.zone), key=lambda a: a.name):
            if not agent.takes_tasks or self.task_for(agent.name) is not None:
                continue
            task = self.find_best_task(ctx, agent, predicate=lambda t, a=agent: a.strategy.accepts(a, t))
            if task is None:
                self.stats.idle += 1
                idle += 1
                continue
            self.assign(ctx, agent.name, task.id)
            assigned += 1
        return {"created": created, "assigned": assigned, "idle": idle}

    def _materialize(self, ctx: "TickContext", demand: "ZoneDemand") -> int:
        zone = demand.zone
        existing = {(task.kind, task.target_id) for task in self.tasks_in(zone)}
        priority = config.TASK_PRIORITY
        created = 0

        def ensure(kind: TaskKind, target_id: str, level: int, **kwargs: Any) -> None:
            nonlocal created
            if (kind, target_id) in existing or ctx.world.resolve(target_id) is None:
                return
            self.create_task(ctx, kind, target_id, level, zone=zone, **kwargs)
            existing.add((kind, target_id))
            created += 1

        for target_id in demand.refill_ids:
            target = ctx.world.resolve(target_id)
            is_tower = isinstance(target, Structure) and target.kind is StructureKind.TOWER
            level = priority["refill_tower"] if is_tower else priority["refill_spawn"]
            ensure(TaskKind.TRANSFER, target_id, level, resource="energy")
        for target_id in demand.build_ids:
            ensure(TaskKind.BUILD, target_id, priority["build"])
        for target_id in demand.repair_ids:
            target = ctx.world.resolve(target_id)
            urgent = (
                isinstance(target, Structure)
                and target.is_fortification
                and target.hits < config.FORTIFICATION_URGENT_HITS
            )
            ensure(TaskKind.REPAIR, target_id, priority["fortification_urgent"] if urgent else priority["repair"])
        for target_id in demand.withdraw_ids:
            ensure(TaskKind.WITHDRAW, target_id, priority["withdraw"], resource="energy")
        for target_id in demand.pickup_ids:
            ensure(TaskKind.PICKUP, target_id, priority["pickup"], resource="energy")
        for target_id in demand.hostile_ids:
            ensure(TaskKind.ATTACK, target_id, priority["defense"])
            ensure(TaskKind.RANGED_ATTACK, target_id, priority["defense"])
        for target_id in demand.foreign_structure_ids:
            ensure(TaskKind.DISMANTLE, target_id, priority["dismantle"])
            ensure(TaskKind.ATTACK, target_id, priority["dismantle"])
        for target_id in demand.wounded_ids:
            ensure(TaskKind.HEAL, target_id, priority["heal"])
        for target_id in demand.claim_ids:
            ensure(TaskKind.CLAIM_CONTROLLER, target_id, priority["claim"])
        for target_id in demand.reserve_ids:
            ensure(TaskKind.RESERVE_CONTROLLER, target_id, priority["reserve"])
        for target_id in demand.remote_source_ids:
            ensure(TaskKind.HARVEST, target_id, priority["remote_harvest"], resource="energy")
        for target_id in demand.remote_withdraw_ids:
            ensure(TaskKind.WITHDRAW, target_id, priority["remote_withdraw"], resource="energy")
        if demand.controller_id and demand.surplus_energy >= config.UPGRADE_SURPLUS_ENERGY:
            ensure(TaskKind.UPGRADE, demand.controller_id, priority["upgrade"])
        created += self._harvest_for_deficit(ctx, demand)
        return created

    def _harvest_for_deficit(self, ctx: "TickContext", demand: "ZoneDemand") -> int:
        """One Harvest task per missing harvester, minus the ones already open, spread over sources."""
        missing = demand.deficits.get("harvester", 0)
        sources = [sid for sid in demand.source_ids if ctx.world.resolve(sid) is not None]
        if missing <= 0 or not sources:
            return 0
        local = [t for t in self.tasks_in(demand.zone, TaskKind.HARVEST) if t.target_id in sources]
        wanted = missing - len(local)
        per_source = Counter(task.target_id for task in local)
        created = 0
        for _ in range(max(0, wanted)):
            target_id = min(sources, key=lambda sid: (per_source[sid], sid))
            self.create_task(
                ctx, TaskKind.HARVEST, target_id, config.TASK_PRIORITY["harvest"], zone=demand.zone, resource="energy"
            )
            per_source[target_id] += 1
            created += 1
        return created

    # ------------------------------------------------------------ persistence
    def save(self, store: StateStore) -> None:
        store.set(
            Scope.GLOBAL,
            TASKS,
            {
                "next_id": self._next_id,
                "tasks": [task.to_dict() for task in self.tasks.values()],
                "stats": self.stats.as_dict(),
            },
        )

    def load(self, store: StateStore) -> int:
        """Restore the pool and rebuild the agent index; returns how many tasks came back."""
        data = store.get_data(Scope.GLOBAL, TASKS)
        if not data:
            return 0
        self.tasks = {}
        self._agent_tasks = {}
        for raw in data.get("tasks", []):
            task = Task.from_dict(raw)
            self.tasks[task.id] = task
            for agent_id in task.assigned:
                self._agent_tasks[agent_id] = task.id
        self._next_id = max([int(data.get("next_id", 1))] + [task.id + 1 for task in self.tasks.values()])
        self.stats = TaskStats(**(data.get("stats") or {}))
        return len(self.tasks)
