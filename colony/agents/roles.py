"""Quick card: closed role vocabulary, FSM state tags, the strategy contract, and the registry."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, FrozenSet, Iterable, List, Optional

from colony.agents.body import Capability
from colony.model.actions import ActionResult

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.context import TickContext
    from colony.model.tasks import Task


class Role(str, Enum):
    HARVESTER = "harvester"
    HAULER = "hauler"
    BUILDER = "builder"
    REPAIRER = "repairer"
    UPGRADER = "upgrader"
    DEFENDER = "defender"
    CLAIMER = "claimer"
    SCOUT = "scout"
    DESTROYER = "destroyer"


class AgentState(str, Enum):
    HARVESTING = "harvesting"
    DELIVERING = "delivering"
    BUILDING = "building"
    REPAIRING = "repairing"
    UPGRADING = "upgrading"
    PATROLLING = "patrolling"
    CLAIMING = "claiming"
    SCOUTING = "scouting"
    DESTROYING = "destroying"
    IDLE = "idle"


COLLECTING_STATES: FrozenSet[AgentState] = frozenset({AgentState.HARVESTING})
SPENDING_STATES: FrozenSet[AgentState] = frozenset(
    {AgentState.DELIVERING, AgentState.BUILDING, AgentState.REPAIRING, AgentState.UPGRADING}
)


class UnknownRole(KeyError):
    """Raised by the registry when no strategy is registered for a role."""


@dataclass
class StepOutcome:
    """What one handler call produced: the primitive result (if any) and an optional next state."""

    result: Optional[ActionResult] = None
    transition: Optional[AgentState] = None
    note: str = ""


Handler = Callable[["WorkerAgent", "TickContext"], StepOutcome]


def parse_role(value: Any) -> Optional[Role]:
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def parse_state(value: Any) -> Optional[AgentState]:
    if isinstance(value, AgentState):
        return value
    try:
        return AgentState(value)
    except ValueError:
        return None


def infer_role(capabilities: Iterable[Capability]) -> Role:
    """Fallback cue: guess a role from body composition when memory and spawn hint are both silent."""
    caps = frozenset(capabilities)
    if Capability.CLAIM in caps:
        return Role.CLAIMER
    if caps & {Capability.MELEE, Capability.RANGED, Capability.HEAL}:
        return Role.DEFENDER
    if Capability.GATHER in caps and Capability.TRANSPORT in caps:
        return Role.HARVESTER
    if Capability.TRANSPORT in caps:
        return Role.HAULER
    return Role.SCOUT


class RoleStrategy(ABC):
    """Strategy card: body builder, default memory, and one handler per FSM state.

    Handlers only act through the agent they are given; anything that mutates the world goes
    through the agent's actuator and so through its Action Guard.
    """

    role: ClassVar[Role]
    initial_state: ClassVar[AgentState] = AgentState.HARVESTING
    collect_state: ClassVar[Optional[AgentState]] = AgentState.HARVESTING
    spend_state: ClassVar[Optional[AgentState]] = AgentState.DELIVERING
    takes_tasks: ClassVar[bool] = False

    @abstractmethod
    def body(self, energy_budget: int, zone_level: int) -> List[Capability]:
        """Ordered parts that fit ``energy_budget``; empty when nothing affordable exists."""

    @abstractmethod
    def handlers(self) -> Dict[AgentState, Handler]:
        """State tag -> handler."""

    def default_memory(self, agent: "WorkerAgent") -> Dict[str, Any]:
        return {
            "role": self.role.value,
            "state": self.initial_state.value,
            "target_id": None,
            "idle_since": None,
        }

    def states(self) -> FrozenSet[AgentState]:
        return frozenset(self.handlers())

    def on_state(self, state: Any, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        """Dispatch cue: unknown tags fall back to the initial state instead of blowing up."""
        parsed = parse_state(state)
        handler = self.handlers().get(parsed) if parsed is not None else None
        if handler is None:
            return StepOutcome(transition=self.initial_state, note=f"unknown_state:{state}")
        return handler(agent, ctx)

    def accepts(self, agent: "WorkerAgent", task: "Task") -> bool:
        """Offer filter used during allocation; roles narrow it when they only want some kinds."""
        from colony.model.tasks import load_compatible

        return load_compatible(agent, task)


class RoleRegistry:
    """Registry card: role tag -> strategy, resolved once at start-up."""

    def __init__(self) -> None:
        self._strategies: Dict[Role, RoleStrategy] = {}

    def register(self, role: Role, strategy: RoleStrategy) -> None:
        if strategy.role is not role:
            raise ValueError(f"strategy for {strategy.role.value} registered under {role.value}")
        self._strategies[role] = strategy

    def lookup(self, role: Any) -> RoleStrategy:
        parsed = parse_role(role)
        if parsed is None or parsed not in self._strategies:
            raise UnknownRole(role)
        return self._strategies[parsed]

    def missing(self) -> List[Role]:
        return [role for role in Role if role not in self._strategies]

    def roles(self) -> List[Role]:
        return list(self._strategies)

    def __contains__(self, role: Any) -> bool:
        parsed = parse_role(role)
        return parsed is not None and parsed in self._strategies
