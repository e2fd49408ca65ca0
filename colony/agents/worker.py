"""Quick card: WorkerAgent, the mesa-side controller bound to one world unit."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, FrozenSet, Optional, Tuple

import mesa

from colony.agents.body import Capability
from colony.agents.roles import AgentState, RoleStrategy, StepOutcome, parse_state
from colony.model.actions import INVALID_TARGET, ActionGuard, ActionResult, Actuator, failed
from colony.model.memory_store import Scope
from colony.model.movement import PathOptions
from colony.model.world import Position, Unit

if TYPE_CHECKING:
    from colony.model.world_model import ColonyModel


class WorkerAgent(mesa.Agent):
    """Worker card: reads its unit from the world, keeps memory in the store, acts through one guard."""

    def __init__(self, model: "ColonyModel", unit_id: str, strategy: RoleStrategy, home: str) -> None:
        super().__init__(model=model)
        # Unit handle: the world id this controller drives.
        self.name = unit_id
        self.strategy = strategy
        # Home zone: where the agent is counted and where it takes tasks.
        self.home = home
        self.guard = ActionGuard()
        self.actuator = Actuator(model.world, unit_id, self.guard)
        self.last_outcome: Optional[StepOutcome] = None
        # Route memo: ((goal, reach, zone), options, replan_at); only the tuning is reused, never the surface.
        self._route: Optional[Tuple[Tuple[Position, int, str], PathOptions, int]] = None

    # ---------------------------------------------------------------- views
    @property
    def unit(self) -> Optional[Unit]:
        return self.model.world.resolve(self.name)

    @property
    def alive(self) -> bool:
        return self.unit is not None

    @property
    def zone(self) -> str:
        return self.home

    @property
    def position(self) -> Position:
        """World position of my unit; mesa keeps its own `pos` slot, which I leave alone."""
        return self.unit.pos

    @property
    def role(self) -> str:
        return self.strategy.role.value

    @property
    def takes_tasks(self) -> bool:
        return self.strategy.takes_tasks

    @property
    def capabilities(self) -> FrozenSet[Capability]:
        unit = self.unit
        return unit.capabilities if unit is not None else frozenset()

    @property
    def energy(self) -> int:
        unit = self.unit
        return unit.energy if unit is not None else 0

    @property
    def capacity(self) -> int:
        unit = self.unit
        return unit.capacity if unit is not None else 0

    @property
    def free_capacity(self) -> int:
        unit = self.unit
        return unit.free_capacity if unit is not None else 0

    @property
    def memory(self) -> Dict[str, Any]:
        """Live memory dict; created from the role default the first time it is asked for."""
        store = self.model.store
        record = store.get(Scope.AGENT, self.name)
        if record is None:
            record = store.set(Scope.AGENT, self.name, self.strategy.default_memory(self))
        return record.data

    @property
    def state(self) -> Optional[AgentState]:
        return parse_state(self.memory.get("state"))

    # -------------------------------------------------------------- actions
    def move_to(self, goal: Position, reach: int = 1) -> ActionResult:
        """Move cue: keep the tuned options until a replan is due; the surface itself is rebuilt every call."""
        unit = self.unit
        if unit is None:
            return failed(INVALID_TARGET)
        tick = self.model.world.tick
        movement = self.model.movement
        key = (goal, reach, unit.pos.zone)
        route = self._route
        if route is not None and route[0] == key and tick < route[2]:
            options = route[1]
        else:
            options = movement.path_options(unit, goal, tick, role=self.role, reach=reach)
            self._route = (key, options, tick + options.replan_interval)
        surface = movement.surface_for(unit, options, tick)
        return self.actuator.move_to(goal, reach=reach, surface=surface)

    def step(self) -> None:
        """Tick cue: hand myself to the engine with this tick's context."""
        self.model.engine.dispatch(self, self.model.context)
