"""Quick card: the per-agent tick routine; memory check, task step, load flips, state handler."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

import config
from colony.agents.roles import (
    COLLECTING_STATES,
    SPENDING_STATES,
    AgentState,
    RoleRegistry,
    StepOutcome,
    parse_role,
    parse_state,
)
from colony.model.memory_store import Scope
from colony.model.tasks import TaskStatus

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.context import TickContext

log = logging.getLogger(__name__)


def load_transition(agent: "WorkerAgent") -> Optional[AgentState]:
    """Flip cue: full while collecting -> spend state; empty while spending -> collect state."""
    strategy = agent.strategy
    state = agent.state
    if state in COLLECTING_STATES and strategy.spend_state is not None:
        if agent.capacity > 0 and agent.free_capacity <= 0:
            return strategy.spend_state
    if state in SPENDING_STATES and strategy.collect_state is not None:
        if agent.capacity > 0 and agent.energy <= 0:
            return strategy.collect_state
    return None


class StateMachineEngine:
    """Engine card: one dispatch per agent per tick, each inside its own failure boundary."""

    def __init__(self, registry: RoleRegistry) -> None:
        self.registry = registry

    def validate_memory(self, agent: "WorkerAgent", ctx: "TickContext") -> bool:
        """Recovery cue: wrong version or unknown role means start over from the role default.

        Returns True when the memory had to be rebuilt.
        """
        record = ctx.store.get(Scope.AGENT, agent.name)
        if record is not None and record.version == config.PROTOCOL_VERSION:
            role = parse_role(record.data.get("role"))
            if role is not None and role in self.registry:
                if role is not agent.strategy.role:
                    agent.strategy = self.registry.lookup(role)
                return False
        ctx.store.set(Scope.AGENT, agent.name, agent.strategy.default_memory(agent))
        if record is not None:
            ctx.analytics.recoveries += 1
            log.debug("%s: memory reinitialised (version %s)", agent.name, record.version)
        return record is not None

    def set_state(self, agent: "WorkerAgent", state: AgentState) -> None:
        if agent.memory.get("state") != state.value:
            agent.memory["state"] = state.value
            agent.memory["target_id"] = None

    def run_task(self, agent: "WorkerAgent", ctx: "TickContext") -> Optional[TaskStatus]:
        task = ctx.allocator.task_for(agent.name)
        if task is None:
            return None
        status = ctx.allocator.execute_task(ctx, agent, task)
        if status is not TaskStatus.IN_PROGRESS:
            ctx.allocator.unassign(agent.name)
        return status

    def step(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        """One tick for one agent; may raise, the caller owns the boundary."""
        self.validate_memory(agent, ctx)
        status = self.run_task(agent, ctx)
        flip = load_transition(agent)
        if flip is not None:
            self.set_state(agent, flip)
        if status is TaskStatus.IN_PROGRESS:
            return StepOutcome(note="task")

        raw_state = agent.memory.get("state")
        outcome = agent.strategy.on_state(raw_state, agent, ctx)
        if outcome.transition is not None:
            if parse_state(raw_state) is None:
                ctx.analytics.state_resets += 1
            self.set_state(agent, outcome.transition)
        flip = load_transition(agent)
        if flip is not None:
            self.set_state(agent, flip)
        return outcome

    def dispatch(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        """Boundary card: one agent blowing up must not stop the rest of the tick."""
        try:
            outcome = self.step(agent, ctx)
        except Exception as exc:
            log.exception("tick %d: agent %s failed in state %s", ctx.tick, agent.name, agent.memory.get("state"))
            ctx.analytics.record_error(ctx.tick, agent.name, exc)
            agent.memory["state"] = agent.strategy.initial_state.value
            agent.memory["target_id"] = None
            outcome = StepOutcome(note=f"error:{type(exc).__name__}")
        agent.last_outcome = outcome
        return outcome
