"""Quick card: carry-only movers; empty containers and drops into the spawn chain."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List

from colony.agents.behaviours import act_on, deliver_energy, idle, nearest, remember, remembered_target, stored_energy
from colony.agents.body import M, T, Capability, pick_tier, repeat_pattern
from colony.agents.roles import AgentState, Handler, Role, RoleStrategy, StepOutcome
from colony.model.actions import ActionKind
from colony.model.world import Category, StructureKind

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.context import TickContext


class HaulerStrategy(RoleStrategy):
    role = Role.HAULER
    initial_state = AgentState.HARVESTING
    collect_state = AgentState.HARVESTING
    spend_state = AgentState.DELIVERING
    takes_tasks = True

    def body(self, energy_budget: int, zone_level: int) -> List[Capability]:
        if zone_level <= 2:
            return pick_tier(([T, T, T, M, M, M], [T, T, M, M], [T, M]), energy_budget)
        return repeat_pattern([T, T, M], energy_budget, max_parts=min(30, zone_level * 6))

    def handlers(self) -> Dict[AgentState, Handler]:
        return {
            AgentState.HARVESTING: self.collect,
            AgentState.DELIVERING: self.deliver,
            AgentState.IDLE: self.rest,
        }

    def collect(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        """Fullest container, then dropped energy, then storage."""
        zone = agent.position.zone
        target = remembered_target(agent, ctx)
        if target is None:
            stores = stored_energy(ctx, zone)
            containers = [s for s in stores if s.kind is StructureKind.CONTAINER]
            if containers:
                target = max(containers, key=lambda s: (s.energy, s.id))
            if target is None:
                target = nearest(agent, ctx.world.entities(zone, Category.DROPPED_RESOURCE, lambda d: d.amount > 0))
            if target is None:
                target = nearest(agent, [s for s in stores if s.kind is StructureKind.STORAGE])
            remember(agent, target)
        if target is None:
            if agent.energy > 0:
                return StepOutcome(transition=AgentState.DELIVERING, note="nothing_to_collect")
            return StepOutcome(transition=AgentState.IDLE, note="nothing_to_collect")
        kind = ActionKind.PICKUP if target.category is Category.DROPPED_RESOURCE else ActionKind.WITHDRAW
        result = act_on(agent, kind, target)
        if result.ok or result.failed:
            remember(agent, None)
        return StepOutcome(result=result)

    def deliver(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        return deliver_energy(agent, ctx)

    def rest(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        if stored_energy(ctx, agent.position.zone) or ctx.world.entities(agent.position.zone, Category.DROPPED_RESOURCE):
            return StepOutcome(transition=AgentState.HARVESTING)
        return idle(agent, ctx, resume=AgentState.HARVESTING)
