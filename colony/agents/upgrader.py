"""Quick card: upgraders fill up and pour everything into the controller."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List

from colony.agents.behaviours import collect_energy, idle, upgrade_controller
from colony.agents.body import G, M, T, Capability, pick_tier, repeat_pattern
from colony.agents.roles import AgentState, Handler, Role, RoleStrategy, StepOutcome

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.context import TickContext


class UpgraderStrategy(RoleStrategy):
    role = Role.UPGRADER
    initial_state = AgentState.HARVESTING
    collect_state = AgentState.HARVESTING
    spend_state = AgentState.UPGRADING

    def body(self, energy_budget: int, zone_level: int) -> List[Capability]:
        if zone_level <= 2:
            return pick_tier(([G, G, T, M], [G, T, M]), energy_budget)
        return repeat_pattern([G, G, T, M], energy_budget, max_parts=min(32, zone_level * 6))

    def handlers(self) -> Dict[AgentState, Handler]:
        return {
            AgentState.HARVESTING: self.collect,
            AgentState.UPGRADING: self.upgrade,
            AgentState.IDLE: self.rest,
        }

    def collect(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        return collect_energy(agent, ctx)

    def upgrade(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        outcome = upgrade_controller(agent, ctx)
        if outcome.result is None:
            return StepOutcome(transition=AgentState.IDLE, note=outcome.note)
        return outcome

    def rest(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        return idle(agent, ctx, resume=AgentState.HARVESTING)
