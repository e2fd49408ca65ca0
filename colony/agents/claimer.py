"""Quick card: claimers take new controllers; scouts keep the neighbour registry fresh."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from colony.agents.behaviours import act_on, park_idle, travel_to_zone
from colony.agents.body import C, M, Capability, pick_tier
from colony.agents.roles import AgentState, Handler, Role, RoleStrategy, StepOutcome
from colony.model.actions import ActionKind
from colony.model.memory_store import SCOUTED_ZONES, Scope
from colony.model.planner import drop_expansion_target, expansion_targets

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.context import TickContext


class ClaimerStrategy(RoleStrategy):
    role = Role.CLAIMER
    initial_state = AgentState.CLAIMING
    collect_state = None
    spend_state = None
    takes_tasks = True

    def body(self, energy_budget: int, zone_level: int) -> List[Capability]:
        return pick_tier(([C, C, M, M], [C, M, M], [C, M]), energy_budget)

    def default_memory(self, agent: "WorkerAgent") -> Dict[str, Any]:
        memory = super().default_memory(agent)
        memory["target_zone"] = None
        return memory

    def handlers(self) -> Dict[AgentState, Handler]:
        return {AgentState.CLAIMING: self.claim, AgentState.IDLE: self.rest}

    def claim(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        """Head for the first expansion target and claim its controller.

        A controller reserved by someone else can be neither claimed nor reserved, so I give the
        zone up without acting; reservations of our own come through ReserveController tasks.
        """
        targets = expansion_targets(ctx)
        zone = agent.memory.get("target_zone")
        if zone not in targets:
            zone = targets[0] if targets else None
            agent.memory["target_zone"] = zone
        if zone is None:
            return StepOutcome(transition=AgentState.IDLE, note="no_targets")
        if not travel_to_zone(agent, zone):
            return StepOutcome(note="travelling")
        controller = ctx.world.controller(zone)
        if controller is None or controller.owner is not None:
            agent.memory["target_zone"] = None
            return StepOutcome(note="taken")
        if controller.reserved_by not in (None, ctx.world.owner):
            agent.memory["target_zone"] = None
            drop_expansion_target(ctx, zone)
            return StepOutcome(note=f"reserved:{controller.reserved_by}")
        return StepOutcome(result=act_on(agent, ActionKind.CLAIM, controller))

    def rest(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        if expansion_targets(ctx):
            return StepOutcome(transition=AgentState.CLAIMING)
        return park_idle(agent, ctx)


def least_recently_seen(ctx: "TickContext", home: str) -> Optional[str]:
    """Neighbour of home that was never seen, or seen longest ago; name breaks ties."""
    scouted = ctx.store.get_data(Scope.GLOBAL, SCOUTED_ZONES, {})
    neighbours = ctx.world.neighbours(home)
    if not neighbours:
        return None
    return min(neighbours, key=lambda zone: (int((scouted.get(zone) or {}).get("seen_at", -1)), zone))


class ScoutStrategy(RoleStrategy):
    role = Role.SCOUT
    initial_state = AgentState.SCOUTING
    collect_state = None
    spend_state = None

    def body(self, energy_budget: int, zone_level: int) -> List[Capability]:
        return pick_tier(([M],), energy_budget)

    def default_memory(self, agent: "WorkerAgent") -> Dict[str, Any]:
        memory = super().default_memory(agent)
        memory["target_zone"] = None
        return memory

    def handlers(self) -> Dict[AgentState, Handler]:
        return {AgentState.SCOUTING: self.scout}

    def scout(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        zone = agent.memory.get("target_zone")
        if zone is None or not ctx.world.has_zone(zone):
            zone = least_recently_seen(ctx, agent.zone)
            agent.memory["target_zone"] = zone
        if zone is None:
            return park_idle(agent, ctx)
        if travel_to_zone(agent, zone):
            agent.memory["target_zone"] = None
            return StepOutcome(note=f"scouted:{zone}")
        return StepOutcome(note="travelling")
