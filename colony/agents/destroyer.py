"""Quick card: destroyers tear down structures other owners left in our zones and remotes."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from colony.agents.behaviours import act_on, nearest, park_idle, travel_to_zone
from colony.agents.body import A, M, X, Capability, pick_tier
from colony.agents.roles import AgentState, Handler, Role, RoleStrategy, StepOutcome
from colony.model.actions import ActionKind
from colony.model.planner import TEARDOWN_RANK, foreign_structures, remote_zones
from colony.model.world import Structure

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.context import TickContext

EARLY_TIERS = ([A, A, M, M, X, X], [A, M, X])
MID_TIERS = ([A, A, A, A, M, M, M, M, X, X], [A, A, M, M, X, X], [A, M, X])
LATE_TIERS = (
    [A] * 6 + [M] * 6 + [X] * 4,
    [A, A, A, A, M, M, M, M, X, X],
    [A, A, A, M, M, M, X],
    [A, M, X],
)


def teardown_target(agent: "WorkerAgent", ctx: "TickContext") -> Optional[Structure]:
    """Nearest structure of the most dangerous kind standing in my current zone."""
    found = foreign_structures(ctx, agent.position.zone)
    if not found:
        return None
    top = TEARDOWN_RANK[found[0].kind]
    return nearest(agent, [s for s in found if TEARDOWN_RANK[s.kind] == top])


def zone_to_clear(agent: "WorkerAgent", ctx: "TickContext") -> Optional[str]:
    for zone in [agent.zone] + remote_zones(ctx, agent.zone):
        if ctx.world.has_zone(zone) and foreign_structures(ctx, zone):
            return zone
    return None


class DestroyerStrategy(RoleStrategy):
    role = Role.DESTROYER
    initial_state = AgentState.DESTROYING
    collect_state = None
    spend_state = None
    takes_tasks = True

    def body(self, energy_budget: int, zone_level: int) -> List[Capability]:
        if zone_level <= 3:
            return pick_tier(EARLY_TIERS, energy_budget)
        if zone_level <= 5:
            return pick_tier(MID_TIERS, energy_budget)
        return pick_tier(LATE_TIERS, energy_budget)

    def default_memory(self, agent: "WorkerAgent") -> Dict[str, Any]:
        memory = super().default_memory(agent)
        memory["target_zone"] = None
        return memory

    def handlers(self) -> Dict[AgentState, Handler]:
        return {AgentState.DESTROYING: self.destroy}

    def destroy(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        """Strike what stands here; otherwise walk to the first of home and its remotes that still has something."""
        if Capability.MELEE not in agent.capabilities:
            return park_idle(agent, ctx)
        target = teardown_target(agent, ctx)
        if target is not None:
            agent.memory["target_zone"] = None
            return StepOutcome(result=act_on(agent, ActionKind.MELEE_ATTACK, target))
        zone = zone_to_clear(agent, ctx)
        agent.memory["target_zone"] = zone
        if zone is None:
            return park_idle(agent, ctx)
        travel_to_zone(agent, zone)
        return StepOutcome(note=f"heading:{zone}")
