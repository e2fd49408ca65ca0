"""Quick card: defenders fight, heal, and otherwise walk a slow patrol."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

import config
from colony.agents.behaviours import act_on, nearest
from colony.agents.body import A, H, M, R, X, Capability, pick_tier, repeat_pattern
from colony.agents.roles import AgentState, Handler, Role, RoleStrategy, StepOutcome
from colony.model.actions import ActionKind
from colony.model.world import Category, Position, Unit

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.context import TickContext

PATROL_SCHEDULER = "defender"
# Patrol corners on a 50-cell reference grid.
PATROL_POINTS = ((10, 10), (40, 10), (40, 40), (10, 40))

EARLY_TIERS = ([X, A, A, M, M], [A, A, M, M], [A, M])
MID_TIERS = (
    [X, X, A, A, A, A, M, M, M, M],
    [X, A, A, A, M, M, M],
    [X, A, A, M, M],
    [A, A, M, M],
)


def hostiles_near(agent: "WorkerAgent", ctx: "TickContext") -> List[Unit]:
    owner = ctx.world.owner
    return ctx.world.entities(agent.position.zone, Category.UNIT, lambda u: u.owner != owner)


def most_wounded_ally(agent: "WorkerAgent", ctx: "TickContext") -> Optional[Unit]:
    owner = ctx.world.owner
    wounded = ctx.world.entities(
        agent.position.zone,
        Category.UNIT,
        lambda u: u.owner == owner and u.id != agent.name and u.hits < u.hits_max,
    )
    if not wounded:
        return None
    return min(wounded, key=lambda u: (u.hits / u.hits_max, u.id))


class DefenderStrategy(RoleStrategy):
    role = Role.DEFENDER
    initial_state = AgentState.PATROLLING
    collect_state = None
    spend_state = None
    takes_tasks = True

    def body(self, energy_budget: int, zone_level: int) -> List[Capability]:
        if zone_level <= 2:
            return pick_tier(EARLY_TIERS, energy_budget)
        if zone_level <= 5:
            return pick_tier(MID_TIERS, energy_budget)
        return repeat_pattern([A, R, H, M, M, M], energy_budget, max_parts=30, prefix=[X, X])

    def default_memory(self, agent: "WorkerAgent") -> Dict[str, Any]:
        memory = super().default_memory(agent)
        memory["patrol_index"] = 0
        return memory

    def handlers(self) -> Dict[AgentState, Handler]:
        return {AgentState.PATROLLING: self.patrol}

    def patrol(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        """Fight first, then heal others, then heal myself, then walk the beat on my duty slot."""
        capabilities = agent.capabilities
        target = nearest(agent, hostiles_near(agent, ctx))
        if target is not None and capabilities & {Capability.MELEE, Capability.RANGED}:
            distance = agent.position.range_to(target.pos)
            if Capability.RANGED in capabilities and (distance > 1 or Capability.MELEE not in capabilities):
                return StepOutcome(result=act_on(agent, ActionKind.RANGED_ATTACK, target))
            return StepOutcome(result=act_on(agent, ActionKind.MELEE_ATTACK, target))

        if Capability.HEAL in capabilities:
            patient = most_wounded_ally(agent, ctx)
            if patient is not None:
                return StepOutcome(result=act_on(agent, ActionKind.HEAL, patient))
            unit = agent.unit
            if unit.hits < unit.hits_max:
                return StepOutcome(result=agent.actuator.perform(ActionKind.HEAL, unit))

        scheduler = ctx.scheduler(PATROL_SCHEDULER)
        if scheduler is not None and not scheduler.is_due(agent.name, ctx.tick):
            return StepOutcome(note="holding")
        index = int(agent.memory.get("patrol_index", 0)) % len(PATROL_POINTS)
        ref_x, ref_y = PATROL_POINTS[index]
        size = ctx.world.size
        spot = Position(ref_x * size // config.ZONE_SIZE, ref_y * size // config.ZONE_SIZE, agent.zone)
        if agent.position.in_range(spot, 2):
            agent.memory["patrol_index"] = index + 1
        else:
            agent.move_to(spot, reach=2)
        return StepOutcome(note="patrolling")
