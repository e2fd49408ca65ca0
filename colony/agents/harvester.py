"""Quick card: dedicated miners; sit on the least crowded source and feed the spawn."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from colony.agents.behaviours import act_on, deliver_energy, nearest, remember, remembered_target, upgrade_controller
from colony.agents.body import G, M, T, Capability, pick_tier, repeat_pattern
from colony.agents.roles import AgentState, Handler, Role, RoleStrategy, StepOutcome
from colony.model.actions import EXHAUSTED, ActionKind
from colony.model.world import NEIGHBOUR_OFFSETS, Category, Source, StructureKind

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.context import TickContext

EARLY_TIERS = ([G, G, T, M], [G, T, M])
MID_TIERS = ([G, G, G, G, T, M, M], [G, G, G, T, M], [G, G, T, M], [G, T, M])


def open_spots(ctx: "TickContext", source: Source) -> int:
    """Walkable tiles around a source; at least one so ratios stay finite."""
    spots = sum(1 for dx, dy in NEIGHBOUR_OFFSETS if ctx.world.is_walkable(source.pos.offset(dx, dy)))
    return max(1, spots)


def source_load(ctx: "TickContext", source: Source, exclude: Optional[str] = None) -> float:
    miners = sum(
        1
        for agent in ctx.agents.values()
        if agent.name != exclude and agent.role == Role.HARVESTER.value and agent.memory.get("source_id") == source.id
    )
    return miners / open_spots(ctx, source)


def choose_source(agent: "WorkerAgent", ctx: "TickContext") -> Optional[Source]:
    """Lowest harvester-to-open-spot ratio wins; distance breaks ties."""
    sources = ctx.world.entities(agent.position.zone, Category.SOURCE)
    if not sources:
        return None
    pos = agent.position
    return min(sources, key=lambda s: (source_load(ctx, s, exclude=agent.name), pos.range_to(s.pos), s.id))


class HarvesterStrategy(RoleStrategy):
    role = Role.HARVESTER
    initial_state = AgentState.HARVESTING
    collect_state = AgentState.HARVESTING
    spend_state = AgentState.DELIVERING

    def body(self, energy_budget: int, zone_level: int) -> List[Capability]:
        if zone_level <= 2:
            return pick_tier(EARLY_TIERS, energy_budget)
        if zone_level <= 4:
            return pick_tier(MID_TIERS, energy_budget)
        return repeat_pattern([G, G, T, M], energy_budget, max_parts=12)

    def default_memory(self, agent: "WorkerAgent") -> Dict[str, Any]:
        memory = super().default_memory(agent)
        memory["source_id"] = None
        return memory

    def handlers(self) -> Dict[AgentState, Handler]:
        return {
            AgentState.HARVESTING: self.harvest,
            AgentState.DELIVERING: self.deliver,
        }

    def harvest(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        source = remembered_target(agent, ctx, key="source_id")
        if source is None:
            source = remember(agent, choose_source(agent, ctx), key="source_id")
        if source is None:
            return StepOutcome(note="no_source")
        result = act_on(agent, ActionKind.GATHER, source)
        if result.failed and result.reason == EXHAUSTED and agent.energy > 0:
            return StepOutcome(result=result, transition=AgentState.DELIVERING)
        return StepOutcome(result=result)

    def deliver(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        """Spawn and extensions, towers, storage; then a container; then the controller."""
        outcome = deliver_energy(agent, ctx)
        if outcome.result is not None:
            return outcome
        containers = ctx.world.entities(
            agent.position.zone,
            Category.STRUCTURE,
            lambda s: s.kind is StructureKind.CONTAINER and s.free_capacity > 0 and s.owner in (ctx.world.owner, None),
        )
        target = nearest(agent, containers)
        if target is not None:
            return StepOutcome(result=act_on(agent, ActionKind.TRANSFER, target))
        return upgrade_controller(agent, ctx)
