"""Quick card: builders and repairers; same body, opposite order of build vs. repair."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, List, Optional

import config
from colony.agents.behaviours import (
    act_on,
    collect_energy,
    idle,
    nearest,
    remember,
    remembered_target,
    upgrade_controller,
)
from colony.agents.body import G, M, T, Capability, repeat_pattern
from colony.agents.roles import AgentState, Handler, Role, RoleStrategy, StepOutcome
from colony.model.actions import ActionKind
from colony.model.world import Category, ConstructionSite, Structure

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.context import TickContext


def worker_body(energy_budget: int, zone_level: int) -> List[Capability]:
    """Work/carry/move groups, up to five parts per zone level."""
    return repeat_pattern([G, T, M], energy_budget, max_parts=max(3, zone_level * 5))


def nearest_site(agent: "WorkerAgent", ctx: "TickContext") -> Optional[ConstructionSite]:
    owner = ctx.world.owner
    return nearest(agent, ctx.world.entities(agent.position.zone, Category.CONSTRUCTION_SITE, lambda s: s.owner == owner))


def light_repairs(ctx: "TickContext", zone: str) -> List[Structure]:
    """Non-fortifications under the repair fraction and the builder's hits cap."""
    owner = ctx.world.owner
    return ctx.world.entities(
        zone,
        Category.STRUCTURE,
        lambda s: not s.is_fortification
        and s.owner in (owner, None)
        and s.hits < s.hits_max * config.REPAIR_HEALTH_FRACTION
        and s.hits < config.BUILDER_REPAIR_HITS_CAP,
    )


def most_damaged(ctx: "TickContext", zone: str) -> Optional[Structure]:
    """Urgent fortifications first, then the lowest health fraction."""
    owner = ctx.world.owner

    def damaged(s: Structure) -> bool:
        if s.owner not in (owner, None) or s.hits >= s.hits_max * config.REPAIR_HEALTH_FRACTION:
            return False
        return not s.is_fortification or s.hits < config.FORTIFICATION_HITS_FLOOR

    candidates = ctx.world.entities(zone, Category.STRUCTURE, damaged)
    if not candidates:
        return None
    urgent = [s for s in candidates if s.is_fortification and s.hits < config.FORTIFICATION_URGENT_HITS]
    pool = urgent or candidates
    return min(pool, key=lambda s: (s.hits / s.hits_max, s.id))


class BuilderStrategy(RoleStrategy):
    role = Role.BUILDER
    initial_state = AgentState.HARVESTING
    collect_state = AgentState.HARVESTING
    spend_state = AgentState.BUILDING
    takes_tasks = True

    def body(self, energy_budget: int, zone_level: int) -> List[Capability]:
        return worker_body(energy_budget, zone_level)

    def handlers(self) -> Dict[AgentState, Handler]:
        return {
            AgentState.HARVESTING: self.collect,
            AgentState.BUILDING: self.build,
            AgentState.REPAIRING: self.repair,
            AgentState.UPGRADING: self.upgrade,
            AgentState.IDLE: self.rest,
        }

    def collect(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        return collect_energy(agent, ctx)

    def build(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        site = remembered_target(agent, ctx)
        if not isinstance(site, ConstructionSite):
            site = remember(agent, nearest_site(agent, ctx))
        if site is None:
            return StepOutcome(transition=AgentState.REPAIRING, note="no_sites")
        return StepOutcome(result=act_on(agent, ActionKind.BUILD, site))

    def repair(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        target = remembered_target(agent, ctx)
        if not isinstance(target, Structure) or target.hits >= target.hits_max:
            target = remember(agent, nearest(agent, light_repairs(ctx, agent.position.zone)))
        if target is None:
            return StepOutcome(transition=AgentState.UPGRADING, note="nothing_to_repair")
        return StepOutcome(result=act_on(agent, ActionKind.REPAIR, target))

    def upgrade(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        if nearest_site(agent, ctx) is not None:
            return StepOutcome(transition=AgentState.BUILDING)
        outcome = upgrade_controller(agent, ctx)
        if outcome.result is None:
            return StepOutcome(transition=AgentState.IDLE, note=outcome.note)
        return outcome

    def rest(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        resume = self.spend_state if agent.energy > 0 else self.collect_state
        return idle(agent, ctx, resume=resume)


class RepairerStrategy(BuilderStrategy):
    role = Role.REPAIRER
    spend_state = AgentState.REPAIRING

    def repair(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        target = remembered_target(agent, ctx)
        if not isinstance(target, Structure) or target.hits >= target.hits_max:
            target = remember(agent, most_damaged(ctx, agent.position.zone))
        if target is None:
            return StepOutcome(transition=AgentState.BUILDING, note="nothing_to_repair")
        return StepOutcome(result=act_on(agent, ActionKind.REPAIR, target))

    def build(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        site = remembered_target(agent, ctx)
        if not isinstance(site, ConstructionSite):
            site = remember(agent, nearest_site(agent, ctx))
        if site is None:
            return StepOutcome(transition=AgentState.UPGRADING, note="no_sites")
        return StepOutcome(result=act_on(agent, ActionKind.BUILD, site))

    def upgrade(self, agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
        if most_damaged(ctx, agent.position.zone) is not None:
            return StepOutcome(transition=AgentState.REPAIRING)
        outcome = upgrade_controller(agent, ctx)
        if outcome.result is None:
            return StepOutcome(transition=AgentState.IDLE, note=outcome.note)
        return outcome
