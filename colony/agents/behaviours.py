"""Quick card: shared building blocks the role strategies compose their handlers from."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, List, Optional

import config
from colony.agents.body import Capability
from colony.agents.roles import AgentState, StepOutcome
from colony.model.actions import ActionKind, ActionResult, action_range
from colony.model.world import Category, Position, Structure, StructureKind

if TYPE_CHECKING:
    from colony.agents.worker import WorkerAgent
    from colony.model.context import TickContext

REFILL_ORDER = {StructureKind.SPAWN: 0, StructureKind.EXTENSION: 1, StructureKind.TOWER: 2}
PARK_RANGE = 3


def act_on(agent: "WorkerAgent", kind: ActionKind, target: Any, **kwargs: Any) -> ActionResult:
    """Act cue: try the primitive, walk toward the target when it is out of reach."""
    result = agent.actuator.perform(kind, target, **kwargs)
    if result.not_in_range:
        agent.move_to(target.pos, reach=action_range(kind))
    return result


def remembered_target(agent: "WorkerAgent", ctx: "TickContext", key: str = "target_id") -> Any:
    """Memory cue: resolve a remembered id; a dead id is cleared so the handler re-polls next time."""
    target_id = agent.memory.get(key)
    if target_id is None:
        return None
    target = ctx.world.resolve(target_id)
    if target is None:
        agent.memory[key] = None
        ctx.analytics.stale_targets += 1
    return target


def remember(agent: "WorkerAgent", target: Any, key: str = "target_id") -> Any:
    agent.memory[key] = target.id if target is not None else None
    return target


def nearest(agent: "WorkerAgent", candidates: Iterable[Any]) -> Any:
    pos = agent.position
    ranked = sorted(candidates, key=lambda entity: (pos.range_to(entity.pos), entity.id))
    return ranked[0] if ranked else None


def stored_energy(ctx: "TickContext", zone: str) -> List[Structure]:
    """Containers and storage in the zone that still hold energy we may take."""
    owner = ctx.world.owner
    return ctx.world.entities(
        zone,
        Category.STRUCTURE,
        lambda s: s.kind in (StructureKind.CONTAINER, StructureKind.STORAGE) and s.energy > 0 and s.owner in (owner, None),
    )


def refill_targets(ctx: "TickContext", zone: str, tower_fraction: float = config.TOWER_REFILL_FRACTION) -> List[Structure]:
    """Spawns, then extensions, then towers under the refill fraction; each group nearest-first is up to the caller."""
    owner = ctx.world.owner

    def wants(s: Structure) -> bool:
        if s.owner != owner or s.kind not in REFILL_ORDER:
            return False
        if s.kind is StructureKind.TOWER:
            return s.energy < (s.energy_capacity or 0) * tower_fraction
        return s.free_capacity > 0

    found = ctx.world.entities(zone, Category.STRUCTURE, wants)
    found.sort(key=lambda s: (REFILL_ORDER[s.kind], s.id))
    return found


def _pick_refill(agent: "WorkerAgent", ctx: "TickContext") -> Optional[Structure]:
    targets = refill_targets(ctx, agent.position.zone)
    if not targets:
        return None
    best_rank = REFILL_ORDER[targets[0].kind]
    return nearest(agent, [t for t in targets if REFILL_ORDER[t.kind] == best_rank])


def collect_energy(agent: "WorkerAgent", ctx: "TickContext", allow_gather: bool = True) -> StepOutcome:
    """Collect card: remembered source, then stored energy, dropped energy, and finally a source."""
    target = remembered_target(agent, ctx)
    if target is not None and not _still_has_energy(target):
        target = remember(agent, None)
    if target is None:
        zone = agent.position.zone
        target = nearest(agent, stored_energy(ctx, zone))
        if target is None:
            target = nearest(agent, ctx.world.entities(zone, Category.DROPPED_RESOURCE, lambda d: d.amount > 0))
        if target is None and allow_gather and Capability.GATHER in agent.capabilities:
            target = nearest(agent, ctx.world.entities(zone, Category.SOURCE, lambda s: s.energy > 0))
        remember(agent, target)
    if target is None:
        return StepOutcome(note="nothing_to_collect")
    if target.category is Category.SOURCE:
        kind = ActionKind.GATHER
    elif target.category is Category.DROPPED_RESOURCE:
        kind = ActionKind.PICKUP
    else:
        kind = ActionKind.WITHDRAW
    result = act_on(agent, kind, target)
    if result.failed:
        remember(agent, None)
    return StepOutcome(result=result)


def _still_has_energy(target: Any) -> bool:
    if target.category is Category.DROPPED_RESOURCE:
        return target.amount > 0
    return getattr(target, "energy", 0) > 0


def deliver_energy(agent: "WorkerAgent", ctx: "TickContext", include_storage: bool = True) -> StepOutcome:
    """Deliver card: refill spawns/extensions/towers first, then top up storage."""
    target = _pick_refill(agent, ctx)
    if target is None and include_storage:
        storage = ctx.world.entities(
            agent.position.zone,
            Category.STRUCTURE,
            lambda s: s.kind is StructureKind.STORAGE and s.owner == ctx.world.owner and s.free_capacity > 0,
        )
        target = nearest(agent, storage)
    if target is None:
        return StepOutcome(note="nowhere_to_deliver")
    return StepOutcome(result=act_on(agent, ActionKind.TRANSFER, target))


def upgrade_controller(agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
    controller = ctx.world.controller(agent.zone)
    if controller is None or controller.owner != ctx.world.owner:
        return StepOutcome(note="no_controller")
    return StepOutcome(result=act_on(agent, ActionKind.UPGRADE, controller))


def park_idle(agent: "WorkerAgent", ctx: "TickContext") -> StepOutcome:
    """Park near storage when there is one, otherwise near the zone centre."""
    storage = ctx.world.entities(agent.zone, Category.STRUCTURE, lambda s: s.kind is StructureKind.STORAGE)
    if storage:
        spot = storage[0].pos
    else:
        centre = ctx.world.size // 2
        spot = Position(centre, centre, agent.zone)
    if not agent.position.in_range(spot, PARK_RANGE):
        agent.move_to(spot, reach=PARK_RANGE)
    return StepOutcome(note="parked")


def work_available(ctx: "TickContext", zone: str) -> bool:
    """Work exists when there are sites, sagging non-fortifications, or a controller to push."""
    world = ctx.world
    if world.entities(zone, Category.CONSTRUCTION_SITE, lambda site: site.owner == world.owner):
        return True
    if world.entities(
        zone,
        Category.STRUCTURE,
        lambda s: not s.is_fortification and s.owner in (world.owner, None) and s.hits < s.hits_max * config.IDLE_WORK_HEALTH_FRACTION,
    ):
        return True
    controller = world.controller(zone)
    return controller is not None and controller.owner == world.owner and controller.level < 8


def idle(agent: "WorkerAgent", ctx: "TickContext", resume: AgentState) -> StepOutcome:
    """Shared idle: park, and every recheck interval look for work to resume with."""
    since = agent.memory.get("idle_since")
    if since is None:
        agent.memory["idle_since"] = ctx.tick
        since = ctx.tick
    if ctx.tick - since >= config.IDLE_RECHECK_INTERVAL:
        agent.memory["idle_since"] = ctx.tick
        if work_available(ctx, agent.zone):
            agent.memory["idle_since"] = None
            return StepOutcome(transition=resume, note="work_found")
    return park_idle(agent, ctx)


def travel_to_zone(agent: "WorkerAgent", zone: str) -> bool:
    """Travel cue: True once the agent stands inside ``zone``, otherwise a move toward its centre."""
    if agent.position.zone == zone:
        return True
    centre = agent.model.world.size // 2
    agent.move_to(Position(centre, centre, zone), reach=PARK_RANGE)
    return False
