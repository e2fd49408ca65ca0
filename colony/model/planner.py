"""Quick card: per-zone demand, population deficits, scouting registries, and spawn requests."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

import config
from colony.agents.body import Capability, body_cost
from colony.model.memory_store import EXPANSION_TARGETS, REMOTE_ZONES, SCOUTED_ZONES, Scope
from colony.model.world import Category, Structure, StructureKind

if TYPE_CHECKING:
    from colony.agents.roles import RoleRegistry
    from colony.model.context import TickContext

log = logging.getLogger(__name__)

REFILL_RANK: Dict[StructureKind, int] = {
    StructureKind.SPAWN: 0,
    StructureKind.EXTENSION: 1,
    StructureKind.TOWER: 2,
}
STORE_KINDS = frozenset({StructureKind.CONTAINER, StructureKind.STORAGE})
# Foreign structures worth taking down, most dangerous first; roads, containers and fortifications are left standing
TEARDOWN_RANK: Dict[StructureKind, int] = {
    StructureKind.SPAWN: 0,
    StructureKind.TOWER: 1,
    StructureKind.EXTENSION: 2,
    StructureKind.STORAGE: 3,
}


@dataclass
class ZoneDemand:
    """Demand card: what one owned zone needs this tick; recomputed every tick, never persisted."""

    zone: str
    level: int = 0
    counts: Dict[str, int] = field(default_factory=dict)
    desired: Dict[str, int] = field(default_factory=dict)
    deficits: Dict[str, int] = field(default_factory=dict)
    refill_ids: List[str] = field(default_factory=list)
    repair_ids: List[str] = field(default_factory=list)
    pickup_ids: List[str] = field(default_factory=list)
    build_ids: List[str] = field(default_factory=list)
    withdraw_ids: List[str] = field(default_factory=list)
    hostile_ids: List[str] = field(default_factory=list)
    foreign_structure_ids: List[str] = field(default_factory=list)
    wounded_ids: List[str] = field(default_factory=list)
    source_ids: List[str] = field(default_factory=list)
    controller_id: Optional[str] = None
    claim_ids: List[str] = field(default_factory=list)
    reserve_ids: List[str] = field(default_factory=list)
    remote_source_ids: List[str] = field(default_factory=list)
    remote_withdraw_ids: List[str] = field(default_factory=list)
    surplus_energy: int = 0
    energy_available: int = 0
    energy_capacity: int = 0

    @property
    def unmet(self) -> Dict[str, int]:
        return unmet_roles(self.deficits)


@dataclass(frozen=True)
class SpawnRequest:
    zone: str
    spawn_id: str
    role: str
    body: List[Capability]
    name: str

    @property
    def cost(self) -> int:
        return body_cost(self.body)


# ---------------------------------------------------------------- population
def desired_counts(level: int) -> Dict[str, int]:
    """Target headcount per role at a zone level; levels outside 1..8 are clamped."""
    level = max(1, min(8, int(level)))
    return {role: int(table.get(level, 0)) for role, table in config.DESIRED_COUNTS.items()}


def compute_deficits(desired: Dict[str, int], counts: Dict[str, int]) -> Dict[str, int]:
    """desired - current per role; negative means surplus."""
    roles = set(desired) | set(counts)
    return {role: desired.get(role, 0) - counts.get(role, 0) for role in sorted(roles)}


def unmet_roles(deficits: Dict[str, int]) -> Dict[str, int]:
    return {role: gap for role, gap in deficits.items() if gap > 0}


def owned_zones(ctx: "TickContext") -> List[str]:
    zones = []
    for zone in ctx.world.zones():
        controller = ctx.world.controller(zone)
        if controller is not None and controller.owner == ctx.world.owner:
            zones.append(zone)
    return zones


def zone_stage(level: int) -> str:
    if level <= 2:
        return "bootstrap"
    if level <= 4:
        return "developing"
    return "established"


# ---------------------------------------------------------------- zone scan
def _needs_refill(structure: Structure) -> bool:
    if structure.kind is StructureKind.TOWER:
        return structure.energy < (structure.energy_capacity or 0) * config.TOWER_REFILL_FRACTION
    return structure.kind in REFILL_RANK and structure.free_capacity > 0


def _needs_repair(structure: Structure) -> bool:
    if structure.hits >= structure.hits_max * config.REPAIR_HEALTH_FRACTION:
        return False
    if structure.is_fortification:
        return structure.hits < config.FORTIFICATION_HITS_FLOOR
    return True


def foreign_structures(ctx: "TickContext", zone: str) -> List[Structure]:
    """Structures someone else owns in the zone, ranked for teardown and then by id."""
    mine = ctx.world.owner
    found = ctx.world.entities(
        zone, Category.STRUCTURE, lambda s: s.owner not in (mine, None) and s.kind in TEARDOWN_RANK
    )
    return sorted(found, key=lambda s: (TEARDOWN_RANK[s.kind], s.id))


def scan_zone(ctx: "TickContext", zone: str) -> ZoneDemand:
    """Scan card: look the zone over from scratch and write down every open need."""
    world = ctx.world
    mine = world.owner
    controller = world.controller(zone)
    level = controller.level if controller is not None and controller.owner == mine else 0

    counts: Dict[str, int] = {}
    for agent in ctx.agents_in(zone):
        counts[agent.role] = counts.get(agent.role, 0) + 1
    desired = desired_counts(level)
    demand = ZoneDemand(
        zone=zone,
        level=level,
        counts=counts,
        desired=desired,
        deficits=compute_deficits(desired, counts),
        controller_id=controller.id if controller is not None and controller.owner == mine else None,
        energy_available=world.energy_available(zone),
        energy_capacity=world.energy_capacity(zone),
    )

    structures = world.entities(zone, Category.STRUCTURE)
    own = [s for s in structures if s.owner in (mine, None)]
    refill = [s for s in own if s.owner == mine and _needs_refill(s)]
    refill.sort(key=lambda s: (REFILL_RANK[s.kind], s.id))
    demand.refill_ids = [s.id for s in refill]
    damaged = [s for s in own if _needs_repair(s)]
    damaged.sort(key=lambda s: (s.hits / s.hits_max, s.id))
    demand.repair_ids = [s.id for s in damaged]
    stores = [s for s in own if s.kind in STORE_KINDS]
    demand.withdraw_ids = [s.id for s in stores if s.energy > 0]
    demand.surplus_energy = sum(s.energy for s in stores)

    demand.build_ids = [
        site.id for site in world.entities(zone, Category.CONSTRUCTION_SITE, lambda site: site.owner == mine)
    ]
    demand.pickup_ids = [
        drop.id
        for drop in world.entities(zone, Category.DROPPED_RESOURCE, lambda d: d.amount > config.PICKUP_MIN_AMOUNT)
    ]
    demand.source_ids = [source.id for source in world.entities(zone, Category.SOURCE)]
    units = world.entities(zone, Category.UNIT)
    demand.hostile_ids = [u.id for u in units if u.owner != mine]
    demand.wounded_ids = [u.id for u in units if u.owner == mine and u.hits < u.hits_max]
    demand.foreign_structure_ids = [s.id for s in foreign_structures(ctx, zone)]

    _add_remote_demand(ctx, demand)
    if not demand.foreign_structure_ids:
        # destroyers only while something foreign stands
        demand.desired["destroyer"] = 0
        demand.deficits = compute_deficits(demand.desired, counts)
    return demand


def _add_remote_demand(ctx: "TickContext", demand: ZoneDemand) -> None:
    world = ctx.world
    targets = expansion_targets(ctx)
    if targets and demand.level >= 3:
        controller = world.controller(targets[0])
        if controller is not None and controller.owner is None:
            demand.claim_ids.append(controller.id)
    for remote in remote_zones(ctx, demand.zone):
        if not world.has_zone(remote):
            continue
        controller = world.controller(remote)
        if controller is not None and controller.owner is None and controller.id not in demand.claim_ids:
            demand.reserve_ids.append(controller.id)
        demand.remote_source_ids.extend(source.id for source in world.entities(remote, Category.SOURCE))
        demand.remote_withdraw_ids.extend(
            s.id
            for s in world.entities(remote, Category.STRUCTURE)
            if s.kind is StructureKind.CONTAINER and s.energy > 0 and s.owner in (world.owner, None)
        )
        demand.foreign_structure_ids.extend(s.id for s in foreign_structures(ctx, remote))


# ---------------------------------------------------------------- registries
def record_sightings(ctx: "TickContext") -> List[str]:
    """Sighting cue: every zone one of our units stands in gets a fresh scouted entry."""
    world = ctx.world
    seen = sorted({unit.pos.zone for unit in world.units(world.owner)})
    scouted = ctx.store.setdefault(Scope.GLOBAL, SCOUTED_ZONES, dict)
    for zone in seen:
        controller = world.controller(zone)
        scouted[zone] = {
            "seen_at": ctx.tick,
            "sources": len(world.entities(zone, Category.SOURCE)),
            "controller_id": controller.id if controller is not None else None,
            "owner": controller.owner if controller is not None else None,
            "reserved_by": controller.reserved_by if controller is not None else None,
            "reservation": controller.reservation if controller is not None else 0,
            "hostiles": len(world.entities(zone, Category.UNIT, lambda u: u.owner != world.owner)),
        }
    return seen


def prune_scouted(ctx: "TickContext", max_age: int = config.SCOUTED_ZONE_MAX_AGE) -> List[str]:
    scouted = ctx.store.get_data(Scope.GLOBAL, SCOUTED_ZONES, {})
    gone = [zone for zone, entry in scouted.items() if ctx.tick - int(entry.get("seen_at", 0)) > max_age]
    for zone in gone:
        del scouted[zone]
    return gone


def refresh_expansion_targets(ctx: "TickContext", limit: int = config.MAX_EXPANSION_TARGETS) -> List[str]:
    """Expansion card: unowned, hostile-free zones with sources; most sources first, then by name."""
    scouted = ctx.store.get_data(Scope.GLOBAL, SCOUTED_ZONES, {})
    candidates = [
        (zone, entry)
        for zone, entry in scouted.items()
        if entry.get("controller_id")
        and entry.get("owner") is None
        and entry.get("reserved_by") in (None, ctx.world.owner)
        and not entry.get("hostiles")
        and entry.get("sources", 0) > 0
    ]
    candidates.sort(key=lambda item: (-int(item[1].get("sources", 0)), item[0]))
    zones = [zone for zone, _ in candidates[:limit]]
    ctx.store.set(Scope.GLOBAL, EXPANSION_TARGETS, {"zones": zones, "updated_at": ctx.tick})
    return zones


def expansion_targets(ctx: "TickContext") -> List[str]:
    return list(ctx.store.get_data(Scope.GLOBAL, EXPANSION_TARGETS, {}).get("zones", []))


def drop_expansion_target(ctx: "TickContext", zone: str) -> bool:
    """Forget one target until the next refresh, e.g. when a claimer finds it reserved by someone else."""
    data = ctx.store.get_data(Scope.GLOBAL, EXPANSION_TARGETS)
    if not data or zone not in data.get("zones", []):
        return False
    data["zones"] = [z for z in data["zones"] if z != zone]
    return True


def refresh_remote_zones(ctx: "TickContext", home: str) -> List[str]:
    """Remote cue: neighbours of home that are expansion candidates but not the next claim."""
    targets = expansion_targets(ctx)
    claim = targets[0] if targets else None
    remotes = [zone for zone in ctx.world.neighbours(home) if zone in targets and zone != claim]
    registry = ctx.store.setdefault(Scope.GLOBAL, REMOTE_ZONES, dict)
    registry[home] = {"zones": remotes, "updated_at": ctx.tick}
    return remotes


def remote_zones(ctx: "TickContext", home: str) -> List[str]:
    entry = ctx.store.get_data(Scope.GLOBAL, REMOTE_ZONES, {}).get(home) or {}
    return list(entry.get("zones", []))


def scouting_stale(ctx: "TickContext", home: str, max_age: int = config.SCOUT_REFRESH_AGE) -> bool:
    """True when a neighbouring zone was never seen or was last seen too long ago."""
    scouted = ctx.store.get_data(Scope.GLOBAL, SCOUTED_ZONES, {})
    for zone in ctx.world.neighbours(home):
        entry = scouted.get(zone)
        if entry is None or ctx.tick - int(entry.get("seen_at", 0)) >= max_age:
            return True
    return False


def update_zone_record(ctx: "TickContext", demand: ZoneDemand) -> Dict[str, object]:
    record = ctx.store.get_data(Scope.ZONE, demand.zone) or {}
    record.update(
        {
            "level": demand.level,
            "stage": zone_stage(demand.level),
            "counts": dict(demand.counts),
            "last_seen": ctx.tick,
            "upgrade_focus": demand.controller_id,
        }
    )
    ctx.store.set(Scope.ZONE, demand.zone, record)
    return record


# ---------------------------------------------------------------- spawning
def _role_allowed(ctx: "TickContext", role: str, home: str) -> bool:
    if role == "claimer":
        return bool(expansion_targets(ctx))
    if role == "scout":
        return scouting_stale(ctx, home)
    return True


def plan_spawn(ctx: "TickContext", demand: ZoneDemand, registry: "RoleRegistry") -> Optional[SpawnRequest]:
    """Spawn card: the first short role in spawn order decides; wait for energy rather than skip past it.

    Roles whose best body cannot fit the zone's full capacity are skipped. Without any harvesters the
    budget drops to what is available right now so the colony can restart itself.
    """
    spawns = ctx.world.entities(
        demand.zone,
        Category.STRUCTURE,
        lambda s: s.kind is StructureKind.SPAWN and s.owner == ctx.world.owner,
    )
    if not spawns:
        return None
    spawn = min(spawns, key=lambda s: s.id)
    unmet = demand.unmet
    starving = demand.counts.get("harvester", 0) == 0
    budget = demand.energy_available if starving else demand.energy_capacity
    for role in config.SPAWN_ORDER:
        if unmet.get(role, 0) <= 0 or role not in registry or not _role_allowed(ctx, role, demand.zone):
            continue
        body = registry.lookup(role).body(budget, demand.level)
        if not body:
            continue
        if body_cost(body) > demand.energy_available:
            return None
        name = f"{role}-{demand.zone}-{ctx.tick}"
        return SpawnRequest(zone=demand.zone, spawn_id=spawn.id, role=role, body=body, name=name)
    return None


def plan(ctx: "TickContext", remote_due: bool = False) -> Dict[str, ZoneDemand]:
    """Planner pass: sightings, registries, then one fresh demand per owned zone."""
    record_sightings(ctx)
    if remote_due:
        prune_scouted(ctx)
        refresh_expansion_targets(ctx)
    demands: Dict[str, ZoneDemand] = {}
    for zone in owned_zones(ctx):
        if remote_due:
            refresh_remote_zones(ctx, zone)
        demand = scan_zone(ctx, zone)
        update_zone_record(ctx, demand)
        demands[zone] = demand
    ctx.demands = demands
    return demands
