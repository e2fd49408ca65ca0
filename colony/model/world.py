"""Quick card: in-process world snapshot with entities, terrain grids, primitive effects, and movement."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Tuple

import numpy as np

import config
from colony.agents.body import Capability, body_cost, capabilities_of, carry_capacity, count_parts
from colony.model.actions import (
    ACTION_CAPABILITY,
    EXHAUSTED,
    FULL,
    INVALID_TARGET,
    NO_CAPABILITY,
    NOT_ENOUGH_RESOURCES,
    NOT_IN_RANGE,
    NOT_OWNER,
    OK,
    ActionKind,
    ActionResult,
    action_range,
    failed,
)

# Range reported between positions in different zones.
FAR: int = 10_000


class Category(str, Enum):
    SOURCE = "source"
    MINERAL = "mineral"
    STRUCTURE = "structure"
    CONSTRUCTION_SITE = "construction_site"
    DROPPED_RESOURCE = "dropped_resource"
    CONTROLLER = "controller"
    UNIT = "unit"


class StructureKind(str, Enum):
    SPAWN = "spawn"
    EXTENSION = "extension"
    TOWER = "tower"
    STORAGE = "storage"
    CONTAINER = "container"
    ROAD = "road"
    WALL = "wall"
    RAMPART = "rampart"


# kind -> (hits_max, energy capacity or None, construction cost)
STRUCTURE_SPECS: Dict[StructureKind, Tuple[int, Optional[int], int]] = {
    StructureKind.SPAWN: (5000, config.SPAWN_ENERGY_CAPACITY, 15000),
    StructureKind.EXTENSION: (1000, config.EXTENSION_ENERGY_CAPACITY, 3000),
    StructureKind.TOWER: (3000, config.TOWER_ENERGY_CAPACITY, 5000),
    StructureKind.STORAGE: (10000, config.STORAGE_CAPACITY, 30000),
    StructureKind.CONTAINER: (250000, config.CONTAINER_CAPACITY, 5000),
    StructureKind.ROAD: (5000, None, 300),
    StructureKind.WALL: (300_000_000, None, 1),
    StructureKind.RAMPART: (3_000_000, None, 1),
}
FORTIFICATIONS = frozenset({StructureKind.WALL, StructureKind.RAMPART})
# Structures a unit can stand on.
WALKABLE_STRUCTURES = frozenset({StructureKind.ROAD, StructureKind.CONTAINER, StructureKind.RAMPART})

NEIGHBOUR_OFFSETS: Tuple[Tuple[int, int], ...] = (
    (-1, -1), (0, -1), (1, -1),
    (-1, 0), (1, 0),
    (-1, 1), (0, 1), (1, 1),
)


def chebyshev(ax: int, ay: int, bx: int, by: int) -> int:
    return max(abs(ax - bx), abs(ay - by))


@dataclass(frozen=True)
class Position:
    x: int
    y: int
    zone: str

    def range_to(self, other: "Position") -> int:
        if other.zone != self.zone:
            return FAR
        return chebyshev(self.x, self.y, other.x, other.y)

    def in_range(self, other: "Position", reach: int) -> bool:
        return self.range_to(other) <= reach

    def offset(self, dx: int, dy: int) -> "Position":
        return Position(self.x + dx, self.y + dy, self.zone)


@dataclass
class Source:
    id: str
    pos: Position
    energy: int = config.SOURCE_CAPACITY
    capacity: int = config.SOURCE_CAPACITY
    regen_in: int = 0
    category: ClassVar[Category] = Category.SOURCE


@dataclass
class Mineral:
    id: str
    pos: Position
    mineral_type: str = "H"
    amount: int = 35000
    category: ClassVar[Category] = Category.MINERAL


@dataclass
class Structure:
    id: str
    pos: Position
    kind: StructureKind
    hits: int
    hits_max: int
    owner: Optional[str] = config.MY_OWNER
    energy: int = 0
    energy_capacity: Optional[int] = None
    public: bool = False
    category: ClassVar[Category] = Category.STRUCTURE

    @property
    def has_store(self) -> bool:
        return self.energy_capacity is not None

    @property
    def free_capacity(self) -> int:
        if self.energy_capacity is None:
            return 0
        return max(0, self.energy_capacity - self.energy)

    @property
    def is_fortification(self) -> bool:
        return self.kind in FORTIFICATIONS


@dataclass
class ConstructionSite:
    id: str
    pos: Position
    kind: StructureKind
    progress: int = 0
    progress_total: int = 1
    owner: Optional[str] = config.MY_OWNER
    category: ClassVar[Category] = Category.CONSTRUCTION_SITE

    @property
    def complete(self) -> bool:
        return self.progress >= self.progress_total


@dataclass
class DroppedResource:
    id: str
    pos: Position
    amount: int
    resource: str = "energy"
    category: ClassVar[Category] = Category.DROPPED_RESOURCE


@dataclass
class Controller:
    id: str
    pos: Position
    level: int = 0
    progress: int = 0
    owner: Optional[str] = None
    reserved_by: Optional[str] = None
    reservation: int = 0
    category: ClassVar[Category] = Category.CONTROLLER

    @property
    def progress_total(self) -> int:
        return int(config.CONTROLLER_PROGRESS_PER_LEVEL.get(self.level, 0))


@dataclass
class Unit:
    id: str
    pos: Position
    body: List[Capability]
    owner: str = config.MY_OWNER
    role: Optional[str] = None
    energy: int = 0
    hits: int = 0
    hits_max: int = 0
    fatigue: int = 0
    spawned_at: int = 0
    category: ClassVar[Category] = Category.UNIT

    def __post_init__(self) -> None:
        if not self.hits_max:
            self.hits_max = config.HITS_PER_PART * len(self.body)
        if not self.hits:
            self.hits = self.hits_max

    @property
    def capabilities(self):
        return capabilities_of(self.body)

    def parts(self, part: Capability) -> int:
        return count_parts(self.body).get(part, 0)

    @property
    def capacity(self) -> int:
        return carry_capacity(self.body)

    @property
    def free_capacity(self) -> int:
        return max(0, self.capacity - self.energy)


@dataclass
class ZoneGrid:
    """I hold one zone's static terrain plus the traffic heatmap movement builds up."""

    name: str
    coords: Tuple[int, int]
    terrain: np.ndarray
    traffic: np.ndarray


@dataclass
class MoveIntent:
    goal: Position
    reach: int
    surface: Optional[np.ndarray] = None


@dataclass
class SimWorld:
    """World card: the read/act surface the engine talks to each tick."""

    size: int = config.ZONE_SIZE
    owner: str = config.MY_OWNER
    tick: int = 0
    _zones: Dict[str, ZoneGrid] = field(default_factory=dict)
    _entities: Dict[str, Any] = field(default_factory=dict)
    _by_zone: Dict[str, Dict[Category, Dict[str, Any]]] = field(default_factory=dict)
    _moves: Dict[str, MoveIntent] = field(default_factory=dict)
    _seq: int = 0

    # ------------------------------------------------------------------ zones
    def add_zone(self, name: str, terrain: np.ndarray | None = None, coords: Tuple[int, int] = (0, 0)) -> ZoneGrid:
        if terrain is None:
            terrain = np.full((self.size, self.size), config.TERRAIN_PLAIN, dtype=np.uint8)
        terrain = np.asarray(terrain, dtype=np.uint8)
        if terrain.shape != (self.size, self.size):
            raise ValueError(f"terrain for {name} must be {self.size}x{self.size}, got {terrain.shape}")
        grid = ZoneGrid(name=name, coords=coords, terrain=terrain, traffic=np.zeros_like(terrain, dtype=np.int32))
        self._zones[name] = grid
        self._by_zone[name] = {category: {} for category in Category}
        return grid

    def zones(self) -> List[str]:
        return list(self._zones)

    def has_zone(self, zone: str) -> bool:
        return zone in self._zones

    def terrain(self, zone: str) -> np.ndarray:
        return self._zones[zone].terrain

    def traffic(self, zone: str) -> np.ndarray:
        return self._zones[zone].traffic

    def zone_coords(self, zone: str) -> Tuple[int, int]:
        return self._zones[zone].coords

    def zone_at(self, coords: Tuple[int, int]) -> Optional[str]:
        for grid in self._zones.values():
            if grid.coords == coords:
                return grid.name
        return None

    def neighbours(self, zone: str) -> List[str]:
        cx, cy = self.zone_coords(zone)
        found = []
        for dx, dy in ((0, -1), (1, 0), (0, 1), (-1, 0)):
            other = self.zone_at((cx + dx, cy + dy))
            if other is not None:
                found.append(other)
        return found

    def travel_distance(self, a: Position, b: Position) -> int:
        """Distance cue: chebyshev range, stitched across zones by their grid coordinates."""
        if a.zone == b.zone:
            return a.range_to(b)
        ax, ay = self.zone_coords(a.zone)
        bx, by = self.zone_coords(b.zone)
        return chebyshev(ax * self.size + a.x, ay * self.size + a.y, bx * self.size + b.x, by * self.size + b.y)

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.size and 0 <= y < self.size

    def record_traffic(self, pos: Position) -> None:
        self._zones[pos.zone].traffic[pos.y, pos.x] += 1

    # ---------------------------------------------------------------- entities
    def _next_id(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}{self._seq}"

    def _register(self, entity: Any) -> Any:
        if entity.id in self._entities:
            raise ValueError(f"duplicate entity id {entity.id}")
        if entity.pos.zone not in self._zones:
            raise KeyError(f"unknown zone {entity.pos.zone}")
        self._entities[entity.id] = entity
        self._by_zone[entity.pos.zone][entity.category][entity.id] = entity
        return entity

    def add_source(self, zone: str, x: int, y: int, energy: int | None = None, capacity: int | None = None) -> Source:
        capacity = capacity if capacity is not None else config.SOURCE_CAPACITY
        energy = energy if energy is not None else capacity
        return self._register(Source(self._next_id("src"), Position(x, y, zone), energy=energy, capacity=capacity))

    def add_mineral(self, zone: str, x: int, y: int, mineral_type: str = "H") -> Mineral:
        return self._register(Mineral(self._next_id("min"), Position(x, y, zone), mineral_type=mineral_type))

    def add_structure(
        self,
        zone: str,
        x: int,
        y: int,
        kind: StructureKind,
        hits: int | None = None,
        energy: int = 0,
        owner: Optional[str] = config.MY_OWNER,
        public: bool = False,
    ) -> Structure:
        hits_max, capacity, _ = STRUCTURE_SPECS[kind]
        structure = Structure(
            id=self._next_id(kind.value[:3]),
            pos=Position(x, y, zone),
            kind=kind,
            hits=hits if hits is not None else hits_max,
            hits_max=hits_max,
            owner=owner,
            energy=energy,
            energy_capacity=capacity,
            public=public,
        )
        return self._register(structure)

    def add_construction_site(self, zone: str, x: int, y: int, kind: StructureKind, progress: int = 0) -> ConstructionSite:
        total = STRUCTURE_SPECS[kind][2]
        return self._register(
            ConstructionSite(self._next_id("site"), Position(x, y, zone), kind, progress=progress, progress_total=total)
        )

    def add_dropped(self, zone: str, x: int, y: int, amount: int) -> DroppedResource:
        return self._register(DroppedResource(self._next_id("drop"), Position(x, y, zone), amount=amount))

    def add_controller(
        self, zone: str, x: int, y: int, level: int = 0, owner: Optional[str] = None, progress: int = 0
    ) -> Controller:
        return self._register(Controller(self._next_id("ctrl"), Position(x, y, zone), level=level, owner=owner, progress=progress))

    def add_unit(
        self,
        zone: str,
        x: int,
        y: int,
        body: Iterable[Capability],
        owner: Optional[str] = None,
        role: Optional[str] = None,
        name: Optional[str] = None,
        energy: int = 0,
    ) -> Unit:
        unit = Unit(
            id=name or self._next_id("unit"),
            pos=Position(x, y, zone),
            body=list(body),
            owner=owner or self.owner,
            role=role,
            energy=energy,
            spawned_at=self.tick,
        )
        return self._register(unit)

    def resolve(self, entity_id: Optional[str]) -> Any:
        """Lookup cue: return the live entity for an id, or None once it is gone."""
        if entity_id is None:
            return None
        return self._entities.get(entity_id)

    def remove(self, entity_id: str) -> None:
        entity = self._entities.pop(entity_id, None)
        if entity is None:
            return
        self._by_zone[entity.pos.zone][entity.category].pop(entity_id, None)
        self._moves.pop(entity_id, None)

    def entities(self, zone: str, category: Category, predicate: Callable[[Any], bool] | None = None) -> List[Any]:
        """Query card: every entity of a category in a zone, optionally filtered."""
        bucket = self._by_zone.get(zone, {}).get(category, {})
        if predicate is None:
            return list(bucket.values())
        return [entity for entity in bucket.values() if predicate(entity)]

    def units(self, owner: Optional[str] = None) -> List[Unit]:
        found = []
        for zone in self._zones:
            for unit in self._by_zone[zone][Category.UNIT].values():
                if owner is None or unit.owner == owner:
                    found.append(unit)
        return found

    def controller(self, zone: str) -> Optional[Controller]:
        controllers = self.entities(zone, Category.CONTROLLER)
        return controllers[0] if controllers else None

    def structures_at(self, pos: Position) -> List[Structure]:
        return self.entities(pos.zone, Category.STRUCTURE, lambda s: s.pos == pos)

    def is_walkable(self, pos: Position, owner: Optional[str] = None) -> bool:
        if not self.in_bounds(pos.x, pos.y):
            return False
        if int(self.terrain(pos.zone)[pos.y, pos.x]) == config.TERRAIN_WALL:
            return False
        owner = owner or self.owner
        for structure in self.structures_at(pos):
            if structure.kind is StructureKind.RAMPART:
                if structure.owner != owner and not structure.public:
                    return False
            elif structure.kind not in WALKABLE_STRUCTURES:
                return False
        return True

    def _relocate(self, entity: Any, pos: Position) -> None:
        if pos.zone != entity.pos.zone:
            self._by_zone[entity.pos.zone][entity.category].pop(entity.id, None)
            self._by_zone[pos.zone][entity.category][entity.id] = entity
        entity.pos = pos

    # ------------------------------------------------------------------ energy
    def energy_available(self, zone: str) -> int:
        return sum(
            s.energy
            for s in self.entities(zone, Category.STRUCTURE)
            if s.kind in (StructureKind.SPAWN, StructureKind.EXTENSION) and s.owner == self.owner
        )

    def energy_capacity(self, zone: str) -> int:
        return sum(
            s.energy_capacity or 0
            for s in self.entities(zone, Category.STRUCTURE)
            if s.kind in (StructureKind.SPAWN, StructureKind.EXTENSION) and s.owner == self.owner
        )

    def spawn_unit(
        self, spawn_id: str, body: List[Capability], name: str, role: Optional[str] = None
    ) -> ActionResult:
        """Spawn card: pay from spawns then extensions and drop the new unit next to the spawn."""
        spawn = self.resolve(spawn_id)
        if not isinstance(spawn, Structure) or spawn.kind is not StructureKind.SPAWN or spawn.owner != self.owner:
            return failed(INVALID_TARGET)
        if not body:
            return failed("empty_body")
        if name in self._entities:
            return failed("name_taken")
        zone = spawn.pos.zone
        cost = body_cost(body)
        if cost > self.energy_available(zone):
            return failed(NOT_ENOUGH_RESOURCES)
        occupied = {u.pos for u in self.entities(zone, Category.UNIT)}
        exit_pos = None
        for dx, dy in NEIGHBOUR_OFFSETS:
            candidate = spawn.pos.offset(dx, dy)
            if candidate not in occupied and self.is_walkable(candidate):
                exit_pos = candidate
                break
        if exit_pos is None:
            return failed("blocked")
        owed = cost
        payers = sorted(
            (
                s
                for s in self.entities(zone, Category.STRUCTURE)
                if s.kind in (StructureKind.SPAWN, StructureKind.EXTENSION) and s.owner == self.owner
            ),
            key=lambda s: (s.kind is not StructureKind.SPAWN, s.id),
        )
        for payer in payers:
            taken = min(payer.energy, owed)
            payer.energy -= taken
            owed -= taken
            if owed <= 0:
                break
        self.add_unit(zone, exit_pos.x, exit_pos.y, body, role=role, name=name)
        return OK

    # ---------------------------------------------------------------- actions
    def apply(self, kind: ActionKind, unit_id: str, target: Any, **kwargs: Any) -> ActionResult:
        """Primitive card: validate capability, target, and range, then run the effect."""
        unit = self.resolve(unit_id)
        if not isinstance(unit, Unit):
            return failed(INVALID_TARGET)
        if ACTION_CAPABILITY[kind] not in unit.capabilities:
            return failed(NO_CAPABILITY)
        target_id = target if isinstance(target, str) else getattr(target, "id", None)
        entity = self.resolve(target_id)
        if entity is None:
            return failed(INVALID_TARGET)
        if not unit.pos.in_range(entity.pos, action_range(kind)):
            return NOT_IN_RANGE
        handler = getattr(self, f"_do_{kind.value}")
        return handler(unit, entity, **kwargs)

    def _do_gather(self, unit: Unit, source: Any) -> ActionResult:
        if not isinstance(source, Source):
            return failed(INVALID_TARGET)
        if source.energy <= 0:
            return failed(EXHAUSTED)
        if unit.free_capacity <= 0:
            return failed(FULL)
        amount = min(unit.parts(Capability.GATHER) * config.GATHER_PER_PART, source.energy, unit.free_capacity)
        source.energy -= amount
        unit.energy += amount
        if source.regen_in <= 0:
            source.regen_in = config.SOURCE_REGEN_TICKS
        return OK

    def _do_build(self, unit: Unit, site: Any) -> ActionResult:
        if not isinstance(site, ConstructionSite):
            return failed(INVALID_TARGET)
        if unit.energy <= 0:
            return failed(NOT_ENOUGH_RESOURCES)
        remaining = site.progress_total - site.progress
        amount = min(unit.parts(Capability.GATHER) * config.BUILD_PER_PART, unit.energy, remaining)
        site.progress += amount
        unit.energy -= amount
        if site.complete:
            self.remove(site.id)
            structure = self.add_structure(site.pos.zone, site.pos.x, site.pos.y, site.kind, owner=site.owner)
            if structure.is_fortification:
                structure.hits = 1
        return OK

    def _do_repair(self, unit: Unit, structure: Any) -> ActionResult:
        if not isinstance(structure, Structure):
            return failed(INVALID_TARGET)
        if structure.hits >= structure.hits_max:
            return failed(FULL)
        if unit.energy <= 0:
            return failed(NOT_ENOUGH_RESOURCES)
        missing = structure.hits_max - structure.hits
        hits = min(unit.parts(Capability.GATHER) * config.REPAIR_PER_PART, missing, unit.energy * config.REPAIR_PER_PART)
        structure.hits += hits
        unit.energy -= max(1, math.ceil(hits / config.REPAIR_PER_PART))
        return OK

    def _do_upgrade(self, unit: Unit, controller: Any) -> ActionResult:
        if not isinstance(controller, Controller):
            return failed(INVALID_TARGET)
        if controller.owner != unit.owner:
            return failed(NOT_OWNER)
        if unit.energy <= 0:
            return failed(NOT_ENOUGH_RESOURCES)
        amount = min(unit.parts(Capability.GATHER) * config.UPGRADE_PER_PART, unit.energy)
        unit.energy -= amount
        controller.progress += amount
        total = controller.progress_total
        if total and controller.progress >= total and controller.level < 8:
            controller.progress -= total
            controller.level += 1
        return OK

    def _do_transfer(self, unit: Unit, target: Any, amount: int | None = None) -> ActionResult:
        if unit.energy <= 0:
            return failed(NOT_ENOUGH_RESOURCES)
        if isinstance(target, Structure) and target.has_store:
            free = target.free_capacity
        elif isinstance(target, Unit) and target.id != unit.id:
            free = target.free_capacity
        else:
            return failed(INVALID_TARGET)
        if free <= 0:
            return failed(FULL)
        moved = min(amount or unit.energy, unit.energy, free)
        unit.energy -= moved
        target.energy += moved
        return OK

    def _do_withdraw(self, unit: Unit, structure: Any, amount: int | None = None) -> ActionResult:
        if not isinstance(structure, Structure) or not structure.has_store:
            return failed(INVALID_TARGET)
        if structure.owner not in (None, unit.owner):
            return failed(NOT_OWNER)
        if structure.energy <= 0:
            return failed(NOT_ENOUGH_RESOURCES)
        if unit.free_capacity <= 0:
            return failed(FULL)
        moved = min(amount or unit.free_capacity, unit.free_capacity, structure.energy)
        structure.energy -= moved
        unit.energy += moved
        return OK

    def _do_pickup(self, unit: Unit, drop: Any) -> ActionResult:
        if not isinstance(drop, DroppedResource):
            return failed(INVALID_TARGET)
        if unit.free_capacity <= 0:
            return failed(FULL)
        moved = min(unit.free_capacity, drop.amount)
        drop.amount -= moved
        unit.energy += moved
        if drop.amount <= 0:
            self.remove(drop.id)
        return OK

    def _damage(self, target: Any, amount: int) -> None:
        target.hits -= amount
        if target.hits > 0:
            return
        self.remove(target.id)
        if isinstance(target, Unit) and target.energy > 0:
            self.add_dropped(target.pos.zone, target.pos.x, target.pos.y, target.energy)

    def _do_melee_attack(self, unit: Unit, target: Any) -> ActionResult:
        if not isinstance(target, (Unit, Structure)) or target.owner == unit.owner:
            return failed(INVALID_TARGET)
        self._damage(target, unit.parts(Capability.MELEE) * config.MELEE_DAMAGE_PER_PART)
        return OK

    def _do_ranged_attack(self, unit: Unit, target: Any) -> ActionResult:
        if not isinstance(target, (Unit, Structure)) or target.owner == unit.owner:
            return failed(INVALID_TARGET)
        self._damage(target, unit.parts(Capability.RANGED) * config.RANGED_DAMAGE_PER_PART)
        return OK

    def _do_heal(self, unit: Unit, target: Any) -> ActionResult:
        if not isinstance(target, Unit) or target.owner != unit.owner:
            return failed(INVALID_TARGET)
        if target.hits >= target.hits_max:
            return failed(FULL)
        target.hits = min(target.hits_max, target.hits + unit.parts(Capability.HEAL) * config.HEAL_PER_PART)
        return OK

    def _do_claim(self, unit: Unit, controller: Any) -> ActionResult:
        if not isinstance(controller, Controller):
            return failed(INVALID_TARGET)
        if controller.owner is not None or controller.reserved_by not in (None, unit.owner):
            return failed(NOT_OWNER)
        controller.owner = unit.owner
        controller.level = 1
        controller.progress = 0
        controller.reserved_by = None
        controller.reservation = 0
        return OK

    def _do_reserve(self, unit: Unit, controller: Any) -> ActionResult:
        if not isinstance(controller, Controller):
            return failed(INVALID_TARGET)
        if controller.owner is not None or controller.reserved_by not in (None, unit.owner):
            return failed(NOT_OWNER)
        if controller.reservation >= config.RESERVATION_MAX_TICKS:
            return failed(FULL)
        controller.reserved_by = unit.owner
        controller.reservation = min(
            config.RESERVATION_MAX_TICKS,
            controller.reservation + unit.parts(Capability.CLAIM) * config.RESERVE_PER_PART,
        )
        return OK

    def _do_dismantle(self, unit: Unit, structure: Any) -> ActionResult:
        if not isinstance(structure, Structure):
            return failed(INVALID_TARGET)
        self._damage(structure, unit.parts(Capability.GATHER) * config.DISMANTLE_PER_PART)
        return OK

    # --------------------------------------------------------------- movement
    def request_move(self, unit_id: str, goal: Position, reach: int = 1, surface: np.ndarray | None = None) -> ActionResult:
        """Intent card: remember where a unit wants to go; end_tick takes one step for it."""
        unit = self.resolve(unit_id)
        if not isinstance(unit, Unit):
            return failed(INVALID_TARGET)
        if unit.parts(Capability.MOBILITY) == 0:
            return failed(NO_CAPABILITY)
        if unit.pos.in_range(goal, reach):
            self._moves.pop(unit_id, None)
            return OK
        self._moves[unit_id] = MoveIntent(goal=goal, reach=reach, surface=surface)
        return OK

    def pending_move(self, unit_id: str) -> Optional[MoveIntent]:
        return self._moves.get(unit_id)

    def _tile_cost(self, pos: Position, surface: np.ndarray | None) -> int:
        if surface is not None:
            return int(surface[pos.y, pos.x])
        code = int(self.terrain(pos.zone)[pos.y, pos.x])
        if code == config.TERRAIN_WALL:
            return config.COST_IMPASSABLE
        return 5 if code == config.TERRAIN_SWAMP else 1

    def _edge_hop(self, unit: Unit, goal: Position, occupied: set) -> Tuple[Optional[Position], Position]:
        """Cross-zone cue: hop to the neighbouring zone from an edge, else aim at that edge."""
        cx, cy = self.zone_coords(unit.pos.zone)
        gx, gy = self.zone_coords(goal.zone)
        dx = (gx > cx) - (gx < cx)
        dy = (gy > cy) - (gy < cy) if dx == 0 else 0
        last = self.size - 1
        if dx:
            at_edge = unit.pos.x == (last if dx > 0 else 0)
            local = Position(last if dx > 0 else 0, unit.pos.y, unit.pos.zone)
        else:
            at_edge = unit.pos.y == (last if dy > 0 else 0)
            local = Position(unit.pos.x, last if dy > 0 else 0, unit.pos.zone)
        if at_edge:
            neighbour = self.zone_at((cx + dx, cy + dy))
            if neighbour is not None:
                landing = Position(
                    (0 if dx > 0 else last) if dx else unit.pos.x,
                    (0 if dy > 0 else last) if dy else unit.pos.y,
                    neighbour,
                )
                if landing not in occupied and self.is_walkable(landing, unit.owner):
                    return landing, local
        return None, local

    def _next_step(self, unit: Unit, intent: MoveIntent, occupied: set) -> Optional[Position]:
        goal, reach = intent.goal, intent.reach
        surface = intent.surface
        if goal.zone != unit.pos.zone:
            hop, goal = self._edge_hop(unit, goal, occupied)
            if hop is not None:
                return hop
            reach = 0
        here = unit.pos.range_to(goal)
        if here <= reach:
            return None
        best: Optional[Tuple[int, int, Position]] = None
        for dx, dy in NEIGHBOUR_OFFSETS:
            candidate = unit.pos.offset(dx, dy)
            if not self.in_bounds(candidate.x, candidate.y) or candidate in occupied:
                continue
            if not self.is_walkable(candidate, unit.owner):
                continue
            cost = self._tile_cost(candidate, surface)
            if cost >= config.COST_IMPASSABLE:
                continue
            dist = candidate.range_to(goal)
            if dist > here:
                continue
            score = (dist * 10 + cost, cost, candidate)
            if best is None or score[:2] < best[:2]:
                best = score
        return best[2] if best else None

    def _fatigue_for(self, unit: Unit, pos: Position) -> int:
        heavy = len(unit.body) - unit.parts(Capability.MOBILITY)
        if any(s.kind is StructureKind.ROAD for s in self.structures_at(pos)):
            return heavy
        if int(self.terrain(pos.zone)[pos.y, pos.x]) == config.TERRAIN_SWAMP:
            return heavy * 10
        return heavy * 2

    def _resolve_moves(self) -> int:
        occupied = {unit.pos for unit in self.units()}
        moved = 0
        for unit_id, intent in list(self._moves.items()):
            unit = self.resolve(unit_id)
            if not isinstance(unit, Unit) or unit.fatigue > 0:
                continue
            step = self._next_step(unit, intent, occupied)
            if step is None:
                continue
            occupied.discard(unit.pos)
            occupied.add(step)
            self._relocate(unit, step)
            unit.fatigue += self._fatigue_for(unit, step)
            self.record_traffic(step)
            moved += 1
        self._moves.clear()
        return moved

    def end_tick(self) -> Dict[str, int]:
        """Upkeep card: resolve movement, recover fatigue, regrow sources, decay drops, advance time."""
        moved = self._resolve_moves()
        for unit in self.units():
            unit.fatigue = max(0, unit.fatigue - 2 * unit.parts(Capability.MOBILITY))
        for zone in self._zones:
            for source in self.entities(zone, Category.SOURCE):
                if source.regen_in > 0:
                    source.regen_in -= 1
                    if source.regen_in == 0:
                        source.energy = source.capacity
            for drop in self.entities(zone, Category.DROPPED_RESOURCE):
                drop.amount -= math.ceil(drop.amount / config.DROPPED_DECAY_DIVISOR)
                if drop.amount <= 0:
                    self.remove(drop.id)
            controller = self.controller(zone)
            if controller is not None and controller.reservation > 0:
                controller.reservation -= 1
                if controller.reservation == 0:
                    controller.reserved_by = None
        self.tick += 1
        return {"moved": moved}
