"""Quick card: terrain-profile classification plus per-request cost surfaces for the path planner."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional, Tuple

import numpy as np

import config
from colony.agents.body import Capability
from colony.model.world import Category, Position, SimWorld, StructureKind, Unit, WALKABLE_STRUCTURES

log = logging.getLogger(__name__)


class TerrainProfile(str, Enum):
    OPEN = "open"
    HIGH_FRICTION = "high_friction"
    OBSTRUCTED = "obstructed"
    LABYRINTHINE = "labyrinthine"
    MIXED = "mixed"


@dataclass(frozen=True)
class PathDefaults:
    replan_interval: int
    plain_cost: int
    friction_cost: int


PROFILE_DEFAULTS: Dict[TerrainProfile, PathDefaults] = {
    TerrainProfile(name): PathDefaults(*values) for name, values in config.PROFILE_DEFAULTS.items()
}

# Interior sample points on a 50-cell reference grid; scaled for other zone sizes.
SAMPLE_POINTS: Tuple[Tuple[int, int], ...] = ((10, 10), (10, 40), (40, 10), (40, 40), (25, 25))
RAY_DIRECTIONS: Tuple[Tuple[int, int], ...] = ((0, -1), (1, 0), (0, 1), (-1, 0))

STEADY_ROLES = frozenset({"harvester", "upgrader"})


def terrain_shares(terrain: np.ndarray) -> Tuple[float, float]:
    """Share of high-friction and impassable cells, in that order."""
    cells = float(terrain.size) or 1.0
    friction = float(np.count_nonzero(terrain == config.TERRAIN_SWAMP)) / cells
    obstruction = float(np.count_nonzero(terrain == config.TERRAIN_WALL)) / cells
    return friction, obstruction


def transition_score(terrain: np.ndarray, ray_length: int = config.LABYRINTH_RAY_LENGTH) -> float:
    """Maze cue: average passable/impassable alternations seen along four short rays per sample point."""
    height, width = terrain.shape
    total = 0
    for ref_x, ref_y in SAMPLE_POINTS:
        sx = ref_x * width // 50
        sy = ref_y * height // 50
        transitions = 0
        for dx, dy in RAY_DIRECTIONS:
            last_was_wall = False
            for i in range(1, ray_length + 1):
                x = sx + dx * i
                y = sy + dy * i
                if x < 0 or x >= width or y < 0 or y >= height:
                    continue
                is_wall = int(terrain[y, x]) == config.TERRAIN_WALL
                if is_wall != last_was_wall:
                    transitions += 1
                    last_was_wall = is_wall
        total += transitions
    return total / len(SAMPLE_POINTS)


def classify(friction_share: float, obstruction_share: float, score: float) -> TerrainProfile:
    if friction_share > config.FRICTION_SHARE_THRESHOLD:
        return TerrainProfile.HIGH_FRICTION
    if obstruction_share > config.OBSTRUCTION_SHARE_THRESHOLD:
        if score > config.LABYRINTH_TRANSITION_THRESHOLD:
            return TerrainProfile.LABYRINTHINE
        return TerrainProfile.OBSTRUCTED
    if obstruction_share < config.OPEN_SHARE_CEILING and friction_share < config.OPEN_SHARE_CEILING:
        return TerrainProfile.OPEN
    return TerrainProfile.MIXED


def static_layer(terrain: np.ndarray, plain_cost: int, friction_cost: int) -> np.ndarray:
    layer = np.full(terrain.shape, plain_cost, dtype=np.int32)
    layer[terrain == config.TERRAIN_SWAMP] = friction_cost
    layer[terrain == config.TERRAIN_WALL] = config.COST_IMPASSABLE
    return layer


@dataclass
class TerrainAnalysis:
    zone: str
    profile: TerrainProfile
    friction_share: float
    obstruction_share: float
    transition_score: float
    analysed_at: int

    @property
    def defaults(self) -> PathDefaults:
        return PROFILE_DEFAULTS[self.profile]

    def expired(self, tick: int, ttl: int = config.TERRAIN_CACHE_TTL) -> bool:
        return tick - self.analysed_at >= ttl


@dataclass(frozen=True)
class PathOptions:
    """Request card: what the planner should use for one agent's next path."""

    replan_interval: int
    plain_cost: int
    friction_cost: int
    reach: int
    profile: TerrainProfile
    distance: int
    cross_zone: bool


def replan_interval(base: int, distance: int, cross_zone: bool = False, role: Optional[str] = None) -> int:
    """Reuse cue: short hops replan often, long hauls keep their path, steady roles hold on a bit longer."""
    if distance < config.SHORT_TRIP_DISTANCE:
        interval = min(base, 3)
    elif distance > config.LONG_TRIP_DISTANCE:
        interval = max(base, 30)
    else:
        interval = max(5, min(base, distance * 1.5))
    if cross_zone:
        interval = min(interval, config.CROSS_ZONE_REPLAN_CAP)
    if role in STEADY_ROLES:
        interval = max(interval, config.STEADY_ROLE_REPLAN_FLOOR)
    return int(round(interval))


class MovementCostModel:
    """I cache terrain analysis per zone and build fresh cost surfaces on every request."""

    def __init__(self, world: SimWorld, ttl: int = config.TERRAIN_CACHE_TTL) -> None:
        self.world = world
        self.ttl = ttl
        self._cache: Dict[str, TerrainAnalysis] = {}
        self.recomputations = 0

    # ------------------------------------------------------------- static side
    def analyse(self, zone: str, tick: int) -> TerrainAnalysis:
        """Cache card: reuse the zone's analysis until it is ``ttl`` ticks old."""
        cached = self._cache.get(zone)
        if cached is not None and not cached.expired(tick, self.ttl):
            return cached
        terrain = self.world.terrain(zone)
        friction, obstruction = terrain_shares(terrain)
        score = transition_score(terrain)
        analysis = TerrainAnalysis(
            zone=zone,
            profile=classify(friction, obstruction, score),
            friction_share=friction,
            obstruction_share=obstruction,
            transition_score=score,
            analysed_at=tick,
        )
        self._cache[zone] = analysis
        self.recomputations += 1
        log.debug("terrain %s classified %s (score %.2f)", zone, analysis.profile.value, score)
        return analysis

    def cached(self, zone: str) -> Optional[TerrainAnalysis]:
        return self._cache.get(zone)

    def invalidate(self, zone: Optional[str] = None) -> None:
        if zone is None:
            self._cache.clear()
        else:
            self._cache.pop(zone, None)

    def profile(self, zone: str, tick: int) -> TerrainProfile:
        return self.analyse(zone, tick).profile

    # ------------------------------------------------------------ dynamic side
    def cost_surface(
        self,
        zone: str,
        tick: int,
        plain_cost: Optional[int] = None,
        friction_cost: Optional[int] = None,
        traversable: Iterable[str] = (),
    ) -> np.ndarray:
        """Surface card: static terrain weights plus this tick's occupancy layers, never cached."""
        analysis = self.analyse(zone, tick)
        defaults = analysis.defaults
        surface = static_layer(
            self.world.terrain(zone),
            defaults.plain_cost if plain_cost is None else plain_cost,
            defaults.friction_cost if friction_cost is None else friction_cost,
        )
        self._overlay(surface, zone, frozenset(traversable))
        return surface

    def _overlay(self, surface: np.ndarray, zone: str, traversable: frozenset) -> None:
        world = self.world
        impassable = config.COST_IMPASSABLE
        size_y, size_x = surface.shape

        def raise_to(x: int, y: int, value: int) -> None:
            if 0 <= x < size_x and 0 <= y < size_y and surface[y, x] < impassable:
                surface[y, x] = max(int(surface[y, x]), value)

        roads = np.zeros(surface.shape, dtype=bool)
        for structure in world.entities(zone, Category.STRUCTURE):
            x, y = structure.pos.x, structure.pos.y
            if structure.kind is StructureKind.ROAD:
                if surface[y, x] < impassable:
                    surface[y, x] = config.COST_ROAD
                    roads[y, x] = True
            elif structure.kind is StructureKind.RAMPART:
                if structure.owner != world.owner and not structure.public and structure.id not in traversable:
                    surface[y, x] = impassable
            elif structure.kind not in WALKABLE_STRUCTURES:
                surface[y, x] = impassable

        for site in world.entities(zone, Category.CONSTRUCTION_SITE):
            raise_to(site.pos.x, site.pos.y, config.COST_CONSTRUCTION)

        nodes = world.entities(zone, Category.SOURCE) + world.entities(zone, Category.MINERAL)
        for node in nodes:
            for dx in (-1, 0, 1):
                for dy in (-1, 0, 1):
                    raise_to(node.pos.x + dx, node.pos.y + dy, config.COST_RESOURCE_BUFFER)

        controller = world.controller(zone)
        if controller is not None and controller.owner == world.owner:
            for dx in (-1, 0, 1):
                for dy in (-1, 0, 1):
                    if dx or dy:
                        raise_to(controller.pos.x + dx, controller.pos.y + dy, config.COST_UPGRADE_FOCUS)

        ys, xs = np.mgrid[0:size_y, 0:size_x]
        radius = config.HOSTILE_PENALTY_RADIUS
        for unit in world.entities(zone, Category.UNIT):
            if unit.owner == world.owner:
                raise_to(unit.pos.x, unit.pos.y, config.COST_ALLY)
                continue
            range_sq = (xs - unit.pos.x) ** 2 + (ys - unit.pos.y) ** 2
            within = (range_sq <= radius * radius) & (surface < impassable)
            penalty = (config.COST_HOSTILE_BASE * (radius + 1 - np.sqrt(range_sq))).astype(np.int32)
            surface[within] = np.maximum(surface[within], penalty[within])

        busy = (
            (world.traffic(zone) > config.CONGESTION_TRAFFIC_THRESHOLD)
            & (surface < config.CONGESTION_MAX_BASE_COST)
            & ~roads
        )
        surface[busy] += 1

    # ------------------------------------------------------------ per request
    def path_options(
        self,
        unit: Unit,
        goal: Position,
        tick: int,
        role: Optional[str] = None,
        reach: int = 1,
    ) -> PathOptions:
        """Tuning card: profile defaults adjusted for trip length, load, and zone crossings."""
        analysis = self.analyse(unit.pos.zone, tick)
        defaults = analysis.defaults
        distance = self.world.travel_distance(unit.pos, goal)
        cross_zone = goal.zone != unit.pos.zone
        plain, friction = defaults.plain_cost, defaults.friction_cost
        if unit.parts(Capability.TRANSPORT) > config.HEAVY_LOAD_TRANSPORT_PARTS or unit.fatigue > 0:
            plain, friction = config.HEAVY_PLAIN_COST, config.HEAVY_FRICTION_COST
        return PathOptions(
            replan_interval=replan_interval(defaults.replan_interval, distance, cross_zone, role),
            plain_cost=plain,
            friction_cost=friction,
            reach=reach,
            profile=analysis.profile,
            distance=distance,
            cross_zone=cross_zone,
        )

    def surface_for(self, unit: Unit, options: PathOptions, tick: int) -> np.ndarray:
        return self.cost_surface(unit.pos.zone, tick, options.plain_cost, options.friction_cost)


def hostile_penalty(distance: float) -> int:
    """Penalty a hostile adds at a given euclidean distance inside its radius (0 outside)."""
    if distance > config.HOSTILE_PENALTY_RADIUS:
        return 0
    return int(config.COST_HOSTILE_BASE * (config.HOSTILE_PENALTY_RADIUS + 1 - distance))
