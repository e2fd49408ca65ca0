"""Seed-driven world generation: zone grid, terrain blobs, and a starting colony."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set, Tuple

import numpy as np

import config
from colony.agents.body import A, G, M, T
from colony.model.movement import classify, terrain_shares, transition_score
from colony.model.world import Category, Position, SimWorld, StructureKind

EXTENSIONS_PER_LEVEL: Dict[int, int] = {1: 0, 2: 5, 3: 10, 4: 20, 5: 30, 6: 40, 7: 50, 8: 60}
STARTER_ROLES: Tuple[str, ...] = ("harvester", "upgrader", "builder", "harvester", "hauler")
STARTER_BODIES: Dict[str, list] = {
    "harvester": [G, T, M],
    "upgrader": [G, T, M],
    "builder": [G, T, M],
    "hauler": [T, T, M, M],
}
# Keep generated features off the zone border.
MARGIN = 3


@dataclass
class ZoneSummary:
    """I record what one generated zone looks like so seeds can be compared."""

    name: str
    coords: Tuple[int, int]
    sources: int
    friction_share: float
    obstruction_share: float
    profile: str
    hostiles: int = 0


@dataclass
class WorldLayout:
    """I hold the generated world plus a per-zone summary for the run log."""

    world: SimWorld
    home: str
    zones: Dict[str, ZoneSummary] = field(default_factory=dict)


def zone_name(coords: Tuple[int, int]) -> str:
    return f"Z{coords[0]}{coords[1]}"


def _stamp_blob(terrain: np.ndarray, cx: int, cy: int, radius: int, code: int) -> None:
    size_y, size_x = terrain.shape
    ys, xs = np.mgrid[0:size_y, 0:size_x]
    mask = (xs - cx) ** 2 + (ys - cy) ** 2 <= radius * radius
    terrain[mask] = code


def generate_terrain(rng: Any, size: int = config.ZONE_SIZE) -> np.ndarray:
    """I scatter swamp and wall blobs over a plain grid, then clear the border ring."""
    terrain = np.full((size, size), config.TERRAIN_PLAIN, dtype=np.uint8)
    low, high = config.ENV_BLOB_RADIUS
    for code, bounds in ((config.TERRAIN_SWAMP, config.ENV_SWAMP_BLOBS), (config.TERRAIN_WALL, config.ENV_WALL_BLOBS)):
        for _ in range(rng.randint(*bounds)):
            _stamp_blob(terrain, rng.randrange(size), rng.randrange(size), rng.randint(low, high), code)
    terrain[0, :] = terrain[-1, :] = config.TERRAIN_PLAIN
    terrain[:, 0] = terrain[:, -1] = config.TERRAIN_PLAIN
    return terrain


def _free_tile(rng: Any, world: SimWorld, zone: str, used: Set[Tuple[int, int]], tries: int = 200) -> Tuple[int, int]:
    terrain = world.terrain(zone)
    size = world.size
    for _ in range(tries):
        x = rng.randint(MARGIN, size - 1 - MARGIN)
        y = rng.randint(MARGIN, size - 1 - MARGIN)
        if (x, y) not in used and int(terrain[y, x]) != config.TERRAIN_WALL:
            used.add((x, y))
            return x, y
    # Crowded zone: carve a plain tile instead of giving up.
    x = rng.randint(MARGIN, size - 1 - MARGIN)
    y = rng.randint(MARGIN, size - 1 - MARGIN)
    terrain[y, x] = config.TERRAIN_PLAIN
    used.add((x, y))
    return x, y


def _clear_around(world: SimWorld, zone: str, x: int, y: int, radius: int = 1) -> None:
    terrain = world.terrain(zone)
    terrain[max(0, y - radius) : y + radius + 1, max(0, x - radius) : x + radius + 1] = config.TERRAIN_PLAIN


def _neighbour_tile(world: SimWorld, zone: str, x: int, y: int, used: Set[Tuple[int, int]]) -> Optional[Tuple[int, int]]:
    for dx, dy in ((1, 0), (0, 1), (-1, 0), (0, -1), (1, 1), (-1, -1), (1, -1), (-1, 1)):
        tile = (x + dx, y + dy)
        if tile not in used and world.is_walkable(Position(tile[0], tile[1], zone)):
            used.add(tile)
            return tile
    return None


def _populate_home(rng: Any, world: SimWorld, zone: str, used: Set[Tuple[int, int]], starter_units: int) -> None:
    level = config.ENV_START_LEVEL
    cx, cy = _free_tile(rng, world, zone, used)
    _clear_around(world, zone, cx, cy, radius=2)
    world.add_controller(zone, cx, cy, level=level, owner=world.owner)

    sx, sy = _free_tile(rng, world, zone, used)
    _clear_around(world, zone, sx, sy, radius=3)
    spawn = world.add_structure(zone, sx, sy, StructureKind.SPAWN, energy=config.SPAWN_ENERGY_CAPACITY)
    for _ in range(EXTENSIONS_PER_LEVEL.get(level, 0)):
        ex, ey = _free_tile(rng, world, zone, used)
        world.add_structure(zone, ex, ey, StructureKind.EXTENSION, energy=rng.choice((0, config.EXTENSION_ENERGY_CAPACITY)))

    for source in world.entities(zone, Category.SOURCE):
        tile = _neighbour_tile(world, zone, source.pos.x, source.pos.y, used)
        if tile is not None:
            world.add_structure(zone, tile[0], tile[1], StructureKind.CONTAINER, energy=rng.randint(0, 500))

    for _ in range(rng.randint(*config.ENV_DAMAGED_ROADS)):
        rx, ry = _free_tile(rng, world, zone, used)
        road = world.add_structure(zone, rx, ry, StructureKind.ROAD)
        road.hits = rng.randint(road.hits_max // 10, road.hits_max // 2)
    for _ in range(rng.randint(*config.ENV_CONSTRUCTION_SITES)):
        bx, by = _free_tile(rng, world, zone, used)
        world.add_construction_site(zone, bx, by, rng.choice((StructureKind.EXTENSION, StructureKind.ROAD, StructureKind.CONTAINER)))
    dx_, dy_ = _free_tile(rng, world, zone, used)
    world.add_dropped(zone, dx_, dy_, rng.randint(100, 400))

    for index in range(starter_units):
        tile = _neighbour_tile(world, zone, spawn.pos.x, spawn.pos.y, used) or _free_tile(rng, world, zone, used)
        role = STARTER_ROLES[index % len(STARTER_ROLES)]
        world.add_unit(zone, tile[0], tile[1], STARTER_BODIES[role], role=role, name=f"{role}-start-{index}")


def generate_world(
    rng: Any,
    zone_grid: Tuple[int, int] = config.ENV_ZONE_GRID,
    starter_units: int = config.ENV_STARTER_UNITS,
    size: int = config.ZONE_SIZE,
    hostile_chance: float = config.ENV_HOSTILE_CHANCE,
) -> WorldLayout:
    """I produce a deterministic world per seed within the configured bounds; zone (0, 0) is home."""
    world = SimWorld(size=size)
    width, height = zone_grid
    home = zone_name((0, 0))
    layout = WorldLayout(world=world, home=home)
    for gx in range(width):
        for gy in range(height):
            coords = (gx, gy)
            name = zone_name(coords)
            world.add_zone(name, generate_terrain(rng, size), coords=coords)
            used: Set[Tuple[int, int]] = set()
            for _ in range(rng.randint(*config.ENV_SOURCES_PER_ZONE)):
                x, y = _free_tile(rng, world, name, used)
                _clear_around(world, name, x, y)
                world.add_source(name, x, y)
            mx, my = _free_tile(rng, world, name, used)
            world.add_mineral(name, mx, my, mineral_type=rng.choice(("H", "O", "U", "K")))
            hostiles = 0
            if name == home:
                _populate_home(rng, world, name, used, starter_units)
            else:
                kx, ky = _free_tile(rng, world, name, used)
                world.add_controller(name, kx, ky)
                if rng.random() < hostile_chance:
                    hx, hy = _free_tile(rng, world, name, used)
                    world.add_unit(name, hx, hy, [A, A, M, M], owner=config.HOSTILE_OWNER)
                    hostiles = 1
            friction, obstruction = terrain_shares(world.terrain(name))
            layout.zones[name] = ZoneSummary(
                name=name,
                coords=coords,
                sources=len(world.entities(name, Category.SOURCE)),
                friction_share=round(friction, 3),
                obstruction_share=round(obstruction, 3),
                profile=classify(friction, obstruction, transition_score(world.terrain(name))).value,
                hostiles=hostiles,
            )
    return layout
