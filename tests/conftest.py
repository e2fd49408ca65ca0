from __future__ import annotations

import pytest

from colony.model.world import SimWorld, StructureKind
from colony.model.world_model import ColonyModel

HOME = "Z00"
EAST = "Z10"
SOUTH = "Z01"


def _small_world(level: int = 2, spawn_energy: int = 300) -> SimWorld:
    """Plain 20x20 home zone with two neighbours; controller, spawn, and two sources at home."""
    world = SimWorld(size=20)
    world.add_zone(HOME, coords=(0, 0))
    world.add_zone(EAST, coords=(1, 0))
    world.add_zone(SOUTH, coords=(0, 1))
    world.add_controller(HOME, 15, 15, level=level, owner=world.owner)
    world.add_structure(HOME, 10, 10, StructureKind.SPAWN, energy=spawn_energy)
    world.add_source(HOME, 3, 3)
    world.add_source(HOME, 3, 16)
    world.add_controller(EAST, 10, 10)
    world.add_source(EAST, 5, 5)
    world.add_controller(SOUTH, 10, 10)
    world.add_source(SOUTH, 5, 5)
    return world


@pytest.fixture
def world() -> SimWorld:
    return _small_world()


@pytest.fixture
def make_world():
    return _small_world


@pytest.fixture
def make_model():
    def build(world: SimWorld) -> ColonyModel:
        return ColonyModel(random_seed=7, world=world)

    return build
