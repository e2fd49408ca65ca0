from __future__ import annotations

import numpy as np

import config
from colony.agents.body import A, G, M, T
from colony.model.movement import (
    MovementCostModel,
    TerrainProfile,
    classify,
    hostile_penalty,
    replan_interval,
    terrain_shares,
    transition_score,
)
from colony.model.world import Position, SimWorld, StructureKind

from conftest import HOME


def _striped(size=50):
    """Alternating wall/plain columns: heavy obstruction with lots of wall transitions."""
    terrain = np.full((size, size), config.TERRAIN_PLAIN, dtype=np.uint8)
    terrain[:, ::2] = config.TERRAIN_WALL
    return terrain


def test_classification_thresholds():
    assert classify(0.5, 0.0, 0.0) is TerrainProfile.HIGH_FRICTION
    assert classify(0.0, 0.4, 5.0) is TerrainProfile.LABYRINTHINE
    assert classify(0.0, 0.4, 1.0) is TerrainProfile.OBSTRUCTED
    assert classify(0.05, 0.05, 0.0) is TerrainProfile.OPEN
    assert classify(0.2, 0.2, 0.0) is TerrainProfile.MIXED


def test_striped_terrain_reads_as_a_labyrinth():
    terrain = _striped()
    friction, obstruction = terrain_shares(terrain)

    assert friction == 0.0
    assert obstruction == 0.5
    assert transition_score(terrain) > config.LABYRINTH_TRANSITION_THRESHOLD


def test_terrain_analysis_is_cached_until_the_ttl_runs_out(world):
    movement = MovementCostModel(world)

    first = movement.analyse(HOME, 0)
    assert movement.analyse(HOME, 999) is first
    assert movement.recomputations == 1

    refreshed = movement.analyse(HOME, 1000)
    assert refreshed is not first
    assert refreshed.analysed_at == 1000
    assert movement.recomputations == 2


def test_hostile_arriving_shows_up_on_the_next_request_despite_the_cache(world):
    movement = MovementCostModel(world)
    before = movement.cost_surface(HOME, 5)
    assert before[5, 15] == 1

    world.add_unit(HOME, 15, 5, [A, M], owner=config.HOSTILE_OWNER)
    after = movement.cost_surface(HOME, 5)

    assert movement.recomputations == 1
    assert after[5, 15] == hostile_penalty(0) == 80
    assert after[5, 16] == hostile_penalty(1)
    assert before[5, 15] == 1


def test_static_and_occupancy_layers(world):
    world.terrain(HOME)[2, 2] = config.TERRAIN_WALL
    world.terrain(HOME)[2, 4] = config.TERRAIN_SWAMP
    world.add_structure(HOME, 6, 18, StructureKind.ROAD)
    world.add_construction_site(HOME, 8, 18, StructureKind.EXTENSION)
    world.add_unit(HOME, 12, 18, [G, T, M], name="friend")
    movement = MovementCostModel(world)

    surface = movement.cost_surface(HOME, 0)

    assert surface[2, 2] == config.COST_IMPASSABLE
    assert surface[2, 4] == 10
    assert surface[10, 10] == config.COST_IMPASSABLE
    assert surface[18, 6] == config.COST_ROAD
    assert surface[18, 8] == config.COST_CONSTRUCTION
    assert surface[18, 12] == config.COST_ALLY
    assert surface[3, 4] == config.COST_RESOURCE_BUFFER
    assert surface[14, 14] == config.COST_UPGRADE_FOCUS
    assert surface[15, 15] == 1


def test_congested_tiles_cost_one_more(world):
    traffic = world.traffic(HOME)
    traffic[0, 0] = config.CONGESTION_TRAFFIC_THRESHOLD + 1
    movement = MovementCostModel(world)

    surface = movement.cost_surface(HOME, 0)

    assert surface[0, 0] == 2
    assert surface[0, 1] == 1


def test_replan_interval_tracks_trip_length():
    assert replan_interval(30, 2) == 3
    assert replan_interval(10, 40) == 30
    assert replan_interval(20, 10) == 15
    assert replan_interval(30, 40, cross_zone=True) == config.CROSS_ZONE_REPLAN_CAP
    assert replan_interval(30, 2, role="harvester") == config.STEADY_ROLE_REPLAN_FLOOR


def test_heavy_carriers_get_heavier_terrain_costs():
    world = SimWorld(size=20)
    world.add_zone(HOME)
    light = world.add_unit(HOME, 2, 2, [T, M], name="light")
    heavy = world.add_unit(HOME, 3, 3, [T] * 11 + [M], name="heavy")
    movement = MovementCostModel(world)
    goal = Position(15, 15, HOME)

    light_opts = movement.path_options(light, goal, 0)
    heavy_opts = movement.path_options(heavy, goal, 0)

    assert (light_opts.plain_cost, light_opts.friction_cost) == (1, 10)
    assert (heavy_opts.plain_cost, heavy_opts.friction_cost) == (config.HEAVY_PLAIN_COST, config.HEAVY_FRICTION_COST)
    assert heavy_opts.profile is TerrainProfile.OPEN
    assert not heavy_opts.cross_zone


def test_agent_moves_see_a_hostile_that_arrived_after_the_route_was_tuned(world, make_model):
    world.add_unit(HOME, 2, 12, [G, T, M], role="harvester", name="walker")
    model = make_model(world)
    agent = model.workers["walker"]
    goal = Position(18, 12, HOME)

    agent.move_to(goal)
    tuned = agent._route[1]
    assert world.pending_move("walker").surface[12, 9] == 1

    world.add_unit(HOME, 10, 12, [A, M], owner=config.HOSTILE_OWNER)
    world.tick = 1
    agent.move_to(goal)

    fresh = model.movement.cost_surface(HOME, 1)
    assert agent._route[1] is tuned
    assert world.pending_move("walker").surface[12, 9] == fresh[12, 9] == hostile_penalty(1)
