from __future__ import annotations

import config
from colony.agents.body import A, C, G, M, T, X
from colony.agents.claimer import least_recently_seen
from colony.agents.harvester import choose_source
from colony.model.actions import ActionKind
from colony.model.memory_store import EXPANSION_TARGETS, REMOTE_ZONES, SCOUTED_ZONES, Scope
from colony.model.planner import expansion_targets
from colony.model.world import Category, StructureKind

from conftest import EAST, HOME, SOUTH


def test_harvester_picks_the_least_crowded_source(world, make_model):
    near, far = sorted(world.entities(HOME, Category.SOURCE), key=lambda s: s.pos.y)
    world.add_unit(HOME, 4, 3, [G, T, M], role="harvester", name="h0")
    world.add_unit(HOME, 4, 4, [G, T, M], role="harvester", name="h1")
    model = make_model(world)
    ctx = model.refresh_context()
    model.workers["h0"].memory["source_id"] = near.id

    assert choose_source(model.workers["h1"], ctx) is far
    assert choose_source(model.workers["h0"], ctx) is near


def test_hauler_withdraws_from_the_fullest_container(world, make_model):
    world.add_structure(HOME, 5, 10, StructureKind.CONTAINER, energy=100)
    full = world.add_structure(HOME, 6, 10, StructureKind.CONTAINER, energy=400)
    world.add_unit(HOME, 18, 18, [T, T, M, M], role="hauler", name="carrier")
    model = make_model(world)
    ctx = model.refresh_context()
    agent = model.workers["carrier"]

    outcome = agent.strategy.collect(agent, ctx)

    assert outcome.result.not_in_range
    assert agent.memory["target_id"] == full.id
    assert world.pending_move("carrier") is not None


def test_defender_attacks_an_adjacent_hostile(world, make_model):
    world.add_unit(HOME, 5, 5, [A, M], role="defender", name="guard")
    invader = world.add_unit(HOME, 5, 6, [A, M], owner=config.HOSTILE_OWNER)
    model = make_model(world)
    ctx = model.refresh_context()
    agent = model.workers["guard"]

    outcome = agent.strategy.patrol(agent, ctx)

    assert outcome.result.ok
    assert invader.hits < invader.hits_max


def test_scout_heads_for_the_zone_seen_longest_ago(world, make_model):
    model = make_model(world)
    ctx = model.refresh_context()

    assert least_recently_seen(ctx, HOME) == SOUTH

    ctx.store.set(Scope.GLOBAL, SCOUTED_ZONES, {EAST: {"seen_at": 3}, SOUTH: {"seen_at": 8}})
    assert least_recently_seen(ctx, HOME) == EAST


def _claimer_next_to(world, make_model, zone):
    world.add_unit(zone, 9, 10, [C, M], role="claimer", name="flag")
    model = make_model(world)
    ctx = model.refresh_context()
    ctx.store.set(Scope.GLOBAL, EXPANSION_TARGETS, {"zones": [zone], "updated_at": 0})
    return model.workers["flag"], ctx


def test_claimer_takes_a_free_controller_with_one_action(world, make_model):
    agent, ctx = _claimer_next_to(world, make_model, EAST)

    outcome = agent.strategy.claim(agent, ctx)

    assert outcome.result.ok
    assert world.controller(EAST).owner == world.owner
    assert agent.guard.spent_on is ActionKind.CLAIM
    assert agent.guard.attempts == 1


def test_claimer_gives_up_a_controller_reserved_by_someone_else(world, make_model):
    world.controller(EAST).reserved_by = "rival"
    agent, ctx = _claimer_next_to(world, make_model, EAST)

    outcome = agent.strategy.claim(agent, ctx)

    assert outcome.result is None
    assert outcome.note == "reserved:rival"
    assert not agent.guard.spent
    assert world.controller(EAST).owner is None
    assert expansion_targets(ctx) == []
    assert agent.memory["target_zone"] is None


def test_destroyer_strikes_the_most_dangerous_foreign_structure(world, make_model):
    world.add_unit(HOME, 5, 5, [A, M, X], role="destroyer", name="wrecker")
    tower = world.add_structure(HOME, 5, 6, StructureKind.TOWER, owner=config.HOSTILE_OWNER)
    spawn = world.add_structure(HOME, 18, 2, StructureKind.SPAWN, owner=config.HOSTILE_OWNER)
    model = make_model(world)
    ctx = model.refresh_context()
    agent = model.workers["wrecker"]

    outcome = agent.strategy.destroy(agent, ctx)

    assert outcome.result.not_in_range
    assert spawn.hits == spawn.hits_max and tower.hits == tower.hits_max
    assert world.pending_move("wrecker").goal == spawn.pos


def test_destroyer_heads_for_a_remote_with_foreign_structures(world, make_model):
    world.add_unit(HOME, 5, 5, [A, M, X], role="destroyer", name="wrecker")
    world.add_structure(SOUTH, 8, 8, StructureKind.EXTENSION, owner=config.HOSTILE_OWNER)
    model = make_model(world)
    ctx = model.refresh_context()
    ctx.store.set(Scope.GLOBAL, REMOTE_ZONES, {HOME: {"zones": [SOUTH], "updated_at": 0}})
    agent = model.workers["wrecker"]

    outcome = agent.strategy.destroy(agent, ctx)

    assert outcome.note == f"heading:{SOUTH}"
    assert agent.memory["target_zone"] == SOUTH
    assert world.pending_move("wrecker").goal.zone == SOUTH
