from __future__ import annotations

from colony.agents.body import A, G, M, T, body_cost
from colony.model.memory_store import REMOTE_ZONES, SCOUTED_ZONES, Scope
from colony.model.planner import (
    compute_deficits,
    desired_counts,
    expansion_targets,
    foreign_structures,
    plan,
    plan_spawn,
    record_sightings,
    refresh_expansion_targets,
    refresh_remote_zones,
    remote_zones,
    scan_zone,
    scouting_stale,
    unmet_roles,
)
from colony.model.world import Category, StructureKind

from conftest import EAST, HOME, SOUTH


def _scouted(ctx, entries):
    ctx.store.set(Scope.GLOBAL, SCOUTED_ZONES, entries)


def _entry(controller_id, sources, seen_at=0, owner=None, hostiles=0):
    return {
        "seen_at": seen_at,
        "sources": sources,
        "controller_id": controller_id,
        "owner": owner,
        "reserved_by": None,
        "reservation": 0,
        "hostiles": hostiles,
    }


def test_desired_counts_clamp_out_of_range_levels():
    assert desired_counts(0) == desired_counts(1)
    assert desired_counts(12) == desired_counts(8)
    assert desired_counts(1)["harvester"] == 3


def test_deficits_are_desired_minus_current_and_surplus_is_negative():
    deficits = compute_deficits({"harvester": 3, "builder": 1}, {"harvester": 1, "builder": 2, "scout": 1})

    assert deficits == {"builder": -1, "harvester": 2, "scout": -1}
    assert unmet_roles(deficits) == {"harvester": 2}


def test_scan_collects_every_open_need(world, make_model):
    extension = world.add_structure(HOME, 11, 10, StructureKind.EXTENSION)
    spawn = world.entities(HOME, Category.STRUCTURE, lambda s: s.kind is StructureKind.SPAWN)[0]
    spawn.energy = 0
    road = world.add_structure(HOME, 5, 5, StructureKind.ROAD, hits=100)
    healthy = world.add_structure(HOME, 6, 5, StructureKind.ROAD)
    world.add_dropped(HOME, 7, 7, 40)
    big_drop = world.add_dropped(HOME, 7, 8, 400)
    site = world.add_construction_site(HOME, 8, 2, StructureKind.EXTENSION)
    invader = world.add_unit(HOME, 1, 1, [A, M], owner="invader")
    model = make_model(world)

    demand = scan_zone(model.refresh_context(), HOME)

    assert demand.refill_ids == [spawn.id, extension.id]
    assert road.id in demand.repair_ids and healthy.id not in demand.repair_ids
    assert demand.pickup_ids == [big_drop.id]
    assert demand.build_ids == [site.id]
    assert demand.hostile_ids == [invader.id]
    assert demand.controller_id == world.controller(HOME).id
    assert demand.level == 2


def test_plan_only_covers_owned_zones(world, make_model):
    model = make_model(world)
    ctx = model.refresh_context()

    demands = plan(ctx)

    assert list(demands) == [HOME]
    assert ctx.demands is demands
    assert ctx.store.get_data(Scope.ZONE, HOME)["stage"] == "bootstrap"


def test_spawn_follows_the_order_and_uses_available_energy_when_starving(world, make_model):
    model = make_model(world)
    ctx = model.refresh_context()
    demand = scan_zone(ctx, HOME)

    request = plan_spawn(ctx, demand, model.registry)

    assert request.role == "harvester"
    assert request.body == [G, G, T, M]
    assert request.cost <= demand.energy_available
    assert request.name == f"harvester-{HOME}-0"


def test_spawn_waits_for_energy_instead_of_skipping_ahead(make_world, make_model):
    world = make_world(spawn_energy=100)
    world.add_unit(HOME, 4, 4, [G, T, M], role="harvester", name="h0")
    model = make_model(world)
    ctx = model.refresh_context()

    assert plan_spawn(ctx, scan_zone(ctx, HOME), model.registry) is None


def test_spawn_request_fits_the_budget_at_every_level(make_world, make_model):
    for level in range(1, 9):
        world = make_world(level=level)
        world.add_unit(HOME, 4, 4, [G, T, M], role="harvester", name="h0")
        model = make_model(world)
        ctx = model.refresh_context()
        demand = scan_zone(ctx, HOME)
        request = plan_spawn(ctx, demand, model.registry)
        if request is not None:
            assert body_cost(request.body) <= demand.energy_available


def test_sightings_record_zones_our_units_stand_in(world, make_model):
    world.add_unit(EAST, 2, 2, [M], role="scout", name="eyes")
    model = make_model(world)
    ctx = model.refresh_context()

    seen = record_sightings(ctx)

    scouted = ctx.store.get_data(Scope.GLOBAL, SCOUTED_ZONES)
    assert seen == [EAST]
    assert scouted[EAST]["sources"] == 1
    assert scouted[EAST]["owner"] is None


def test_expansion_targets_rank_by_sources_and_skip_hostile_or_owned(world, make_model):
    model = make_model(world)
    ctx = model.refresh_context()
    _scouted(
        ctx,
        {
            EAST: _entry(world.controller(EAST).id, 1),
            SOUTH: _entry(world.controller(SOUTH).id, 2),
            "Z11": _entry("ctrl-x", 3, hostiles=2),
            "Z20": _entry("ctrl-y", 3, owner="someone"),
        },
    )

    assert refresh_expansion_targets(ctx) == [SOUTH, EAST]
    assert expansion_targets(ctx) == [SOUTH, EAST]


def test_remote_zones_exclude_the_claim_target(world, make_model):
    model = make_model(world)
    ctx = model.refresh_context()
    _scouted(
        ctx,
        {
            EAST: _entry(world.controller(EAST).id, 2),
            SOUTH: _entry(world.controller(SOUTH).id, 1),
        },
    )
    refresh_expansion_targets(ctx)

    assert refresh_remote_zones(ctx, HOME) == [SOUTH]
    assert remote_zones(ctx, HOME) == [SOUTH]
    demand = scan_zone(ctx, HOME)
    assert demand.reserve_ids == [world.controller(SOUTH).id]
    assert demand.remote_source_ids == [s.id for s in world.entities(SOUTH, Category.SOURCE)]
    # Level 2 home does not claim yet.
    assert demand.claim_ids == []


def test_claims_start_at_level_three(make_world, make_model):
    world = make_world(level=3)
    model = make_model(world)
    ctx = model.refresh_context()
    _scouted(ctx, {EAST: _entry(world.controller(EAST).id, 2)})
    refresh_expansion_targets(ctx)

    assert scan_zone(ctx, HOME).claim_ids == [world.controller(EAST).id]


def test_scouting_goes_stale_until_every_neighbour_is_seen(world, make_model):
    model = make_model(world)
    ctx = model.refresh_context()
    assert scouting_stale(ctx, HOME)

    _scouted(ctx, {EAST: _entry("a", 1, seen_at=0), SOUTH: _entry("b", 1, seen_at=0)})
    assert not scouting_stale(ctx, HOME)

    ctx.tick = 1500
    assert scouting_stale(ctx, HOME)


def test_foreign_structures_here_and_in_remotes_are_marked_for_teardown(world, make_model):
    tower = world.add_structure(HOME, 2, 2, StructureKind.TOWER, owner="invader")
    spawn = world.add_structure(HOME, 18, 2, StructureKind.SPAWN, owner="invader")
    world.add_structure(HOME, 2, 18, StructureKind.ROAD, owner="invader")
    world.add_structure(HOME, 4, 18, StructureKind.EXTENSION, owner=None)
    outpost = world.add_structure(SOUTH, 8, 8, StructureKind.EXTENSION, owner="invader")
    model = make_model(world)
    ctx = model.refresh_context()
    ctx.store.set(Scope.GLOBAL, REMOTE_ZONES, {HOME: {"zones": [SOUTH], "updated_at": 0}})

    demand = scan_zone(ctx, HOME)

    assert foreign_structures(ctx, HOME) == [spawn, tower]
    assert demand.foreign_structure_ids == [spawn.id, tower.id, outpost.id]
    assert demand.unmet["destroyer"] == 1


def test_no_destroyer_is_wanted_while_nothing_foreign_stands(world, make_model):
    model = make_model(world)

    demand = scan_zone(model.refresh_context(), HOME)

    assert demand.foreign_structure_ids == []
    assert demand.desired["destroyer"] == 0
    assert "destroyer" not in demand.unmet
