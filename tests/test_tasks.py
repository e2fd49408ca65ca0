from __future__ import annotations

import pytest

from colony.agents.body import G, M, T
from colony.model.memory_store import StateStore
from colony.model.planner import scan_zone
from colony.model.tasks import (
    InvalidTarget,
    TaskAllocator,
    TaskKind,
    TaskStatus,
    UnknownAgent,
    UnknownTask,
    load_compatible,
)
from colony.model.world import Category, StructureKind

from conftest import HOME


def _sources(world):
    return sorted(world.entities(HOME, Category.SOURCE), key=lambda s: s.id)


def _builders(world, count, energy=0):
    for index in range(count):
        world.add_unit(HOME, 10 + index, 12, [G, T, M], role="builder", name=f"b{index}", energy=energy)


def test_offers_go_out_highest_priority_first(world, make_model):
    extra = world.add_source(HOME, 16, 3)
    _builders(world, 3)
    model = make_model(world)
    ctx = model.refresh_context()
    allocator = model.allocator
    first, second = _sources(world)[:2]
    allocator.create_task(ctx, TaskKind.HARVEST, first.id, 10)
    allocator.create_task(ctx, TaskKind.HARVEST, second.id, 50)
    allocator.create_task(ctx, TaskKind.HARVEST, extra.id, 30)

    handed_out = []
    for name in ("b0", "b1", "b2"):
        task = allocator.find_best_task(ctx, model.workers[name])
        allocator.assign(ctx, name, task.id)
        handed_out.append(task.priority)

    assert handed_out == [50, 30, 10]
    assert allocator.find_best_task(ctx, model.workers["b0"]).priority == 50


def test_equal_priority_goes_to_the_older_task(world, make_model):
    _builders(world, 1)
    model = make_model(world)
    ctx = model.refresh_context()
    first, second = _sources(world)
    older = model.allocator.create_task(ctx, TaskKind.HARVEST, second.id, 40)
    model.allocator.create_task(ctx, TaskKind.HARVEST, first.id, 40)

    assert model.allocator.find_best_task(ctx, model.workers["b0"]).id == older


def test_assigning_again_releases_the_previous_task(world, make_model):
    _builders(world, 1)
    model = make_model(world)
    ctx = model.refresh_context()
    allocator = model.allocator
    first, second = _sources(world)
    a = allocator.create_task(ctx, TaskKind.HARVEST, first.id, 90)
    b = allocator.create_task(ctx, TaskKind.HARVEST, second.id, 90)

    allocator.assign(ctx, "b0", a)
    allocator.assign(ctx, "b0", b)

    assert allocator.get(a).assigned == []
    assert allocator.get(b).assigned == ["b0"]
    assert allocator.task_for("b0").id == b
    assert allocator.unassign("b0") == b
    assert allocator.unassign("b0") is None


def test_agents_without_the_capability_are_never_offered_the_task(world, make_model):
    world.add_unit(HOME, 11, 11, [T, T, M, M], role="hauler", name="carrier")
    model = make_model(world)
    ctx = model.refresh_context()
    model.allocator.create_task(ctx, TaskKind.HARVEST, _sources(world)[0].id, 90)

    assert model.allocator.find_best_task(ctx, model.workers["carrier"]) is None


def test_full_tasks_are_skipped(world, make_model):
    _builders(world, 2)
    model = make_model(world)
    ctx = model.refresh_context()
    task_id = model.allocator.create_task(ctx, TaskKind.HARVEST, _sources(world)[0].id, 90)
    model.allocator.assign(ctx, "b0", task_id)

    assert model.allocator.get(task_id).is_full()
    assert model.allocator.find_best_task(ctx, model.workers["b1"]) is None


def test_bad_ids_raise(world, make_model):
    _builders(world, 1)
    model = make_model(world)
    ctx = model.refresh_context()
    task_id = model.allocator.create_task(ctx, TaskKind.HARVEST, _sources(world)[0].id, 90)

    with pytest.raises(InvalidTarget):
        model.allocator.create_task(ctx, TaskKind.HARVEST, "no-such-source", 90)
    with pytest.raises(UnknownTask):
        model.allocator.assign(ctx, "b0", 999)
    with pytest.raises(UnknownAgent):
        model.allocator.assign(ctx, "ghost", task_id)


def test_cleanup_drops_tasks_whose_target_is_gone(world, make_model):
    _builders(world, 1)
    drop = world.add_dropped(HOME, 8, 8, 300)
    model = make_model(world)
    ctx = model.refresh_context()
    task_id = model.allocator.create_task(ctx, TaskKind.PICKUP, drop.id, 10)
    model.allocator.assign(ctx, "b0", task_id)

    world.remove(drop.id)
    removed = model.allocator.cleanup(model.refresh_context())

    assert removed == {task_id: "target_gone"}
    assert model.allocator.task_for("b0") is None


def test_tasks_expire_at_the_age_ceiling(world, make_model):
    _builders(world, 1)
    model = make_model(world)
    ctx = model.refresh_context()
    task_id = model.allocator.create_task(ctx, TaskKind.HARVEST, _sources(world)[0].id, 90)
    model.allocator.assign(ctx, "b0", task_id)

    world.tick = 299
    assert model.allocator.cleanup(model.refresh_context()) == {}
    world.tick = 300
    assert model.allocator.cleanup(model.refresh_context()) == {task_id: "expired"}


def test_unclaimed_filler_work_is_dropped_but_economy_work_persists(world, make_model):
    model = make_model(world)
    ctx = model.refresh_context()
    upgrade = model.allocator.create_task(ctx, TaskKind.UPGRADE, world.controller(HOME).id, 30)
    harvest = model.allocator.create_task(ctx, TaskKind.HARVEST, _sources(world)[0].id, 90)

    removed = model.allocator.cleanup(model.refresh_context())

    assert removed == {upgrade: "unclaimed"}
    assert harvest in model.allocator


def test_harvester_deficit_becomes_one_task_per_missing_harvester(make_world, make_model):
    world = make_world(level=1)
    world.add_unit(HOME, 4, 4, [G, T, M], role="harvester", name="h0")
    model = make_model(world)
    ctx = model.refresh_context()
    demand = scan_zone(ctx, HOME)

    model.allocator.allocate(ctx, demand)
    model.allocator.allocate(ctx, demand)

    harvest = model.allocator.tasks_in(HOME, TaskKind.HARVEST)
    assert demand.deficits["harvester"] == 2
    assert len(harvest) == 2
    assert {task.target_id for task in harvest} == {s.id for s in _sources(world)}


def test_allocate_hands_refill_work_to_loaded_haulers(make_world, make_model):
    world = make_world(spawn_energy=100)
    world.add_unit(HOME, 9, 9, [T, T, M, M], role="hauler", name="carrier", energy=100)
    model = make_model(world)
    ctx = model.refresh_context()

    result = model.allocator.allocate(ctx, scan_zone(ctx, HOME))

    task = model.allocator.task_for("carrier")
    assert result["assigned"] == 1
    assert task.kind is TaskKind.TRANSFER
    assert world.resolve(task.target_id).kind is StructureKind.SPAWN


def test_load_filter_keeps_empty_agents_off_delivery_work(world, make_model):
    _builders(world, 1)
    model = make_model(world)
    ctx = model.refresh_context()
    spawn = world.entities(HOME, Category.STRUCTURE)[0]
    transfer = model.allocator.create_task(ctx, TaskKind.TRANSFER, spawn.id, 100)

    assert not load_compatible(model.workers["b0"], model.allocator.get(transfer))


def test_execute_moves_toward_an_out_of_range_target(world, make_model):
    world.add_unit(HOME, 18, 18, [G, T, M], role="builder", name="far", energy=50)
    site = world.add_construction_site(HOME, 2, 10, StructureKind.ROAD)
    model = make_model(world)
    ctx = model.refresh_context()
    task_id = model.allocator.create_task(ctx, TaskKind.BUILD, site.id, 50)
    model.allocator.assign(ctx, "far", task_id)

    status = model.allocator.execute_task(ctx, model.workers["far"], model.allocator.get(task_id))

    assert status is TaskStatus.IN_PROGRESS
    assert world.pending_move("far") is not None
    assert site.progress == 0


def test_execute_build_in_range_makes_progress(world, make_model):
    world.add_unit(HOME, 4, 10, [G, T, M], role="builder", name="near", energy=50)
    site = world.add_construction_site(HOME, 2, 10, StructureKind.ROAD)
    model = make_model(world)
    ctx = model.refresh_context()
    task_id = model.allocator.create_task(ctx, TaskKind.BUILD, site.id, 50)
    model.allocator.assign(ctx, "near", task_id)

    status = model.allocator.execute_task(ctx, model.workers["near"], model.allocator.get(task_id))

    assert status is TaskStatus.IN_PROGRESS
    assert site.progress == 5
    assert world.resolve("near").energy == 45


def test_pool_survives_a_save_and_load(world, make_model):
    _builders(world, 1)
    model = make_model(world)
    ctx = model.refresh_context()
    task_id = model.allocator.create_task(ctx, TaskKind.HARVEST, _sources(world)[0].id, 90)
    model.allocator.assign(ctx, "b0", task_id)
    store = StateStore()
    model.allocator.save(store)

    restored = TaskAllocator()
    assert restored.load(store) == 1
    assert restored.task_for("b0").id == task_id
    fresh = restored.create_task(ctx, TaskKind.HARVEST, _sources(world)[1].id, 90)
    assert fresh > task_id


def test_foreign_structures_become_dismantle_and_attack_work(world, make_model):
    tower = world.add_structure(HOME, 2, 2, StructureKind.TOWER, owner="invader")
    model = make_model(world)
    ctx = model.refresh_context()

    model.allocator.allocate(ctx, scan_zone(ctx, HOME))
    model.allocator.allocate(ctx, scan_zone(ctx, HOME))

    dismantle = model.allocator.tasks_in(HOME, TaskKind.DISMANTLE)
    attack = model.allocator.tasks_in(HOME, TaskKind.ATTACK)
    assert [task.target_id for task in dismantle] == [tower.id]
    assert [task.target_id for task in attack] == [tower.id]
    assert dismantle[0].priority == attack[0].priority
