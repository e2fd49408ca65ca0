from __future__ import annotations

import config
from colony.agents.body import G, M, T
from colony.agents.harvester import HarvesterStrategy
from colony.agents.roles import AgentState
from colony.agents.state_machine import load_transition
from colony.model.memory_store import Scope
from colony.model.tasks import TaskKind
from colony.model.world import Category, StructureKind

from conftest import HOME


class ExplodingHarvester(HarvesterStrategy):
    def harvest(self, agent, ctx):
        raise RuntimeError("boom")


def _model_with(world, make_model, *units):
    for name, x, y, role, energy in units:
        world.add_unit(HOME, x, y, [G, T, M], role=role, name=name, energy=energy)
    model = make_model(world)
    return model, model.refresh_context()


def test_full_collector_flips_to_its_spend_state(world, make_model):
    model, ctx = _model_with(world, make_model, ("h0", 18, 2, "harvester", 50))
    agent = model.workers["h0"]

    assert load_transition(agent) is AgentState.DELIVERING
    model.engine.step(agent, ctx)

    assert agent.memory["state"] == AgentState.DELIVERING.value


def test_empty_spender_flips_back_to_collecting(world, make_model):
    model, ctx = _model_with(world, make_model, ("u0", 18, 2, "upgrader", 0))
    agent = model.workers["u0"]
    agent.memory["state"] = AgentState.UPGRADING.value

    assert load_transition(agent) is AgentState.HARVESTING


def test_state_change_clears_the_remembered_target(world, make_model):
    model, ctx = _model_with(world, make_model, ("h0", 4, 4, "harvester", 0))
    agent = model.workers["h0"]
    agent.memory["target_id"] = "something"

    model.engine.set_state(agent, AgentState.DELIVERING)

    assert agent.memory["target_id"] is None


def test_unknown_state_resets_to_the_initial_state(world, make_model):
    model, ctx = _model_with(world, make_model, ("h0", 4, 4, "harvester", 0))
    agent = model.workers["h0"]
    agent.memory["state"] = "dancing"

    outcome = model.engine.step(agent, ctx)

    assert outcome.transition is AgentState.HARVESTING
    assert agent.memory["state"] == "harvesting"
    assert ctx.analytics.state_resets == 1


def test_one_failing_agent_does_not_stop_the_others(world, make_model):
    model, ctx = _model_with(
        world, make_model, ("bad", 4, 4, "harvester", 0), ("good", 4, 15, "harvester", 0)
    )
    model.workers["bad"].strategy = ExplodingHarvester()

    failed = model.engine.dispatch(model.workers["bad"], ctx)
    fine = model.engine.dispatch(model.workers["good"], ctx)

    assert failed.note == "error:RuntimeError"
    assert ctx.analytics.errors == 1
    assert ctx.analytics.error_log[0]["agent"] == "bad"
    assert model.workers["bad"].memory["state"] == "harvesting"
    assert fine.result is not None and fine.result.ok


def test_outdated_memory_is_rebuilt_from_the_role_default(world, make_model):
    model, ctx = _model_with(world, make_model, ("h0", 4, 4, "harvester", 0))
    agent = model.workers["h0"]
    ctx.store.set(Scope.AGENT, "h0", {"role": "harvester", "state": "delivering"}, version=config.PROTOCOL_VERSION - 1)

    rebuilt = model.engine.validate_memory(agent, ctx)

    assert rebuilt
    assert ctx.analytics.recoveries == 1
    assert agent.memory == HarvesterStrategy().default_memory(agent)


def test_unknown_role_in_memory_is_rebuilt(world, make_model):
    model, ctx = _model_with(world, make_model, ("h0", 4, 4, "harvester", 0))
    agent = model.workers["h0"]
    ctx.store.set(Scope.AGENT, "h0", {"role": "wizard", "state": "casting"})

    assert model.engine.validate_memory(agent, ctx)
    assert agent.memory["role"] == "harvester"


def test_first_run_memory_is_not_counted_as_a_recovery(world, make_model):
    model, ctx = _model_with(world, make_model, ("h0", 4, 4, "harvester", 0))
    ctx.store.delete(Scope.AGENT, "h0")

    assert not model.engine.validate_memory(model.workers["h0"], ctx)
    assert ctx.analytics.recoveries == 0


def test_task_in_progress_takes_the_tick(world, make_model):
    site = world.add_construction_site(HOME, 2, 10, StructureKind.ROAD)
    model, ctx = _model_with(world, make_model, ("b0", 18, 18, "builder", 50))
    agent = model.workers["b0"]
    agent.memory["state"] = AgentState.BUILDING.value
    task_id = model.allocator.create_task(ctx, TaskKind.BUILD, site.id, 50)
    model.allocator.assign(ctx, "b0", task_id)

    outcome = model.engine.step(agent, ctx)

    assert outcome.note == "task"
    assert model.allocator.task_for("b0").id == task_id
    assert agent.memory["target_id"] is None


def test_finished_task_is_released(world, make_model):
    model, ctx = _model_with(world, make_model, ("c0", 10, 11, "builder", 50))
    spawn = world.entities(HOME, Category.STRUCTURE, lambda s: s.kind is StructureKind.SPAWN)[0]
    spawn.energy = 0
    task_id = model.allocator.create_task(ctx, TaskKind.TRANSFER, spawn.id, 100)
    model.allocator.assign(ctx, "c0", task_id)

    model.engine.step(model.workers["c0"], ctx)

    assert spawn.energy == 50
    assert model.allocator.task_for("c0") is None
    assert model.allocator.stats.completed == 1
