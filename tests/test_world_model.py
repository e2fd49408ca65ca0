from __future__ import annotations

import json
import random

import pytest

from colony.agents.body import G, M, T
from colony.model.environment import generate_world
from colony.model.log_utils import summarize_chronicle
from colony.model.memory_store import TASKS, Scope, StateStore
from colony.model.tasks import TaskKind
from colony.model.world import Category
from colony.model.world_model import ColonyModel

from conftest import HOME


@pytest.fixture
def ran_model():
    model = ColonyModel(random_seed=3)
    for _ in range(5):
        model.step()
    return model


def test_generated_world_has_an_owned_home(ran_model):
    layout = ran_model.layout
    controller = layout.world.controller(layout.home)

    assert layout.home == "Z00"
    assert controller.owner == layout.world.owner
    assert controller.level == 2
    assert len(layout.zones) == 4
    assert all(summary.sources >= 1 for summary in layout.zones.values())


def test_a_short_run_records_every_tick(ran_model):
    frame = ran_model.datacollector.get_model_vars_dataframe()
    ticks = [entry for entry in ran_model.chronicle if entry["event_type"] == "tick"]

    assert ran_model.tick == 5
    assert len(frame) == 6
    assert [entry["tick"] for entry in ticks] == [0, 1, 2, 3, 4]
    assert ran_model.store.get(Scope.GLOBAL, TASKS) is not None
    assert summarize_chronicle(ran_model.chronicle)["ticks"] == 5


def test_same_seed_same_run():
    first = ColonyModel(random_seed=11)
    second = ColonyModel(random_seed=11)
    for _ in range(4):
        first.step()
        second.step()

    assert first.datacollector.get_model_vars_dataframe().equals(second.datacollector.get_model_vars_dataframe())
    assert sorted(first.workers) == sorted(second.workers)


def test_seeds_generate_reproducible_layouts():
    one = generate_world(random.Random(5))
    two = generate_world(random.Random(5))

    assert {name: vars(s) for name, s in one.zones.items()} == {name: vars(s) for name, s in two.zones.items()}


def test_vanished_unit_loses_agent_memory_and_task(world, make_model):
    world.add_unit(HOME, 4, 4, [G, T, M], role="harvester", name="h0")
    model = make_model(world)
    ctx = model.refresh_context()
    source = world.entities(HOME, Category.SOURCE)[0]
    task_id = model.allocator.create_task(ctx, TaskKind.HARVEST, source.id, 90)
    model.allocator.assign(ctx, "h0", task_id)

    world.remove("h0")
    model.step()

    assert "h0" not in model.workers
    assert model.store.get(Scope.AGENT, "h0") is None
    assert model.allocator.task_for("h0") is None
    assert model.allocator.get(task_id).assigned == []


def test_memory_survives_a_restart(tmp_path, world, make_model):
    world.add_unit(HOME, 4, 4, [G, T, M], role="upgrader", name="u0")
    model = make_model(world)
    model.step()
    path = tmp_path / "memory.json"
    model.save_memory(path)

    restored = ColonyModel(random_seed=7, world=world, store=StateStore.load(path))

    assert restored.workers["u0"].role == "upgrader"
    assert len(restored.allocator) == len(model.allocator)


def test_exports_write_files(tmp_path, ran_model):
    ran_model.enable_agent_state_logging(tmp_path)
    ran_model.step()
    ran_model.save_chronicle(tmp_path / "chronicle.json")
    ran_model.save_config_summary(tmp_path / "config.txt")

    chronicle = json.loads((tmp_path / "chronicle.json").read_text(encoding="utf-8"))
    states = (tmp_path / "agent_state.jsonl").read_text(encoding="utf-8").splitlines()

    assert [entry["tick"] for entry in chronicle if entry["event_type"] == "tick"][-1] == 5
    assert len(states) == len(ran_model.workers)
    assert "Seed: 3" in (tmp_path / "config.txt").read_text(encoding="utf-8")
    assert ran_model.agent_state_log is None


def test_worker_position_comes_from_its_unit(world, make_model):
    world.add_unit(HOME, 4, 4, [G, T, M], role="harvester", name="h0")
    model = make_model(world)
    agent = model.workers["h0"]

    assert agent in model.agents
    assert agent.position == world.resolve("h0").pos
    assert getattr(agent, "pos", None) is None
