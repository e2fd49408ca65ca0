from __future__ import annotations

import pytest

from colony.agents.body import G, M, T
from colony.model.actions import ActionCode, ActionGuard, ActionKind, Actuator
from colony.model.world import Category, Position

from conftest import HOME


def _miner(world, x=4, y=3):
    world.add_unit(HOME, x, y, [G, T, M], name="miner")
    guard = ActionGuard()
    return Actuator(world, "miner", guard), guard


def _source(world):
    return min(world.entities(HOME, Category.SOURCE), key=lambda s: s.id)


def test_second_action_in_a_tick_is_ignored_without_touching_the_world(world):
    actuator, guard = _miner(world)
    source = _source(world)

    first = actuator.perform(ActionKind.GATHER, source)
    after_first = source.energy
    second = actuator.perform(ActionKind.GATHER, source)

    assert first.ok
    assert second.code is ActionCode.IGNORED
    assert source.energy == after_first
    assert world.resolve("miner").energy == 2
    assert guard.attempts == 2


def test_guard_latches_even_when_the_first_call_is_out_of_range(world):
    actuator, guard = _miner(world, x=12, y=12)
    source = _source(world)

    first = actuator.perform(ActionKind.GATHER, source)
    second = actuator.perform(ActionKind.TRANSFER, world.entities(HOME, Category.STRUCTURE)[0])

    assert first.not_in_range
    assert second.ignored
    assert guard.spent_on is ActionKind.GATHER


def test_failed_action_also_spends_the_guard(world):
    actuator, guard = _miner(world)
    controller = world.controller(HOME)

    result = actuator.perform(ActionKind.CLAIM, controller)

    assert result.failed and result.reason == "no_capability"
    assert guard.spent
    assert actuator.perform(ActionKind.GATHER, _source(world)).ignored


def test_move_intents_bypass_the_guard(world):
    actuator, guard = _miner(world)
    actuator.perform(ActionKind.GATHER, _source(world))

    result = actuator.move_to(Position(12, 12, HOME))

    assert result.ok
    assert world.pending_move("miner") is not None


def test_reset_reopens_the_guard_for_the_next_tick(world):
    actuator, guard = _miner(world)
    source = _source(world)
    actuator.perform(ActionKind.GATHER, source)

    guard.reset()

    assert not guard.spent
    assert actuator.perform(ActionKind.GATHER, source).ok


def test_move_is_not_a_guarded_primitive(world):
    actuator, _ = _miner(world)

    with pytest.raises(ValueError):
        actuator.perform(ActionKind.MOVE, Position(1, 1, HOME))
