from __future__ import annotations

import pytest

from colony.model.scheduler import DutyCycleScheduler


def test_slots_are_dealt_round_robin():
    scheduler = DutyCycleScheduler(3)

    slots = [scheduler.register(name) for name in ("a", "b", "c", "d")]

    assert slots == [0, 1, 2, 0]
    assert scheduler.register("b") == 1
    assert scheduler.slot_load() == [2, 1, 1]


def test_keys_are_due_on_their_slot_only():
    scheduler = DutyCycleScheduler(4)
    scheduler.register("a")
    scheduler.register("b")

    assert [tick for tick in range(9) if scheduler.is_due("b", tick)] == [1, 5]
    assert scheduler.due(4) == ["a"]


def test_asking_about_an_unknown_key_registers_it():
    scheduler = DutyCycleScheduler(2)

    assert scheduler.is_due("new", 0)
    assert "new" in scheduler


def test_unregister_frees_the_key():
    scheduler = DutyCycleScheduler(2)
    scheduler.register("a")

    scheduler.unregister("a")
    scheduler.unregister("a")

    assert len(scheduler) == 0
    assert scheduler.slot_of("a") is None


def test_cycle_length_must_be_positive():
    with pytest.raises(ValueError):
        DutyCycleScheduler(0)
