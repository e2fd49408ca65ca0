from __future__ import annotations

import pytest

from colony.agents.body import A, C, G, H, M, R, T, X, body_cost, pick_tier, repeat_pattern, sort_for_spawn
from colony.agents.harvester import HarvesterStrategy
from colony.agents.registry import build_registry
from colony.agents.roles import Role, RoleRegistry, UnknownRole, infer_role

BUDGETS = (0, 50, 150, 200, 300, 550, 800, 1300, 1800, 2300, 5600, 12900)


def test_registry_covers_every_role():
    registry = build_registry()

    assert registry.missing() == []
    assert set(registry.roles()) == set(Role)
    assert registry.lookup("hauler").role is Role.HAULER


def test_unknown_role_lookup_raises():
    registry = build_registry()

    with pytest.raises(UnknownRole):
        registry.lookup("wizard")
    assert "wizard" not in registry


def test_registering_under_the_wrong_role_is_rejected():
    with pytest.raises(ValueError):
        RoleRegistry().register(Role.SCOUT, HarvesterStrategy())


@pytest.mark.parametrize("role", list(Role))
def test_bodies_never_exceed_the_budget(role):
    strategy = build_registry().lookup(role)
    for level in range(1, 9):
        for budget in BUDGETS:
            body = strategy.body(budget, level)
            assert body_cost(body) <= budget
            assert len(body) <= 50


def test_nothing_affordable_means_an_empty_body():
    registry = build_registry()

    assert registry.lookup(Role.HARVESTER).body(150, 1) == []
    assert registry.lookup(Role.CLAIMER).body(600, 3) == []
    assert registry.lookup(Role.SCOUT).body(50, 1) == [M]


def test_richer_budgets_buy_bigger_harvesters():
    strategy = build_registry().lookup(Role.HARVESTER)

    assert strategy.body(200, 1) == [G, T, M]
    assert strategy.body(300, 1) == [G, G, T, M]
    assert strategy.body(550, 3) == [G, G, G, G, T, M, M]
    assert len(strategy.body(5000, 6)) == 12


def test_role_guess_from_body():
    assert infer_role([C, M]) is Role.CLAIMER
    assert infer_role([A, M]) is Role.DEFENDER
    assert infer_role([G, T, M]) is Role.HARVESTER
    assert infer_role([T, M]) is Role.HAULER
    assert infer_role([M]) is Role.SCOUT


def test_tier_and_pattern_helpers():
    assert pick_tier(([G, G, T, M], [G, T, M]), 250) == [G, T, M]
    assert pick_tier(([G, T, M],), 10) == []
    assert repeat_pattern([T, M], 1000, max_parts=6) == [T, M] * 3
    assert repeat_pattern([A, M], 200, prefix=[X, X]) == [X, X, A, M]
    assert repeat_pattern([H, M], 100) == []
    assert sort_for_spawn([M, G, X, R]) == [X, G, R, M]
