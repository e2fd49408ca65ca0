"""Quick card: body composition helpers so role strategies stay lean."""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Sequence

import config


class Capability(str, Enum):
    """One body part; each mutating capability unlocks a family of primitive actions."""

    GATHER = "gather"
    TRANSPORT = "transport"
    MOBILITY = "mobility"
    MELEE = "melee"
    RANGED = "ranged"
    HEAL = "heal"
    CLAIM = "claim"
    ARMOR = "armor"


# Shorthands keep the tier tables readable.
G = Capability.GATHER
T = Capability.TRANSPORT
M = Capability.MOBILITY
A = Capability.MELEE
R = Capability.RANGED
H = Capability.HEAL
C = Capability.CLAIM
X = Capability.ARMOR


def part_cost(part: Capability) -> int:
    return int(config.PART_COST[part.value])


def body_cost(body: Iterable[Capability]) -> int:
    """Cost cue: total spawn energy for an ordered body."""
    return sum(part_cost(part) for part in body)


def capabilities_of(body: Iterable[Capability]) -> FrozenSet[Capability]:
    return frozenset(body)


def count_parts(body: Iterable[Capability]) -> Dict[Capability, int]:
    counts: Dict[Capability, int] = {}
    for part in body:
        counts[part] = counts.get(part, 0) + 1
    return counts


def carry_capacity(body: Iterable[Capability]) -> int:
    """Capacity cue: 50 energy per transport part."""
    return count_parts(body).get(Capability.TRANSPORT, 0) * config.CARRY_PER_PART


def pick_tier(tiers: Sequence[Sequence[Capability]], budget: int) -> List[Capability]:
    """I walk tiers from richest to poorest and return the first one that fits the budget.

    An empty list means nothing fits, so the caller should wait for more energy.
    """
    for tier in tiers:
        if tier and body_cost(tier) <= budget:
            return list(tier)
    return []


def repeat_pattern(
    pattern: Sequence[Capability],
    budget: int,
    max_parts: int = config.MAX_BODY_PARTS,
    prefix: Sequence[Capability] = (),
) -> List[Capability]:
    """Pattern card: stack copies of a part group while energy and the part cap allow.

    The prefix is placed first (armour usually) and only kept when at least one pattern fits.
    """
    pattern_cost = body_cost(pattern)
    if not pattern or pattern_cost <= 0:
        return []
    prefix_cost = body_cost(prefix)
    remaining = budget - prefix_cost
    if remaining < pattern_cost:
        prefix = ()
        remaining = budget
    repeats = 0
    while (
        remaining >= pattern_cost
        and len(prefix) + (repeats + 1) * len(pattern) <= max_parts
    ):
        remaining -= pattern_cost
        repeats += 1
    if repeats == 0:
        return []
    return list(prefix) + list(pattern) * repeats


def sort_for_spawn(body: Sequence[Capability]) -> List[Capability]:
    """Layout cue: armour first, mobility last, so damage chews through padding before work parts."""
    order = {X: 0, G: 1, T: 2, A: 3, R: 4, C: 5, H: 6, M: 7}
    return sorted(body, key=lambda part: order[part])
