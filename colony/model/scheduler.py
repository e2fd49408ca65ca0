"""Quick card: explicit round-robin duty cycles for work that should not run every tick."""

from __future__ import annotations

from typing import Dict, Hashable, List


class DutyCycleScheduler:
    """I hand each key a slot in a cycle of ``cycle_length`` ticks; a key is due when the tick lands on its slot.

    Slots are dealt round-robin in registration order, so load spreads evenly and the policy can be
    read straight off ``slot_of``/``slot_load`` instead of being hidden in an id hash.
    """

    def __init__(self, cycle_length: int) -> None:
        if cycle_length < 1:
            raise ValueError("cycle_length must be at least 1")
        self.cycle_length = cycle_length
        self._slots: Dict[Hashable, int] = {}
        self._next_slot = 0

    def register(self, key: Hashable) -> int:
        if key in self._slots:
            return self._slots[key]
        slot = self._next_slot
        self._slots[key] = slot
        self._next_slot = (self._next_slot + 1) % self.cycle_length
        return slot

    def unregister(self, key: Hashable) -> None:
        self._slots.pop(key, None)

    def slot_of(self, key: Hashable) -> int | None:
        return self._slots.get(key)

    def is_due(self, key: Hashable, tick: int) -> bool:
        """Due cue: unknown keys are registered on first ask."""
        slot = self.register(key)
        return tick % self.cycle_length == slot

    def due(self, tick: int) -> List[Hashable]:
        phase = tick % self.cycle_length
        return [key for key, slot in self._slots.items() if slot == phase]

    def slot_load(self) -> List[int]:
        load = [0] * self.cycle_length
        for slot in self._slots.values():
            load[slot] += 1
        return load

    def __contains__(self, key: Hashable) -> bool:
        return key in self._slots

    def __len__(self) -> int:
        return len(self._slots)
