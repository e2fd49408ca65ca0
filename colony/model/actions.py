"""Quick card: primitive action vocabulary, tri-state results, and the one-action-per-tick latch."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from colony.agents.body import Capability

if TYPE_CHECKING:
    from colony.model.world import Position, SimWorld


class ActionKind(str, Enum):
    GATHER = "gather"
    BUILD = "build"
    REPAIR = "repair"
    UPGRADE = "upgrade"
    TRANSFER = "transfer"
    WITHDRAW = "withdraw"
    PICKUP = "pickup"
    MELEE_ATTACK = "melee_attack"
    RANGED_ATTACK = "ranged_attack"
    HEAL = "heal"
    CLAIM = "claim"
    RESERVE = "reserve"
    DISMANTLE = "dismantle"
    MOVE = "move"


ACTION_CAPABILITY: Dict[ActionKind, Capability] = {
    ActionKind.GATHER: Capability.GATHER,
    ActionKind.BUILD: Capability.GATHER,
    ActionKind.REPAIR: Capability.GATHER,
    ActionKind.UPGRADE: Capability.GATHER,
    ActionKind.DISMANTLE: Capability.GATHER,
    ActionKind.TRANSFER: Capability.TRANSPORT,
    ActionKind.WITHDRAW: Capability.TRANSPORT,
    ActionKind.PICKUP: Capability.TRANSPORT,
    ActionKind.MELEE_ATTACK: Capability.MELEE,
    ActionKind.RANGED_ATTACK: Capability.RANGED,
    ActionKind.HEAL: Capability.HEAL,
    ActionKind.CLAIM: Capability.CLAIM,
    ActionKind.RESERVE: Capability.CLAIM,
}

ACTION_RANGE: Dict[ActionKind, int] = {
    ActionKind.BUILD: 3,
    ActionKind.REPAIR: 3,
    ActionKind.UPGRADE: 3,
    ActionKind.RANGED_ATTACK: 3,
}


def action_range(kind: ActionKind) -> int:
    return ACTION_RANGE.get(kind, 1)


class ActionCode(str, Enum):
    OK = "ok"
    NOT_IN_RANGE = "not_in_range"
    FAILED = "failed"
    # Guard already spent this tick; the world was never asked.
    IGNORED = "ignored"


@dataclass(frozen=True)
class ActionResult:
    """Result card: Ok, NotInRange, Failed(reason), or Ignored when the latch is spent."""

    code: ActionCode
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.code is ActionCode.OK

    @property
    def not_in_range(self) -> bool:
        return self.code is ActionCode.NOT_IN_RANGE

    @property
    def failed(self) -> bool:
        return self.code is ActionCode.FAILED

    @property
    def ignored(self) -> bool:
        return self.code is ActionCode.IGNORED

    def __str__(self) -> str:
        if self.reason:
            return f"{self.code.value}({self.reason})"
        return self.code.value


OK = ActionResult(ActionCode.OK)
NOT_IN_RANGE = ActionResult(ActionCode.NOT_IN_RANGE)
IGNORED = ActionResult(ActionCode.IGNORED)


def failed(reason: str) -> ActionResult:
    return ActionResult(ActionCode.FAILED, reason)


# Failure reasons the handlers branch on
NO_CAPABILITY = "no_capability"
INVALID_TARGET = "invalid_target"
FULL = "full"
NOT_ENOUGH_RESOURCES = "not_enough_resources"
NOT_OWNER = "not_owner"
EXHAUSTED = "exhausted"


class ActionGuard:
    """I latch after the first mutating action of a tick so nothing else slips through."""

    def __init__(self) -> None:
        self.spent_on: ActionKind | None = None
        self.attempts = 0

    @property
    def spent(self) -> bool:
        return self.spent_on is not None

    def reset(self) -> None:
        """Tick cue: reopen the latch."""
        self.spent_on = None
        self.attempts = 0

    def allow(self, kind: ActionKind) -> bool:
        """Consume the latch; only the first caller per tick gets True."""
        self.attempts += 1
        if self.spent_on is not None:
            return False
        self.spent_on = kind
        return True


class Actuator:
    """Agent-bound facade over the world: mutating calls pass the guard, move intents do not."""

    def __init__(self, world: SimWorld, unit_id: str, guard: ActionGuard) -> None:
        self.world = world
        self.unit_id = unit_id
        self.guard = guard

    def perform(self, kind: ActionKind, target: Any, **kwargs: Any) -> ActionResult:
        if kind is ActionKind.MOVE:
            raise ValueError("movement goes through move_to, not perform")
        if not self.guard.allow(kind):
            return IGNORED
        return self.world.apply(kind, self.unit_id, target, **kwargs)

    def move_to(self, goal: Position, reach: int = 1, surface: Any = None) -> ActionResult:
        return self.world.request_move(self.unit_id, goal, reach=reach, surface=surface)
