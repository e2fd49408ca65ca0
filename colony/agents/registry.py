"""Quick card: wire every role to its strategy once, at start-up."""

from __future__ import annotations

from colony.agents.builder import BuilderStrategy, RepairerStrategy
from colony.agents.claimer import ClaimerStrategy, ScoutStrategy
from colony.agents.defender import DefenderStrategy
from colony.agents.destroyer import DestroyerStrategy
from colony.agents.harvester import HarvesterStrategy
from colony.agents.hauler import HaulerStrategy
from colony.agents.roles import RoleRegistry
from colony.agents.upgrader import UpgraderStrategy

STRATEGIES = (
    HarvesterStrategy,
    HaulerStrategy,
    BuilderStrategy,
    RepairerStrategy,
    UpgraderStrategy,
    DefenderStrategy,
    ClaimerStrategy,
    ScoutStrategy,
    DestroyerStrategy,
)


def build_registry() -> RoleRegistry:
    """Registry cue: fail loudly here if any role was left without a strategy."""
    registry = RoleRegistry()
    for strategy_cls in STRATEGIES:
        strategy = strategy_cls()
        registry.register(strategy.role, strategy)
    missing = registry.missing()
    if missing:
        raise RuntimeError(f"roles without a strategy: {', '.join(role.value for role in missing)}")
    return registry
