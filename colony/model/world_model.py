"""Quick card: Mesa wiring for the colony; world, store, planner, allocator, and worker agents."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

import mesa
from mesa.datacollection import DataCollector

import config
from colony.agents.registry import build_registry
from colony.agents.roles import RoleRegistry, infer_role, parse_role
from colony.agents.state_machine import StateMachineEngine
from colony.agents.worker import WorkerAgent
from colony.model.context import Analytics, TickContext
from colony.model.environment import WorldLayout, generate_world
from colony.model.log_utils import append_chronicle_error, append_chronicle_tick, print_step_summary
from colony.model.memory_store import Scope, StateStore, default_migrations, prune_agent_memory, prune_zone_records
from colony.model.movement import MovementCostModel
from colony.model.planner import SpawnRequest, owned_zones, plan, plan_spawn, prune_scouted
from colony.model.scheduler import DutyCycleScheduler
from colony.model.tasks import TaskAllocator
from colony.model.world import Category, SimWorld, StructureKind

log = logging.getLogger(__name__)

DEFENDER_SCHEDULER = "defender"
REMOTE_SCHEDULER = "remote"
PRUNE_SCHEDULER = "prune"


def stored_energy(world: SimWorld, zone: str) -> int:
    return sum(
        s.energy
        for s in world.entities(zone, Category.STRUCTURE)
        if s.kind in (StructureKind.STORAGE, StructureKind.CONTAINER) and s.owner in (world.owner, None)
    )


class ColonyModel(mesa.Model):
    """Model card: one colony, one task pool, and a WorkerAgent per owned unit."""

    def __init__(
        self,
        random_seed: int | None = None,
        world: Optional[SimWorld] = None,
        store: Optional[StateStore] = None,
        zone_grid: tuple[int, int] = config.ENV_ZONE_GRID,
        starter_units: int = config.ENV_STARTER_UNITS,
        registry: Optional[RoleRegistry] = None,
        verbose: bool = False,
    ) -> None:
        """Init cue: generate (or accept) a world, migrate any loaded memory once, then sync agents."""
        super().__init__(seed=random_seed)
        self.seed_value = random_seed
        self.verbose = verbose
        self.layout: Optional[WorldLayout] = None
        if world is None:
            self.layout = generate_world(self.random, zone_grid=zone_grid, starter_units=starter_units)
            world = self.layout.world
        self.world = world
        self.store = store if store is not None else StateStore()
        self.migration_report = default_migrations().migrate_store(self.store)
        self.registry = registry if registry is not None else build_registry()
        self.engine = StateMachineEngine(self.registry)
        self.movement = MovementCostModel(self.world)
        self.allocator = TaskAllocator()
        restored = self.allocator.load(self.store)
        if restored:
            log.info("restored %d tasks from memory", restored)
        self.schedulers: Dict[str, DutyCycleScheduler] = {
            DEFENDER_SCHEDULER: DutyCycleScheduler(config.DEFENDER_DUTY_CYCLE),
            REMOTE_SCHEDULER: DutyCycleScheduler(config.REMOTE_PLANNING_CYCLE),
            PRUNE_SCHEDULER: DutyCycleScheduler(config.MEMORY_PRUNE_CYCLE),
        }
        self.schedulers[REMOTE_SCHEDULER].register("plan")
        self.schedulers[PRUNE_SCHEDULER].register("memory")
        self.analytics = Analytics()
        self.chronicle: List[Dict[str, Any]] = []
        self.agent_state_log: Optional[TextIO] = None
        self.workers: Dict[str, WorkerAgent] = {}
        self.last_spawned: List[str] = []
        self._sync_agents()
        self.refresh_context()

        self.datacollector = DataCollector(
            model_reporters={
                "workers": lambda m: len(m.workers),
                "open_tasks": lambda m: len(m.allocator),
                "tasks_completed": lambda m: m.allocator.stats.completed,
                "tasks_failed": lambda m: m.allocator.stats.failed,
                "idle": lambda m: m.allocator.stats.idle,
                "errors": lambda m: m.analytics.errors,
                "recoveries": lambda m: m.analytics.recoveries,
                "stored_energy": lambda m: sum(stored_energy(m.world, zone) for zone in m.home_zones()),
                "controller_progress": lambda m: m.controller_progress(),
            },
            agent_reporters={
                "role": lambda a: a.role,
                "state": lambda a: a.memory.get("state"),
                "energy": lambda a: a.energy,
            },
        )
        self.datacollector.collect(self)

    # -------------------------------------------------------------- views
    @property
    def tick(self) -> int:
        return self.world.tick

    def home_zones(self) -> List[str]:
        return owned_zones(self.context)

    def controller_progress(self) -> int:
        total = 0
        for zone in self.home_zones():
            controller = self.world.controller(zone)
            if controller is not None:
                total += controller.progress
        return total

    def population(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for agent in self.workers.values():
            counts[agent.role] = counts.get(agent.role, 0) + 1
        return counts

    # ------------------------------------------------------------ wiring
    def refresh_context(self) -> TickContext:
        """Context cue: a fresh per-tick view over the live agents; also kept on the model for agent steps."""
        self.context = TickContext(
            tick=self.world.tick,
            world=self.world,
            store=self.store,
            movement=self.movement,
            allocator=self.allocator,
            agents=dict(self.workers),
            schedulers=self.schedulers,
            analytics=self.analytics,
        )
        return self.context

    def _resolve_role(self, unit_id: str, hint: Optional[str], capabilities) -> Any:
        """Role cue: remembered role first, then the spawn hint, then a guess from the body."""
        remembered = parse_role(self.store.get_data(Scope.AGENT, unit_id, {}).get("role"))
        if remembered is not None and remembered in self.registry:
            return remembered
        hinted = parse_role(hint)
        if hinted is not None and hinted in self.registry:
            return hinted
        return infer_role(capabilities)

    def _sync_agents(self) -> Dict[str, List[str]]:
        """Sync card: one WorkerAgent per owned unit; vanished units lose agent, memory, and task."""
        units = {unit.id: unit for unit in self.world.units(self.world.owner)}
        removed = []
        for name in [name for name in self.workers if name not in units]:
            agent = self.workers.pop(name)
            self.allocator.unassign(name)
            self.schedulers[DEFENDER_SCHEDULER].unregister(name)
            agent.remove()
            removed.append(name)
        added = []
        for unit_id, unit in units.items():
            if unit_id in self.workers:
                continue
            role = self._resolve_role(unit_id, unit.role, unit.capabilities)
            agent = WorkerAgent(self, unit_id, self.registry.lookup(role), home=unit.pos.zone)
            self.workers[unit_id] = agent
            added.append(unit_id)
        prune_agent_memory(self.store, set(units))
        if removed:
            log.debug("tick %d: removed agents %s", self.world.tick, removed)
        return {"added": added, "removed": removed}

    def _spawn(self, request: SpawnRequest) -> bool:
        result = self.world.spawn_unit(request.spawn_id, request.body, request.name, role=request.role)
        if result.ok:
            self.analytics.spawned += 1
            self.last_spawned.append(request.name)
            return True
        log.debug("spawn %s for %s refused: %s", request.name, request.role, result)
        return False

    # -------------------------------------------------------------- tick
    def step(self) -> None:
        """Tick card: sync, cleanup, plan, allocate, act, upkeep, persist, record."""
        tick = self.world.tick
        self.last_spawned = []
        errors_before = self.analytics.errors
        self._sync_agents()
        for agent in self.workers.values():
            agent.guard.reset()
        ctx = self.refresh_context()

        removed = self.allocator.cleanup(ctx)
        remote_due = self.schedulers[REMOTE_SCHEDULER].is_due("plan", tick)
        demands = plan(ctx, remote_due=remote_due)
        for zone in sorted(demands):
            demand = demands[zone]
            self.allocator.allocate(ctx, demand)
            request = plan_spawn(ctx, demand, self.registry)
            if request is not None:
                self._spawn(request)

        self.agents.shuffle_do("step")
        upkeep = self.world.end_tick()

        if self.schedulers[PRUNE_SCHEDULER].is_due("memory", tick):
            prune_zone_records(self.store, tick)
            prune_scouted(ctx)
        self.allocator.save(self.store)
        self.datacollector.collect(self)
        self._record_tick(ctx, removed, upkeep, errors_before)

    def _record_tick(self, ctx: TickContext, removed: Dict[int, str], upkeep: Dict[str, int], errors_before: int) -> None:
        new_errors = self.analytics.errors - errors_before
        for error in (self.analytics.error_log[-new_errors:] if new_errors else []):
            append_chronicle_error(self.chronicle, error["tick"], error["agent"], error["error"])
        zones = {}
        for zone, demand in ctx.demands.items():
            controller = self.world.controller(zone)
            zones[zone] = {
                "level": demand.level,
                "energy_available": self.world.energy_available(zone),
                "energy_capacity": demand.energy_capacity,
                "stored_energy": stored_energy(self.world, zone),
                "controller_progress": controller.progress if controller is not None else 0,
                "hostiles": len(demand.hostile_ids),
                "deficits": demand.unmet,
            }
        previous = self.last_tick_entry()
        entry = append_chronicle_tick(
            self.chronicle,
            ctx.tick,
            population=self.population(),
            tasks=self.allocator.counts_by_kind(),
            task_stats=self.allocator.stats.as_dict(),
            removed=removed,
            spawned=self.last_spawned,
            zones=zones,
            analytics={
                "errors": self.analytics.errors,
                "recoveries": self.analytics.recoveries,
                "stale_targets": self.analytics.stale_targets,
            },
            moved=upkeep.get("moved", 0),
        )
        self.log_agent_states(ctx.tick)
        if self.verbose:
            print_step_summary(entry, previous)

    def last_tick_entry(self) -> Optional[Dict[str, Any]]:
        for entry in reversed(self.chronicle):
            if entry.get("event_type") == "tick":
                return entry
        return None

    # ------------------------------------------------------------ exports
    def get_config_summary(self) -> dict:
        """Config card: snapshot the key knobs to serialize alongside a run."""
        return {
            "seed": self.seed_value,
            "protocol_version": config.PROTOCOL_VERSION,
            "zones": {
                name: vars(summary) for name, summary in (self.layout.zones.items() if self.layout else [])
            },
            "home": self.layout.home if self.layout else None,
            "desired_counts": config.DESIRED_COUNTS,
            "spawn_order": config.SPAWN_ORDER,
            "task_priority": config.TASK_PRIORITY,
            "task_max_agents": config.TASK_MAX_AGENTS,
            "task_age_ceiling": config.TASK_AGE_CEILING,
            "duty_cycles": {name: scheduler.cycle_length for name, scheduler in self.schedulers.items()},
            "terrain_cache_ttl": config.TERRAIN_CACHE_TTL,
            "profile_defaults": config.PROFILE_DEFAULTS,
            "migrations": self.migration_report,
        }

    def save_config_summary(self, path: Path) -> None:
        """Export cue: write a human-readable config summary to a given path."""
        cfg = self.get_config_summary()
        lines: list[str] = ["Simulation configuration summary", f"Seed: {cfg['seed']}", f"Home zone: {cfg['home']}", ""]
        lines.append("Zones:")
        for name, summary in cfg["zones"].items():
            lines.append(
                f"  {name}: profile={summary['profile']} sources={summary['sources']} "
                f"swamp={summary['friction_share']} wall={summary['obstruction_share']} hostiles={summary['hostiles']}"
            )
        lines.append("")
        lines.append("Task priorities:")
        for key, value in sorted(cfg["task_priority"].items(), key=lambda item: -item[1]):
            lines.append(f"  {key}: {value}")
        lines.append("")
        lines.append(f"Task age ceiling: {cfg['task_age_ceiling']}")
        lines.append("Duty cycles: " + ", ".join(f"{k}={v}" for k, v in cfg["duty_cycles"].items()))
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")

    def enable_agent_state_logging(self, run_dir: Path) -> None:
        """Logging setup: open a JSONL file for per-tick agent snapshots."""
        run_dir.mkdir(parents=True, exist_ok=True)
        self.close_agent_state_log()
        self.agent_state_log = (run_dir / "agent_state.jsonl").open("w", encoding="utf-8")

    def log_agent_states(self, tick: int) -> None:
        handle = self.agent_state_log
        if handle is None:
            return
        for name in sorted(self.workers):
            agent = self.workers[name]
            task = self.allocator.task_for(name)
            outcome = agent.last_outcome
            snapshot = {
                "tick": tick,
                "name": name,
                "role": agent.role,
                "home": agent.home,
                "state": agent.memory.get("state"),
                "target_id": agent.memory.get("target_id"),
                "energy": agent.energy,
                "task": task.to_dict() if task is not None else None,
                "note": outcome.note if outcome is not None else None,
                "result": str(outcome.result) if outcome is not None and outcome.result is not None else None,
            }
            handle.write(json.dumps(snapshot) + "\n")
        handle.flush()

    def save_chronicle(self, path: Path) -> None:
        """Export cue: save the chronicle as JSON so it can be analysed later."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            json.dump(self.chronicle, f, indent=2)
        self.close_agent_state_log()

    def save_memory(self, path: Path) -> None:
        self.allocator.save(self.store)
        self.store.save(path)

    def close_agent_state_log(self) -> None:
        if self.agent_state_log is not None:
            self.agent_state_log.close()
            self.agent_state_log = None
