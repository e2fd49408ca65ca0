"""Quick card: logging helpers for the chronicle and console step recaps."""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, List, Optional

import config


def fmt_res(value: Any) -> str:
    """Formatter note: keep energy numbers tidy using configured precision."""
    try:
        return f"{float(value):.{config.RESOURCE_DISPLAY_DECIMALS}f}"
    except (TypeError, ValueError):
        return "n/a"


def append_chronicle_tick(
    chronicle: List[Dict[str, Any]],
    tick: int,
    population: Dict[str, int],
    tasks: Dict[str, int],
    task_stats: Dict[str, int],
    removed: Dict[int, str],
    spawned: List[str],
    zones: Dict[str, Dict[str, Any]],
    analytics: Dict[str, int],
    moved: int,
) -> Dict[str, Any]:
    entry = {
        "event_type": "tick",
        "tick": tick,
        "population": dict(population),
        "tasks_open": dict(tasks),
        "task_stats": dict(task_stats),
        "tasks_removed": dict(Counter(removed.values())),
        "spawned": list(spawned),
        "zones": zones,
        "errors": analytics.get("errors", 0),
        "recoveries": analytics.get("recoveries", 0),
        "stale_targets": analytics.get("stale_targets", 0),
        "moved": moved,
    }
    chronicle.append(entry)
    return entry


def append_chronicle_error(chronicle: List[Dict[str, Any]], tick: int, agent_id: str, error: str) -> None:
    chronicle.append({"event_type": "error", "tick": tick, "agent": agent_id, "error": error})


def print_step_summary(entry: Dict[str, Any], previous: Optional[Dict[str, Any]] = None) -> None:
    """Showtime card: one console recap per tick from the chronicle entry."""
    tick = entry.get("tick")
    population = entry.get("population") or {}
    pop_line = ", ".join(f"{role}:{count}" for role, count in sorted(population.items())) or "none"
    tasks = entry.get("tasks_open") or {}
    task_line = ", ".join(f"{kind}:{count}" for kind, count in sorted(tasks.items())) or "none"
    stats = entry.get("task_stats") or {}
    prev_stats = (previous or {}).get("task_stats") or {}
    done = stats.get("completed", 0) - prev_stats.get("completed", 0)
    failed = stats.get("failed", 0) - prev_stats.get("failed", 0)
    print(f"Tick {tick}")
    print(f"  Population: {pop_line}")
    print(f"  Open tasks: {task_line}")
    print(f"  Tasks this tick: completed {done}, failed {failed}, idle offers {stats.get('idle', 0) - prev_stats.get('idle', 0)}")
    removed = entry.get("tasks_removed") or {}
    if removed:
        print("  Cleanup: " + ", ".join(f"{reason}:{count}" for reason, count in sorted(removed.items())))
    if entry.get("spawned"):
        print(f"  Spawned: {', '.join(entry['spawned'])}")

    rows: list[str] = []
    for zone, info in sorted((entry.get("zones") or {}).items()):
        rows.append(
            f"  {zone:<4}| level {info.get('level')} | energy {fmt_res(info.get('energy_available'))}/"
            f"{fmt_res(info.get('energy_capacity'))} | stored {fmt_res(info.get('stored_energy'))} | "
            f"progress {fmt_res(info.get('controller_progress'))} | hostiles {info.get('hostiles', 0)}"
        )
    if rows:
        print("\n  Zones:")
        for row in rows:
            print(row)
    if entry.get("errors"):
        print(f"\n  Errors so far: {entry['errors']} (recoveries {entry.get('recoveries', 0)})")
    print("\n" + "-" * 60 + "\n")


def summarize_chronicle(chronicle: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Wrap-up card: totals a run ends with, for the console and the dashboard."""
    ticks = [entry for entry in chronicle if entry.get("event_type") == "tick"]
    if not ticks:
        return {"ticks": 0}
    last = ticks[-1]
    spawned = [name for entry in ticks for name in entry.get("spawned", [])]
    removed: Counter = Counter()
    for entry in ticks:
        removed.update(entry.get("tasks_removed") or {})
    return {
        "ticks": len(ticks),
        "final_population": last.get("population", {}),
        "task_stats": last.get("task_stats", {}),
        "spawned": len(spawned),
        "tasks_removed": dict(removed),
        "errors": last.get("errors", 0),
        "recoveries": last.get("recoveries", 0),
        "stale_targets": last.get("stale_targets", 0),
        "zones": last.get("zones", {}),
    }
