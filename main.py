"""I keep this as the CLI entry point for the colony run so I can launch a seeded world,
watch each tick in the console, and capture the chronicle, metrics, and memory afterwards."""

from __future__ import annotations

import contextlib
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

import config
from colony.model.log_utils import summarize_chronicle
from colony.model.memory_store import StateStore
from colony.model.world_model import ColonyModel

_RUN_DIR: Path | None = None
_RUN_KEY: tuple[int | None, int | None] = (None, None)


@dataclass
class RunConfig:
    """I centralise the key knobs (steps, seed, world size, memory file) so runs stay comparable."""

    steps: int = 100
    seed: int = 42
    zone_grid: tuple[int, int] = config.ENV_ZONE_GRID
    starter_units: int = config.ENV_STARTER_UNITS
    memory_path: Optional[Path] = None
    verbose: bool = True

    def chronicle_path(self) -> Path:
        return _choose_run_artifact_path("chronicle", self.seed, self.steps, ".json")


def run_demo(
    steps: int = 100,
    seed: int = 42,
    save_log: bool = True,
    run_config: Optional[RunConfig] = None,
) -> ColonyModel:
    """I drive the run loop: build ``ColonyModel``, advance the configured ticks, and persist
    the chronicle, the DataCollector frames, and the memory store.

    :param steps: how many ticks to run.
    :param seed: the seed passed into the model for deterministic worlds.
    :param save_log: set to False to skip writing artifacts to disk.
    :param run_config: pass a ``RunConfig`` to manage every knob from one object.
    """
    if run_config is None:
        run_config = RunConfig(steps=steps, seed=seed)

    store = None
    if run_config.memory_path is not None and run_config.memory_path.exists():
        # Resume from a saved memory file; migrations run inside the model.
        store = StateStore.load(run_config.memory_path)
        print(f"Loaded memory from {run_config.memory_path}")

    model = ColonyModel(
        random_seed=run_config.seed,
        store=store,
        zone_grid=run_config.zone_grid,
        starter_units=run_config.starter_units,
        verbose=run_config.verbose,
    )
    if save_log:
        config_path = _choose_run_artifact_path("config_summary", run_config.seed, run_config.steps, ".txt")
        model.save_config_summary(config_path)
        model.enable_agent_state_logging(config_path.parent)

    for _ in range(run_config.steps):
        model.step()
        if not model.workers and model.world.energy_available(model.layout.home if model.layout else "") == 0:
            print(f"The colony has no workers and no spawn energy at tick {model.tick}. Ending simulation early.")
            break

    if save_log:
        out_path = run_config.chronicle_path()
        model.save_chronicle(out_path)
        print(f"Saved chronicle to {out_path.resolve()}")
        metrics_path = _choose_run_artifact_path("metrics", run_config.seed, run_config.steps, ".csv")
        frame: pd.DataFrame = model.datacollector.get_model_vars_dataframe()
        frame.to_csv(metrics_path, index_label="tick")
        agents_path = _choose_run_artifact_path("agents", run_config.seed, run_config.steps, ".csv")
        model.datacollector.get_agent_vars_dataframe().to_csv(agents_path)
        memory_path = _choose_run_artifact_path("memory", run_config.seed, run_config.steps, ".json")
        model.save_memory(memory_path)
        print(f"Saved metrics to {metrics_path.resolve()} and memory to {memory_path.resolve()}")
    print_summary(model)
    return model


def print_summary(model: ColonyModel) -> None:
    """I print the wrap-up numbers so I can sanity-check the run before digging into the logs."""
    summary = summarize_chronicle(model.chronicle)
    print("Chronicle summary:")
    print(f"  Ticks: {summary.get('ticks', 0)}")
    print(f"  Final population: {summary.get('final_population', {})}")
    print(f"  Task stats: {summary.get('task_stats', {})}")
    print(f"  Units spawned: {summary.get('spawned', 0)}")
    print(f"  Tasks removed: {summary.get('tasks_removed', {})}")
    print(f"  Errors: {summary.get('errors', 0)} (recoveries {summary.get('recoveries', 0)}, stale targets {summary.get('stale_targets', 0)})")
    frame = model.datacollector.get_model_vars_dataframe()
    if not frame.empty:
        described = frame[["workers", "open_tasks", "stored_energy"]].describe().loc[["min", "mean", "max"]]
        print(described.round(1).to_string())


class Tee:
    """Simple tee to duplicate stdout/stderr to a file."""

    def __init__(self, *streams):
        self.streams = streams

    def write(self, data: str) -> int:
        for stream in self.streams:
            stream.write(data)
        return len(data)

    def flush(self) -> None:
        for stream in self.streams:
            stream.flush()


def _choose_run_artifact_path(prefix: str, seed: int, steps: int, ext: str) -> Path:
    """I save run artifacts under a dated logs/ subfolder so the newest run is obvious."""
    global _RUN_DIR, _RUN_KEY
    logs_dir = Path("logs")
    logs_dir.mkdir(parents=True, exist_ok=True)
    if _RUN_DIR is None or _RUN_KEY != (seed, steps):
        stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        candidate = logs_dir / f"run_{stamp}_seed{seed}_steps{steps}"
        suffix = 1
        while candidate.exists():
            suffix += 1
            candidate = logs_dir / f"run_{stamp}_seed{seed}_steps{steps}_v{suffix}"
        candidate.mkdir(parents=True, exist_ok=True)
        _RUN_DIR = candidate
        _RUN_KEY = (seed, steps)
        print(f"[info] Logging run artifacts under {_RUN_DIR}")
    base = _RUN_DIR / f"{prefix}_seed{seed}_steps{steps}{ext}"
    if not base.exists():
        return base
    idx = 1
    while True:
        candidate = _RUN_DIR / f"{prefix}_seed{seed}_steps{steps}_run{idx}{ext}"
        if not candidate.exists():
            return candidate
        idx += 1


def _ask_int(prompt: str, default: int, positive: bool = False) -> int:
    raw = input(prompt)
    try:
        value = int(raw.strip()) if raw.strip() else default
    except ValueError:
        print(f"Invalid input, defaulting to {default}.")
        return default
    if positive and value <= 0:
        print(f"Value must be positive, defaulting to {default}.")
        return default
    return value


if __name__ == "__main__":
    steps = _ask_int("How many ticks should the simulation run for? [default: 100] ", 100, positive=True)
    seed_value = _ask_int("Which seed should I use? [default: 42] ", 42)
    memory_raw = input("Resume from a memory file? [blank for a fresh colony] ").strip()

    log_path = _choose_run_artifact_path("output_log", seed_value, steps, ".txt")
    print(f"Saving console output to {log_path}")
    with log_path.open("w", encoding="utf-8") as log_file:
        tee = Tee(sys.stdout, log_file)
        with contextlib.redirect_stdout(tee), contextlib.redirect_stderr(tee):
            logging.basicConfig(level=logging.INFO, stream=tee, format="%(levelname)s %(name)s: %(message)s")
            run_demo(
                run_config=RunConfig(
                    steps=steps,
                    seed=seed_value,
                    memory_path=Path(memory_raw) if memory_raw else None,
                )
            )
