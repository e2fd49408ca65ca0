"""Custom Solara dashboard for the ColonyModel."""

from __future__ import annotations

import contextlib
import io
import json
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, TextIO

import altair as alt
import pandas as pd
import solara
from solara.server import app as solara_app
from solara.server.app import AppScript
from solara.server.starlette import ServerStarlette

import config
from colony.model.world_model import ColonyModel


class RunArtifactManager:
    """Create the same log artifacts as the CLI version for each dashboard run."""

    def __init__(self, root: str = "logs") -> None:
        self.root = Path(root)
        self.current_dir: Path | None = None
        self.chronicle_path: Path | None = None
        self.sim_log_handle: TextIO | None = None
        self.chart_data_path: Path | None = None
        self.pending_params: Dict[str, Any] | None = None

    def _allocate_run_dir(self) -> Path:
        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        candidate = self.root / f"webui_{timestamp}"
        suffix = 1
        while candidate.exists():
            suffix += 1
            candidate = self.root / f"webui_{timestamp}_v{suffix}"
        candidate.mkdir(parents=True, exist_ok=True)
        return candidate

    def prepare_for_model(self, params: Dict[str, Any], previous_model: ColonyModel | None) -> None:
        """Finalize any open run and stage params for the next run."""
        if self.current_dir is not None:
            self.finalize(previous_model)
        self.pending_params = dict(params)

    def ensure_run_started(self, model: ColonyModel) -> None:
        if self.current_dir is not None:
            return
        self._start_run(model, self.pending_params or {})

    def _start_run(self, new_model: ColonyModel, params: Dict[str, Any]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        run_dir = self._allocate_run_dir()
        self.current_dir = run_dir
        self.chronicle_path = run_dir / "chronicle.json"
        (run_dir / "params.json").write_text(json.dumps(params, indent=2), encoding="utf-8")
        new_model.save_config_summary(run_dir / "config_summary.txt")
        new_model.enable_agent_state_logging(run_dir)
        self._close_sim_log()
        self.sim_log_handle = (run_dir / "simulation_output.log").open("w", encoding="utf-8")
        self.chart_data_path = run_dir / "metrics_history.csv"
        self.pending_params = dict(params)
        self.export_chart_data(new_model)

    def _close_sim_log(self) -> None:
        if self.sim_log_handle is not None:
            self.sim_log_handle.close()
            self.sim_log_handle = None

    def record_progress(self, model: ColonyModel | None) -> None:
        if model is None or self.chronicle_path is None or self.current_dir is None:
            return
        # Chronicle is rewritten in place; the state log stays open between steps.
        self.chronicle_path.write_text(json.dumps(model.chronicle, indent=2), encoding="utf-8")

    def finalize(self, model: ColonyModel | None) -> None:
        if self.current_dir is None:
            self.sim_log_handle = None
            self.chronicle_path = None
            self.chart_data_path = None
            return
        if model is not None:
            self.record_progress(model)
            self.export_chart_data(model)
            model.save_memory(self.current_dir / "memory.json")
            model.close_agent_state_log()
        self._close_sim_log()
        self.current_dir = None
        self.chronicle_path = None
        self.chart_data_path = None

    def append_sim_output(self, text: str) -> None:
        if not text or self.sim_log_handle is None:
            return
        self.sim_log_handle.write(text.rstrip() + "\n\n")
        self.sim_log_handle.flush()

    def export_chart_data(self, model: ColonyModel | None) -> None:
        if model is None or self.chart_data_path is None or self.current_dir is None:
            return
        df = model.datacollector.get_model_vars_dataframe()
        df.to_csv(self.chart_data_path, index=True)


def default_params() -> Dict[str, Any]:
    """Return a fresh defaults dict each time."""
    width, height = config.ENV_ZONE_GRID
    return {
        "grid_width": int(width),
        "grid_height": int(height),
        "starter_units": int(config.ENV_STARTER_UNITS),
        "verbose": True,
        "seed": 42,
    }


@dataclass(frozen=True)
class SliderSpec:
    """Describe an integer slider."""

    name: str
    label: str
    min_value: int
    max_value: int
    step: int = 1


SLIDER_SPECS: List[SliderSpec] = [
    SliderSpec("grid_width", "Zone grid width", 1, 5),
    SliderSpec("grid_height", "Zone grid height", 1, 5),
    SliderSpec("starter_units", "Starter units", 0, 12),
]

CHART_GROUPS: Dict[str, List[str]] = {
    "Tasks": ["open_tasks", "tasks_completed", "tasks_failed", "idle"],
    "Colony": ["workers", "errors", "recoveries"],
    "Energy": ["stored_energy", "controller_progress"],
}


def build_model(params: Dict[str, Any]) -> ColonyModel:
    """Instantiate the ColonyModel with the chosen knobs."""
    try:
        random_seed = int(params.get("seed"))
    except (TypeError, ValueError):
        random_seed = None
    return ColonyModel(
        random_seed=random_seed,
        zone_grid=(int(params["grid_width"]), int(params["grid_height"])),
        starter_units=int(params["starter_units"]),
        verbose=bool(params["verbose"]),
    )


def capture_step_output(model: ColonyModel) -> str:
    """Run one step and return whatever stdout the model produced."""
    buffer = io.StringIO()
    with contextlib.redirect_stdout(buffer):
        model.step()
    return buffer.getvalue().strip()


def tidy_metrics(df: pd.DataFrame, columns: List[str]) -> pd.DataFrame:
    """Long-form frame (Step, Metric, Value) for the columns that exist."""
    reset_df = df.reset_index().rename(columns={"index": "Step"})
    available = [col for col in columns if col in reset_df.columns]
    if not available:
        return pd.DataFrame(columns=["Step", "Metric", "Value"])
    return reset_df.melt(id_vars="Step", value_vars=available, var_name="Metric", value_name="Value")


@solara.component
def ParameterControls(params: Dict[str, Any], on_change) -> None:
    """Render the world sliders plus the console toggle."""
    with solara.Card("Starting Conditions", margin=0):
        for spec in SLIDER_SPECS:
            value = params[spec.name]
            with solara.Column(gap="0.25rem"):
                solara.Text(f"{spec.label}: {value}")

                def handle(new_value, spec_name=spec.name):
                    on_change(spec_name, int(new_value))

                solara.SliderInt(
                    label="",
                    value=value,
                    min=spec.min_value,
                    max=spec.max_value,
                    step=spec.step,
                    on_value=handle,
                )
        solara.Switch(
            label="Print tick summaries",
            value=params["verbose"],
            on_value=lambda v: on_change("verbose", bool(v)),
        )

        def _update_seed(value: int) -> None:
            try:
                parsed = int(value)
            except (TypeError, ValueError):
                parsed = 0
            on_change("seed", parsed)

        solara.InputInt(
            label="Random Seed",
            value=params.get("seed", 0),
            on_value=_update_seed,
        )


@solara.component
def MetricCharts(model: ColonyModel | None, refresh_token: int) -> None:  # noqa: ARG001
    """Render one line chart per metric group from the DataCollector frame."""
    if model is None:
        solara.Text("Chart unavailable until the model is initialised.")
        return

    df = model.datacollector.get_model_vars_dataframe()
    if df.empty:
        solara.Text("Collect a few steps to populate the chart.")
        return

    with solara.Column(gap="1rem"):
        for title, columns in CHART_GROUPS.items():
            tidy = tidy_metrics(df, columns)
            if tidy.empty:
                solara.Text(f"No data for {title}.")
                continue
            chart = (
                alt.Chart(tidy)
                .mark_line()
                .encode(
                    x=alt.X("Step:Q", title="Tick"),
                    y=alt.Y("Value:Q", title="Value"),
                    color=alt.Color("Metric:N", title="Metric"),
                )
                .properties(width=320, height=220)
            )
            with solara.Card(title, margin=0):
                solara.FigureAltair(chart)


@solara.component
def ColonySnapshot(model: ColonyModel | None) -> None:
    """Display population, open tasks, and each owned zone's energy."""
    if model is None:
        solara.Text("No model active.")
        return
    population = model.population()
    pop_line = ", ".join(f"{role}: {count}" for role, count in sorted(population.items())) or "none"
    tasks = model.allocator.counts_by_kind()
    task_line = ", ".join(f"{kind}: {count}" for kind, count in sorted(tasks.items())) or "none"
    lines = [f"**Population** {pop_line}  ", f"**Open tasks** {task_line}  "]
    entry = model.last_tick_entry()
    for zone, info in sorted(((entry or {}).get("zones") or {}).items()):
        lines.append(
            f"**{zone}** level {info.get('level')} | energy {info.get('energy_available')}/{info.get('energy_capacity')}"
            f" | stored {info.get('stored_energy')} | hostiles {info.get('hostiles', 0)}  "
        )
    solara.Markdown("\n".join(lines))


@solara.component
def LogPanel(logs: List[str]) -> None:
    """Show captured stdout chunks."""
    with solara.Card(
        "Simulation Output",
        margin=0,
        style={"height": "100%", "overflow": "auto"},
    ):
        if not logs:
            solara.Text("No output yet. Run a step to see the simulation log.")
            return
        for idx, entry in enumerate(logs, start=1):
            solara.Markdown(f"#### Log {idx}\n```\n{entry}\n```")


@solara.component
def Dashboard() -> None:
    """Primary Solara component."""
    params, set_params = solara.use_state(default_params())
    logs, set_logs = solara.use_state([])  # list[str]
    steps_to_run, set_steps_to_run = solara.use_state(1)
    refresh_token, set_refresh_token = solara.use_state(0)
    steps_queue, set_steps_queue = solara.use_state(0)
    is_running, set_is_running = solara.use_state(False)
    stop_requested, set_stop_requested = solara.use_state(False)
    artifact_manager = solara.use_memo(lambda: RunArtifactManager(), [])
    model_ref = solara.use_ref(None)
    if model_ref.current is None:
        initial_model = build_model(params)
        artifact_manager.prepare_for_model(params, None)
        model_ref.current = initial_model

    solara.use_effect(lambda: (lambda: artifact_manager.finalize(model_ref.current)), [])

    def replace_model(new_params: Dict[str, Any]) -> None:
        artifact_manager.prepare_for_model(new_params, model_ref.current)
        model_ref.current = build_model(new_params)
        set_steps_queue(0)
        set_is_running(False)
        set_stop_requested(False)

    def trigger_refresh() -> None:
        set_refresh_token(lambda value: value + 1)

    def update_params(name: str, value: Any) -> None:
        new_params = {**params, name: value}
        set_params(new_params)
        replace_model(new_params)
        set_logs([])
        trigger_refresh()

    def reset_model() -> None:
        replace_model(params)
        set_logs([])
        trigger_refresh()

    def append_log_entry(entry: str) -> None:
        if not entry:
            return

        def _update(prev: List[str]) -> List[str]:
            updated = prev + [entry]
            return updated[-200:]

        set_logs(_update)

    def run_single_step() -> None:
        if model_ref.current is None:
            return
        artifact_manager.ensure_run_started(model_ref.current)
        output = capture_step_output(model_ref.current)
        if output:
            append_log_entry(output)
            artifact_manager.append_sim_output(output)
        artifact_manager.record_progress(model_ref.current)
        artifact_manager.export_chart_data(model_ref.current)
        trigger_refresh()

    def queue_steps(count: int) -> None:
        if model_ref.current is None or count <= 0 or is_running:
            return
        set_stop_requested(False)
        set_steps_queue(count)
        set_is_running(True)

    def execute_steps() -> None:
        queue_steps(steps_to_run)

    def stop_simulation() -> None:
        set_stop_requested(True)

    def close_program() -> None:
        artifact_manager.finalize(model_ref.current)
        os._exit(0)

    def process_queue() -> None:
        if model_ref.current is None:
            return
        if steps_queue <= 0:
            if is_running:
                set_is_running(False)
            return
        if stop_requested:
            artifact_manager.record_progress(model_ref.current)
            set_steps_queue(0)
            return
        run_single_step()
        set_steps_queue(steps_queue - 1)

    solara.use_effect(process_queue, [steps_queue, stop_requested])

    with solara.Column(gap="1rem", style={"padding": "0 1rem"}):
        solara.Markdown("## Colony Task Allocation Dashboard")
        current_tick = model_ref.current.tick if model_ref.current else 0
        solara.Text(f"Current Tick: {current_tick}")

        content_style = {
            "display": "flex",
            "flex-direction": "row",
            "align-items": "flex-start",
            "gap": "1rem",
            "flex-wrap": "nowrap",
        }

        with solara.Row(style=content_style):
            with solara.Column(gap="1rem", style={"flex": "0.65 1 0", "min-width": "300px"}):
                ParameterControls(params, update_params)
                with solara.Card("Simulation Controls", margin=0):

                    def update_steps(value: int) -> None:
                        try:
                            parsed = int(value)
                        except (TypeError, ValueError):
                            parsed = 1
                        set_steps_to_run(max(1, min(200, parsed)))

                    solara.InputInt(
                        label="Ticks per run (1-200)",
                        value=steps_to_run,
                        on_value=update_steps,
                        disabled=is_running,
                    )
                    solara.Button("Run Ticks", on_click=execute_steps, color="primary", disabled=is_running)
                    solara.Button("Step Once", on_click=lambda: queue_steps(1), disabled=is_running)
                    solara.Button("Stop", on_click=stop_simulation, color="warning", disabled=not is_running)
                    solara.Button("Reset Model", on_click=reset_model, color="secondary", disabled=is_running)
                    solara.Button("Close Server", on_click=close_program, color="danger")
                    status_text = "Running" if is_running and steps_queue > 0 else "Idle"
                    solara.Text(f"Status: {status_text}")
                    pending_text = f"{steps_queue} tick(s) remaining" if steps_queue > 0 else "No pending ticks"
                    solara.Text(pending_text)
                    if artifact_manager.current_dir:
                        solara.Text(
                            f"Logging to {artifact_manager.current_dir}",
                            style="font-size: 0.85em; color: #555;",
                        )
                ColonySnapshot(model_ref.current)
            with solara.Column(gap="1rem", style={"flex": "0.35 1 0", "min-width": "260px"}):
                solara.Markdown("### Colony Metrics")
                MetricCharts(model_ref.current, refresh_token)
            with solara.Column(
                gap="0",
                style={
                    "flex": "1 1 0",
                    "min-width": "320px",
                    "max-height": "calc(100vh - 80px)",
                    "display": "flex",
                },
            ):
                LogPanel(logs)


Page = Dashboard


def ensure_solara_app_registered() -> None:
    """Register the Page component with Solara's server loader."""
    if "__default__" not in solara_app.apps:
        solara_app.apps["__default__"] = AppScript("run:Page")


def launch(port: int = 8521, host: str = "127.0.0.1", open_browser: bool = True) -> None:
    """Start the Solara server on the requested host/port."""
    ensure_solara_app_registered()
    server = ServerStarlette(port=port, host=host)
    url = f"http://{host}:{port}"
    print(f"Solara UI available at {url}")
    if open_browser:
        import webbrowser

        webbrowser.open(url)
    server.serve()


if __name__ == "__main__":
    launch()
