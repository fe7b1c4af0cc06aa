from __future__ import annotations

import asyncio
import importlib.metadata as md
import logging
import sys
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .apps.tracker.service import TrackingService
from .config import PacetrackConfig, configure_logging, load_config, resolve_config_path
from .core.events import Event, EventType
from .domain.models import MeasurementType, RunSummary
from .infrastructure.database.repository import RunRepository
from .infrastructure.gps.gpsd_client import AsyncGPSClient, MockGPSClient
from .infrastructure.gps.replay import CsvReplaySource, ReplayClock
from .tools.units import format_distance, format_duration, format_pace

# Typer application: tests import this
app = typer.Typer(no_args_is_help=True, add_completion=False, help="pacetrack CLI")
console = Console()
logger = logging.getLogger(__name__)

CONFIG_OPTION = typer.Option(Path("configs/pacetrack.yml"), "--config", "-c")
DB_OPTION = typer.Option(None, "--db", help="Override storage.db_path")


def _load(config: Path, db: Path | None = None) -> PacetrackConfig:
    """Load config if present, else defaults; apply --db and logging."""
    resolved = resolve_config_path(config)
    if resolved.exists():
        try:
            cfg = load_config(resolved)
        except ValueError as exc:
            console.print(f"[red]Config validation failed:[/red] {escape(str(exc))}")
            raise typer.Exit(code=1) from exc
    else:
        cfg = PacetrackConfig()
    if db is not None:
        cfg.storage.db_path = db.expanduser()
    configure_logging(cfg.logging)
    return cfg


def _print_summary(summary: RunSummary | None, units: MeasurementType, run_id: object = None) -> None:
    if summary is None:
        console.print("No run recorded.")
        return
    title = f"Run {run_id}" if run_id is not None else "Run"
    console.print(f"[bold]{title}[/bold] {summary.run_date.isoformat(timespec='seconds')}")
    console.print(f"- distance: {format_distance(summary.distance_meters, units)}")
    console.print(f"- average pace: {format_pace(summary.average_pace_mps, units)}")
    console.print(f"- duration: {format_duration(summary.duration_seconds)}")
    console.print(f"- stored samples: {len(summary.samples)}")


def _progress_printer(units: MeasurementType):
    async def _show(event: Event) -> None:
        stats = event.data
        console.print(
            f"{format_distance(stats['distance_meters'], units)} | "
            f"now {format_pace(stats['current_pace_mps'], units)} | "
            f"avg {format_pace(stats['average_pace_mps'], units)}"
        )

    return _show


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Entry point for `pacetrack` command."""
    if ctx.invoked_subcommand is None:
        console.print("pacetrack CLI - use `pacetrack --help` to see commands.")
        raise typer.Exit(code=0)


@app.command()
def version() -> None:
    """Print version information."""
    try:
        dist_version = md.version("pacetrack")
    except md.PackageNotFoundError:
        from . import __version__

        dist_version = __version__
    console.print(f"pacetrack {dist_version}")
    raise typer.Exit(code=0)


@app.command(name="config-validate")
def config_validate(path: Path = typer.Argument(Path("configs/pacetrack.yml"))) -> None:
    """Validate and show resolved configuration."""
    resolved = resolve_config_path(path)
    console.print(f"Using config: {resolved}")
    try:
        cfg = load_config(resolved)
    except (OSError, ValueError) as exc:
        console.print(f"Config validation failed: {escape(str(exc))}")
        raise typer.Exit(code=1) from exc
    console.print("Config OK.")
    console.print(f"- database: {cfg.storage.db_path}")
    console.print(f"- units: {cfg.display.units.value}")
    console.print(f"- max accuracy: {cfg.tracker.max_horizontal_accuracy}")
    console.print(f"- window: {cfg.tracker.window_size} (stats after {cfg.tracker.min_positions_for_stats})")


@app.command()
def config_which(config: Path = CONFIG_OPTION) -> None:
    """Print resolved config path by priority rules."""
    console.print(str(resolve_config_path(config)))


@app.command()
def track(
    config: Path = CONFIG_OPTION,
    db: Path | None = DB_OPTION,
    mock: bool = typer.Option(False, "--mock", help="Use simulated GPS"),
    duration: float | None = typer.Option(None, "--duration", help="Stop after N seconds"),
    max_fixes: int | None = typer.Option(None, "--max-fixes", help="Stop after N fixes"),
    quiet: bool = typer.Option(False, "--quiet", "-q"),
) -> None:
    """Track a run from gpsd (or the mock walker) and save it."""
    cfg = _load(config, db)
    repo = RunRepository(cfg.storage.db_path)
    service = TrackingService(cfg, persister=repo)
    if not quiet:
        service.bus.subscribe(EventType.STATS_UPDATED, _progress_printer(cfg.display.units))

    if mock or cfg.gps.mock_mode:
        source: AsyncGPSClient = MockGPSClient.from_config(cfg.gps)
    else:
        source = AsyncGPSClient(cfg.gps)

    console.print("Tracking... press Ctrl+C to stop.")
    try:
        summary = asyncio.run(service.run(source, duration=duration, max_positions=max_fixes))
    except KeyboardInterrupt:
        # asyncio.run already cancelled the loop; close the session ourselves
        summary = service.session.stop()
    _print_summary(summary, cfg.display.units, service.last_run_id)


@app.command()
def replay(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="CSV of recorded fixes"),
    config: Path = CONFIG_OPTION,
    db: Path | None = DB_OPTION,
    save: bool = typer.Option(True, "--save/--no-save", help="Store the replayed run"),
) -> None:
    """Run recorded fixes through the tracker."""
    cfg = _load(config, db)
    source = CsvReplaySource(path)
    try:
        clock = ReplayClock(source.first_timestamp())
    except ValueError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc

    persister = RunRepository(cfg.storage.db_path) if save else None
    service = TrackingService(cfg, persister=persister, clock=clock)
    try:
        summary = asyncio.run(service.run(source))
    except ValueError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(code=1) from exc
    _print_summary(summary, cfg.display.units, service.last_run_id)


@app.command()
def history(
    config: Path = CONFIG_OPTION,
    db: Path | None = DB_OPTION,
    limit: int = typer.Option(20, "--limit", "-n"),
) -> None:
    """List saved runs, newest first."""
    cfg = _load(config, db)
    units = cfg.display.units
    runs = RunRepository(cfg.storage.db_path).list_runs(limit=limit)
    if not runs:
        console.print("No runs saved yet.")
        return

    table = Table(title="Runs")
    for column in ("ID", "Date", "Distance", "Avg pace", "Duration", "Samples"):
        table.add_column(column)
    for run in runs:
        table.add_row(
            str(run["id"]),
            run["run_date"][:19],
            format_distance(run["distance_meters"], units),
            format_pace(run["average_pace_mps"], units),
            format_duration(run["duration_seconds"]),
            str(run["sample_count"]),
        )
    console.print(table)


@app.command()
def show(
    run_id: int = typer.Argument(...),
    config: Path = CONFIG_OPTION,
    db: Path | None = DB_OPTION,
) -> None:
    """Show one saved run."""
    cfg = _load(config, db)
    run = RunRepository(cfg.storage.db_path).get_run(run_id)
    if run is None:
        console.print(f"Run {run_id} not found.")
        raise typer.Exit(code=1)
    _print_summary(run, cfg.display.units, run_id)


@app.command()
def delete(
    run_id: int = typer.Argument(...),
    config: Path = CONFIG_OPTION,
    db: Path | None = DB_OPTION,
) -> None:
    """Delete a saved run."""
    cfg = _load(config, db)
    if not RunRepository(cfg.storage.db_path).delete_run(run_id):
        console.print(f"Run {run_id} not found.")
        raise typer.Exit(code=1)
    console.print(f"Deleted run {run_id}.")


@app.command()
def export(
    run_id: int = typer.Argument(...),
    output: Path = typer.Argument(...),
    config: Path = CONFIG_OPTION,
    db: Path | None = DB_OPTION,
) -> None:
    """Export a saved run's track as GPX."""
    cfg = _load(config, db)
    count = RunRepository(cfg.storage.db_path).export_gpx(run_id, output)
    if count == 0:
        console.print(f"Run {run_id} has no stored track.")
        raise typer.Exit(code=1)
    console.print({"points": count, "output": str(output)})


@app.command()
def totals(
    config: Path = CONFIG_OPTION,
    db: Path | None = DB_OPTION,
) -> None:
    """Show lifetime totals."""
    cfg = _load(config, db)
    data = RunRepository(cfg.storage.db_path).get_totals()
    console.print({
        "runs": data["runs_total"],
        "distance": format_distance(data["distance_meters"], cfg.display.units),
        "duration": format_duration(data["duration_seconds"]),
    })


def launch() -> None:
    """Entry point when executed as a module/script."""
    sys.exit(cli())


# Click command export (entrypoint)
cli = typer.main.get_command(app)

__all__ = ["app", "cli"]

if __name__ == "__main__":
    launch()
