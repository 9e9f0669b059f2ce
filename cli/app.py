from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_cells, render_profile, render_report, render_route


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Report sensory conditions and plan comfortable walking routes.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _level_option(name: str) -> Any:
    return typer.Option(None, f"--{name}", min=0, max=10, help=f"{name.capitalize()} level (0-10).")


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Sensmap API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each API request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("report")
def report_command(
    ctx: typer.Context,
    lat: float = typer.Argument(..., help="Latitude of the observation."),
    lng: float = typer.Argument(..., help="Longitude of the observation."),
    category: str = typer.Option(
        "irregular",
        "--category",
        "-c",
        help="'irregular' for temporary events, 'regular' for lasting conditions.",
    ),
    noise: Optional[int] = _level_option("noise"),
    light: Optional[int] = _level_option("light"),
    odor: Optional[int] = _level_option("odor"),
    crowd: Optional[int] = _level_option("crowd"),
    duration: Optional[int] = typer.Option(
        None,
        "--duration",
        "-d",
        help="Expected duration in minutes (defaults to the category maximum).",
    ),
    wheelchair: bool = typer.Option(
        False,
        "--wheelchair/--no-wheelchair",
        help="Flag a wheelchair accessibility issue.",
    ),
) -> None:
    """Submit a sensory report."""
    levels = {"noise": noise, "light": light, "odor": odor, "crowd": crowd}
    if all(value is None for value in levels.values()):
        raise typer.BadParameter("Provide at least one of --noise, --light, --odor, --crowd.")

    state = _get_state(ctx)
    payload: Dict[str, Any] = {
        "lat": lat,
        "lng": lng,
        "category": category,
        "wheelchair_issue": wheelchair,
    }
    payload.update({name: value for name, value in levels.items() if value is not None})
    if duration is not None:
        payload["duration_minutes"] = duration

    accepted = state.client.submit_report(payload)
    typer.secho(f"Report stored. cell_key={accepted['cell_key']}", fg=typer.colors.GREEN)
    render_report(accepted["report"], cell_key=accepted["cell_key"])


@app.command("undo")
def undo_command(ctx: typer.Context) -> None:
    """Remove the most recently added report."""
    state = _get_state(ctx)
    report = state.client.undo_last()
    typer.secho("Last report removed.", fg=typer.colors.GREEN)
    render_report(report)


@app.command("delete")
def delete_command(
    ctx: typer.Context,
    cell_key: str = typer.Argument(..., help="Cell key in 'x,y' form."),
    report_id: int = typer.Argument(..., help="Identifier of the report to delete."),
) -> None:
    """Delete a single report from a cell."""
    state = _get_state(ctx)
    state.client.delete_report(cell_key, report_id)
    typer.secho(f"Deleted report {report_id} from cell {cell_key}.", fg=typer.colors.GREEN)


@app.command("cells")
def cells_command(ctx: typer.Context) -> None:
    """List cells with their aggregated readings."""
    state = _get_state(ctx)
    render_cells(state.client.list_cells())


@app.command("profile")
def profile_command(
    ctx: typer.Context,
    noise: Optional[int] = _level_option("noise"),
    light: Optional[int] = _level_option("light"),
    odor: Optional[int] = _level_option("odor"),
    crowd: Optional[int] = _level_option("crowd"),
) -> None:
    """Show the sensitivity profile, or update the thresholds that are given."""
    state = _get_state(ctx)
    profile = state.client.get_profile()
    updates = {
        f"{name}_threshold": value
        for name, value in {"noise": noise, "light": light, "odor": odor, "crowd": crowd}.items()
        if value is not None
    }
    if updates:
        profile = state.client.update_profile({**profile, **updates})
        typer.secho("Profile updated.", fg=typer.colors.GREEN)
    render_profile(profile)


@app.command("route")
def route_command(
    ctx: typer.Context,
    start_lat: float = typer.Argument(...),
    start_lng: float = typer.Argument(...),
    end_lat: float = typer.Argument(...),
    end_lng: float = typer.Argument(...),
    route_type: str = typer.Option(
        "sensory",
        "--type",
        "-t",
        help="'sensory', 'balanced' or 'time'.",
    ),
) -> None:
    """Find the best walking route between two points."""
    state = _get_state(ctx)
    plan = state.client.calculate_route(
        {
            "start": {"lat": start_lat, "lng": start_lng},
            "end": {"lat": end_lat, "lng": end_lng},
            "route_type": route_type,
        }
    )
    render_route(plan)


@app.command("compact")
def compact_command(ctx: typer.Context) -> None:
    """Drop expired reports now."""
    state = _get_state(ctx)
    result = state.client.compact()
    typer.echo(f"Removed {result['removed']} expired reports; {result['cells']} cells remain.")
