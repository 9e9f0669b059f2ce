from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer

_DIMENSIONS = ("noise", "light", "odor", "crowd")


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _fmt(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.2f}"
    return "-" if value is None else str(value)


def render_report(payload: Dict[str, Any], cell_key: str | None = None) -> None:
    echo_heading("Sensory Report")
    pairs = [("id", payload.get("id"))]
    if cell_key is not None:
        pairs.append(("cell_key", cell_key))
    pairs.extend(
        [
            ("category", payload.get("category")),
            ("timestamp", payload.get("timestamp")),
            ("duration_minutes", payload.get("duration_minutes")),
        ]
    )
    pairs.extend((name, payload.get(name)) for name in _DIMENSIONS if payload.get(name) is not None)
    if payload.get("wheelchair_issue"):
        pairs.append(("wheelchair_issue", True))
    echo_key_values(pairs)


def render_cells(cells: List[Dict[str, Any]]) -> None:
    echo_heading("Cells")
    if not cells:
        typer.echo("No reports stored.")
        return
    for cell in cells:
        reading = cell.get("reading") or {}
        dimensions = reading.get("dimensions") or {}
        values = " ".join(f"{name}={_fmt(dimensions[name])}" for name in _DIMENSIONS if name in dimensions)
        marker = " [wheelchair]" if reading.get("has_wheelchair_issue") else ""
        typer.echo(
            f"  - {cell.get('cell_key')}: reports={cell.get('report_count')} "
            f"score={_fmt(cell.get('score'))} {values}{marker}".rstrip()
        )


def render_profile(profile: Dict[str, Any]) -> None:
    echo_heading("Sensitivity Profile")
    echo_key_values((f"{name}_threshold", profile.get(f"{name}_threshold")) for name in _DIMENSIONS)


def render_route(plan: Dict[str, Any]) -> None:
    route = plan.get("route") or {}
    echo_heading("Route")
    echo_key_values(
        [
            ("route_type", route.get("route_type")),
            ("distance_km", _fmt((route.get("distance_meters") or 0.0) / 1000)),
            ("duration_min", round((route.get("duration_seconds") or 0.0) / 60)),
            ("sensory_score", _fmt(route.get("sensory_score"))),
            ("total_score", _fmt(route.get("total_score"))),
            ("points", len(route.get("geometry") or [])),
        ]
    )
    if plan.get("used_fallback"):
        typer.secho("Routing service unavailable; showing a straight line.", fg=typer.colors.YELLOW)

    alternatives = plan.get("alternatives") or []
    if len(alternatives) > 1:
        typer.echo()
        echo_heading("Alternatives")
        for index, alternative in enumerate(alternatives, start=1):
            typer.echo(
                f"  {index}. sensory={_fmt(alternative.get('sensory_score'))} "
                f"total={_fmt(alternative.get('total_score'))} "
                f"duration_min={round((alternative.get('duration_seconds') or 0.0) / 60)}"
            )
