"""Fixed-resolution grid over an equirectangular approximation.

One degree is treated as ``METERS_PER_DEGREE`` meters on both axes. That is
good enough at city scale and moderate latitudes; there is no dateline or
pole correction.
"""

from __future__ import annotations

import math

from models.records import CellBounds, CellKey, Coordinate

METERS_PER_DEGREE = 111320
DEFAULT_CELL_SIZE_METERS = 15.0
EARTH_RADIUS_M = 6371008.8


def cell_key(coord: Coordinate, cell_size_meters: float = DEFAULT_CELL_SIZE_METERS) -> CellKey:
    x = math.floor(coord.lng * METERS_PER_DEGREE / cell_size_meters)
    y = math.floor(coord.lat * METERS_PER_DEGREE / cell_size_meters)
    return (x, y)


def cell_bounds(key: CellKey, cell_size_meters: float = DEFAULT_CELL_SIZE_METERS) -> CellBounds:
    x, y = key
    return CellBounds(
        south=y * cell_size_meters / METERS_PER_DEGREE,
        west=x * cell_size_meters / METERS_PER_DEGREE,
        north=(y + 1) * cell_size_meters / METERS_PER_DEGREE,
        east=(x + 1) * cell_size_meters / METERS_PER_DEGREE,
    )


def format_cell_key(key: CellKey) -> str:
    return f"{key[0]},{key[1]}"


def parse_cell_key(raw: str) -> CellKey:
    """Parse the ``"x,y"`` form used in URLs and snapshots."""
    parts = raw.split(",")
    if len(parts) != 2:
        raise ValueError(f"Invalid cell key {raw!r}; expected 'x,y'.")
    try:
        return (int(parts[0].strip()), int(parts[1].strip()))
    except ValueError as exc:
        raise ValueError(f"Invalid cell key {raw!r}; expected 'x,y'.") from exc


def haversine_meters(a: Coordinate, b: Coordinate) -> float:
    d_lat = math.radians(b.lat - a.lat)
    d_lng = math.radians(b.lng - a.lng)
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)

    h = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.atan2(math.sqrt(h), math.sqrt(1 - h))
