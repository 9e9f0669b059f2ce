"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class Dimension(str, Enum):
    """Sensory dimensions a report may carry."""

    noise = "noise"
    light = "light"
    odor = "odor"
    crowd = "crowd"


class ReportCategory(str, Enum):
    """Irregular conditions are short-lived events; regular ones are structural."""

    irregular = "irregular"
    regular = "regular"


@dataclass(frozen=True, slots=True)
class Coordinate:
    lat: float
    lng: float


CellKey = Tuple[int, int]

_EDGE_TOLERANCE = 1e-9


@dataclass(frozen=True, slots=True)
class CellBounds:
    """Axis-aligned rectangle in degrees, south-west to north-east."""

    south: float
    west: float
    north: float
    east: float

    def contains(self, coord: Coordinate) -> bool:
        # Edges are recomputed from integer keys, so allow for float rounding.
        return (
            self.south - _EDGE_TOLERANCE <= coord.lat <= self.north + _EDGE_TOLERANCE
            and self.west - _EDGE_TOLERANCE <= coord.lng <= self.east + _EDGE_TOLERANCE
        )

    @property
    def center(self) -> Coordinate:
        return Coordinate(
            lat=(self.south + self.north) / 2,
            lng=(self.west + self.east) / 2,
        )


@dataclass(frozen=True, slots=True)
class SensoryReport:
    """A single sensory observation. Dimensions left as ``None`` were not reported."""

    id: int
    timestamp: datetime
    category: ReportCategory
    duration_minutes: int
    noise: Optional[int] = None
    light: Optional[int] = None
    odor: Optional[int] = None
    crowd: Optional[int] = None
    wheelchair_issue: bool = False

    def dimensions(self) -> Dict[Dimension, int]:
        values = {
            Dimension.noise: self.noise,
            Dimension.light: self.light,
            Dimension.odor: self.odor,
            Dimension.crowd: self.crowd,
        }
        return {dimension: value for dimension, value in values.items() if value is not None}


@dataclass(slots=True)
class GridCell:
    key: CellKey
    bounds: CellBounds
    reports: List[SensoryReport] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class SensitivityProfile:
    noise_threshold: int = 5
    light_threshold: int = 5
    odor_threshold: int = 5
    crowd_threshold: int = 5

    def threshold(self, dimension: Dimension) -> int:
        return {
            Dimension.noise: self.noise_threshold,
            Dimension.light: self.light_threshold,
            Dimension.odor: self.odor_threshold,
            Dimension.crowd: self.crowd_threshold,
        }[dimension]


@dataclass(slots=True)
class AggregatedReading:
    """Decay-weighted per-dimension averages for one cell."""

    dimensions: Dict[Dimension, float] = field(default_factory=dict)
    total_weight: float = 0.0
    has_wheelchair_issue: bool = False


class RouteType(str, Enum):
    sensory = "sensory"
    balanced = "balanced"
    time = "time"


@dataclass(slots=True)
class RouteAlternative:
    """Candidate path; the score fields are filled in once the route is ranked."""

    geometry: List[Coordinate]
    distance_meters: float
    duration_seconds: float
    sensory_score: Optional[float] = None
    total_score: Optional[float] = None
    route_type: Optional[str] = None
