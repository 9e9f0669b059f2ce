"""Rank walking-route alternatives by sensory comfort and travel time."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from datastore.report_store import ReportStore
from models.records import (
    CellKey,
    Coordinate,
    GridCell,
    RouteAlternative,
    RouteType,
    SensitivityProfile,
)
from services.decay import ACTIVE_WEIGHT_FLOOR, decay_weight
from services.grid_index import cell_key
from services.personalization import personalize
from services.routing import RoutingProvider, acquire_alternatives

logger = logging.getLogger(__name__)

# Cost of a sampled point with no active reports: neutral, slightly comfortable.
NEUTRAL_SEGMENT_COST = 2.5
# Used when a route carries no duration at all.
DEFAULT_DURATION_SECONDS = 600.0

# (sensory weight, seconds weight) per route type.
COST_POLICIES: Dict[str, Tuple[float, float]] = {
    RouteType.sensory.value: (0.7, 0.0003),
    RouteType.balanced.value: (0.5, 0.0005),
    RouteType.time.value: (0.2, 0.0008),
}


class RouteValidationError(ValueError):
    """Raised when a route is requested without both endpoints."""


@dataclass
class RoutePlan:
    route: RouteAlternative
    alternatives: List[RouteAlternative] = field(default_factory=list)
    used_fallback: bool = False


def sample_points(geometry: Sequence[Coordinate]) -> List[Coordinate]:
    """Every vertex but the last, one per segment."""
    return list(geometry[:-1])


def point_cost(
    cell: Optional[GridCell],
    profile: SensitivityProfile,
    now: datetime,
) -> float:
    """Decay-weighted mean of the personalized scores of each active report.

    Each report is personalized on its own before averaging, which is not the
    same as personalizing the cell's aggregated reading.
    """
    if cell is None:
        return NEUTRAL_SEGMENT_COST

    weighted_score = 0.0
    total_weight = 0.0
    for report in cell.reports:
        weight = decay_weight(report, now)
        if weight <= ACTIVE_WEIGHT_FLOOR:
            continue
        weighted_score += personalize(report, profile) * weight
        total_weight += weight

    if total_weight <= 0:
        return NEUTRAL_SEGMENT_COST
    return weighted_score / total_weight


def route_sensory_score(
    geometry: Sequence[Coordinate],
    cells: Mapping[CellKey, GridCell],
    profile: SensitivityProfile,
    now: datetime,
    cell_size: float,
) -> float:
    samples = sample_points(geometry)
    if not samples:
        return NEUTRAL_SEGMENT_COST
    costs = [point_cost(cells.get(cell_key(point, cell_size)), profile, now) for point in samples]
    return sum(costs) / len(costs)


def composite_cost(sensory_score: float, duration_seconds: float, route_type: str) -> float:
    sensory_weight, time_weight = COST_POLICIES.get(route_type, COST_POLICIES[RouteType.balanced.value])
    duration = duration_seconds or DEFAULT_DURATION_SECONDS
    return sensory_score * sensory_weight + duration * time_weight


def select_best(costs: Sequence[float]) -> int:
    """Index of the lowest cost; the earliest wins ties."""
    best_index = 0
    best_cost = float("inf")
    for index, cost in enumerate(costs):
        if cost < best_cost:
            best_cost = cost
            best_index = index
    return best_index


class RouteScorer:
    """Scores provider alternatives against the report store."""

    def __init__(
        self,
        store: ReportStore,
        provider: RoutingProvider,
        timeout: Optional[float] = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.timeout = timeout

    def score_routes(
        self,
        routes: List[RouteAlternative],
        profile: SensitivityProfile,
        route_type: str,
        now: datetime,
    ) -> RouteAlternative:
        """Annotate every alternative with its scores and return the winner."""
        keys = [
            cell_key(point, self.store.cell_size)
            for route in routes
            for point in sample_points(route.geometry)
        ]
        cells = self.store.cells_for(keys)

        costs: List[float] = []
        for route in routes:
            route.sensory_score = route_sensory_score(
                route.geometry, cells, profile, now, self.store.cell_size
            )
            route.total_score = composite_cost(route.sensory_score, route.duration_seconds, route_type)
            route.route_type = route_type
            costs.append(route.total_score)

        return routes[select_best(costs)]

    async def calculate_route(
        self,
        start: Optional[Coordinate],
        end: Optional[Coordinate],
        profile: SensitivityProfile,
        route_type: str = RouteType.sensory.value,
        now: Optional[datetime] = None,
    ) -> RoutePlan:
        if start is None or end is None:
            raise RouteValidationError("Both start and end points are required.")

        routes, used_fallback = await acquire_alternatives(self.provider, start, end, self.timeout)
        best = self.score_routes(routes, profile, route_type, now or datetime.now(timezone.utc))
        logger.info(
            "Selected route",
            extra={
                "route_type": route_type,
                "routes": len(routes),
                "sensory_score": round(best.sensory_score or 0.0, 3),
                "total_score": round(best.total_score or 0.0, 3),
            },
        )
        return RoutePlan(route=best, alternatives=routes, used_fallback=used_fallback)
