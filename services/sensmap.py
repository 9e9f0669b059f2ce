"""Orchestration of report ingestion, map views, profile and routing."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from functools import lru_cache
from threading import Lock
from typing import Dict, List, Mapping, Optional, Tuple, Union

from datastore.report_store import ReportNotFoundError, ReportStore, build_default_store
from models.records import (
    CellKey,
    Coordinate,
    Dimension,
    ReportCategory,
    SensitivityProfile,
    SensoryReport,
)
from services.aggregator import (
    DEFAULT_INTENSITY,
    Aggregator,
    CellDetail,
    DimensionValue,
    HeatmapPoint,
)
from services.grid_index import format_cell_key
from services.route_scorer import RoutePlan, RouteScorer
from services.routing import OSRMRoutingProvider, RoutingProvider
from settings import get_settings
from storage.profile_store import ProfileStore, build_default_profile_store

logger = logging.getLogger(__name__)

# Longest allowed duration per category, also used when none is given.
MAX_DURATION_MINUTES: Dict[ReportCategory, int] = {
    ReportCategory.irregular: 60,
    ReportCategory.regular: 360,
}


class ReportValidationError(ValueError):
    """Raised when a submitted report is incomplete or out of range."""


def _parse_category(raw: Union[str, ReportCategory]) -> ReportCategory:
    try:
        return ReportCategory(raw)
    except ValueError as exc:
        raise ReportValidationError(
            f"Unknown category {raw!r}; expected 'irregular' or 'regular'."
        ) from exc


def _parse_duration(raw: Union[int, str, None], category: ReportCategory) -> int:
    maximum = MAX_DURATION_MINUTES[category]
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return maximum
    try:
        duration = int(str(raw).strip())
    except ValueError as exc:
        raise ReportValidationError(
            f"Duration must be between 1 and {maximum} minutes."
        ) from exc
    if duration < 1 or duration > maximum:
        raise ReportValidationError(f"Duration must be between 1 and {maximum} minutes.")
    return duration


def _validate_values(values: Mapping[Dimension, int]) -> Dict[Dimension, int]:
    if not values:
        raise ReportValidationError("At least one sensory value is required.")
    for dimension, value in values.items():
        if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 10:
            raise ReportValidationError(f"{dimension.value} must be an integer between 0 and 10.")
    return dict(values)


class SensmapService:
    """Coordinates the report store, aggregation, profile and route scoring."""

    def __init__(
        self,
        store: ReportStore,
        profiles: ProfileStore,
        aggregator: Aggregator,
        route_scorer: RouteScorer,
    ) -> None:
        self.store = store
        self.profiles = profiles
        self.aggregator = aggregator
        self.route_scorer = route_scorer
        self._last_added: Optional[CellKey] = None
        self._last_id = 0
        self._state_lock = Lock()

    def submit_report(
        self,
        coord: Coordinate,
        category: Union[str, ReportCategory],
        values: Mapping[Dimension, int],
        duration: Union[int, str, None] = None,
        wheelchair_issue: bool = False,
        now: Optional[datetime] = None,
    ) -> Tuple[CellKey, SensoryReport]:
        """Validate a submission and store it in the cell containing ``coord``."""
        parsed_category = _parse_category(category)
        parsed_values = _validate_values(values)
        duration_minutes = _parse_duration(duration, parsed_category)

        timestamp = now or datetime.now(timezone.utc)
        report = SensoryReport(
            id=self._next_report_id(timestamp),
            timestamp=timestamp,
            category=parsed_category,
            duration_minutes=duration_minutes,
            noise=parsed_values.get(Dimension.noise),
            light=parsed_values.get(Dimension.light),
            odor=parsed_values.get(Dimension.odor),
            crowd=parsed_values.get(Dimension.crowd),
            wheelchair_issue=wheelchair_issue,
        )
        key = self.store.insert(coord, report)
        with self._state_lock:
            self._last_added = key

        logger.info(
            "Accepted sensory report",
            extra={
                "cell_key": format_cell_key(key),
                "report_id": report.id,
                "category": parsed_category.value,
            },
        )
        return key, report

    def delete_report(self, key: CellKey, report_id: int) -> SensoryReport:
        try:
            report = self.store.delete_by_id(key, report_id)
        except ReportNotFoundError:
            logger.warning(
                "Delete requested for unknown report",
                extra={"cell_key": format_cell_key(key), "report_id": report_id},
            )
            raise
        logger.info(
            "Deleted sensory report",
            extra={"cell_key": format_cell_key(key), "report_id": report_id},
        )
        return report

    def undo_last(self) -> SensoryReport:
        """Remove the newest report from the cell that was added to most recently."""
        with self._state_lock:
            key = self._last_added
            self._last_added = None
        if key is None:
            raise ReportNotFoundError("There is no recent report to undo.")
        report = self.store.delete_last(key)
        logger.info(
            "Undid last sensory report",
            extra={"cell_key": format_cell_key(key), "report_id": report.id},
        )
        return report

    def compact(self, now: Optional[datetime] = None) -> int:
        removed = self.store.compact(now or datetime.now(timezone.utc))
        if removed:
            logger.info(
                "Removed expired reports",
                extra={"removed_count": removed, "cell_count": len(self.store)},
            )
        return removed

    def cell_summaries(self, now: Optional[datetime] = None) -> List[CellDetail]:
        profile = self.get_profile()
        moment = now or datetime.now(timezone.utc)
        return [
            self.aggregator.cell_detail(cell, profile, moment)
            for cell in self.store.snapshot()
        ]

    def cell_detail(self, key: CellKey, now: Optional[datetime] = None) -> CellDetail:
        cell = self.store.get_cell(key)
        if cell is None:
            raise ReportNotFoundError(f"Cell {format_cell_key(key)!r} has no reports.")
        return self.aggregator.cell_detail(
            cell, self.get_profile(), now or datetime.now(timezone.utc)
        )

    def heatmap(
        self,
        intensity: float = DEFAULT_INTENSITY,
        now: Optional[datetime] = None,
    ) -> List[HeatmapPoint]:
        return self.aggregator.heatmap_points(
            self.store.snapshot(),
            self.get_profile(),
            now or datetime.now(timezone.utc),
            intensity=intensity,
        )

    def dimension_view(
        self,
        dimension: Dimension,
        now: Optional[datetime] = None,
    ) -> List[DimensionValue]:
        return self.aggregator.dimension_view(
            self.store.snapshot(), dimension, now or datetime.now(timezone.utc)
        )

    def get_profile(self) -> SensitivityProfile:
        return self.profiles.load()

    def update_profile(self, profile: SensitivityProfile) -> SensitivityProfile:
        for dimension in Dimension:
            value = profile.threshold(dimension)
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 10:
                raise ValueError(f"{dimension.value} threshold must be an integer between 0 and 10.")
        self.profiles.save(profile)
        logger.info("Updated sensitivity profile")
        return profile

    async def calculate_route(
        self,
        start: Optional[Coordinate],
        end: Optional[Coordinate],
        route_type: str = "sensory",
        now: Optional[datetime] = None,
    ) -> RoutePlan:
        return await self.route_scorer.calculate_route(
            start, end, self.get_profile(), route_type=route_type, now=now
        )

    def _next_report_id(self, timestamp: datetime) -> int:
        # Millisecond timestamp, bumped so ids stay unique and increasing.
        candidate = int(timestamp.timestamp() * 1000)
        with self._state_lock:
            self._last_id = max(candidate, self._last_id + 1)
            return self._last_id


@lru_cache
def build_default_service() -> SensmapService:
    """Factory that wires the service from settings."""
    settings = get_settings()
    store = build_default_store()
    provider: RoutingProvider = OSRMRoutingProvider(
        base_url=settings.routing_base_url,
        timeout=settings.routing_timeout,
    )
    return SensmapService(
        store=store,
        profiles=build_default_profile_store(),
        aggregator=Aggregator(),
        route_scorer=RouteScorer(store=store, provider=provider, timeout=settings.routing_timeout),
    )
