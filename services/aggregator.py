"""Aggregation logic for sensory reports."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from models.records import (
    AggregatedReading,
    CellKey,
    Coordinate,
    Dimension,
    GridCell,
    SensitivityProfile,
    SensoryReport,
)
from services.decay import ACTIVE_WEIGHT_FLOOR, decay_weight
from services.personalization import personalize

DEFAULT_INTENSITY = 0.7
_MIN_HEAT = 0.1
_MAX_HEAT = 1.0


@dataclass
class HeatmapPoint:
    cell_key: CellKey
    center: Coordinate
    score: float
    intensity: float


@dataclass
class DimensionValue:
    cell_key: CellKey
    center: Coordinate
    value: float
    has_wheelchair_issue: bool


@dataclass
class WeightedReport:
    report: SensoryReport
    weight: float


@dataclass
class CellDetail:
    """Everything a map popup needs to describe one cell."""

    cell: GridCell
    reading: Optional[AggregatedReading]
    score: Optional[float]
    reports: List[WeightedReport] = field(default_factory=list)


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def aggregate(self, cell: GridCell, now: datetime) -> Optional[AggregatedReading]:
        """Decay-weighted per-dimension averages over the cell's active reports.

        Reports at or under the activity floor are left out entirely. Each
        dimension is divided by the weight of the reports that supplied it.
        Returns ``None`` when no report is active.
        """
        sums: Dict[Dimension, float] = {}
        weights: Dict[Dimension, float] = {}
        reading = AggregatedReading()

        for report in cell.reports:
            weight = decay_weight(report, now)
            if weight <= ACTIVE_WEIGHT_FLOOR:
                continue

            for dimension, value in report.dimensions().items():
                sums[dimension] = sums.get(dimension, 0.0) + value * weight
                weights[dimension] = weights.get(dimension, 0.0) + weight
            reading.total_weight += weight
            if report.wheelchair_issue:
                reading.has_wheelchair_issue = True

        if reading.total_weight == 0:
            return None

        reading.dimensions = {
            dimension: sums[dimension] / weights[dimension] for dimension in sums
        }
        return reading

    def heatmap_points(
        self,
        cells: Iterable[GridCell],
        profile: SensitivityProfile,
        now: datetime,
        intensity: float = DEFAULT_INTENSITY,
    ) -> List[HeatmapPoint]:
        points: List[HeatmapPoint] = []
        for cell in cells:
            reading = self.aggregate(cell, now)
            if reading is None:
                continue
            points.append(
                HeatmapPoint(
                    cell_key=cell.key,
                    center=cell.bounds.center,
                    score=personalize(reading, profile),
                    intensity=0.0,
                )
            )

        max_score = max((point.score for point in points), default=0.0)
        for point in points:
            if max_score > 0:
                scaled = point.score / max_score * intensity
            else:
                scaled = _MIN_HEAT * intensity
            point.intensity = max(_MIN_HEAT, min(_MAX_HEAT, scaled))
        return points

    def dimension_view(
        self,
        cells: Iterable[GridCell],
        dimension: Dimension,
        now: datetime,
    ) -> List[DimensionValue]:
        """Per-cell value of a single dimension, skipping cells where it is absent or zero."""
        values: List[DimensionValue] = []
        for cell in cells:
            reading = self.aggregate(cell, now)
            if reading is None:
                continue
            value = reading.dimensions.get(dimension)
            if not value:
                continue
            values.append(
                DimensionValue(
                    cell_key=cell.key,
                    center=cell.bounds.center,
                    value=value,
                    has_wheelchair_issue=reading.has_wheelchair_issue,
                )
            )
        return values

    def cell_detail(
        self,
        cell: GridCell,
        profile: SensitivityProfile,
        now: datetime,
    ) -> CellDetail:
        reading = self.aggregate(cell, now)
        return CellDetail(
            cell=cell,
            reading=reading,
            score=personalize(reading, profile) if reading is not None else None,
            reports=[
                WeightedReport(report=report, weight=decay_weight(report, now))
                for report in cell.reports
            ],
        )
