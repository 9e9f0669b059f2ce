"""Pydantic schemas for the HTTP API layer and the grid snapshot."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from models.records import (
    AggregatedReading,
    CellBounds,
    Coordinate,
    Dimension,
    ReportCategory,
    RouteAlternative,
    SensitivityProfile,
    SensoryReport,
)

SensoryValue = Optional[int]


class CoordinateModel(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

    def to_record(self) -> Coordinate:
        return Coordinate(lat=self.lat, lng=self.lng)

    @classmethod
    def from_record(cls, coord: Coordinate) -> "CoordinateModel":
        return cls(lat=coord.lat, lng=coord.lng)


class SensoryReportModel(BaseModel):
    """A stored report as it appears in API responses and snapshots."""

    id: int
    timestamp: datetime
    category: ReportCategory
    duration_minutes: int = Field(..., ge=1)
    noise: SensoryValue = Field(default=None, ge=0, le=10)
    light: SensoryValue = Field(default=None, ge=0, le=10)
    odor: SensoryValue = Field(default=None, ge=0, le=10)
    crowd: SensoryValue = Field(default=None, ge=0, le=10)
    wheelchair_issue: bool = False

    @field_validator("timestamp")
    @classmethod
    def timestamp_as_utc(cls, value: datetime) -> datetime:
        # Snapshots written by hand may omit the offset; treat those as UTC.
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def to_record(self) -> SensoryReport:
        return SensoryReport(
            id=self.id,
            timestamp=self.timestamp,
            category=self.category,
            duration_minutes=self.duration_minutes,
            noise=self.noise,
            light=self.light,
            odor=self.odor,
            crowd=self.crowd,
            wheelchair_issue=self.wheelchair_issue,
        )

    @classmethod
    def from_record(cls, report: SensoryReport) -> "SensoryReportModel":
        return cls(
            id=report.id,
            timestamp=report.timestamp,
            category=report.category,
            duration_minutes=report.duration_minutes,
            noise=report.noise,
            light=report.light,
            odor=report.odor,
            crowd=report.crowd,
            wheelchair_issue=report.wheelchair_issue,
        )


class ReportSubmission(BaseModel):
    """Incoming report. Range and duration checks happen in the service."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    category: str = ReportCategory.irregular.value
    noise: SensoryValue = None
    light: SensoryValue = None
    odor: SensoryValue = None
    crowd: SensoryValue = None
    duration_minutes: Optional[Union[int, str]] = Field(
        default=None, description="Expected duration in minutes; defaults to the category maximum."
    )
    wheelchair_issue: bool = False

    def sensory_values(self) -> Dict[Dimension, int]:
        raw = {
            Dimension.noise: self.noise,
            Dimension.light: self.light,
            Dimension.odor: self.odor,
            Dimension.crowd: self.crowd,
        }
        return {dimension: value for dimension, value in raw.items() if value is not None}


class ReportAccepted(BaseModel):
    cell_key: str
    report: SensoryReportModel


class BoundsModel(BaseModel):
    south: float
    west: float
    north: float
    east: float

    @classmethod
    def from_record(cls, bounds: CellBounds) -> "BoundsModel":
        return cls(south=bounds.south, west=bounds.west, north=bounds.north, east=bounds.east)


class ReadingModel(BaseModel):
    dimensions: Dict[Dimension, float] = Field(default_factory=dict)
    total_weight: float
    has_wheelchair_issue: bool

    @classmethod
    def from_record(cls, reading: AggregatedReading) -> "ReadingModel":
        return cls(
            dimensions=dict(reading.dimensions),
            total_weight=reading.total_weight,
            has_wheelchair_issue=reading.has_wheelchair_issue,
        )


class CellSummary(BaseModel):
    cell_key: str
    bounds: BoundsModel
    report_count: int = Field(..., ge=1)
    reading: Optional[ReadingModel] = None
    score: Optional[float] = Field(
        default=None, description="Personalized comfort score; absent when no report is active."
    )


class WeightedReportModel(BaseModel):
    report: SensoryReportModel
    weight: float = Field(..., ge=0, le=1)


class CellDetailModel(CellSummary):
    reports: List[WeightedReportModel] = Field(default_factory=list)


class HeatmapPointModel(BaseModel):
    cell_key: str
    center: CoordinateModel
    score: float
    intensity: float


class DimensionValueModel(BaseModel):
    cell_key: str
    center: CoordinateModel
    value: float
    has_wheelchair_issue: bool


class ProfileModel(BaseModel):
    noise_threshold: int = Field(default=5, ge=0, le=10)
    light_threshold: int = Field(default=5, ge=0, le=10)
    odor_threshold: int = Field(default=5, ge=0, le=10)
    crowd_threshold: int = Field(default=5, ge=0, le=10)

    def to_record(self) -> SensitivityProfile:
        return SensitivityProfile(
            noise_threshold=self.noise_threshold,
            light_threshold=self.light_threshold,
            odor_threshold=self.odor_threshold,
            crowd_threshold=self.crowd_threshold,
        )

    @classmethod
    def from_record(cls, profile: SensitivityProfile) -> "ProfileModel":
        return cls(
            noise_threshold=profile.noise_threshold,
            light_threshold=profile.light_threshold,
            odor_threshold=profile.odor_threshold,
            crowd_threshold=profile.crowd_threshold,
        )


class RouteRequest(BaseModel):
    start: Optional[CoordinateModel] = None
    end: Optional[CoordinateModel] = None
    route_type: str = "sensory"


class RouteAlternativeModel(BaseModel):
    geometry: List[CoordinateModel]
    distance_meters: float
    duration_seconds: float
    sensory_score: Optional[float] = None
    total_score: Optional[float] = None
    route_type: Optional[str] = None

    @classmethod
    def from_record(cls, route: RouteAlternative) -> "RouteAlternativeModel":
        return cls(
            geometry=[CoordinateModel.from_record(point) for point in route.geometry],
            distance_meters=route.distance_meters,
            duration_seconds=route.duration_seconds,
            sensory_score=route.sensory_score,
            total_score=route.total_score,
            route_type=route.route_type,
        )


class RoutePlanModel(BaseModel):
    route: RouteAlternativeModel
    alternatives: List[RouteAlternativeModel] = Field(default_factory=list)
    used_fallback: bool = False


class CompactionResult(BaseModel):
    removed: int = Field(..., ge=0)
    cells: int = Field(..., ge=0)
