"""Tests for report submission, undo and profile handling in the service."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from datastore.report_store import ReportNotFoundError, ReportStore
from models.records import (
    Coordinate,
    Dimension,
    ReportCategory,
    SensitivityProfile,
)
from services.aggregator import Aggregator
from services.grid_index import cell_key
from services.route_scorer import RouteScorer, RouteValidationError
from services.routing import RouteLookup
from services.sensmap import ReportValidationError, SensmapService
from storage.profile_store import ProfileStore

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
SEOUL = Coordinate(lat=37.5665, lng=126.9780)
NEARBY = Coordinate(lat=37.5670, lng=126.9790)


class _OfflineProvider:
    async def fetch_alternatives(self, start: Coordinate, end: Coordinate) -> RouteLookup:
        return RouteLookup.failure("offline")


@pytest.fixture
def service(tmp_path) -> SensmapService:
    store = ReportStore(cell_size=15)
    return SensmapService(
        store=store,
        profiles=ProfileStore(path=tmp_path / "profile.json"),
        aggregator=Aggregator(),
        route_scorer=RouteScorer(store=store, provider=_OfflineProvider()),
    )


def test_submit_report_stores_in_containing_cell(service: SensmapService) -> None:
    key, report = service.submit_report(
        SEOUL,
        "irregular",
        {Dimension.noise: 8, Dimension.crowd: 3},
        duration="45",
        wheelchair_issue=True,
        now=NOW,
    )

    assert key == cell_key(SEOUL, 15)
    assert report.category is ReportCategory.irregular
    assert report.duration_minutes == 45
    assert report.noise == 8 and report.crowd == 3
    assert report.light is None and report.odor is None
    assert report.wheelchair_issue is True
    assert report.timestamp == NOW
    assert service.store.get_cell(key).reports == [report]  # type: ignore[union-attr]


@pytest.mark.parametrize(
    ("category", "expected"),
    [("irregular", 60), ("regular", 360)],
)
@pytest.mark.parametrize("duration", [None, "", "   "])
def test_blank_duration_uses_category_maximum(
    service: SensmapService, category: str, expected: int, duration
) -> None:
    _, report = service.submit_report(SEOUL, category, {Dimension.light: 4}, duration=duration, now=NOW)

    assert report.duration_minutes == expected


@pytest.mark.parametrize(
    ("category", "duration"),
    [
        ("irregular", "abc"),
        ("irregular", 0),
        ("irregular", 61),
        ("regular", 361),
        ("regular", "-5"),
    ],
)
def test_invalid_duration_is_rejected(service: SensmapService, category: str, duration) -> None:
    with pytest.raises(ReportValidationError, match="Duration"):
        service.submit_report(SEOUL, category, {Dimension.noise: 5}, duration=duration, now=NOW)

    assert len(service.store) == 0


def test_regular_report_accepts_long_duration(service: SensmapService) -> None:
    _, report = service.submit_report(SEOUL, "regular", {Dimension.odor: 2}, duration=360, now=NOW)

    assert report.duration_minutes == 360


@pytest.mark.parametrize(
    "values",
    [
        {},
        {Dimension.noise: 11},
        {Dimension.noise: -1},
        {Dimension.light: True},
        {Dimension.crowd: 2.5},
    ],
)
def test_invalid_values_are_rejected(service: SensmapService, values) -> None:
    with pytest.raises(ReportValidationError):
        service.submit_report(SEOUL, "irregular", values, now=NOW)

    assert len(service.store) == 0


def test_unknown_category_is_rejected(service: SensmapService) -> None:
    with pytest.raises(ReportValidationError, match="category"):
        service.submit_report(SEOUL, "weekly", {Dimension.noise: 5}, now=NOW)


def test_report_ids_increase_within_one_millisecond(service: SensmapService) -> None:
    ids = [
        service.submit_report(SEOUL, "irregular", {Dimension.noise: 1}, now=NOW)[1].id
        for _ in range(3)
    ]

    assert ids[0] == int(NOW.timestamp() * 1000)
    assert ids == sorted(set(ids))


def test_undo_removes_newest_report_of_last_cell(service: SensmapService) -> None:
    first_key, first = service.submit_report(SEOUL, "irregular", {Dimension.noise: 1}, now=NOW)
    second_key, second = service.submit_report(NEARBY, "irregular", {Dimension.noise: 9}, now=NOW)
    assert first_key != second_key

    undone = service.undo_last()

    assert undone.id == second.id
    assert service.store.get_cell(second_key) is None
    assert service.store.get_cell(first_key).reports == [first]  # type: ignore[union-attr]

    with pytest.raises(ReportNotFoundError):
        service.undo_last()


def test_undo_without_reports_raises(service: SensmapService) -> None:
    with pytest.raises(ReportNotFoundError):
        service.undo_last()


def test_delete_report_by_id(service: SensmapService) -> None:
    key, first = service.submit_report(SEOUL, "irregular", {Dimension.noise: 1}, now=NOW)
    _, second = service.submit_report(SEOUL, "irregular", {Dimension.noise: 2}, now=NOW)

    assert service.delete_report(key, first.id).id == first.id
    assert [report.id for report in service.store.get_cell(key).reports] == [second.id]  # type: ignore[union-attr]

    with pytest.raises(ReportNotFoundError):
        service.delete_report(key, first.id)


def test_compact_drops_expired_reports(service: SensmapService) -> None:
    service.submit_report(SEOUL, "irregular", {Dimension.noise: 4}, now=NOW - timedelta(hours=7))
    service.submit_report(NEARBY, "regular", {Dimension.noise: 4}, now=NOW - timedelta(hours=1))

    assert service.compact(NOW) == 1
    assert len(service.store) == 1


def test_cell_views_use_saved_profile(service: SensmapService) -> None:
    key, _ = service.submit_report(
        SEOUL, "irregular", {Dimension.noise: 10, Dimension.light: 2}, now=NOW
    )
    service.update_profile(SensitivityProfile(noise_threshold=0))

    summaries = service.cell_summaries(NOW)
    detail = service.cell_detail(key, NOW)

    assert len(summaries) == 1
    assert summaries[0].score == pytest.approx(2.0)
    assert detail.score == pytest.approx(2.0)
    assert detail.reports[0].weight == pytest.approx(1.0)

    with pytest.raises(ReportNotFoundError):
        service.cell_detail((0, 0), NOW)


def test_heatmap_and_dimension_view(service: SensmapService) -> None:
    service.submit_report(SEOUL, "irregular", {Dimension.noise: 6}, now=NOW)
    service.submit_report(NEARBY, "irregular", {Dimension.light: 3}, now=NOW)

    points = service.heatmap(intensity=1.0, now=NOW)
    noise = service.dimension_view(Dimension.noise, NOW)

    assert sorted(point.score for point in points) == [3.0, 6.0]
    assert max(point.intensity for point in points) == pytest.approx(1.0)
    assert [item.value for item in noise] == [6.0]


def test_update_profile_persists(service: SensmapService) -> None:
    profile = SensitivityProfile(noise_threshold=9, light_threshold=1, odor_threshold=0, crowd_threshold=10)

    assert service.update_profile(profile) == profile
    assert service.get_profile() == profile


@pytest.mark.parametrize("bad", [11, -1, True])
def test_update_profile_rejects_out_of_range(service: SensmapService, bad) -> None:
    with pytest.raises(ValueError):
        service.update_profile(SensitivityProfile(noise_threshold=bad))

    assert service.get_profile() == SensitivityProfile()


def test_calculate_route_falls_back_offline(service: SensmapService) -> None:
    plan = asyncio.run(service.calculate_route(SEOUL, NEARBY, "time", now=NOW))

    assert plan.used_fallback is True
    assert plan.route.geometry == [SEOUL, NEARBY]
    assert plan.route.route_type == "time"


def test_calculate_route_needs_endpoints(service: SensmapService) -> None:
    with pytest.raises(RouteValidationError):
        asyncio.run(service.calculate_route(SEOUL, None))
