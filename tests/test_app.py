import asyncio
from contextlib import suppress
from typing import Iterator, List

import pytest
from fastapi.testclient import TestClient

from app.main import create_app, run_compaction
from datastore.report_store import ReportStore, build_default_store
from models.records import Coordinate, RouteAlternative
from services.aggregator import Aggregator
from services.route_scorer import RouteScorer
from services.routing import RouteLookup
from services.sensmap import SensmapService, build_default_service
from settings import get_settings
from storage.profile_store import ProfileStore, build_default_profile_store

SEOUL = {"lat": 37.5665, "lng": 126.9780}
NEARBY = {"lat": 37.5700, "lng": 126.9820}


class StubProvider:
    def __init__(self) -> None:
        self.routes: List[RouteAlternative] = []

    async def fetch_alternatives(self, start: Coordinate, end: Coordinate) -> RouteLookup:
        if not self.routes:
            return RouteLookup.failure("offline")
        return RouteLookup(routes=self.routes)


@pytest.fixture
def provider() -> StubProvider:
    return StubProvider()


@pytest.fixture
def api_client(tmp_path, monkeypatch, provider: StubProvider) -> Iterator[TestClient]:
    services: List[SensmapService] = []

    def build_test_service() -> SensmapService:
        if not services:
            store = ReportStore(cell_size=15, persistence_path=tmp_path / "grid.json")
            services.append(
                SensmapService(
                    store=store,
                    profiles=ProfileStore(path=tmp_path / "profile.json"),
                    aggregator=Aggregator(),
                    route_scorer=RouteScorer(store=store, provider=provider),
                )
            )
        return services[0]

    build_test_service.cache_clear = services.clear  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_service", build_test_service)
    monkeypatch.setattr("app.api.build_default_service", build_test_service)

    app = create_app()
    with TestClient(app) as client:
        yield client


def _submit(client: TestClient, **overrides) -> dict:
    payload = {**SEOUL, "category": "irregular", "noise": 8, "crowd": 4, **overrides}
    response = client.post("/reports", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def test_lifespan_clears_service_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("SENSMAP_GRID_PERSISTENCE_PATH", str(tmp_path / "grid.json"))
    monkeypatch.setenv("SENSMAP_PROFILE_PATH", str(tmp_path / "profile.json"))
    caches = (get_settings, build_default_store, build_default_profile_store, build_default_service)
    for cache in caches:
        cache.cache_clear()

    try:
        with TestClient(create_app()):
            service_during = build_default_service()

        service_after = build_default_service()
        assert service_after is not service_during
        assert service_after.store.persistence_path == tmp_path / "grid.json"
    finally:
        for cache in caches:
            cache.cache_clear()


def test_health(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    assert api_client.get("/").status_code == 200


def test_submit_report_and_list_cells(api_client: TestClient) -> None:
    accepted = _submit(api_client, duration_minutes="30", wheelchair_issue=True)

    assert accepted["report"]["duration_minutes"] == 30
    assert accepted["report"]["noise"] == 8
    assert accepted["report"]["light"] is None

    cells = api_client.get("/cells").json()
    assert len(cells) == 1
    cell = cells[0]
    assert cell["cell_key"] == accepted["cell_key"]
    assert cell["report_count"] == 1
    assert cell["reading"]["dimensions"] == {"noise": pytest.approx(8.0), "crowd": pytest.approx(4.0)}
    assert cell["reading"]["has_wheelchair_issue"] is True
    assert cell["score"] == pytest.approx(6.0)

    detail = api_client.get(f"/cells/{accepted['cell_key']}").json()
    assert detail["reports"][0]["report"]["id"] == accepted["report"]["id"]
    assert detail["reports"][0]["weight"] == pytest.approx(1.0, abs=1e-3)


def test_submit_report_defaults_duration_by_category(api_client: TestClient) -> None:
    assert _submit(api_client)["report"]["duration_minutes"] == 60
    assert _submit(api_client, category="regular")["report"]["duration_minutes"] == 360


@pytest.mark.parametrize(
    "overrides",
    [
        {"noise": None, "crowd": None},
        {"noise": 11},
        {"duration_minutes": "soon"},
        {"duration_minutes": 61},
        {"category": "weekly"},
    ],
)
def test_invalid_report_returns_bad_request(api_client: TestClient, overrides: dict) -> None:
    response = api_client.post(
        "/reports",
        json={**SEOUL, "category": "irregular", "noise": 8, "crowd": 4, **overrides},
    )

    assert response.status_code == 400
    assert response.json()["detail"]
    assert api_client.get("/cells").json() == []


def test_undo_and_delete(api_client: TestClient) -> None:
    first = _submit(api_client, noise=2)
    second = _submit(api_client, noise=9)

    undone = api_client.post("/reports/undo")
    assert undone.status_code == 200
    assert undone.json()["id"] == second["report"]["id"]
    assert api_client.post("/reports/undo").status_code == 404

    key = first["cell_key"]
    missing = api_client.delete(f"/cells/{key}/reports/{second['report']['id']}")
    assert missing.status_code == 404

    deleted = api_client.delete(f"/cells/{key}/reports/{first['report']['id']}")
    assert deleted.status_code == 204
    assert api_client.get(f"/cells/{key}").status_code == 404


def test_malformed_cell_key_returns_bad_request(api_client: TestClient) -> None:
    assert api_client.get("/cells/not-a-key").status_code == 400
    assert api_client.delete("/cells/a,b/reports/1").status_code == 400


def test_heatmap_and_dimension_views(api_client: TestClient) -> None:
    _submit(api_client, noise=8, crowd=None)
    _submit(api_client, lat=NEARBY["lat"], lng=NEARBY["lng"], noise=None, crowd=None, light=4)

    points = api_client.get("/heatmap", params={"intensity": 1.0}).json()
    assert sorted(point["score"] for point in points) == pytest.approx([4.0, 8.0])
    assert max(point["intensity"] for point in points) == pytest.approx(1.0)

    light = api_client.get("/dimensions/light").json()
    assert len(light) == 1
    assert light[0]["value"] == pytest.approx(4.0)

    assert api_client.get("/heatmap", params={"intensity": 0}).status_code == 422
    assert api_client.get("/dimensions/smell").status_code == 422


def test_profile_round_trip(api_client: TestClient) -> None:
    assert api_client.get("/profile").json() == {
        "noise_threshold": 5,
        "light_threshold": 5,
        "odor_threshold": 5,
        "crowd_threshold": 5,
    }

    updated = {"noise_threshold": 10, "light_threshold": 0, "odor_threshold": 3, "crowd_threshold": 5}
    assert api_client.put("/profile", json=updated).json() == updated
    assert api_client.get("/profile").json() == updated

    rejected = api_client.put("/profile", json={**updated, "noise_threshold": 12})
    assert rejected.status_code == 422


def test_route_falls_back_when_provider_is_offline(api_client: TestClient) -> None:
    response = api_client.post("/routes", json={"start": SEOUL, "end": NEARBY, "route_type": "balanced"})

    assert response.status_code == 200
    plan = response.json()
    assert plan["used_fallback"] is True
    assert len(plan["alternatives"]) == 1
    assert plan["route"]["geometry"] == [SEOUL, NEARBY]
    assert plan["route"]["sensory_score"] == pytest.approx(2.5)
    assert plan["route"]["route_type"] == "balanced"


def test_route_picks_lowest_cost_alternative(api_client: TestClient, provider: StubProvider) -> None:
    start = Coordinate(**SEOUL)
    end = Coordinate(**NEARBY)
    provider.routes = [
        RouteAlternative(geometry=[start, end], distance_meters=900.0, duration_seconds=2400.0),
        RouteAlternative(geometry=[start, end], distance_meters=500.0, duration_seconds=400.0),
    ]

    plan = api_client.post("/routes", json={"start": SEOUL, "end": NEARBY, "route_type": "time"}).json()

    assert plan["used_fallback"] is False
    assert plan["route"]["duration_seconds"] == 400.0
    assert [item["total_score"] for item in plan["alternatives"]] == pytest.approx(
        [2400 * 0.0008 + 2.5 * 0.2, 400 * 0.0008 + 2.5 * 0.2]
    )


def test_route_without_end_returns_bad_request(api_client: TestClient) -> None:
    response = api_client.post("/routes", json={"start": SEOUL})

    assert response.status_code == 400
    assert "start and end" in response.json()["detail"]


def test_compact_endpoint(api_client: TestClient) -> None:
    _submit(api_client)

    result = api_client.post("/maintenance/compact").json()

    assert result == {"removed": 0, "cells": 1}


class FlakyCompactor:
    def __init__(self) -> None:
        self.calls = 0

    def compact(self) -> int:
        self.calls += 1
        if self.calls == 1:
            raise TypeError("can't compare offset-naive and offset-aware datetimes")
        return 0


def test_scheduled_compaction_survives_errors(caplog) -> None:
    compactor = FlakyCompactor()

    async def run_briefly() -> bool:
        task = asyncio.create_task(run_compaction(compactor, 0.01))  # type: ignore[arg-type]
        await asyncio.sleep(0.2)
        still_running = not task.done()
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        return still_running

    assert asyncio.run(run_briefly()) is True
    assert compactor.calls >= 2
    failures = [record for record in caplog.records if record.getMessage().startswith("Scheduled compaction failed")]
    assert len(failures) == 1
    assert failures[0].exc_info is not None
