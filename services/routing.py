"""Walking-route alternatives from an OSRM-compatible routing service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

import httpx

from models.records import Coordinate, RouteAlternative
from services.grid_index import haversine_meters

logger = logging.getLogger(__name__)

WALKING_SPEED_MPS = 1.4
DEFAULT_TIMEOUT_SECONDS = 8.0


@dataclass
class RouteLookup:
    """Outcome of asking the provider for routes: either routes or an error."""

    routes: List[RouteAlternative] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.routes)

    @classmethod
    def failure(cls, reason: str) -> "RouteLookup":
        return cls(routes=[], error=reason)


class RoutingProvider(Protocol):
    async def fetch_alternatives(self, start: Coordinate, end: Coordinate) -> RouteLookup: ...


def straight_line_route(start: Coordinate, end: Coordinate) -> RouteAlternative:
    distance = haversine_meters(start, end)
    return RouteAlternative(
        geometry=[start, end],
        distance_meters=distance,
        duration_seconds=distance / WALKING_SPEED_MPS,
    )


class OSRMRoutingProvider:
    """Async client for the OSRM ``/route/v1/walking`` endpoint.

    Never raises for network or payload problems; those come back as a
    failed ``RouteLookup`` so the caller can fall back.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def fetch_alternatives(self, start: Coordinate, end: Coordinate) -> RouteLookup:
        path = f"/route/v1/walking/{start.lng},{start.lat};{end.lng},{end.lat}"
        params = {"overview": "full", "geometries": "geojson", "alternatives": "true"}
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(path, params=params)
                response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException:
            return RouteLookup.failure(f"routing request timed out after {self.timeout}s")
        except httpx.HTTPError as exc:
            return RouteLookup.failure(f"routing request failed: {exc}")
        except ValueError:
            return RouteLookup.failure("routing response was not valid JSON")

        try:
            routes = [self._parse_route(item) for item in payload.get("routes") or []]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            return RouteLookup.failure(f"unexpected routing payload: {exc}")

        if not routes:
            return RouteLookup.failure("no routes found")
        return RouteLookup(routes=routes)

    @staticmethod
    def _parse_route(item: Any) -> RouteAlternative:
        # GeoJSON coordinates are [lng, lat].
        coordinates = item["geometry"]["coordinates"]
        return RouteAlternative(
            geometry=[Coordinate(lat=float(lat), lng=float(lng)) for lng, lat in coordinates],
            distance_meters=float(item.get("distance") or 0.0),
            duration_seconds=float(item.get("duration") or 0.0),
        )


async def acquire_alternatives(
    provider: RoutingProvider,
    start: Coordinate,
    end: Coordinate,
    timeout: Optional[float] = None,
) -> tuple[List[RouteAlternative], bool]:
    """Provider routes, or a single straight-line route when the provider has none.

    ``timeout`` bounds the whole lookup, on top of any transport timeout the
    provider applies itself. Returns the routes and whether the fallback was used.
    """
    try:
        lookup = await asyncio.wait_for(provider.fetch_alternatives(start, end), timeout)
    except asyncio.TimeoutError:
        lookup = RouteLookup.failure(f"routing lookup exceeded {timeout}s")
    if lookup.ok:
        logger.info("Routing provider returned alternatives", extra={"routes": len(lookup.routes)})
        return lookup.routes, False

    logger.warning(
        "Routing provider unavailable; using straight-line fallback",
        extra={"reason": lookup.error or "no routes found"},
    )
    return [straight_line_route(start, end)], True
