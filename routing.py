"""Routing collaborators: distance and duration between two points."""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from exceptions import RoutingError
from geo import Point, haversine_meters

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Route:
    distance_km: float
    duration_minutes: float


class RoutingService(Protocol):
    async def get_route(self, origin: Point, destination: Point) -> Route: ...


class DirectionsRoutingService:
    """
    Client for a directions endpoint.

    Request:  POST {origin: {latitude, longitude}, destination: {...}, travelMode}
    Response: {success, data: {distance: {km}, duration: {minutes},
               durationInTraffic: {minutes}}}
    """

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def get_route(self, origin: Point, destination: Point) -> Route:
        body = {
            "origin": {"latitude": origin.latitude, "longitude": origin.longitude},
            "destination": {"latitude": destination.latitude, "longitude": destination.longitude},
            "travelMode": "DRIVING",
            "avoidHighways": False,
            "avoidTolls": False,
        }
        try:
            response = await self._client.post(self.url, json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as e:
            logger.warning("Directions request failed: %s", e)
            raise RoutingError() from e
        except ValueError as e:
            raise RoutingError("Invalid route calculation data received.") from e

        if not isinstance(payload, dict) or not payload.get("success", True) or not payload.get("data"):
            raise RoutingError()
        data = payload["data"]

        distance_km = (data.get("distance") or {}).get("km")
        duration = (data.get("durationInTraffic") or {}).get("minutes") or (data.get("duration") or {}).get("minutes")
        try:
            distance_km = float(distance_km)
            duration = float(duration)
        except (TypeError, ValueError):
            raise RoutingError("Invalid route calculation data received.")
        if distance_km <= 0 or duration <= 0:
            raise RoutingError("Invalid route calculation data received.")

        return Route(distance_km=distance_km, duration_minutes=duration)

    async def aclose(self):
        await self._client.aclose()


class StraightLineRoutingService:
    """Haversine distance scaled by a road factor at a fixed average speed."""

    def __init__(self, average_speed_kmh: float = 30, road_factor: float = 1.3):
        self.average_speed_kmh = average_speed_kmh
        self.road_factor = road_factor

    async def get_route(self, origin: Point, destination: Point) -> Route:
        distance_km = haversine_meters(origin, destination) / 1000 * self.road_factor
        duration = distance_km / self.average_speed_kmh * 60
        return Route(distance_km=round(distance_km, 3), duration_minutes=round(duration, 1))

    async def aclose(self):
        pass
