"""HTTP client for the travel distance matrix service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Sequence

import httpx

from ...config import Settings
from ...errors import UpstreamDegradedError
from ...models.domain import Coordinate

# computeRouteMatrix accepts at most 625 elements per request.
DEFAULT_MAX_LOCATIONS_PER_REQUEST = 25
DEFAULT_MAX_PARALLEL_REQUESTS = 4
FIELD_MASK = "originIndex,destinationIndex,duration,distanceMeters,status,condition"

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RouteMatrixElement:
    origin_index: int
    destination_index: int
    distance_meters: float | None
    duration_seconds: float | None

    @property
    def usable(self) -> bool:
        return self.distance_meters is not None


def _parse_duration(value: Any) -> float | None:
    """Durations arrive as protobuf strings such as ``"160s"``."""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if text.endswith("s"):
        text = text[:-1]
    try:
        return float(text)
    except ValueError:
        return None


def parse_matrix_elements(data: Any) -> list[RouteMatrixElement]:
    """Convert a computeRouteMatrix response body into matrix elements.

    Zero-valued integer fields are omitted from proto3 JSON, so a missing
    index means 0. Elements whose route does not exist, or that carry a
    non-zero status code, are returned without a distance.
    """
    if not isinstance(data, list):
        raise ValueError("Route matrix response is not a list of elements.")

    elements: list[RouteMatrixElement] = []
    for raw in data:
        if not isinstance(raw, dict):
            raise ValueError(f"Route matrix element is not an object: {raw!r}")
        try:
            origin_index = int(raw.get("originIndex", 0))
            destination_index = int(raw.get("destinationIndex", 0))
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Route matrix element has a non-integer index: {raw!r}") from exc

        status = raw.get("status") or {}
        condition = raw.get("condition", "ROUTE_EXISTS")
        if status.get("code") or condition != "ROUTE_EXISTS":
            elements.append(RouteMatrixElement(origin_index, destination_index, None, None))
            continue

        distance = raw.get("distanceMeters", 0)
        try:
            distance_meters = float(distance)
        except (TypeError, ValueError):
            distance_meters = None
        elements.append(
            RouteMatrixElement(
                origin_index=origin_index,
                destination_index=destination_index,
                distance_meters=distance_meters,
                duration_seconds=_parse_duration(raw.get("duration")),
            )
        )
    return elements


class RouteMatrixClient:
    def __init__(
        self,
        api_key: str,
        base_url: str,
        travel_mode: str = "DRIVE",
        routing_preference: str = "TRAFFIC_AWARE",
        timeout: float = 15.0,
        max_retries: int = 2,
        backoff_seconds: float = 0.5,
        max_locations_per_request: int = DEFAULT_MAX_LOCATIONS_PER_REQUEST,
        max_parallel_requests: int = DEFAULT_MAX_PARALLEL_REQUESTS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("Route matrix API key is not configured.")
        if not base_url:
            raise ValueError("Route matrix base URL is not configured.")
        self.api_key = api_key
        self.base_url = base_url
        self.travel_mode = travel_mode
        self.routing_preference = routing_preference
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.max_locations_per_request = max(1, max_locations_per_request)
        self.max_parallel_requests = max(1, max_parallel_requests)
        self._transport = transport

    @classmethod
    def from_settings(cls, config: Settings) -> "RouteMatrixClient | None":
        """Build a client, or return None when no API key is configured."""
        if not config.routes_api_key:
            return None
        return cls(
            api_key=config.routes_api_key,
            base_url=config.routes_api_url,
            travel_mode=config.routes_travel_mode,
            routing_preference=config.routes_routing_preference,
            timeout=config.routes_timeout_seconds,
            max_retries=config.routes_max_retries,
            backoff_seconds=config.routes_backoff_seconds,
            max_locations_per_request=config.routes_max_locations_per_request,
            max_parallel_requests=config.routes_max_parallel_requests,
        )

    def _get_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 10.0)),
            transport=self._transport,
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Goog-Api-Key": self.api_key,
            "X-Goog-FieldMask": FIELD_MASK,
        }

    def _build_payload(self, origins: Sequence[Coordinate], destinations: Sequence[Coordinate]) -> dict:
        def waypoint(location: Coordinate) -> dict:
            return {"waypoint": {"location": {"latLng": {"latitude": location.lat, "longitude": location.lng}}}}

        payload: dict[str, Any] = {
            "origins": [waypoint(location) for location in origins],
            "destinations": [waypoint(location) for location in destinations],
            "travelMode": self.travel_mode,
            "routingPreference": self.routing_preference,
        }
        return payload

    async def _request_block(
        self,
        client: httpx.AsyncClient,
        origins: Sequence[Coordinate],
        destinations: Sequence[Coordinate],
    ) -> list[RouteMatrixElement]:
        """One request with retries; indices in the result are local to the block."""
        payload = self._build_payload(origins, destinations)
        attempt = 0
        while True:
            try:
                response = await client.post(self.base_url, json=payload, headers=self._headers())
                response.raise_for_status()
                return parse_matrix_elements(response.json())
            except httpx.HTTPStatusError as exc:
                status_code = exc.response.status_code
                # Client errors other than rate limiting will not improve on retry
                if 400 <= status_code < 500 and status_code != 429:
                    raise UpstreamDegradedError(
                        f"Route matrix request rejected with HTTP {status_code}: {exc.response.text[:200]}"
                    ) from exc
                attempt += 1
                if attempt > self.max_retries:
                    raise UpstreamDegradedError(
                        f"Route matrix request failed with HTTP {status_code} after {attempt} attempts"
                    ) from exc
                await asyncio.sleep(self.backoff_seconds * attempt)
            except httpx.TimeoutException as exc:
                attempt += 1
                if attempt > self.max_retries:
                    raise UpstreamDegradedError(
                        f"Route matrix request timed out after {attempt} attempts: {exc}"
                    ) from exc
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(
                    "Route matrix timeout, retrying in %.1fs (attempt %s/%s)", wait_time, attempt, self.max_retries
                )
                await asyncio.sleep(wait_time)
            except httpx.TransportError as exc:
                attempt += 1
                if attempt > self.max_retries:
                    raise UpstreamDegradedError(
                        f"Failed to connect to route matrix service at {self.base_url}: {exc}"
                    ) from exc
                wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(
                    "Route matrix network error, retrying in %.1fs (attempt %s/%s): %s",
                    wait_time,
                    attempt,
                    self.max_retries,
                    exc,
                )
                await asyncio.sleep(wait_time)
            except ValueError as exc:
                # Malformed JSON or unexpected element shape
                raise UpstreamDegradedError(f"Malformed route matrix response: {exc}") from exc

    async def compute_route_matrix(
        self,
        origins: Sequence[Coordinate],
        destinations: Sequence[Coordinate],
    ) -> list[RouteMatrixElement]:
        """Request every origin/destination pair, split into blocks.

        Origins and destinations are cut into runs of at most
        ``max_locations_per_request`` and each block is requested separately,
        with element indices shifted back to the full grid. A failed block
        leaves its cells out of the result.

        Raises:
            UpstreamDegradedError: every block failed.
        """
        if not origins or not destinations:
            raise ValueError("At least one origin and one destination are required.")

        size = self.max_locations_per_request
        blocks = [
            (origin_start, destination_start)
            for origin_start in range(0, len(origins), size)
            for destination_start in range(0, len(destinations), size)
        ]
        if len(blocks) > 1:
            logger.info(
                "Splitting %sx%s route matrix into %s requests of up to %sx%s",
                len(origins),
                len(destinations),
                len(blocks),
                size,
                size,
            )
        semaphore = asyncio.Semaphore(self.max_parallel_requests)

        async with self._get_client() as client:

            async def fetch(origin_start: int, destination_start: int) -> list[RouteMatrixElement]:
                async with semaphore:
                    elements = await self._request_block(
                        client,
                        origins[origin_start : origin_start + size],
                        destinations[destination_start : destination_start + size],
                    )
                return [
                    replace(
                        element,
                        origin_index=element.origin_index + origin_start,
                        destination_index=element.destination_index + destination_start,
                    )
                    for element in elements
                ]

            results = await asyncio.gather(*(fetch(*block) for block in blocks), return_exceptions=True)

        elements: list[RouteMatrixElement] = []
        failures: list[UpstreamDegradedError] = []
        for (origin_start, destination_start), result in zip(blocks, results):
            if isinstance(result, UpstreamDegradedError):
                logger.warning(
                    "Route matrix block at origin %s, destination %s failed: %s",
                    origin_start,
                    destination_start,
                    result,
                )
                failures.append(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                elements.extend(result)

        if len(failures) == len(blocks):
            raise failures[0]
        return elements

    async def check_health(self) -> bool:
        """Make a minimal one-pair request to confirm the service answers."""
        sample = [Coordinate(lat=52.517037, lng=13.388860)]
        try:
            elements = await self.compute_route_matrix(sample, sample)
        except UpstreamDegradedError as exc:
            logger.warning("Route matrix health check failed: %s", exc)
            return False
        return bool(elements)
