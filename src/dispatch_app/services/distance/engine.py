"""Distance matrix computation with a deterministic haversine fallback."""

from __future__ import annotations

import logging
from typing import Sequence

from ...config import Settings
from ...errors import UpstreamDegradedError
from ...models.domain import Coordinate, DistanceMatrix
from ..geospatial import haversine_matrix
from .routes_client import RouteMatrixClient, RouteMatrixElement

logger = logging.getLogger(__name__)


class DistanceMatrixEngine:
    """Builds distance matrices; never fails the caller.

    The route matrix service is tried first. When it is not configured or
    the call fails, every cell is computed with the haversine formula. When
    the call succeeds but leaves cells unusable, only those cells are filled
    from haversine.
    """

    def __init__(self, client: RouteMatrixClient | None, average_speed_kmh: float = 40.0) -> None:
        if average_speed_kmh <= 0:
            raise ValueError("average_speed_kmh must be positive.")
        self.client = client
        self.average_speed_kmh = average_speed_kmh

    @classmethod
    def from_settings(cls, config: Settings) -> "DistanceMatrixEngine":
        return cls(
            client=RouteMatrixClient.from_settings(config),
            average_speed_kmh=config.fallback_average_speed_kmh,
        )

    def _minutes_for(self, distance_km: float) -> float:
        return distance_km / self.average_speed_kmh * 60.0

    def haversine(self, origins: Sequence[Coordinate], destinations: Sequence[Coordinate]) -> DistanceMatrix:
        distances = haversine_matrix(origins, destinations)
        _zero_diagonal(distances, origins, destinations)
        durations = [[self._minutes_for(value) for value in row] for row in distances]
        return _freeze(distances, durations, "haversine")

    def _merge(
        self,
        elements: Sequence[RouteMatrixElement],
        origins: Sequence[Coordinate],
        destinations: Sequence[Coordinate],
    ) -> DistanceMatrix:
        rows, cols = len(origins), len(destinations)
        distances: list[list[float | None]] = [[None] * cols for _ in range(rows)]
        durations: list[list[float | None]] = [[None] * cols for _ in range(rows)]

        for element in elements:
            if not element.usable:
                continue
            if not (0 <= element.origin_index < rows and 0 <= element.destination_index < cols):
                logger.warning(
                    "Ignoring route matrix element outside the %sx%s grid: (%s, %s)",
                    rows,
                    cols,
                    element.origin_index,
                    element.destination_index,
                )
                continue
            distance_km = element.distance_meters / 1000.0
            distances[element.origin_index][element.destination_index] = distance_km
            durations[element.origin_index][element.destination_index] = (
                element.duration_seconds / 60.0 if element.duration_seconds is not None else self._minutes_for(distance_km)
            )

        fallback = haversine_matrix(origins, destinations)
        missing = 0
        for i in range(rows):
            for j in range(cols):
                if distances[i][j] is None:
                    missing += 1
                    distances[i][j] = fallback[i][j]
                    durations[i][j] = self._minutes_for(fallback[i][j])

        if missing == rows * cols:
            raise UpstreamDegradedError("Route matrix response contained no usable elements.")
        if missing:
            logger.warning(
                "Route matrix response omitted %s of %s cells; filled them with haversine distances.",
                missing,
                rows * cols,
            )
        _zero_diagonal(distances, origins, destinations)
        _zero_diagonal(durations, origins, destinations)
        return _freeze(distances, durations, "mixed" if missing else "routes_api")

    async def compute_distance_matrix(
        self,
        origins: Sequence[Coordinate],
        destinations: Sequence[Coordinate],
    ) -> DistanceMatrix:
        """Return a ``len(origins) x len(destinations)`` matrix in kilometres."""
        if not origins or not destinations:
            return DistanceMatrix(distances_km=(), durations_min=(), source="haversine")

        if self.client is None:
            logger.info("Route matrix service not configured; using haversine distances.")
            return self.haversine(origins, destinations)

        try:
            elements = await self.client.compute_route_matrix(origins, destinations)
            return self._merge(elements, origins, destinations)
        except Exception as exc:
            logger.warning("Route matrix request failed: %s. Using haversine fallback.", exc)
            return self.haversine(origins, destinations)


def _zero_diagonal(
    matrix: list[list[float]],
    origins: Sequence[Coordinate],
    destinations: Sequence[Coordinate],
) -> None:
    if list(origins) != list(destinations):
        return
    for index in range(len(origins)):
        matrix[index][index] = 0.0


def _freeze(distances: list[list[float]], durations: list[list[float]], source: str) -> DistanceMatrix:
    return DistanceMatrix(
        distances_km=tuple(tuple(row) for row in distances),
        durations_min=tuple(tuple(row) for row in durations),
        source=source,
    )
