"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Optional, Sequence

from ..models.domain import Coordinate

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    # Rounding can push a a hair past 1.0 for antipodal points.
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_between(origin: Coordinate, destination: Coordinate) -> float:
    return haversine_km(origin.lat, origin.lng, destination.lat, destination.lng)


def is_valid_coordinate(lat: Optional[float], lng: Optional[float]) -> bool:
    """Return True if both values are finite and inside WGS84 bounds."""

    if lat is None or lng is None:
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def haversine_matrix(
    origins: Sequence[Coordinate],
    destinations: Sequence[Coordinate],
) -> list[list[float]]:
    """Great-circle distance (km) between every origin/destination pair."""

    return [[distance_between(origin, destination) for destination in destinations] for origin in origins]
