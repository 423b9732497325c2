"""Domain models for the load optimization pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Optional


@dataclass(frozen=True, slots=True)
class Coordinate:
    """A WGS84 latitude/longitude pair in degrees."""

    lat: float
    lng: float

    def as_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True, slots=True)
class Warehouse:
    """Origin of every load; index 0 of the distance matrix."""

    id: str
    name: str
    location: Coordinate
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Vehicle:
    id: str
    vehicle_number: str
    capacity_weight: float
    capacity_pallets: int
    type: Optional[str] = None
    make: Optional[str] = None
    model: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Order:
    """A pending order joined with its customer.

    ``matrix_index`` is the order's row/column in the distance matrix, or
    ``None`` when the customer has no stored coordinate.
    """

    id: str
    order_number: str
    total_weight: float
    pallets: int
    customer_id: str
    customer_name: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_province: Optional[str] = None
    delivery_postal_code: Optional[str] = None
    priority: bool = False
    location: Optional[Coordinate] = None
    matrix_index: Optional[int] = None


@dataclass(frozen=True, slots=True)
class DistanceMatrix:
    """Pairwise travel distances (km) and durations (minutes).

    Row and column 0 are the warehouse; rows/columns 1..k follow the
    located orders in the order they were handed to the engine.
    """

    distances_km: tuple[tuple[float, ...], ...]
    durations_min: tuple[tuple[float, ...], ...]
    source: Literal["routes_api", "haversine", "mixed"]

    @property
    def shape(self) -> tuple[int, int]:
        rows = len(self.distances_km)
        return rows, len(self.distances_km[0]) if rows else 0

    def distance(self, origin: int, destination: int) -> float:
        return self.distances_km[origin][destination]

    def duration(self, origin: int, destination: int) -> float:
        return self.durations_min[origin][destination]


@dataclass(frozen=True, slots=True)
class OptimizationInstance:
    """Immutable snapshot handed to a solver."""

    warehouse: Warehouse
    vehicles: tuple[Vehicle, ...]
    orders: tuple[Order, ...]
    distance_matrix: DistanceMatrix
    max_stops: int = 10
    return_to_depot: bool = True

    def vehicle_by_id(self) -> dict[str, Vehicle]:
        return {vehicle.id: vehicle for vehicle in self.vehicles}

    def order_by_id(self) -> dict[str, Order]:
        return {order.id: order for order in self.orders}


@dataclass(frozen=True, slots=True)
class SuggestedLoad:
    vehicle: Vehicle
    orders: tuple[Order, ...]
    route: tuple[Coordinate, ...]
    total_weight: float
    total_pallets: int
    total_distance_km: float
    estimated_time_min: float
    efficiency_score: float


@dataclass(slots=True)
class OptimizationRunRecord:
    """Audit entry for one optimization attempt."""

    run_id: str
    input_parameters: dict[str, Any]
    created_at: datetime
    optimization_type: str = "LOAD_OPTIMIZATION"
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    status: Optional[Literal["SUCCESS", "ERROR"]] = None
    output: Optional[dict[str, Any]] = None
    error_message: Optional[str] = None
