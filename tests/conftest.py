from typing import Any, Optional

import pytest

from dispatch_app.models.domain import Coordinate, OptimizationInstance, Order, Vehicle, Warehouse
from dispatch_app.services.distance.engine import DistanceMatrixEngine
from dispatch_app.services.optimization.assembler import index_locations, matrix_locations

WAREHOUSE_LOCATION = Coordinate(lat=43.6532, lng=-79.3832)


class FakeResponse:
    def __init__(self, data: list[dict]) -> None:
        self.data = data


class FakeQuery:
    """Chainable stand-in for a Supabase table query."""

    def __init__(self, client: "FakeSupabase", table: str) -> None:
        self.client = client
        self.table = table
        self.action = "select"
        self.columns: Optional[str] = None
        self.payload: Any = None
        self.filters: list[tuple[str, str, Any]] = []
        self.limit_count: Optional[int] = None

    def select(self, columns: str = "*") -> "FakeQuery":
        self.columns = columns
        return self

    def insert(self, row: dict) -> "FakeQuery":
        self.action = "insert"
        self.payload = row
        return self

    def update(self, values: dict) -> "FakeQuery":
        self.action = "update"
        self.payload = values
        return self

    def eq(self, column: str, value: Any) -> "FakeQuery":
        self.filters.append(("eq", column, value))
        return self

    def in_(self, column: str, values: list) -> "FakeQuery":
        self.filters.append(("in", column, list(values)))
        return self

    def limit(self, count: int) -> "FakeQuery":
        self.limit_count = count
        return self

    def _matches(self, row: dict) -> bool:
        for op, column, value in self.filters:
            if op == "eq" and row.get(column) != value:
                return False
            if op == "in" and row.get(column) not in value:
                return False
        return True

    def execute(self) -> FakeResponse:
        self.client.executed.append(self)
        if self.table in self.client.failing_tables:
            raise RuntimeError(f"connection to {self.table} reset")
        rows = self.client.tables.setdefault(self.table, [])
        if self.action == "insert":
            rows.append(dict(self.payload))
            return FakeResponse([dict(self.payload)])
        matched = [row for row in rows if self._matches(row)]
        if self.action == "update":
            for row in matched:
                row.update(self.payload)
            return FakeResponse([dict(row) for row in matched])
        if self.limit_count is not None:
            matched = matched[: self.limit_count]
        return FakeResponse([dict(row) for row in matched])


class FakeSupabase:
    def __init__(self, tables: Optional[dict[str, list[dict]]] = None) -> None:
        self.tables = {name: [dict(row) for row in rows] for name, rows in (tables or {}).items()}
        self.executed: list[FakeQuery] = []
        self.failing_tables: set[str] = set()

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)


def warehouse_row(warehouse_id: str = "WH1", **overrides: Any) -> dict:
    row = {
        "id": warehouse_id,
        "name": "Toronto DC",
        "address": "1 Front St",
        "city": "Toronto",
        "province": "ON",
        "postal_code": "M5J 1A1",
        "latitude": WAREHOUSE_LOCATION.lat,
        "longitude": WAREHOUSE_LOCATION.lng,
    }
    row.update(overrides)
    return row


def vehicle_row(vehicle_id: str, warehouse_id: str = "WH1", **overrides: Any) -> dict:
    row = {
        "id": vehicle_id,
        "vehicle_number": f"TRK-{vehicle_id}",
        "type": "straight_truck",
        "make": "Isuzu",
        "model": "NRR",
        "capacity_weight": 1000,
        "capacity_pallets": 10,
        "status": "active",
        "home_warehouse_id": warehouse_id,
    }
    row.update(overrides)
    return row


def order_row(
    order_id: str,
    lat: Optional[float],
    lng: Optional[float],
    *,
    weight: float = 100,
    pallets: int = 1,
    customer_id: Optional[str] = None,
    warehouse_id: str = "WH1",
    pickup_date: str = "2024-05-01",
    **overrides: Any,
) -> dict:
    row = {
        "id": order_id,
        "order_number": f"SO-{order_id}",
        "delivery_address": "100 King St",
        "delivery_city": "Toronto",
        "delivery_province": "ON",
        "delivery_postal_code": "M5X 1A9",
        "total_weight": weight,
        "pallets": pallets,
        "customer_id": customer_id or f"C-{order_id}",
        "pickup_date": pickup_date,
        "delivery_date": None,
        "special_instructions": None,
        "status": "pending",
        "pickup_warehouse_id": warehouse_id,
        "customers": {"company_name": f"Customer {order_id}", "latitude": lat, "longitude": lng},
    }
    row.update(overrides)
    return row


def make_vehicle(vehicle_id: str = "V1", capacity_weight: float = 1000, capacity_pallets: int = 10) -> Vehicle:
    return Vehicle(
        id=vehicle_id,
        vehicle_number=f"TRK-{vehicle_id}",
        capacity_weight=capacity_weight,
        capacity_pallets=capacity_pallets,
    )


def make_order(
    order_id: str,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    *,
    weight: float = 100,
    pallets: int = 1,
    priority: bool = False,
) -> Order:
    location = Coordinate(lat=lat, lng=lng) if lat is not None and lng is not None else None
    return Order(
        id=order_id,
        order_number=f"SO-{order_id}",
        total_weight=weight,
        pallets=pallets,
        customer_id=f"C-{order_id}",
        customer_name=f"Customer {order_id}",
        priority=priority,
        location=location,
    )


def make_instance(
    vehicles: list[Vehicle],
    orders: list[Order],
    *,
    max_stops: int = 10,
    return_to_depot: bool = True,
) -> OptimizationInstance:
    """Instance with haversine distances over the warehouse and located orders."""
    warehouse = Warehouse(id="WH1", name="Toronto DC", location=WAREHOUSE_LOCATION)
    indexed = index_locations(orders)
    locations = matrix_locations(warehouse, indexed)
    matrix = DistanceMatrixEngine(client=None).haversine(locations, locations)
    return OptimizationInstance(
        warehouse=warehouse,
        vehicles=tuple(vehicles),
        orders=tuple(indexed),
        distance_matrix=matrix,
        max_stops=max_stops,
        return_to_depot=return_to_depot,
    )


@pytest.fixture
def dispatch_tables() -> dict[str, list[dict]]:
    return {
        "warehouses": [warehouse_row("WH1")],
        "vehicles": [vehicle_row("V1"), vehicle_row("V2"), vehicle_row("V3", warehouse_id="WH2")],
        "orders": [
            order_row("O1", 43.70, -79.40, weight=300, pallets=2),
            order_row("O2", 43.66, -79.35, weight=500, pallets=3, customer_id="VIP"),
            order_row("O3", None, None, weight=200, pallets=1),
            order_row("O4", 43.60, -79.50, pickup_date="2024-05-02"),
        ],
        "optimization_logs": [],
    }


@pytest.fixture
def fake_supabase(dispatch_tables) -> FakeSupabase:
    return FakeSupabase(dispatch_tables)
