"""Read access to warehouses, vehicles and pending orders."""

from __future__ import annotations

import logging
import math
from typing import Any, Optional, Sequence

from supabase import Client

from ..db.supabase import get_supabase_client
from ..errors import DataIntegrityError, PersistenceError
from ..models.domain import Coordinate, Order, Vehicle, Warehouse
from ..services.geospatial import is_valid_coordinate

WAREHOUSE_COLUMNS = "id, name, address, city, province, postal_code, latitude, longitude"
VEHICLE_COLUMNS = "id, vehicle_number, type, make, model, capacity_weight, capacity_pallets"
ORDER_COLUMNS = (
    "id, order_number, delivery_address, delivery_city, delivery_province, delivery_postal_code, "
    "total_weight, pallets, customer_id, pickup_date, delivery_date, special_instructions, "
    "customers(company_name, latitude, longitude)"
)

logger = logging.getLogger(__name__)


def _coerce_float(value: Any, *, field: str, record: str) -> float:
    if isinstance(value, bool):
        raise DataIntegrityError(f"{record}: {field} must be numeric, got {value!r}")
    try:
        number = float(str(value).replace(",", "")) if isinstance(value, str) else float(value)
    except (TypeError, ValueError) as exc:
        raise DataIntegrityError(f"{record}: {field} must be numeric, got {value!r}") from exc
    if not math.isfinite(number):
        raise DataIntegrityError(f"{record}: {field} must be finite, got {value!r}")
    return number


def _coerce_int(value: Any, *, field: str, record: str) -> int:
    number = _coerce_float(value, field=field, record=record)
    if not number.is_integer():
        raise DataIntegrityError(f"{record}: {field} must be a whole number, got {value!r}")
    return int(number)


def _coerce_coordinate(lat: Any, lng: Any, *, record: str) -> Optional[Coordinate]:
    """Return a coordinate, or None when the row has no usable location.

    Empty values and out-of-range pairs mean "no location". Text that is not
    a number at all is a data error.
    """
    if lat in (None, "") or lng in (None, ""):
        return None
    lat_value = _coerce_float(lat, field="latitude", record=record)
    lng_value = _coerce_float(lng, field="longitude", record=record)
    if not is_valid_coordinate(lat_value, lng_value):
        logger.warning("%s has out-of-range coordinates (%s, %s); treating it as unlocated", record, lat, lng)
        return None
    return Coordinate(lat=lat_value, lng=lng_value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def warehouse_from_row(row: dict[str, Any]) -> Warehouse:
    record = f"Warehouse {row.get('id')}"
    location = _coerce_coordinate(row.get("latitude"), row.get("longitude"), record=record)
    if location is None:
        raise DataIntegrityError(f"{record} has no valid coordinates")
    return Warehouse(
        id=str(row["id"]),
        name=str(row.get("name") or ""),
        location=location,
        address=_optional_str(row.get("address")),
        city=_optional_str(row.get("city")),
        province=_optional_str(row.get("province")),
        postal_code=_optional_str(row.get("postal_code")),
    )


def vehicle_from_row(row: dict[str, Any]) -> Vehicle:
    record = f"Vehicle {row.get('id')}"
    return Vehicle(
        id=str(row["id"]),
        vehicle_number=str(row.get("vehicle_number") or ""),
        capacity_weight=_coerce_float(row.get("capacity_weight"), field="capacity_weight", record=record),
        capacity_pallets=_coerce_int(row.get("capacity_pallets"), field="capacity_pallets", record=record),
        type=_optional_str(row.get("type")),
        make=_optional_str(row.get("make")),
        model=_optional_str(row.get("model")),
    )


def order_from_row(row: dict[str, Any]) -> Order:
    """Build an order from an ``orders`` row with its embedded customer."""
    record = f"Order {row.get('id')}"
    customer = row.get("customers") or {}
    if isinstance(customer, list):
        customer = customer[0] if customer else {}
    return Order(
        id=str(row["id"]),
        order_number=str(row.get("order_number") or ""),
        total_weight=_coerce_float(row.get("total_weight"), field="total_weight", record=record),
        pallets=_coerce_int(row.get("pallets"), field="pallets", record=record),
        customer_id=str(row.get("customer_id") or ""),
        customer_name=_optional_str(customer.get("company_name")),
        delivery_address=_optional_str(row.get("delivery_address")),
        delivery_city=_optional_str(row.get("delivery_city")),
        delivery_province=_optional_str(row.get("delivery_province")),
        delivery_postal_code=_optional_str(row.get("delivery_postal_code")),
        location=_coerce_coordinate(customer.get("latitude"), customer.get("longitude"), record=record),
    )


class DispatchRepository:
    """Parameterized reads against the dispatch tables in Supabase."""

    def __init__(self, client: Client | None) -> None:
        self.client = client

    @classmethod
    def from_supabase(cls) -> "DispatchRepository":
        return cls(get_supabase_client())

    def _require_client(self) -> Client:
        if self.client is None:
            raise PersistenceError(
                "Supabase not configured. Set DISPATCH_SUPABASE_URL and DISPATCH_SUPABASE_KEY environment variables."
            )
        return self.client

    def _execute(self, query: Any, description: str) -> list[dict[str, Any]]:
        try:
            response = query.execute()
        except Exception as exc:
            logger.error("Failed to load %s: %s", description, exc)
            raise PersistenceError(f"Failed to load {description}: {exc}") from exc
        return list(response.data or [])

    def get_warehouse(self, warehouse_id: str) -> Warehouse | None:
        client = self._require_client()
        query = client.table("warehouses").select(WAREHOUSE_COLUMNS).eq("id", warehouse_id).limit(1)
        rows = self._execute(query, f"warehouse '{warehouse_id}'")
        if not rows:
            return None
        return warehouse_from_row(rows[0])

    def get_vehicles(self, warehouse_id: str, vehicle_id: str | None = None) -> list[Vehicle]:
        """Active vehicles: the requested one, or every vehicle homed at the warehouse."""
        client = self._require_client()
        query = client.table("vehicles").select(VEHICLE_COLUMNS).eq("status", "active")
        if vehicle_id:
            query = query.eq("id", vehicle_id)
        else:
            query = query.eq("home_warehouse_id", warehouse_id)
        rows = self._execute(query, f"vehicles for warehouse '{warehouse_id}'")
        return [vehicle_from_row(row) for row in rows]

    def get_pending_orders(
        self,
        warehouse_id: str,
        pickup_date: str,
        order_ids: Sequence[str] | None = None,
    ) -> list[Order]:
        client = self._require_client()
        query = (
            client.table("orders")
            .select(ORDER_COLUMNS)
            .eq("status", "pending")
            .eq("pickup_date", pickup_date)
            .eq("pickup_warehouse_id", warehouse_id)
        )
        if order_ids:
            query = query.in_("id", list(order_ids))
        rows = self._execute(query, f"pending orders for warehouse '{warehouse_id}' on {pickup_date}")
        return [order_from_row(row) for row in rows]
