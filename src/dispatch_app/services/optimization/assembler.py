"""Assembly of solver-ready optimization instances."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Iterable, Sequence

from fastapi.concurrency import run_in_threadpool

from ...errors import InvalidParameterError, MissingParameterError, NotFoundError
from ...models.domain import Coordinate, OptimizationInstance, Order, Warehouse
from ...persistence.repository import DispatchRepository
from ...schemas.optimize import LoadOptimizationRequest
from ..distance.engine import DistanceMatrixEngine

DEFAULT_MAX_STOPS = 10
WAREHOUSE_REQUIRED = "Warehouse ID is required"
DATE_REQUIRED = "Date is required"
WAREHOUSE_NOT_FOUND = "Warehouse not found"
NO_PENDING_ORDERS = "No pending orders found for the selected date and warehouse"

logger = logging.getLogger(__name__)


def validate_request(payload: LoadOptimizationRequest) -> None:
    """Reject unusable requests before any storage access."""
    if not payload.warehouse_id or not payload.warehouse_id.strip():
        raise MissingParameterError(WAREHOUSE_REQUIRED)
    if not payload.date or not payload.date.strip():
        raise MissingParameterError(DATE_REQUIRED)
    try:
        datetime.strptime(payload.date.strip(), "%Y-%m-%d")
    except ValueError as exc:
        raise InvalidParameterError("Date must be an ISO date (YYYY-MM-DD)") from exc
    if payload.max_stops is not None and payload.max_stops < 1:
        raise InvalidParameterError("maxStops must be at least 1")


def prioritize_orders(orders: Iterable[Order], priority_customers: Sequence[str] | None) -> list[Order]:
    """Flag priority customers and order by priority, then heaviest first."""
    priority_set = {customer_id.strip() for customer_id in priority_customers or ()}
    flagged = [replace(order, priority=order.customer_id in priority_set) for order in orders]
    return sorted(flagged, key=lambda order: (not order.priority, -order.total_weight))


def index_locations(orders: Sequence[Order]) -> list[Order]:
    """Assign matrix indices 1..k to located orders, preserving their order."""
    indexed: list[Order] = []
    next_index = 1
    for order in orders:
        if order.location is None:
            indexed.append(replace(order, matrix_index=None))
            continue
        indexed.append(replace(order, matrix_index=next_index))
        next_index += 1
    return indexed


def matrix_locations(warehouse: Warehouse, orders: Sequence[Order]) -> list[Coordinate]:
    """``[warehouse] + located orders``, the origin and destination axes of the matrix."""
    located = sorted(
        (order for order in orders if order.matrix_index is not None),
        key=lambda order: order.matrix_index,
    )
    return [warehouse.location, *(order.location for order in located)]


async def assemble_instance(
    payload: LoadOptimizationRequest,
    repository: DispatchRepository,
    distance_engine: DistanceMatrixEngine,
    *,
    default_max_stops: int = DEFAULT_MAX_STOPS,
) -> OptimizationInstance:
    """Load warehouse, vehicles and orders and build the solver instance.

    Raises:
        MissingParameterError / InvalidParameterError: bad request fields.
        NotFoundError: unknown warehouse, or no pending orders.
    """
    validate_request(payload)
    warehouse_id = payload.warehouse_id.strip()
    pickup_date = payload.date.strip()

    warehouse = await run_in_threadpool(repository.get_warehouse, warehouse_id)
    if warehouse is None:
        raise NotFoundError(WAREHOUSE_NOT_FOUND)

    vehicles = await run_in_threadpool(repository.get_vehicles, warehouse_id, payload.vehicle_id)
    if not vehicles:
        logger.info("No active vehicles for warehouse %s; the solver will report no loads", warehouse_id)

    orders = await run_in_threadpool(repository.get_pending_orders, warehouse_id, pickup_date, payload.order_ids)
    if not orders:
        raise NotFoundError(NO_PENDING_ORDERS)

    orders = index_locations(prioritize_orders(orders, payload.priority_customers))
    locations = matrix_locations(warehouse, orders)
    if len(locations) < len(orders) + 1:
        logger.info(
            "%s of %s orders have no coordinates; they will be treated as co-located with the warehouse",
            len(orders) + 1 - len(locations),
            len(orders),
        )

    distance_matrix = await distance_engine.compute_distance_matrix(locations, locations)

    return OptimizationInstance(
        warehouse=warehouse,
        vehicles=tuple(vehicles),
        orders=tuple(orders),
        distance_matrix=distance_matrix,
        max_stops=payload.max_stops if payload.max_stops is not None else default_max_stops,
        return_to_depot=payload.return_to_depot is not False,
    )
