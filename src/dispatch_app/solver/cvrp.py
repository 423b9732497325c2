"""OR-Tools capacitated vehicle routing model for suggested loads."""

from __future__ import annotations

import logging
import math
from typing import Any, Sequence

from ortools.constraint_solver import pywrapcp, routing_enums_pb2

# Cost of leaving an order unassigned, in metres of route length.
DROP_PENALTY_METERS = 10_000_000
PRIORITY_PENALTY_FACTOR = 10
FALLBACK_SPEED_KMH = 40.0
UTILIZATION_WEIGHT = 0.7
DIRECTNESS_WEIGHT = 0.3

logger = logging.getLogger(__name__)


class SolverInfeasibleError(RuntimeError):
    """OR-Tools returned no assignment within its time limit."""


def _matrix_positions(orders: Sequence[dict], matrix_size: int) -> list[int]:
    """Map routing nodes (0 = warehouse, i = orders[i-1]) to matrix rows.

    Orders without a matrix index are treated as co-located with the
    warehouse.
    """
    positions = [0]
    for order in orders:
        index = order.get("matrix_index")
        if index is None:
            positions.append(0)
            continue
        index = int(index)
        if not 0 < index < matrix_size:
            raise ValueError(f"Order {order.get('id')} has matrix index {index} outside a {matrix_size}-row matrix")
        positions.append(index)
    return positions


def _efficiency_score(
    vehicle: dict,
    total_weight: float,
    total_pallets: int,
    total_distance_km: float,
    lower_bound_km: float,
) -> float:
    fills = []
    capacity_weight = float(vehicle.get("capacity_weight") or 0)
    capacity_pallets = float(vehicle.get("capacity_pallets") or 0)
    if capacity_weight > 0:
        fills.append(total_weight / capacity_weight)
    if capacity_pallets > 0:
        fills.append(total_pallets / capacity_pallets)
    utilization = min(1.0, max(fills, default=0.0))
    directness = 1.0 if total_distance_km <= 0 else min(1.0, lower_bound_km / total_distance_km)
    return round(100.0 * (UTILIZATION_WEIGHT * utilization + DIRECTNESS_WEIGHT * directness), 1)


def solve_loads(
    payload: dict[str, Any],
    *,
    time_limit_seconds: int = 30,
    first_solution_strategy: str = "PATH_CHEAPEST_ARC",
    local_search_metaheuristic: str = "GUIDED_LOCAL_SEARCH",
) -> list[dict[str, Any]]:
    """Group orders into one load per vehicle.

    Weight, pallet and stop-count capacities are hard constraints; orders
    that cannot be placed are dropped, priority orders last.
    """
    vehicles = payload.get("vehicles") or []
    orders = payload.get("orders") or []
    if not vehicles or not orders:
        return []

    warehouse = payload["warehouse"]
    distance_matrix = payload["distanceMatrix"]
    duration_matrix = payload.get("durationMatrix")
    max_stops = int(payload.get("maxStops") or 10)
    return_to_depot = payload.get("returnToDepot", True) is not False

    positions = _matrix_positions(orders, len(distance_matrix))

    def distance_km(from_node: int, to_node: int) -> float:
        return float(distance_matrix[positions[from_node]][positions[to_node]])

    def duration_min(from_node: int, to_node: int) -> float:
        if duration_matrix:
            return float(duration_matrix[positions[from_node]][positions[to_node]])
        return distance_km(from_node, to_node) / FALLBACK_SPEED_KMH * 60.0

    node_count = len(orders) + 1
    manager = pywrapcp.RoutingIndexManager(node_count, len(vehicles), 0)
    routing = pywrapcp.RoutingModel(manager)

    def arc_cost(from_index: int, to_index: int) -> int:
        from_node = manager.IndexToNode(from_index)
        to_node = manager.IndexToNode(to_index)
        if to_node == 0 and not return_to_depot:
            return 0
        return int(round(distance_km(from_node, to_node) * 1000))

    transit_callback_index = routing.RegisterTransitCallback(arc_cost)
    routing.SetArcCostEvaluatorOfAllVehicles(transit_callback_index)

    weights = [0] + [max(0, math.ceil(float(order["total_weight"]))) for order in orders]
    pallets = [0] + [max(0, int(order["pallets"])) for order in orders]

    weight_callback_index = routing.RegisterUnaryTransitCallback(lambda index: weights[manager.IndexToNode(index)])
    routing.AddDimensionWithVehicleCapacity(
        weight_callback_index,
        0,
        [max(0, math.floor(float(vehicle["capacity_weight"]))) for vehicle in vehicles],
        True,
        "Weight",
    )
    pallet_callback_index = routing.RegisterUnaryTransitCallback(lambda index: pallets[manager.IndexToNode(index)])
    routing.AddDimensionWithVehicleCapacity(
        pallet_callback_index,
        0,
        [max(0, int(vehicle["capacity_pallets"])) for vehicle in vehicles],
        True,
        "Pallets",
    )
    stop_callback_index = routing.RegisterUnaryTransitCallback(
        lambda index: 0 if manager.IndexToNode(index) == 0 else 1
    )
    routing.AddDimensionWithVehicleCapacity(stop_callback_index, 0, [max_stops] * len(vehicles), True, "Stops")

    for node in range(1, node_count):
        order = orders[node - 1]
        penalty = DROP_PENALTY_METERS * (PRIORITY_PENALTY_FACTOR if order.get("priority") else 1)
        routing.AddDisjunction([manager.NodeToIndex(node)], penalty)

    search_parameters = pywrapcp.DefaultRoutingSearchParameters()
    search_parameters.first_solution_strategy = getattr(
        routing_enums_pb2.FirstSolutionStrategy, first_solution_strategy
    )
    search_parameters.local_search_metaheuristic = getattr(
        routing_enums_pb2.LocalSearchMetaheuristic, local_search_metaheuristic
    )
    search_parameters.time_limit.FromSeconds(time_limit_seconds)

    assignment = routing.SolveWithParameters(search_parameters)
    if not assignment:
        raise SolverInfeasibleError(
            f"No feasible load plan found for {len(orders)} orders and {len(vehicles)} vehicles "
            f"within {time_limit_seconds}s"
        )

    warehouse_location = warehouse["location"]
    loads: list[dict[str, Any]] = []
    for vehicle_id, vehicle in enumerate(vehicles):
        index = routing.Start(vehicle_id)
        visit: list[int] = []
        while not routing.IsEnd(index):
            node = manager.IndexToNode(index)
            if node != 0:
                visit.append(node)
            index = assignment.Value(routing.NextVar(index))
        if not visit:
            continue

        legs = list(zip([0, *visit], visit))
        if return_to_depot:
            legs.append((visit[-1], 0))
        total_distance = sum(distance_km(a, b) for a, b in legs)
        total_minutes = sum(duration_min(a, b) for a, b in legs)
        farthest = max(distance_km(0, node) for node in visit)
        lower_bound = farthest * 2 if return_to_depot else farthest

        load_orders = [orders[node - 1] for node in visit]
        total_weight = sum(float(order["total_weight"]) for order in load_orders)
        total_pallets = sum(int(order["pallets"]) for order in load_orders)
        route = [warehouse_location, *(order["location"] for order in load_orders if order.get("location"))]
        if return_to_depot:
            route.append(warehouse_location)

        loads.append(
            {
                "vehicleId": vehicle["id"],
                "orders": load_orders,
                "route": route,
                "totalWeight": total_weight,
                "totalPallets": total_pallets,
                "totalDistance": round(total_distance, 3),
                "estimatedTime": round(total_minutes, 1),
                "efficiencyScore": _efficiency_score(
                    vehicle, total_weight, total_pallets, total_distance, lower_bound
                ),
            }
        )

    assigned = sum(len(load["orders"]) for load in loads)
    dropped = len(orders) - assigned
    if dropped:
        logger.warning("%s of %s orders could not be placed on any vehicle", dropped, len(orders))
    return loads
