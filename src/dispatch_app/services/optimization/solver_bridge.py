"""Contract with the external load solver."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sys
from abc import ABC, abstractmethod
from typing import Any, Sequence

from pydantic import TypeAdapter, ValidationError

from ...config import Settings
from ...errors import CapacityViolationError, SolverFailedError, SolverOutputInvalidError
from ...models.domain import Coordinate, OptimizationInstance, Order, SuggestedLoad, Vehicle
from ...schemas.optimize import SolverLoadModel

BUNDLED_SOLVER_MODULE = "dispatch_app.solver"
CAPACITY_TOLERANCE = 1e-6
# Linux MAX_ARG_STRLEN (128 KiB) less the terminating NUL; the payload travels as one argv entry.
MAX_PAYLOAD_BYTES = 128 * 1024 - 1
DISTANCE_DECIMALS = 3
DURATION_DECIMALS = 1

_SOLVER_OUTPUT = TypeAdapter(list[SolverLoadModel])

logger = logging.getLogger(__name__)


def _location(location: Coordinate | None) -> dict[str, float] | None:
    return location.as_dict() if location is not None else None


def serialize_order(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "delivery_address": order.delivery_address,
        "delivery_city": order.delivery_city,
        "delivery_province": order.delivery_province,
        "delivery_postal_code": order.delivery_postal_code,
        "total_weight": order.total_weight,
        "pallets": order.pallets,
        "customer_id": order.customer_id,
        "customer_name": order.customer_name,
        "priority": order.priority,
        "location": _location(order.location),
        "matrix_index": order.matrix_index,
    }


def _rounded(matrix: Sequence[Sequence[float]], decimals: int) -> list[list[float]]:
    return [[round(value, decimals) for value in row] for row in matrix]


def serialize_instance(instance: OptimizationInstance) -> dict[str, Any]:
    """Solver payload: the whole instance including the computed matrices."""
    warehouse = instance.warehouse
    return {
        "warehouse": {
            "id": warehouse.id,
            "name": warehouse.name,
            "address": warehouse.address,
            "city": warehouse.city,
            "province": warehouse.province,
            "postal_code": warehouse.postal_code,
            "location": warehouse.location.as_dict(),
        },
        "vehicles": [
            {
                "id": vehicle.id,
                "vehicle_number": vehicle.vehicle_number,
                "capacity_weight": vehicle.capacity_weight,
                "capacity_pallets": vehicle.capacity_pallets,
                "type": vehicle.type,
                "make": vehicle.make,
                "model": vehicle.model,
            }
            for vehicle in instance.vehicles
        ],
        "orders": [serialize_order(order) for order in instance.orders],
        "distanceMatrix": _rounded(instance.distance_matrix.distances_km, DISTANCE_DECIMALS),
        "durationMatrix": _rounded(instance.distance_matrix.durations_min, DURATION_DECIMALS),
        "maxStops": instance.max_stops,
        "returnToDepot": instance.return_to_depot,
    }


def encode_instance(instance: OptimizationInstance) -> str:
    """Compact JSON for the solver command line."""
    return json.dumps(serialize_instance(instance), separators=(",", ":"))


def check_capacity(vehicle: Vehicle, total_weight: float, total_pallets: float) -> None:
    """Raise ``CapacityViolationError`` if a load does not fit its vehicle."""
    if total_weight > vehicle.capacity_weight + CAPACITY_TOLERANCE:
        raise CapacityViolationError(
            f"Load for vehicle {vehicle.id} weighs {total_weight:g}, above its capacity of {vehicle.capacity_weight:g}",
            vehicle_id=vehicle.id,
            field="weight",
            value=total_weight,
            limit=vehicle.capacity_weight,
        )
    if total_pallets > vehicle.capacity_pallets + CAPACITY_TOLERANCE:
        raise CapacityViolationError(
            f"Load for vehicle {vehicle.id} carries {total_pallets:g} pallets, above its capacity of {vehicle.capacity_pallets}",
            vehicle_id=vehicle.id,
            field="pallets",
            value=total_pallets,
            limit=vehicle.capacity_pallets,
        )


def parse_solver_output(raw: str, instance: OptimizationInstance) -> list[SuggestedLoad]:
    """Parse and validate solver stdout against the instance it was given.

    Echoed orders are replaced by the instance's own orders, so the solver
    can neither invent orders nor alter their weights. Each load must fit
    its vehicle both by its reported totals and by the recomputed ones.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SolverOutputInvalidError(f"Error parsing solver output: {exc}") from exc

    try:
        loads = _SOLVER_OUTPUT.validate_python(data)
    except ValidationError as exc:
        raise SolverOutputInvalidError(f"Solver output does not match the load schema: {exc}") from exc

    vehicles = instance.vehicle_by_id()
    orders = instance.order_by_id()
    assigned: dict[str, int] = {}
    results: list[SuggestedLoad] = []

    for position, load in enumerate(loads):
        vehicle = vehicles.get(load.vehicle_id)
        if vehicle is None:
            raise SolverOutputInvalidError(f"Load {position} references unknown vehicle '{load.vehicle_id}'")

        load_orders: list[Order] = []
        for ref in load.orders:
            order = orders.get(ref.id)
            if order is None:
                raise SolverOutputInvalidError(f"Load {position} references unknown order '{ref.id}'")
            if ref.id in assigned:
                raise SolverOutputInvalidError(
                    f"Order '{ref.id}' appears in both load {assigned[ref.id]} and load {position}"
                )
            assigned[ref.id] = position
            load_orders.append(order)

        check_capacity(vehicle, load.total_weight, load.total_pallets)
        check_capacity(
            vehicle,
            sum(order.total_weight for order in load_orders),
            sum(order.pallets for order in load_orders),
        )

        results.append(
            SuggestedLoad(
                vehicle=vehicle,
                orders=tuple(load_orders),
                route=tuple(Coordinate(lat=point.lat, lng=point.lng) for point in load.route),
                total_weight=load.total_weight,
                total_pallets=int(round(load.total_pallets)),
                total_distance_km=load.total_distance,
                estimated_time_min=load.estimated_time,
                efficiency_score=load.efficiency_score,
            )
        )
    return results


class LoadSolver(ABC):
    """Contract for solver implementations."""

    @abstractmethod
    async def optimize(self, instance: OptimizationInstance) -> list[SuggestedLoad]:
        raise NotImplementedError


class SubprocessSolver(LoadSolver):
    """Runs the solver as a separate process and waits for it to exit.

    The serialized instance is passed as ``--json <payload>``. Stdout and
    stderr are drained in full before the exit status is inspected.
    """

    def __init__(
        self,
        command: Sequence[str],
        timeout_seconds: float = 120.0,
        extra_args: Sequence[str] = (),
    ) -> None:
        if not command:
            raise ValueError("Solver command must not be empty.")
        self.command = tuple(command)
        self.timeout_seconds = timeout_seconds
        self.extra_args = tuple(extra_args)

    @classmethod
    def from_settings(cls, config: Settings) -> "SubprocessSolver":
        if config.solver_command:
            return cls(command=config.solver_command, timeout_seconds=config.solver_timeout_seconds)
        return cls(
            command=(sys.executable, "-m", BUNDLED_SOLVER_MODULE),
            timeout_seconds=config.solver_timeout_seconds,
            extra_args=(
                "--time-limit",
                str(config.solver_time_limit_seconds),
                "--first-solution-strategy",
                config.solver_first_solution_strategy,
                "--local-search-metaheuristic",
                config.solver_local_search_metaheuristic,
            ),
        )

    async def optimize(self, instance: OptimizationInstance) -> list[SuggestedLoad]:
        payload = encode_instance(instance)
        payload_bytes = len(payload.encode("utf-8"))
        if payload_bytes > MAX_PAYLOAD_BYTES:
            raise SolverFailedError(
                f"Solver payload is {payload_bytes} bytes, above the {MAX_PAYLOAD_BYTES}-byte limit "
                f"for a single command-line argument ({len(instance.orders)} orders)"
            )
        args = [*self.command, "--json", payload, *self.extra_args]
        logger.info(
            "Starting solver for warehouse %s: %s orders, %s vehicles",
            instance.warehouse.id,
            len(instance.orders),
            len(instance.vehicles),
        )

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise SolverFailedError(f"Failed to start solver process: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as exc:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            _, stderr = await process.communicate()
            error_text = stderr.decode("utf-8", errors="replace").strip()
            raise SolverFailedError(
                f"Solver process timed out after {self.timeout_seconds:g}s",
                exit_code=process.returncode,
                stderr=error_text,
            ) from exc

        error_text = stderr.decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            raise SolverFailedError(
                f"Solver process exited with code {process.returncode}: {error_text}",
                exit_code=process.returncode,
                stderr=error_text,
            )
        if error_text:
            logger.debug("Solver stderr: %s", error_text)

        return parse_solver_output(stdout.decode("utf-8", errors="replace"), instance)


class StaticSolver(LoadSolver):
    """In-memory solver that replays scripted output or raises a scripted error.

    Scripted output goes through the same parsing and validation as real
    solver output.
    """

    def __init__(self, output: Any = None, error: Exception | None = None) -> None:
        self.output = [] if output is None else output
        self.error = error
        self.calls: list[OptimizationInstance] = []

    async def optimize(self, instance: OptimizationInstance) -> list[SuggestedLoad]:
        self.calls.append(instance)
        if self.error is not None:
            raise self.error
        raw = self.output if isinstance(self.output, str) else json.dumps(self.output)
        return parse_solver_output(raw, instance)
