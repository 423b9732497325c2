"""Load optimization orchestration service."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Sequence

from fastapi.concurrency import run_in_threadpool

from ...config import Settings
from ...errors import PersistenceError
from ...models.domain import SuggestedLoad
from ...persistence.ledger import OptimizationLedger
from ...persistence.repository import DispatchRepository
from ...schemas.optimize import (
    LatLngModel,
    LoadOptimizationRequest,
    LoadOptimizationResponse,
    OrderModel,
    SuggestedLoadModel,
)
from ..distance.engine import DistanceMatrixEngine
from .assembler import DEFAULT_MAX_STOPS, assemble_instance, validate_request
from .solver_bridge import LoadSolver, SubprocessSolver

logger = logging.getLogger(__name__)


def _suggested_load_model(load: SuggestedLoad) -> SuggestedLoadModel:
    return SuggestedLoadModel(
        vehicle_id=load.vehicle.id,
        vehicle_number=load.vehicle.vehicle_number or None,
        orders=[
            OrderModel(
                id=order.id,
                order_number=order.order_number,
                delivery_address=order.delivery_address,
                delivery_city=order.delivery_city,
                delivery_province=order.delivery_province,
                delivery_postal_code=order.delivery_postal_code,
                total_weight=order.total_weight,
                pallets=order.pallets,
                customer_id=order.customer_id,
                customer_name=order.customer_name,
                priority=order.priority,
                location=LatLngModel(lat=order.location.lat, lng=order.location.lng) if order.location else None,
            )
            for order in load.orders
        ],
        route=[LatLngModel(lat=point.lat, lng=point.lng) for point in load.route],
        total_weight=load.total_weight,
        total_pallets=load.total_pallets,
        total_distance=load.total_distance_km,
        estimated_time=load.estimated_time_min,
        efficiency_score=load.efficiency_score,
    )


def build_response(loads: Sequence[SuggestedLoad]) -> LoadOptimizationResponse:
    return LoadOptimizationResponse(suggested_loads=[_suggested_load_model(load) for load in loads])


class LoadOptimizationService:
    """Runs one optimization request end to end.

    Validation happens before the run is recorded. Once the run has begun,
    every outcome is written to the ledger before control returns, and a
    failing ledger write is logged without replacing the outcome.
    """

    def __init__(
        self,
        repository: DispatchRepository,
        distance_engine: DistanceMatrixEngine,
        solver: LoadSolver,
        ledger: OptimizationLedger,
        default_max_stops: int = DEFAULT_MAX_STOPS,
    ) -> None:
        self.repository = repository
        self.distance_engine = distance_engine
        self.solver = solver
        self.ledger = ledger
        self.default_max_stops = default_max_stops

    @classmethod
    def from_settings(cls, config: Settings) -> "LoadOptimizationService":
        return cls(
            repository=DispatchRepository.from_supabase(),
            distance_engine=DistanceMatrixEngine.from_settings(config),
            solver=SubprocessSolver.from_settings(config),
            ledger=OptimizationLedger.from_settings(config),
            default_max_stops=config.default_max_stops,
        )

    async def _record(self, write: Callable[..., Any], *args: Any) -> None:
        try:
            await run_in_threadpool(write, *args)
        except PersistenceError as exc:
            logger.warning("Optimization ledger write failed: %s", exc)

    async def optimize_loads(
        self,
        payload: LoadOptimizationRequest,
    ) -> LoadOptimizationResponse:
        validate_request(payload)

        run_id = str(uuid.uuid4())
        started = time.perf_counter()
        parameters = payload.model_dump(mode="json", by_alias=True, exclude_unset=True)
        await self._record(self.ledger.begin, run_id, parameters)

        def elapsed_ms() -> int:
            return int((time.perf_counter() - started) * 1000)

        try:
            instance = await assemble_instance(
                payload,
                self.repository,
                self.distance_engine,
                default_max_stops=self.default_max_stops,
            )
            loads = await self.solver.optimize(instance)
            response = build_response(loads)
        except Exception as exc:
            logger.warning("Optimization run %s failed: %s", run_id, exc)
            await self._record(self.ledger.fail, run_id, elapsed_ms(), str(exc))
            raise

        logger.info(
            "Optimization run %s produced %s loads for %s orders (distances: %s)",
            run_id,
            len(loads),
            len(instance.orders),
            instance.distance_matrix.source,
        )
        await self._record(self.ledger.complete, run_id, elapsed_ms(), response.model_dump(mode="json", by_alias=True))
        return response
