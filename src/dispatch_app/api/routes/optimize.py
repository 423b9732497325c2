"""Load optimization endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from ...config import settings
from ...errors import InvalidParameterError, MissingParameterError, NotFoundError, SolverError
from ...schemas.optimize import ErrorResponse, LoadOptimizationRequest, LoadOptimizationResponse
from ...services.optimization.service import LoadOptimizationService

router = APIRouter(prefix="/optimize", tags=["optimize"])


def get_optimization_service() -> LoadOptimizationService:
    return LoadOptimizationService.from_settings(settings)


def _error(status_code: int, error: str, details: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=error, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@router.post(
    "/loads",
    response_model=LoadOptimizationResponse,
    status_code=status.HTTP_200_OK,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def optimize_loads(
    payload: LoadOptimizationRequest,
    service: LoadOptimizationService = Depends(get_optimization_service),
):
    """Generate suggested loads for the pending orders of a warehouse and date."""
    try:
        return await service.optimize_loads(payload)
    except (MissingParameterError, InvalidParameterError) as exc:
        return _error(status.HTTP_400_BAD_REQUEST, str(exc))
    except NotFoundError as exc:
        return _error(status.HTTP_404_NOT_FOUND, str(exc))
    except SolverError as exc:
        logging.warning(f"Load optimization failed in the solver: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Optimization failed", str(exc))
    except Exception as exc:
        logging.exception(f"Error in optimize loads: {exc}")
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server error during optimization", str(exc))
