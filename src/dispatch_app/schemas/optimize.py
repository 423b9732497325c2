"""Load optimization request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class LatLngModel(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class LoadOptimizationRequest(BaseModel):
    """Body of ``POST /optimize/loads``.

    Required fields are optional here so that a missing warehouse or date
    produces the dashboard's own 400 messages instead of a schema error.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)

    warehouse_id: Optional[str] = None
    date: Optional[str] = Field(default=None, description="Pickup date, ISO format (YYYY-MM-DD).")
    vehicle_id: Optional[str] = None
    driver_id: Optional[str] = Field(default=None, description="Accepted for compatibility; not used.")
    order_ids: Optional[List[str]] = None
    max_stops: Optional[int] = None
    return_to_depot: Optional[bool] = None
    priority_customers: Optional[List[str]] = None


class OrderModel(BaseModel):
    id: str
    order_number: str
    delivery_address: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_province: Optional[str] = None
    delivery_postal_code: Optional[str] = None
    total_weight: float
    pallets: int
    customer_id: str
    customer_name: Optional[str] = None
    priority: bool = False
    location: Optional[LatLngModel] = None


class SuggestedLoadModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    vehicle_id: str
    vehicle_number: Optional[str] = None
    orders: List[OrderModel]
    route: List[LatLngModel]
    total_weight: float
    total_pallets: int
    total_distance: float = Field(..., description="Kilometres.")
    estimated_time: float = Field(..., description="Minutes.")
    efficiency_score: float = Field(..., ge=0, le=100)


class LoadOptimizationResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    suggested_loads: List[SuggestedLoadModel]


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


class SolverOrderRef(BaseModel):
    """An order echoed back by the solver; only its id is trusted."""

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    id: str


class SolverLoadModel(BaseModel):
    """One element of the JSON array a solver prints on stdout."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        allow_inf_nan=False,
    )

    vehicle_id: str
    orders: List[SolverOrderRef] = Field(..., min_length=1)
    route: List[LatLngModel] = Field(default_factory=list)
    total_weight: float = Field(..., ge=0)
    total_pallets: float = Field(..., ge=0)
    total_distance: float = Field(..., ge=0)
    estimated_time: float = Field(..., ge=0)
    efficiency_score: float = Field(..., ge=0, le=100)
