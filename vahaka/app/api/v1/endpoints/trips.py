"""
Trip API Endpoints.

Booking, driver reservation and the trip lifecycle. Every state change is
delegated to the coordinator, which keeps trip and driver records in step.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from vahaka.app.core.config import settings
from vahaka.app.core.dependencies import get_trip_coordinator
from vahaka.app.schemas.trip import (
    AssignDriverRequest,
    Trip,
    TripCancelRequest,
    TripListResponse,
    TripRating,
    TripRequest,
)
from vahaka.app.services.trip_coordinator import TripCoordinator

router = APIRouter(prefix="/trips", tags=["Trips"])


@router.post("", response_model=Trip, status_code=status.HTTP_201_CREATED)
async def request_trip(
    request: TripRequest = Body(...),
    coordinator: TripCoordinator = Depends(get_trip_coordinator)
):
    """Book a trip. It starts in `requested` with no driver."""
    return await coordinator.request_trip(request.rider_id, request.pickup, request.destination)


@router.get("", response_model=TripListResponse)
async def list_rider_trips(
    rider_id: str = Query(..., min_length=1),
    coordinator: TripCoordinator = Depends(get_trip_coordinator)
):
    results = await coordinator.list_rider_trips(rider_id).all()
    return TripListResponse(trips=results, total=len(results))


@router.get("/nearby", response_model=TripListResponse)
async def list_requested_trips_near(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(settings.default_search_radius_km, gt=0),
    coordinator: TripCoordinator = Depends(get_trip_coordinator)
):
    """Open trips with a pickup within `radius_km` of the driver, nearest first."""
    results = await coordinator.list_requested_near(latitude, longitude, radius_km)
    return TripListResponse(trips=results, total=len(results))


@router.get("/{trip_id}", response_model=Trip)
async def get_trip(
    trip_id: str = Path(..., description="Trip ID"),
    coordinator: TripCoordinator = Depends(get_trip_coordinator)
):
    return await coordinator.require_trip(trip_id)


@router.post("/{trip_id}/assign", response_model=Trip)
async def assign_driver(
    trip_id: str = Path(..., description="Trip ID"),
    request: AssignDriverRequest = Body(...),
    coordinator: TripCoordinator = Depends(get_trip_coordinator)
):
    """
    Reserve the first available driver from a ranked candidate list.

    Returns 409 ERR_NO_DRIVER_AVAILABLE when every candidate is taken.
    """
    return await coordinator.assign_driver(trip_id, request.candidate_driver_ids)


@router.post("/{trip_id}/start", response_model=Trip)
async def start_trip(
    trip_id: str = Path(..., description="Trip ID"),
    coordinator: TripCoordinator = Depends(get_trip_coordinator)
):
    return await coordinator.start_trip(trip_id)


@router.post("/{trip_id}/complete", response_model=Trip)
async def complete_trip(
    trip_id: str = Path(..., description="Trip ID"),
    coordinator: TripCoordinator = Depends(get_trip_coordinator)
):
    """Complete an active trip and return its driver to the pool."""
    return await coordinator.complete_trip(trip_id)


@router.post("/{trip_id}/cancel", response_model=Trip)
async def cancel_trip(
    trip_id: str = Path(..., description="Trip ID"),
    request: Optional[TripCancelRequest] = Body(None),
    coordinator: TripCoordinator = Depends(get_trip_coordinator)
):
    """
    Cancel a trip and release its driver.

    Active trips need `force: true`.
    """
    request = request or TripCancelRequest()
    return await coordinator.cancel_trip(
        trip_id,
        cancelled_by=request.cancelled_by,
        reason=request.reason,
        force=request.force
    )


@router.post("/{trip_id}/rating", response_model=Trip)
async def rate_trip(
    trip_id: str = Path(..., description="Trip ID"),
    review: TripRating = Body(...),
    coordinator: TripCoordinator = Depends(get_trip_coordinator)
):
    return await coordinator.rate_trip(trip_id, review.rating, review.feedback)
