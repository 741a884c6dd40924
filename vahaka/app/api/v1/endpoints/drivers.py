"""
Driver API Endpoints.

Profile management and moderation go through the repository; location and
availability toggles go through the updater.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from vahaka.app.core.config import settings
from vahaka.app.core.dependencies import (
    get_driver_repository,
    get_location_updater,
    get_trip_coordinator,
)
from vahaka.app.models.document import MAX_DOCUMENT_ID_LENGTH
from vahaka.app.schemas.driver import (
    AvailabilityUpdate,
    Driver,
    DriverCreate,
    DriverListResponse,
    LocationUpdate,
)
from vahaka.app.schemas.trip import Trip, TripListResponse
from vahaka.app.services.driver_repository import DriverRepository
from vahaka.app.services.location_updater import LocationUpdater
from vahaka.app.services.trip_coordinator import TripCoordinator

router = APIRouter(prefix="/drivers", tags=["Drivers"])


@router.post("", response_model=Driver, status_code=status.HTTP_201_CREATED)
async def create_driver(
    driver_data: DriverCreate = Body(...),
    driver_id: Optional[str] = Query(
        None,
        max_length=MAX_DOCUMENT_ID_LENGTH,
        description="Use this id instead of generating one"
    ),
    drivers: DriverRepository = Depends(get_driver_repository)
):
    """
    Register a driver profile.

    New drivers are pending moderation and unavailable.
    """
    new_id = await drivers.create(driver_data.model_dump(by_alias=True), driver_id=driver_id)
    return await drivers.require(new_id)


@router.get("", response_model=DriverListResponse)
async def list_drivers_by_status(
    status_filter: str = Query(..., alias="status", description="pending, approved or rejected"),
    drivers: DriverRepository = Depends(get_driver_repository)
):
    """List drivers with the given moderation status."""
    results = await drivers.list_by_status(status_filter).all()
    return DriverListResponse(drivers=results, total=len(results))


@router.get("/approved", response_model=DriverListResponse)
async def list_approved_drivers(drivers: DriverRepository = Depends(get_driver_repository)):
    results = await drivers.list_approved().all()
    return DriverListResponse(drivers=results, total=len(results))


@router.get("/nearby", response_model=DriverListResponse)
async def list_nearby_drivers(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(settings.default_search_radius_km, gt=0),
    drivers: DriverRepository = Depends(get_driver_repository)
):
    """
    Approved, available drivers within `radius_km`.

    Results are unranked; callers order them before assigning.
    """
    results = await drivers.list_available_near(latitude, longitude, radius_km).all()
    return DriverListResponse(drivers=results, total=len(results))


@router.get("/{driver_id}", response_model=Driver)
async def get_driver(
    driver_id: str = Path(..., description="Driver ID"),
    drivers: DriverRepository = Depends(get_driver_repository)
):
    return await drivers.require(driver_id)


@router.patch("/{driver_id}", response_model=Driver)
async def update_driver(
    driver_id: str = Path(..., description="Driver ID"),
    fields: Dict[str, Any] = Body(...),
    drivers: DriverRepository = Depends(get_driver_repository)
):
    """
    Partially update a driver profile or its moderation status.

    Availability, trip binding, location and counters are rejected with 403.
    """
    return await drivers.update(driver_id, fields)


@router.put("/{driver_id}/location", response_model=Driver)
async def set_driver_location(
    driver_id: str = Path(..., description="Driver ID"),
    location: LocationUpdate = Body(...),
    updater: LocationUpdater = Depends(get_location_updater)
):
    return await updater.set_location(driver_id, location)


@router.put("/{driver_id}/availability", response_model=Driver)
async def set_driver_availability(
    driver_id: str = Path(..., description="Driver ID"),
    update: AvailabilityUpdate = Body(...),
    updater: LocationUpdater = Depends(get_location_updater)
):
    """
    Toggle availability.

    Returns 409 if the driver is serving a trip and asks to become available.
    """
    return await updater.set_availability(driver_id, update.available)


@router.get("/{driver_id}/current-trip", response_model=Optional[Trip])
async def get_driver_current_trip(
    driver_id: str = Path(..., description="Driver ID"),
    coordinator: TripCoordinator = Depends(get_trip_coordinator)
):
    return await coordinator.get_driver_current_trip(driver_id)


@router.get("/{driver_id}/trips", response_model=TripListResponse)
async def list_driver_trips(
    driver_id: str = Path(..., description="Driver ID"),
    history: bool = Query(False, description="Only completed and cancelled trips"),
    limit: Optional[int] = Query(None, ge=1, description="Return at most this many trips"),
    coordinator: TripCoordinator = Depends(get_trip_coordinator)
):
    results = await coordinator.list_driver_trips(driver_id, history_only=history, limit=limit).all()
    return TripListResponse(trips=results, total=len(results))
