"""
Service dependencies for FastAPI.

The document store is built once in the application lifespan and stored on
`app.state`; the services are cheap wrappers around it and are created per
request.
"""

from fastapi import Depends, Request

from vahaka.app.services.driver_repository import DriverRepository
from vahaka.app.services.location_updater import LocationUpdater
from vahaka.app.services.trip_coordinator import TripCoordinator
from vahaka.app.store.base import DocumentStore


def get_store(request: Request) -> DocumentStore:
    """Process-wide document store created at startup."""
    return request.app.state.store


def get_driver_repository(store: DocumentStore = Depends(get_store)) -> DriverRepository:
    return DriverRepository(store)


def get_location_updater(
    store: DocumentStore = Depends(get_store),
    drivers: DriverRepository = Depends(get_driver_repository)
) -> LocationUpdater:
    return LocationUpdater(store, drivers)


def get_trip_coordinator(
    store: DocumentStore = Depends(get_store),
    drivers: DriverRepository = Depends(get_driver_repository)
) -> TripCoordinator:
    return TripCoordinator(store, drivers)
