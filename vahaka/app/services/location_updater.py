"""
Location and availability updates for drivers.

Location writes touch only the `location` field group, so they can never
revert an availability change. Availability writes are conditional on the
driver not being bound to a trip, which is what makes a driver's "I'm
available" toggle race safely against the coordinator's reservation.
"""

import logging
from typing import Any, Dict, Union

from pydantic import ValidationError as PydanticValidationError

from vahaka.app.core.exceptions import ConflictError, NotFoundError, ValidationError, jsonable_errors
from vahaka.app.core.timeutils import utcnow_iso
from vahaka.app.models.enums import Collection
from vahaka.app.schemas.driver import Driver, LocationUpdate
from vahaka.app.services.driver_repository import DriverRepository
from vahaka.app.store.base import DocumentNotFoundError, DocumentStore

logger = logging.getLogger(__name__)


class LocationUpdater:
    """Applies field-scoped location and availability writes."""

    def __init__(self, store: DocumentStore, drivers: DriverRepository):
        self.store = store
        self.drivers = drivers

    async def set_location(self, driver_id: str, location: Union[LocationUpdate, Dict[str, Any]]) -> Driver:
        """
        Record a driver's position.

        Repeating the same coordinates only advances `location.updatedAt`.

        Raises:
            ValidationError: If coordinates are missing or out of range
            NotFoundError: If the driver does not exist
        """
        try:
            point = LocationUpdate.model_validate(location)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid location",
                details={"errors": jsonable_errors(exc.errors())}
            )

        now = utcnow_iso()
        fields = {
            "location": {
                "latitude": point.latitude,
                "longitude": point.longitude,
                "updatedAt": now,
            },
            "updatedAt": now,
        }

        try:
            await self.store.update(Collection.DRIVERS, driver_id, fields)
        except DocumentNotFoundError:
            raise NotFoundError("Driver", driver_id)

        return await self.drivers.require(driver_id)

    async def set_availability(self, driver_id: str, available: bool) -> Driver:
        """
        Toggle whether a driver accepts new trips.

        A driver bound to a trip cannot declare themselves available; going
        unavailable while bound is a no-op since the binding already implies it.

        Raises:
            ConflictError: If the driver is bound to a trip, or gets bound concurrently
            NotFoundError: If the driver does not exist
        """
        if not isinstance(available, bool):
            raise ValidationError("available must be a boolean", details={"available": available})

        driver = await self.drivers.require(driver_id)

        if driver.current_trip is not None:
            if available:
                raise ConflictError(
                    f"Driver {driver_id} is serving trip {driver.current_trip.trip_id}",
                    details={"driver_id": driver_id, "trip_id": driver.current_trip.trip_id}
                )
            return driver

        if driver.availability == available:
            return driver

        try:
            committed = await self.store.conditional_write(
                Collection.DRIVERS,
                driver_id,
                expected={"currentTrip": None},
                fields={"availability": available, "updatedAt": utcnow_iso()},
            )
        except DocumentNotFoundError:
            raise NotFoundError("Driver", driver_id)

        if not committed:
            # The coordinator bound the driver between our read and write
            logger.info("Availability write for driver %s lost a race", driver_id)
            raise ConflictError(
                f"Driver {driver_id} changed while updating availability",
                details={"driver_id": driver_id}
            )

        logger.info("Driver %s availability set to %s", driver_id, available)
        return await self.drivers.require(driver_id)
