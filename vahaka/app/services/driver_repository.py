"""
Driver record repository.

Owns creation, profile updates, moderation status and lookups of driver
records. The availability/currentTrip pair, the location and the trip
counters belong to the updater and the coordinator, so this repository
refuses to write them.
"""

import logging
import uuid
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from vahaka.app.core.exceptions import (
    ForbiddenFieldError,
    NotFoundError,
    ValidationError,
    jsonable_errors,
)
from vahaka.app.core.timeutils import utcnow_iso
from vahaka.app.models.document import MAX_DOCUMENT_ID_LENGTH
from vahaka.app.models.enums import Collection, DriverStatus
from vahaka.app.schemas.driver import Driver, DriverCreate, DriverUpdate
from vahaka.app.services.geo import haversine_distance
from vahaka.app.services.record_query import RecordQuery
from vahaka.app.store.base import (
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
)

logger = logging.getLogger(__name__)

# Fields written only by the updater / coordinator, or never after creation
FORBIDDEN_UPDATE_FIELDS = frozenset({
    "id",
    "availability",
    "currentTrip", "current_trip",
    "location",
    "rating",
    "ratingCount", "rating_count",
    "totalTrips", "total_trips",
    "createdAt", "created_at",
    "updatedAt", "updated_at",
})

REQUIRED_PROFILE_FIELDS = ("name", "phone", "email", "vehicle", "license", "status")


class DriverRepository:
    """CRUD and queries over the `drivers` collection."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get(self, driver_id: str) -> Optional[Driver]:
        doc = await self.store.read(Collection.DRIVERS, driver_id)
        if doc is None:
            return None
        return Driver.model_validate(doc)

    async def require(self, driver_id: str) -> Driver:
        """
        Get a driver or fail.

        Raises:
            NotFoundError: If no driver has this id
        """
        driver = await self.get(driver_id)
        if driver is None:
            raise NotFoundError("Driver", driver_id)
        return driver

    async def create(self, driver_data: Dict[str, Any], driver_id: Optional[str] = None) -> str:
        """
        Register a driver profile.

        New drivers start pending moderation, unavailable, unbound and with
        zeroed counters.

        Args:
            driver_data: Profile fields (name, phone, email, vehicle, license required)
            driver_id: Id to use, e.g. the auth uid; generated when omitted

        Returns:
            The driver id

        Raises:
            ValidationError: If required fields are missing or malformed, or the
                id is too long or already taken
        """
        if driver_id is not None and len(driver_id) > MAX_DOCUMENT_ID_LENGTH:
            raise ValidationError(
                f"Driver id must be at most {MAX_DOCUMENT_ID_LENGTH} characters",
                details={"id": driver_id}
            )

        try:
            profile = DriverCreate.model_validate(driver_data)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid driver profile",
                details={"errors": jsonable_errors(exc.errors())}
            )

        driver_id = driver_id or uuid.uuid4().hex
        now = utcnow_iso()
        document = {
            **profile.model_dump(mode="json", by_alias=True),
            "status": DriverStatus.PENDING.value,
            "availability": False,
            "location": None,
            "currentTrip": None,
            "rating": 0.0,
            "ratingCount": 0,
            "totalTrips": 0,
            "createdAt": now,
            "updatedAt": now,
        }

        try:
            await self.store.insert(Collection.DRIVERS, driver_id, document)
        except DocumentExistsError:
            raise ValidationError(f"Driver {driver_id} already exists", details={"id": driver_id})

        logger.info("Driver %s registered", driver_id)
        return driver_id

    async def update(self, driver_id: str, fields: Dict[str, Any]) -> Driver:
        """
        Apply a partial profile update.

        Raises:
            ForbiddenFieldError: If any field is owned by another component
            ValidationError: If fields are unknown, malformed or empty
            NotFoundError: If the driver does not exist
        """
        # "currentTrip.tripId" writes into currentTrip
        forbidden = {key for key in fields if key.split(".")[0] in FORBIDDEN_UPDATE_FIELDS}
        if forbidden:
            raise ForbiddenFieldError(forbidden)

        if not fields:
            raise ValidationError("No fields to update")

        try:
            changes = DriverUpdate.model_validate(fields)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid driver update",
                details={"errors": jsonable_errors(exc.errors())}
            )

        payload = changes.model_dump(mode="json", by_alias=True, exclude_unset=True)
        cleared = [name for name in REQUIRED_PROFILE_FIELDS if name in payload and payload[name] is None]
        if cleared:
            raise ValidationError("Required fields cannot be cleared", details={"fields": cleared})

        payload["updatedAt"] = utcnow_iso()

        try:
            await self.store.update(Collection.DRIVERS, driver_id, payload)
        except DocumentNotFoundError:
            raise NotFoundError("Driver", driver_id)

        if "status" in payload:
            logger.info("Driver %s moderation status set to %s", driver_id, payload["status"])

        return await self.require(driver_id)

    def list_by_status(self, status: str) -> RecordQuery[Driver]:
        """Drivers with the given moderation status, lazily fetched."""
        try:
            status = DriverStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown driver status: {status}")

        return RecordQuery(self.store.query(Collection.DRIVERS, "status", status.value), Driver)

    def list_approved(self) -> RecordQuery[Driver]:
        return self.list_by_status(DriverStatus.APPROVED)

    def list_available_near(self, latitude: float, longitude: float, radius_km: float) -> RecordQuery[Driver]:
        """
        Approved, available drivers whose last location is within `radius_km`.

        Results are not ranked; ordering candidates is the caller's job.
        """
        if radius_km <= 0:
            raise ValidationError("Search radius must be positive", details={"radius_km": radius_km})

        def within_reach(driver: Driver) -> bool:
            if not driver.availability or driver.current_trip is not None or driver.location is None:
                return False
            distance = haversine_distance(
                latitude,
                longitude,
                driver.location.latitude,
                driver.location.longitude
            )
            return distance <= radius_km

        documents = self.store.query(Collection.DRIVERS, "status", DriverStatus.APPROVED.value)
        return RecordQuery(documents, Driver, within_reach)
