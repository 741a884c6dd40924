"""
Trip assignment coordinator.

Drives the trip lifecycle and owns the driver <-> trip binding. Every step
that touches both records (reserve, start, complete, cancel, rate) is a
single `DocumentStore.commit`, so readers see either the state before the
step or the state after it, never a trip and a driver that disagree.

Reservation flow for `assign_driver`:
1. Walk the candidates in the caller's order
2. For each, commit {driver: available & unbound -> bound,
   trip: requested & driverless -> assigned} as one unit
3. First commit that lands wins; a lost race moves on to the next candidate
4. No candidate left -> NoDriverAvailableError, trip stays requested
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from vahaka.app.core.exceptions import (
    ConflictError,
    NoDriverAvailableError,
    NotFoundError,
    ValidationError,
    jsonable_errors,
)
from vahaka.app.core.timeutils import utcnow_iso
from vahaka.app.models.enums import CancelledBy, Collection, TripStatus
from vahaka.app.schemas.trip import GeoPoint, Trip, TripRating, TripRequest
from vahaka.app.services.driver_repository import DriverRepository
from vahaka.app.services.geo import haversine_distance
from vahaka.app.services.record_query import RecordQuery
from vahaka.app.services.trip_lifecycle import (
    BOUND_STATUSES,
    TRANSITION_TIMESTAMPS,
    ensure_transition,
    is_terminal,
)
from vahaka.app.store.base import ConditionalWrite, DocumentNotFoundError, DocumentStore

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_REASON = "No reason provided"


class TripCoordinator:
    """Trip lifecycle operations and driver reservation."""

    def __init__(self, store: DocumentStore, drivers: DriverRepository):
        self.store = store
        self.drivers = drivers

    # ===================== Reads =====================

    async def get_trip(self, trip_id: str) -> Optional[Trip]:
        doc = await self.store.read(Collection.TRIPS, trip_id)
        if doc is None:
            return None
        return Trip.model_validate(doc)

    async def require_trip(self, trip_id: str) -> Trip:
        trip = await self.get_trip(trip_id)
        if trip is None:
            raise NotFoundError("Trip", trip_id)
        return trip

    async def get_driver_current_trip(self, driver_id: str) -> Optional[Trip]:
        """The trip the driver is bound to, if any."""
        driver = await self.drivers.require(driver_id)
        if driver.current_trip is None:
            return None
        return await self.get_trip(driver.current_trip.trip_id)

    def list_driver_trips(
        self,
        driver_id: str,
        history_only: bool = False,
        limit: Optional[int] = None,
    ) -> RecordQuery[Trip]:
        """Trips ever assigned to the driver; completed/cancelled only if `history_only`."""
        if limit is not None and limit < 1:
            raise ValidationError("limit must be positive", details={"limit": limit})

        documents = self.store.query(Collection.TRIPS, "driverId", driver_id)
        if history_only:
            return RecordQuery(documents, Trip, lambda trip: is_terminal(trip.status), limit=limit)
        return RecordQuery(documents, Trip, limit=limit)

    def list_rider_trips(self, rider_id: str) -> RecordQuery[Trip]:
        return RecordQuery(self.store.query(Collection.TRIPS, "riderId", rider_id), Trip)

    async def list_requested_near(self, latitude: float, longitude: float, radius_km: float) -> List[Trip]:
        """
        Open trips a driver at (latitude, longitude) could pick up.

        Returns `requested` trips whose pickup is within `radius_km`, nearest
        pickup first. A driver accepts one through `assign_driver(trip, [self])`.

        Raises:
            ValidationError: If the radius is not positive
        """
        if radius_km <= 0:
            raise ValidationError("Search radius must be positive", details={"radius_km": radius_km})

        open_trips = RecordQuery(self.store.query(Collection.TRIPS, "status", TripStatus.REQUESTED.value), Trip)

        nearby = []
        async for trip in open_trips:
            distance = haversine_distance(latitude, longitude, trip.pickup.latitude, trip.pickup.longitude)
            if distance <= radius_km:
                nearby.append((distance, trip))

        nearby.sort(key=lambda item: item[0])
        return [trip for _, trip in nearby]

    # ===================== Lifecycle =====================

    async def request_trip(
        self,
        rider_id: str,
        pickup: Union[GeoPoint, Dict[str, Any]],
        destination: Union[GeoPoint, Dict[str, Any]],
    ) -> Trip:
        """
        Create a trip in `requested` status with no driver.

        Raises:
            ValidationError: If the rider id or either point is malformed
        """
        try:
            request = TripRequest(rider_id=rider_id, pickup=pickup, destination=destination)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid trip request",
                details={"errors": jsonable_errors(exc.errors())}
            )

        trip_id = uuid.uuid4().hex
        now = utcnow_iso()
        document = {
            **request.model_dump(mode="json", by_alias=True),
            "driverId": None,
            "status": TripStatus.REQUESTED.value,
            "createdAt": now,
            "updatedAt": now,
        }

        document = await self.store.insert(Collection.TRIPS, trip_id, document)
        logger.info("Trip %s requested by rider %s", trip_id, request.rider_id)

        return Trip.model_validate(document)

    async def assign_driver(self, trip_id: str, candidate_driver_ids: Sequence[str]) -> Trip:
        """
        Reserve the first available candidate for a requested trip.

        Args:
            trip_id: Trip in `requested` status
            candidate_driver_ids: Driver ids, best first (duplicates ignored)

        Returns:
            The trip, now `assigned`

        Raises:
            NoDriverAvailableError: If no candidate could be reserved
            ConflictError: If the trip itself changed during assignment, or
                the reservation kept losing races to other writers
            InvalidTransitionError: If the trip is not `requested`
            NotFoundError: If the trip does not exist
        """
        if isinstance(candidate_driver_ids, str):
            raise ValidationError("candidate_driver_ids must be a sequence of ids, not a string")

        candidates = list(dict.fromkeys(candidate_driver_ids))
        trip = await self.require_trip(trip_id)
        ensure_transition(trip_id, trip.status, TripStatus.ASSIGNED)

        for driver_id in candidates:
            driver = await self.drivers.get(driver_id)
            if driver is None:
                logger.warning("Candidate driver %s for trip %s does not exist", driver_id, trip_id)
                continue

            if not driver.availability or driver.current_trip is not None:
                continue

            now = utcnow_iso()
            reserved = await self._commit([
                ConditionalWrite(
                    Collection.DRIVERS,
                    driver_id,
                    fields={
                        "availability": False,
                        "currentTrip": {"tripId": trip_id, "status": TripStatus.ASSIGNED.value},
                        "updatedAt": now,
                    },
                    expected={"availability": True, "currentTrip": None},
                ),
                ConditionalWrite(
                    Collection.TRIPS,
                    trip_id,
                    fields={
                        "status": TripStatus.ASSIGNED.value,
                        "driverId": driver_id,
                        TRANSITION_TIMESTAMPS[TripStatus.ASSIGNED]: now,
                        "updatedAt": now,
                    },
                    expected={"status": TripStatus.REQUESTED.value, "driverId": None},
                ),
            ])

            if reserved:
                logger.info("Driver %s reserved for trip %s", driver_id, trip_id)
                return await self.require_trip(trip_id)

            # Lost the race: the driver was taken, or the trip moved on
            current = await self.require_trip(trip_id)
            if current.status != TripStatus.REQUESTED:
                raise ConflictError(
                    f"Trip {trip_id} changed while assigning a driver",
                    details={"trip_id": trip_id, "status": current.status.value}
                )
            logger.info("Driver %s was taken before trip %s could reserve it", driver_id, trip_id)

        logger.info("No driver available for trip %s among %d candidates", trip_id, len(candidates))
        raise NoDriverAvailableError(trip_id, candidates)

    async def start_trip(self, trip_id: str) -> Trip:
        """
        Mark the rider as picked up.

        Raises:
            InvalidTransitionError: If the trip is not `assigned`
            ConflictError: If the trip or driver changed concurrently
        """
        trip = await self.require_trip(trip_id)
        ensure_transition(trip_id, trip.status, TripStatus.ACTIVE)

        now = utcnow_iso()
        await self._commit_or_conflict(trip_id, [
            ConditionalWrite(
                Collection.TRIPS,
                trip_id,
                fields={
                    "status": TripStatus.ACTIVE.value,
                    TRANSITION_TIMESTAMPS[TripStatus.ACTIVE]: now,
                    "updatedAt": now,
                },
                expected={"status": TripStatus.ASSIGNED.value, "driverId": trip.driver_id},
            ),
            ConditionalWrite(
                Collection.DRIVERS,
                trip.driver_id,
                fields={"currentTrip.status": TripStatus.ACTIVE.value, "updatedAt": now},
                expected={"currentTrip.tripId": trip_id, "currentTrip.status": TripStatus.ASSIGNED.value},
            ),
        ])

        logger.info("Trip %s started by driver %s", trip_id, trip.driver_id)
        return await self.require_trip(trip_id)

    async def complete_trip(self, trip_id: str) -> Trip:
        """
        Finish an active trip and free its driver.

        Trip status, the driver's binding, availability and trip counter
        change in one commit.

        Raises:
            InvalidTransitionError: If the trip is not `active`
            ConflictError: If the trip or driver changed concurrently
        """
        trip = await self.require_trip(trip_id)
        ensure_transition(trip_id, trip.status, TripStatus.COMPLETED)
        driver = await self.drivers.require(trip.driver_id)

        now = utcnow_iso()
        await self._commit_or_conflict(trip_id, [
            ConditionalWrite(
                Collection.TRIPS,
                trip_id,
                fields={
                    "status": TripStatus.COMPLETED.value,
                    TRANSITION_TIMESTAMPS[TripStatus.COMPLETED]: now,
                    "updatedAt": now,
                },
                expected={"status": TripStatus.ACTIVE.value, "driverId": driver.id},
            ),
            ConditionalWrite(
                Collection.DRIVERS,
                driver.id,
                fields={
                    "availability": True,
                    "currentTrip": None,
                    "totalTrips": driver.total_trips + 1,
                    "updatedAt": now,
                },
                expected={"currentTrip.tripId": trip_id, "totalTrips": driver.total_trips},
            ),
        ])

        logger.info("Trip %s completed; driver %s released", trip_id, driver.id)
        return await self.require_trip(trip_id)

    async def cancel_trip(
        self,
        trip_id: str,
        cancelled_by: Optional[Union[CancelledBy, str]] = None,
        reason: Optional[str] = None,
        force: bool = False,
    ) -> Trip:
        """
        Cancel a trip, releasing its driver in the same commit.

        Args:
            trip_id: Trip to cancel
            cancelled_by: rider, driver or system
            reason: Free-text reason
            force: Allow cancelling an `active` trip

        Raises:
            InvalidTransitionError: If the trip is terminal, or active without force
            ConflictError: If the trip or driver changed concurrently
        """
        if cancelled_by is not None:
            try:
                cancelled_by = CancelledBy(cancelled_by)
            except ValueError:
                raise ValidationError(f"Unknown cancelling party: {cancelled_by}")

        trip = await self.require_trip(trip_id)
        ensure_transition(trip_id, trip.status, TripStatus.CANCELLED, force=force)

        now = utcnow_iso()
        writes = [
            ConditionalWrite(
                Collection.TRIPS,
                trip_id,
                fields={
                    "status": TripStatus.CANCELLED.value,
                    TRANSITION_TIMESTAMPS[TripStatus.CANCELLED]: now,
                    "cancelledBy": cancelled_by.value if cancelled_by else None,
                    "cancellationReason": reason or DEFAULT_CANCELLATION_REASON,
                    "updatedAt": now,
                },
                expected={"status": trip.status.value, "driverId": trip.driver_id},
            ),
        ]

        releases_driver = trip.status in BOUND_STATUSES
        if releases_driver:
            writes.append(ConditionalWrite(
                Collection.DRIVERS,
                trip.driver_id,
                fields={"availability": True, "currentTrip": None, "updatedAt": now},
                expected={"currentTrip.tripId": trip_id},
            ))

        await self._commit_or_conflict(trip_id, writes)

        if releases_driver:
            logger.info("Trip %s cancelled; driver %s released", trip_id, trip.driver_id)
        else:
            logger.info("Trip %s cancelled before assignment", trip_id)
        return await self.require_trip(trip_id)

    async def rate_trip(self, trip_id: str, rating: int, feedback: Optional[str] = None) -> Trip:
        """
        Store the rider's rating and fold it into the driver's average.

        Raises:
            ValidationError: If the rating is out of range, the trip is not
                completed, or it was already rated
            ConflictError: If the trip or driver changed concurrently
        """
        try:
            review = TripRating(rating=rating, feedback=feedback)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid rating",
                details={"errors": jsonable_errors(exc.errors())}
            )

        trip = await self.require_trip(trip_id)
        if trip.status != TripStatus.COMPLETED:
            raise ValidationError(
                f"Only completed trips can be rated, current status: {trip.status.value}",
                details={"trip_id": trip_id}
            )
        if trip.rating is not None:
            raise ValidationError(f"Trip {trip_id} has already been rated", details={"trip_id": trip_id})

        driver = await self.drivers.require(trip.driver_id)
        count = driver.rating_count
        average = (driver.rating * count + review.rating) / (count + 1)

        now = utcnow_iso()
        await self._commit_or_conflict(trip_id, [
            ConditionalWrite(
                Collection.TRIPS,
                trip_id,
                fields={"rating": review.rating, "feedback": review.feedback, "updatedAt": now},
                expected={"status": TripStatus.COMPLETED.value, "rating": None},
            ),
            ConditionalWrite(
                Collection.DRIVERS,
                driver.id,
                fields={"rating": average, "ratingCount": count + 1, "updatedAt": now},
                expected={"rating": driver.rating, "ratingCount": count},
            ),
        ])

        logger.info("Trip %s rated %d", trip_id, review.rating)
        return await self.require_trip(trip_id)

    # ===================== Commit helpers =====================

    async def _commit(self, writes: List[ConditionalWrite]) -> bool:
        """
        Commit a batch, letting it resolve even if the caller is cancelled.

        A reservation that lands after cancellation is still recorded on
        both the trip and the driver, so it is never left unobserved.
        """
        task = asyncio.ensure_future(self.store.commit(writes))
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                try:
                    await task
                except Exception:
                    logger.exception("Commit failed after cancellation: %s", _describe(writes))
                    raise
            logger.warning("Commit resolved after cancellation: %s", _describe(writes))
            raise
        except DocumentNotFoundError as exc:
            raise NotFoundError(exc.collection.rstrip("s").capitalize(), exc.doc_id)

    async def _commit_or_conflict(self, trip_id: str, writes: List[ConditionalWrite]) -> None:
        if not await self._commit(writes):
            logger.info("Concurrent change detected on trip %s", trip_id)
            raise ConflictError(
                f"Trip {trip_id} or its driver changed concurrently",
                details={"trip_id": trip_id}
            )


def _describe(writes: Iterable[ConditionalWrite]) -> str:
    return ", ".join(f"{write.collection}/{write.doc_id}" for write in writes)
