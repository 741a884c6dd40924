"""
Trip schemas.
"""

from pydantic import Field
from typing import List, Optional
from datetime import datetime

from vahaka.app.models.enums import CancelledBy, TripStatus
from vahaka.app.schemas.base import CamelModel


class GeoPoint(CamelModel):
    """Pickup or destination point."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    address: Optional[str] = None


class Trip(CamelModel):
    """Trip record as persisted in the `trips` collection."""
    id: str
    rider_id: str
    driver_id: Optional[str] = None
    status: TripStatus
    pickup: GeoPoint
    destination: GeoPoint
    created_at: datetime
    updated_at: datetime
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[CancelledBy] = None
    cancellation_reason: Optional[str] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None


class TripRequest(CamelModel):
    """Schema for a rider's booking request."""
    rider_id: str = Field(..., min_length=1)
    pickup: GeoPoint
    destination: GeoPoint


class AssignDriverRequest(CamelModel):
    """Candidate drivers, best first. Ranking is done by the caller."""
    candidate_driver_ids: List[str]


class TripCancelRequest(CamelModel):
    """Schema for cancelling a trip."""
    cancelled_by: Optional[CancelledBy] = None
    reason: Optional[str] = None
    force: bool = False  # Required to cancel an active trip


class TripRating(CamelModel):
    """Rider's rating of a completed trip."""
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = None


class TripListResponse(CamelModel):
    """List of trips."""
    trips: List[Trip]
    total: int
