"""
Driver schemas.

`Driver` is the persisted record shape; the others are request bodies.
"""

from pydantic import Field
from typing import List, Optional
from datetime import datetime

from vahaka.app.models.enums import DriverStatus, TripStatus
from vahaka.app.schemas.base import CamelModel


class Vehicle(CamelModel):
    """Vehicle details."""
    make: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    year: int = Field(..., ge=1900, le=2100)
    color: str
    plate_number: str = Field(..., min_length=1)


class License(CamelModel):
    """Driving license details."""
    number: str = Field(..., min_length=1)
    expiry_date: str


class DriverLocation(CamelModel):
    """Last reported position."""
    latitude: float
    longitude: float
    updated_at: datetime


class CurrentTrip(CamelModel):
    """Binding between a driver and the trip they are serving."""
    trip_id: str
    status: TripStatus


class Driver(CamelModel):
    """Driver record as persisted in the `drivers` collection."""
    id: str
    name: str
    phone: str
    email: str
    experience: Optional[int] = None
    about: Optional[str] = None
    profile_image: Optional[str] = None
    vehicle: Vehicle
    license: License
    status: DriverStatus
    availability: bool = False
    location: Optional[DriverLocation] = None
    current_trip: Optional[CurrentTrip] = None
    rating: float = 0.0
    rating_count: int = 0
    total_trips: int = 0
    created_at: datetime
    updated_at: datetime


class DriverCreate(CamelModel):
    """Schema for registering a driver profile."""
    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    experience: Optional[int] = Field(None, ge=0)
    about: Optional[str] = None
    profile_image: Optional[str] = None
    vehicle: Vehicle
    license: License


class DriverUpdate(CamelModel):
    """Schema for partial profile updates (all fields optional)."""
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = Field(None, min_length=3)
    experience: Optional[int] = Field(None, ge=0)
    about: Optional[str] = None
    profile_image: Optional[str] = None
    vehicle: Optional[Vehicle] = None
    license: Optional[License] = None
    status: Optional[DriverStatus] = None

    class Config:
        extra = "forbid"


class LocationUpdate(CamelModel):
    """Schema for reporting a driver's position."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class AvailabilityUpdate(CamelModel):
    """Schema for toggling availability."""
    available: bool


class DriverListResponse(CamelModel):
    """List of drivers."""
    drivers: List[Driver]
    total: int
