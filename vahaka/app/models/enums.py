"""
Driver and trip enumerations.
"""

import enum


class DriverStatus(str, enum.Enum):
    """Moderation status of a driver profile."""
    PENDING = "pending"  # Awaiting document review
    APPROVED = "approved"
    REJECTED = "rejected"


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    REQUESTED = "requested"  # Rider asked for a ride, no driver yet
    ASSIGNED = "assigned"  # Driver reserved, not yet picked up
    ACTIVE = "active"  # Rider on board
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CancelledBy(str, enum.Enum):
    """Who cancelled a trip."""
    RIDER = "rider"
    DRIVER = "driver"
    SYSTEM = "system"


class Collection:
    """Document collection names."""
    DRIVERS = "drivers"
    TRIPS = "trips"
