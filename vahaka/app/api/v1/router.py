"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from vahaka.app.api.v1.endpoints import drivers, trips

router = APIRouter()

router.include_router(drivers.router)
router.include_router(trips.router)
