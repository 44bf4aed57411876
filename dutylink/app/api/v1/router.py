"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from dutylink.app.api.v1.endpoints import driver_profile, driver_shift, driver_telemetry

router = APIRouter()

router.include_router(driver_profile.router)
router.include_router(driver_shift.router)
router.include_router(driver_telemetry.router)
