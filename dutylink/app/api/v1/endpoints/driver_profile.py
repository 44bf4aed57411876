"""
Driver Profile API Endpoint.
"""

from fastapi import APIRouter, Depends

from dutylink.app.core.dependencies import get_current_worker, get_store
from dutylink.app.core.exceptions import ResourceNotFoundError
from dutylink.app.schemas.profile import DriverProfileSchema
from dutylink.app.services.backend_store import BackendStore

router = APIRouter(prefix="/driver", tags=["Driver - Profile"])


@router.get("/profile", response_model=DriverProfileSchema)
async def get_profile(
    worker_id: int = Depends(get_current_worker),
    store: BackendStore = Depends(get_store)
):
    """Profile of the authenticated driver."""
    profile = await store.query_driver_profile(worker_id)
    if profile is None:
        raise ResourceNotFoundError("Driver profile", worker_id)
    return profile
