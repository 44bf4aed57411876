"""
Driver Telemetry API Endpoints.

Receives throttled GPS samples from the driver app.
"""

from fastapi import APIRouter, Depends, Body, status

from dutylink.app.core.dependencies import get_current_worker, get_store
from dutylink.app.schemas.telemetry import LocationSample, TelemetryRecordResponse
from dutylink.app.services.backend_store import BackendStore

router = APIRouter(prefix="/driver", tags=["Driver - Telemetry"])


@router.post("/telemetry", response_model=TelemetryRecordResponse, status_code=status.HTTP_201_CREATED)
async def record_telemetry(
    sample: LocationSample = Body(...),
    worker_id: int = Depends(get_current_worker),
    store: BackendStore = Depends(get_store)
):
    """
    Append one GPS sample to the driver's telemetry log.

    Rate limiting happens on the device; every accepted sample is stored.
    """
    record_id = await store.insert_telemetry(worker_id, sample)
    return TelemetryRecordResponse(worker_id=worker_id, record_id=record_id, recorded=True)
