"""
Driver Shift API Endpoints.

Drivers open and close duty shifts with odometer readings.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status

from dutylink.app.core.dependencies import get_current_worker, get_store
from dutylink.app.models.enums import DutyState
from dutylink.app.schemas.shift import (
    CheckInRequest, CheckOutRequest, ShiftRecordSchema, ShiftStatusResponse
)
from dutylink.app.services.backend_store import BackendStore
from dutylink.app.services.shift_controller import ShiftController

router = APIRouter(prefix="/driver/shift", tags=["Driver - Shift"])


@router.get("", response_model=ShiftStatusResponse)
async def get_current_shift(
    worker_id: int = Depends(get_current_worker),
    store: BackendStore = Depends(get_store)
):
    """
    Current duty state of the driver.

    Returns the open shift and the minutes elapsed since check-in, if any.
    """
    controller = ShiftController(store)
    shift = await controller.resume(worker_id)
    if shift is None:
        return ShiftStatusResponse(state=DutyState.OFF_DUTY)

    elapsed = controller.elapsed(datetime.now(timezone.utc))
    return ShiftStatusResponse(
        state=controller.state,
        shift=shift,
        elapsed_minutes=int(elapsed.total_seconds() // 60)
    )


@router.post("/check-in", response_model=ShiftRecordSchema, status_code=status.HTTP_201_CREATED)
async def check_in(
    body: CheckInRequest,
    worker_id: int = Depends(get_current_worker),
    store: BackendStore = Depends(get_store)
):
    """
    Start a shift (Driver only).

    Validates:
    - start_odometer is a positive whole number
    - Driver has no open shift
    """
    controller = ShiftController(store)
    await controller.resume(worker_id)
    return await controller.check_in(worker_id, body.start_odometer)


@router.post("/check-out", response_model=ShiftRecordSchema)
async def check_out(
    body: CheckOutRequest,
    worker_id: int = Depends(get_current_worker),
    store: BackendStore = Depends(get_store)
):
    """
    Finish the open shift (Driver only).

    Validates:
    - Driver has an open shift
    - end_odometer is greater than the shift's start_odometer

    Actions:
    - Stores end time, end odometer, distance and duration
    """
    controller = ShiftController(store)
    await controller.resume(worker_id)
    return await controller.check_out(worker_id, body.end_odometer)
