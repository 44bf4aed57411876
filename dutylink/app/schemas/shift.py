"""
Shift lifecycle schemas.
"""

from pydantic import BaseModel, StrictFloat, StrictInt
from datetime import datetime
from typing import Optional, Union

from dutylink.app.models.enums import DutyState


class CheckInRequest(BaseModel):
    """Odometer is validated by the shift controller, not here; floats pass through uncoerced."""
    start_odometer: Optional[Union[StrictInt, StrictFloat, str]] = None


class CheckOutRequest(BaseModel):
    end_odometer: Optional[Union[StrictInt, StrictFloat, str]] = None


class ShiftRecordSchema(BaseModel):
    """Shift record as returned by the backend store."""
    id: int
    worker_id: int
    start_time: datetime
    start_odometer: int
    end_time: Optional[datetime] = None
    end_odometer: Optional[int] = None
    distance_km: Optional[int] = None
    duration_minutes: Optional[int] = None

    class Config:
        from_attributes = True


class ShiftTotals(BaseModel):
    """Derived closing fields."""
    distance_km: int
    duration_minutes: int


class ShiftStatusResponse(BaseModel):
    """Current duty state for the driver home screen."""
    state: DutyState
    shift: Optional[ShiftRecordSchema] = None
    elapsed_minutes: Optional[int] = None
