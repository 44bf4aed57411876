"""
Telemetry schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class LocationSample(BaseModel):
    """One position fix as produced by the sensor. Immutable once captured."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy_meters: float = Field(..., ge=0)
    speed_mps: Optional[float] = Field(None, ge=0)
    heading_degrees: Optional[float] = Field(None, ge=0, lt=360)
    captured_at: datetime

    class Config:
        frozen = True


class TelemetryRecordResponse(BaseModel):
    """Response after persisting a telemetry sample."""
    worker_id: int
    record_id: int
    recorded: bool
