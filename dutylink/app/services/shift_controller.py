"""
Shift controller.

Duty-shift state machine for one driver session: OFF_DUTY -> ON_DUTY on
check-in, back to OFF_DUTY on check-out. The backend is authoritative for
whether a worker is on duty; the controller only keeps the current shift
of its own session.
"""

import asyncio
import re
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from dutylink.app.core.exceptions import (
    OpenShiftExistsError,
    PersistenceError,
    ShiftStateError,
    ShiftValidationError,
)
from dutylink.app.models.enums import DutyState
from dutylink.app.schemas.shift import ShiftRecordSchema, ShiftTotals

logger = logging.getLogger("dutylink.shift")


def _utc(value: datetime) -> datetime:
    """Treat naive datetimes coming back from the store as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


_WHOLE_NUMBER = re.compile(r"-?[0-9]+")


def parse_odometer(value, field: str) -> int:
    """
    Coerce an odometer reading to an int.

    Accepts ints and strings of digits (form input). Booleans, floats and
    anything else are rejected.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ShiftValidationError(f"{field} is required", field=field)
    if isinstance(value, bool):
        raise ShiftValidationError(f"{field} must be a whole number", field=field)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and _WHOLE_NUMBER.fullmatch(value.strip()):
        return int(value.strip())
    raise ShiftValidationError(f"{field} must be a whole number", field=field, details={"value": str(value)})


def compute_shift_totals(
    start_at: datetime,
    end_at: datetime,
    start_odometer: int,
    end_odometer: int,
) -> ShiftTotals:
    """Distance in km and duration in whole minutes, rounded down."""
    elapsed = _utc(end_at) - _utc(start_at)
    return ShiftTotals(
        distance_km=end_odometer - start_odometer,
        duration_minutes=int(elapsed.total_seconds() // 60),
    )


class ShiftController:
    """
    Opens, tracks and closes a driver's shift.

    Every backend failure leaves ``state`` and ``current_shift`` exactly as
    they were, so the caller can simply retry. Calls on one controller are
    serialized.
    """

    def __init__(self, store, clock: Callable[[], datetime] = None):
        self.store = store
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.current_shift: Optional[ShiftRecordSchema] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> DutyState:
        return DutyState.ON_DUTY if self.current_shift is not None else DutyState.OFF_DUTY

    async def resume(self, worker_id: int) -> Optional[ShiftRecordSchema]:
        """Adopt the worker's open shift from the backend, if there is one."""
        async with self._lock:
            shift = await self.store.query_open_shift(worker_id)
            self.current_shift = shift
            if shift is not None:
                logger.info("Resumed open shift %s for worker %s", shift.id, worker_id)
            return shift

    async def check_in(self, worker_id: int, start_odometer) -> ShiftRecordSchema:
        """
        Open a shift for ``worker_id``.

        Raises:
            ShiftStateError: this session is already on duty
            ShiftValidationError: start odometer is not a positive integer
            OpenShiftExistsError: the backend already has an open shift
            PersistenceError: the backend could not be reached
        """
        async with self._lock:
            if self.current_shift is not None:
                raise ShiftStateError("Shift already started", state=self.state.value)

            odometer = parse_odometer(start_odometer, "start_odometer")
            if odometer <= 0:
                raise ShiftValidationError(
                    "start_odometer must be a positive number",
                    field="start_odometer",
                    details={"minimum": 1},
                )

            existing = await self.store.query_open_shift(worker_id)
            if existing is not None:
                raise OpenShiftExistsError(worker_id)

            shift = await self.store.insert_shift(worker_id, self.clock(), odometer)
            self.current_shift = shift
            logger.info("Worker %s checked in (shift %s, odometer %s)", worker_id, shift.id, odometer)
            return shift

    async def check_out(self, worker_id: int, end_odometer) -> ShiftRecordSchema:
        """
        Close the open shift.

        Raises:
            ShiftStateError: no open shift in this session
            ShiftValidationError: end odometer does not exceed the start reading
            PersistenceError: the backend could not store the closing fields
        """
        async with self._lock:
            shift = self.current_shift
            if shift is None:
                raise ShiftStateError("No open shift to finish", state=self.state.value)
            if shift.worker_id != worker_id:
                raise ShiftStateError("Open shift belongs to another worker", state=self.state.value)

            odometer = parse_odometer(end_odometer, "end_odometer")
            if odometer <= shift.start_odometer:
                raise ShiftValidationError(
                    f"end_odometer must be greater than {shift.start_odometer}",
                    field="end_odometer",
                    details={"minimum": shift.start_odometer},
                )

            end_time = self.clock()
            totals = compute_shift_totals(shift.start_time, end_time, shift.start_odometer, odometer)
            updated = await self.store.update_shift(
                shift.id,
                end_time,
                odometer,
                totals.distance_km,
                totals.duration_minutes,
            )
            if not updated:
                raise PersistenceError("shift update", f"shift {shift.id} is no longer open")

            closed = shift.model_copy(update={
                "end_time": end_time,
                "end_odometer": odometer,
                "distance_km": totals.distance_km,
                "duration_minutes": totals.duration_minutes,
            })
            self.current_shift = None
            logger.info(
                "Worker %s checked out (shift %s, %s km, %s min)",
                worker_id, shift.id, totals.distance_km, totals.duration_minutes,
            )
            return closed

    def elapsed(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        """Live time on duty; never persisted."""
        if self.current_shift is None:
            return None
        return _utc(now or self.clock()) - _utc(self.current_shift.start_time)
