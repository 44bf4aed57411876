"""
Driver session.

Composition root for one logged-in worker. Owns the per-session state
(current shift, current alert, last upload time) and guarantees that the
sensor watch and the alert subscription are released on every exit path.
"""

import logging
from typing import Callable, Optional

from dutylink.app.core.exceptions import ResourceNotFoundError
from dutylink.app.schemas.profile import DriverProfileSchema
from dutylink.app.services.alert_channel import AlertChannel, vibrate_cue
from dutylink.app.services.location_sampler import LocationSampler, SamplerSubscription
from dutylink.app.services.position_sensor import PositionSensor, SamplerOptions
from dutylink.app.services.shift_controller import ShiftController
from dutylink.app.services.telemetry_uplink import TelemetryUplink

logger = logging.getLogger("dutylink.session")


class DriverSession:
    """
    Wires sampler, uplink, shift controller and alert channel for a worker.

    Usage::

        async with DriverSession(worker_id, store, sensor) as session:
            await session.shift.check_in(worker_id, 10000)
            ...
    """

    def __init__(
        self,
        worker_id: int,
        store,
        sensor: Optional[PositionSensor],
        sampler_options: Optional[SamplerOptions] = None,
        on_sensor_error: Optional[Callable[[Exception], None]] = None,
        alert_cue=vibrate_cue,
        upload_interval: float = None,
    ):
        self.worker_id = worker_id
        self.store = store
        self.sampler = LocationSampler(sensor, sampler_options)
        self.uplink = TelemetryUplink(
            store, worker_id, interval=upload_interval, on_sensor_error=on_sensor_error
        )
        self.shift = ShiftController(store)
        self.alerts = AlertChannel(store, cue=alert_cue)
        self.location: Optional[SamplerSubscription] = None
        self._profile: Optional[DriverProfileSchema] = None
        self._started = False

    async def profile(self) -> DriverProfileSchema:
        """Driver profile, fetched once and cached for the session."""
        if self._profile is None:
            profile = await self.store.query_driver_profile(self.worker_id)
            if profile is None:
                raise ResourceNotFoundError("Driver profile", self.worker_id)
            self._profile = profile
        return self._profile

    async def start(self):
        if self._started:
            return
        self._started = True
        try:
            await self.profile()
            await self.shift.resume(self.worker_id)
            self.location = self.sampler.start()
            self.uplink.attach(self.location)
            await self.alerts.start()
        except BaseException:
            await self.close()
            raise
        logger.info("Driver session started for worker %s (%s)", self.worker_id, self.shift.state.value)

    async def close(self):
        """Release the sensor watch and alert subscription; uploads in flight may still finish."""
        if self.location is not None:
            self.sampler.stop(self.location)
        await self.uplink.detach()
        await self.alerts.close()
        self._started = False
        logger.info("Driver session closed for worker %s", self.worker_id)

    async def __aenter__(self) -> "DriverSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
