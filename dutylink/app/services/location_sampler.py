"""
Location sampling.

Wraps a continuous position-sensor watch as a cancelable subscription that
yields a lazy, non-restartable sequence of ``LocationSample`` or
``SensorError`` events. Errors are events, not failures: the subscription
stays open and later fixes are still delivered.
"""

import asyncio
import logging
from typing import Callable, Optional, Union

from dutylink.app.core.exceptions import SensorError, SensorUnavailableError
from dutylink.app.models.enums import GpsStatus
from dutylink.app.schemas.telemetry import LocationSample
from dutylink.app.services.position_sensor import PositionSensor, SamplerOptions

logger = logging.getLogger("dutylink.sampler")

SampleEvent = Union[LocationSample, SensorError, SensorUnavailableError]

_END = object()


class SamplerSubscription:
    """
    Handle for one sensor watch.

    Consume with ``async for`` or ``run(on_sample, on_error)``. Closing is
    idempotent and nothing is delivered after ``close()`` returns. Use as an
    async context manager to guarantee the release of the sensor watch.
    """

    def __init__(self, sensor: Optional[PositionSensor], options: SamplerOptions):
        self.options = options
        self.watch_id: Optional[int] = None
        self.last_sample: Optional[LocationSample] = None
        self.last_error: Optional[Exception] = None
        self._sensor = sensor
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False
        self._ended = False
        self._status = GpsStatus.SEARCHING

    # Sensor callbacks

    def _on_position(self, sample: LocationSample):
        if self._closed:
            return
        self.last_sample = sample
        self._status = GpsStatus.ACTIVE
        self._queue.put_nowait(sample)

    def _on_error(self, error: Exception):
        if self._closed:
            return
        self._record_error(error)
        self._queue.put_nowait(error)

    def _record_error(self, error: Exception):
        self.last_error = error
        self._status = GpsStatus.ERROR
        logger.warning("GPS error: %s", error.message)

    def _finish(self):
        self._queue.put_nowait(_END)

    # Consumption

    def __aiter__(self):
        return self

    async def __anext__(self) -> SampleEvent:
        if self._closed or self._ended:
            raise StopAsyncIteration

        timeout = self.options.timeout_ms / 1000 if self.options.timeout_ms else None
        try:
            event = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            if self._closed:
                raise StopAsyncIteration
            error = SensorError(SensorError.TIMEOUT, "Timeout expired")
            self._record_error(error)
            return error

        if event is _END:
            self._ended = True
            raise StopAsyncIteration
        if self._closed:
            raise StopAsyncIteration
        return event

    async def run(
        self,
        on_sample: Callable[[LocationSample], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        """Dispatch events to callbacks until the subscription ends."""
        async for event in self:
            if isinstance(event, LocationSample):
                on_sample(event)
            elif on_error is not None:
                on_error(event)

    # Status badge

    @property
    def status(self) -> GpsStatus:
        return self._status

    @property
    def speed_kmh(self) -> Optional[int]:
        if self.last_sample is None or not self.last_sample.speed_mps:
            return None
        return round(self.last_sample.speed_mps * 3.6)

    # Lifetime

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        if self._closed:
            return
        self._closed = True
        if self.watch_id is not None and self._sensor is not None:
            self._sensor.clear_watch(self.watch_id)
            logger.debug("Cleared sensor watch %s", self.watch_id)
        self._finish()

    async def __aenter__(self) -> "SamplerSubscription":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.close()


class LocationSampler:
    """
    Produces position samples for one logical session.

    Each ``start()`` opens a fresh sensor watch; a stopped subscription is
    never restarted.
    """

    def __init__(self, sensor: Optional[PositionSensor], options: Optional[SamplerOptions] = None):
        self.sensor = sensor
        self.options = options or SamplerOptions()

    def start(self, options: Optional[SamplerOptions] = None) -> SamplerSubscription:
        options = options or self.options
        subscription = SamplerSubscription(self.sensor, options)

        if self.sensor is None or not self.sensor.available:
            error = SensorUnavailableError()
            logger.error("Location sampling disabled: %s", error.message)
            subscription._on_error(error)
            subscription._finish()
            return subscription

        subscription.watch_id = self.sensor.watch(
            subscription._on_position,
            subscription._on_error,
            options,
        )
        logger.info(
            "Sensor watch %s started (high_accuracy=%s, timeout_ms=%s, maximum_age_ms=%s)",
            subscription.watch_id, options.high_accuracy, options.timeout_ms, options.maximum_age_ms,
        )
        return subscription

    def stop(self, handle: SamplerSubscription):
        handle.close()
