"""
Telemetry uplink.

Rate-limits position samples and persists the accepted ones to the
append-only telemetry log. This is a best-effort downsample, not a durable
buffer: throttled samples are dropped and failed uploads are only logged.
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Set

from dutylink.app.core.config import settings
from dutylink.app.core.exceptions import AppException
from dutylink.app.schemas.telemetry import LocationSample
from dutylink.app.services.location_sampler import SamplerSubscription

logger = logging.getLogger("dutylink.telemetry")


class TelemetryUplink:
    """
    Throttled, fire-and-forget persistence of samples for one worker session.

    ``last_upload_at`` starts at the epoch. A sample is uploaded only when at
    least ``interval`` seconds have passed since the last successful upload
    and no other upload is in flight. Failures leave ``last_upload_at``
    untouched so the next sample is retried straight away.
    """

    def __init__(
        self,
        store,
        worker_id: int,
        interval: float = None,
        clock: Callable[[], float] = time.time,
        on_sensor_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.store = store
        self.worker_id = worker_id
        self.interval = settings.telemetry_upload_interval_seconds if interval is None else interval
        self.clock = clock
        self.on_sensor_error = on_sensor_error
        self.last_upload_at: float = 0.0
        self.uploaded = 0
        self.failed = 0
        self._in_flight: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._consumer: Optional[asyncio.Task] = None

    def submit(self, sample: LocationSample) -> bool:
        """
        Offer one sample. Returns True if an upload was scheduled.

        Never blocks and never raises.
        """
        now = self.clock()
        if now - self.last_upload_at < self.interval:
            return False
        if self._in_flight is not None and not self._in_flight.done():
            return False

        task = asyncio.get_running_loop().create_task(self._upload(sample, now))
        self._in_flight = task
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return True

    async def _upload(self, sample: LocationSample, now: float):
        try:
            record_id = await self.store.insert_telemetry(self.worker_id, sample)
        except AppException as e:
            self.failed += 1
            logger.warning("Failed to sync GPS for worker %s: %s (%s)", self.worker_id, e.message, e.details)
            return
        except Exception:
            self.failed += 1
            logger.exception("Failed to sync GPS for worker %s", self.worker_id)
            return
        self.last_upload_at = now
        self.uploaded += 1
        logger.debug("GPS synced for worker %s as record %s", self.worker_id, record_id)

    # Sampler wiring

    def attach(self, subscription: SamplerSubscription) -> asyncio.Task:
        """Consume ``subscription`` in the background until it ends or ``detach()``."""
        if self._consumer is not None and not self._consumer.done():
            raise RuntimeError("TelemetryUplink is already attached to a subscription")
        self._consumer = asyncio.get_running_loop().create_task(
            subscription.run(self.submit, self._sensor_error)
        )
        return self._consumer

    def _sensor_error(self, error: Exception):
        if self.on_sensor_error is not None:
            self.on_sensor_error(error)

    async def detach(self):
        """Stop consuming samples. In-flight uploads are left to finish."""
        consumer, self._consumer = self._consumer, None
        if consumer is None:
            return
        consumer.cancel()
        try:
            await consumer
        except asyncio.CancelledError:
            pass

    async def wait_idle(self):
        """Wait for in-flight uploads to complete."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
