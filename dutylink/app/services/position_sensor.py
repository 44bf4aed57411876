"""
Position sensor collaborators.

The device side of location sampling: a subscribe/cancel pair yielding
position-or-error callbacks, parameterized by accuracy mode, timeout and
maximum cached age.
"""

import asyncio
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Union

from dutylink.app.core.config import settings
from dutylink.app.core.exceptions import SensorError, SensorUnavailableError
from dutylink.app.schemas.telemetry import LocationSample

logger = logging.getLogger("dutylink.sensor")

PositionCallback = Callable[[LocationSample], None]
ErrorCallback = Callable[[SensorError], None]


@dataclass(frozen=True)
class SamplerOptions:
    """Watch options handed to the sensor."""
    high_accuracy: bool = settings.sensor_high_accuracy
    timeout_ms: int = settings.sensor_timeout_ms
    maximum_age_ms: int = settings.sensor_maximum_age_ms


class PositionSensor(ABC):
    """Device positioning capability."""

    @property
    def available(self) -> bool:
        return True

    @abstractmethod
    def watch(self, on_position: PositionCallback, on_error: ErrorCallback, options: SamplerOptions) -> int:
        """Start delivering updates; returns a watch ID."""

    @abstractmethod
    def clear_watch(self, watch_id: int) -> None:
        """Stop delivering updates for ``watch_id``. Unknown IDs are ignored."""


class SimulatedPositionSensor(PositionSensor):
    """
    Replays a scripted list of fixes and errors on the event loop.

    Each script item is delivered ``interval`` seconds after the previous
    one, to every active watch. With ``loop=True`` the script restarts at
    the end, otherwise the watch falls silent.
    """

    def __init__(
        self,
        script: Iterable[Union[LocationSample, SensorError]],
        interval: float = 1.0,
        loop: bool = False,
    ):
        self.script: List[Union[LocationSample, SensorError]] = list(script)
        self.interval = interval
        self.loop = loop
        self._ids = itertools.count(1)
        self._tasks: Dict[int, asyncio.Task] = {}
        self.last_options: Optional[SamplerOptions] = None

    def watch(self, on_position: PositionCallback, on_error: ErrorCallback, options: SamplerOptions) -> int:
        watch_id = next(self._ids)
        self.last_options = options
        self._tasks[watch_id] = asyncio.get_running_loop().create_task(
            self._replay(on_position, on_error)
        )
        logger.debug("Simulated watch %s started (%s items)", watch_id, len(self.script))
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        task = self._tasks.pop(watch_id, None)
        if task is not None:
            task.cancel()

    @property
    def active_watches(self) -> int:
        return len(self._tasks)

    async def _replay(self, on_position: PositionCallback, on_error: ErrorCallback):
        if not self.script:
            return
        while True:
            for item in self.script:
                await asyncio.sleep(self.interval)
                if isinstance(item, SensorError):
                    on_error(item)
                else:
                    on_position(item)
            if not self.loop:
                return


class UnavailablePositionSensor(PositionSensor):
    """Stand-in for a device with no positioning hardware."""

    @property
    def available(self) -> bool:
        return False

    def watch(self, on_position: PositionCallback, on_error: ErrorCallback, options: SamplerOptions) -> int:
        raise SensorUnavailableError()

    def clear_watch(self, watch_id: int) -> None:
        return None


def fix(latitude: float, longitude: float, accuracy: float = 5.0,
        speed: Optional[float] = None, heading: Optional[float] = None,
        captured_at: Optional[datetime] = None) -> LocationSample:
    """Shorthand for building scripted samples."""
    return LocationSample(
        latitude=latitude,
        longitude=longitude,
        accuracy_meters=accuracy,
        speed_mps=speed,
        heading_degrees=heading,
        captured_at=captured_at or datetime.now(timezone.utc),
    )
