"""
Emergency alert channel.

Surfaces operator broadcasts to a driver session. Delivery is latest-wins
with no persisted acknowledgment: only the newest unacknowledged alert is
shown, acknowledging clears it locally, and a re-delivered alert is shown
again. Over-notifying is preferred to missing an alert.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from dutylink.app.core.config import settings
from dutylink.app.core.exceptions import StreamError
from dutylink.app.core.reliability import ExponentialBackoff
from dutylink.app.schemas.alert import EmergencyAlertSchema

logger = logging.getLogger("dutylink.alerts")

AlertListener = Callable[[Optional[EmergencyAlertSchema]], None]


def vibrate_cue(alert: EmergencyAlertSchema, pattern: List[int] = None):
    """Default attention cue: log the vibration pattern the device should play."""
    logger.info(
        "Attention cue for alert %s (%s): vibrate %s",
        alert.id, alert.severity.value, pattern or settings.alert_vibration_pattern,
    )


class AlertChannel:
    """
    Displays the most recent active alert until it is acknowledged.

    ``start()`` subscribes to the store's alert feed; a dropped stream is
    reopened with exponential backoff. ``close()`` always releases the
    subscription.
    """

    def __init__(
        self,
        store,
        cue: Callable[[EmergencyAlertSchema], None] = vibrate_cue,
        backoff: Optional[ExponentialBackoff] = None,
    ):
        self.store = store
        self.cue = cue
        self.backoff = backoff or ExponentialBackoff(
            initial_delay=settings.alert_resubscribe_initial_delay,
            max_delay=settings.alert_resubscribe_max_delay,
        )
        self.current_alert: Optional[EmergencyAlertSchema] = None
        self._listeners: List[AlertListener] = []
        self._feed = None
        self._task: Optional[asyncio.Task] = None

    # Presentation state

    def add_listener(self, listener: AlertListener) -> Callable[[], None]:
        """Call ``listener`` with the displayed alert (or None) on every change."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def handle_alert(self, alert: EmergencyAlertSchema):
        if not alert.active:
            return
        was_idle = self.current_alert is None
        self.current_alert = alert
        logger.info("Displaying alert %s: %s", alert.id, alert.title)
        if was_idle and self.cue is not None:
            self.cue(alert)
        self._notify()

    def acknowledge(self):
        """Clear the displayed alert. The backend record is not touched."""
        if self.current_alert is None:
            return
        logger.info("Alert %s acknowledged", self.current_alert.id)
        self.current_alert = None
        self._notify()

    def _notify(self):
        for listener in list(self._listeners):
            listener(self.current_alert)

    # Stream lifetime

    async def start(self):
        """
        Subscribe and begin consuming. An unreachable stream does not fail
        the caller; the consumer keeps resubscribing with backoff.
        """
        if self._task is not None and not self._task.done():
            return
        try:
            await self._open()
        except StreamError as e:
            await self._release_feed()
            logger.warning("%s; retrying in background", e.message)
        self._task = asyncio.get_running_loop().create_task(self._consume())

    async def _open(self):
        self._feed = self.store.subscribe_alerts()
        await self._feed.open()
        logger.info("Subscribed to alert stream %s", self.store.alerts_channel)

    async def _consume(self):
        while True:
            try:
                if self._feed is None:
                    await self._open()
                async for alert in self._feed:
                    self.backoff.reset()
                    self.handle_alert(alert)
                raise StreamError("Alert stream ended")
            except StreamError as e:
                await self._release_feed()
                delay = self.backoff.next_delay()
                logger.warning("%s; resubscribing in %.1fs", e.message, delay)
                await asyncio.sleep(delay)

    async def _release_feed(self):
        feed, self._feed = self._feed, None
        if feed is not None:
            await feed.close()

    async def close(self):
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._release_feed()

    async def __aenter__(self) -> "AlertChannel":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
