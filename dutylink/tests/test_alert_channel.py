"""
Emergency alert channel tests.

Latest-wins display, local acknowledgment, duplicate-tolerant re-delivery
and stream recovery.
"""

import asyncio

import pytest

from dutylink.app.core.reliability import ExponentialBackoff
from dutylink.app.models.enums import AlertSeverity
from dutylink.app.models.emergency_alert import EmergencyAlert
from dutylink.app.schemas.alert import EmergencyAlertSchema
from dutylink.app.services.alert_channel import AlertChannel


def make_alert(alert_id, title="Road closed", severity=AlertSeverity.WARNING, active=True):
    return EmergencyAlertSchema(
        id=alert_id, title=title, message="Avoid BR-116 km 230", severity=severity, active=active
    )


class Recorder:
    """Collects display changes and lets tests wait for the next one."""

    def __init__(self):
        self.changes = []
        self._event = asyncio.Event()

    def __call__(self, alert):
        self.changes.append(alert)
        self._event.set()

    async def next(self, timeout=1.0):
        await asyncio.wait_for(self._event.wait(), timeout)
        self._event.clear()
        return self.changes[-1]


@pytest.fixture
def cues():
    return []


@pytest.fixture
def channel(store, cues):
    return AlertChannel(
        store,
        cue=cues.append,
        backoff=ExponentialBackoff(initial_delay=0.01, max_delay=0.05),
    )


# Display rules

def test_first_alert_is_displayed_with_cue(channel, cues):
    a = make_alert(1)
    channel.handle_alert(a)

    assert channel.current_alert == a
    assert cues == [a]


def test_newer_alert_replaces_displayed(channel, cues):
    a, b = make_alert(1), make_alert(2, title="Flooding")
    channel.handle_alert(a)
    channel.handle_alert(b)

    assert channel.current_alert == b
    assert cues == [a]


def test_acknowledge_then_redelivery_displays_again(channel, cues):
    a, b = make_alert(1), make_alert(2)
    channel.handle_alert(a)
    channel.handle_alert(b)

    channel.acknowledge()
    assert channel.current_alert is None

    channel.handle_alert(a)
    assert channel.current_alert == a
    assert cues == [a, a]


def test_inactive_alert_ignored(channel, cues):
    channel.handle_alert(make_alert(1, active=False))
    assert channel.current_alert is None
    assert cues == []


def test_acknowledge_when_idle_is_noop(channel):
    recorder = Recorder()
    channel.add_listener(recorder)
    channel.acknowledge()
    assert recorder.changes == []


def test_listener_sees_every_change(channel):
    recorder = Recorder()
    remove = channel.add_listener(recorder)
    a = make_alert(1)

    channel.handle_alert(a)
    channel.acknowledge()
    remove()
    channel.handle_alert(make_alert(2))

    assert recorder.changes == [a, None]


# Stream

async def test_alerts_arrive_over_stream(channel, store, cues):
    recorder = Recorder()
    channel.add_listener(recorder)

    async with channel:
        inserted = await store.insert_alert("Storm warning", "Seek shelter", AlertSeverity.ERROR)
        shown = await recorder.next()

    assert shown.id == inserted.id
    assert shown.severity == AlertSeverity.ERROR
    assert cues == [shown]


async def test_inactive_insert_is_not_pushed(channel, store, redis_mock, db_session):
    async with channel:
        alert = await store.insert_alert("Draft", "not yet", active=False)
        await asyncio.sleep(0.01)
        assert channel.current_alert is None

    assert redis_mock.published == []
    assert await db_session.get(EmergencyAlert, alert.id) is not None


async def test_redelivered_alert_shown_after_acknowledge(channel, store):
    recorder = Recorder()
    channel.add_listener(recorder)

    async with channel:
        alert = await store.insert_alert("Road closed", "Detour via SP-021")
        await recorder.next()
        channel.acknowledge()
        await recorder.next()

        await store.publish_alert(alert)
        shown = await recorder.next()

    assert shown == alert


async def test_stream_drop_resubscribes(channel, store, redis_mock):
    recorder = Recorder()
    channel.add_listener(recorder)

    async with channel:
        (pubsub,) = redis_mock.subscribers[store.alerts_channel]
        pubsub.drop()

        for _ in range(100):
            current = redis_mock.subscribers.get(store.alerts_channel, set())
            if current and pubsub not in current:
                break
            await asyncio.sleep(0.01)

        await store.insert_alert("After reconnect", "still delivered")
        shown = await recorder.next()

    assert shown.title == "After reconnect"


async def test_failed_resubscribe_keeps_retrying(channel, store, redis_mock):
    async with channel:
        (pubsub,) = redis_mock.subscribers[store.alerts_channel]
        redis_mock.fail_subscribe = True
        pubsub.drop()
        await asyncio.sleep(0.1)
        assert not redis_mock.subscribers.get(store.alerts_channel)

        redis_mock.fail_subscribe = False
        for _ in range(100):
            if redis_mock.subscribers.get(store.alerts_channel):
                break
            await asyncio.sleep(0.01)

        assert redis_mock.subscribers.get(store.alerts_channel)


async def test_close_unsubscribes(channel, store, redis_mock):
    await channel.start()
    assert redis_mock.subscribers[store.alerts_channel]

    await channel.close()
    await channel.close()

    assert not redis_mock.subscribers[store.alerts_channel]


async def test_start_with_stream_down_retries_until_delivered(channel, store, redis_mock):
    recorder = Recorder()
    channel.add_listener(recorder)
    redis_mock.fail_subscribe = True

    async with channel:
        assert not redis_mock.subscribers.get(store.alerts_channel)
        await asyncio.sleep(0.05)

        redis_mock.fail_subscribe = False
        for _ in range(100):
            if redis_mock.subscribers.get(store.alerts_channel):
                break
            await asyncio.sleep(0.01)

        await store.insert_alert("Back online", "Stream recovered")
        shown = await recorder.next()

    assert shown.title == "Back online"
    assert not redis_mock.subscribers[store.alerts_channel]


# Backoff

def test_backoff_doubles_and_caps():
    backoff = ExponentialBackoff(initial_delay=1.0, max_delay=30.0)
    assert [backoff.next_delay() for _ in range(7)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]

    backoff.reset()
    assert backoff.next_delay() == 1.0


def test_backoff_survives_long_outage():
    backoff = ExponentialBackoff(initial_delay=1.0, max_delay=30.0)
    delays = [backoff.next_delay() for _ in range(2000)]
    assert delays[-1] == 30.0
