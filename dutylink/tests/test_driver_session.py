"""
Driver session wiring tests.
"""

import asyncio
from datetime import datetime, timezone

import pytest
from sqlalchemy import select, func

from dutylink.app.core.exceptions import ResourceNotFoundError
from dutylink.app.models.enums import DutyState
from dutylink.app.models.shift_record import ShiftRecord
from dutylink.app.models.telemetry_record import TelemetryRecord
from dutylink.app.services.driver_session import DriverSession
from dutylink.app.services.position_sensor import SimulatedPositionSensor, fix


async def wait_until(predicate, timeout=1.0):
    for _ in range(int(timeout / 0.01)):
        if predicate():
            return
        await asyncio.sleep(0.01)
    raise AssertionError("condition not reached")


async def test_session_uploads_and_releases(store, driver, redis_mock, db_session):
    sensor = SimulatedPositionSensor([fix(-23.5, -46.6), fix(-23.6, -46.7)], interval=0.005, loop=True)

    async with DriverSession(driver.id, store, sensor, upload_interval=30) as session:
        assert (await session.profile()).display_name == "Ana Souza"
        assert session.shift.state == DutyState.OFF_DUTY
        await wait_until(lambda: session.uplink.uploaded == 1)
        assert redis_mock.subscribers[store.alerts_channel]

    assert sensor.active_watches == 0
    assert not redis_mock.subscribers[store.alerts_channel]
    await session.uplink.wait_idle()

    count = (await db_session.execute(
        select(func.count(TelemetryRecord.id)).where(TelemetryRecord.worker_id == driver.id)
    )).scalar()
    assert count == 1


async def test_session_resumes_open_shift(store, driver, db_session):
    db_session.add(ShiftRecord(
        worker_id=driver.id,
        start_time=datetime(2026, 3, 2, 6, 0, tzinfo=timezone.utc),
        start_odometer=10000,
    ))
    await db_session.commit()

    async with DriverSession(driver.id, store, sensor=None) as session:
        assert session.shift.state == DutyState.ON_DUTY
        assert session.shift.current_shift.start_odometer == 10000


async def test_profile_is_cached(store, driver, mocker):
    lookup = mocker.spy(store, "query_driver_profile")

    async with DriverSession(driver.id, store, sensor=None) as session:
        await session.profile()
        await session.profile()

    assert lookup.call_count == 1


async def test_sensor_errors_reach_callback(store, driver):
    errors = []

    async with DriverSession(driver.id, store, sensor=None, on_sensor_error=errors.append):
        await wait_until(lambda: len(errors) == 1)

    assert errors[0].error_code == "ERR_SENSOR_UNAVAILABLE"


async def test_unknown_worker_cannot_start(store, redis_mock):
    sensor = SimulatedPositionSensor([fix(0, 0)], interval=0.01, loop=True)

    with pytest.raises(ResourceNotFoundError):
        async with DriverSession(424242, store, sensor):
            pass

    assert sensor.active_watches == 0
    assert not redis_mock.subscribers.get(store.alerts_channel)


async def test_teardown_on_error_inside_session(store, driver, redis_mock):
    sensor = SimulatedPositionSensor([fix(0, 0)], interval=0.01, loop=True)

    with pytest.raises(RuntimeError):
        async with DriverSession(driver.id, store, sensor) as session:
            await session.shift.check_in(driver.id, 10000)
            raise RuntimeError("presentation crashed")

    assert sensor.active_watches == 0
    assert not redis_mock.subscribers[store.alerts_channel]

    # The backend still owns the open shift
    fresh = DriverSession(driver.id, store, sensor=None)
    await fresh.shift.resume(driver.id)
    assert fresh.shift.state == DutyState.ON_DUTY


async def test_session_starts_while_alert_stream_is_down(store, driver, redis_mock):
    redis_mock.fail_subscribe = True
    sensor = SimulatedPositionSensor([fix(-23.5, -46.6)], interval=0.005, loop=True)

    async with DriverSession(driver.id, store, sensor, upload_interval=30) as session:
        await wait_until(lambda: session.uplink.uploaded == 1)
        shift = await session.shift.check_in(driver.id, 10000)
        assert shift.start_odometer == 10000
        assert session.alerts.current_alert is None

    assert sensor.active_watches == 0
