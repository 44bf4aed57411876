"""
Backend store.

Append/query store with real-time push: telemetry and shift records live in
the SQL database, active emergency alerts are pushed over Redis Pub/Sub.
Every read/write failure is mapped onto the driver core error taxonomy.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

from redis.exceptions import RedisError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dutylink.app.core.config import settings
from dutylink.app.core.exceptions import OpenShiftExistsError, PersistenceError, StreamError
from dutylink.app.models.driver_profile import DriverProfile
from dutylink.app.models.emergency_alert import EmergencyAlert
from dutylink.app.models.enums import AlertSeverity
from dutylink.app.models.shift_record import ShiftRecord
from dutylink.app.models.telemetry_record import TelemetryRecord
from dutylink.app.schemas.alert import EmergencyAlertSchema
from dutylink.app.schemas.profile import DriverProfileSchema
from dutylink.app.schemas.shift import ShiftRecordSchema
from dutylink.app.schemas.telemetry import LocationSample

logger = logging.getLogger("dutylink.store")


class AlertFeed:
    """
    Subscription to the active-alert push stream.

    Async iterator of ``EmergencyAlertSchema``. Delivery is at-least-once
    and nothing published before ``open()`` is replayed.
    """

    def __init__(self, redis, channel: str):
        self._redis = redis
        self._channel = channel
        self._pubsub = None

    async def open(self) -> "AlertFeed":
        try:
            self._pubsub = self._redis.pubsub()
            await self._pubsub.subscribe(self._channel)
        except RedisError as e:
            raise StreamError(f"Could not subscribe to {self._channel}: {e}") from e
        return self

    async def __aiter__(self) -> AsyncIterator[EmergencyAlertSchema]:
        if self._pubsub is None:
            await self.open()
        try:
            async for message in self._pubsub.listen():
                if message.get("type") != "message":
                    continue
                alert = self._parse(message.get("data"))
                if alert is not None and alert.active:
                    yield alert
        except RedisError as e:
            raise StreamError(f"Alert stream dropped: {e}") from e

    @staticmethod
    def _parse(data) -> Optional[EmergencyAlertSchema]:
        try:
            return EmergencyAlertSchema.model_validate_json(data)
        except ValueError:
            logger.warning("Ignoring malformed alert payload: %r", data)
            return None

    async def close(self):
        if self._pubsub is None:
            return
        pubsub, self._pubsub = self._pubsub, None
        try:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()
        except RedisError as e:
            logger.warning("Error closing alert subscription: %s", e)


class BackendStore:
    """
    Remote system of record for shifts, telemetry, profiles and alerts.

    Bind it either to one ``session`` (request scope) or to a
    ``session_factory`` (long-lived driver session; one session per call).
    """

    def __init__(
        self,
        session: Optional[AsyncSession] = None,
        session_factory: Optional[async_sessionmaker] = None,
        redis=None,
        alerts_channel: str = None,
    ):
        if session is None and session_factory is None:
            raise ValueError("BackendStore needs a session or a session_factory")
        self._session = session
        self._session_factory = session_factory
        self._redis = redis
        self.alerts_channel = alerts_channel or settings.alerts_channel

    @asynccontextmanager
    async def _db(self) -> AsyncIterator[AsyncSession]:
        if self._session is not None:
            yield self._session
        else:
            async with self._session_factory() as session:
                yield session

    # Telemetry

    async def insert_telemetry(self, worker_id: int, sample: LocationSample) -> int:
        """Append one telemetry record; returns the server-assigned ID."""
        async with self._db() as db:
            record = TelemetryRecord(
                worker_id=worker_id,
                latitude=sample.latitude,
                longitude=sample.longitude,
                accuracy_meters=sample.accuracy_meters,
                speed_mps=sample.speed_mps,
                heading_degrees=sample.heading_degrees,
                captured_at=sample.captured_at,
            )
            try:
                db.add(record)
                await db.flush()
                record_id = record.id
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise PersistenceError("telemetry insert", str(e)) from e
            return record_id

    # Shifts

    async def query_open_shift(self, worker_id: int) -> Optional[ShiftRecordSchema]:
        """Most recent shift of the worker with no end time, if any."""
        async with self._db() as db:
            try:
                result = await db.execute(
                    select(ShiftRecord).where(
                        ShiftRecord.worker_id == worker_id,
                        ShiftRecord.end_time.is_(None)
                    ).order_by(ShiftRecord.start_time.desc()).limit(1)
                )
            except SQLAlchemyError as e:
                raise PersistenceError("open shift lookup", str(e)) from e
            shift = result.scalar_one_or_none()
            return ShiftRecordSchema.model_validate(shift) if shift else None

    async def insert_shift(self, worker_id: int, start_time: datetime, start_odometer: int) -> ShiftRecordSchema:
        """
        Open a shift.

        Raises:
            OpenShiftExistsError: the open-shift unique index rejected the row
            PersistenceError: any other backend failure
        """
        async with self._db() as db:
            shift = ShiftRecord(
                worker_id=worker_id,
                start_time=start_time,
                start_odometer=start_odometer,
            )
            try:
                db.add(shift)
                await db.commit()
                await db.refresh(shift)
            except IntegrityError as e:
                await db.rollback()
                if "ix_shift_records_open" in str(e.orig) or "shift_records.worker_id" in str(e.orig):
                    raise OpenShiftExistsError(worker_id) from e
                raise PersistenceError("shift insert", str(e)) from e
            except SQLAlchemyError as e:
                await db.rollback()
                raise PersistenceError("shift insert", str(e)) from e
            return ShiftRecordSchema.model_validate(shift)

    async def update_shift(
        self,
        record_id: int,
        end_time: datetime,
        end_odometer: int,
        distance_km: int,
        duration_minutes: int,
    ) -> bool:
        """Fill the four closing fields in one update. Returns False if no open row matched."""
        async with self._db() as db:
            try:
                result = await db.execute(
                    update(ShiftRecord).where(
                        ShiftRecord.id == record_id,
                        ShiftRecord.end_time.is_(None)
                    ).values(
                        end_time=end_time,
                        end_odometer=end_odometer,
                        distance_km=distance_km,
                        duration_minutes=duration_minutes,
                    )
                )
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise PersistenceError("shift update", str(e)) from e
            return result.rowcount > 0

    # Profiles

    async def query_driver_profile(self, worker_id: int) -> Optional[DriverProfileSchema]:
        async with self._db() as db:
            try:
                result = await db.execute(
                    select(DriverProfile).where(DriverProfile.id == worker_id)
                )
            except SQLAlchemyError as e:
                raise PersistenceError("driver profile lookup", str(e)) from e
            profile = result.scalar_one_or_none()
            return DriverProfileSchema.model_validate(profile) if profile else None

    # Alerts

    async def insert_alert(
        self,
        title: str,
        message: str,
        severity: AlertSeverity = AlertSeverity.INFO,
        active: bool = True,
    ) -> EmergencyAlertSchema:
        """
        Store an alert and push it to subscribers when active.

        Used by operator tooling; drivers only ever observe the push.
        """
        async with self._db() as db:
            alert = EmergencyAlert(title=title, message=message, severity=severity, active=active)
            try:
                db.add(alert)
                await db.commit()
                await db.refresh(alert)
            except SQLAlchemyError as e:
                await db.rollback()
                raise PersistenceError("alert insert", str(e)) from e
            payload = EmergencyAlertSchema.model_validate(alert)

        if payload.active:
            await self.publish_alert(payload)
        return payload

    async def publish_alert(self, alert: EmergencyAlertSchema) -> int:
        """Push an alert on the stream; returns the number of receivers."""
        try:
            return await self._redis.publish(self.alerts_channel, alert.model_dump_json())
        except RedisError as e:
            raise StreamError(f"Could not publish alert {alert.id}: {e}") from e

    def subscribe_alerts(self) -> AlertFeed:
        if self._redis is None:
            raise StreamError("No alert stream configured")
        return AlertFeed(self._redis, self.alerts_channel)
