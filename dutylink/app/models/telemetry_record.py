"""
Telemetry Record database model.

Append-only GPS log of a driver's position while the app is active.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Index
from sqlalchemy.sql import func
from dutylink.app.db.session import Base


class TelemetryRecord(Base):
    """
    Telemetry Record model.

    One throttled position sample. Rows are never updated or deleted;
    ordering for one worker is by ``captured_at``.
    """
    __tablename__ = "telemetry_records"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    worker_id = Column(Integer, ForeignKey('driver_profiles.id'), nullable=False)

    # GPS fix
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy_meters = Column(Float, nullable=False)
    speed_mps = Column(Float, nullable=True)  # Null when the sensor cannot tell
    heading_degrees = Column(Float, nullable=True)

    # Timing
    captured_at = Column(DateTime(timezone=True), nullable=False)  # When the sensor produced the fix
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_telemetry_records_worker_captured', 'worker_id', 'captured_at'),
    )

    def __repr__(self):
        return f"<TelemetryRecord(worker_id={self.worker_id}, lat={self.latitude}, lng={self.longitude})>"
