"""
Shift Record database model.

A duty period between check-in and check-out. At most one open shift
per worker is allowed through a DB-level partial unique index.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Index
from sqlalchemy.sql import func
from dutylink.app.db.session import Base


class ShiftRecord(Base):
    """
    Shift Record model.

    Created on check-in with the start fields only; updated exactly once
    on check-out to fill the four closing fields.
    """
    __tablename__ = "shift_records"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    worker_id = Column(Integer, ForeignKey('driver_profiles.id'), nullable=False, index=True)

    # Opening
    start_time = Column(DateTime(timezone=True), nullable=False)
    start_odometer = Column(Integer, nullable=False)

    # Closing (null while the shift is open)
    end_time = Column(DateTime(timezone=True), nullable=True)
    end_odometer = Column(Integer, nullable=True)
    distance_km = Column(Integer, nullable=True)
    duration_minutes = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Unique constraint: only one open shift per worker
    __table_args__ = (
        Index('ix_shift_records_open', 'worker_id', unique=True,
              postgresql_where=end_time.is_(None),
              sqlite_where=end_time.is_(None)),
    )

    def __repr__(self):
        return f"<ShiftRecord(id={self.id}, worker_id={self.worker_id}, open={self.end_time is None})>"
