"""
Emergency Alert database model.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from dutylink.app.db.session import Base
from dutylink.app.models.enums import AlertSeverity


class EmergencyAlert(Base):
    """
    Operator-issued broadcast alert.
    Only newly inserted rows with ``active`` set are pushed to drivers.
    """
    __tablename__ = "emergency_alerts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(
        Enum(AlertSeverity, values_callable=lambda e: [m.value for m in e]),
        default=AlertSeverity.INFO,
        nullable=False
    )
    active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<EmergencyAlert(id={self.id}, severity={self.severity}, title='{self.title}')>"
