"""
Driver Profile database model.

Read-only projection of an authenticated worker.
"""

from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from dutylink.app.db.session import Base


class DriverProfile(Base):
    """
    Driver Profile model.

    Keyed by the worker identity carried in the access token.
    Maintained by the identity provider; this core only reads it.
    """
    __tablename__ = "driver_profiles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    display_name = Column(String(150), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<DriverProfile(id={self.id}, display_name='{self.display_name}')>"
