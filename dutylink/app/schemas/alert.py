"""
Emergency alert schemas.
"""

from pydantic import BaseModel

from dutylink.app.models.enums import AlertSeverity


class EmergencyAlertSchema(BaseModel):
    """Alert payload pushed on the alert stream."""
    id: int
    title: str
    message: str
    severity: AlertSeverity = AlertSeverity.INFO
    active: bool = True

    class Config:
        from_attributes = True
