"""
Driver core enumerations.
"""

import enum


class DutyState(str, enum.Enum):
    """
    Duty state of one driver session.

    States:
        OFF_DUTY: No open shift (initial state)
        ON_DUTY: An open shift is being tracked
    """
    OFF_DUTY = "OFF_DUTY"
    ON_DUTY = "ON_DUTY"


class AlertSeverity(str, enum.Enum):
    """Severity of an operator-issued emergency alert."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class GpsStatus(str, enum.Enum):
    """Position badge shown while sampling."""
    SEARCHING = "SEARCHING"  # No fix yet
    ACTIVE = "ACTIVE"  # Last event was a fix
    ERROR = "ERROR"  # Last event was a sensor error
