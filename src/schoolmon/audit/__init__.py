"""
Persistence Layer.

Storage for rooms, devices, students and settings, plus the append-only
access and telemetry logs.
"""

from schoolmon.audit.database import MonitoringDatabase, TokenCollisionError
from schoolmon.audit.models import (
    AccessEvent,
    Base,
    Device,
    MonitoringSettingsRow,
    Room,
    Student,
    TelemetryReading,
)

__all__ = [
    # Database
    "MonitoringDatabase",
    "TokenCollisionError",
    # Models
    "AccessEvent",
    "Base",
    "Device",
    "MonitoringSettingsRow",
    "Room",
    "Student",
    "TelemetryReading",
]
