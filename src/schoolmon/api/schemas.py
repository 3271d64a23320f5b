"""
Pydantic schemas for API request/response validation.

Device-facing payloads for the IoT endpoints and the admin settings view.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

from schoolmon.policy.models import AccessReason, AccessResult, DeviceType


# ============================================================================
# IoT Schemas
# ============================================================================


class AccessEventRequest(BaseModel):
    """RFID read reported by an entrance device."""

    student_id: int = Field(..., ge=1)
    card_uid: str | None = Field(None, pattern=r"^[0-9A-Fa-f]{4,32}$")
    occurred_at: datetime | None = None

    # Reader metadata; missing values are filled from the hardware profile
    reader_model: str | None = Field(None, max_length=16)
    frequency_mhz: float | None = Field(None, gt=0)
    transport: str | None = Field(None, max_length=16)
    connectivity: str | None = Field(None, max_length=16)


class AccessEventResponse(BaseModel):
    """Access decision returned to the device."""

    result: AccessResult
    reason: AccessReason
    unlock_duration_seconds: int


class TelemetryRequest(BaseModel):
    """Sensor reading reported by a room device."""

    room_id: int
    # Left optional so the ingestor reports missing values as rejections
    temperature: float | None = None
    humidity: float | None = None
    measured_at: datetime | None = None

    sensor_model: str | None = Field(None, max_length=16)
    i2c_address: str | None = Field(None, max_length=4)


class TelemetryResponse(BaseModel):
    """Accepted telemetry acknowledgement."""

    status: str = "OK"


# ============================================================================
# Settings Schemas
# ============================================================================


class MonitoringSettingsUpdate(BaseModel):
    """Partial update of the monitoring settings."""

    temp_min: float | None = None
    temp_max: float | None = None
    hum_min: float | None = None
    hum_max: float | None = None
    telemetry_interval_seconds: int | None = Field(None, ge=1)
    unlock_duration_seconds: int | None = Field(None, ge=1)
    allow_only_active_students: bool | None = None
    hardware_profile: dict[str, Any] | None = None

    @model_validator(mode="after")
    def check_bands(self) -> MonitoringSettingsUpdate:
        """Reject bands that are empty when both bounds are given."""
        if (
            self.temp_min is not None
            and self.temp_max is not None
            and self.temp_min >= self.temp_max
        ):
            raise ValueError("temp_min must be lower than temp_max")
        if (
            self.hum_min is not None
            and self.hum_max is not None
            and self.hum_min >= self.hum_max
        ):
            raise ValueError("hum_min must be lower than hum_max")
        return self


class MonitoringSettingsResponse(BaseModel):
    """Current monitoring settings."""

    id: int | None = None
    temp_min: float
    temp_max: float
    hum_min: float
    hum_max: float
    telemetry_interval_seconds: int
    unlock_duration_seconds: int
    allow_only_active_students: bool
    hardware_profile: dict[str, Any]


# ============================================================================
# Common Schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Error response model."""

    error: str
    field: str | None = None
    issues: list[dict[str, Any]] | None = None


class HealthCheck(BaseModel):
    """Health check response."""

    status: str = "healthy"
    version: str
    uptime_seconds: float
    database_connected: bool


# ============================================================================
# Monitoring Admin Schemas
# ============================================================================


class RoomCreate(BaseModel):
    """New room."""

    name: str = Field(..., min_length=1, max_length=128)
    location: str | None = Field(None, max_length=256)
    is_active: bool = True


class DeviceCreate(BaseModel):
    """New device; a token is issued on creation."""

    name: str = Field(..., min_length=1, max_length=128)
    type: DeviceType
    room_id: int | None = Field(None, ge=1)
    is_active: bool = True


class DeviceUpdate(BaseModel):
    """
    Partial device update.

    An explicit null room_id unbinds the device; an omitted one keeps it.
    """

    name: str | None = Field(None, min_length=1, max_length=128)
    type: DeviceType | None = None
    room_id: int | None = Field(None, ge=1)
    is_active: bool | None = None
    regenerate_token: bool = False


class PaginatedResponse(BaseModel):
    """Paginated list response."""

    items: list[dict[str, Any]]
    total: int
    page: int = 1
    per_page: int = 20
