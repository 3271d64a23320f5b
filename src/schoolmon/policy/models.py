"""
Policy data models.

Defines access results, reading statuses, the hardware profile and the
monitoring settings snapshot handed to every decision.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class AccessResult(str, Enum):
    """Outcome of an access decision."""

    ALLOW = "ALLOW"
    DENY = "DENY"

    def __str__(self) -> str:
        return self.value


class AccessReason(str, Enum):
    """Reason code recorded with every access decision."""

    OK = "ok"
    INACTIVE_DEVICE = "inactive_device"
    INACTIVE_STUDENT = "inactive_student"

    def __str__(self) -> str:
        return self.value


class ReadingStatus(str, Enum):
    """Alert classification of a telemetry reading."""

    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    # Rooms without any reading (overview only)
    NO_READING = "NO_READING"

    def __str__(self) -> str:
        return self.value


class DeviceType(str, Enum):
    """Device roles."""

    PORTARIA = "PORTARIA"  # entrance gate with RFID reader
    SALA = "SALA"  # room sensor


class Transport(str, Enum):
    HTTP_REST = "HTTP_REST"


class Connectivity(str, Enum):
    WIFI = "WIFI"


class SensorModel(str, Enum):
    SHT31 = "SHT31"
    SHT35 = "SHT35"


class ReaderModel(str, Enum):
    PN532 = "PN532"


HARDWARE_PROFILE_VERSION = 1

DEFAULT_SENSOR_MODEL = SensorModel.SHT31
DEFAULT_I2C_ADDRESS = "0x44"
DEFAULT_TELEMETRY_ENDPOINT = "/api/iot/telemetry"
DEFAULT_READER_MODEL = ReaderModel.PN532
DEFAULT_FREQUENCY_MHZ = 13.56
DEFAULT_ACCESS_ENDPOINT = "/api/iot/access"


@dataclass(frozen=True)
class Esp32Profile:
    connectivity: Connectivity = Connectivity.WIFI


@dataclass(frozen=True)
class TelemetryProfile:
    """Temperature/humidity sensor wiring."""

    sensor_model: SensorModel = DEFAULT_SENSOR_MODEL
    supported_sensor_models: tuple[SensorModel, ...] = tuple(SensorModel)
    i2c_address: str = DEFAULT_I2C_ADDRESS
    endpoint: str = DEFAULT_TELEMETRY_ENDPOINT


@dataclass(frozen=True)
class AccessProfile:
    """RFID reader wiring."""

    reader_model: ReaderModel = DEFAULT_READER_MODEL
    frequency_mhz: float = DEFAULT_FREQUENCY_MHZ
    endpoint: str = DEFAULT_ACCESS_ENDPOINT


@dataclass(frozen=True)
class HardwareProfile:
    """
    Canonical description of the deployed sensor/reader hardware.

    Built only through resolve_hardware_profile(); the endpoint strings are
    descriptive metadata for the firmware, not routes served here.
    """

    transport: Transport = Transport.HTTP_REST
    esp32: Esp32Profile = field(default_factory=Esp32Profile)
    telemetry: TelemetryProfile = field(default_factory=TelemetryProfile)
    access: AccessProfile = field(default_factory=AccessProfile)
    version: int = HARDWARE_PROFILE_VERSION

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON shape stored with the settings."""
        return {
            "version": self.version,
            "transport": self.transport.value,
            "esp32": {"connectivity": self.esp32.connectivity.value},
            "telemetry": {
                "sensorModel": self.telemetry.sensor_model.value,
                "supportedSensorModels": [
                    m.value for m in self.telemetry.supported_sensor_models
                ],
                "i2cAddress": self.telemetry.i2c_address,
                "endpoint": self.telemetry.endpoint,
            },
            "access": {
                "readerModel": self.access.reader_model.value,
                "frequencyMHz": self.access.frequency_mhz,
                "endpoint": self.access.endpoint,
            },
        }


@dataclass(frozen=True)
class Thresholds:
    """Temperature/humidity bands used by the evaluator."""

    temp_min: Decimal
    temp_max: Decimal
    hum_min: Decimal
    hum_max: Decimal


@dataclass(frozen=True)
class MonitoringSettings:
    """
    Snapshot of the singleton monitoring settings.

    Loaded once per request and passed explicitly into every decision;
    never mutated in place.
    """

    temp_min: Decimal
    temp_max: Decimal
    hum_min: Decimal
    hum_max: Decimal
    telemetry_interval_seconds: int
    unlock_duration_seconds: int
    allow_only_active_students: bool
    hardware_profile: HardwareProfile = field(default_factory=HardwareProfile)
    id: int | None = None

    @property
    def thresholds(self) -> Thresholds:
        return Thresholds(self.temp_min, self.temp_max, self.hum_min, self.hum_max)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for output."""
        return {
            "id": self.id,
            "temp_min": float(self.temp_min),
            "temp_max": float(self.temp_max),
            "hum_min": float(self.hum_min),
            "hum_max": float(self.hum_max),
            "telemetry_interval_seconds": self.telemetry_interval_seconds,
            "unlock_duration_seconds": self.unlock_duration_seconds,
            "allow_only_active_students": self.allow_only_active_students,
            "hardware_profile": self.hardware_profile.to_dict(),
        }


DEFAULT_SETTINGS = MonitoringSettings(
    temp_min=Decimal("20.00"),
    temp_max=Decimal("28.00"),
    hum_min=Decimal("40.00"),
    hum_max=Decimal("70.00"),
    telemetry_interval_seconds=60,
    unlock_duration_seconds=5,
    allow_only_active_students=True,
)


@dataclass(frozen=True)
class AccessMetadata:
    """Forensic context recorded verbatim with an access event."""

    card_uid: str | None = None
    reader_model: str | None = None
    frequency_mhz: float | None = None
    transport: str | None = None
    connectivity: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "card_uid": self.card_uid,
            "reader_model": self.reader_model,
            "frequency_mhz": self.frequency_mhz,
            "transport": self.transport,
            "connectivity": self.connectivity,
        }


@dataclass(frozen=True)
class TelemetryMetadata:
    """Sensor context recorded verbatim with a telemetry reading."""

    sensor_model: str | None = None
    i2c_address: str | None = None
    transport: str | None = None
    connectivity: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sensor_model": self.sensor_model,
            "i2c_address": self.i2c_address,
            "transport": self.transport,
            "connectivity": self.connectivity,
        }


@dataclass(frozen=True)
class AccessDecision:
    """
    Result of an access decision.

    unlock_duration_seconds is copied from the settings at decision time.
    """

    result: AccessResult
    reason: AccessReason
    unlock_duration_seconds: int

    @property
    def allowed(self) -> bool:
        return self.result == AccessResult.ALLOW

    def to_dict(self) -> dict[str, Any]:
        return {
            "result": self.result.value,
            "reason": self.reason.value,
            "unlock_duration_seconds": self.unlock_duration_seconds,
        }
