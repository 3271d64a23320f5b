"""
Telemetry ingestion.

Validates one environmental reading and appends it to the telemetry log.
Rejections are returned as results with a readable reason rather than
raised, so device-facing callers can echo them back.
"""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from schoolmon.policy.models import DeviceType, TelemetryMetadata

if TYPE_CHECKING:
    from schoolmon.audit.database import MonitoringDatabase
    from schoolmon.audit.models import Device


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestResult:
    """Outcome of a telemetry ingestion."""

    ok: bool
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"ok": self.ok}
        if self.reason is not None:
            data["reason"] = self.reason
        return data


def _is_finite_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (numbers.Real, Decimal)):
        return False
    try:
        return math.isfinite(float(value))
    except (ValueError, OverflowError):
        return False


class TelemetryIngestor:
    """Validates and stores telemetry readings."""

    def __init__(self, db: MonitoringDatabase) -> None:
        self.db = db

    def ingest(
        self,
        device: Device | None,
        room_id: int,
        temperature: float,
        humidity: float,
        measured_at: datetime,
        metadata: TelemetryMetadata | None = None,
    ) -> IngestResult:
        """
        Validate and store one reading.

        Nothing is written when validation fails. An unbound room sensor is
        bound to the room of its first accepted reading.

        Args:
            device: Reporting device
            room_id: Room the reading belongs to
            temperature: Temperature in degrees Celsius
            humidity: Relative humidity in percent
            measured_at: When the sensor measured the values
            metadata: Sensor context stored verbatim with the reading

        Returns:
            IngestResult(ok=True) or IngestResult(ok=False, reason=...)
        """
        device_id = device.id if device is not None else None
        device = self.db.get_device(device_id) if device_id is not None else None

        rejection = self._validate(device, room_id, temperature, humidity, measured_at)
        if rejection is not None:
            logger.info(
                "Telemetry rejected: device=%s room=%s: %s",
                device_id, room_id, rejection
            )
            return IngestResult(ok=False, reason=rejection)

        self.db.log_telemetry_reading(
            device_id=device.id,
            room_id=room_id,
            temperature=float(temperature),
            humidity=float(humidity),
            measured_at=measured_at,
            metadata=metadata,
            bind_device=device.room_id is None,
        )
        return IngestResult(ok=True)

    def _validate(
        self,
        device: Device | None,
        room_id: int,
        temperature: Any,
        humidity: Any,
        measured_at: Any,
    ) -> str | None:
        """Return the first rejection reason, or None if the reading is valid."""
        if device is None:
            return "Device not found."
        if not device.is_active:
            return "Device is inactive."
        if device.type != DeviceType.SALA.value:
            return "Device is not a room sensor."
        if self.db.get_active_room(room_id) is None:
            return "Room not found or inactive."
        if device.room_id is not None and device.room_id != room_id:
            return "Device is bound to a different room."
        if not _is_finite_number(temperature):
            return "Temperature must be a finite number."
        if not _is_finite_number(humidity):
            return "Humidity must be a finite number."
        if not isinstance(measured_at, datetime):
            return "Measurement time is required."
        return None
