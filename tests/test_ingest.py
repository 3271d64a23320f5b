"""
Tests for telemetry ingestion.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from schoolmon.audit.database import MonitoringDatabase
from schoolmon.audit.models import Device, Room
from schoolmon.core.ingest import IngestResult, TelemetryIngestor
from schoolmon.core.processor import MonitoringService
from schoolmon.policy.models import TelemetryMetadata


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def ingestor(test_db: MonitoringDatabase) -> TelemetryIngestor:
    return TelemetryIngestor(test_db)


class TestTelemetryIngestor:
    """Tests for TelemetryIngestor.ingest."""

    def test_accepts_valid_reading(
        self,
        ingestor: TelemetryIngestor,
        test_db: MonitoringDatabase,
        sensor: Device,
    ) -> None:
        metadata = TelemetryMetadata(
            sensor_model="SHT35", i2c_address="0x45", transport="HTTP_REST", connectivity="WIFI"
        )
        result = ingestor.ingest(sensor, sensor.room_id, 24.5, 55.0, NOW, metadata)

        assert result == IngestResult(ok=True)
        readings, total = test_db.list_telemetry_readings()
        assert total == 1
        assert readings[0].temperature == 24.5
        assert readings[0].sensor_model == "SHT35"
        assert readings[0].i2c_address == "0x45"
        assert readings[0].to_dict()["measured_at"] == NOW.isoformat()

    def test_accepts_out_of_range_values(
        self,
        ingestor: TelemetryIngestor,
        sensor: Device,
    ) -> None:
        """Test readings outside the bands are still stored."""
        assert ingestor.ingest(sensor, sensor.room_id, 45, 95, NOW).ok is True

    @pytest.mark.parametrize(
        "temperature,humidity,reason",
        [
            (float("nan"), 50, "Temperature must be a finite number."),
            (float("inf"), 50, "Temperature must be a finite number."),
            (None, 50, "Temperature must be a finite number."),
            ("24", 50, "Temperature must be a finite number."),
            (True, 50, "Temperature must be a finite number."),
            (24, float("-inf"), "Humidity must be a finite number."),
            (24, None, "Humidity must be a finite number."),
        ],
    )
    def test_rejects_non_finite_values(
        self,
        ingestor: TelemetryIngestor,
        test_db: MonitoringDatabase,
        sensor: Device,
        temperature,
        humidity,
        reason: str,
    ) -> None:
        result = ingestor.ingest(sensor, sensor.room_id, temperature, humidity, NOW)

        assert result.ok is False
        assert result.reason == reason
        assert test_db.list_telemetry_readings()[1] == 0

    def test_rejects_missing_device(
        self,
        ingestor: TelemetryIngestor,
        room: Room,
    ) -> None:
        assert ingestor.ingest(None, room.id, 24, 50, NOW).reason == "Device not found."
        assert ingestor.ingest(Device(id=999), room.id, 24, 50, NOW).reason == "Device not found."

    def test_rejects_inactive_device(
        self,
        ingestor: TelemetryIngestor,
        service: MonitoringService,
        room: Room,
    ) -> None:
        device = service.identity.create_device("Off", "SALA", room_id=room.id, is_active=False)

        result = ingestor.ingest(device, room.id, 24, 50, NOW)
        assert result.reason == "Device is inactive."

    def test_rejects_entrance_device(
        self,
        ingestor: TelemetryIngestor,
        gate: Device,
        room: Room,
    ) -> None:
        result = ingestor.ingest(gate, room.id, 24, 50, NOW)
        assert result.reason == "Device is not a room sensor."

    def test_rejects_missing_or_inactive_room(
        self,
        ingestor: TelemetryIngestor,
        service: MonitoringService,
        inactive_room: Room,
    ) -> None:
        device = service.identity.create_device("Loose", "SALA")

        assert ingestor.ingest(device, 999, 24, 50, NOW).reason == "Room not found or inactive."
        assert (
            ingestor.ingest(device, inactive_room.id, 24, 50, NOW).reason
            == "Room not found or inactive."
        )

    def test_rejects_other_room(
        self,
        ingestor: TelemetryIngestor,
        test_db: MonitoringDatabase,
        sensor: Device,
    ) -> None:
        other = test_db.add_room("Sala 202")

        result = ingestor.ingest(sensor, other.id, 24, 50, NOW)
        assert result.reason == "Device is bound to a different room."

    def test_binds_unbound_sensor(
        self,
        ingestor: TelemetryIngestor,
        service: MonitoringService,
        test_db: MonitoringDatabase,
        room: Room,
    ) -> None:
        device = service.identity.create_device("Loose", "SALA")

        assert ingestor.ingest(device, room.id, 24, 50, NOW).ok is True
        assert test_db.get_device(device.id).room_id == room.id

    def test_result_to_dict(self) -> None:
        assert IngestResult(ok=True).to_dict() == {"ok": True}
        assert IngestResult(ok=False, reason="x").to_dict() == {"ok": False, "reason": "x"}

    def test_accepts_decimal_values(
        self,
        ingestor: TelemetryIngestor,
        test_db: MonitoringDatabase,
        sensor: Device,
    ) -> None:
        result = ingestor.ingest(sensor, sensor.room_id, Decimal("24.5"), Decimal("50"), NOW)

        assert result.ok is True
        reading = test_db.get_latest_reading(sensor.room_id)
        assert reading.temperature == 24.5
        assert reading.humidity == 50.0

    @pytest.mark.parametrize("value", [Decimal("NaN"), Decimal("sNaN"), Decimal("Infinity"), 10**400])
    def test_rejects_non_finite_numeric_types(
        self,
        ingestor: TelemetryIngestor,
        sensor: Device,
        value,
    ) -> None:
        result = ingestor.ingest(sensor, sensor.room_id, value, 50, NOW)
        assert result.reason == "Temperature must be a finite number."

    @pytest.mark.parametrize("measured_at", [None, "2026-03-02T09:00:00Z"])
    def test_rejects_missing_measurement_time(
        self,
        ingestor: TelemetryIngestor,
        service: MonitoringService,
        test_db: MonitoringDatabase,
        room: Room,
        measured_at,
    ) -> None:
        """Test a rejected reading leaves an unbound sensor unbound."""
        device = service.identity.create_device("Loose", "SALA")

        result = ingestor.ingest(device, room.id, 24, 50, measured_at)

        assert result == IngestResult(ok=False, reason="Measurement time is required.")
        assert test_db.get_device(device.id).room_id is None
        assert test_db.list_telemetry_readings()[1] == 0
