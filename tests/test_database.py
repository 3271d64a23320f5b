"""
Tests for the monitoring database module.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DatabaseError, IntegrityError

from schoolmon.audit.database import MonitoringDatabase, as_utc
from schoolmon.audit.models import Device, Room, Student
from schoolmon.errors import ConflictError, InUseError, NotFoundError
from schoolmon.policy.models import (
    DEFAULT_SETTINGS,
    AccessReason,
    AccessResult,
    HardwareProfile,
    SensorModel,
    TelemetryMetadata,
)


NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class TestMonitoringDatabase:
    """Tests for MonitoringDatabase setup."""

    def test_create_database(self, temp_dir: Path) -> None:
        """Test database creation."""
        db_path = temp_dir / "sub" / "test.db"
        db = MonitoringDatabase(db_path)

        assert db_path.exists()
        db.close()

    def test_reopen_existing(self, temp_dir: Path) -> None:
        """Test reopening keeps data and re-creates triggers idempotently."""
        db_path = temp_dir / "test.db"
        db = MonitoringDatabase(db_path)
        db.add_room("Sala 1")
        db.close()

        db = MonitoringDatabase(db_path)
        assert len(db.list_rooms()) == 1
        db.close()

    def test_as_utc(self) -> None:
        naive = datetime(2026, 1, 1, 12, 0)
        assert as_utc(naive) == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert as_utc(None) is None


class TestSettings:
    """Tests for the singleton settings row."""

    def test_defaults_created_on_first_read(self, test_db: MonitoringDatabase) -> None:
        settings = test_db.get_settings()

        assert settings.id is not None
        assert settings.temp_min == Decimal("20.00")
        assert settings.temp_max == Decimal("28.00")
        assert settings.hum_min == Decimal("40.00")
        assert settings.hum_max == Decimal("70.00")
        assert settings.telemetry_interval_seconds == 60
        assert settings.unlock_duration_seconds == 5
        assert settings.allow_only_active_students is True
        assert settings.hardware_profile == HardwareProfile()

    def test_single_row(self, test_db: MonitoringDatabase) -> None:
        first = test_db.get_settings()
        second = test_db.get_settings()

        assert first.id == second.id

    def test_update_settings(self, test_db: MonitoringDatabase) -> None:
        profile = replace(
            HardwareProfile(),
            telemetry=replace(HardwareProfile().telemetry, sensor_model=SensorModel.SHT35),
        )
        updated = test_db.update_settings(
            replace(DEFAULT_SETTINGS, unlock_duration_seconds=9, hardware_profile=profile)
        )

        assert updated.unlock_duration_seconds == 9
        assert test_db.get_settings().hardware_profile.telemetry.sensor_model == SensorModel.SHT35

    def test_corrupt_stored_profile_resolves(self, test_db: MonitoringDatabase) -> None:
        """Test a malformed stored profile never breaks settings reads."""
        test_db.get_settings()
        with test_db.engine.connect() as conn:
            conn.execute(text("UPDATE monitoring_settings SET hardware_profile = '\"garbage\"'"))
            conn.commit()

        assert test_db.get_settings().hardware_profile == HardwareProfile()


class TestRoomsAndStudents:
    """Tests for room and student records."""

    def test_add_and_list_rooms(self, test_db: MonitoringDatabase) -> None:
        test_db.add_room("Sala B")
        test_db.add_room("Sala A")
        test_db.add_room("Sala C", is_active=False)

        assert [r.name for r in test_db.list_rooms()] == ["Sala A", "Sala B", "Sala C"]
        assert len(test_db.list_rooms(active_only=True)) == 2
        assert test_db.count_active_rooms() == 2

    def test_get_active_room(self, test_db: MonitoringDatabase, room: Room, inactive_room: Room) -> None:
        assert test_db.get_active_room(room.id).id == room.id
        assert test_db.get_active_room(inactive_room.id) is None
        assert test_db.get_room(inactive_room.id) is not None

    def test_update_room(self, test_db: MonitoringDatabase, room: Room) -> None:
        updated = test_db.update_room(room.id, "Sala 102", is_active=False)

        assert updated.name == "Sala 102"
        assert updated.is_active is False

        with pytest.raises(NotFoundError):
            test_db.update_room(999, "Ghost")

    def test_delete_unused_room(self, test_db: MonitoringDatabase, room: Room) -> None:
        test_db.delete_room(room.id)
        assert test_db.get_room(room.id) is None

    def test_delete_room_with_device(self, test_db: MonitoringDatabase, sensor: Device) -> None:
        with pytest.raises(InUseError):
            test_db.delete_room(sensor.room_id)

        # The device keeps its binding
        assert test_db.get_device(sensor.id).room_id is not None

    def test_delete_missing_room(self, test_db: MonitoringDatabase) -> None:
        with pytest.raises(NotFoundError):
            test_db.delete_room(999)

    def test_students(self, test_db: MonitoringDatabase) -> None:
        student = test_db.add_student("Carla", student_id=77)

        assert test_db.get_student(77).name == "Carla"
        assert test_db.set_student_active(student.id, False) is True
        assert test_db.get_student(77).is_active is False
        assert test_db.set_student_active(999, False) is False
        assert test_db.count_students() == 1

    def test_duplicate_student_id(self, test_db: MonitoringDatabase) -> None:
        test_db.add_student("Carla", student_id=77)

        with pytest.raises(ConflictError):
            test_db.add_student("Duda", student_id=77)

        assert test_db.get_student(77).name == "Carla"


class TestDevices:
    """Tests for device records."""

    def test_get_by_token(self, test_db: MonitoringDatabase, gate: Device) -> None:
        assert test_db.get_device_by_token(gate.token).id == gate.id
        assert test_db.get_device_by_token("dev-unknown") is None

    def test_list_by_type(self, test_db: MonitoringDatabase, gate: Device, sensor: Device) -> None:
        assert [d.id for d in test_db.list_devices(device_type="PORTARIA")] == [gate.id]
        assert len(test_db.list_devices()) == 2

    def test_to_dict_hides_token(self, gate: Device) -> None:
        assert "token" not in gate.to_dict()
        assert gate.to_dict(include_token=True)["token"] == gate.token

    def test_delete_unused_device(self, test_db: MonitoringDatabase, gate: Device) -> None:
        test_db.delete_device(gate.id)
        assert test_db.get_device(gate.id) is None

    def test_delete_device_with_events(
        self,
        test_db: MonitoringDatabase,
        gate: Device,
        active_student: Student,
    ) -> None:
        test_db.log_access_event(gate.id, active_student.id, AccessResult.ALLOW, AccessReason.OK, NOW)

        with pytest.raises(InUseError):
            test_db.delete_device(gate.id)
        assert test_db.get_device(gate.id) is not None

    def test_delete_missing_device(self, test_db: MonitoringDatabase) -> None:
        with pytest.raises(NotFoundError):
            test_db.delete_device(999)

    def test_bind_with_first_reading(self, test_db: MonitoringDatabase, room: Room) -> None:
        device = test_db.add_device("Loose sensor", "SALA", token="dev-loose")
        test_db.log_telemetry_reading(device.id, room.id, 24.0, 50.0, NOW, bind_device=True)

        assert test_db.get_device(device.id).room_id == room.id

    def test_bind_rolled_back_with_failed_reading(
        self, test_db: MonitoringDatabase, room: Room
    ) -> None:
        device = test_db.add_device("Loose sensor", "SALA", token="dev-loose")

        with pytest.raises(IntegrityError):
            test_db.log_telemetry_reading(device.id, room.id, 24.0, 50.0, None, bind_device=True)

        assert test_db.get_device(device.id).room_id is None
        assert test_db.list_telemetry_readings()[1] == 0

    def test_bind_missing_device(self, test_db: MonitoringDatabase, room: Room) -> None:
        with pytest.raises(NotFoundError):
            test_db.log_telemetry_reading(999, room.id, 24.0, 50.0, NOW, bind_device=True)


class TestAccessEvents:
    """Tests for the append-only access log."""

    def test_list_with_filters(
        self,
        test_db: MonitoringDatabase,
        gate: Device,
        active_student: Student,
        inactive_student: Student,
    ) -> None:
        test_db.log_access_event(gate.id, active_student.id, "ALLOW", "ok", NOW)
        test_db.log_access_event(
            gate.id, inactive_student.id, "DENY", "inactive_student", NOW + timedelta(minutes=1)
        )

        events, total = test_db.list_access_events()
        assert total == 2
        # Newest first
        assert events[0].result == "DENY"

        denied, total = test_db.list_access_events(filters={"result": "DENY"})
        assert total == 1
        assert denied[0].student_id == inactive_student.id

        _, total = test_db.list_access_events(filters={"student_id": active_student.id})
        assert total == 1

        _, total = test_db.list_access_events(filters={"since": NOW + timedelta(seconds=30)})
        assert total == 1

    def test_pagination(
        self,
        test_db: MonitoringDatabase,
        gate: Device,
        active_student: Student,
    ) -> None:
        for i in range(5):
            test_db.log_access_event(
                gate.id, active_student.id, "ALLOW", "ok", NOW + timedelta(minutes=i)
            )

        events, total = test_db.list_access_events(offset=1, limit=2)
        assert total == 5
        assert len(events) == 2

    def test_last_event_time(
        self,
        test_db: MonitoringDatabase,
        gate: Device,
        active_student: Student,
    ) -> None:
        assert test_db.get_last_access_event_time(gate.id) is None

        event = test_db.log_access_event(gate.id, active_student.id, "ALLOW", "ok", NOW)
        last = test_db.get_last_access_event_time(gate.id)

        assert last.tzinfo is not None
        assert last == as_utc(event.created_at)

    def test_update_rejected(
        self,
        test_db: MonitoringDatabase,
        gate: Device,
        active_student: Student,
    ) -> None:
        test_db.log_access_event(gate.id, active_student.id, "DENY", "inactive_student", NOW)

        with pytest.raises(DatabaseError):
            with test_db.engine.connect() as conn:
                conn.execute(text("UPDATE access_events SET result = 'ALLOW'"))
                conn.commit()

        events, _ = test_db.list_access_events()
        assert events[0].result == "DENY"

    def test_delete_rejected(
        self,
        test_db: MonitoringDatabase,
        gate: Device,
        active_student: Student,
    ) -> None:
        test_db.log_access_event(gate.id, active_student.id, "ALLOW", "ok", NOW)

        with pytest.raises(DatabaseError):
            with test_db.engine.connect() as conn:
                conn.execute(text("DELETE FROM access_events"))
                conn.commit()

        assert test_db.count_access_events() == 1


class TestTelemetryReadings:
    """Tests for the append-only telemetry log."""

    def test_log_and_list(self, test_db: MonitoringDatabase, sensor: Device) -> None:
        metadata = TelemetryMetadata(sensor_model="SHT31", i2c_address="0x44")
        test_db.log_telemetry_reading(sensor.id, sensor.room_id, 24.5, 55.0, NOW, metadata)
        test_db.log_telemetry_reading(
            sensor.id, sensor.room_id, 25.5, 56.0, NOW + timedelta(minutes=1)
        )

        readings, total = test_db.list_telemetry_readings(room_id=sensor.room_id)
        assert total == 2
        assert readings[0].temperature == 25.5
        assert readings[1].sensor_model == "SHT31"
        assert readings[1].i2c_address == "0x44"

        latest = test_db.get_latest_reading(sensor.room_id)
        assert latest.humidity == 56.0

    def test_latest_reading_missing(self, test_db: MonitoringDatabase, room: Room) -> None:
        assert test_db.get_latest_reading(room.id) is None

    def test_delete_rejected(self, test_db: MonitoringDatabase, sensor: Device) -> None:
        test_db.log_telemetry_reading(sensor.id, sensor.room_id, 24.5, 55.0, NOW)

        with pytest.raises(DatabaseError):
            with test_db.engine.connect() as conn:
                conn.execute(text("DELETE FROM telemetry_readings"))
                conn.commit()

        _, total = test_db.list_telemetry_readings()
        assert total == 1

    def test_delete_room_with_readings(self, test_db: MonitoringDatabase, sensor: Device) -> None:
        test_db.log_telemetry_reading(sensor.id, sensor.room_id, 24.5, 55.0, NOW)

        with pytest.raises(InUseError):
            test_db.delete_room(sensor.room_id)
