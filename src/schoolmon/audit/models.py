"""
Monitoring database models.

SQLAlchemy ORM models for rooms, devices, students, settings and the
append-only access/telemetry audit tables.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    # SQLite hands back naive datetimes; stored values are UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Room(Base):
    """Monitored classroom."""

    __tablename__ = "rooms"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    location = Column(String(256), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    # Let the database reject deletes of referenced rooms
    devices = relationship("Device", back_populates="room", passive_deletes="all")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "location": self.location,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }


class Device(Base):
    """
    ESP32 device record.

    A PORTARIA device is an entrance gate with an RFID reader and is never
    bound to a room; a SALA device reports telemetry for one room.
    """

    __tablename__ = "devices"
    __table_args__ = (UniqueConstraint("token", name="uq_devices_token"),)

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False)
    type = Column(String(16), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    token = Column(String(128), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now)

    room = relationship("Room", back_populates="devices")

    def to_dict(self, include_token: bool = False) -> dict[str, Any]:
        """Convert to dictionary. The token is omitted unless requested."""
        data = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "room_id": self.room_id,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_token:
            data["token"] = self.token
        return data


class Student(Base):
    """Student identity, owned by the school records system."""

    __tablename__ = "students"

    id = Column(Integer, primary_key=True)
    name = Column(String(256), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "is_active": self.is_active}


class MonitoringSettingsRow(Base):
    """Singleton monitoring settings row."""

    __tablename__ = "monitoring_settings"

    id = Column(Integer, primary_key=True)
    temp_min = Column(Numeric(5, 2), nullable=False)
    temp_max = Column(Numeric(5, 2), nullable=False)
    hum_min = Column(Numeric(5, 2), nullable=False)
    hum_max = Column(Numeric(5, 2), nullable=False)
    telemetry_interval_seconds = Column(Integer, nullable=False)
    unlock_duration_seconds = Column(Integer, nullable=False)
    allow_only_active_students = Column(Boolean, nullable=False)
    hardware_profile = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utc_now, onupdate=_utc_now)


class AccessEvent(Base):
    """
    Access decision audit record.

    Append-only: no updates or deletes allowed. Repeated reads of the same
    badge legitimately produce repeated rows.
    """

    __tablename__ = "access_events"

    id = Column(Integer, primary_key=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    result = Column(String(8), nullable=False)
    reason = Column(String(32), nullable=False)
    occurred_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(
        DateTime(timezone=True), default=_utc_now, nullable=False, index=True
    )

    # Reader metadata
    card_uid = Column(String(32), nullable=True)
    reader_model = Column(String(16), nullable=True)
    frequency_mhz = Column(Float, nullable=True)
    transport = Column(String(16), nullable=True)
    connectivity = Column(String(16), nullable=True)

    device = relationship("Device")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "device_id": self.device_id,
            "student_id": self.student_id,
            "result": self.result,
            "reason": self.reason,
            "occurred_at": _iso(self.occurred_at),
            "created_at": _iso(self.created_at),
            "card_uid": self.card_uid,
            "reader_model": self.reader_model,
            "frequency_mhz": self.frequency_mhz,
            "transport": self.transport,
            "connectivity": self.connectivity,
        }


class TelemetryReading(Base):
    """
    Environmental reading.

    Append-only. The alert status is not stored; it is derived on read.
    """

    __tablename__ = "telemetry_readings"

    id = Column(Integer, primary_key=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=False, index=True)
    temperature = Column(Float, nullable=False)
    humidity = Column(Float, nullable=False)
    measured_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_utc_now, nullable=False)

    # Sensor metadata
    sensor_model = Column(String(16), nullable=True)
    i2c_address = Column(String(4), nullable=True)
    transport = Column(String(16), nullable=True)
    connectivity = Column(String(16), nullable=True)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "device_id": self.device_id,
            "room_id": self.room_id,
            "temperature": self.temperature,
            "humidity": self.humidity,
            "measured_at": _iso(self.measured_at),
            "created_at": _iso(self.created_at),
            "sensor_model": self.sensor_model,
            "i2c_address": self.i2c_address,
            "transport": self.transport,
            "connectivity": self.connectivity,
        }


APPEND_ONLY_TABLES = ("access_events", "telemetry_readings")


def append_only_triggers(table: str) -> list[str]:
    """SQLite triggers rejecting UPDATE and DELETE on an audit table."""
    return [
        f"""
        CREATE TRIGGER IF NOT EXISTS no_delete_{table}
        BEFORE DELETE ON {table}
        BEGIN
            SELECT RAISE(ABORT, 'Deletion not permitted on audit log');
        END
        """,
        f"""
        CREATE TRIGGER IF NOT EXISTS no_update_{table}
        BEFORE UPDATE ON {table}
        BEGIN
            SELECT RAISE(ABORT, 'Updates not permitted on audit log');
        END
        """,
    ]
