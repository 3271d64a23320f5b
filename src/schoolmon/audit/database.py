"""
Monitoring Database Operations.

Provides the repositories the monitoring core consumes: students, rooms,
devices, the singleton settings row, and the append-only access/telemetry
audit tables.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generator

from sqlalchemy import create_engine, event, func, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from schoolmon.audit.models import (
    APPEND_ONLY_TABLES,
    AccessEvent,
    Base,
    Device,
    MonitoringSettingsRow,
    Room,
    Student,
    TelemetryReading,
    append_only_triggers,
)
from schoolmon.errors import ConflictError, InUseError, NotFoundError
from schoolmon.policy.hardware import resolve_hardware_profile
from schoolmon.policy.models import (
    DEFAULT_SETTINGS,
    AccessMetadata,
    AccessReason,
    AccessResult,
    MonitoringSettings,
    TelemetryMetadata,
)


logger = logging.getLogger(__name__)

TOKEN_CONSTRAINT = "uq_devices_token"


# Enable SQLite foreign keys
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key support for SQLite."""
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TokenCollisionError(ConflictError):
    """The device token collided with an existing one."""

    pass


def is_token_conflict(error: IntegrityError) -> bool:
    """Check whether an integrity error is the device-token uniqueness constraint."""
    message = str(error.orig)
    if TOKEN_CONSTRAINT in message or "devices.token" in message:
        return True
    # PostgreSQL drivers expose the constraint name on diag
    diag = getattr(error.orig, "diag", None)
    return getattr(diag, "constraint_name", None) == TOKEN_CONSTRAINT


def _settings_from_row(row: MonitoringSettingsRow) -> MonitoringSettings:
    return MonitoringSettings(
        id=row.id,
        temp_min=row.temp_min,
        temp_max=row.temp_max,
        hum_min=row.hum_min,
        hum_max=row.hum_max,
        telemetry_interval_seconds=row.telemetry_interval_seconds,
        unlock_duration_seconds=row.unlock_duration_seconds,
        allow_only_active_students=row.allow_only_active_students,
        hardware_profile=resolve_hardware_profile(row.hardware_profile),
    )


class MonitoringDatabase:
    """
    High-level interface for monitoring database operations.

    Each call runs in its own session and returns detached rows or
    immutable domain values.
    """

    def __init__(
        self,
        db_path: str | Path,
        wal_mode: bool = True,
        create_if_missing: bool = True,
    ) -> None:
        """
        Initialize the monitoring database.

        Args:
            db_path: Path to SQLite database file
            wal_mode: Enable WAL mode for better concurrency
            create_if_missing: Create database if it doesn't exist
        """
        self.db_path = Path(db_path)

        if create_if_missing:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            pool_pre_ping=True,
        )
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

        if create_if_missing or not self.db_path.exists():
            self._init_schema()

        if wal_mode:
            with self.engine.connect() as conn:
                conn.execute(text("PRAGMA journal_mode=WAL"))
                conn.commit()

    def _init_schema(self) -> None:
        """Initialize database schema and append-only triggers."""
        Base.metadata.create_all(self.engine)

        with self.engine.connect() as conn:
            for table in APPEND_ONLY_TABLES:
                for statement in append_only_triggers(table):
                    conn.execute(text(statement))
            conn.commit()

        logger.info("Database schema initialized: %s", self.db_path)

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """
        Get a database session context manager.

        Yields:
            SQLAlchemy Session object
        """
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        self.engine.dispose()

    # =========================================================================
    # Settings
    # =========================================================================

    def get_settings(self) -> MonitoringSettings:
        """
        Get the singleton settings, creating the defaults on first use.

        Returns:
            Immutable MonitoringSettings snapshot
        """
        with self.session() as session:
            row = session.query(MonitoringSettingsRow).order_by(
                MonitoringSettingsRow.id.asc()
            ).first()

            if row is None:
                defaults = DEFAULT_SETTINGS
                row = MonitoringSettingsRow(
                    temp_min=defaults.temp_min,
                    temp_max=defaults.temp_max,
                    hum_min=defaults.hum_min,
                    hum_max=defaults.hum_max,
                    telemetry_interval_seconds=defaults.telemetry_interval_seconds,
                    unlock_duration_seconds=defaults.unlock_duration_seconds,
                    allow_only_active_students=defaults.allow_only_active_students,
                    hardware_profile=defaults.hardware_profile.to_dict(),
                )
                session.add(row)
                session.flush()
                logger.info("Created default monitoring settings")

            return _settings_from_row(row)

    def update_settings(self, settings: MonitoringSettings) -> MonitoringSettings:
        """
        Replace the singleton settings (last write wins).

        Args:
            settings: New settings value; its id is ignored

        Returns:
            Stored settings snapshot
        """
        current = self.get_settings()

        with self.session() as session:
            row = session.get(MonitoringSettingsRow, current.id)
            row.temp_min = settings.temp_min
            row.temp_max = settings.temp_max
            row.hum_min = settings.hum_min
            row.hum_max = settings.hum_max
            row.telemetry_interval_seconds = settings.telemetry_interval_seconds
            row.unlock_duration_seconds = settings.unlock_duration_seconds
            row.allow_only_active_students = settings.allow_only_active_students
            row.hardware_profile = resolve_hardware_profile(
                settings.hardware_profile
            ).to_dict()
            session.flush()
            logger.info("Monitoring settings updated")
            return _settings_from_row(row)

    # =========================================================================
    # Students
    # =========================================================================

    def get_student(self, student_id: int) -> Student | None:
        """Get a student by id."""
        with self.session() as session:
            student = session.get(Student, student_id)
            if student:
                session.expunge(student)
            return student

    def add_student(
        self,
        name: str,
        is_active: bool = True,
        student_id: int | None = None,
    ) -> Student:
        """
        Insert a student record (demo data and tests).

        Raises:
            ConflictError: If student_id is already taken
        """
        try:
            with self.session() as session:
                student = Student(id=student_id, name=name, is_active=is_active)
                session.add(student)
                session.flush()
                session.expunge(student)
                return student
        except IntegrityError as e:
            raise ConflictError(f"Student id already in use: {student_id}") from e

    def set_student_active(self, student_id: int, is_active: bool) -> bool:
        """Toggle a student's active flag. Returns False if not found."""
        with self.session() as session:
            student = session.get(Student, student_id)
            if student is None:
                return False
            student.is_active = is_active
            return True

    def count_students(self) -> int:
        with self.session() as session:
            return session.query(func.count(Student.id)).scalar()

    # =========================================================================
    # Rooms
    # =========================================================================

    def add_room(
        self,
        name: str,
        location: str | None = None,
        is_active: bool = True,
    ) -> Room:
        """Create a room."""
        with self.session() as session:
            room = Room(name=name, location=location, is_active=is_active)
            session.add(room)
            session.flush()
            session.expunge(room)
            logger.info("Added room %s (%s)", room.id, name)
            return room

    def update_room(
        self,
        room_id: int,
        name: str,
        location: str | None = None,
        is_active: bool = True,
    ) -> Room:
        """
        Update a room.

        Raises:
            NotFoundError: If the room does not exist
        """
        with self.session() as session:
            room = session.get(Room, room_id)
            if room is None:
                raise NotFoundError("Room", room_id)
            room.name = name
            room.location = location
            room.is_active = is_active
            session.flush()
            session.expunge(room)
            return room

    def delete_room(self, room_id: int) -> None:
        """
        Delete a room.

        Raises:
            NotFoundError: If the room does not exist
            InUseError: If devices or readings still reference it
        """
        try:
            with self.session() as session:
                room = session.get(Room, room_id)
                if room is None:
                    raise NotFoundError("Room", room_id)
                session.delete(room)
                session.flush()
        except IntegrityError as e:
            raise InUseError(
                f"Room {room_id} has linked devices or readings"
            ) from e
        logger.info("Deleted room %s", room_id)

    def get_room(self, room_id: int) -> Room | None:
        """Get a room by id."""
        with self.session() as session:
            room = session.get(Room, room_id)
            if room:
                session.expunge(room)
            return room

    def get_active_room(self, room_id: int) -> Room | None:
        """Get a room by id only if it is active."""
        with self.session() as session:
            room = session.query(Room).filter(
                Room.id == room_id,
                Room.is_active.is_(True),
            ).first()
            if room:
                session.expunge(room)
            return room

    def list_rooms(self, active_only: bool = False) -> list[Room]:
        """List rooms ordered by name."""
        with self.session() as session:
            query = session.query(Room)
            if active_only:
                query = query.filter(Room.is_active.is_(True))
            rooms = query.order_by(Room.name.asc()).all()
            for r in rooms:
                session.expunge(r)
            return rooms

    def count_active_rooms(self) -> int:
        with self.session() as session:
            return session.query(func.count(Room.id)).filter(
                Room.is_active.is_(True)
            ).scalar()

    # =========================================================================
    # Devices
    # =========================================================================

    def get_device(self, device_id: int) -> Device | None:
        """Get a device by id."""
        with self.session() as session:
            device = session.get(Device, device_id)
            if device:
                session.expunge(device)
            return device

    def get_device_by_token(self, token: str) -> Device | None:
        """Get a device by its secret token."""
        with self.session() as session:
            device = session.query(Device).filter(Device.token == token).first()
            if device:
                session.expunge(device)
            return device

    def list_devices(self, device_type: str | None = None) -> list[Device]:
        """List devices, optionally filtered by type."""
        with self.session() as session:
            query = session.query(Device)
            if device_type is not None:
                query = query.filter(Device.type == device_type)
            devices = query.order_by(Device.name.asc()).all()
            for d in devices:
                session.expunge(d)
            return devices

    def _check_room(self, session: Session, room_id: int | None) -> None:
        if room_id is not None and session.get(Room, room_id) is None:
            raise NotFoundError("Room", room_id)

    def _flush_device(self, session: Session) -> None:
        """Flush pending device changes, classifying token collisions."""
        try:
            session.flush()
        except IntegrityError as e:
            if is_token_conflict(e):
                raise TokenCollisionError("Device token already in use") from e
            raise

    def add_device(
        self,
        name: str,
        device_type: str,
        token: str,
        room_id: int | None = None,
        is_active: bool = True,
    ) -> Device:
        """
        Insert a device.

        Raises:
            NotFoundError: If room_id references a missing room
            TokenCollisionError: If the token is already taken
        """
        with self.session() as session:
            self._check_room(session, room_id)
            device = Device(
                name=name,
                type=device_type,
                room_id=room_id,
                is_active=is_active,
                token=token,
            )
            session.add(device)
            self._flush_device(session)
            session.expunge(device)
            logger.info("Added device %s (%s, %s)", device.id, name, device_type)
            return device

    def update_device(
        self,
        device_id: int,
        name: str,
        device_type: str,
        room_id: int | None = None,
        is_active: bool = True,
        token: str | None = None,
    ) -> Device:
        """
        Update a device; the token is replaced only when given.

        Raises:
            NotFoundError: If the device or referenced room is missing
            TokenCollisionError: If the new token is already taken
        """
        with self.session() as session:
            device = session.get(Device, device_id)
            if device is None:
                raise NotFoundError("Device", device_id)
            self._check_room(session, room_id)
            device.name = name
            device.type = device_type
            device.room_id = room_id
            device.is_active = is_active
            if token is not None:
                device.token = token
            self._flush_device(session)
            session.expunge(device)
            return device

    def delete_device(self, device_id: int) -> None:
        """
        Delete a device.

        Raises:
            NotFoundError: If the device does not exist
            InUseError: If access events or readings reference it
        """
        try:
            with self.session() as session:
                device = session.get(Device, device_id)
                if device is None:
                    raise NotFoundError("Device", device_id)
                session.delete(device)
                session.flush()
        except IntegrityError as e:
            raise InUseError(
                f"Device {device_id} has linked access events or readings"
            ) from e
        logger.info("Deleted device %s", device_id)

    # =========================================================================
    # Access Events (append-only)
    # =========================================================================

    def log_access_event(
        self,
        device_id: int,
        student_id: int,
        result: AccessResult | str,
        reason: AccessReason | str,
        occurred_at: datetime,
        metadata: AccessMetadata | None = None,
    ) -> AccessEvent:
        """
        Append an access decision to the audit log.

        Returns:
            Created AccessEvent
        """
        if isinstance(result, AccessResult):
            result = result.value
        if isinstance(reason, AccessReason):
            reason = reason.value
        metadata = metadata or AccessMetadata()

        with self.session() as session:
            access_event = AccessEvent(
                device_id=device_id,
                student_id=student_id,
                result=result,
                reason=reason,
                occurred_at=as_utc(occurred_at),
                **metadata.to_dict(),
            )
            session.add(access_event)
            session.flush()

            logger.debug(
                "Logged access event: device=%s student=%s %s (%s)",
                device_id, student_id, result, reason
            )

            session.expunge(access_event)
            return access_event

    def get_last_access_event_time(self, device_id: int) -> datetime | None:
        """Get the creation time of the device's most recent access event."""
        with self.session() as session:
            last = session.query(func.max(AccessEvent.created_at)).filter(
                AccessEvent.device_id == device_id
            ).scalar()
            return as_utc(last)

    def list_access_events(
        self,
        filters: dict[str, Any] | None = None,
        offset: int = 0,
        limit: int | None = 50,
    ) -> tuple[list[AccessEvent], int]:
        """
        List access events with filters and pagination.

        Args:
            filters: device_id, student_id, result, since, until
            offset: Number of results to skip
            limit: Maximum number of results

        Returns:
            Tuple of (list of events, total count)
        """
        filters = filters or {}

        with self.session() as session:
            query = session.query(AccessEvent)

            if "device_id" in filters:
                query = query.filter(AccessEvent.device_id == filters["device_id"])
            if "student_id" in filters:
                query = query.filter(AccessEvent.student_id == filters["student_id"])
            if "result" in filters:
                query = query.filter(AccessEvent.result == filters["result"])
            if "since" in filters:
                query = query.filter(AccessEvent.occurred_at >= filters["since"])
            if "until" in filters:
                query = query.filter(AccessEvent.occurred_at <= filters["until"])

            total = query.count()

            query = query.order_by(
                AccessEvent.occurred_at.desc(), AccessEvent.id.desc()
            )
            if offset:
                query = query.offset(offset)
            if limit:
                query = query.limit(limit)

            events = query.all()
            for e in events:
                session.expunge(e)

            return events, total

    def count_access_events(self, device_id: int | None = None) -> int:
        with self.session() as session:
            query = session.query(func.count(AccessEvent.id))
            if device_id is not None:
                query = query.filter(AccessEvent.device_id == device_id)
            return query.scalar()

    # =========================================================================
    # Telemetry Readings (append-only)
    # =========================================================================

    def log_telemetry_reading(
        self,
        device_id: int,
        room_id: int,
        temperature: float,
        humidity: float,
        measured_at: datetime,
        metadata: TelemetryMetadata | None = None,
        bind_device: bool = False,
    ) -> TelemetryReading:
        """
        Append a telemetry reading.

        Args:
            bind_device: Bind the device to room_id if it has no room yet.
                The binding and the reading commit together.

        Returns:
            Created TelemetryReading

        Raises:
            NotFoundError: If bind_device is set and the device is missing
        """
        metadata = metadata or TelemetryMetadata()

        with self.session() as session:
            if bind_device:
                device = session.get(Device, device_id)
                if device is None:
                    raise NotFoundError("Device", device_id)
                if device.room_id is None:
                    device.room_id = room_id
                    logger.info("Bound device %s to room %s", device_id, room_id)

            reading = TelemetryReading(
                device_id=device_id,
                room_id=room_id,
                temperature=temperature,
                humidity=humidity,
                measured_at=as_utc(measured_at),
                **metadata.to_dict(),
            )
            session.add(reading)
            session.flush()

            logger.debug(
                "Logged reading: room=%s device=%s t=%.2f h=%.2f",
                room_id, device_id, temperature, humidity
            )

            session.expunge(reading)
            return reading

    def list_telemetry_readings(
        self,
        room_id: int | None = None,
        offset: int = 0,
        limit: int | None = 50,
    ) -> tuple[list[TelemetryReading], int]:
        """
        List readings, newest first.

        Returns:
            Tuple of (list of readings, total count)
        """
        with self.session() as session:
            query = session.query(TelemetryReading)
            if room_id is not None:
                query = query.filter(TelemetryReading.room_id == room_id)

            total = query.count()

            query = query.order_by(
                TelemetryReading.measured_at.desc(), TelemetryReading.id.desc()
            )
            if offset:
                query = query.offset(offset)
            if limit:
                query = query.limit(limit)

            readings = query.all()
            for r in readings:
                session.expunge(r)
            return readings, total

    def get_latest_reading(self, room_id: int) -> TelemetryReading | None:
        """Get the most recent reading for a room."""
        readings, _ = self.list_telemetry_readings(room_id=room_id, limit=1)
        return readings[0] if readings else None
