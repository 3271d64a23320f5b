"""
Monitoring Service - Integrated Processing Pipeline.

Ties together the settings, hardware profile, access decision engine,
telemetry ingestor, rate limiter and device identity manager behind the
operations callers use. Callers are expected to have checked permissions.
"""

from __future__ import annotations

import logging
import random
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from schoolmon.audit.database import MonitoringDatabase
from schoolmon.audit.models import AccessEvent, Device, TelemetryReading
from schoolmon.core.identity import DeviceIdentityManager
from schoolmon.core.ingest import IngestResult, TelemetryIngestor
from schoolmon.errors import NotFoundError, ValidationError
from schoolmon.policy.engine import AccessDecisionEngine
from schoolmon.policy.hardware import resolve_hardware_profile
from schoolmon.policy.models import (
    AccessDecision,
    AccessMetadata,
    MonitoringSettings,
    ReadingStatus,
    TelemetryMetadata,
)
from schoolmon.policy.ratelimit import (
    DEFAULT_MIN_INTERVAL_MS,
    RateLimitDecision,
    SimulationRateLimiter,
)
from schoolmon.policy.telemetry import evaluate_reading_status


logger = logging.getLogger(__name__)

CARD_UID_PATTERN = re.compile(r"^[0-9A-Fa-f]{4,32}$")
SOURCES = ("manual", "auto")
MAX_BATCH_QUANTITY = 60
RECENT_EVENTS_LIMIT = 10


def parse_timestamp(value: str | datetime | None, field_name: str = "occurred_at") -> datetime:
    """
    Parse an ISO-8601 timestamp, defaulting to now.

    Naive values are taken as UTC; the result is always UTC.

    Raises:
        ValidationError: If the value cannot be parsed
    """
    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(
                f"Invalid date/time: {value}", field=field_name
            ) from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _as_decimal(value: Any, field_name: str) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number", field=field_name) from None
    if not number.is_finite():
        raise ValidationError(f"{field_name} must be finite", field=field_name)
    return number.quantize(Decimal("0.01"))


def _as_positive_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise ValidationError(f"{field_name} must be an integer", field=field_name)
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError(f"{field_name} must be an integer", field=field_name) from None
    if number <= 0:
        raise ValidationError(f"{field_name} must be positive", field=field_name)
    return number


def validate_settings(settings: MonitoringSettings) -> None:
    """
    Check the settings invariants.

    Raises:
        ValidationError: If a band is empty or an interval is not positive
    """
    if not settings.temp_min < settings.temp_max:
        raise ValidationError("temp_min must be lower than temp_max", field="temp_min")
    if not settings.hum_min < settings.hum_max:
        raise ValidationError("hum_min must be lower than hum_max", field="hum_min")
    _as_positive_int(settings.telemetry_interval_seconds, "telemetry_interval_seconds")
    _as_positive_int(settings.unlock_duration_seconds, "unlock_duration_seconds")


def _merge_profile(current: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """Overlay nested profile changes on the current profile."""
    merged = dict(current)
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge_profile(merged[key], value)
        elif value is not None:
            merged[key] = value
    return merged


@dataclass(frozen=True)
class SimulationOutcome:
    """Result of a simulated access read."""

    decision: AccessDecision | None = None
    rate_limit: RateLimitDecision = field(
        default_factory=lambda: RateLimitDecision(skipped=False)
    )

    @property
    def skipped(self) -> bool:
        return self.rate_limit.skipped

    def to_dict(self) -> dict[str, Any]:
        if self.skipped:
            return self.rate_limit.to_dict()
        return {"skipped": False, **self.decision.to_dict()}


@dataclass(frozen=True)
class ReadingView:
    """A stored reading with its status under the current thresholds."""

    reading: TelemetryReading
    status: ReadingStatus

    def to_dict(self) -> dict[str, Any]:
        return {**self.reading.to_dict(), "status": self.status.value}


class MonitoringService:
    """
    Entry point for access decisions, telemetry and the hardware simulator.

    Settings are loaded once per call and passed down explicitly.
    """

    def __init__(
        self,
        db: MonitoringDatabase,
        min_interval_ms: int = DEFAULT_MIN_INTERVAL_MS,
        identity: DeviceIdentityManager | None = None,
    ) -> None:
        """
        Initialize the service.

        Args:
            db: Monitoring database
            min_interval_ms: Minimum gap between automated access events
            identity: Device identity manager (created if omitted)
        """
        self.db = db
        self.engine = AccessDecisionEngine(db)
        self.ingestor = TelemetryIngestor(db)
        self.rate_limiter = SimulationRateLimiter(db, min_interval_ms=min_interval_ms)
        self.identity = identity or DeviceIdentityManager(db)

    # =========================================================================
    # Core operations
    # =========================================================================

    def process_access_event(
        self,
        device: Device | None,
        student_id: int,
        occurred_at: datetime,
        metadata: AccessMetadata | None = None,
        settings: MonitoringSettings | None = None,
    ) -> AccessDecision:
        """
        Decide an access attempt and record it.

        Raises:
            NotFoundError: If the device or student does not exist
        """
        settings = settings or self.db.get_settings()
        return self.engine.process(device, student_id, occurred_at, metadata, settings)

    def process_telemetry_reading(
        self,
        device: Device | None,
        room_id: int,
        temperature: float,
        humidity: float,
        measured_at: datetime,
        metadata: TelemetryMetadata | None = None,
    ) -> IngestResult:
        """Validate and store a telemetry reading."""
        return self.ingestor.ingest(
            device, room_id, temperature, humidity, measured_at, metadata
        )

    def find_device_by_token(self, token: str | None) -> Device | None:
        """Identify a device by its bearer token."""
        if not token:
            return None
        return self.db.get_device_by_token(token)

    def get_device(self, device_id: int) -> Device:
        device = self.db.get_device(device_id)
        if device is None:
            raise NotFoundError("Device", device_id)
        return device

    # =========================================================================
    # Settings
    # =========================================================================

    def get_settings(self) -> MonitoringSettings:
        return self.db.get_settings()

    def update_settings(
        self,
        hardware_profile: dict[str, Any] | None = None,
        **changes: Any,
    ) -> MonitoringSettings:
        """
        Update the singleton settings.

        Omitted fields keep their current value; hardware_profile changes are
        merged over the current profile and resolved again.

        Raises:
            ValidationError: If the result violates the settings invariants
        """
        current = self.db.get_settings()

        known = {
            "temp_min", "temp_max", "hum_min", "hum_max",
            "telemetry_interval_seconds", "unlock_duration_seconds",
            "allow_only_active_students",
        }
        unknown = set(changes) - known
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")

        values: dict[str, Any] = {}
        for name in ("temp_min", "temp_max", "hum_min", "hum_max"):
            if changes.get(name) is not None:
                values[name] = _as_decimal(changes[name], name)
        for name in ("telemetry_interval_seconds", "unlock_duration_seconds"):
            if changes.get(name) is not None:
                values[name] = _as_positive_int(changes[name], name)
        if changes.get("allow_only_active_students") is not None:
            flag = changes["allow_only_active_students"]
            if not isinstance(flag, bool):
                raise ValidationError(
                    "allow_only_active_students must be true or false",
                    field="allow_only_active_students",
                )
            values["allow_only_active_students"] = flag
        if hardware_profile:
            values["hardware_profile"] = resolve_hardware_profile(
                _merge_profile(current.hardware_profile.to_dict(), hardware_profile)
            )

        updated = replace(current, **values)
        validate_settings(updated)
        return self.db.update_settings(updated)

    # =========================================================================
    # Hardware simulator
    # =========================================================================

    def simulate_access(
        self,
        device_id: int,
        student_id: int,
        card_uid: str | None = None,
        occurred_at: str | datetime | None = None,
        source: str = "manual",
        now: datetime | None = None,
    ) -> SimulationOutcome:
        """
        Simulate an RFID read at an entrance device.

        Automated ("auto") reads are throttled per device; manual reads never
        are. Reader metadata comes from the configured hardware profile.

        Raises:
            ValidationError: If card UID, source or timestamp is invalid
            NotFoundError: If the student or device does not exist
        """
        if source not in SOURCES:
            raise ValidationError(f"Invalid source: {source}", field="source")

        if card_uid is not None:
            card_uid = card_uid.strip()
            if not CARD_UID_PATTERN.match(card_uid):
                raise ValidationError("Invalid RFID card UID", field="card_uid")
            card_uid = card_uid.upper()

        if self.db.get_student(student_id) is None:
            raise NotFoundError("Student", student_id)
        device = self.get_device(device_id)

        if source == "auto":
            limit = self.rate_limiter.check(device.id, now=now)
            if limit.skipped:
                return SimulationOutcome(rate_limit=limit)

        occurred = parse_timestamp(occurred_at)
        settings = self.db.get_settings()
        profile = settings.hardware_profile

        decision = self.process_access_event(
            device,
            student_id,
            occurred,
            AccessMetadata(
                card_uid=card_uid,
                reader_model=profile.access.reader_model.value,
                frequency_mhz=profile.access.frequency_mhz,
                transport=profile.transport.value,
                connectivity=profile.esp32.connectivity.value,
            ),
            settings=settings,
        )
        return SimulationOutcome(decision=decision)

    def simulate_telemetry(
        self,
        room_id: int,
        device_id: int,
        temperature: float,
        humidity: float,
        sensor_model: str | None = None,
        i2c_address: str | None = None,
        measured_at: str | datetime | None = None,
    ) -> IngestResult:
        """
        Simulate one sensor reading.

        Raises:
            ValidationError: If the timestamp is invalid
            NotFoundError: If the device does not exist
        """
        device = self.get_device(device_id)
        profile = self.db.get_settings().hardware_profile
        measured = parse_timestamp(measured_at, "measured_at")

        return self.process_telemetry_reading(
            device,
            room_id,
            temperature,
            humidity,
            measured,
            TelemetryMetadata(
                sensor_model=sensor_model or profile.telemetry.sensor_model.value,
                i2c_address=i2c_address or profile.telemetry.i2c_address,
                transport=profile.transport.value,
                connectivity=profile.esp32.connectivity.value,
            ),
        )

    def generate_telemetry_batch(
        self,
        room_id: int,
        device_id: int,
        base_temperature: float,
        base_humidity: float,
        variation: float,
        interval_seconds: int,
        quantity: int,
        rng: random.Random | None = None,
    ) -> IngestResult:
        """
        Generate a series of jittered readings ending now.

        Readings are spaced interval_seconds apart; each value is the base
        plus a uniform jitter in [-variation, variation]. Stops at the first
        rejected reading.
        """
        if not 1 <= quantity <= MAX_BATCH_QUANTITY:
            raise ValidationError(
                f"quantity must be between 1 and {MAX_BATCH_QUANTITY}", field="quantity"
            )
        if variation < 0:
            raise ValidationError("variation must not be negative", field="variation")
        _as_positive_int(interval_seconds, "interval_seconds")

        rng = rng or random.Random()
        device = self.get_device(device_id)
        profile = self.db.get_settings().hardware_profile
        metadata = TelemetryMetadata(
            sensor_model=profile.telemetry.sensor_model.value,
            i2c_address=profile.telemetry.i2c_address,
            transport=profile.transport.value,
            connectivity=profile.esp32.connectivity.value,
        )

        now = datetime.now(timezone.utc)
        for idx in range(quantity):
            measured_at = now - timedelta(seconds=(quantity - idx - 1) * interval_seconds)
            result = self.process_telemetry_reading(
                device,
                room_id,
                base_temperature + rng.uniform(-variation, variation),
                base_humidity + rng.uniform(-variation, variation),
                measured_at,
                metadata,
            )
            if not result.ok:
                return result

        logger.info("Generated %d readings for room %s", quantity, room_id)
        return IngestResult(ok=True)

    # =========================================================================
    # Views
    # =========================================================================

    def list_readings(
        self,
        room_id: int | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[ReadingView], int]:
        """List readings with their status under the current thresholds."""
        settings = self.db.get_settings()
        readings, total = self.db.list_telemetry_readings(
            room_id=room_id, offset=offset, limit=limit
        )
        views = [
            ReadingView(
                reading=r,
                status=evaluate_reading_status(r.temperature, r.humidity, settings),
            )
            for r in readings
        ]
        return views, total

    def list_access_events(
        self,
        filters: dict[str, Any] | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AccessEvent], int]:
        return self.db.list_access_events(filters=filters, offset=offset, limit=limit)

    def overview(self) -> dict[str, Any]:
        """
        Summarize the monitoring state.

        Returns:
            Dictionary with summary cards, the latest reading of every
            active room and the most recent access events
        """
        settings = self.db.get_settings()
        rooms = self.db.list_rooms(active_only=True)

        room_rows = []
        latest_readings = []
        for room in rooms:
            latest = self.db.get_latest_reading(room.id)
            if latest is None:
                room_rows.append({**room.to_dict(), "status": ReadingStatus.NO_READING.value})
                continue

            status = evaluate_reading_status(latest.temperature, latest.humidity, settings)
            room_rows.append({**room.to_dict(), "status": status.value})
            latest_readings.append({
                **latest.to_dict(),
                "room_name": room.name,
                "status": status.value,
            })

        events, _ = self.db.list_access_events(limit=RECENT_EVENTS_LIMIT)
        alerts = sum(1 for r in latest_readings if r["status"] != ReadingStatus.OK.value)

        return {
            "cards": {
                "active_rooms": len(rooms),
                "rooms_with_latest_reading": len(latest_readings),
                "alerts": alerts,
                "last_access_events": len(events),
            },
            "rooms": room_rows,
            "latest_readings": latest_readings,
            "last_access_events": [e.to_dict() for e in events],
        }
