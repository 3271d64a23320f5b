"""
REST API routes for the school monitoring core.

Provides the device-facing IoT endpoints, the admin settings endpoint, the
monitoring overview and the admin views over rooms, devices and logs.
Routes only translate HTTP to service calls.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from schoolmon import __version__
from schoolmon.api.auth import get_device_token, require_admin
from schoolmon.api.schemas import (
    AccessEventRequest,
    AccessEventResponse,
    DeviceCreate,
    DeviceUpdate,
    ErrorResponse,
    HealthCheck,
    MonitoringSettingsResponse,
    MonitoringSettingsUpdate,
    PaginatedResponse,
    RoomCreate,
    TelemetryRequest,
    TelemetryResponse,
)
from schoolmon.audit.database import as_utc
from schoolmon.audit.models import Device
from schoolmon.core.processor import parse_timestamp
from schoolmon.policy.models import (
    AccessMetadata,
    AccessReason,
    AccessResult,
    DeviceType,
    TelemetryMetadata,
)

logger = logging.getLogger(__name__)

# API Router with prefix
router = APIRouter(prefix="/api")


# ============================================================================
# Dependencies
# ============================================================================


class ServiceDependencies:
    """
    Container for service dependencies.

    Set these after app initialization to inject the monitoring service.
    """

    service = None  # MonitoringService instance
    start_time: float = time.time()


deps = ServiceDependencies()


def get_service():
    """Get monitoring service instance."""
    if deps.service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Monitoring service not initialized",
        )
    return deps.service


def get_device(token: str = Depends(get_device_token)) -> Device:
    """Resolve the calling device from its bearer token."""
    device = get_service().find_device_by_token(token)
    if device is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid device token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return device


# ============================================================================
# Health Check Endpoints
# ============================================================================


@router.get("/health", response_model=HealthCheck, tags=["Health"])
async def health_check() -> HealthCheck:
    """Check system health status."""
    return HealthCheck(
        status="healthy",
        version=__version__,
        uptime_seconds=time.time() - deps.start_time,
        database_connected=deps.service is not None,
    )


# ============================================================================
# IoT Endpoints
# ============================================================================


@router.post(
    "/iot/access",
    response_model=AccessEventResponse,
    tags=["IoT"],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": AccessEventResponse},
        404: {"model": ErrorResponse},
    },
)
async def report_access(
    body: AccessEventRequest,
    device: Device = Depends(get_device),
) -> Any:
    """
    Decide an RFID read at an entrance device.

    An inactive device gets its DENY back with status 403; every other
    decision, including DENY for an inactive student, is a 200.
    """
    service = get_service()
    settings = service.get_settings()
    profile = settings.hardware_profile

    metadata = AccessMetadata(
        card_uid=body.card_uid.upper() if body.card_uid else None,
        reader_model=body.reader_model or profile.access.reader_model.value,
        frequency_mhz=body.frequency_mhz or profile.access.frequency_mhz,
        transport=body.transport or profile.transport.value,
        connectivity=body.connectivity or profile.esp32.connectivity.value,
    )

    decision = service.process_access_event(
        device,
        body.student_id,
        parse_timestamp(body.occurred_at),
        metadata,
        settings=settings,
    )

    if decision.reason == AccessReason.INACTIVE_DEVICE:
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content=decision.to_dict(),
        )
    return AccessEventResponse(**decision.to_dict())


@router.post(
    "/iot/telemetry",
    response_model=TelemetryResponse,
    tags=["IoT"],
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def report_telemetry(
    body: TelemetryRequest,
    device: Device = Depends(get_device),
) -> Any:
    """Store a sensor reading from a room device."""
    service = get_service()
    profile = service.get_settings().hardware_profile

    metadata = TelemetryMetadata(
        sensor_model=body.sensor_model or profile.telemetry.sensor_model.value,
        i2c_address=body.i2c_address or profile.telemetry.i2c_address,
        transport=profile.transport.value,
        connectivity=profile.esp32.connectivity.value,
    )

    result = service.process_telemetry_reading(
        device,
        body.room_id,
        body.temperature,
        body.humidity,
        parse_timestamp(body.measured_at, "measured_at"),
        metadata,
    )

    if not result.ok:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": result.reason},
        )
    return TelemetryResponse()


# ============================================================================
# Admin Endpoints
# ============================================================================


@router.get(
    "/admin/monitoring-settings",
    response_model=MonitoringSettingsResponse,
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
)
async def get_monitoring_settings() -> MonitoringSettingsResponse:
    """Get the current monitoring settings."""
    settings = get_service().get_settings()
    return MonitoringSettingsResponse(**settings.to_dict())


@router.put(
    "/admin/monitoring-settings",
    response_model=MonitoringSettingsResponse,
    tags=["Admin"],
    dependencies=[Depends(require_admin)],
    responses={400: {"model": ErrorResponse}},
)
async def update_monitoring_settings(
    body: MonitoringSettingsUpdate,
) -> MonitoringSettingsResponse:
    """
    Update the monitoring settings.

    Omitted fields keep their value; hardware profile changes are merged.
    """
    changes = body.model_dump(exclude_none=True)
    hardware_profile = changes.pop("hardware_profile", None)

    settings = get_service().update_settings(
        hardware_profile=hardware_profile, **changes
    )
    logger.info("Monitoring settings updated via API")
    return MonitoringSettingsResponse(**settings.to_dict())


@router.get(
    "/monitoring/overview",
    tags=["Monitoring"],
    dependencies=[Depends(require_admin)],
)
async def monitoring_overview() -> dict[str, Any]:
    """Summary cards, latest reading per room and recent access events."""
    return get_service().overview()


# ============================================================================
# Monitoring Admin Endpoints
# ============================================================================


@router.get(
    "/monitoring/access-events",
    response_model=PaginatedResponse,
    tags=["Monitoring"],
    dependencies=[Depends(require_admin)],
)
async def list_access_events(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    student_id: int | None = Query(None, ge=1),
    device_id: int | None = Query(None, ge=1),
    result: AccessResult | None = None,
    from_: datetime | None = Query(None, alias="from"),
    to: datetime | None = None,
) -> PaginatedResponse:
    """List access events, newest first."""
    filters: dict[str, Any] = {}
    if student_id is not None:
        filters["student_id"] = student_id
    if device_id is not None:
        filters["device_id"] = device_id
    if result is not None:
        filters["result"] = result.value
    if from_ is not None:
        filters["since"] = as_utc(from_)
    if to is not None:
        filters["until"] = as_utc(to)

    events, total = get_service().list_access_events(
        filters=filters, limit=per_page, offset=(page - 1) * per_page
    )
    return PaginatedResponse(
        items=[e.to_dict() for e in events],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get(
    "/monitoring/telemetry",
    response_model=PaginatedResponse,
    tags=["Monitoring"],
    dependencies=[Depends(require_admin)],
)
async def list_telemetry(
    page: int = Query(1, ge=1),
    per_page: int = Query(30, ge=1, le=200),
    room_id: int | None = Query(None, ge=1),
) -> PaginatedResponse:
    """List readings with their status under the current thresholds."""
    views, total = get_service().list_readings(
        room_id=room_id, limit=per_page, offset=(page - 1) * per_page
    )
    return PaginatedResponse(
        items=[v.to_dict() for v in views],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get(
    "/monitoring/rooms",
    tags=["Monitoring"],
    dependencies=[Depends(require_admin)],
)
async def list_rooms(active: bool = False) -> dict[str, Any]:
    """List rooms ordered by name."""
    rooms = get_service().db.list_rooms(active_only=active)
    return {"items": [r.to_dict() for r in rooms], "total": len(rooms)}


@router.post(
    "/monitoring/rooms",
    status_code=status.HTTP_201_CREATED,
    tags=["Monitoring"],
    dependencies=[Depends(require_admin)],
)
async def create_room(body: RoomCreate) -> dict[str, Any]:
    """Create a room."""
    room = get_service().db.add_room(
        body.name.strip(),
        location=(body.location or "").strip() or None,
        is_active=body.is_active,
    )
    return room.to_dict()


@router.get(
    "/monitoring/devices",
    tags=["Monitoring"],
    dependencies=[Depends(require_admin)],
)
async def list_devices(
    device_type: DeviceType | None = Query(None, alias="type"),
) -> dict[str, Any]:
    """List devices; tokens are not included."""
    devices = get_service().db.list_devices(
        device_type=device_type.value if device_type is not None else None
    )
    return {"items": [d.to_dict() for d in devices], "total": len(devices)}


@router.post(
    "/monitoring/devices",
    status_code=status.HTTP_201_CREATED,
    tags=["Monitoring"],
    dependencies=[Depends(require_admin)],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_device(body: DeviceCreate) -> dict[str, Any]:
    """Register a device. The response carries its token."""
    device = get_service().identity.create_device(
        body.name,
        body.type,
        room_id=body.room_id,
        is_active=body.is_active,
    )
    return device.to_dict(include_token=True)


@router.get(
    "/monitoring/devices/{device_id}",
    tags=["Monitoring"],
    dependencies=[Depends(require_admin)],
    responses={404: {"model": ErrorResponse}},
)
async def get_device_by_id(device_id: int) -> dict[str, Any]:
    """Get one device."""
    return get_service().get_device(device_id).to_dict()


@router.put(
    "/monitoring/devices/{device_id}",
    tags=["Monitoring"],
    dependencies=[Depends(require_admin)],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_device(device_id: int, body: DeviceUpdate) -> dict[str, Any]:
    """
    Update a device.

    The token is returned only when it was regenerated.
    """
    service = get_service()
    current = service.get_device(device_id)
    room_id = body.room_id if "room_id" in body.model_fields_set else current.room_id

    device = service.identity.update_device(
        device_id,
        name=body.name if body.name is not None else current.name,
        device_type=body.type if body.type is not None else current.type,
        room_id=room_id,
        is_active=body.is_active if body.is_active is not None else current.is_active,
        regenerate_token=body.regenerate_token,
    )
    return device.to_dict(include_token=body.regenerate_token)


@router.delete(
    "/monitoring/devices/{device_id}",
    tags=["Monitoring"],
    dependencies=[Depends(require_admin)],
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_device(device_id: int) -> dict[str, Any]:
    """Delete a device without access events or readings."""
    get_service().db.delete_device(device_id)
    return {"success": True}
