"""
Device identity management.

Issues the secret tokens devices authenticate with. Uniqueness is enforced
by the database constraint on devices.token; a collision is retried with a
fresh token a bounded number of times.
"""

from __future__ import annotations

import logging
import secrets
from typing import TYPE_CHECKING, Callable

from schoolmon.audit.database import TokenCollisionError
from schoolmon.errors import TokenGenerationError, ValidationError
from schoolmon.policy.models import DeviceType

if TYPE_CHECKING:
    from schoolmon.audit.database import MonitoringDatabase
    from schoolmon.audit.models import Device


logger = logging.getLogger(__name__)

TOKEN_PREFIX = "dev-"
TOKEN_BYTES = 24
MAX_TOKEN_ATTEMPTS = 3


def generate_device_token() -> str:
    """
    Generate a new device token.

    Returns:
        "dev-" followed by 48 hex characters (192 bits of entropy)
    """
    return f"{TOKEN_PREFIX}{secrets.token_hex(TOKEN_BYTES)}"


def _normalize_fields(
    name: str,
    device_type: DeviceType | str,
    room_id: int | None,
) -> tuple[str, DeviceType, int | None]:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required", field="name")

    try:
        device_type = DeviceType(device_type)
    except ValueError:
        raise ValidationError(
            f"Invalid device type: {device_type}", field="type"
        ) from None

    # Entrance gates are never bound to a room
    if device_type == DeviceType.PORTARIA:
        room_id = None

    return name, device_type, room_id


class DeviceIdentityManager:
    """Creates and updates devices with collision-safe unique tokens."""

    def __init__(
        self,
        db: MonitoringDatabase,
        token_factory: Callable[[], str] = generate_device_token,
        max_attempts: int = MAX_TOKEN_ATTEMPTS,
    ) -> None:
        """
        Initialize the manager.

        Args:
            db: Database holding the devices table
            token_factory: Token generator (overridable for tests)
            max_attempts: Total write attempts before giving up
        """
        self.db = db
        self.token_factory = token_factory
        self.max_attempts = max_attempts

    def create_device(
        self,
        name: str,
        device_type: DeviceType | str,
        room_id: int | None = None,
        is_active: bool = True,
    ) -> Device:
        """
        Create a device with a freshly generated token.

        Raises:
            ValidationError: If name or type is invalid
            NotFoundError: If room_id references a missing room
            TokenGenerationError: If every attempt hit a token collision
        """
        name, device_type, room_id = _normalize_fields(name, device_type, room_id)

        for attempt in range(1, self.max_attempts + 1):
            try:
                return self.db.add_device(
                    name=name,
                    device_type=device_type.value,
                    token=self.token_factory(),
                    room_id=room_id,
                    is_active=is_active,
                )
            except TokenCollisionError:
                logger.warning(
                    "Device token collision (attempt %d/%d)",
                    attempt, self.max_attempts
                )

        raise TokenGenerationError("Failed to generate a unique device token")

    def update_device(
        self,
        device_id: int,
        name: str,
        device_type: DeviceType | str,
        room_id: int | None = None,
        is_active: bool = True,
        regenerate_token: bool = False,
    ) -> Device:
        """
        Update a device, replacing its token only when asked to.

        Raises:
            ValidationError: If name or type is invalid
            NotFoundError: If the device or referenced room is missing
            TokenGenerationError: If every attempt hit a token collision
        """
        name, device_type, room_id = _normalize_fields(name, device_type, room_id)

        for attempt in range(1, self.max_attempts + 1):
            token = self.token_factory() if regenerate_token else None
            try:
                return self.db.update_device(
                    device_id,
                    name=name,
                    device_type=device_type.value,
                    room_id=room_id,
                    is_active=is_active,
                    token=token,
                )
            except TokenCollisionError:
                # Without a new token a collision cannot be ours to retry
                if token is None:
                    raise
                logger.warning(
                    "Device token collision on update (attempt %d/%d)",
                    attempt, self.max_attempts
                )

        raise TokenGenerationError("Failed to regenerate the device token")
