"""
Access Decision Engine.

Turns an RFID read at a device into an ALLOW/DENY decision and appends the
outcome to the access audit log.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from schoolmon.errors import NotFoundError
from schoolmon.policy.models import (
    AccessDecision,
    AccessMetadata,
    AccessReason,
    AccessResult,
    MonitoringSettings,
)

if TYPE_CHECKING:
    from schoolmon.audit.database import MonitoringDatabase
    from schoolmon.audit.models import Device, Student


logger = logging.getLogger(__name__)


def decide(
    device: Device,
    student: Student,
    settings: MonitoringSettings,
) -> tuple[AccessResult, AccessReason]:
    """
    Apply the access policy to existing entities.

    Rules are evaluated in order; the first that applies decides:

    1. inactive device                                  -> DENY inactive_device
    2. only active students allowed and student inactive -> DENY inactive_student
    3. otherwise                                         -> ALLOW ok
    """
    if not device.is_active:
        return AccessResult.DENY, AccessReason.INACTIVE_DEVICE
    if settings.allow_only_active_students and not student.is_active:
        return AccessResult.DENY, AccessReason.INACTIVE_STUDENT
    return AccessResult.ALLOW, AccessReason.OK


class AccessDecisionEngine:
    """
    Access policy engine.

    Every call that passes the existence checks writes exactly one
    AccessEvent, whatever the outcome. Repeated identical calls append
    repeated events.
    """

    def __init__(self, db: MonitoringDatabase) -> None:
        """
        Initialize the engine.

        Args:
            db: Database providing student lookup and the access audit log
        """
        self.db = db

    def process(
        self,
        device: Device | None,
        student_id: int,
        occurred_at: datetime,
        metadata: AccessMetadata | None,
        settings: MonitoringSettings,
    ) -> AccessDecision:
        """
        Decide and record an access attempt.

        Args:
            device: Device that read the card
            student_id: Student identified by the card
            occurred_at: When the card was read
            metadata: Reader context stored verbatim with the event
            settings: Settings snapshot for this call

        Returns:
            AccessDecision with result, reason and unlock duration

        Raises:
            NotFoundError: If the device or student does not exist. No
                event is written in that case.
        """
        device_id = device.id if device is not None else None
        # Decide on the stored row; the caller's copy may be stale
        device = self.db.get_device(device_id) if device_id is not None else None
        if device is None:
            raise NotFoundError("Device", device_id)

        student = self.db.get_student(student_id)
        if student is None:
            raise NotFoundError("Student", student_id)

        result, reason = decide(device, student, settings)

        # Snapshot: later settings changes must not alter this decision
        decision = AccessDecision(
            result=result,
            reason=reason,
            unlock_duration_seconds=int(settings.unlock_duration_seconds),
        )

        self.db.log_access_event(
            device_id=device.id,
            student_id=student_id,
            result=result,
            reason=reason,
            occurred_at=occurred_at,
            metadata=metadata,
        )

        if decision.allowed:
            logger.debug("Access allowed: device=%s student=%s", device.id, student_id)
        else:
            logger.info(
                "Access denied: device=%s student=%s reason=%s",
                device.id, student_id, reason.value
            )
        return decision
