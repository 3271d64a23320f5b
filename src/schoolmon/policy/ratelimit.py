"""
Simulation rate limiting.

Throttles automatically generated access events per device. The limiter
keeps no in-process state: it re-reads the latest access event of the
device on every call, so several processes sharing one database agree.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from schoolmon.audit.database import MonitoringDatabase


logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_MS = 5000


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check."""

    skipped: bool
    retry_after_ms: int = 0

    def to_dict(self) -> dict:
        return {"skipped": self.skipped, "retry_after_ms": self.retry_after_ms}


class SimulationRateLimiter:
    """Minimum inter-arrival interval for automated access events."""

    def __init__(
        self,
        db: MonitoringDatabase,
        min_interval_ms: int = DEFAULT_MIN_INTERVAL_MS,
    ) -> None:
        self.db = db
        self.min_interval_ms = min_interval_ms

    def check(self, device_id: int, now: datetime | None = None) -> RateLimitDecision:
        """
        Check whether an automated event for device_id may proceed.

        Args:
            device_id: Device about to generate an event
            now: Current time (defaults to UTC now)

        Returns:
            RateLimitDecision; skipped=True means no event may be created yet
        """
        last = self.db.get_last_access_event_time(device_id)
        if last is None:
            return RateLimitDecision(skipped=False)

        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        elapsed_ms = int((now - last).total_seconds() * 1000)

        if elapsed_ms < self.min_interval_ms:
            retry_after = max(self.min_interval_ms - elapsed_ms, 0)
            logger.debug(
                "Automated event for device %s throttled, retry in %d ms",
                device_id, retry_after
            )
            return RateLimitDecision(skipped=True, retry_after_ms=retry_after)

        return RateLimitDecision(skipped=False)
