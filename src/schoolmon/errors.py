"""
Error taxonomy for the monitoring core.

Every failure a caller is expected to handle derives from MonitoringError,
so the HTTP adapter and the CLI can map them to messages in one place.
A DENY decision is not an error and has no exception type here.
"""

from __future__ import annotations


class MonitoringError(Exception):
    """Base class for monitoring core errors."""

    pass


class ValidationError(MonitoringError):
    """Malformed caller input."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class NotFoundError(MonitoringError):
    """A referenced device, room or student does not exist."""

    def __init__(self, entity: str, key: object) -> None:
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class ConflictError(MonitoringError):
    """A uniqueness or reference constraint prevented the write."""

    pass


class TokenGenerationError(ConflictError):
    """Device token collisions persisted after all retries."""

    pass


class InUseError(ConflictError):
    """Deletion blocked because other records still reference the row."""

    pass


class ConfigError(MonitoringError):
    """Stored settings or hardware profile are malformed."""

    pass
