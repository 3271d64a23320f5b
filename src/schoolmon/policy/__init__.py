"""
Policy Layer.

Deterministic rules of the monitoring core: access decisions, reading
classification, hardware profile resolution and simulation rate limiting.
"""

from schoolmon.policy.engine import AccessDecisionEngine, decide
from schoolmon.policy.hardware import resolve_hardware_profile
from schoolmon.policy.models import (
    DEFAULT_SETTINGS,
    AccessDecision,
    AccessMetadata,
    AccessReason,
    AccessResult,
    DeviceType,
    HardwareProfile,
    MonitoringSettings,
    ReadingStatus,
    SensorModel,
    TelemetryMetadata,
    Thresholds,
)
from schoolmon.policy.ratelimit import RateLimitDecision, SimulationRateLimiter
from schoolmon.policy.telemetry import evaluate_reading_status

__all__ = [
    # Engine
    "AccessDecisionEngine",
    "decide",
    # Hardware
    "resolve_hardware_profile",
    # Models
    "DEFAULT_SETTINGS",
    "AccessDecision",
    "AccessMetadata",
    "AccessReason",
    "AccessResult",
    "DeviceType",
    "HardwareProfile",
    "MonitoringSettings",
    "ReadingStatus",
    "SensorModel",
    "TelemetryMetadata",
    "Thresholds",
    # Rate limiting
    "RateLimitDecision",
    "SimulationRateLimiter",
    # Telemetry
    "evaluate_reading_status",
]
