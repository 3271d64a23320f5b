"""
School Monitoring Core.

Access-control decisions for RFID entrance gates, environmental threshold
evaluation for classroom sensors, device identity issuance and rate limiting
for simulated hardware events.
"""

__version__ = "0.1.0"
__author__ = "School Monitoring Contributors"

from schoolmon.config import MonitoringConfig, load_config
from schoolmon.core.identity import generate_device_token
from schoolmon.core.processor import MonitoringService
from schoolmon.policy.hardware import resolve_hardware_profile
from schoolmon.policy.telemetry import evaluate_reading_status

__all__ = [
    "MonitoringConfig",
    "MonitoringService",
    "evaluate_reading_status",
    "generate_device_token",
    "load_config",
    "resolve_hardware_profile",
    "__version__",
]
