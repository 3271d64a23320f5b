"""
Monitoring Core - Integrated Processing Pipeline.

Ties together device identity, telemetry ingestion, the access decision
engine and the hardware simulator.
"""

from schoolmon.core.identity import DeviceIdentityManager, generate_device_token
from schoolmon.core.ingest import IngestResult, TelemetryIngestor
from schoolmon.core.processor import (
    MonitoringService,
    ReadingView,
    SimulationOutcome,
    parse_timestamp,
)

__all__ = [
    "DeviceIdentityManager",
    "IngestResult",
    "MonitoringService",
    "ReadingView",
    "SimulationOutcome",
    "TelemetryIngestor",
    "generate_device_token",
    "parse_timestamp",
]
