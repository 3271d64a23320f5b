"""
Telemetry threshold evaluation.

Classifies a temperature/humidity pair against the configured bands:

* OK        both values inside their band (bounds inclusive)
* WARNING   exactly one value outside its band
* CRITICAL  both values outside their bands

The status is never stored with a reading; it is derived on read from the
settings in force at query time.
"""

from __future__ import annotations

import math
from typing import Any, Protocol

from schoolmon.policy.models import ReadingStatus


class ThresholdSource(Protocol):
    """Anything exposing the four threshold attributes."""

    temp_min: Any
    temp_max: Any
    hum_min: Any
    hum_max: Any


def _within(value: float, lower: Any, upper: Any) -> bool:
    """Inclusive band check; non-finite values are never within."""
    try:
        value = float(value)
    except (TypeError, ValueError, OverflowError):
        return False
    if not math.isfinite(value):
        return False
    return float(lower) <= value <= float(upper)


def evaluate_reading_status(
    temperature: float,
    humidity: float,
    settings: ThresholdSource,
) -> ReadingStatus:
    """
    Classify a reading against the settings thresholds.

    Args:
        temperature: Temperature in degrees Celsius
        humidity: Relative humidity in percent
        settings: MonitoringSettings or Thresholds

    Returns:
        ReadingStatus.OK, WARNING or CRITICAL
    """
    out_of_range = 0
    if not _within(temperature, settings.temp_min, settings.temp_max):
        out_of_range += 1
    if not _within(humidity, settings.hum_min, settings.hum_max):
        out_of_range += 1

    if out_of_range == 0:
        return ReadingStatus.OK
    if out_of_range == 1:
        return ReadingStatus.WARNING
    return ReadingStatus.CRITICAL
