"""
Hardware profile resolution.

Normalizes a possibly partial, legacy or corrupt hardware-profile blob into
a canonical HardwareProfile. Resolution is total: each nested field is
checked on its own and replaced by its default when invalid, so a stale
stored profile can never stop the monitoring core from operating.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Mapping
from typing import Any

from schoolmon.errors import ConfigError
from schoolmon.policy.models import (
    DEFAULT_ACCESS_ENDPOINT,
    DEFAULT_FREQUENCY_MHZ,
    DEFAULT_I2C_ADDRESS,
    DEFAULT_SENSOR_MODEL,
    DEFAULT_TELEMETRY_ENDPOINT,
    AccessProfile,
    Connectivity,
    Esp32Profile,
    HardwareProfile,
    ReaderModel,
    SensorModel,
    TelemetryProfile,
    Transport,
)


logger = logging.getLogger(__name__)

I2C_ADDRESS_PATTERN = re.compile(r"^0[xX]([0-9A-Fa-f]{2})$")


def _section(data: Mapping[str, Any], *keys: str) -> Mapping[str, Any]:
    """Return the first nested mapping found under any of keys."""
    for key in keys:
        value = data.get(key)
        if isinstance(value, Mapping):
            return value
    return {}


def _pick(data: Mapping[str, Any], *keys: str) -> Any:
    """Return the first present value among camelCase/snake_case aliases."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return None


def _parse_sensor_model(value: Any) -> SensorModel:
    if isinstance(value, SensorModel):
        return value
    if isinstance(value, str):
        try:
            return SensorModel(value.strip().upper())
        except ValueError:
            pass
    raise ConfigError(f"Unknown sensor model: {value!r}")


def _parse_supported_models(value: Any) -> tuple[SensorModel, ...]:
    if not isinstance(value, (list, tuple)):
        raise ConfigError(f"Supported sensor models must be a list: {value!r}")

    found = set()
    for item in value:
        try:
            found.add(_parse_sensor_model(item))
        except ConfigError:
            logger.debug("Ignoring unknown supported sensor model %r", item)

    if not found:
        raise ConfigError("No known sensor model in supported list")

    # Canonical order keeps the result stable across re-resolution
    return tuple(m for m in SensorModel if m in found)


def _parse_i2c_address(value: Any) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        if 0 <= value <= 0xFF:
            return f"0x{value:02X}"
        raise ConfigError(f"I2C address out of range: {value}")

    if isinstance(value, str):
        match = I2C_ADDRESS_PATTERN.match(value.strip())
        if match:
            return f"0x{match.group(1).upper()}"

    raise ConfigError(f"Invalid I2C address: {value!r}")


def _parse_endpoint(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value.strip()
    raise ConfigError(f"Invalid endpoint: {value!r}")


def _parse_frequency(value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigError(f"Invalid frequency: {value!r}")
    try:
        frequency = float(value)
    except (TypeError, ValueError, OverflowError):
        raise ConfigError(f"Invalid frequency: {value!r}") from None
    if not math.isfinite(frequency) or frequency <= 0:
        raise ConfigError(f"Frequency must be positive: {value!r}")
    return frequency


def _resolve_field(parser, value: Any, default: Any, name: str) -> Any:
    """Apply parser to value, falling back to default on ConfigError."""
    if value is None:
        return default
    try:
        return parser(value)
    except ConfigError as e:
        logger.debug("Hardware profile %s replaced by default: %s", name, e)
        return default


def _coerce_mapping(raw: Any) -> Mapping[str, Any]:
    if isinstance(raw, HardwareProfile):
        return raw.to_dict()
    if isinstance(raw, Mapping):
        return raw
    if isinstance(raw, (str, bytes)):
        try:
            decoded = json.loads(raw)
        except (ValueError, RecursionError):
            logger.debug("Hardware profile is not valid JSON, using defaults")
            return {}
        if isinstance(decoded, Mapping):
            return decoded
    return {}


def _resolve_telemetry(data: Mapping[str, Any]) -> TelemetryProfile:
    section = _section(data, "telemetry")

    supported = _resolve_field(
        _parse_supported_models,
        _pick(section, "supportedSensorModels", "supported_sensor_models"),
        tuple(SensorModel),
        "telemetry.supportedSensorModels",
    )

    fallback = DEFAULT_SENSOR_MODEL if DEFAULT_SENSOR_MODEL in supported else supported[0]
    sensor_model = _resolve_field(
        _parse_sensor_model,
        _pick(section, "sensorModel", "sensor_model"),
        fallback,
        "telemetry.sensorModel",
    )
    if sensor_model not in supported:
        logger.debug("Sensor model %s not supported, using %s", sensor_model, fallback)
        sensor_model = fallback

    return TelemetryProfile(
        sensor_model=sensor_model,
        supported_sensor_models=supported,
        i2c_address=_resolve_field(
            _parse_i2c_address,
            _pick(section, "i2cAddress", "i2c_address"),
            DEFAULT_I2C_ADDRESS,
            "telemetry.i2cAddress",
        ),
        endpoint=_resolve_field(
            _parse_endpoint,
            section.get("endpoint"),
            DEFAULT_TELEMETRY_ENDPOINT,
            "telemetry.endpoint",
        ),
    )


def _resolve_access(data: Mapping[str, Any]) -> AccessProfile:
    section = _section(data, "access")

    return AccessProfile(
        # Single supported reader today
        reader_model=ReaderModel.PN532,
        frequency_mhz=_resolve_field(
            _parse_frequency,
            _pick(section, "frequencyMHz", "frequency_mhz", "frequencyMhz"),
            DEFAULT_FREQUENCY_MHZ,
            "access.frequencyMHz",
        ),
        endpoint=_resolve_field(
            _parse_endpoint,
            section.get("endpoint"),
            DEFAULT_ACCESS_ENDPOINT,
            "access.endpoint",
        ),
    )


def resolve_hardware_profile(raw: Any) -> HardwareProfile:
    """
    Resolve a stored or submitted hardware profile.

    Accepts None, a mapping (canonical camelCase keys or legacy snake_case
    keys), a JSON string, or an already resolved HardwareProfile. Never
    raises; invalid fields are replaced by their documented defaults.

    Args:
        raw: Raw hardware profile data

    Returns:
        Canonical HardwareProfile
    """
    data = _coerce_mapping(raw)

    return HardwareProfile(
        transport=Transport.HTTP_REST,
        esp32=Esp32Profile(connectivity=Connectivity.WIFI),
        telemetry=_resolve_telemetry(data),
        access=_resolve_access(data),
    )
