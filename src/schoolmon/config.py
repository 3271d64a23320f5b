"""
Configuration management for the school monitoring core.

Handles loading, validation, and access to service configuration.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


# Default configuration paths
DEFAULT_CONFIG_PATH = Path("/etc/schoolmon/schoolmon.yaml")
DEFAULT_DB_PATH = Path("/var/lib/schoolmon/monitoring.db")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class LoggingConfig:
    """Logging settings."""

    level: str = "info"
    file: str | None = None
    format: str = LOG_FORMAT


@dataclass
class DatabaseConfig:
    """Database settings."""

    path: str = str(DEFAULT_DB_PATH)
    wal_mode: bool = True


@dataclass
class SimulatorConfig:
    """Hardware simulator settings."""

    # Minimum gap between automated access events per device
    min_interval_ms: int = 5000


@dataclass
class APIConfig:
    """HTTP adapter settings."""

    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: list[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"]
    )
    admin_api_key: str | None = None

    def __post_init__(self) -> None:
        # Load admin key from environment if not set
        if self.admin_api_key is None:
            self.admin_api_key = os.environ.get("SCHOOLMON_ADMIN_API_KEY")


@dataclass
class MonitoringConfig:
    """Main configuration container."""

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    simulator: SimulatorConfig = field(default_factory=SimulatorConfig)
    api: APIConfig = field(default_factory=APIConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MonitoringConfig:
        """Create configuration from dictionary."""
        return cls(
            logging=LoggingConfig(**data.get("logging", {})),
            database=DatabaseConfig(**data.get("database", {})),
            simulator=SimulatorConfig(**data.get("simulator", {})),
            api=APIConfig(**data.get("api", {})),
        )


def load_config(path: str | Path | None = None) -> MonitoringConfig:
    """
    Load configuration from YAML file.

    Args:
        path: Path to configuration file. If None, uses default paths.

    Returns:
        MonitoringConfig instance with loaded settings.

    Raises:
        FileNotFoundError: If an explicit config file does not exist.
        yaml.YAMLError: If config file is invalid YAML.
    """
    if path is None:
        candidates = [
            DEFAULT_CONFIG_PATH,
            Path("config/schoolmon.yaml"),
            Path("schoolmon.yaml"),
        ]
        for candidate in candidates:
            if candidate.exists():
                path = candidate
                break

    if path is None:
        return MonitoringConfig()

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path) as f:
        data = yaml.safe_load(f) or {}

    return MonitoringConfig.from_dict(data)


def validate_config(config: MonitoringConfig) -> list[str]:
    """
    Validate configuration and return list of errors.

    Args:
        config: Configuration to validate.

    Returns:
        List of error messages. Empty list if valid.
    """
    errors: list[str] = []

    valid_log_levels = {"debug", "info", "warning", "error"}
    if config.logging.level not in valid_log_levels:
        errors.append(f"Invalid log level: {config.logging.level}")

    if config.simulator.min_interval_ms < 0:
        errors.append(
            f"Invalid simulator min_interval_ms: {config.simulator.min_interval_ms}"
        )

    if not (1 <= config.api.port <= 65535):
        errors.append(f"Invalid API port: {config.api.port}")

    if not config.database.path:
        errors.append("Database path must not be empty")

    return errors


def setup_logging(config: MonitoringConfig) -> None:
    """Configure root logging from the logging section."""
    level = getattr(logging, config.logging.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=config.logging.format, datefmt=LOG_DATE_FORMAT)

    if config.logging.file:
        handler = logging.FileHandler(config.logging.file)
        handler.setFormatter(logging.Formatter(config.logging.format, LOG_DATE_FORMAT))
        logging.getLogger("schoolmon").addHandler(handler)
