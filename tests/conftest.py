"""
Pytest configuration and shared fixtures for school monitoring tests.
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Generator

import pytest
import yaml

from schoolmon.audit.database import MonitoringDatabase
from schoolmon.audit.models import Device, Room, Student
from schoolmon.core.processor import MonitoringService


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config(temp_dir: Path) -> Path:
    """Create a sample configuration file."""
    config_path = temp_dir / "schoolmon.yaml"
    config_data = {
        "logging": {
            "level": "debug",
        },
        "database": {
            "path": str(temp_dir / "test.db"),
            "wal_mode": False,
        },
        "simulator": {
            "min_interval_ms": 2000,
        },
        "api": {
            "port": 8080,
            "admin_api_key": "test-admin-key",
        },
    }
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return config_path


@pytest.fixture
def test_db(temp_dir: Path) -> Generator[MonitoringDatabase, None, None]:
    """Create a test database."""
    db = MonitoringDatabase(temp_dir / "test.db")
    yield db
    db.close()


@pytest.fixture
def service(test_db: MonitoringDatabase) -> MonitoringService:
    """Monitoring service over the test database."""
    return MonitoringService(test_db)


@pytest.fixture
def room(test_db: MonitoringDatabase) -> Room:
    """An active classroom."""
    return test_db.add_room("Sala 101", location="Bloco A")


@pytest.fixture
def inactive_room(test_db: MonitoringDatabase) -> Room:
    """A room that is no longer monitored."""
    return test_db.add_room("Sala 999", is_active=False)


@pytest.fixture
def gate(service: MonitoringService) -> Device:
    """An active entrance device."""
    return service.identity.create_device("Portaria Principal", "PORTARIA")


@pytest.fixture
def inactive_gate(service: MonitoringService) -> Device:
    """An entrance device that has been switched off."""
    return service.identity.create_device("Portaria Fundos", "PORTARIA", is_active=False)


@pytest.fixture
def sensor(service: MonitoringService, room: Room) -> Device:
    """An active room sensor bound to the classroom."""
    return service.identity.create_device("Sensor 101", "SALA", room_id=room.id)


@pytest.fixture
def active_student(test_db: MonitoringDatabase) -> Student:
    return test_db.add_student("Ana Souza")


@pytest.fixture
def inactive_student(test_db: MonitoringDatabase) -> Student:
    return test_db.add_student("Bruno Lima", is_active=False)
