"""
Tests for the command line interface.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from schoolmon.cli import main


@pytest.fixture
def run(sample_config: Path, temp_dir: Path, capsys):
    """Run the CLI against a scratch database and return (code, output)."""
    db_path = temp_dir / "cli.db"

    def _run(*argv: str, as_json: bool = True):
        args = ["-c", str(sample_config), "--db", str(db_path)]
        if as_json:
            args.append("--json")
        code = main([*args, *argv])
        captured = capsys.readouterr()
        return code, captured.out, captured.err

    return _run


def _json(out: str):
    return json.loads(out)


class TestSetupCommands:
    """Tests for init, rooms, devices and students."""

    def test_no_command_prints_help(self, capsys) -> None:
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()

    def test_init(self, run) -> None:
        code, out, _ = run("init")

        assert code == 0
        data = _json(out)
        assert data["settings"]["unlock_duration_seconds"] == 5

    def test_init_text(self, run) -> None:
        code, out, _ = run("init", as_json=False)

        assert code == 0
        assert "Database ready" in out

    def test_rooms(self, run) -> None:
        code, out, _ = run("rooms", "add", "Sala 1", "-l", "Bloco A")
        assert code == 0
        assert _json(out)["name"] == "Sala 1"

        run("rooms", "add", "Sala 2", "--inactive")

        _, out, _ = run("rooms", "list")
        assert len(_json(out)) == 2

        _, out, _ = run("rooms", "list", "-a")
        assert [r["name"] for r in _json(out)] == ["Sala 1"]

    def test_devices_add_prints_token(self, run) -> None:
        code, out, _ = run("devices", "add", "Portaria", "PORTARIA")

        assert code == 0
        device = _json(out)
        assert device["token"].startswith("dev-")

        _, out, _ = run("devices", "list")
        assert "token" not in _json(out)[0]

    def test_devices_update(self, run) -> None:
        _, out, _ = run("devices", "add", "Portaria", "PORTARIA")
        device = _json(out)

        code, out, _ = run(
            "devices", "update", str(device["id"]), "--inactive", "--regenerate-token"
        )

        assert code == 0
        updated = _json(out)
        assert updated["is_active"] is False
        assert updated["token"] != device["token"]

    def test_devices_update_missing(self, run) -> None:
        code, _, err = run("devices", "update", "999", "--inactive")

        assert code == 1
        assert err.startswith("Error:")

    def test_sala_device_needs_room(self, run) -> None:
        code, _, err = run("devices", "add", "Sensor", "SALA", "-r", "999")

        assert code == 1
        assert "Error:" in err

    def test_students(self, run) -> None:
        code, out, _ = run("students", "add", "Ana", "--id", "42")

        assert code == 0
        assert _json(out) == {"id": 42, "name": "Ana", "is_active": True}

    def test_students_duplicate_id(self, run) -> None:
        run("students", "add", "Ana", "--id", "42")

        code, _, err = run("students", "add", "Bia", "--id", "42")

        assert code == 1
        assert err.startswith("Error: Student id already in use")


class TestSettingsCommand:
    """Tests for settings show/set."""

    def test_show(self, run) -> None:
        code, out, _ = run("settings", "show")

        assert code == 0
        assert _json(out)["temp_min"] == 20.0

    def test_set(self, run) -> None:
        code, out, _ = run(
            "settings", "set",
            "--temp-max", "30",
            "--unlock-duration", "8",
            "--allow-inactive-students",
            "--sensor-model", "SHT35",
        )

        assert code == 0
        data = _json(out)
        assert data["temp_max"] == 30.0
        assert data["unlock_duration_seconds"] == 8
        assert data["allow_only_active_students"] is False
        assert data["hardware_profile"]["telemetry"]["sensorModel"] == "SHT35"

    def test_set_invalid_band(self, run) -> None:
        code, _, err = run("settings", "set", "--hum-min", "80")

        assert code == 1
        assert "hum_min" in err

    def test_show_text(self, run) -> None:
        code, out, _ = run("settings", "show", as_json=False)

        assert code == 0
        assert "Monitoring Settings" in out
        assert "PN532" in out


class TestSimulateCommand:
    """Tests for the simulate subcommands."""

    @pytest.fixture
    def setup_ids(self, run) -> dict[str, int]:
        _, out, _ = run("rooms", "add", "Sala 1")
        room_id = _json(out)["id"]
        _, out, _ = run("devices", "add", "Portaria", "PORTARIA")
        gate_id = _json(out)["id"]
        _, out, _ = run("devices", "add", "Sensor", "SALA", "-r", str(room_id))
        sensor_id = _json(out)["id"]
        _, out, _ = run("students", "add", "Ana")
        student_id = _json(out)["id"]
        _, out, _ = run("students", "add", "Bia", "--inactive")
        inactive_id = _json(out)["id"]
        return {
            "room": room_id,
            "gate": gate_id,
            "sensor": sensor_id,
            "student": student_id,
            "inactive": inactive_id,
        }

    def test_access_allow(self, run, setup_ids: dict[str, int]) -> None:
        code, out, _ = run(
            "simulate", "access", str(setup_ids["gate"]), str(setup_ids["student"]),
            "--card-uid", "04a1b2c3",
        )

        assert code == 0
        assert _json(out) == {
            "skipped": False,
            "result": "ALLOW",
            "reason": "ok",
            "unlock_duration_seconds": 5,
        }

        _, out, _ = run("events")
        events = _json(out)
        assert len(events) == 1
        assert events[0]["card_uid"] == "04A1B2C3"

    def test_access_text(self, run, setup_ids: dict[str, int]) -> None:
        code, out, _ = run(
            "simulate", "access", str(setup_ids["gate"]), str(setup_ids["inactive"]),
            as_json=False,
        )

        assert code == 0
        assert "DENY (inactive_student)" in out

    def test_access_missing_device(self, run, setup_ids: dict[str, int]) -> None:
        code, _, err = run("simulate", "access", "999", str(setup_ids["student"]))

        assert code == 1
        assert "Device not found" in err

    def test_events_filter(self, run, setup_ids: dict[str, int]) -> None:
        run("simulate", "access", str(setup_ids["gate"]), str(setup_ids["student"]))
        run("simulate", "access", str(setup_ids["gate"]), str(setup_ids["inactive"]))

        _, out, _ = run("events", "-r", "DENY")
        events = _json(out)
        assert len(events) == 1
        assert events[0]["student_id"] == setup_ids["inactive"]

    def test_telemetry_and_readings(self, run, setup_ids: dict[str, int]) -> None:
        code, out, _ = run(
            "simulate", "telemetry",
            str(setup_ids["room"]), str(setup_ids["sensor"]), "29", "55",
        )
        assert code == 0
        assert _json(out) == {"ok": True}

        _, out, _ = run("readings", "-r", str(setup_ids["room"]))
        readings = _json(out)
        assert readings[0]["status"] == "WARNING"

    def test_telemetry_rejected(self, run, setup_ids: dict[str, int]) -> None:
        code, out, _ = run(
            "simulate", "telemetry",
            str(setup_ids["room"]), str(setup_ids["gate"]), "24", "55",
            as_json=False,
        )

        assert code == 1
        assert "Rejected: Device is not a room sensor." in out

    def test_batch(self, run, setup_ids: dict[str, int]) -> None:
        code, _, _ = run(
            "simulate", "batch", str(setup_ids["room"]), str(setup_ids["sensor"]), "-n", "5",
        )
        assert code == 0

        _, out, _ = run("readings")
        assert len(_json(out)) == 5

    def test_batch_quantity_out_of_range(self, run, setup_ids: dict[str, int]) -> None:
        code, _, err = run(
            "simulate", "batch", str(setup_ids["room"]), str(setup_ids["sensor"]), "-n", "61",
        )

        assert code == 1
        assert "Error:" in err

    def test_overview(self, run, setup_ids: dict[str, int]) -> None:
        run(
            "simulate", "telemetry",
            str(setup_ids["room"]), str(setup_ids["sensor"]), "35", "90",
        )
        run("simulate", "access", str(setup_ids["gate"]), str(setup_ids["student"]))

        code, out, _ = run("overview")

        assert code == 0
        data = _json(out)
        assert data["cards"]["active_rooms"] == 1
        assert data["cards"]["alerts"] == 1
        assert data["cards"]["last_access_events"] == 1
        assert data["rooms"][0]["status"] == "CRITICAL"

    def test_overview_text(self, run, setup_ids: dict[str, int]) -> None:
        code, out, _ = run("overview", as_json=False)

        assert code == 0
        assert "Monitoring Overview" in out
        assert "NO_READING" in out
