"""
School Monitoring Command Line Interface.

Provides commands for managing the monitoring core:
- init: Create the database and default settings
- settings: Show and change monitoring settings
- rooms: List and add rooms
- devices: List and manage devices and their tokens
- students: Add demo students
- simulate: Simulate RFID reads and sensor readings
- events: Query the access log
- readings: Query telemetry with derived status
- overview: Show the monitoring summary
- serve: Run the HTTP API
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from schoolmon import __version__
from schoolmon.audit.database import MonitoringDatabase
from schoolmon.config import MonitoringConfig, load_config, setup_logging, validate_config
from schoolmon.core.processor import MonitoringService
from schoolmon.errors import MonitoringError
from schoolmon.policy.models import DeviceType, SensorModel


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        prog="schoolmon",
        description="School access control and environmental monitoring",
    )
    parser.add_argument(
        "-V", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-c", "--config",
        metavar="FILE",
        help="Path to configuration file",
    )
    parser.add_argument(
        "--db",
        metavar="PATH",
        help="Override the database path",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output in JSON format",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Create database and defaults")
    init_parser.set_defaults(func=cmd_init)

    # settings command
    settings_parser = subparsers.add_parser("settings", help="Monitoring settings")
    settings_sub = settings_parser.add_subparsers(dest="settings_cmd")

    settings_sub.add_parser("show", help="Show current settings")

    set_parser = settings_sub.add_parser("set", help="Change settings")
    set_parser.add_argument("--temp-min", type=float)
    set_parser.add_argument("--temp-max", type=float)
    set_parser.add_argument("--hum-min", type=float)
    set_parser.add_argument("--hum-max", type=float)
    set_parser.add_argument("--telemetry-interval", type=int, dest="telemetry_interval_seconds")
    set_parser.add_argument("--unlock-duration", type=int, dest="unlock_duration_seconds")
    set_parser.add_argument(
        "--allow-inactive-students",
        dest="allow_only_active_students",
        action="store_const",
        const=False,
        help="Let inactive students through",
    )
    set_parser.add_argument(
        "--only-active-students",
        dest="allow_only_active_students",
        action="store_const",
        const=True,
        help="Deny inactive students",
    )
    set_parser.add_argument(
        "--sensor-model",
        choices=[m.value for m in SensorModel],
    )
    set_parser.add_argument("--i2c-address", help="Sensor I2C address, e.g. 0x44")
    set_parser.add_argument("--frequency", type=float, help="RFID frequency in MHz")

    settings_parser.set_defaults(func=cmd_settings)

    # rooms command
    rooms_parser = subparsers.add_parser("rooms", help="List and add rooms")
    rooms_sub = rooms_parser.add_subparsers(dest="rooms_cmd")

    rooms_list = rooms_sub.add_parser("list", help="List rooms")
    rooms_list.add_argument("-a", "--active", action="store_true", help="Only active rooms")

    rooms_add = rooms_sub.add_parser("add", help="Add a room")
    rooms_add.add_argument("name", help="Room name")
    rooms_add.add_argument("-l", "--location", help="Room location")
    rooms_add.add_argument("--inactive", action="store_true", help="Create inactive")

    rooms_parser.set_defaults(func=cmd_rooms)

    # devices command
    devices_parser = subparsers.add_parser("devices", help="List and manage devices")
    devices_sub = devices_parser.add_subparsers(dest="devices_cmd")

    dev_list = devices_sub.add_parser("list", help="List devices")
    dev_list.add_argument("--type", choices=[t.value for t in DeviceType])

    dev_add = devices_sub.add_parser("add", help="Register a device")
    dev_add.add_argument("name", help="Device name")
    dev_add.add_argument("type", choices=[t.value for t in DeviceType])
    dev_add.add_argument("-r", "--room", type=int, help="Room id (SALA only)")
    dev_add.add_argument("--inactive", action="store_true", help="Create inactive")

    dev_update = devices_sub.add_parser("update", help="Update a device")
    dev_update.add_argument("device_id", type=int)
    dev_update.add_argument("--name")
    dev_update.add_argument("--type", choices=[t.value for t in DeviceType])
    dev_update.add_argument("-r", "--room", type=int)
    dev_update.add_argument("--unbind", action="store_true", help="Clear the room")
    dev_update.add_argument("--active", dest="is_active", action="store_const", const=True)
    dev_update.add_argument("--inactive", dest="is_active", action="store_const", const=False)
    dev_update.add_argument(
        "--regenerate-token",
        action="store_true",
        help="Issue a new device token",
    )

    dev_delete = devices_sub.add_parser("delete", help="Delete a device")
    dev_delete.add_argument("device_id", type=int)

    devices_parser.set_defaults(func=cmd_devices)

    # students command
    students_parser = subparsers.add_parser("students", help="Manage demo students")
    students_sub = students_parser.add_subparsers(dest="students_cmd")

    stu_add = students_sub.add_parser("add", help="Add a student")
    stu_add.add_argument("name", help="Student name")
    stu_add.add_argument("--id", type=int, dest="student_id", help="Explicit student id")
    stu_add.add_argument("--inactive", action="store_true", help="Create inactive")

    students_parser.set_defaults(func=cmd_students)

    # simulate command
    sim_parser = subparsers.add_parser("simulate", help="Simulate hardware events")
    sim_sub = sim_parser.add_subparsers(dest="simulate_cmd")

    sim_access = sim_sub.add_parser("access", help="Simulate an RFID read")
    sim_access.add_argument("device_id", type=int)
    sim_access.add_argument("student_id", type=int)
    sim_access.add_argument("--card-uid", help="Card UID (4-32 hex chars)")
    sim_access.add_argument("--at", dest="occurred_at", help="ISO-8601 time of the read")
    sim_access.add_argument("--source", choices=["manual", "auto"], default="manual")

    sim_telemetry = sim_sub.add_parser("telemetry", help="Simulate a sensor reading")
    sim_telemetry.add_argument("room_id", type=int)
    sim_telemetry.add_argument("device_id", type=int)
    sim_telemetry.add_argument("temperature", type=float)
    sim_telemetry.add_argument("humidity", type=float)
    sim_telemetry.add_argument("--sensor-model")
    sim_telemetry.add_argument("--i2c-address")
    sim_telemetry.add_argument("--at", dest="measured_at", help="ISO-8601 measurement time")

    sim_batch = sim_sub.add_parser("batch", help="Generate a series of readings")
    sim_batch.add_argument("room_id", type=int)
    sim_batch.add_argument("device_id", type=int)
    sim_batch.add_argument("--temperature", type=float, default=24.0)
    sim_batch.add_argument("--humidity", type=float, default=55.0)
    sim_batch.add_argument("--variation", type=float, default=1.5)
    sim_batch.add_argument("--interval", type=int, default=60, help="Seconds between readings")
    sim_batch.add_argument("-n", "--quantity", type=int, default=12)

    sim_parser.set_defaults(func=cmd_simulate)

    # events command
    events_parser = subparsers.add_parser("events", help="Query the access log")
    events_parser.add_argument(
        "-n", "--limit",
        type=int,
        default=20,
        help="Number of events to show",
    )
    events_parser.add_argument("-d", "--device", type=int, help="Filter by device id")
    events_parser.add_argument("-s", "--student", type=int, help="Filter by student id")
    events_parser.add_argument("-r", "--result", choices=["ALLOW", "DENY"])
    events_parser.set_defaults(func=cmd_events)

    # readings command
    readings_parser = subparsers.add_parser("readings", help="Query telemetry readings")
    readings_parser.add_argument("-n", "--limit", type=int, default=20)
    readings_parser.add_argument("-r", "--room", type=int, help="Filter by room id")
    readings_parser.set_defaults(func=cmd_readings)

    # overview command
    overview_parser = subparsers.add_parser("overview", help="Show monitoring summary")
    overview_parser.set_defaults(func=cmd_overview)

    # serve command
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", help="Bind address")
    serve_parser.add_argument("--port", type=int, help="Bind port")
    serve_parser.set_defaults(func=cmd_serve)

    # Parse arguments
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    # Execute command
    try:
        return args.func(args)
    except MonitoringError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def get_config(args: argparse.Namespace) -> MonitoringConfig:
    """Load configuration, applying command line overrides."""
    config = load_config(args.config)
    if args.db:
        config.database.path = args.db
    return config


def get_service(args: argparse.Namespace) -> MonitoringService:
    """Get monitoring service from config."""
    config = get_config(args)
    db = MonitoringDatabase(config.database.path, wal_mode=config.database.wal_mode)
    return MonitoringService(db, min_interval_ms=config.simulator.min_interval_ms)


def output(data: Any, args: argparse.Namespace) -> None:
    """Output data in requested format."""
    if getattr(args, "json", False):
        print(json.dumps(data, indent=2, default=str))
    elif isinstance(data, dict):
        for key, value in data.items():
            print(f"{key}: {value}")
    elif isinstance(data, list):
        for item in data:
            if isinstance(item, dict):
                for key, value in item.items():
                    print(f"  {key}: {value}")
                print()
            else:
                print(f"  {item}")
    else:
        print(data)


def cmd_init(args: argparse.Namespace) -> int:
    """Create the database and default settings."""
    config = get_config(args)

    errors = validate_config(config)
    if errors:
        for error in errors:
            print(f"Config error: {error}", file=sys.stderr)
        return 1

    service = get_service(args)
    try:
        settings = service.get_settings()
        if getattr(args, "json", False):
            output({"database": config.database.path, "settings": settings.to_dict()}, args)
        else:
            print(f"Database ready: {config.database.path}")
        return 0
    finally:
        service.db.close()


def cmd_settings(args: argparse.Namespace) -> int:
    """Show and change monitoring settings."""
    service = get_service(args)

    try:
        if args.settings_cmd == "set":
            changes = {
                name: getattr(args, name)
                for name in (
                    "temp_min", "temp_max", "hum_min", "hum_max",
                    "telemetry_interval_seconds", "unlock_duration_seconds",
                    "allow_only_active_students",
                )
                if getattr(args, name) is not None
            }

            profile_changes: dict[str, Any] = {}
            if args.sensor_model:
                profile_changes.setdefault("telemetry", {})["sensorModel"] = args.sensor_model
            if args.i2c_address:
                profile_changes.setdefault("telemetry", {})["i2cAddress"] = args.i2c_address
            if args.frequency is not None:
                profile_changes.setdefault("access", {})["frequencyMHz"] = args.frequency

            settings = service.update_settings(hardware_profile=profile_changes or None, **changes)
            if not getattr(args, "json", False):
                print("Settings updated.")
        else:
            settings = service.get_settings()

        if getattr(args, "json", False):
            output(settings.to_dict(), args)
        else:
            profile = settings.hardware_profile
            print("Monitoring Settings")
            print("=" * 50)
            print(f"Temperature:      {settings.temp_min} - {settings.temp_max} C")
            print(f"Humidity:         {settings.hum_min} - {settings.hum_max} %")
            print(f"Telemetry every:  {settings.telemetry_interval_seconds}s")
            print(f"Unlock duration:  {settings.unlock_duration_seconds}s")
            print(f"Active only:      {settings.allow_only_active_students}")
            print(
                f"Sensor:           {profile.telemetry.sensor_model.value} "
                f"@ {profile.telemetry.i2c_address}"
            )
            print(
                f"Reader:           {profile.access.reader_model.value} "
                f"@ {profile.access.frequency_mhz} MHz"
            )

        return 0

    finally:
        service.db.close()


def cmd_rooms(args: argparse.Namespace) -> int:
    """List and add rooms."""
    service = get_service(args)

    try:
        if args.rooms_cmd == "add":
            room = service.db.add_room(
                args.name, location=args.location, is_active=not args.inactive
            )
            if getattr(args, "json", False):
                output(room.to_dict(), args)
            else:
                print(f"Room added: {room.id} ({room.name})")
            return 0

        rooms = service.db.list_rooms(active_only=getattr(args, "active", False))

        if getattr(args, "json", False):
            output([r.to_dict() for r in rooms], args)
        else:
            print(f"Rooms ({len(rooms)} total)")
            print("=" * 60)
            if not rooms:
                print("No rooms found.")
            else:
                print(f"{'ID':<6} {'Name':<24} {'Location':<20} {'Active':<6}")
                print("-" * 60)
                for room in rooms:
                    print(
                        f"{room.id:<6} "
                        f"{room.name[:24]:<24} "
                        f"{(room.location or '-')[:20]:<20} "
                        f"{'yes' if room.is_active else 'no':<6}"
                    )

        return 0

    finally:
        service.db.close()


def cmd_devices(args: argparse.Namespace) -> int:
    """List and manage devices."""
    service = get_service(args)

    try:
        if args.devices_cmd == "add":
            device = service.identity.create_device(
                args.name, args.type, room_id=args.room, is_active=not args.inactive
            )
            if getattr(args, "json", False):
                output(device.to_dict(include_token=True), args)
            else:
                print(f"Device added: {device.id} ({device.name}, {device.type})")
                print(f"Token: {device.token}")

        elif args.devices_cmd == "update":
            current = service.get_device(args.device_id)
            room_id = None if args.unbind else (
                args.room if args.room is not None else current.room_id
            )
            device = service.identity.update_device(
                args.device_id,
                name=args.name or current.name,
                device_type=args.type or current.type,
                room_id=room_id,
                is_active=current.is_active if args.is_active is None else args.is_active,
                regenerate_token=args.regenerate_token,
            )
            if getattr(args, "json", False):
                output(device.to_dict(include_token=args.regenerate_token), args)
            else:
                print(f"Device updated: {device.id}")
                if args.regenerate_token:
                    print(f"Token: {device.token}")

        elif args.devices_cmd == "delete":
            service.db.delete_device(args.device_id)
            print(f"Device deleted: {args.device_id}")

        else:
            devices = service.db.list_devices(device_type=getattr(args, "type", None))

            if getattr(args, "json", False):
                output([d.to_dict() for d in devices], args)
            else:
                print(f"Devices ({len(devices)} total)")
                print("=" * 60)
                if not devices:
                    print("No devices found.")
                else:
                    print(f"{'ID':<6} {'Name':<24} {'Type':<10} {'Room':<6} {'Active':<6}")
                    print("-" * 60)
                    for device in devices:
                        print(
                            f"{device.id:<6} "
                            f"{device.name[:24]:<24} "
                            f"{device.type:<10} "
                            f"{device.room_id or '-':<6} "
                            f"{'yes' if device.is_active else 'no':<6}"
                        )

        return 0

    finally:
        service.db.close()


def cmd_students(args: argparse.Namespace) -> int:
    """Add demo students."""
    if args.students_cmd != "add":
        print("Usage: schoolmon students add NAME [--id ID] [--inactive]")
        return 1

    service = get_service(args)

    try:
        student = service.db.add_student(
            args.name, is_active=not args.inactive, student_id=args.student_id
        )
        if getattr(args, "json", False):
            output(student.to_dict(), args)
        else:
            print(f"Student added: {student.id} ({student.name})")
        return 0

    finally:
        service.db.close()


def cmd_simulate(args: argparse.Namespace) -> int:
    """Simulate hardware events."""
    service = get_service(args)

    try:
        if args.simulate_cmd == "access":
            outcome = service.simulate_access(
                args.device_id,
                args.student_id,
                card_uid=args.card_uid,
                occurred_at=args.occurred_at,
                source=args.source,
            )
            if getattr(args, "json", False):
                output(outcome.to_dict(), args)
            elif outcome.skipped:
                print(f"Skipped: retry in {outcome.rate_limit.retry_after_ms} ms")
            else:
                decision = outcome.decision
                print(
                    f"{decision.result.value} ({decision.reason.value}), "
                    f"unlock {decision.unlock_duration_seconds}s"
                )
            return 0

        if args.simulate_cmd == "telemetry":
            result = service.simulate_telemetry(
                args.room_id,
                args.device_id,
                args.temperature,
                args.humidity,
                sensor_model=args.sensor_model,
                i2c_address=args.i2c_address,
                measured_at=args.measured_at,
            )
        elif args.simulate_cmd == "batch":
            result = service.generate_telemetry_batch(
                args.room_id,
                args.device_id,
                base_temperature=args.temperature,
                base_humidity=args.humidity,
                variation=args.variation,
                interval_seconds=args.interval,
                quantity=args.quantity,
            )
        else:
            print("Usage: schoolmon simulate {access,telemetry,batch} ...")
            return 1

        if getattr(args, "json", False):
            output(result.to_dict(), args)
        elif result.ok:
            print("Reading stored.")
        else:
            print(f"Rejected: {result.reason}")
        return 0 if result.ok else 1

    finally:
        service.db.close()


def cmd_events(args: argparse.Namespace) -> int:
    """Query the access log."""
    service = get_service(args)

    try:
        filters: dict[str, Any] = {}
        if args.device is not None:
            filters["device_id"] = args.device
        if args.student is not None:
            filters["student_id"] = args.student
        if args.result:
            filters["result"] = args.result

        events, total = service.list_access_events(filters=filters, limit=args.limit)

        if getattr(args, "json", False):
            output([e.to_dict() for e in events], args)
        else:
            print(f"Access Log ({len(events)} of {total} events)")
            print("=" * 70)
            if not events:
                print("No events found.")
            else:
                print(f"{'Time':<20} {'Device':<8} {'Student':<8} {'Result':<7} {'Reason':<18}")
                print("-" * 70)
                for event in events:
                    time_str = event.occurred_at.strftime("%Y-%m-%d %H:%M:%S")
                    print(
                        f"{time_str:<20} "
                        f"{event.device_id:<8} "
                        f"{event.student_id:<8} "
                        f"{event.result:<7} "
                        f"{event.reason:<18}"
                    )

        return 0

    finally:
        service.db.close()


def cmd_readings(args: argparse.Namespace) -> int:
    """Query telemetry readings with their status."""
    service = get_service(args)

    try:
        views, total = service.list_readings(room_id=args.room, limit=args.limit)

        if getattr(args, "json", False):
            output([v.to_dict() for v in views], args)
        else:
            print(f"Telemetry ({len(views)} of {total} readings)")
            print("=" * 70)
            if not views:
                print("No readings found.")
            else:
                print(f"{'Time':<20} {'Room':<6} {'Temp':>7} {'Hum':>7}  {'Status':<9}")
                print("-" * 70)
                for view in views:
                    reading = view.reading
                    time_str = reading.measured_at.strftime("%Y-%m-%d %H:%M:%S")
                    print(
                        f"{time_str:<20} "
                        f"{reading.room_id:<6} "
                        f"{reading.temperature:>7.2f} "
                        f"{reading.humidity:>7.2f}  "
                        f"{view.status.value:<9}"
                    )

        return 0

    finally:
        service.db.close()


def cmd_overview(args: argparse.Namespace) -> int:
    """Show the monitoring summary."""
    service = get_service(args)

    try:
        data = service.overview()

        if getattr(args, "json", False):
            output(data, args)
        else:
            cards = data["cards"]
            print("Monitoring Overview")
            print("=" * 50)
            print(f"Active rooms:     {cards['active_rooms']}")
            print(f"With readings:    {cards['rooms_with_latest_reading']}")
            print(f"Alerts:           {cards['alerts']}")
            print()
            print("Rooms:")
            for room in data["rooms"]:
                print(f"  {room['name']:<24} {room['status']}")
            print()
            print("Recent access events:")
            for event in data["last_access_events"]:
                print(
                    f"  {event['occurred_at']}  device {event['device_id']}  "
                    f"student {event['student_id']}  {event['result']} ({event['reason']})"
                )

        return 0

    finally:
        service.db.close()


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API (requires uvicorn)."""
    import uvicorn

    from schoolmon.api import configure_services, create_app

    config = get_config(args)
    errors = validate_config(config)
    if errors:
        for error in errors:
            print(f"Config error: {error}", file=sys.stderr)
        return 1

    setup_logging(config)

    app = create_app(
        debug=config.logging.level == "debug",
        cors_origins=config.api.cors_origins,
    )
    service = get_service(args)
    configure_services(app, service=service, admin_api_key=config.api.admin_api_key)

    try:
        uvicorn.run(
            app,
            host=args.host or config.api.host,
            port=args.port or config.api.port,
            log_level=config.logging.level,
            access_log=False,
        )
    finally:
        service.db.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
