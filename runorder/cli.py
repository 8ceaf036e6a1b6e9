"""Command line entry points.

    runorder relay                  run the relay server
    runorder console SESSION_ID     drive a live session from stdin
    runorder display SESSION_ID     show a live session, then wait for display triggers
    runorder register ROLE          persist this device's role
"""

from __future__ import annotations

import argparse
import logging
import sys

from runorder.configurations.configuration_constants import DeviceRoles
from runorder.configurations.runorder_config import RunOrderConfig

logger = logging.getLogger(__name__)

CONSOLE_HELP = """Commands:
  next                      leave the current item
  pause                     start / pause the timer
  msg TEXT                  show a message on the display
  clear                     hide the message now
  unforeseen [NAME]         insert an unforeseen item after the current one
  add NAME [MINUTES] [LEADER]
                            append an item
  display                   open / close the audience display
  quit                      leave the console"""


def build_config(args: argparse.Namespace) -> RunOrderConfig:
    config = (
        RunOrderConfig()
        .relay(url=args.relay_url)
        .storage(data_dir=args.data_dir)
        .logging(log_file=args.log_file, level=args.log_level)
    )
    if getattr(args, "port", None) is not None:
        config.hosting(port=args.port)
    if getattr(args, "host", None) is not None:
        config.hosting(host=args.host)
    return config


def configure_logging(config: RunOrderConfig) -> None:
    from runorder.server.app import setup_logger

    setup_logger("runorder", config.log_file, level=config.log_level)


def handle_command(controller, line: str) -> bool:
    """Apply one operator command. Returns False when the console should exit."""
    command, _, rest = line.strip().partition(" ")
    command = command.lower()
    rest = rest.strip()

    if not command:
        return True
    if command in ("quit", "exit"):
        return False

    if command == "next":
        controller.advance()
    elif command == "pause":
        controller.toggle_running()
    elif command == "msg":
        controller.send_message(rest)
    elif command == "clear":
        controller.clear_message()
    elif command == "unforeseen":
        controller.insert_unforeseen(rest or None)
    elif command == "add":
        parts = rest.split(" ", 2)
        name = parts[0] if parts and parts[0] else ""
        if not name:
            print("add needs a NAME")
            return True
        minutes = parts[1] if len(parts) > 1 else 0
        leader = parts[2] if len(parts) > 2 else ""
        controller.append_item(name, leader=leader, planned_minutes=minutes)
    elif command == "display":
        controller.toggle_display()
    else:
        print(CONSOLE_HELP)
        return True

    return not controller.finished


def run_relay(args: argparse.Namespace) -> int:
    from runorder.server import app

    app.run(build_config(args))
    return 0


def run_console(args: argparse.Namespace) -> int:
    import eventlet
    from eventlet import tpool

    from runorder.client.connection import ConnectionAdapter, DeviceRoleStore
    from runorder.session.controller import SessionController
    from runorder.session.publisher import SnapshotPublisher
    from runorder.session.store import (JsonSessionRepository,
                                        PersistenceError,
                                        SessionNotFoundError, SnapshotStore)

    config = build_config(args)
    configure_logging(config)

    repository = JsonSessionRepository(config.sessions_path)
    connection = ConnectionAdapter(config, DeviceRoleStore(config.device_role_path))
    publisher = SnapshotPublisher(SnapshotStore(config.snapshot_dir), connection)

    try:
        controller = SessionController.load(
            args.session_id, repository, publisher, config=config
        )
    except (SessionNotFoundError, PersistenceError) as e:
        logger.error(f"[Console] {e}")
        list_sessions(repository)
        return 1

    # Blocks until the relay is reached; the console works offline meanwhile.
    eventlet.spawn(connection.connect)
    connection.join_room(controller.session_id)
    controller.start()
    print(CONSOLE_HELP)

    try:
        while True:
            line = tpool.execute(sys.stdin.readline)
            if not line:
                break
            if not handle_command(controller, line):
                break
    except KeyboardInterrupt:
        pass
    finally:
        shutdown_console(controller, connection)
    return 0


def shutdown_console(controller, connection) -> None:
    """Stop ticking and leave the relay.

    The tick loop no longer repairs a lost terminal snapshot, so a finished
    session's last snapshot is sent once more before disconnecting.
    """
    import eventlet

    controller.stop()
    if controller.finished:
        controller.publisher.republish()
    eventlet.sleep(controller.config.tick_interval)
    connection.disconnect()


def list_sessions(repository) -> None:
    """The safe default view: what can be opened instead."""
    from runorder.session.store import PersistenceError

    try:
        sessions = repository.list_sessions()
    except PersistenceError as e:
        logger.error(f"[Console] {e}")
        return

    print("Available sessions:")
    for session in sessions:
        print(f"  {session.id}  {session.date or '':10}  {session.theme}  [{session.status}]")


def build_display_station(config, connection, store, renderer_factory=None):
    """Wire a DisplayLauncher that mounts displays fed by both channels.

    The station stays in every room it mounted a display for, so a display
    closed by the operator can be reopened by a later ``trigger_display``.
    """
    from runorder.display.channels import (DisplayLauncher, LocalStoreChannel,
                                           RoomChannel)
    from runorder.display.reconciler import DisplayReconciler
    from runorder.display.renderers import ConsoleRenderer

    renderer_factory = renderer_factory or ConsoleRenderer
    room = RoomChannel(connection)
    room.attach()

    def mount(session_id: str) -> DisplayReconciler:
        reconciler = DisplayReconciler(session_id, renderer_factory(), config=config)
        room.add(reconciler)
        LocalStoreChannel(store, reconciler, interval=config.store_poll_interval).start()
        return reconciler

    launcher = DisplayLauncher(connection, mount)
    launcher.attach()
    return launcher


def run_display(args: argparse.Namespace) -> int:
    import eventlet

    from runorder.client.connection import ConnectionAdapter, DeviceRoleStore
    from runorder.session.store import SnapshotStore

    config = build_config(args)
    configure_logging(config)

    connection = ConnectionAdapter(config, DeviceRoleStore(config.device_role_path))
    launcher = build_display_station(config, connection, SnapshotStore(config.snapshot_dir))
    eventlet.spawn(connection.connect)
    launcher.open(args.session_id)

    waiting = False
    try:
        while True:
            idle = all(d.closed for d in launcher.displays.values())
            if idle and not waiting:
                logger.info("[Display] All displays closed, waiting for a display trigger")
            waiting = idle
            eventlet.sleep(config.store_poll_interval)
    except KeyboardInterrupt:
        pass
    finally:
        connection.disconnect()
    return 0


def run_register(args: argparse.Namespace) -> int:
    from runorder.client.connection import DeviceRoleStore

    config = build_config(args)
    DeviceRoleStore(config.device_role_path).write(args.role)
    print(f"This device is now registered as {args.role}.")
    return 0


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="runorder", description="Live running-order synchronization."
    )
    parser.add_argument("--relay-url", default=None, help="Relay URL for consoles and displays")
    parser.add_argument("--data-dir", default=None, help="Directory holding sessions and live state")
    parser.add_argument("--log-file", default="./runorder.log", help="Log file path")
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    relay = subparsers.add_parser("relay", help="Run the relay server")
    relay.add_argument("--host", default=None, help="Interface to bind")
    relay.add_argument("--port", type=int, default=None, help="Port number to listen on")
    relay.set_defaults(func=run_relay)

    console = subparsers.add_parser("console", help="Drive a live session")
    console.add_argument("session_id")
    console.set_defaults(func=run_console)

    display = subparsers.add_parser("display", help="Show a live session")
    display.add_argument("session_id")
    display.set_defaults(func=run_display)

    register = subparsers.add_parser("register", help="Persist this device's role")
    register.add_argument("role", choices=[DeviceRoles.Tablet, DeviceRoles.Desktop])
    register.set_defaults(func=run_register)

    return parser


def main(argv: list[str] | None = None) -> int:
    import eventlet

    eventlet.monkey_patch()

    args = make_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
