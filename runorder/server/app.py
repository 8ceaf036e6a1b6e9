from __future__ import annotations

import logging
import os
import socket

import flask
import flask_socketio

from runorder.configurations import runorder_config
from runorder.configurations.configuration_constants import (DeviceRoles,
                                                             WireEvents)
from runorder.server import wire
from runorder.server.relay import DeviceRoster, RoomRegistry


def setup_logger(name, log_file, level=logging.INFO):
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if log_file:
        handler = logging.FileHandler(log_file)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)
    logger.propagate = False

    return logger


logger = logging.getLogger(__name__)

CONFIG = runorder_config.RunOrderConfig()

# Connection id -> device role ("tablet" / "desktop")
ROSTER = DeviceRoster()

# Session id -> connection ids; mirrors the Socket.IO rooms for reporting
ROOMS = RoomRegistry()


#######################
# Flask Configuration #
#######################

app = flask.Flask(__name__)
app.config["SECRET_KEY"] = os.getenv("RUNORDER_SECRET_KEY", "secret!")

app.config["DEBUG"] = os.getenv("FLASK_ENV", "production") == "development"

socketio = flask_socketio.SocketIO(
    app,
    cors_allowed_origins="*",
    logger=app.config["DEBUG"],
    ping_interval=CONFIG.ping_interval,
    ping_timeout=CONFIG.ping_timeout,
)


@app.route("/status")
def status():
    presence = ROSTER.tablet_presence()
    return flask.jsonify(
        {
            "tablets": presence.as_dict(),
            "connections": len(ROSTER),
            "rooms": ROOMS.summary(),
        }
    )


def broadcast_presence():
    """Recount tablets from the roster and tell every connection."""
    presence = ROSTER.tablet_presence()
    socketio.emit(WireEvents.PresenceUpdate, presence.as_dict())
    logger.info(f"[Relay] Tablets connected: {presence.count}")


def reject(error: wire.InvalidPayloadError):
    logger.warning(
        f"[Relay] Rejected {error.event} from {flask.request.sid}: {error.message}"
    )
    socketio.emit(
        WireEvents.RelayError,
        {"event": error.event, "message": error.message},
        room=flask.request.sid,
    )


@socketio.on("connect")
def on_connect(auth=None):
    logger.info(f"[Relay] Client connected: {flask.request.sid}")


@socketio.on(WireEvents.RegisterDevice)
def register_device(data):
    try:
        event = wire.parse_register_device(data)
    except wire.InvalidPayloadError as e:
        reject(e)
        return

    previous = ROSTER.register(flask.request.sid, event.role)
    logger.info(
        f"[Relay] {flask.request.sid} registered as {event.role} "
        f"(previously {previous})"
    )
    broadcast_presence()


@socketio.on(WireEvents.JoinRoom)
def join_room(data):
    try:
        event = wire.parse_join_room(data)
    except wire.InvalidPayloadError as e:
        reject(e)
        return

    flask_socketio.join_room(event.session_id)
    if ROOMS.join(event.session_id, flask.request.sid):
        logger.info(f"[Relay] {flask.request.sid} joined room {event.session_id}")


@socketio.on(WireEvents.PublishState)
def publish_state(data):
    try:
        event = wire.parse_publish_state(data)
    except wire.InvalidPayloadError as e:
        reject(e)
        return

    # Everyone in the room except the sender
    flask_socketio.emit(
        WireEvents.PublishState,
        event.snapshot,
        to=event.session_id,
        include_self=False,
    )


@socketio.on(WireEvents.TriggerDisplay)
def trigger_display(data):
    try:
        event = wire.parse_trigger_display(data)
    except wire.InvalidPayloadError as e:
        reject(e)
        return

    flask_socketio.emit(
        WireEvents.TriggerDisplay,
        event.session_id,
        to=event.session_id,
        include_self=False,
    )
    logger.info(f"[Relay] Display trigger sent to room {event.session_id}")


@socketio.on(WireEvents.PublishActivityCatalog)
def publish_activity_catalog(data):
    try:
        event = wire.parse_publish_activity_catalog(data)
    except wire.InvalidPayloadError as e:
        reject(e)
        return

    # The activity catalog is shared across sessions, so it is not room-scoped.
    flask_socketio.emit(
        WireEvents.PublishActivityCatalog,
        event.payload,
        broadcast=True,
        include_self=False,
    )


@socketio.on("disconnect")
def on_disconnect(reason=None):
    sid = flask.request.sid
    role = ROSTER.remove(sid)
    left = ROOMS.leave_all(sid)
    logger.info(
        f"[Relay] Client disconnected: {sid} (role={role}, rooms={left}, reason={reason})"
    )
    if role == DeviceRoles.Tablet:
        broadcast_presence()


def reset_state():
    """Forget every tracked connection and room membership."""
    ROSTER.clear()
    ROOMS.clear()


def run(config: runorder_config.RunOrderConfig):
    global CONFIG
    CONFIG = config
    setup_logger("runorder", config.log_file, level=config.log_level)

    # Heartbeat settings are read by the engine.io server at connect time.
    socketio.server.eio.ping_interval = config.ping_interval
    socketio.server.eio.ping_timeout = config.ping_timeout

    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        local_ip = s.getsockname()[0]
        s.close()
    except OSError:
        local_ip = "unavailable"

    print("\n" + "=" * 70)
    print("runorder relay")
    print("=" * 70)
    print("\nRelay starting on:")
    print(f"  Local:   http://localhost:{config.port}")
    print(f"  Network: http://{local_ip}:{config.port}")
    print("=" * 70 + "\n")

    socketio.run(
        app,
        log_output=app.config["DEBUG"],
        port=config.port,
        host=config.host,
    )
