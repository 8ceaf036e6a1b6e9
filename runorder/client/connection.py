"""Client side of the relay connection.

A ConnectionAdapter owns one Socket.IO connection for a console or display
process. It registers the persisted device role and re-joins every room it
joined before, each time the connection comes up, so a dropped connection
heals itself once the client reconnects.
"""

from __future__ import annotations

import json
import logging
import os
import typing

import socketio
from socketio import exceptions as socketio_exceptions

from runorder.configurations.configuration_constants import (DeviceRoles,
                                                             WireEvents)
from runorder.configurations.runorder_config import RunOrderConfig

logger = logging.getLogger(__name__)


class DeviceRoleStore:
    """Persisted device role, read on every connect.

    A missing or unreadable file means "desktop"; storing "desktop" removes
    the file.
    """

    def __init__(self, path: str):
        self.path = path

    def read(self) -> str:
        try:
            with open(self.path, encoding="utf-8") as f:
                role = json.load(f).get("role")
        except FileNotFoundError:
            return DeviceRoles.Desktop
        except (OSError, ValueError, AttributeError) as e:
            logger.warning(f"[DeviceRole] Ignoring unreadable {self.path}: {e}")
            return DeviceRoles.Desktop
        return role if isinstance(role, str) and role else DeviceRoles.Desktop

    def write(self, role: str) -> None:
        if role == DeviceRoles.Desktop:
            if os.path.exists(self.path):
                os.remove(self.path)
            return

        os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"role": role}, f)


class ConnectionAdapter:
    def __init__(
        self,
        config: RunOrderConfig,
        role_store: DeviceRoleStore,
        client: socketio.Client | None = None,
    ):
        self.config = config
        self.role_store = role_store
        self.client = client if client is not None else socketio.Client(
            reconnection=True
        )
        self.rooms: list[str] = []
        self.tablet_connected: bool = False
        self.tablet_count: int = 0

        self.client.on("connect", self._on_connect)
        self.client.on("disconnect", self._on_disconnect)
        self.client.on(WireEvents.PresenceUpdate, self._on_presence_update)
        self.client.on(WireEvents.RelayError, self._on_relay_error)

    @property
    def connected(self) -> bool:
        return bool(self.client.connected)

    def connect(self, retry: bool = True) -> bool:
        """Connect to the relay.

        With ``retry`` the client's reconnection backoff also covers a relay
        that is down at startup, and the call blocks until it is reached.
        """
        try:
            self.client.connect(self.config.relay_url, retry=retry)
        except socketio_exceptions.ConnectionError as e:
            # The client keeps no queue; callers carry on and republish on
            # the next tick.
            logger.error(f"[Connection] Cannot reach relay at {self.config.relay_url}: {e}")
            return False
        return True

    def disconnect(self) -> None:
        if self.connected:
            self.client.disconnect()

    def on(self, event: str, handler: typing.Callable) -> None:
        self.client.on(event, handler)

    def _emit(self, event: str, data) -> bool:
        if not self.connected:
            logger.debug(f"[Connection] Dropping {event}: not connected")
            return False
        try:
            self.client.emit(event, data)
        except socketio_exceptions.SocketIOError as e:
            logger.warning(f"[Connection] Failed to emit {event}: {e}")
            return False
        return True

    def _on_connect(self):
        logger.info(f"[Connection] Connected to relay {self.config.relay_url}")
        self._emit(WireEvents.RegisterDevice, self.role_store.read())
        for session_id in self.rooms:
            self._emit(WireEvents.JoinRoom, session_id)

    def _on_disconnect(self, reason=None):
        logger.warning(f"[Connection] Disconnected from relay (reason={reason})")

    def _on_presence_update(self, data):
        if not isinstance(data, dict):
            logger.warning(f"[Connection] Ignoring malformed presence update {data!r}")
            return
        self.tablet_connected = bool(data.get("connected"))
        self.tablet_count = int(data.get("count") or 0)
        logger.debug(f"[Connection] Tablet presence: {data}")

    def _on_relay_error(self, data):
        logger.error(f"[Connection] Relay rejected a message: {data}")

    def register_device(self, role: str) -> bool:
        self.role_store.write(role)
        return self._emit(WireEvents.RegisterDevice, role)

    def join_room(self, session_id: str) -> bool:
        if session_id not in self.rooms:
            self.rooms.append(session_id)
        return self._emit(WireEvents.JoinRoom, session_id)

    def publish_state(self, session_id: str, snapshot: dict) -> bool:
        return self._emit(
            WireEvents.PublishState,
            {"session_id": session_id, "snapshot": snapshot},
        )

    def trigger_display(self, session_id: str) -> bool:
        return self._emit(WireEvents.TriggerDisplay, session_id)

    def publish_activity_catalog(self, payload) -> bool:
        return self._emit(WireEvents.PublishActivityCatalog, payload)
