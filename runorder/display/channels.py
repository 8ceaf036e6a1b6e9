"""Snapshot delivery channels feeding a DisplayReconciler.

RoomChannel receives snapshots forwarded by the relay. LocalStoreChannel
reads the snapshot store shared with other windows on the same device: it
listens for in-process change notifications and also polls on a short fixed
interval to catch writes it was not notified about. Both hand raw snapshot
dicts to the same ``DisplayReconciler.receive``.
"""

from __future__ import annotations

import json
import logging
import typing

import eventlet

from runorder.configurations.configuration_constants import WireEvents
from runorder.display.reconciler import DisplayReconciler
from runorder.session.store import SnapshotStore

logger = logging.getLogger(__name__)


class RoomChannel:
    """Routes relayed snapshots to the display mounted for their session.

    A Socket.IO client keeps one handler per event, so a single
    ``publish_state`` handler serves every display on the connection.
    """

    def __init__(self, connection):
        self.connection = connection
        self.displays: dict[str, DisplayReconciler] = {}

    def attach(self) -> None:
        self.connection.on(WireEvents.PublishState, self._on_snapshot)

    def add(self, reconciler: DisplayReconciler) -> None:
        """Join the reconciler's room; a remounted session replaces its old display."""
        self.displays[reconciler.session_id] = reconciler
        self.connection.join_room(reconciler.session_id)

    def _on_snapshot(self, data) -> None:
        session_id = data.get("session_id") if isinstance(data, dict) else None
        reconciler = self.displays.get(session_id)
        if reconciler is None:
            logger.debug(f"[Room] No display mounted for snapshot of {session_id!r}")
            return
        reconciler.receive(data, source="room")


class LocalStoreChannel:
    def __init__(
        self,
        store: SnapshotStore,
        reconciler: DisplayReconciler,
        interval: float = 0.5,
    ):
        self.store = store
        self.reconciler = reconciler
        self.interval = interval
        self._last_raw: str | None = None
        self._polling = False
        self._unsubscribe: typing.Callable[[], None] | None = None

    @property
    def session_id(self) -> str:
        return self.reconciler.session_id

    def poll_once(self) -> bool:
        """Read the store and apply its snapshot if the file changed."""
        raw = self.store.read_raw(self.session_id)
        if raw is None or raw == self._last_raw:
            return False
        self._last_raw = raw

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.error(f"[LocalStore] Failed to load live state for {self.session_id}")
            return False
        return self.reconciler.receive(data, source="local")

    def _on_change(self, data: dict) -> None:
        self.reconciler.receive(data, source="local")

    def start(self) -> None:
        if self._polling:
            logger.warning("[LocalStore] Poll loop already running")
            return

        self._unsubscribe = self.store.subscribe(self.session_id, self._on_change)
        self._polling = True
        self.poll_once()

        def _poll_loop():
            while self._polling and not self.reconciler.closed:
                try:
                    self.poll_once()
                except OSError as e:
                    logger.error(f"[LocalStore] Error polling live state: {e}")
                eventlet.sleep(self.interval)
            self.stop()

        eventlet.spawn(_poll_loop)

    def stop(self) -> None:
        self._polling = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


class DisplayLauncher:
    """Mounts a display when the relay signals ``trigger_display`` for a session.

    ``factory`` builds and starts a DisplayReconciler for a session id. An
    already-open display for the same session is focused instead of
    mounted twice.
    """

    def __init__(self, connection, factory: typing.Callable[[str], DisplayReconciler]):
        self.connection = connection
        self.factory = factory
        self.displays: dict[str, DisplayReconciler] = {}

    def attach(self) -> None:
        self.connection.on(WireEvents.TriggerDisplay, self.open)

    def open(self, session_id=None) -> DisplayReconciler | None:
        if not isinstance(session_id, str) or not session_id:
            logger.warning(f"[Launcher] Ignoring display trigger without session id: {session_id!r}")
            return None

        existing = self.displays.get(session_id)
        if existing is not None and not existing.closed:
            logger.info(f"[Launcher] Focusing open display for session {session_id}")
            existing.renderer.focus()
            return existing

        logger.info(f"[Launcher] Opening display for session {session_id}")
        reconciler = self.factory(session_id)
        self.displays[session_id] = reconciler
        return reconciler
