from __future__ import annotations

import logging

from runorder.session.snapshot import ControllerView, Snapshot, build_snapshot
from runorder.session.store import SnapshotStore

logger = logging.getLogger(__name__)


class SnapshotPublisher:
    """Fans every controller snapshot out over both delivery channels.

    Channel 1 is the relay room (cross-device), channel 2 the local snapshot
    store (other windows on this device). Both carry the same payload and a
    failure on one never stops the other.
    """

    def __init__(self, store: SnapshotStore | None, connection=None):
        self.store = store
        self.connection = connection
        self.last_snapshot: Snapshot | None = None

    def publish(self, view: ControllerView) -> Snapshot:
        snapshot = build_snapshot(self.last_snapshot, view)
        self.last_snapshot = snapshot
        payload = snapshot.to_dict()

        if self.store is not None:
            try:
                self.store.write(snapshot)
            except OSError as e:
                logger.error(
                    f"[Publisher] Local store write failed for session {view.session_id}: {e}"
                )

        if self.connection is not None:
            self.connection.publish_state(view.session_id, payload)

        return snapshot

    def republish(self) -> Snapshot | None:
        """Send the last snapshot to the relay again, unchanged."""
        snapshot = self.last_snapshot
        if snapshot is None or self.connection is None:
            return None
        self.connection.publish_state(snapshot.session_id, snapshot.to_dict())
        return snapshot

    def trigger_display(self, session_id: str) -> None:
        if self.connection is None:
            logger.debug("[Publisher] No relay connection, display trigger not sent")
            return
        self.connection.trigger_display(session_id)
