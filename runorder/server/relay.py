"""Connection bookkeeping owned by the relay.

DeviceRoster maps connection ids to device roles; RoomRegistry maps session
ids to the connections that joined them. Both are mutated only from the
relay's connect/register/join/disconnect handlers.
"""

from __future__ import annotations

import logging
from threading import Lock

from runorder.configurations.configuration_constants import DeviceRoles
from runorder.server.wire import PresenceUpdate
from runorder.utils.typing import ConnectionID, SessionID

logger = logging.getLogger(__name__)


class DeviceRoster:
    """Connection id -> device role, alive only as long as the connection."""

    def __init__(self):
        self._roles: dict[ConnectionID, str] = {}
        self.lock = Lock()

    def register(self, connection_id: ConnectionID, role: str) -> str | None:
        """Record the role for a connection and return the previous one."""
        with self.lock:
            previous = self._roles.get(connection_id)
            self._roles[connection_id] = role
        if role not in (DeviceRoles.Tablet, DeviceRoles.Desktop):
            logger.warning(
                f"[Roster] {connection_id} registered unrecognized role {role!r}; "
                f"it will not be counted"
            )
        return previous

    def remove(self, connection_id: ConnectionID) -> str | None:
        """Drop a connection and return the role it had, if any."""
        with self.lock:
            return self._roles.pop(connection_id, None)

    def role_of(self, connection_id: ConnectionID) -> str | None:
        return self._roles.get(connection_id)

    def count(self, role: str) -> int:
        # Full scan on every call; the roster is small (a handful of devices per venue).
        with self.lock:
            return sum(1 for r in self._roles.values() if r == role)

    def tablet_presence(self) -> PresenceUpdate:
        return PresenceUpdate.from_count(self.count(DeviceRoles.Tablet))

    def __len__(self) -> int:
        return len(self._roles)

    def __contains__(self, connection_id) -> bool:
        return connection_id in self._roles

    def clear(self) -> None:
        with self.lock:
            self._roles.clear()


class RoomRegistry:
    """Session id -> connection ids that joined the session's room."""

    def __init__(self):
        self._rooms: dict[SessionID, set[ConnectionID]] = {}
        self.lock = Lock()

    def join(self, session_id: SessionID, connection_id: ConnectionID) -> bool:
        """Add a connection to a room. Returns False if it was already a member."""
        with self.lock:
            members = self._rooms.setdefault(session_id, set())
            if connection_id in members:
                return False
            members.add(connection_id)
            return True

    def leave_all(self, connection_id: ConnectionID) -> list[SessionID]:
        """Drop a connection from every room it joined."""
        left = []
        with self.lock:
            for session_id, members in self._rooms.items():
                if connection_id in members:
                    members.discard(connection_id)
                    left.append(session_id)
        return left

    def members(self, session_id: SessionID) -> set[ConnectionID]:
        return set(self._rooms.get(session_id, ()))

    def rooms_of(self, connection_id: ConnectionID) -> list[SessionID]:
        return [
            session_id
            for session_id, members in self._rooms.items()
            if connection_id in members
        ]

    def summary(self) -> dict[SessionID, int]:
        with self.lock:
            return {
                session_id: len(members)
                for session_id, members in self._rooms.items()
            }

    def clear(self) -> None:
        with self.lock:
            self._rooms.clear()
