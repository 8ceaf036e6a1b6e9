from __future__ import annotations

import json
import logging
import os
import tempfile
import typing
from threading import Lock

from runorder.session.models import Session
from runorder.session.snapshot import Snapshot

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised when a session id is not known to the repository."""

    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session {self.session_id} not found"


class PersistenceError(RuntimeError):
    """Raised when the session repository cannot read or write."""


def _atomic_write_json(path: str, payload) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class SnapshotStore:
    """Locally keyed snapshot store shared by windows on the same device.

    One JSON file per session id. Writers in this process notify subscribers
    immediately; readers in other processes poll the file.
    """

    def __init__(self, directory: str):
        self.directory = directory
        self._subscribers: dict[str, list[typing.Callable[[dict], None]]] = {}
        self.lock = Lock()

    def path_for(self, session_id: str) -> str:
        return os.path.join(self.directory, f"live_state_{session_id}.json")

    def write(self, snapshot: Snapshot) -> None:
        payload = snapshot.to_dict()
        _atomic_write_json(self.path_for(snapshot.session_id), payload)

        with self.lock:
            subscribers = list(self._subscribers.get(snapshot.session_id, ()))
        for callback in subscribers:
            callback(payload)

    def read_raw(self, session_id: str) -> str | None:
        try:
            with open(self.path_for(session_id), encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def read(self, session_id: str) -> dict | None:
        raw = self.read_raw(session_id)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.error(f"[SnapshotStore] Corrupt live state for session {session_id}")
            return None

    def subscribe(
        self, session_id: str, callback: typing.Callable[[dict], None]
    ) -> typing.Callable[[], None]:
        """Call ``callback`` with every snapshot written for ``session_id``.

        Returns a function that removes the subscription.
        """
        with self.lock:
            self._subscribers.setdefault(session_id, []).append(callback)

        def unsubscribe():
            with self.lock:
                callbacks = self._subscribers.get(session_id, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe


class SessionRepository:
    """Read/update contract of the external session store."""

    def get(self, session_id: str) -> Session:
        raise NotImplementedError

    def update(self, session: Session) -> None:
        raise NotImplementedError

    def list_sessions(self) -> list[Session]:
        raise NotImplementedError


def _merge_entry(stored: dict, updated: dict) -> dict:
    """Overlay ``updated`` on the stored record.

    Keys the model does not know about survive, and stored ids keep their
    original JSON type (the agenda store uses integer part ids).
    """
    stored_parts = {
        str(part.get("id")): part
        for part in stored.get("parts") or []
        if isinstance(part, dict)
    }
    parts = []
    for part in updated.get("parts", []):
        previous = stored_parts.get(part["id"])
        if previous is None:
            parts.append(part)
        else:
            parts.append({**previous, **part, "id": previous["id"]})

    return {**stored, **updated, "id": stored["id"], "parts": parts}


class JsonSessionRepository(SessionRepository):
    """Sessions kept as a JSON list in a single file."""

    def __init__(self, path: str):
        self.path = path
        self.lock = Lock()

    def _load(self) -> list[dict]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read sessions from {self.path}: {e}") from e

        if not isinstance(data, list):
            raise PersistenceError(f"{self.path} does not hold a list of sessions")
        return data

    def list_sessions(self) -> list[Session]:
        with self.lock:
            return [Session.from_dict(entry) for entry in self._load()]

    def get(self, session_id: str) -> Session:
        with self.lock:
            for entry in self._load():
                if str(entry.get("id")) == session_id:
                    return Session.from_dict(entry)
        raise SessionNotFoundError(session_id)

    def update(self, session: Session) -> None:
        with self.lock:
            entries = self._load()
            for i, entry in enumerate(entries):
                if str(entry.get("id")) == session.id:
                    entries[i] = _merge_entry(entry, session.to_dict())
                    break
            else:
                raise SessionNotFoundError(session.id)

            try:
                _atomic_write_json(self.path, entries)
            except OSError as e:
                raise PersistenceError(
                    f"Cannot write sessions to {self.path}: {e}"
                ) from e
