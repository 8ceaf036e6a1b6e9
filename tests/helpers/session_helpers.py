"""Test doubles for the live-session engine.

None of these talk to a relay or a browser; they record what the engine
would have sent so tests can assert on it.
"""
from __future__ import annotations

import copy
import typing

from runorder.session.models import Item, Session
from runorder.session.store import (PersistenceError, SessionNotFoundError,
                                    SessionRepository)


class FakeClock:
    """Manually advanced clock usable as both monotonic and wall clock."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingConnection:
    """Stands in for ConnectionAdapter; records every emit.

    Like a Socket.IO client, it keeps one handler per event.
    """

    def __init__(self):
        self.published: list[tuple[str, dict]] = []
        self.triggers: list[str] = []
        self.rooms: list[str] = []
        self.handlers: dict[str, typing.Callable] = {}
        self.disconnected = False

    def publish_state(self, session_id, snapshot):
        self.published.append((session_id, snapshot))
        return True

    def trigger_display(self, session_id):
        self.triggers.append(session_id)
        return True

    def join_room(self, session_id):
        self.rooms.append(session_id)
        return True

    def on(self, event, handler):
        self.handlers[event] = handler

    def fire(self, event, *args):
        handler = self.handlers.get(event)
        if handler is not None:
            handler(*args)

    def disconnect(self):
        self.disconnected = True


class MemoryRepository(SessionRepository):
    """In-memory session store. ``failing=True`` rejects every update."""

    def __init__(self, sessions=(), failing: bool = False):
        self.sessions = {s.id: copy.deepcopy(s) for s in sessions}
        self.failing = failing
        self.updates: list[Session] = []

    def get(self, session_id):
        if session_id not in self.sessions:
            raise SessionNotFoundError(session_id)
        return copy.deepcopy(self.sessions[session_id])

    def update(self, session):
        if self.failing:
            raise PersistenceError("store is read-only")
        self.sessions[session.id] = copy.deepcopy(session)
        self.updates.append(copy.deepcopy(session))

    def list_sessions(self):
        return [copy.deepcopy(s) for s in self.sessions.values()]


class RecordingRenderer:
    def __init__(self):
        self.views = []
        self.close_calls = 0
        self.focus_calls = 0

    def render(self, view):
        self.views.append(view)

    def focus(self):
        self.focus_calls += 1

    def close(self):
        self.close_calls += 1


class FakeTimer:
    def __init__(self, delay, fn, args):
        self.delay = delay
        self.fn = fn
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.fn(*self.args)


class FakeScheduler:
    """Replaces eventlet.spawn_after; timers fire only when told to."""

    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, delay, fn, *args):
        timer = FakeTimer(delay, fn, args)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if not t.cancelled]


def make_session(session_id: str = "svc1", minutes=(10, 30, 5)) -> Session:
    names = ["Welcome", "Sermon", "Closing", "Announcements", "Prayer"]
    items = [
        Item(id=f"item-{i}", name=names[i % len(names)], leader=f"Leader {i}", planned_minutes=m)
        for i, m in enumerate(minutes)
    ]
    return Session(
        id=session_id,
        theme="Rise and Shine",
        date="2026-01-11",
        start_time="07:00",
        items=items,
    )
