"""Authoritative live-session state machine for the control console.

The controller owns the current item index, the elapsed time of the current
item, the operator message lifecycle and session completion. Every mutation
and every tick produces one full snapshot through the SnapshotPublisher;
there is no delta protocol.

    IDLE --toggle--> RUNNING <--toggle--> PAUSED
      \\                |                    /
       `------------ advance (last item) --'--> FINISHED
"""

from __future__ import annotations

import logging
import math
import threading
import time
import typing
from enum import Enum, auto

import eventlet

from runorder.configurations.configuration_constants import (
    DEFAULT_UNFORESEEN_NAME, ItemKinds, SessionStatuses)
from runorder.configurations.runorder_config import RunOrderConfig
from runorder.session.models import Item, Session
from runorder.session.publisher import SnapshotPublisher
from runorder.session.snapshot import ControllerView, Snapshot
from runorder.session.store import (PersistenceError, SessionNotFoundError,
                                    SessionRepository)

logger = logging.getLogger(__name__)


class ControllerState(Enum):
    IDLE = auto()      # Loaded, not started
    RUNNING = auto()
    PAUSED = auto()
    FINISHED = auto()  # Terminal


VALID_TRANSITIONS = {
    ControllerState.IDLE: {ControllerState.RUNNING, ControllerState.FINISHED},
    ControllerState.RUNNING: {ControllerState.PAUSED, ControllerState.FINISHED},
    ControllerState.PAUSED: {ControllerState.RUNNING, ControllerState.FINISHED},
    ControllerState.FINISHED: set(),
}


class ElapsedClock:
    """Elapsed running time of the current item.

    Derived from the timestamp the clock was (re)started at plus the time
    accumulated before the last pause, so throttled or late ticks never drift.
    """

    def __init__(self, clock: typing.Callable[[], float] = time.monotonic):
        self.clock = clock
        self.accumulated: float = 0.0
        self.started_at: float | None = None

    @property
    def running(self) -> bool:
        return self.started_at is not None

    def start(self) -> None:
        if self.started_at is None:
            self.started_at = self.clock()

    def pause(self) -> None:
        if self.started_at is not None:
            self.accumulated += self.clock() - self.started_at
            self.started_at = None

    def reset(self) -> None:
        self.accumulated = 0.0
        if self.started_at is not None:
            self.started_at = self.clock()

    @property
    def elapsed(self) -> float:
        if self.started_at is None:
            return self.accumulated
        return self.accumulated + max(0.0, self.clock() - self.started_at)

    @property
    def seconds(self) -> int:
        return int(math.floor(self.elapsed))


class SignalIds:
    """Strictly increasing millisecond ids for one-shot signals."""

    def __init__(self, wall_clock: typing.Callable[[], float] = time.time):
        self.wall_clock = wall_clock
        self.last: int | None = None

    def next(self) -> int:
        candidate = int(self.wall_clock() * 1000)
        if self.last is not None and candidate <= self.last:
            candidate = self.last + 1
        self.last = candidate
        return candidate


class SessionController:
    def __init__(
        self,
        session: Session,
        publisher: SnapshotPublisher,
        repository: SessionRepository | None = None,
        config: RunOrderConfig | None = None,
        clock: typing.Callable[[], float] = time.monotonic,
        wall_clock: typing.Callable[[], float] = time.time,
    ):
        self.session = session.copy()
        self.publisher = publisher
        self.repository = repository
        self.config = config if config is not None else RunOrderConfig()

        self.state = (
            ControllerState.FINISHED
            if self.session.is_finished
            else ControllerState.IDLE
        )
        self.current_index: int = 0
        self.elapsed_clock = ElapsedClock(clock)

        self.message_content: str = ""
        self.message_id: int | None = None
        self.hide_message_id: int | None = None
        self.close_display_id: int | None = None
        self.display_open: bool = False
        # Message and hide ids share one sequence so a hide always orders after
        # the message it clears.
        self._message_ids = SignalIds(wall_clock)
        self._close_ids = SignalIds(wall_clock)

        self.lock = threading.Lock()
        self._ticking = False
        self._tick_thread = None

    @classmethod
    def load(
        cls,
        session_id: str,
        repository: SessionRepository,
        publisher: SnapshotPublisher,
        **kwargs,
    ) -> SessionController:
        """Build a controller for a stored session.

        Raises SessionNotFoundError for unknown ids and PersistenceError when
        the store cannot be read; callers fall back to a default view.
        """
        session = repository.get(session_id)
        logger.info(
            f"[Controller] Loaded session {session_id} ({len(session.items)} items, "
            f"status={session.status})"
        )
        return cls(session, publisher, repository=repository, **kwargs)

    ##############
    # Read state #
    ##############

    @property
    def session_id(self) -> str:
        return self.session.id

    @property
    def items(self) -> list[Item]:
        return self.session.items

    @property
    def current_item(self) -> Item | None:
        if 0 <= self.current_index < len(self.items):
            return self.items[self.current_index]
        return None

    @property
    def next_item(self) -> Item | None:
        if self.current_index + 1 < len(self.items):
            return self.items[self.current_index + 1]
        return None

    @property
    def running(self) -> bool:
        return self.state == ControllerState.RUNNING

    @property
    def finished(self) -> bool:
        return self.state == ControllerState.FINISHED

    @property
    def elapsed_seconds(self) -> int:
        return self.elapsed_clock.seconds

    def view(self) -> ControllerView:
        return ControllerView(
            session_id=self.session.id,
            theme=self.session.theme,
            current_item=None if self.finished else self.current_item,
            next_item=None if self.finished else self.next_item,
            elapsed_seconds=0 if self.finished else self.elapsed_seconds,
            running=self.running,
            message_content=self.message_content,
            message_id=self.message_id,
            hide_message_id=self.hide_message_id,
            close_display_id=self.close_display_id,
            finished=self.finished,
        )

    ###############
    # Transitions #
    ###############

    def _transition_to(self, new_state: ControllerState) -> bool:
        if new_state not in VALID_TRANSITIONS[self.state]:
            logger.error(
                f"[Controller] Invalid transition for session {self.session.id}: "
                f"{self.state.name} -> {new_state.name}"
            )
            return False

        logger.info(
            f"[Controller] Session {self.session.id}: {self.state.name} -> {new_state.name}"
        )
        self.state = new_state
        return True

    def _reject_if_finished(self, action: str) -> bool:
        if self.finished:
            logger.warning(
                f"[Controller] Ignoring {action} on finished session {self.session.id}"
            )
            return True
        return False

    def _persist(self) -> bool:
        """Write the session to the store. Failures are logged, never rolled back."""
        if self.repository is None:
            return False
        try:
            self.repository.update(self.session.copy())
        except (PersistenceError, SessionNotFoundError) as e:
            logger.error(
                f"[Controller] Could not persist session {self.session.id}, "
                f"continuing with unsaved state: {e}"
            )
            return False
        return True

    def _publish(self) -> Snapshot:
        return self.publisher.publish(self.view())

    def advance(self) -> Snapshot | None:
        """Leave the current item, recording its actual duration.

        Moves to the next item keeping the running/paused state, or finishes
        the session when the current item is the last one.
        """
        with self.lock:
            if self._reject_if_finished("advance"):
                return None

            current = self.current_item
            if current is not None:
                current.actual_seconds = self.elapsed_seconds
            self.elapsed_clock.reset()

            if self.current_index + 1 < len(self.items):
                self.current_index += 1
                logger.info(
                    f"[Controller] Session {self.session.id} advanced to item "
                    f"{self.current_index} ({self.current_item.name})"
                )
                self._persist()
                return self._publish()

            return self._finish()

    def _finish(self) -> Snapshot:
        self._transition_to(ControllerState.FINISHED)
        self.elapsed_clock.pause()
        self._ticking = False

        self.session.status = SessionStatuses.Finished
        self._persist()

        self.close_display_id = self._close_ids.next()
        self.display_open = False
        logger.info(f"[Controller] Session {self.session.id} finished")
        return self._publish()

    def toggle_running(self) -> Snapshot | None:
        with self.lock:
            if self._reject_if_finished("toggle_running"):
                return None

            if self.state == ControllerState.RUNNING:
                self._transition_to(ControllerState.PAUSED)
                self.elapsed_clock.pause()
            else:
                starting = self.state == ControllerState.IDLE
                self._transition_to(ControllerState.RUNNING)
                self.elapsed_clock.start()
                if starting and self.session.status != SessionStatuses.Live:
                    self.session.status = SessionStatuses.Live
                    self._persist()

            return self._publish()

    def insert_unforeseen(self, name: str | None = None) -> Snapshot | None:
        """Insert a zero-duration item right after the current one."""
        with self.lock:
            if self._reject_if_finished("insert_unforeseen"):
                return None

            name = (name or "").strip() or DEFAULT_UNFORESEEN_NAME
            item = Item.new(name=name, planned_minutes=0, kind=ItemKinds.Unforeseen)
            position = min(self.current_index + 1, len(self.items))
            self.items.insert(position, item)
            logger.info(
                f"[Controller] Inserted unforeseen item {name!r} at position {position} "
                f"in session {self.session.id}"
            )
            self._persist()
            return self._publish()

    def append_item(
        self, name: str, leader: str = "", planned_minutes: int = 0
    ) -> Snapshot | None:
        with self.lock:
            if self._reject_if_finished("append_item"):
                return None

            self.items.append(
                Item.new(name=name, leader=leader, planned_minutes=planned_minutes)
            )
            self._persist()
            return self._publish()

    def send_message(self, text: str) -> Snapshot | None:
        with self.lock:
            if self._reject_if_finished("send_message"):
                return None
            if not text or not text.strip():
                logger.warning("[Controller] Ignoring empty operator message")
                return None

            self.message_content = text.strip()
            self.message_id = self._message_ids.next()
            logger.info(
                f"[Controller] Message {self.message_id} sent to session {self.session.id}"
            )
            return self._publish()

    def clear_message(self) -> Snapshot | None:
        with self.lock:
            if self._reject_if_finished("clear_message"):
                return None

            self.hide_message_id = self._message_ids.next()
            return self._publish()

    def toggle_display(self) -> Snapshot | None:
        """Open the audience display, or ask an open one to close."""
        with self.lock:
            if self._reject_if_finished("toggle_display"):
                return None

            if self.display_open:
                self.close_display_id = self._close_ids.next()
                self.display_open = False
                logger.info(f"[Controller] Closing display for session {self.session.id}")
                return self._publish()

            self.close_display_id = None
            self.display_open = True
            # Publish first: a display mounted by the trigger must not read the
            # previous close signal from the local store.
            snapshot = self._publish()
            self.publisher.trigger_display(self.session.id)
            logger.info(f"[Controller] Opening display for session {self.session.id}")
            return snapshot

    ########
    # Tick #
    ########

    def tick(self) -> Snapshot | None:
        """Republish the full snapshot. Called once per tick interval."""
        with self.lock:
            if self.finished:
                return None
            return self._publish()

    def start(self) -> None:
        """Spawn the periodic tick loop."""
        if self._ticking:
            logger.warning("[Controller] Tick loop already running")
            return

        self._ticking = True
        interval = self.config.tick_interval

        def _tick_loop():
            logger.info(
                f"[Controller] Tick loop started for session {self.session.id} "
                f"(interval: {interval}s)"
            )
            while self._ticking:
                try:
                    self.tick()
                except Exception as e:
                    logger.error(f"[Controller] Error in tick loop: {e}")
                eventlet.sleep(interval)
            logger.info(f"[Controller] Tick loop stopped for session {self.session.id}")

        self._tick_thread = eventlet.spawn(_tick_loop)

    def stop(self) -> None:
        self._ticking = False
