"""Passive display-side reconciliation of live snapshots.

Snapshots reach a display from two channels (the relay room and the local
snapshot store) and may repeat many times. ``reduce_display`` is the single
pure reducer both channels go through: continuous fields are overwritten,
and each one-shot signal (message shown, message hidden, display closed) is
applied once per id by comparing against a per-signal cursor.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
import typing

import eventlet

from runorder.configurations.configuration_constants import (
    CRITICAL_PROGRESS, WARNING_PROGRESS, TimerUrgency)
from runorder.configurations.runorder_config import RunOrderConfig
from runorder.display.renderers import DisplayRenderer
from runorder.session.snapshot import InvalidSnapshotError, Snapshot

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class DisplayState:
    snapshot: Snapshot | None = None
    message_cursor: int | None = None
    hide_cursor: int | None = None
    close_cursor: int | None = None
    message_visible: bool = False
    message_text: str = ""
    message_expires_at: float | None = None
    closed: bool = False


def _is_new(signal_id: int | None, cursor: int | None) -> bool:
    return signal_id is not None and signal_id != cursor


def reduce_display(
    state: DisplayState,
    snapshot: Snapshot,
    now: float,
    message_seconds: float = 5.0,
) -> DisplayState:
    changes: dict[str, typing.Any] = {"snapshot": snapshot}

    if _is_new(snapshot.message_id, state.message_cursor):
        changes.update(
            message_cursor=snapshot.message_id,
            message_visible=True,
            message_text=snapshot.message_content,
            message_expires_at=now + message_seconds,
        )

    if _is_new(snapshot.hide_message_id, state.hide_cursor):
        changes["hide_cursor"] = snapshot.hide_message_id
        # Both signals arrived together: message and hide ids come from one
        # sequence, so a smaller hide id cleared an earlier message.
        stale = (
            "message_cursor" in changes
            and snapshot.hide_message_id < snapshot.message_id
        )
        if not stale:
            changes.update(message_visible=False, message_expires_at=None)

    if _is_new(snapshot.close_display_id, state.close_cursor):
        changes.update(close_cursor=snapshot.close_display_id, closed=True)

    if snapshot.finished:
        changes["closed"] = True

    return dataclasses.replace(state, **changes)


def expire_message(state: DisplayState, now: float) -> DisplayState:
    """Hide the visible message once its display time has run out."""
    if (
        state.message_visible
        and state.message_expires_at is not None
        and now >= state.message_expires_at
    ):
        return dataclasses.replace(
            state, message_visible=False, message_expires_at=None
        )
    return state


def auto_hide(state: DisplayState, message_id: int) -> DisplayState:
    """Hide the message shown for ``message_id`` if it is still the current one."""
    if state.message_visible and state.message_cursor == message_id:
        return dataclasses.replace(
            state, message_visible=False, message_expires_at=None
        )
    return state


@dataclasses.dataclass(frozen=True)
class DisplayView:
    """What an audience display shows, derived from a DisplayState."""

    theme: str
    headline: str
    leader: str
    next_name: str | None
    next_leader: str | None
    timer: str
    urgency: str
    running: bool
    message_visible: bool
    message_text: str


def timer_urgency(snapshot: Snapshot) -> str:
    if snapshot.overtime:
        return TimerUrgency.Overtime
    # Unforeseen items have no planned time, so there is nothing to count down to.
    if not snapshot.current_item or not snapshot.current_item.get("duration"):
        return TimerUrgency.Normal
    if snapshot.progress <= CRITICAL_PROGRESS:
        return TimerUrgency.Critical
    if snapshot.progress <= WARNING_PROGRESS:
        return TimerUrgency.Warning
    return TimerUrgency.Normal


def build_view(state: DisplayState) -> DisplayView | None:
    snapshot = state.snapshot
    if snapshot is None:
        return None

    current = snapshot.current_item or {}
    following = snapshot.next_item
    return DisplayView(
        theme=snapshot.theme,
        headline=current.get("name") or "Paused",
        leader=current.get("leader") or "",
        next_name=following.get("name") if following else None,
        next_leader=following.get("leader") if following else None,
        timer=("-" if snapshot.overtime else "") + snapshot.timer,
        urgency=timer_urgency(snapshot),
        running=snapshot.running,
        message_visible=state.message_visible,
        message_text=state.message_text if state.message_visible else "",
    )


def _spawn_after(delay: float, fn: typing.Callable, *args):
    return eventlet.spawn_after(delay, fn, *args)


class DisplayReconciler:
    """Applies incoming snapshots for one session to one display."""

    def __init__(
        self,
        session_id: str,
        renderer: DisplayRenderer,
        config: RunOrderConfig | None = None,
        clock: typing.Callable[[], float] = time.monotonic,
        scheduler: typing.Callable | None = None,
    ):
        self.session_id = session_id
        self.renderer = renderer
        self.config = config if config is not None else RunOrderConfig()
        self.clock = clock
        self.scheduler = scheduler if scheduler is not None else _spawn_after

        self.state = DisplayState()
        self.lock = threading.Lock()
        self._hide_timer = None
        self._last_view: DisplayView | None = None

    @property
    def closed(self) -> bool:
        return self.state.closed

    def receive(self, data, source: str = "room") -> bool:
        """Apply a snapshot dict from any channel. Returns True if it was applied."""
        try:
            snapshot = Snapshot.from_dict(data)
        except InvalidSnapshotError as e:
            logger.warning(f"[Display] Dropping malformed snapshot from {source}: {e}")
            return False

        if snapshot.session_id != self.session_id:
            logger.debug(
                f"[Display] Ignoring snapshot for session {snapshot.session_id} "
                f"from {source} (showing {self.session_id})"
            )
            return False

        with self.lock:
            if self.state.closed:
                return False

            now = self.clock()
            prior = expire_message(self.state, now)
            self.state = reduce_display(
                prior, snapshot, now, message_seconds=self.config.message_seconds
            )

            if self.state.closed:
                self._close()
                return True

            if self.state.message_cursor != prior.message_cursor:
                self._arm_hide_timer(self.state.message_cursor)
            elif prior.message_visible and not self.state.message_visible:
                self._cancel_hide_timer()

            self._render()
        return True

    def _arm_hide_timer(self, message_id: int) -> None:
        self._cancel_hide_timer()
        self._hide_timer = self.scheduler(
            self.config.message_seconds, self._on_hide_timer, message_id
        )

    def _cancel_hide_timer(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.cancel()
            self._hide_timer = None

    def _on_hide_timer(self, message_id: int) -> None:
        with self.lock:
            self._hide_timer = None
            if self.state.closed:
                return
            self.state = auto_hide(self.state, message_id)
            self._render()

    def _render(self) -> None:
        view = build_view(self.state)
        # Repeated identical snapshots must not re-render.
        if view is None or view == self._last_view:
            return
        self._last_view = view
        self.renderer.render(view)

    def _close(self) -> None:
        self._cancel_hide_timer()
        logger.info(f"[Display] Closing display for session {self.session_id}")
        self.renderer.close()
