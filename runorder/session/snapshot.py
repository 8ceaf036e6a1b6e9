"""The broadcastable snapshot of a live session.

A Snapshot is re-derived from the controller's state after every mutation and
every tick; it is never patched. Continuous fields (items, timer, running) are
safe to overwrite on receipt. The three ids (message, hide, close) are
monotonic and let receivers apply each one-shot event exactly once.
"""

from __future__ import annotations

import dataclasses
import typing

from runorder.session.models import Item


class InvalidSnapshotError(ValueError):
    pass


@dataclasses.dataclass(frozen=True)
class ControllerView:
    """What the controller exposes to the snapshot builder."""

    session_id: str
    theme: str
    current_item: Item | None
    next_item: Item | None
    elapsed_seconds: int
    running: bool
    message_content: str = ""
    message_id: int | None = None
    hide_message_id: int | None = None
    close_display_id: int | None = None
    finished: bool = False


@dataclasses.dataclass(frozen=True)
class Snapshot:
    session_id: str
    revision: int
    current_item: dict | None
    next_item: dict | None
    remaining_seconds: int
    timer: str
    overtime: bool
    running: bool
    progress: float
    theme: str
    message_content: str = ""
    message_id: int | None = None
    hide_message_id: int | None = None
    close_display_id: int | None = None
    finished: bool = False

    def to_dict(self) -> dict:
        return dataclasses.asdict(self)

    @classmethod
    def from_dict(cls, data: typing.Any) -> Snapshot:
        if not isinstance(data, dict):
            raise InvalidSnapshotError("snapshot must be an object")

        missing = [
            f.name
            for f in dataclasses.fields(cls)
            if f.default is dataclasses.MISSING and f.name not in data
        ]
        if missing:
            raise InvalidSnapshotError(f"snapshot is missing {missing}")

        for key in ("current_item", "next_item"):
            if data[key] is not None and not isinstance(data[key], dict):
                raise InvalidSnapshotError(f"{key} must be an object or null")

        for key in ("message_id", "hide_message_id", "close_display_id"):
            value = data.get(key)
            if value is not None and (
                isinstance(value, bool) or not isinstance(value, int)
            ):
                raise InvalidSnapshotError(f"{key} must be an integer or null")

        try:
            return cls(
                session_id=str(data["session_id"]),
                revision=int(data["revision"]),
                current_item=data["current_item"],
                next_item=data["next_item"],
                remaining_seconds=int(data["remaining_seconds"]),
                timer=str(data["timer"]),
                overtime=bool(data["overtime"]),
                running=bool(data["running"]),
                progress=float(data["progress"]),
                theme=str(data["theme"]),
                message_content=str(data.get("message_content") or ""),
                message_id=data.get("message_id"),
                hide_message_id=data.get("hide_message_id"),
                close_display_id=data.get("close_display_id"),
                finished=bool(data.get("finished", False)),
            )
        except (TypeError, ValueError) as e:
            raise InvalidSnapshotError(f"snapshot has a malformed field: {e}") from e


def format_time(seconds: int) -> str:
    """m:ss of the absolute value; the sign is conveyed by the overtime flag."""
    seconds = abs(int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


def remaining_seconds(planned_minutes: int, elapsed_seconds: int) -> int:
    return planned_minutes * 60 - elapsed_seconds


def progress_fraction(planned_minutes: int, remaining: int) -> float:
    """Fraction of the planned time still left, clamped to [0, 1].

    Items without a planned duration (unforeseen ones) are pinned at 0.
    """
    planned_seconds = planned_minutes * 60
    if planned_seconds <= 0:
        return 0.0
    return max(0.0, min(1.0, remaining / planned_seconds))


def _item_payload(item: Item | None) -> dict | None:
    if item is None:
        return None
    return {
        "id": item.id,
        "name": item.name,
        "leader": item.leader,
        "duration": item.planned_minutes,
        "type": item.kind,
    }


def build_snapshot(prior: Snapshot | None, view: ControllerView) -> Snapshot:
    """Derive the next snapshot from the controller's state.

    ``prior`` only contributes the revision counter; every other field is
    recomputed from ``view``.
    """
    revision = prior.revision + 1 if prior is not None else 1

    if view.finished:
        return Snapshot(
            session_id=view.session_id,
            revision=revision,
            current_item=None,
            next_item=None,
            remaining_seconds=0,
            timer=format_time(0),
            overtime=False,
            running=False,
            progress=0.0,
            theme=view.theme,
            message_content="",
            message_id=None,
            hide_message_id=None,
            close_display_id=view.close_display_id,
            finished=True,
        )

    planned = view.current_item.planned_minutes if view.current_item else 0
    remaining = remaining_seconds(planned, view.elapsed_seconds)

    return Snapshot(
        session_id=view.session_id,
        revision=revision,
        current_item=_item_payload(view.current_item),
        next_item=_item_payload(view.next_item),
        remaining_seconds=remaining,
        timer=format_time(remaining),
        overtime=remaining < 0,
        running=view.running,
        progress=progress_fraction(planned, remaining),
        theme=view.theme,
        message_content=view.message_content,
        message_id=view.message_id,
        hide_message_id=view.hide_message_id,
        close_display_id=view.close_display_id,
        finished=False,
    )
