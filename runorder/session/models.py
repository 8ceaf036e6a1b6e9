from __future__ import annotations

import dataclasses
import uuid

from runorder.configurations.configuration_constants import (ItemKinds,
                                                             SessionStatuses)


def _as_minutes(value) -> int:
    """Planned durations come from hand-edited agendas; anything unparsable is 0."""
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


@dataclasses.dataclass
class Item:
    """One agenda entry in a session's running order."""

    id: str
    name: str
    leader: str = ""
    planned_minutes: int = 0
    actual_seconds: int | None = None  # Set once the item is left
    kind: str = ItemKinds.Normal

    @classmethod
    def new(
        cls,
        name: str,
        leader: str = "",
        planned_minutes: int = 0,
        kind: str = ItemKinds.Normal,
    ) -> Item:
        return cls(
            id=uuid.uuid4().hex,
            name=name,
            leader=leader,
            planned_minutes=_as_minutes(planned_minutes),
            kind=kind,
        )

    @property
    def planned_seconds(self) -> int:
        return self.planned_minutes * 60

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "leader": self.leader,
            "duration": self.planned_minutes,
            "actualDuration": self.actual_seconds,
            "type": self.kind,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Item:
        return cls(
            id=str(data.get("id") or uuid.uuid4().hex),
            name=str(data.get("name", "")),
            leader=str(data.get("leader") or ""),
            planned_minutes=_as_minutes(data.get("duration")),
            actual_seconds=data.get("actualDuration"),
            kind=data.get("type") or ItemKinds.Normal,
        )


@dataclasses.dataclass
class Session:
    """A time-boxed running order: theme, start time and ordered items."""

    id: str
    theme: str = ""
    date: str | None = None
    start_time: str | None = None
    items: list[Item] = dataclasses.field(default_factory=list)
    status: str = SessionStatuses.Draft

    @property
    def is_finished(self) -> bool:
        return self.status == SessionStatuses.Finished

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "theme": self.theme,
            "date": self.date,
            "startTime": self.start_time,
            "parts": [item.to_dict() for item in self.items],
            "status": self.status,
            "isFinished": self.is_finished,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Session:
        status = data.get("status") or SessionStatuses.Draft
        if data.get("isFinished"):
            status = SessionStatuses.Finished
        return cls(
            id=str(data["id"]),
            theme=str(data.get("theme") or ""),
            date=data.get("date"),
            start_time=data.get("startTime"),
            items=[Item.from_dict(part) for part in data.get("parts", [])],
            status=status,
        )

    def copy(self) -> Session:
        return dataclasses.replace(
            self, items=[dataclasses.replace(item) for item in self.items]
        )
