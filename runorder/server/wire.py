"""Typed wire payloads exchanged with the relay.

Every Socket.IO event the relay accepts is parsed into one of the frozen
dataclasses below before any handler logic runs. Malformed payloads raise
InvalidPayloadError and never reach the room.
"""

from __future__ import annotations

import dataclasses
import typing

from runorder.configurations.configuration_constants import WireEvents


class InvalidPayloadError(ValueError):
    """Raised when a wire payload does not match its event's shape."""

    def __init__(self, event: str, message: str):
        super().__init__(f"{event}: {message}")
        self.event = event
        self.message = message


@dataclasses.dataclass(frozen=True)
class RegisterDevice:
    role: str


@dataclasses.dataclass(frozen=True)
class JoinRoom:
    session_id: str


@dataclasses.dataclass(frozen=True)
class PublishState:
    session_id: str
    snapshot: dict


@dataclasses.dataclass(frozen=True)
class TriggerDisplay:
    session_id: str


@dataclasses.dataclass(frozen=True)
class PublishActivityCatalog:
    payload: typing.Any


@dataclasses.dataclass(frozen=True)
class PresenceUpdate:
    connected: bool
    count: int

    @classmethod
    def from_count(cls, count: int) -> PresenceUpdate:
        return cls(connected=count > 0, count=count)

    def as_dict(self) -> dict:
        return {"connected": self.connected, "count": self.count}


def _require_session_id(event: str, value: typing.Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidPayloadError(event, "session id must be a non-empty string")
    return value


def parse_register_device(data) -> RegisterDevice:
    if not isinstance(data, str) or not data:
        raise InvalidPayloadError(
            WireEvents.RegisterDevice, "role must be a non-empty string"
        )
    return RegisterDevice(role=data)


def parse_join_room(data) -> JoinRoom:
    return JoinRoom(session_id=_require_session_id(WireEvents.JoinRoom, data))


def parse_publish_state(data) -> PublishState:
    if not isinstance(data, dict):
        raise InvalidPayloadError(
            WireEvents.PublishState, "payload must be an object"
        )
    session_id = _require_session_id(
        WireEvents.PublishState, data.get("session_id")
    )
    snapshot = data.get("snapshot")
    if not isinstance(snapshot, dict):
        raise InvalidPayloadError(
            WireEvents.PublishState, "snapshot must be an object"
        )
    return PublishState(session_id=session_id, snapshot=snapshot)


def parse_trigger_display(data) -> TriggerDisplay:
    return TriggerDisplay(
        session_id=_require_session_id(WireEvents.TriggerDisplay, data)
    )


def parse_publish_activity_catalog(data) -> PublishActivityCatalog:
    # The catalog is opaque to the relay; only the absence of a payload is rejected.
    if data is None:
        raise InvalidPayloadError(
            WireEvents.PublishActivityCatalog, "payload is required"
        )
    return PublishActivityCatalog(payload=data)


PARSERS: dict[str, typing.Callable] = {
    WireEvents.RegisterDevice: parse_register_device,
    WireEvents.JoinRoom: parse_join_room,
    WireEvents.PublishState: parse_publish_state,
    WireEvents.TriggerDisplay: parse_trigger_display,
    WireEvents.PublishActivityCatalog: parse_publish_activity_catalog,
}


def parse(event: str, data):
    """Parse the payload of a client-to-relay event into its tagged variant."""
    parser = PARSERS.get(event)
    if parser is None:
        raise InvalidPayloadError(event, "unknown event")
    return parser(data)
