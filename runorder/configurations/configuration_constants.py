from __future__ import annotations

import dataclasses


@dataclasses.dataclass(frozen=True)
class DeviceRoles:
    Tablet = "tablet"
    Desktop = "desktop"


@dataclasses.dataclass(frozen=True)
class ItemKinds:
    Normal = "normal"
    Unforeseen = "unforeseen"


@dataclasses.dataclass(frozen=True)
class SessionStatuses:
    Draft = "draft"
    Live = "live"
    Finished = "finished"


@dataclasses.dataclass(frozen=True)
class WireEvents:
    """Socket.IO event names exchanged between clients and the relay."""

    RegisterDevice = "register_device"
    JoinRoom = "join_room"
    PublishState = "publish_state"
    TriggerDisplay = "trigger_display"
    PublishActivityCatalog = "publish_activity_catalog"
    PresenceUpdate = "presence_update"
    RelayError = "relay_error"


@dataclasses.dataclass(frozen=True)
class TimerUrgency:
    Normal = "normal"
    Warning = "warning"
    Critical = "critical"
    Overtime = "overtime"


# Progress fractions below which the display escalates the timer styling
WARNING_PROGRESS = 0.25
CRITICAL_PROGRESS = 0.10

DEFAULT_UNFORESEEN_NAME = "Unforeseen"
