from __future__ import annotations

import pytest

from runorder.configurations.configuration_constants import WireEvents
from runorder.server import wire


class TestParse:

    def test_register_device(self):
        assert wire.parse(WireEvents.RegisterDevice, "tablet") == wire.RegisterDevice(role="tablet")

    def test_publish_state(self):
        event = wire.parse(
            WireEvents.PublishState, {"session_id": "svc1", "snapshot": {"revision": 3}}
        )
        assert event == wire.PublishState(session_id="svc1", snapshot={"revision": 3})

    def test_trigger_display_and_join(self):
        assert wire.parse(WireEvents.TriggerDisplay, "svc1").session_id == "svc1"
        assert wire.parse(WireEvents.JoinRoom, "svc1").session_id == "svc1"

    def test_catalog_payload_is_opaque(self):
        payload = {"activities": [1, 2, 3]}
        assert wire.parse(WireEvents.PublishActivityCatalog, payload).payload is payload

    @pytest.mark.parametrize(
        "event,data",
        [
            (WireEvents.RegisterDevice, None),
            (WireEvents.RegisterDevice, ["tablet"]),
            (WireEvents.JoinRoom, "   "),
            (WireEvents.JoinRoom, 5),
            (WireEvents.PublishState, {"snapshot": {}}),
            (WireEvents.PublishState, {"session_id": "svc1", "snapshot": []}),
            (WireEvents.TriggerDisplay, None),
            (WireEvents.PublishActivityCatalog, None),
        ],
    )
    def test_rejects_malformed(self, event, data):
        with pytest.raises(wire.InvalidPayloadError) as e:
            wire.parse(event, data)
        assert e.value.event == event

    def test_unknown_event(self):
        with pytest.raises(wire.InvalidPayloadError, match="unknown event"):
            wire.parse("drop_tables", {})

    def test_presence_from_count(self):
        assert wire.PresenceUpdate.from_count(0).as_dict() == {"connected": False, "count": 0}
        assert wire.PresenceUpdate.from_count(3).as_dict() == {"connected": True, "count": 3}
