"""Tests for the session model, the JSON session repository and the local
snapshot store."""

from __future__ import annotations

import json
import os

import pytest

from runorder.configurations.configuration_constants import (ItemKinds,
                                                             SessionStatuses)
from runorder.session.models import Item, Session
from runorder.session.publisher import SnapshotPublisher
from runorder.session.snapshot import ControllerView
from runorder.session.store import (JsonSessionRepository, PersistenceError,
                                    SessionNotFoundError, SnapshotStore)
from tests.helpers.session_helpers import RecordingConnection, make_session


def _write_sessions(path, sessions):
    with open(path, "w", encoding="utf-8") as f:
        json.dump([s.to_dict() for s in sessions], f)


class TestModels:

    def test_item_reads_stored_agenda_entry(self):
        item = Item.from_dict(
            {"id": 7, "name": "Offering", "duration": "5", "type": ItemKinds.Normal}
        )
        assert item.id == "7"
        assert item.planned_minutes == 5
        assert item.planned_seconds == 300
        assert item.actual_seconds is None

    @pytest.mark.parametrize("duration", [None, "abc", -3])
    def test_bad_durations_read_as_zero(self, duration):
        assert Item.from_dict({"id": "x", "name": "n", "duration": duration}).planned_minutes == 0

    def test_is_finished_flag_wins(self):
        session = Session.from_dict({"id": "s", "status": "live", "isFinished": True})
        assert session.status == SessionStatuses.Finished
        assert session.to_dict()["isFinished"] is True

    def test_copy_does_not_share_items(self):
        session = make_session()
        clone = session.copy()
        clone.items[0].actual_seconds = 12
        clone.items.append(Item.new("Extra"))
        assert session.items[0].actual_seconds is None
        assert len(session.items) == 3


class TestJsonSessionRepository:

    def test_get_and_update(self, tmp_path):
        path = tmp_path / "sessions.json"
        _write_sessions(path, [make_session("svc1"), make_session("svc2")])
        repository = JsonSessionRepository(str(path))

        session = repository.get("svc2")
        session.status = SessionStatuses.Live
        session.items[0].actual_seconds = 95
        repository.update(session)

        stored = JsonSessionRepository(str(path)).get("svc2")
        assert stored.status == SessionStatuses.Live
        assert stored.items[0].actual_seconds == 95
        assert repository.get("svc1").status == SessionStatuses.Draft

    def test_update_keeps_unknown_keys_and_integer_ids(self, tmp_path):
        path = tmp_path / "sessions.json"
        record = {
            "id": "svc1",
            "theme": "Hope",
            "createdAt": "2026-01-04T09:00:00Z",
            "parts": [
                {"id": 1, "name": "Welcome", "duration": 5, "color": "blue"},
                {"id": 2, "name": "Sermon", "duration": 30},
            ],
            "status": "draft",
        }
        path.write_text(json.dumps([record]))
        repository = JsonSessionRepository(str(path))

        session = repository.get("svc1")
        session.items[0].actual_seconds = 280
        session.items.append(Item(id="extra", name="Offering"))
        repository.update(session)

        with open(path) as f:
            stored = json.load(f)[0]
        assert stored["createdAt"] == "2026-01-04T09:00:00Z"
        assert [part["id"] for part in stored["parts"]] == [1, 2, "extra"]
        assert stored["parts"][0]["color"] == "blue"
        assert stored["parts"][0]["actualDuration"] == 280
        assert repository.get("svc1").items[0].actual_seconds == 280

    def test_missing_file_is_empty(self, tmp_path):
        repository = JsonSessionRepository(str(tmp_path / "nope.json"))
        assert repository.list_sessions() == []
        with pytest.raises(SessionNotFoundError):
            repository.get("svc1")

    def test_unknown_session_on_update(self, tmp_path):
        path = tmp_path / "sessions.json"
        _write_sessions(path, [make_session("svc1")])
        with pytest.raises(SessionNotFoundError) as e:
            JsonSessionRepository(str(path)).update(make_session("svc9"))
        assert str(e.value) == "Session svc9 not found"

    @pytest.mark.parametrize("content", ["{not json", '{"id": "svc1"}'])
    def test_corrupt_file_raises(self, tmp_path, content):
        path = tmp_path / "sessions.json"
        path.write_text(content)
        with pytest.raises(PersistenceError):
            JsonSessionRepository(str(path)).list_sessions()


class TestSnapshotStore:

    def _view(self, **overrides):
        session = make_session()
        fields = dict(
            session_id=session.id,
            theme=session.theme,
            current_item=session.items[0],
            next_item=session.items[1],
            elapsed_seconds=30,
            running=True,
        )
        fields.update(overrides)
        return ControllerView(**fields)

    def test_publisher_writes_same_payload_to_store_and_relay(self, tmp_path):
        store = SnapshotStore(str(tmp_path))
        connection = RecordingConnection()
        publisher = SnapshotPublisher(store, connection)

        snapshot = publisher.publish(self._view())

        assert os.path.exists(store.path_for("svc1"))
        assert os.path.basename(store.path_for("svc1")) == "live_state_svc1.json"
        assert store.read("svc1") == snapshot.to_dict()
        assert connection.published == [("svc1", snapshot.to_dict())]

    def test_revisions_increase_per_publish(self, tmp_path):
        publisher = SnapshotPublisher(SnapshotStore(str(tmp_path)))
        first = publisher.publish(self._view())
        second = publisher.publish(self._view(elapsed_seconds=31))
        assert (first.revision, second.revision) == (1, 2)
        assert second.timer == "9:29"

    def test_subscribers_are_notified_until_unsubscribed(self, tmp_path):
        store = SnapshotStore(str(tmp_path))
        publisher = SnapshotPublisher(store)
        received = []
        unsubscribe = store.subscribe("svc1", received.append)

        publisher.publish(self._view())
        unsubscribe()
        publisher.publish(self._view())

        assert len(received) == 1
        assert received[0]["revision"] == 1

    def test_read_missing_and_corrupt(self, tmp_path):
        store = SnapshotStore(str(tmp_path))
        assert store.read("svc1") is None
        with open(store.path_for("svc1"), "w") as f:
            f.write("{")
        assert store.read_raw("svc1") == "{"
        assert store.read("svc1") is None

    def test_store_failure_still_reaches_relay(self, tmp_path):
        blocker = tmp_path / "live"
        blocker.write_text("not a directory")
        connection = RecordingConnection()
        publisher = SnapshotPublisher(SnapshotStore(str(blocker)), connection)

        snapshot = publisher.publish(self._view())
        assert connection.published == [("svc1", snapshot.to_dict())]
