from __future__ import annotations

import json
import logging
from unittest.mock import patch

import pytest

from runorder import cli
from runorder.configurations.configuration_constants import (DeviceRoles,
                                                             ItemKinds,
                                                             WireEvents)
from runorder.configurations.runorder_config import RunOrderConfig
from runorder.session.controller import ControllerState, SessionController
from runorder.session.publisher import SnapshotPublisher
from runorder.session.store import SnapshotStore
from tests.helpers.session_helpers import (RecordingConnection,
                                           RecordingRenderer, make_session)


class TestHandleCommand:

    def test_operator_commands(self, controller, connection):
        assert cli.handle_command(controller, "pause") is True
        assert controller.state == ControllerState.RUNNING

        cli.handle_command(controller, "msg Please wrap up")
        assert controller.message_content == "Please wrap up"

        cli.handle_command(controller, "clear")
        assert controller.hide_message_id is not None

        cli.handle_command(controller, "unforeseen Fire alarm")
        assert controller.items[1].kind == ItemKinds.Unforeseen

        cli.handle_command(controller, "add Benediction 3 Pastor Kim")
        assert controller.items[-1].name == "Benediction"
        assert controller.items[-1].planned_minutes == 3
        assert controller.items[-1].leader == "Pastor Kim"

        cli.handle_command(controller, "display")
        assert connection.triggers == ["svc1"]

        cli.handle_command(controller, "next")
        assert controller.current_index == 1

    def test_last_next_ends_console(self, controller):
        results = [cli.handle_command(controller, "next") for _ in controller.items]
        assert results[-1] is False
        assert controller.finished is True

    @pytest.mark.parametrize("line", ["quit", "EXIT", "  quit  "])
    def test_quit(self, controller, line):
        assert cli.handle_command(controller, line) is False

    def test_unknown_command_prints_help(self, controller, connection, capsys):
        assert cli.handle_command(controller, "rewind") is True
        assert "Commands:" in capsys.readouterr().out
        assert connection.published == []

    def test_blank_line_and_bare_add(self, controller, connection):
        assert cli.handle_command(controller, "") is True
        assert cli.handle_command(controller, "add") is True
        assert len(controller.items) == 3
        assert connection.published == []


class TestParser:

    def test_relay_options_reach_config(self, tmp_path):
        args = cli.make_parser().parse_args(
            ["--data-dir", str(tmp_path), "--log-level", "debug", "relay", "--port", "4000"]
        )
        config = cli.build_config(args)
        assert args.func is cli.run_relay
        assert config.port == 4000
        assert config.host == "0.0.0.0"
        assert config.data_dir == str(tmp_path)
        assert config.log_level == logging.DEBUG

    def test_register_rejects_unknown_role(self):
        with pytest.raises(SystemExit):
            cli.make_parser().parse_args(["register", "projector"])

    def test_register_writes_role(self, tmp_path):
        args = cli.make_parser().parse_args(
            ["--data-dir", str(tmp_path), "register", DeviceRoles.Tablet]
        )
        assert cli.run_register(args) == 0
        with open(tmp_path / "device_role.json") as f:
            assert json.load(f) == {"role": DeviceRoles.Tablet}


class TestRunOrderConfig:

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("RUNORDER_RELAY_URL", raising=False)
        monkeypatch.delenv("RUNORDER_DATA_DIR", raising=False)
        config = RunOrderConfig()
        assert config.port == 3001
        assert config.relay_url == "http://localhost:3001"
        assert config.message_seconds == 5.0
        assert config.store_poll_interval == 0.5

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("RUNORDER_RELAY_URL", "http://relay.local:9000")
        monkeypatch.setenv("RUNORDER_DATA_DIR", str(tmp_path))
        config = RunOrderConfig().relay().storage()
        assert config.relay_url == "http://relay.local:9000"
        assert config.sessions_path == str(tmp_path / "sessions.json")
        assert config.snapshot_dir == str(tmp_path / "live")

    def test_builder_chains(self):
        config = (
            RunOrderConfig()
            .hosting(port=5000, ping_timeout=10)
            .display(message_seconds=3.0)
            .controller(tick_interval=0.25)
        )
        assert (config.port, config.ping_timeout, config.ping_interval) == (5000, 10, 8)
        assert config.message_seconds == 3.0
        assert config.tick_interval == 0.25

    def test_rejects_non_positive_durations(self):
        with pytest.raises(AssertionError):
            RunOrderConfig().display(message_seconds=0)


class TestShutdownConsole:

    def test_finished_session_resends_terminal_snapshot(self, controller, connection):
        for _ in list(controller.items):
            controller.advance()
        terminal = connection.published[-1]

        with patch("eventlet.sleep") as mock_sleep:
            cli.shutdown_console(controller, connection)

        assert connection.published[-1] == terminal
        assert connection.published[-2] == terminal
        assert terminal[1]["close_display_id"] is not None
        mock_sleep.assert_called_once_with(controller.config.tick_interval)
        assert connection.disconnected is True

    def test_live_session_is_not_republished(self, controller, connection):
        controller.toggle_running()
        published = len(connection.published)

        with patch("eventlet.sleep"):
            cli.shutdown_console(controller, connection)

        assert len(connection.published) == published
        assert connection.disconnected is True


class TestDisplayStation:
    """Relays console emits to a display station by hand, as the relay would."""

    def _forward(self, console, station, sent):
        for _, payload in console.published[sent:]:
            station.fire(WireEvents.PublishState, payload)
        return len(console.published)

    def test_closed_display_reopens_on_trigger(self, config, tmp_path):
        store = SnapshotStore(str(tmp_path / "live"))
        console, station = RecordingConnection(), RecordingConnection()
        controller = SessionController(
            make_session(), SnapshotPublisher(store, console), config=config
        )

        with patch("runorder.display.channels.eventlet"):
            launcher = cli.build_display_station(config, station, store, RecordingRenderer)

            controller.toggle_display()
            station.fire(WireEvents.TriggerDisplay, console.triggers[-1])
            sent = self._forward(console, station, 0)
            first = launcher.displays["svc1"]
            assert first.closed is False

            controller.toggle_display()
            sent = self._forward(console, station, sent)
            assert first.closed is True
            assert first.renderer.close_calls == 1

            controller.toggle_display()
            station.fire(WireEvents.TriggerDisplay, console.triggers[-1])
            self._forward(console, station, sent)

        second = launcher.displays["svc1"]
        assert second is not first
        assert second.closed is False
        assert second.state.snapshot.close_display_id is None
        assert len(second.renderer.views) == 1
        assert console.triggers == ["svc1", "svc1"]
