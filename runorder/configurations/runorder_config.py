from __future__ import annotations

import logging
import os

from runorder.utils.sentinels import NotProvided

logger = logging.getLogger(__name__)


class RunOrderConfig:
    def __init__(self):

        # Hosting
        self.host = "0.0.0.0"
        self.port = 3001
        # Socket.IO heartbeat, in seconds
        self.ping_interval = 8
        self.ping_timeout = 30

        # Relay URL used by consoles and displays
        self.relay_url: str = os.environ.get(
            "RUNORDER_RELAY_URL", "http://localhost:3001"
        )

        # Storage
        self.data_dir: str = os.environ.get("RUNORDER_DATA_DIR", "./data")
        self.sessions_file: str = "sessions.json"
        self.device_role_file: str = "device_role.json"

        # Display
        self.message_seconds: float = 5.0
        self.store_poll_interval: float = 0.5

        # Controller
        self.tick_interval: float = 1.0

        # Logging
        self.log_file: str | None = "./runorder.log"
        self.log_level: int = logging.INFO

    def hosting(
        self,
        host: str = NotProvided,
        port: int = NotProvided,
        ping_interval: int = NotProvided,
        ping_timeout: int = NotProvided,
    ) -> RunOrderConfig:
        if host is not NotProvided:
            self.host = host

        if port is not NotProvided:
            self.port = port

        if ping_interval is not NotProvided:
            self.ping_interval = ping_interval

        if ping_timeout is not NotProvided:
            self.ping_timeout = ping_timeout

        return self

    def relay(self, url: str | None = None) -> RunOrderConfig:
        """
        Point consoles and displays at a relay.

        Falls back to the RUNORDER_RELAY_URL environment variable, then to
        the local default, when no url is given.
        """
        resolved = url or os.environ.get("RUNORDER_RELAY_URL")
        if resolved:
            self.relay_url = resolved
        else:
            logger.info(f"No relay URL given, using {self.relay_url}")
        return self

    def storage(
        self,
        data_dir: str | None = None,
        sessions_file: str = NotProvided,
        device_role_file: str = NotProvided,
    ) -> RunOrderConfig:
        resolved = data_dir or os.environ.get("RUNORDER_DATA_DIR")
        if resolved:
            self.data_dir = resolved

        if sessions_file is not NotProvided:
            self.sessions_file = sessions_file

        if device_role_file is not NotProvided:
            self.device_role_file = device_role_file

        return self

    def display(
        self,
        message_seconds: float = NotProvided,
        store_poll_interval: float = NotProvided,
    ) -> RunOrderConfig:
        if message_seconds is not NotProvided:
            assert message_seconds > 0, "message_seconds must be positive."
            self.message_seconds = message_seconds

        if store_poll_interval is not NotProvided:
            assert store_poll_interval > 0, "store_poll_interval must be positive."
            self.store_poll_interval = store_poll_interval

        return self

    def controller(self, tick_interval: float = NotProvided) -> RunOrderConfig:
        if tick_interval is not NotProvided:
            assert tick_interval > 0, "tick_interval must be positive."
            self.tick_interval = tick_interval

        return self

    def logging(
        self,
        log_file: str | None = NotProvided,
        level: int | str = NotProvided,
    ) -> RunOrderConfig:
        if log_file is not NotProvided:
            self.log_file = log_file

        if level is not NotProvided:
            if isinstance(level, str):
                level = logging.getLevelName(level.upper())
            self.log_level = level

        return self

    @property
    def sessions_path(self) -> str:
        return os.path.join(self.data_dir, self.sessions_file)

    @property
    def device_role_path(self) -> str:
        return os.path.join(self.data_dir, self.device_role_file)

    @property
    def snapshot_dir(self) -> str:
        return os.path.join(self.data_dir, "live")
