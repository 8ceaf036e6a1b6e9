"""
Shared pytest fixtures for runorder tests.

Provides:
- clock: a manually advanced FakeClock
- session: a three-item session (10, 30 and 5 minutes)
- connection / publisher / repository: recording doubles wired together
- controller: a SessionController over the above
"""

from __future__ import annotations

import pytest

from runorder.configurations.runorder_config import RunOrderConfig
from runorder.session.controller import SessionController
from runorder.session.publisher import SnapshotPublisher
from tests.helpers.session_helpers import (FakeClock, FakeScheduler,
                                           MemoryRepository,
                                           RecordingConnection,
                                           RecordingRenderer, make_session)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def wall_clock():
    return FakeClock(start=1_767_000_000.0)


@pytest.fixture
def config(tmp_path):
    return RunOrderConfig().storage(data_dir=str(tmp_path)).logging(log_file=None)


@pytest.fixture
def session():
    return make_session()


@pytest.fixture
def connection():
    return RecordingConnection()


@pytest.fixture
def publisher(connection):
    return SnapshotPublisher(store=None, connection=connection)


@pytest.fixture
def repository(session):
    return MemoryRepository([session])


@pytest.fixture
def controller(session, publisher, repository, config, clock, wall_clock):
    return SessionController(
        session,
        publisher,
        repository=repository,
        config=config,
        clock=clock,
        wall_clock=wall_clock,
    )


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def scheduler():
    return FakeScheduler()
