"""Shared fixtures for the bridge tests."""

import threading

import pytest

from rpit_bridge import protocol
from rpit_bridge.client import RpitClient
from rpit_bridge.epoch import EpochLatch
from rpit_bridge.ingest import PoseIngest
from rpit_bridge.server import RequestServer
from rpit_bridge.state import SharedState

IDENTITY = (0.0, 0.0, 0.0, 1.0)
BASE_SEC = 1_700_000_000


def payload(position=(0.0, 0.0, 0.0), quaternion=IDENTITY, sensor=0):
    return protocol.pack_tracker_pose(sensor, position, quaternion)


@pytest.fixture
def event_log():
    return []


@pytest.fixture
def state():
    return SharedState()


@pytest.fixture
def ingest(state, event_log):
    return PoseIngest(state, EpochLatch(), callback=event_log.append, quiet=True)


@pytest.fixture
def server(state, event_log):
    srv = RequestServer(
        state,
        host="127.0.0.1",
        port=0,
        recv_timeout=0.05,
        callback=event_log.append,
        quiet=True,
    )
    srv.bind()
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield srv
    srv.stop()
    thread.join(timeout=2.0)


@pytest.fixture
def client(server):
    host, port = server.address[:2]
    with RpitClient(host, port, timeout=2.0) as c:
        yield c
