"""Tests for pose sources and the ingest worker."""

import datetime
import socket
import threading
import time

import pytest

from rpit_bridge import protocol
from rpit_bridge.config import BridgeConfig
from rpit_bridge.sources import (
    IngestWorker,
    PoseSource,
    SimulatedTracker,
    UdpPoseSource,
    VrpnTrackerSource,
    open_source,
)

from conftest import payload


class RecordingSource(PoseSource):
    """Dispatches a fixed list of reports, one per cycle."""

    def __init__(self, reports):
        super().__init__()
        self.reports = list(reports)
        self.closed = False

    def mainloop(self):
        if self.reports:
            self._dispatch(*self.reports.pop(0))
        else:
            time.sleep(0.001)

    def close(self):
        self.closed = True


def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return False


def test_handlers_receive_reports():
    received = []
    source = RecordingSource([(b"abc", 1, 2)])
    source.register_handler(lambda p, s, u: received.append((p, s, u)) or True)
    source.mainloop()
    assert received == [(b"abc", 1, 2)]


def test_worker_runs_until_stopped(ingest, state):
    source = RecordingSource([
        (payload((1.0, 0.0, 0.0)), 100, 0),
        (b"short", 100, 1),
        (payload((2.0, 0.0, 0.0)), 100, 10),
    ])
    worker = IngestWorker(source, ingest)
    worker.start()
    assert wait_for(lambda: ingest.accepted == 2 and ingest.rejected == 1)
    worker.stop()

    assert not worker.running
    assert source.closed
    assert state.snapshot_measurement().position == (2.0, 0.0, 0.0)
    assert state.snapshot_measurement().timestamp_us == 10


def test_udp_source_relays_payloads(ingest, state):
    source = UdpPoseSource("127.0.0.1", 0, timeout=0.05)
    worker = IngestWorker(source, ingest)
    worker.start()
    sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sender.sendto(payload((0.5, 0.25, 0.125)), source.address)
        assert wait_for(lambda: ingest.accepted == 1)
    finally:
        sender.close()
        worker.stop()
    assert state.snapshot_measurement().position == (0.5, 0.25, 0.125)


def test_simulated_tracker_payloads_decode():
    tracker = SimulatedTracker(rate_hz=1000.0, radius=0.5)
    sensor, position, quaternion = protocol.decode_tracker_pose(tracker.sample_payload(0.0))
    assert sensor == 0
    assert position == pytest.approx((0.5, 0.0, 1.0))
    assert quaternion == pytest.approx((0.0, 0.0, 0.0, 1.0))


def test_simulated_tracker_feeds_ingest(ingest, state):
    worker = IngestWorker(SimulatedTracker(rate_hz=500.0), ingest)
    worker.start()
    assert wait_for(lambda: ingest.accepted >= 5)
    worker.stop()
    assert state.snapshot_measurement().timestamp_us > 0


def test_simulated_tracker_rate_must_be_positive():
    with pytest.raises(ValueError):
        SimulatedTracker(rate_hz=0.0)


def test_open_source_simulate():
    assert isinstance(open_source(BridgeConfig(source="simulate")), SimulatedTracker)


def test_open_source_unknown():
    with pytest.raises(ValueError):
        open_source(BridgeConfig(source="serial"))


class FailingFirstCycleSource(RecordingSource):
    """Raises on the first dispatch cycle, then behaves like RecordingSource."""

    def __init__(self, reports):
        super().__init__(reports)
        self.cycles = 0

    def mainloop(self):
        self.cycles += 1
        if self.cycles == 1:
            raise ValueError("quaternion vector must have 4 values, got 3")
        super().mainloop()


def test_worker_survives_failing_cycle(ingest, state, event_log):
    source = FailingFirstCycleSource([(payload((1.0, 2.0, 3.0)), 100, 0)])
    worker = IngestWorker(source, ingest, callback=event_log.append)
    worker.start()
    try:
        assert wait_for(lambda: ingest.accepted == 1)
        assert worker.running
    finally:
        worker.stop()
    assert state.snapshot_measurement().position == (1.0, 2.0, 3.0)
    assert any(e.get("kind") == "source_error" for e in event_log)


class GatedSource(PoseSource):
    """mainloop() blocks until the gate is opened."""

    def __init__(self):
        super().__init__()
        self.gate = threading.Event()
        self.closed = False

    def mainloop(self):
        self.gate.wait()

    def close(self):
        self.closed = True


def test_stop_keeps_source_open_while_thread_alive(ingest, event_log):
    source = GatedSource()
    worker = IngestWorker(source, ingest, callback=event_log.append)
    worker.start()

    worker.stop(timeout=0.05)
    assert worker.running
    assert not source.closed
    assert event_log[-1]["type"] == "warn"

    source.gate.set()
    worker.stop()
    assert not worker.running
    assert source.closed
    assert event_log[-1]["type"] == "ingest_stopped"


def _bare_vrpn_source(callback):
    # Skips __init__, which needs the VRPN bindings
    source = VrpnTrackerSource.__new__(VrpnTrackerSource)
    PoseSource.__init__(source)
    source.callback = callback
    source._tracker = None
    return source


def test_vrpn_malformed_report_dropped(event_log):
    received = []
    source = _bare_vrpn_source(event_log.append)
    source.register_handler(lambda p, s, u: received.append((p, s, u)) or True)

    source._on_change(None, {"sensor": 0, "position": (1.0, 2.0, 3.0)})
    source._on_change(None, {"sensor": 0, "position": (1.0, 2.0), "quaternion": (0.0, 0.0, 0.0, 1.0)})

    assert received == []
    assert [e["kind"] for e in event_log] == ["decode_error", "decode_error"]


def test_vrpn_report_dispatched_with_capture_time(event_log):
    received = []
    source = _bare_vrpn_source(event_log.append)
    source.register_handler(lambda p, s, u: received.append((p, s, u)) or True)
    when = datetime.datetime.fromtimestamp(1_700_000_000.25, tz=datetime.timezone.utc)

    source._on_change(None, {"sensor": 1, "position": (1.0, 2.0, 3.0), "quaternion": (0.0, 0.0, 0.0, 1.0), "time": when})

    assert received == [(payload((1.0, 2.0, 3.0), sensor=1), 1_700_000_000, 250_000)]
    assert event_log == []


def test_vrpn_mainloop_after_close_is_noop():
    source = _bare_vrpn_source(None)
    source.close()
    source.mainloop()
