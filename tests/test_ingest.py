"""Tests for pose ingestion."""

from rpit_bridge import protocol

from conftest import BASE_SEC, payload


def test_scenario_measurement(ingest, state):
    assert ingest.handle(payload((1.0, 2.0, 3.0)), BASE_SEC, 0)
    msg = state.snapshot_measurement()
    assert msg.magic == protocol.MAGIC
    assert msg.timestamp_us == 0
    assert msg.values == (1.0, 2.0, 3.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0)


def test_relative_timestamps(ingest, state):
    ingest.handle(payload(), BASE_SEC, 500_000)
    ingest.handle(payload(), BASE_SEC + 1, 250_000)
    assert ingest.epoch.epoch_us == BASE_SEC * 1_000_000 + 500_000
    assert state.snapshot_measurement().timestamp_us == 750_000


def test_wrong_length_dropped(ingest, state, event_log):
    ingest.handle(payload((4.0, 5.0, 6.0)), BASE_SEC, 0)
    before = state.snapshot_measurement()

    assert not ingest.handle(b"\x00" * 56, BASE_SEC, 10)
    assert not ingest.handle(payload() + b"\x00", BASE_SEC, 20)

    assert state.snapshot_measurement() == before
    assert ingest.accepted == 1
    assert ingest.rejected == 2
    errors = [e for e in event_log if e["type"] == "error"]
    assert [(e["kind"], e["expected"], e["received"]) for e in errors] == [
        ("decode_error", 64, 56),
        ("decode_error", 64, 65),
    ]


def test_rejected_payload_does_not_latch_epoch(ingest):
    ingest.handle(b"", BASE_SEC, 0)
    assert not ingest.epoch.is_set


def test_pose_event_logged(ingest, event_log):
    ingest.handle(payload((1.0, 2.0, 3.0), sensor=2), BASE_SEC, 0)
    poses = [e for e in event_log if e["type"] == "pose"]
    assert poses == [{
        "type": "pose",
        "timestamp_us": 0,
        "data": {
            "sensor": 2,
            "x": 1.0, "y": 2.0, "z": 3.0,
            "qx": 0.0, "qy": 0.0, "qz": 0.0, "qw": 1.0,
            "capture_us": BASE_SEC * 1_000_000,
        },
    }]


def test_failing_log_callback_does_not_fail_ingest(state):
    from rpit_bridge.ingest import PoseIngest

    def broken(event):
        raise RuntimeError("log sink down")

    ingest = PoseIngest(state, callback=broken, quiet=True)
    assert ingest.handle(payload((1.0, 1.0, 1.0)), BASE_SEC, 0)
    assert state.snapshot_measurement().position == (1.0, 1.0, 1.0)
