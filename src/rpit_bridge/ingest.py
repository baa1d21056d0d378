"""Pose ingest: decode tracker reports and publish them as measurements."""

from __future__ import annotations

from typing import Optional

from . import events, protocol
from .epoch import EpochLatch
from .errors import DecodeError
from .events import EventCallback
from .pose import PoseSample
from .state import SharedState


class PoseIngest:
    """Handler for tracker change reports.

    `handle` is registered with a PoseSource and is a pure function of
    (payload, capture time) apart from its writes to the shared state, so it
    can be driven directly in tests.
    """

    def __init__(
        self,
        state: SharedState,
        epoch: Optional[EpochLatch] = None,
        callback: Optional[EventCallback] = None,
        quiet: bool = False,
    ):
        self.state = state
        self.epoch = epoch if epoch is not None else EpochLatch()
        self.callback = callback
        self.quiet = quiet

        self.accepted = 0
        self.rejected = 0

    def _emit(self, event) -> None:
        events.emit(event, self.callback, self.quiet)

    def handle(self, payload: bytes, tv_sec: int, tv_usec: int) -> bool:
        """Ingest one Pos_Quat payload captured at (tv_sec, tv_usec).

        Returns:
            True if the measurement was updated, False if the report was
            dropped (the shared state is left untouched).
        """
        try:
            sample = PoseSample.from_payload(payload, tv_sec, tv_usec)
        except DecodeError as e:
            self.rejected += 1
            self._emit(events.error_event(
                "decode_error",
                "tracker change message payload error",
                expected=e.expected,
                received=e.received,
            ))
            return False

        timestamp_us = self.epoch.relative(sample.timestamp_us)
        msg = protocol.measurement_from_pose(timestamp_us, sample.position, sample.quaternion)
        self.state.store_measurement(msg)
        self.accepted += 1

        self._emit({"type": "pose", "timestamp_us": timestamp_us, "data": sample.to_dict()})
        return True
