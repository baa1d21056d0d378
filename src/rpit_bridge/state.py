"""Shared state between the pose ingest thread and the request server.

One lock covers both the measurement and the control slot. Messages are
immutable, so the critical sections are bounded to a reference copy and a
snapshot is always entirely one write.
"""

from __future__ import annotations

import threading
import time
from typing import Optional, Sequence

from . import protocol
from .protocol import MeasurementMsg, Vector


class SharedState:
    """Latest measurement and latest control vector, guarded by one lock.

    Example:
        >>> state = SharedState()
        >>> state.store_control([0.0] * 10)
        >>> state.snapshot_measurement().magic == protocol.MAGIC
        True
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._measurement: MeasurementMsg = protocol.initial_measurement()
        self._control: Vector = protocol.zero_control()
        # Monotonic time (ns) of the last measurement write, None before the first
        self._measurement_written_ns: Optional[int] = None

    def store_measurement(self, msg: MeasurementMsg) -> None:
        """Replace the latest measurement (last write wins)."""
        now_ns = time.monotonic_ns()
        with self._lock:
            self._measurement = msg
            self._measurement_written_ns = now_ns

    def store_control(self, values: Sequence[float]) -> None:
        """Replace the latest control vector.

        Raises:
            ValueError: If values does not hold CONTROL_N entries.
        """
        vector = tuple(float(v) for v in values)
        if len(vector) != protocol.CONTROL_N:
            raise ValueError(f"control vector must have {protocol.CONTROL_N} values, got {len(vector)}")
        with self._lock:
            self._control = vector

    def snapshot_measurement(self) -> MeasurementMsg:
        """Copy out the latest measurement."""
        with self._lock:
            return self._measurement

    def snapshot_control(self) -> Vector:
        """Copy out the latest control vector."""
        with self._lock:
            return self._control

    def measurement_age_us(self, now_ns: Optional[int] = None) -> Optional[int]:
        """Age of the latest measurement in us, or None if none was ever stored."""
        with self._lock:
            written_ns = self._measurement_written_ns
        if written_ns is None:
            return None
        if now_ns is None:
            now_ns = time.monotonic_ns()
        return max(0, now_ns - written_ns) // 1000
