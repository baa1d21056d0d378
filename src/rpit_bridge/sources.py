"""Upstream pose sources.

A source is a subscription: handlers are registered once and `mainloop()`
runs one bounded dispatch cycle, calling each handler with
(payload, tv_sec, tv_usec) for every tracker report received. Every source
delivers VRPN Pos_Quat payloads so that ingestion has a single decode path.

Available sources:
- vrpn: a VRPN tracker ("name@host") through the VRPN Python bindings
- udp: raw Pos_Quat payloads relayed over UDP, one report per datagram
- simulate: synthetic pose stream for bench testing without a tracker
"""

from __future__ import annotations

import math
import socket
import threading
import time
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple

from . import events, protocol
from .events import EventCallback

if TYPE_CHECKING:
    from .config import BridgeConfig
    from .ingest import PoseIngest

PoseHandler = Callable[[bytes, int, int], bool]

# Default UDP port for relayed tracker payloads
DEFAULT_POSE_PORT = 31416

# Upper bound on one dispatch cycle (seconds)
DEFAULT_POLL_TIMEOUT = 0.1


def _split_time_ns(t_ns: int) -> Tuple[int, int]:
    """Split a wall-clock time in ns into (tv_sec, tv_usec)."""
    usec = t_ns // 1000
    return usec // 1_000_000, usec % 1_000_000


class PoseSource:
    """Base class for pose sources."""

    def __init__(self) -> None:
        self._handlers: List[PoseHandler] = []

    def register_handler(self, handler: PoseHandler) -> None:
        """Register a handler called for every tracker report."""
        self._handlers.append(handler)

    def _dispatch(self, payload: bytes, tv_sec: int, tv_usec: int) -> None:
        for handler in self._handlers:
            handler(payload, tv_sec, tv_usec)

    def mainloop(self) -> None:
        """Run one dispatch cycle."""
        raise NotImplementedError

    def close(self) -> None:
        """Release the source's resources."""


class VrpnTrackerSource(PoseSource):
    """VRPN tracker through the `vrpn` Python bindings shipped with VRPN.

    The bindings deliver decoded change reports; each report is re-encoded
    as the Pos_Quat payload it was carried in, with its capture time.
    """

    def __init__(
        self,
        tracker: str,
        poll_interval: float = 0.0005,
        callback: Optional[EventCallback] = None,
    ):
        super().__init__()
        self.callback = callback
        try:
            import vrpn  # type: ignore
        except ImportError as e:
            raise RuntimeError(
                "VRPN Python bindings not installed. Build VRPN with "
                "-DVRPN_BUILD_PYTHON=ON, or use the 'udp' or 'simulate' source."
            ) from e

        self.tracker_name = tracker
        self.poll_interval = poll_interval
        self._tracker = vrpn.receiver.Tracker(tracker)
        self._tracker.register_change_handler(None, self._on_change, "position")

    def _on_change(self, _userdata, data) -> None:
        try:
            payload = protocol.pack_tracker_pose(
                int(data.get("sensor", 0)),
                data["position"],
                data["quaternion"],
            )
            t = data.get("time")
            if t is not None:
                t_ns = int(round(t.timestamp() * 1_000_000)) * 1000
            else:
                t_ns = time.time_ns()
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            events.emit(
                events.error_event("decode_error", f"malformed tracker report dropped: {e!r}"),
                self.callback,
            )
            return
        tv_sec, tv_usec = _split_time_ns(t_ns)
        self._dispatch(payload, tv_sec, tv_usec)

    def mainloop(self) -> None:
        tracker = self._tracker
        if tracker is None:
            return
        tracker.mainloop()
        if self.poll_interval > 0:
            time.sleep(self.poll_interval)

    def close(self) -> None:
        self._tracker = None


class UdpPoseSource(PoseSource):
    """Pos_Quat payloads relayed over UDP, timestamped on receipt."""

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = DEFAULT_POSE_PORT,
        timeout: float = DEFAULT_POLL_TIMEOUT,
    ):
        super().__init__()
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.sock.bind((host, port))
        self.sock.settimeout(timeout)

    @property
    def address(self) -> Tuple[str, int]:
        return self.sock.getsockname()

    def mainloop(self) -> None:
        try:
            data, _addr = self.sock.recvfrom(2048)
        except socket.timeout:
            return
        tv_sec, tv_usec = _split_time_ns(time.time_ns())
        self._dispatch(data, tv_sec, tv_usec)

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            pass


class SimulatedTracker(PoseSource):
    """Synthetic tracker: a point circling the origin with a yawing body."""

    def __init__(self, rate_hz: float = 100.0, radius: float = 0.5, sensor: int = 0):
        super().__init__()
        if rate_hz <= 0:
            raise ValueError("rate_hz must be positive")
        self.period = 1.0 / rate_hz
        self.radius = radius
        self.sensor = sensor
        self._start = time.monotonic()
        self._next = self._start

    def sample_payload(self, t: float) -> bytes:
        """Payload of the simulated pose at t seconds after start."""
        angle = 0.5 * t
        position = (self.radius * math.cos(angle), self.radius * math.sin(angle), 1.0)
        quaternion = (0.0, 0.0, math.sin(angle / 2.0), math.cos(angle / 2.0))
        return protocol.pack_tracker_pose(self.sensor, position, quaternion)

    def mainloop(self) -> None:
        delay = self._next - time.monotonic()
        if delay > 0:
            time.sleep(delay)
        self._next += self.period
        tv_sec, tv_usec = _split_time_ns(time.time_ns())
        self._dispatch(self.sample_payload(time.monotonic() - self._start), tv_sec, tv_usec)


def open_source(config: "BridgeConfig", callback: Optional[EventCallback] = None) -> PoseSource:
    """Create the pose source selected by config.source."""
    if config.source == "vrpn":
        return VrpnTrackerSource(config.tracker, callback=callback)
    if config.source == "udp":
        return UdpPoseSource(config.pose_host, config.pose_port)
    if config.source == "simulate":
        return SimulatedTracker(config.simulate_hz)
    raise ValueError(f"Unknown pose source: {config.source}")


class IngestWorker:
    """Thread running a source's dispatch loop into a PoseIngest.

    The stop flag is polled between dispatch cycles, so shutdown latency is
    bounded by the source's cycle time.
    """

    def __init__(
        self,
        source: PoseSource,
        ingest: "PoseIngest",
        callback: Optional[EventCallback] = None,
    ):
        self.source = source
        self.ingest = ingest
        self.callback = callback
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        source.register_handler(ingest.handle)

    def _emit(self, event) -> None:
        events.emit(event, self.callback)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, daemon=True, name="PoseIngest")
        self._thread.start()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.source.mainloop()
            except OSError as e:
                if self._stop.is_set():
                    break
                self._emit(events.error_event("transport_error", f"pose source error: {e}"))
                time.sleep(DEFAULT_POLL_TIMEOUT)
            except Exception as e:
                # One bad report is dropped; the dispatch loop keeps running
                self._emit(events.error_event("source_error", f"dispatch cycle failed: {e!r}"))

    def stop(self, timeout: float = 2.0) -> None:
        """Request termination and join the thread."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                self._emit({"type": "warn", "message": "ingest thread did not stop in time, source left open"})
                return
            self._thread = None
        self.source.close()
        self._emit({"type": "ingest_stopped", "accepted": self.ingest.accepted, "rejected": self.ingest.rejected})
