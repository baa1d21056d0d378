"""Bridge wiring: pose source -> ingest -> shared state <- request server.

The server socket is bound before ingestion starts, so a bind failure
aborts startup before any thread is running.
"""

from __future__ import annotations

import signal
import threading
from typing import Optional

from . import events
from .config import BridgeConfig
from .epoch import EpochLatch
from .events import EventCallback
from .ingest import PoseIngest
from .server import RequestServer
from .sources import IngestWorker, PoseSource, open_source
from .state import SharedState


class Bridge:
    """The assembled bridge: one ingest thread and the request server loop."""

    def __init__(
        self,
        config: BridgeConfig,
        source: Optional[PoseSource] = None,
        callback: Optional[EventCallback] = None,
    ):
        self.config = config
        self.callback = callback
        self.state = SharedState()
        self.epoch = EpochLatch()
        self.ingest = PoseIngest(self.state, self.epoch, callback=callback, quiet=config.quiet)
        self.server = RequestServer(
            self.state,
            host=config.host,
            port=config.port,
            recv_timeout=config.recv_timeout,
            watchdog_us=config.watchdog_us,
            callback=callback,
            quiet=config.quiet,
            mdns=config.mdns,
            service_name=config.service_name,
        )
        self._source = source
        self.worker: Optional[IngestWorker] = None

    def start(self) -> None:
        """Bind the server and start the ingest thread.

        Raises:
            BindError: If the server socket cannot be bound.
        """
        self.server.bind()
        source = self._source if self._source is not None else open_source(self.config, self.callback)
        self.worker = IngestWorker(source, self.ingest, callback=self.callback)
        self.worker.start()
        events.emit({
            "type": "bridge_started",
            "source": type(source).__name__,
            "port": self.server.address[1],
        }, self.callback)

    def serve_forever(self) -> None:
        """Run the request loop in the calling thread until stop()."""
        self.server.serve_forever()

    def stop(self) -> None:
        """Request shutdown; serve_forever returns within recv_timeout."""
        self.server.stop()

    def join(self) -> None:
        """Close the server and stop and join the ingest thread."""
        self.server.close()
        if self.worker is not None:
            self.worker.stop()
            self.worker = None


def run_bridge(config: BridgeConfig, callback: Optional[EventCallback] = None) -> int:
    """Run the bridge until SIGINT/SIGTERM.

    Returns:
        Process exit status (0 on a signal-initiated shutdown).

    Raises:
        BindError: If the server socket cannot be bound.
    """
    bridge = Bridge(config, callback=callback)
    stop_requested = threading.Event()

    def handle_signal(signum, frame):
        stop_requested.set()
        bridge.stop()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    try:
        bridge.start()
    except Exception:
        bridge.join()
        raise

    try:
        bridge.serve_forever()
    finally:
        bridge.join()
        events.emit({
            "type": "bridge_stopped",
            "message": "mainloop thread stopped, cleaning up",
            "signal": stop_requested.is_set(),
        }, callback)
    return 0
