"""Exception types raised by the bridge.

Per-sample and per-datagram errors are caught inside the ingest and server
loops and degraded to a safe default; only BindError reaches the caller.
"""

from __future__ import annotations

from typing import Any, Optional


class BridgeError(Exception):
    """Base class for all bridge errors."""


class DecodeError(BridgeError, ValueError):
    """Pose payload could not be decoded (wrong length)."""

    def __init__(self, message: str, expected: Optional[int] = None, received: Optional[int] = None):
        super().__init__(message)
        self.expected = expected
        self.received = received


class ProtocolViolation(BridgeError, ValueError):
    """Control datagram has the wrong size or magic number."""

    def __init__(self, field: str, expected: Any, received: Any):
        super().__init__(f"{field} mismatch: expected {expected}, received {received}")
        self.field = field
        self.expected = expected
        self.received = received


class TransportError(BridgeError, OSError):
    """Receive or send failure on the control socket."""


class BindError(BridgeError, RuntimeError):
    """The listening socket could not be resolved or bound."""
