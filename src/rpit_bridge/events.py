"""JSON event logging shared by all bridge components.

Every diagnostic is a single-line JSON object with a "type" key, written to
stderr so that stdout stays free for tooling.
"""

from __future__ import annotations

import json
import sys
from typing import Any, Callable, Dict, Optional

# Events emitted once per pose or per request
HIGH_FREQUENCY_EVENTS = ("pose", "request")

EventCallback = Callable[[Dict[str, Any]], None]


def emit(
    event: Dict[str, Any],
    callback: Optional[EventCallback] = None,
    quiet: bool = False,
) -> None:
    """Print an event and forward it to an optional callback.

    Logging is best-effort: a failing stream or callback never propagates
    into the caller's hot path.
    """
    if not quiet or event.get("type") not in HIGH_FREQUENCY_EVENTS:
        try:
            print(json.dumps(event), file=sys.stderr, flush=True)
        except (OSError, ValueError, TypeError):
            pass

    if callback:
        try:
            callback(event)
        except Exception:
            pass


def error_event(kind: str, message: str, **details: Any) -> Dict[str, Any]:
    """Build an error event with optional expected/received details."""
    event: Dict[str, Any] = {"type": "error", "kind": kind, "message": message}
    event.update(details)
    return event
