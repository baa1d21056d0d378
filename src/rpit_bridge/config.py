"""Configuration loading and data structures for the bridge."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

from . import protocol
from .sources import DEFAULT_POSE_PORT

SOURCES = ("vrpn", "udp", "simulate")


@dataclass
class BridgeConfig:
    """Bridge settings.

    Attributes:
        port: UDP port the request server listens on.
        host: Address to bind, None for the wildcard address (IPv4 or IPv6).
        source: Upstream pose source: "vrpn", "udp" or "simulate".
        tracker: VRPN tracker as "name@host" (vrpn source).
        pose_host: Address to bind for relayed payloads (udp source).
        pose_port: Port to bind for relayed payloads (udp source).
        simulate_hz: Report rate of the simulated tracker.
        recv_timeout: Receive timeout of the server loop (s), bounds shutdown latency.
        watchdog_us: Measurement age (us) after which it is reported stale.
        quiet: Suppress per-pose and per-request log events.
        mdns: Advertise the control port via mDNS.
        service_name: mDNS service instance name.
    """
    port: int = protocol.DEFAULT_PORT
    host: Optional[str] = None
    source: str = "vrpn"
    tracker: str = "wiimote@192.168.10.1"
    pose_host: str = "0.0.0.0"
    pose_port: int = DEFAULT_POSE_PORT
    simulate_hz: float = 100.0
    recv_timeout: float = 0.5
    watchdog_us: int = protocol.WATCHDOG_TRIGGER_US
    quiet: bool = False
    mdns: bool = False
    service_name: str = "rpit-bridge"


def _resolve_path(path: str) -> Path:
    """Resolve a config path against cwd, the calling script, then this package."""
    p = Path(path)
    if not p.is_absolute() and not p.exists():
        try:
            import __main__  # type: ignore
            main_file = getattr(__main__, "__file__", None)
            if isinstance(main_file, str):
                alt = Path(main_file).parent.joinpath(path)
                if alt.exists():
                    p = alt
        except ImportError:
            pass
    if not p.is_absolute() and not p.exists():
        alt2 = Path(__file__).parent.joinpath(path)
        if alt2.exists():
            p = alt2
    return p


def config_from_dict(data: Dict[str, Any]) -> BridgeConfig:
    """Build a BridgeConfig from a dict, ignoring unknown keys.

    Raises:
        ValueError: If source is not one of SOURCES.
    """
    known = {f.name for f in fields(BridgeConfig)}
    config = BridgeConfig(**{k: v for k, v in data.items() if k in known})

    config.port = int(config.port)
    config.pose_port = int(config.pose_port)
    config.simulate_hz = float(config.simulate_hz)
    config.recv_timeout = float(config.recv_timeout)
    config.watchdog_us = int(config.watchdog_us)
    config.quiet = bool(config.quiet)
    config.mdns = bool(config.mdns)

    if config.source not in SOURCES:
        raise ValueError(f"Unknown pose source {config.source!r}, expected one of {SOURCES}")
    return config


def load_config(path: Optional[str] = None) -> BridgeConfig:
    """Load a BridgeConfig from a JSON file.

    If path is None or empty, returns the default config.

    Args:
        path: Path to a JSON config file, or None for defaults.

    Returns:
        BridgeConfig with the loaded (or default) settings.
    """
    if not path:
        return BridgeConfig()

    data: Dict[str, Any] = json.loads(_resolve_path(path).read_text())
    return config_from_dict(data)
