"""rpit-bridge CLI entry point.

Usage:
    python -m rpit_bridge
    python -m rpit_bridge --config bridge.json
    python -m rpit_bridge --source udp --pose-port 31416 --port 31415
    python -m rpit_bridge --simulate --quiet
"""

import argparse

from rpit_bridge import events, load_config, run_bridge
from rpit_bridge.config import SOURCES
from rpit_bridge.errors import BindError


def main() -> int:
    parser = argparse.ArgumentParser(description="Bridge a VRPN pose stream to the RPIt UDP socket protocol")
    parser.add_argument(
        "--config",
        type=str,
        default="",
        help="Path to config JSON file",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="UDP port answering RPIt control datagrams (default: 31415)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Address to bind (default: wildcard, IPv4 or IPv6)",
    )
    parser.add_argument(
        "--source",
        type=str,
        choices=SOURCES,
        default=None,
        help="Pose source: 'vrpn' (default), 'udp' relay, or 'simulate'",
    )
    parser.add_argument(
        "--tracker",
        type=str,
        default=None,
        help="VRPN tracker as name@host (default: wiimote@192.168.10.1)",
    )
    parser.add_argument(
        "--pose-port",
        type=int,
        default=None,
        help="UDP port receiving relayed Pos_Quat payloads (udp source)",
    )
    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Shorthand for --source simulate",
    )
    parser.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Suppress high-frequency logging (pose, request)",
    )
    parser.add_argument(
        "--mdns",
        action="store_true",
        help="Advertise the control port via mDNS (_rpit._udp)",
    )
    args = parser.parse_args()

    try:
        config = load_config(args.config if args.config else None)
    except (OSError, ValueError) as e:
        events.emit(events.error_event("startup_error", f"could not load config: {e}"))
        return 1

    # CLI flags override file values
    if args.port is not None:
        config.port = args.port
    if args.host is not None:
        config.host = args.host
    if args.source is not None:
        config.source = args.source
    if args.simulate:
        config.source = "simulate"
    if args.tracker is not None:
        config.tracker = args.tracker
    if args.pose_port is not None:
        config.pose_port = args.pose_port
    if args.quiet:
        config.quiet = True
    if args.mdns:
        config.mdns = True

    try:
        return run_bridge(config)
    except BindError:
        return 1
    except (RuntimeError, ValueError) as e:
        events.emit(events.error_event("startup_error", str(e)))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
