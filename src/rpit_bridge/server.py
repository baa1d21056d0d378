"""UDP request server for the RPIt control peer.

Each received control datagram is validated and stored, and answered with
the latest measurement. The cycle is stateless: no sequence numbers, no
deduplication, no retransmission. A peer polling faster than the tracker
legitimately receives the same measurement (same timestamp) more than once.
"""

from __future__ import annotations

import socket
import threading
from typing import Any, Dict, List, Optional, Tuple

from . import events, protocol
from .errors import BindError, TransportError
from .events import EventCallback
from .state import SharedState

# mDNS service type
SERVICE_TYPE = "_rpit._udp.local."

# Large enough to observe oversized datagrams instead of truncating them
RECV_BUFFER_SIZE = 2048


def _format_addr(addr: Any) -> str:
    if isinstance(addr, tuple) and len(addr) >= 2:
        return f"{addr[0]}:{addr[1]}"
    return str(addr)


def _get_local_ipv4_addresses() -> List[str]:
    """IPv4 addresses of all non-loopback interfaces."""
    import ifaddr

    addresses: List[str] = []
    for adapter in ifaddr.get_adapters():
        for ip in adapter.ips:
            if ip.is_IPv4 and not ip.ip.startswith("127.") and ip.ip not in addresses:
                addresses.append(ip.ip)
    return addresses


def bind_udp_socket(host: Optional[str], port: int) -> socket.socket:
    """Bind a datagram socket on the first resolved address that accepts it.

    Resolution is address-family agnostic (IPv4 and IPv6); host None
    selects the wildcard address.

    Raises:
        BindError: If resolution fails or no address can be bound.
    """
    try:
        infos = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_DGRAM, 0, socket.AI_PASSIVE)
    except socket.gaierror as e:
        raise BindError(f"getaddrinfo failed for {host}:{port}: {e}") from e

    errors: List[str] = []
    for family, socktype, proto, _canonname, sockaddr in infos:
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as e:
            errors.append(f"{_format_addr(sockaddr)}: {e}")
            continue
        try:
            sock.bind(sockaddr)
        except OSError as e:
            errors.append(f"{_format_addr(sockaddr)}: {e}")
            sock.close()
            continue
        return sock

    raise BindError(f"could not bind port {port} ({'; '.join(errors) or 'no addresses'})")


class RequestServer:
    """Poll/response UDP server answering control datagrams with measurements."""

    def __init__(
        self,
        state: SharedState,
        host: Optional[str] = None,
        port: int = protocol.DEFAULT_PORT,
        recv_timeout: float = 0.5,
        watchdog_us: int = protocol.WATCHDOG_TRIGGER_US,
        callback: Optional[EventCallback] = None,
        quiet: bool = False,
        mdns: bool = False,
        service_name: str = "rpit-bridge",
    ):
        self.state = state
        self.host = host
        self.port = port
        self.recv_timeout = recv_timeout
        self.watchdog_us = watchdog_us
        self.callback = callback
        self.quiet = quiet
        self.mdns = mdns
        self.service_name = service_name

        self.sock: Optional[socket.socket] = None
        self.peer_addr: Optional[Any] = None
        self.requests = 0
        self.violations = 0

        self._stop = threading.Event()
        self._stale: Optional[bool] = None
        self._zeroconf = None
        self._service_info = None

    def _emit(self, event: Dict[str, Any]) -> None:
        events.emit(event, self.callback, self.quiet)

    @property
    def address(self) -> Tuple[Any, ...]:
        """Bound socket address."""
        if self.sock is None:
            raise RuntimeError("server is not bound")
        return self.sock.getsockname()

    def bind(self) -> None:
        """Bind the listening socket.

        Raises:
            BindError: If no address could be bound.
        """
        try:
            self.sock = bind_udp_socket(self.host, self.port)
        except BindError as e:
            self._emit(events.error_event("bind_error", str(e), port=self.port))
            raise
        self.sock.settimeout(self.recv_timeout)
        self._stop.clear()
        self._emit({
            "type": "server_listening",
            "address": _format_addr(self.address),
            "family": "ipv6" if self.sock.family == socket.AF_INET6 else "ipv4",
        })
        if self.mdns:
            self._start_mdns()

    # =========================================================================
    # mDNS advertisement
    # =========================================================================

    def _start_mdns(self) -> None:
        """Start mDNS service advertisement (best-effort)."""
        try:
            from zeroconf import ServiceInfo, Zeroconf

            local_ips = _get_local_ipv4_addresses()
            port = self.address[1]
            self._zeroconf = Zeroconf()
            self._service_info = ServiceInfo(
                SERVICE_TYPE,
                f"{self.service_name}.{SERVICE_TYPE}",
                addresses=[socket.inet_aton(ip) for ip in local_ips],
                port=port,
                properties={"magic": str(protocol.MAGIC), "n": str(protocol.MEASUREMENT_N)},
            )
            self._zeroconf.register_service(self._service_info)
            self._emit({
                "type": "mdns_registered",
                "service": f"{self.service_name}.{SERVICE_TYPE}",
                "ips": local_ips,
                "port": port,
            })
        except ImportError:
            self._emit({
                "type": "warn",
                "message": "zeroconf not installed. mDNS advertisement disabled. Install with: pip install zeroconf",
            })
        except Exception as e:
            self._emit({"type": "warn", "message": f"mDNS registration failed: {e}"})

    def _stop_mdns(self) -> None:
        try:
            if self._service_info and self._zeroconf:
                self._zeroconf.unregister_service(self._service_info)
            if self._zeroconf:
                self._zeroconf.close()
        except Exception as e:
            self._emit({"type": "warn", "message": f"mDNS shutdown failed: {e}"})
        self._zeroconf = None
        self._service_info = None

    # =========================================================================
    # Request handling
    # =========================================================================

    def _validated_control(self, data: bytes) -> protocol.Vector:
        """Control vector to store for a datagram: its values, or zeros if invalid."""
        violations = protocol.check_control(data)
        for v in violations:
            self.violations += 1
            if v.field == "size":
                message = "recvfrom did not receive the expected packet size"
            else:
                message = "magic number problem"
            self._emit(events.error_event(
                "protocol_violation",
                message,
                field=v.field,
                expected=v.expected,
                received=v.received,
            ))
        if violations:
            return protocol.zero_control()
        return protocol.unpack_control(data).values

    def _check_watchdog(self) -> None:
        """Log transitions between fresh and stale measurements."""
        age_us = self.state.measurement_age_us()
        stale = age_us is None or age_us > self.watchdog_us
        if stale == self._stale:
            return
        self._stale = stale
        if stale:
            self._emit({"type": "measurement_stale", "age_us": age_us, "threshold_us": self.watchdog_us})
        else:
            self._emit({"type": "measurement_fresh", "age_us": age_us})

    def _reply(self) -> bytes:
        msg = self.state.snapshot_measurement()
        self._check_watchdog()
        return protocol.pack_measurement(msg)

    def handle_datagram(self, data: bytes) -> bytes:
        """Validate and store one control datagram; return the reply datagram."""
        self.requests += 1
        self.state.store_control(self._validated_control(data))
        return self._reply()

    def handle_receive_error(self, error: TransportError) -> bytes:
        """Store zeroed control after a failed receive; return the reply datagram."""
        self._emit(events.error_event("transport_error", str(error)))
        self.state.store_control(protocol.zero_control())
        return self._reply()

    def _send(self, reply: bytes, addr: Any) -> None:
        try:
            sent = self.sock.sendto(reply, addr)
        except OSError as e:
            self._emit(events.error_event(
                "transport_error",
                f"error sending measurements: {e}",
                peer=_format_addr(addr),
            ))
            return
        if sent != len(reply):
            self._emit(events.error_event(
                "transport_error",
                "error sending measurements",
                peer=_format_addr(addr),
                expected=len(reply),
                received=sent,
            ))

    def serve_forever(self) -> None:
        """Answer control datagrams until stop() is called."""
        if self.sock is None:
            self.bind()

        try:
            while not self._stop.is_set():
                try:
                    data, addr = self.sock.recvfrom(RECV_BUFFER_SIZE)
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._stop.is_set():
                        break
                    reply = self.handle_receive_error(TransportError(f"recvfrom exited with error: {e}"))
                    if self.peer_addr is None:
                        self._emit({"type": "warn", "message": "no known peer, reply skipped"})
                    else:
                        self._send(reply, self.peer_addr)
                    continue

                self.peer_addr = addr
                reply = self.handle_datagram(data)
                self._emit({"type": "request", "peer": _format_addr(addr), "size": len(data)})
                self._send(reply, addr)
        finally:
            self.close()

    def stop(self) -> None:
        """Request the serve loop to exit; takes effect within recv_timeout."""
        self._stop.set()

    def close(self) -> None:
        """Stop advertising and close the socket."""
        self._stop.set()
        self._stop_mdns()
        if self.sock:
            try:
                self.sock.close()
            except OSError:
                pass
            self.sock = None
            self._emit({"type": "server_stopped", "requests": self.requests, "violations": self.violations})
