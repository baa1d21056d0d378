"""Peer-side client for the RPIt request server.

Mirrors what the RPIt socket block does on the real-time target: send one
control datagram, read one measurement datagram.
"""

from __future__ import annotations

import socket
from typing import Optional, Sequence

from . import protocol
from .protocol import MeasurementMsg


class RpitClient:
    """Blocking request/reply client.

    Example:
        >>> with RpitClient("127.0.0.1", 31415) as client:
        ...     mes = client.exchange([0.0] * 10)
        ...     print(mes.timestamp_us, mes.position)
    """

    def __init__(self, host: str, port: int = protocol.DEFAULT_PORT, timeout: float = 1.0):
        infos = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_DGRAM)
        family, socktype, proto, _, sockaddr = infos[0]
        self.server_addr = sockaddr
        self.sock = socket.socket(family, socktype, proto)
        self.sock.settimeout(timeout)

    def send_raw(self, data: bytes) -> bytes:
        """Send an arbitrary datagram and return the raw reply.

        Raises:
            socket.timeout: If no reply arrives within the timeout.
        """
        self.sock.sendto(data, self.server_addr)
        reply, _ = self.sock.recvfrom(2048)
        return reply

    def exchange(
        self,
        values: Sequence[float],
        timestamp: int = 0,
        magic: int = protocol.MAGIC,
    ) -> MeasurementMsg:
        """Send a control vector and return the decoded measurement reply."""
        reply = self.send_raw(protocol.pack_control(values, timestamp, magic))
        return protocol.unpack_measurement(reply)

    def close(self) -> None:
        self.sock.close()

    def __enter__(self) -> "RpitClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def poll_measurement(
    host: str,
    port: int = protocol.DEFAULT_PORT,
    values: Optional[Sequence[float]] = None,
    timeout: float = 1.0,
) -> MeasurementMsg:
    """One-shot exchange with a zero (or given) control vector."""
    with RpitClient(host, port, timeout) as client:
        return client.exchange(values if values is not None else protocol.zero_control())
