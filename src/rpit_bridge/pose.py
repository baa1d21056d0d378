"""Pose sample data structure for the bridge."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from . import protocol

USEC_PER_SEC = 1_000_000


def capture_time_us(tv_sec: int, tv_usec: int) -> int:
    """Absolute capture time in microseconds from a (seconds, microseconds) pair."""
    return int(tv_sec) * USEC_PER_SEC + int(tv_usec)


@dataclass(frozen=True)
class PoseSample:
    """One tracker report: position + orientation with capture time.

    Attributes:
        sensor: Tracker sensor id carried in the identifier slot.
        position: (x, y, z) as reported by the tracker.
        quaternion: (qx, qy, qz, qw) orientation (scalar-last, VRPN convention).
        timestamp_us: Absolute capture time in microseconds.
    """

    sensor: int
    position: Tuple[float, float, float]
    quaternion: Tuple[float, float, float, float]
    timestamp_us: int

    @classmethod
    def from_payload(cls, payload: bytes, tv_sec: int, tv_usec: int) -> "PoseSample":
        """Decode a VRPN Pos_Quat payload captured at (tv_sec, tv_usec).

        Raises:
            DecodeError: If the payload has the wrong length.
        """
        sensor, position, quaternion = protocol.decode_tracker_pose(payload)
        return cls(
            sensor=sensor,
            position=position,  # type: ignore[arg-type]
            quaternion=quaternion,  # type: ignore[arg-type]
            timestamp_us=capture_time_us(tv_sec, tv_usec),
        )


    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "sensor": self.sensor,
            "x": self.position[0],
            "y": self.position[1],
            "z": self.position[2],
            "qx": self.quaternion[0],
            "qy": self.quaternion[1],
            "qz": self.quaternion[2],
            "qw": self.quaternion[3],
            "capture_us": self.timestamp_us,
        }
