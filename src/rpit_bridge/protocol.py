"""RPIt socket protocol and VRPN tracker payload codecs.

The control peer (an RPIt socket block running on the real-time target)
sends a fixed-size control datagram and receives a fixed-size measurement
datagram in reply. Both messages share the same layout:

    magic      u32   must equal MAGIC
    timestamp  u64   control: peer time (opaque); measurement: epoch-relative us
    values     10 x f64

Both messages use little-endian byte order with no padding.

Upstream pose reports use the VRPN "vrpn_Tracker Pos_Quat" change payload:
a sensor id slot followed by 3 position and 4 quaternion doubles, all in
network byte order.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from .errors import DecodeError, ProtocolViolation

# Protocol constants (must match the peer's definitions)
MAGIC = 3141592
DEFAULT_PORT = 31415
CONTROL_N = 10
MEASUREMENT_N = 10

# Nominal measurement sampling period of the peer (us)
MEASUREMENT_PERIOD_US = 2000

# Age in us after which the served measurement is reported as stale
WATCHDOG_TRIGGER_US = 1_000_000

# Struct formats
CONTROL_FORMAT = "<IQ10d"  # magic(4) + timestamp(8) + 10 doubles = 92 bytes
MEASUREMENT_FORMAT = "<IQ10d"  # magic(4) + timestamp(8) + 10 doubles = 92 bytes
MAGIC_FORMAT = "<I"
TRACKER_POSE_FORMAT = ">i4x7d"  # sensor(4) + pad(4) + pos(3x8) + quat(4x8) = 64 bytes

# Sizes
CONTROL_SIZE = struct.calcsize(CONTROL_FORMAT)
MEASUREMENT_SIZE = struct.calcsize(MEASUREMENT_FORMAT)
MAGIC_SIZE = 4

# VRPN payload layout: one identifier slot + 3 position + 4 orientation
TRACKER_POSE_FIELDS = 8
TRACKER_POSITION_LEN = 3
TRACKER_QUATERNION_LEN = 4
TRACKER_POSE_SIZE = TRACKER_POSE_FIELDS * 8

# Measurement vector slots
POSITION_SLOTS = slice(0, 3)
QUATERNION_SLOTS = slice(3, 7)

Vector = Tuple[float, ...]


@dataclass(frozen=True)
class ControlMsg:
    """Control datagram (peer -> bridge)."""
    magic: int
    timestamp: int
    values: Vector


@dataclass(frozen=True)
class MeasurementMsg:
    """Measurement datagram (bridge -> peer)."""
    magic: int
    timestamp_us: int
    values: Vector

    @property
    def position(self) -> Vector:
        return self.values[POSITION_SLOTS]

    @property
    def quaternion(self) -> Vector:
        return self.values[QUATERNION_SLOTS]


def zero_control() -> Vector:
    """All-zero control vector, stored whenever a datagram is rejected."""
    return (0.0,) * CONTROL_N


def initial_measurement() -> MeasurementMsg:
    """Measurement served before the first pose is ingested."""
    return MeasurementMsg(magic=MAGIC, timestamp_us=0, values=(0.0,) * MEASUREMENT_N)


def _as_vector(values: Sequence[float], n: int, name: str) -> Vector:
    vector = tuple(float(v) for v in values)
    if len(vector) != n:
        raise ValueError(f"{name} vector must have {n} values, got {len(vector)}")
    return vector


# =============================================================================
# RPIt messages
# =============================================================================


def pack_control(values: Sequence[float], timestamp: int = 0, magic: int = MAGIC) -> bytes:
    """Pack a control datagram."""
    vector = _as_vector(values, CONTROL_N, "control")
    return struct.pack(CONTROL_FORMAT, magic, timestamp, *vector)


def pack_measurement(msg: MeasurementMsg) -> bytes:
    """Pack a measurement datagram."""
    return struct.pack(MEASUREMENT_FORMAT, msg.magic, msg.timestamp_us, *msg.values)


def read_magic(data: bytes) -> int:
    """Read the magic field of a datagram, or -1 if it is too short to carry one."""
    if len(data) < MAGIC_SIZE:
        return -1
    return struct.unpack(MAGIC_FORMAT, data[:MAGIC_SIZE])[0]


def check_control(data: bytes) -> List[ProtocolViolation]:
    """Validate a received control datagram.

    Size and magic are checked independently so that every problem can be
    reported. An empty list means the datagram is valid.
    """
    violations: List[ProtocolViolation] = []
    if len(data) != CONTROL_SIZE:
        violations.append(ProtocolViolation("size", CONTROL_SIZE, len(data)))
    magic = read_magic(data)
    if magic != MAGIC:
        violations.append(ProtocolViolation("magic", MAGIC, magic))
    return violations


def unpack_control(data: bytes) -> ControlMsg:
    """Parse a control datagram.

    Raises:
        ProtocolViolation: If the datagram does not have the control size.
    """
    if len(data) != CONTROL_SIZE:
        raise ProtocolViolation("size", CONTROL_SIZE, len(data))
    magic, timestamp, *values = struct.unpack(CONTROL_FORMAT, data)
    return ControlMsg(magic=magic, timestamp=timestamp, values=tuple(values))


def unpack_measurement(data: bytes) -> MeasurementMsg:
    """Parse a measurement datagram.

    Raises:
        ProtocolViolation: If the datagram does not have the measurement size.
    """
    if len(data) != MEASUREMENT_SIZE:
        raise ProtocolViolation("size", MEASUREMENT_SIZE, len(data))
    magic, timestamp_us, *values = struct.unpack(MEASUREMENT_FORMAT, data)
    return MeasurementMsg(magic=magic, timestamp_us=timestamp_us, values=tuple(values))


def measurement_from_pose(
    timestamp_us: int,
    position: Sequence[float],
    quaternion: Sequence[float],
) -> MeasurementMsg:
    """Build a measurement: slots 0-2 position, 3-6 quaternion, 7-9 zero."""
    pos = _as_vector(position, TRACKER_POSITION_LEN, "position")
    quat = _as_vector(quaternion, TRACKER_QUATERNION_LEN, "quaternion")
    reserved = (0.0,) * (MEASUREMENT_N - len(pos) - len(quat))
    return MeasurementMsg(magic=MAGIC, timestamp_us=timestamp_us, values=pos + quat + reserved)


# =============================================================================
# VRPN tracker payload
# =============================================================================


def pack_tracker_pose(
    sensor: int,
    position: Sequence[float],
    quaternion: Sequence[float],
) -> bytes:
    """Pack a VRPN Pos_Quat change payload (network byte order)."""
    pos = _as_vector(position, TRACKER_POSITION_LEN, "position")
    quat = _as_vector(quaternion, TRACKER_QUATERNION_LEN, "quaternion")
    return struct.pack(TRACKER_POSE_FORMAT, sensor, *pos, *quat)


def decode_tracker_pose(payload: bytes) -> Tuple[int, Vector, Vector]:
    """Decode a VRPN Pos_Quat change payload.

    Returns:
        Tuple of (sensor, position, quaternion).

    Raises:
        DecodeError: If the payload is not exactly TRACKER_POSE_SIZE bytes.
    """
    if len(payload) != TRACKER_POSE_SIZE:
        raise DecodeError(
            f"tracker payload size error (got {len(payload)}, expected {TRACKER_POSE_SIZE})",
            expected=TRACKER_POSE_SIZE,
            received=len(payload),
        )
    sensor, *fields = struct.unpack(TRACKER_POSE_FORMAT, payload)
    position = tuple(fields[:TRACKER_POSITION_LEN])
    quaternion = tuple(fields[TRACKER_POSITION_LEN:])
    return sensor, position, quaternion
