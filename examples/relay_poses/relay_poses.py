"""Send synthetic Pos_Quat payloads to a bridge running with --source udp."""

import argparse
import math
import socket
import time

from rpit_bridge import protocol
from rpit_bridge.sources import DEFAULT_POSE_PORT

parser = argparse.ArgumentParser()
parser.add_argument("--host", type=str, default="127.0.0.1", help="Bridge address")
parser.add_argument("--port", type=int, default=DEFAULT_POSE_PORT, help="Bridge pose port")
parser.add_argument("--hz", type=float, default=100.0, help="Report rate in Hz")
args = parser.parse_args()

sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
start = time.monotonic()
while True:
    t = time.monotonic() - start
    position = (math.cos(t), math.sin(t), 0.5)
    quaternion = (0.0, 0.0, math.sin(t / 2.0), math.cos(t / 2.0))
    sock.sendto(protocol.pack_tracker_pose(0, position, quaternion), (args.host, args.port))
    time.sleep(1.0 / args.hz)
