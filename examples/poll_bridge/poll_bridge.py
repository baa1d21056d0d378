"""Poll the bridge at a fixed rate, like the RPIt socket block does."""

import argparse
import time

from rpit_bridge import RpitClient, protocol

parser = argparse.ArgumentParser()
parser.add_argument("--host", type=str, default="127.0.0.1", help="Bridge address")
parser.add_argument("--port", type=int, default=protocol.DEFAULT_PORT, help="Bridge port")
parser.add_argument("--hz", type=float, default=10.0, help="Polling rate in Hz")
args = parser.parse_args()

last_ts = None
with RpitClient(args.host, args.port) as client:
    while True:
        mes = client.exchange(protocol.zero_control(), timestamp=time.monotonic_ns())
        x, y, z = mes.position
        repeat = " (repeat)" if mes.timestamp_us == last_ts else ""
        print(f"t={mes.timestamp_us}us x={x:.3f} y={y:.3f} z={z:.3f}{repeat}")
        last_ts = mes.timestamp_us
        time.sleep(1.0 / args.hz)
