"""rpit-bridge - serve the latest VRPN tracker pose to an RPIt control peer over UDP.

Main exports:
- run_bridge: Run the bridge until interrupted
- Bridge: The assembled bridge (ingest thread + request server)
- SharedState: Latest measurement and control, guarded by one lock
- PoseIngest: Tracker report handler
- RequestServer: UDP poll/response server
- RpitClient: Peer-side client
- BridgeConfig / load_config: Configuration
- protocol: Wire formats
"""

from .pose import PoseSample
from .epoch import EpochLatch
from .state import SharedState
from .ingest import PoseIngest
from .server import RequestServer
from .sources import IngestWorker, PoseSource, SimulatedTracker, UdpPoseSource, VrpnTrackerSource
from .client import RpitClient, poll_measurement
from .config import BridgeConfig, load_config
from .bridge import Bridge, run_bridge
from .errors import BindError, BridgeError, DecodeError, ProtocolViolation, TransportError
from . import events
from . import protocol

__all__ = [
    # Main API
    "run_bridge",
    "Bridge",
    "BridgeConfig",
    "load_config",
    # Components
    "SharedState",
    "EpochLatch",
    "PoseIngest",
    "PoseSample",
    "RequestServer",
    "IngestWorker",
    "PoseSource",
    "VrpnTrackerSource",
    "UdpPoseSource",
    "SimulatedTracker",
    # Peer side
    "RpitClient",
    "poll_measurement",
    # Errors
    "BridgeError",
    "BindError",
    "DecodeError",
    "ProtocolViolation",
    "TransportError",
    # Modules
    "events",
    "protocol",
]
