"""
swarmnet P2P network layer

- transport: per-node messaging endpoint (connect, send, broadcast, timers)
- agent: binds a logical agent to one transport and speaks the swarm protocol
- topology: graph registry, clusters, bridges, paths and health scoring
- metrics: periodic network metrics snapshots
- manager: process-wide registry, health checks and fan-out
"""

from .agent import (
    AgentCapabilities,
    AgentTask,
    CollaborationRecord,
    CollaborationRequestType,
    CollaborationStatus,
    DelegationRecord,
    DelegationStatus,
    P2PAgent,
    PeerProfile,
    TaskResult,
    TaskResultKind,
)
from .manager import HealthCheckReport, NodeInfo, TopologyManager
from .metrics import MetricsCollector, NetworkMetrics
from .node import NodeRecord
from .topology import (
    NodeLifecycle,
    TopologyGraph,
    TopologySnapshot,
    compute_network_health,
    find_bridge_nodes,
    find_connected_components,
    shortest_path,
)
from .transport import P2PTransport, PeerActivity, PeerConnection, TransportStats

__all__ = [
    "AgentCapabilities",
    "AgentTask",
    "CollaborationRecord",
    "CollaborationRequestType",
    "CollaborationStatus",
    "DelegationRecord",
    "DelegationStatus",
    "HealthCheckReport",
    "MetricsCollector",
    "NetworkMetrics",
    "NodeInfo",
    "NodeLifecycle",
    "NodeRecord",
    "P2PAgent",
    "P2PTransport",
    "PeerActivity",
    "PeerConnection",
    "PeerProfile",
    "TaskResult",
    "TaskResultKind",
    "TopologyGraph",
    "TopologyManager",
    "TopologySnapshot",
    "TransportStats",
    "compute_network_health",
    "find_bridge_nodes",
    "find_connected_components",
    "shortest_path",
]
