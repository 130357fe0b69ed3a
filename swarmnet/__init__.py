"""
swarmnet - peer-to-peer network layer for multi-agent swarms

Agents talk to each other over a pluggable link driver (in-memory or
WebSocket). A TopologyManager tracks which agents are connected, partitions
them into clusters, finds paths and scores network health.

## Quick Start

```python
from swarmnet import (
    AgentCapabilities,
    MemoryNetwork,
    MemoryTransportProvider,
    P2PAgent,
    TopologyManager,
)

provider = MemoryTransportProvider(MemoryNetwork())
manager = TopologyManager()

async with manager:
    for i in range(4):
        agent = P2PAgent(
            f"agent-{i}",
            "worker",
            AgentCapabilities(specialized_skills=["python"]),
            provider,
            port=7000 + i,
        )
        await manager.register_agent(agent)

    print(manager.find_path("agent-0", "agent-3"))
```
"""

from .config import SwarmNetSettings
from .core import (
    EventPublisher,
    NetworkEvent,
    NetworkEventBus,
    NetworkEventType,
    P2PMessage,
)
from .core.transport import (
    MemoryNetwork,
    MemoryTransportProvider,
    TransportConfig,
    WebSocketTransportProvider,
)
from .network import (
    AgentCapabilities,
    AgentTask,
    NetworkMetrics,
    P2PAgent,
    P2PTransport,
    TopologyManager,
    TopologySnapshot,
)
from .serialization import JsonSerializer, MessageCodec

__version__ = "0.1.0"

__all__ = [
    "AgentCapabilities",
    "AgentTask",
    "EventPublisher",
    "JsonSerializer",
    "MemoryNetwork",
    "MemoryTransportProvider",
    "MessageCodec",
    "NetworkEvent",
    "NetworkEventBus",
    "NetworkEventType",
    "NetworkMetrics",
    "P2PAgent",
    "P2PMessage",
    "P2PTransport",
    "SwarmNetSettings",
    "TopologyManager",
    "TopologySnapshot",
    "TransportConfig",
    "WebSocketTransportProvider",
    "__version__",
]
