"""
swarmnet link layer.

Drivers implement the same TransportInterface/TransportListener pair and are
handed to the P2P transport through a TransportProvider:

    # In-process swarm (tests, demos)
    provider = MemoryTransportProvider(MemoryNetwork())

    # Real network
    provider = WebSocketTransportProvider(TransportConfig(connect_timeout=3.0))
"""

from .interfaces import (
    TransportConfig,
    TransportConnectionError,
    TransportError,
    TransportInterface,
    TransportListener,
    TransportProtocol,
    TransportProvider,
    TransportTimeoutError,
)
from .memory_transport import MemoryNetwork, MemoryTransport, MemoryTransportProvider
from .websocket_transport import WebSocketTransport, WebSocketTransportProvider

__all__ = [
    "MemoryNetwork",
    "MemoryTransport",
    "MemoryTransportProvider",
    "TransportConfig",
    "TransportConnectionError",
    "TransportError",
    "TransportInterface",
    "TransportListener",
    "TransportProtocol",
    "TransportProvider",
    "TransportTimeoutError",
    "WebSocketTransport",
    "WebSocketTransportProvider",
]
