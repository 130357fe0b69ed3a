"""
swarmnet core module

Wire models, connection and domain events, logging setup and the link-layer
drivers used by the P2P network layer.
"""

from .connection_events import (
    ConnectionEvent,
    ConnectionEventBus,
    ConnectionEventType,
)
from .model import (
    BROADCAST_RECIPIENT,
    ConnectionStatus,
    MessageBody,
    MessageType,
    NodeStatus,
    P2PMessage,
)
from .network_events import (
    EventPublisher,
    NetworkEvent,
    NetworkEventBus,
    NetworkEventType,
)

__all__ = [
    "BROADCAST_RECIPIENT",
    "ConnectionEvent",
    "ConnectionEventBus",
    "ConnectionEventType",
    "ConnectionStatus",
    "EventPublisher",
    "MessageBody",
    "MessageType",
    "NetworkEvent",
    "NetworkEventBus",
    "NetworkEventType",
    "NodeStatus",
    "P2PMessage",
]
