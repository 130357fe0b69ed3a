"""
Connection event management for swarmnet transports.

Every transport owns a ConnectionEventBus and publishes a ConnectionEvent
whenever a peer link is established, lost, or fails to open. Components that
track the graph (the topology manager) subscribe to keep their view in sync.
"""

import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from loguru import logger

from swarmnet.datastructures.type_aliases import NodeId, Timestamp


class ConnectionEventType(Enum):
    """Types of connection events."""

    ESTABLISHED = "connection_established"
    LOST = "connection_lost"
    FAILED = "connection_failed"


@dataclass(frozen=True, slots=True)
class ConnectionEvent:
    """Event data for connection state changes."""

    event_type: ConnectionEventType
    peer_id: NodeId
    local_node_id: NodeId
    timestamp: Timestamp = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def established(
        cls, peer_id: NodeId, local_node_id: NodeId, *, inbound: bool = False
    ) -> "ConnectionEvent":
        return cls(
            event_type=ConnectionEventType.ESTABLISHED,
            peer_id=peer_id,
            local_node_id=local_node_id,
            metadata={"inbound": inbound},
        )

    @classmethod
    def lost(cls, peer_id: NodeId, local_node_id: NodeId) -> "ConnectionEvent":
        return cls(
            event_type=ConnectionEventType.LOST,
            peer_id=peer_id,
            local_node_id=local_node_id,
        )

    @classmethod
    def failed(
        cls, peer_id: NodeId, local_node_id: NodeId, error: str
    ) -> "ConnectionEvent":
        return cls(
            event_type=ConnectionEventType.FAILED,
            peer_id=peer_id,
            local_node_id=local_node_id,
            metadata={"error": error},
        )


class ConnectionAwareComponent(Protocol):
    """Protocol for components that need to be aware of connection changes."""

    def on_connection_established(self, event: ConnectionEvent) -> None: ...

    def on_connection_lost(self, event: ConnectionEvent) -> None: ...

    def on_connection_failed(self, event: ConnectionEvent) -> None: ...


class ConnectionEventBus:
    """Synchronous fan-out of connection events to subscribed components."""

    def __init__(self, max_history: int = 100) -> None:
        self._subscribers: list[ConnectionAwareComponent] = []
        self._event_history: deque[ConnectionEvent] = deque(maxlen=max_history)

    def subscribe(self, component: ConnectionAwareComponent) -> None:
        if component in self._subscribers:
            return
        self._subscribers.append(component)
        logger.debug(
            "Component {} subscribed to connection events", type(component).__name__
        )

    def unsubscribe(self, component: ConnectionAwareComponent) -> None:
        if component in self._subscribers:
            self._subscribers.remove(component)
            logger.debug(
                "Component {} unsubscribed from connection events",
                type(component).__name__,
            )

    def publish(self, event: ConnectionEvent) -> None:
        """Publish a connection event to all subscribers."""
        logger.debug(
            "[{}] Publishing {} for peer {} to {} subscribers",
            event.local_node_id,
            event.event_type.value,
            event.peer_id,
            len(self._subscribers),
        )
        self._event_history.append(event)

        # Copy to allow subscribers to unsubscribe while being notified
        for subscriber in list(self._subscribers):
            try:
                match event.event_type:
                    case ConnectionEventType.ESTABLISHED:
                        subscriber.on_connection_established(event)
                    case ConnectionEventType.LOST:
                        subscriber.on_connection_lost(event)
                    case ConnectionEventType.FAILED:
                        subscriber.on_connection_failed(event)
            except Exception as e:
                logger.error(
                    "Error notifying subscriber {}: {}", type(subscriber).__name__, e
                )

    def get_recent_events(self, limit: int = 10) -> list[ConnectionEvent]:
        return list(self._event_history)[-limit:]

    def get_subscriber_count(self) -> int:
        return len(self._subscribers)
