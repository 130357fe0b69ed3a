"""
Typed domain events emitted by the swarmnet topology layer.

The topology manager and agent wrappers only depend on the EventPublisher
protocol: anything with a ``publish(event_type, payload)`` method, sync or
async. NetworkEventBus is a small in-process implementation for wiring and
tests.
"""

from __future__ import annotations

import inspect
import time
from collections import defaultdict, deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, TypeAlias

from loguru import logger

from swarmnet.datastructures.type_aliases import Timestamp


class NetworkEventType(Enum):
    """State transitions announced to the outside world."""

    AGENT_REGISTERED = "agent_registered"
    AGENT_REMOVED = "agent_removed"
    CLUSTER_CHANGED = "cluster_changed"
    HEALTH_DEGRADED = "health_degraded"
    SYSTEM_STARTUP = "system_startup"
    SYSTEM_SHUTDOWN = "system_shutdown"
    PERFORMANCE_METRIC = "performance_metric"


@dataclass(frozen=True, slots=True)
class NetworkEvent:
    event_type: NetworkEventType
    payload: dict[str, Any]
    timestamp: Timestamp = field(default_factory=time.time)


class EventPublisher(Protocol):
    """Anything able to receive swarmnet domain events."""

    def publish(
        self, event_type: NetworkEventType, payload: dict[str, Any]
    ) -> Awaitable[None] | None: ...


EventHandler: TypeAlias = Callable[[NetworkEvent], Awaitable[None] | None]


async def publish_event(
    publisher: EventPublisher | None,
    event_type: NetworkEventType,
    payload: dict[str, Any],
) -> None:
    """Publish through an optional publisher without letting it fail the caller."""
    if publisher is None:
        return
    try:
        result = publisher.publish(event_type, payload)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error("Failed to publish {} event: {}", event_type.value, e)


class NetworkEventBus:
    """In-process event bus with per-type subscriptions and bounded history."""

    def __init__(self, max_history: int = 1000) -> None:
        self._handlers: dict[NetworkEventType, list[EventHandler]] = defaultdict(list)
        self._history: deque[NetworkEvent] = deque(maxlen=max_history)

    def subscribe(self, event_type: NetworkEventType, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    async def publish(
        self, event_type: NetworkEventType, payload: dict[str, Any]
    ) -> None:
        event = NetworkEvent(event_type=event_type, payload=payload)
        self._history.append(event)
        for handler in list(self._handlers.get(event_type, ())):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    "Event handler failed for {}: {}", event_type.value, e
                )

    def events(self, event_type: NetworkEventType | None = None) -> list[NetworkEvent]:
        """Return recorded events, optionally filtered by type."""
        if event_type is None:
            return list(self._history)
        return [event for event in self._history if event.event_type is event_type]
