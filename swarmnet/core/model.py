"""
Wire and status models shared by the swarmnet transport and topology layers.

Messages are immutable pydantic models. The ``from``/``to`` field names of the
wire format are Python keywords, so they are exposed as ``sender`` and
``recipient`` and serialized through aliases.
"""

import time
from enum import Enum
from typing import Any

import ulid
from pydantic import BaseModel, ConfigDict, Field

from swarmnet.datastructures.type_aliases import (
    DurationSeconds,
    MessageIdString,
    NodeId,
    TimestampMilliseconds,
)

BROADCAST_RECIPIENT = "broadcast"
DEFAULT_MESSAGE_TTL: DurationSeconds = 300.0


class MessageType(Enum):
    """Envelope types understood by every transport."""

    DIRECT = "direct"
    BROADCAST = "broadcast"
    DISCOVERY = "discovery"
    HEARTBEAT = "heartbeat"


class NodeStatus(Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    BUSY = "busy"


class ConnectionStatus(Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


def new_message_id() -> MessageIdString:
    """Generate a unique, time-sortable message identifier."""
    return f"msg_{ulid.new()}"


def now_ms() -> TimestampMilliseconds:
    return int(time.time() * 1000)


class MessageBody(BaseModel):
    """Application-level body carried inside every envelope."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(description="Application message type used for dispatch.")
    data: Any = Field(default=None, description="Handler-specific payload.")


class P2PMessage(BaseModel):
    """A single message exchanged between two transports."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: MessageIdString = Field(
        default_factory=new_message_id, description="Unique message identifier."
    )
    sender: NodeId = Field(alias="from", description="Originating node id.")
    recipient: NodeId = Field(
        alias="to", description="Target node id or 'broadcast'."
    )
    type: MessageType = Field(description="Envelope type.")
    payload: MessageBody = Field(description="Typed application body.")
    timestamp: TimestampMilliseconds = Field(
        default_factory=now_ms, description="Creation time in epoch milliseconds."
    )
    ttl: DurationSeconds = Field(
        default=DEFAULT_MESSAGE_TTL,
        description="Advisory validity window in seconds; not enforced.",
    )

    @property
    def body_type(self) -> str:
        return self.payload.type

    @property
    def data(self) -> Any:
        return self.payload.data

    def is_expired(self, now: float | None = None) -> bool:
        """Check whether the advisory TTL has elapsed."""
        current_ms = now * 1000 if now is not None else time.time() * 1000
        return current_ms - self.timestamp > self.ttl * 1000
