"""Node records shared by transports (known nodes) and the topology registry."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from typing import Any

from swarmnet.core.model import NodeStatus
from swarmnet.datastructures.type_aliases import (
    HostAddress,
    NodeId,
    PortNumber,
    Timestamp,
)


@dataclass(slots=True)
class NodeRecord:
    """A logical agent endpoint participating in the P2P graph."""

    id: NodeId
    address: HostAddress
    port: PortNumber
    capabilities: frozenset[str] = frozenset()
    status: NodeStatus = NodeStatus.ONLINE
    last_seen: Timestamp = field(default_factory=time.time)
    metadata: dict[str, Any] = field(default_factory=dict)

    def observe(self, last_seen: Timestamp, status: NodeStatus | None = None) -> bool:
        """Apply a sighting if it is not older than what we already have.

        Returns True when the record changed (last-write-wins on last_seen).
        """
        if last_seen < self.last_seen:
            return False
        self.last_seen = last_seen
        if status is not None:
            self.status = status
        return True

    def copy(self) -> NodeRecord:
        return replace(self, metadata=dict(self.metadata))
