"""Shared datastructures and type aliases for swarmnet."""

from .type_aliases import (
    ClusterId,
    DurationSeconds,
    HostAddress,
    NodeId,
    PortNumber,
    Timestamp,
)

__all__ = [
    "ClusterId",
    "DurationSeconds",
    "HostAddress",
    "NodeId",
    "PortNumber",
    "Timestamp",
]
