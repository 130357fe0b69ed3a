"""
Network metrics snapshots for the agent graph.

A MetricsCollector turns a topology snapshot plus per-transport counters into
a NetworkMetrics value. Latency is the mean of the per-link round-trip
averages measured on heartbeat ticks, throughput is the rate of change of
messages sent between two collections, and the error rate is the share of
failed sends and failed connection attempts among all attempts.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from swarmnet.datastructures.type_aliases import (
    ErrorRatePercent,
    HealthScore,
    NetworkLatencyMs,
    Timestamp,
)

from .topology import TopologySnapshot, compute_network_health
from .transport import TransportStats


@dataclass(frozen=True, slots=True)
class NetworkMetrics:
    total_nodes: int = 0
    active_connections: int = 0
    average_latency: NetworkLatencyMs = 0.0
    network_health: HealthScore = 100.0
    cluster_count: int = 0
    bridge_count: int = 0
    message_throughput: float = 0.0
    error_rate: ErrorRatePercent = 0.0
    updated_at: Timestamp = field(default_factory=time.time)

    def to_payload(self) -> dict[str, Any]:
        return {
            "totalNodes": self.total_nodes,
            "activeConnections": self.active_connections,
            "averageLatency": self.average_latency,
            "networkHealth": self.network_health,
            "clusterCount": self.cluster_count,
            "bridgeCount": self.bridge_count,
            "messageThroughput": self.message_throughput,
            "errorRate": self.error_rate,
            "updatedAt": self.updated_at,
        }


@dataclass(slots=True)
class MetricsCollector:
    """Builds NetworkMetrics and keeps a short history of them."""

    target_fan_out: int = 3
    history_size: int = 100
    history: deque[NetworkMetrics] = field(init=False)
    _last_sent: int | None = None
    _last_collected: Timestamp | None = None

    def __post_init__(self) -> None:
        self.history = deque(maxlen=self.history_size)

    @property
    def latest(self) -> NetworkMetrics | None:
        return self.history[-1] if self.history else None

    def collect(
        self,
        snapshot: TopologySnapshot,
        stats: Sequence[TransportStats],
        latencies: Sequence[NetworkLatencyMs],
        now: Timestamp | None = None,
    ) -> NetworkMetrics:
        now = now if now is not None else time.time()
        total_nodes = len(snapshot.nodes)
        edges = snapshot.edge_count

        metrics = NetworkMetrics(
            total_nodes=total_nodes,
            active_connections=edges,
            average_latency=(
                round(sum(latencies) / len(latencies), 3) if latencies else 0.0
            ),
            network_health=compute_network_health(
                total_nodes,
                edges,
                len(snapshot.clustered_nodes),
                len(snapshot.clusters),
                self.target_fan_out,
            ),
            cluster_count=len(snapshot.clusters),
            bridge_count=len(snapshot.bridges),
            message_throughput=self._throughput(stats, now),
            error_rate=error_rate(stats),
            updated_at=now,
        )
        self.history.append(metrics)
        return metrics

    def _throughput(self, stats: Sequence[TransportStats], now: Timestamp) -> float:
        sent = sum(s.messages_sent for s in stats)
        previous, previous_at = self._last_sent, self._last_collected
        self._last_sent, self._last_collected = sent, now

        if previous is None or previous_at is None or now <= previous_at:
            return 0.0
        # Counters of unregistered nodes vanish from the sum
        return round(max(0, sent - previous) / (now - previous_at), 3)


def error_rate(stats: Sequence[TransportStats]) -> ErrorRatePercent:
    failures = sum(s.messages_failed + s.connection_failures for s in stats)
    attempts = sum(
        s.messages_sent + s.messages_failed + s.connection_attempts for s in stats
    )
    if attempts == 0:
        return 0.0
    return round(min(100.0, failures / attempts * 100.0), 2)
