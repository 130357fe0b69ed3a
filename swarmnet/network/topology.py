"""
Agent graph registry and the graph algorithms behind it.

The registry holds nodes, directed connection edges, and the derived cluster
and bridge maps. Every mutation happens under one lock, and the derived maps
are recomputed wholesale whenever the edge set changes, so readers never see
a cluster or bridge that references a removed node.

The algorithms are plain functions over adjacency mappings so they can be
exercised directly on hand-made graphs.
"""

from __future__ import annotations

import time
from collections import deque
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from threading import RLock
from typing import TypeAlias

from swarmnet.core.model import ConnectionStatus, NodeStatus
from swarmnet.datastructures.type_aliases import (
    ClusterId,
    HealthScore,
    NodeId,
    Timestamp,
)

from .node import NodeRecord

Adjacency: TypeAlias = Mapping[NodeId, Iterable[NodeId]]
ClusterMap: TypeAlias = dict[ClusterId, frozenset[NodeId]]
BridgeMap: TypeAlias = dict[NodeId, frozenset[ClusterId]]


class NodeLifecycle(Enum):
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass(slots=True)
class EdgeRecord:
    status: ConnectionStatus = ConnectionStatus.CONNECTED
    last_activity: Timestamp = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class TopologySnapshot:
    """Read-only copy of the graph at one instant."""

    nodes: dict[NodeId, NodeRecord]
    connections: dict[NodeId, frozenset[NodeId]]
    clusters: ClusterMap
    bridges: BridgeMap
    taken_at: Timestamp = field(default_factory=time.time)

    @property
    def edge_count(self) -> int:
        return sum(len(targets) for targets in self.connections.values())

    @property
    def clustered_nodes(self) -> frozenset[NodeId]:
        return frozenset().union(*self.clusters.values())

    def cluster_of(self, node_id: NodeId) -> ClusterId | None:
        for cluster_id, members in self.clusters.items():
            if node_id in members:
                return cluster_id
        return None


@dataclass(frozen=True, slots=True)
class RemovalResult:
    removed: bool
    clusters_changed: bool = False


# Graph algorithms


def undirected_view(
    nodes: Iterable[NodeId], adjacency: Adjacency
) -> dict[NodeId, set[NodeId]]:
    """Symmetric neighbour sets restricted to the given nodes."""
    view: dict[NodeId, set[NodeId]] = {node_id: set() for node_id in nodes}
    for source, targets in adjacency.items():
        if source not in view:
            continue
        for target in targets:
            if target in view and target != source:
                view[source].add(target)
                view[target].add(source)
    return view


def find_connected_components(
    nodes: Sequence[NodeId], adjacency: Adjacency
) -> ClusterMap:
    """Partition nodes into undirected connected components of size >= 2.

    Components are discovered by iterative DFS in the order of ``nodes`` and
    numbered ``cluster_0``, ``cluster_1``, ... in that order.
    """
    view = undirected_view(nodes, adjacency)
    visited: set[NodeId] = set()
    clusters: ClusterMap = {}

    for start in nodes:
        if start in visited:
            continue
        component: set[NodeId] = set()
        stack = [start]
        while stack:
            node_id = stack.pop()
            if node_id in visited:
                continue
            visited.add(node_id)
            component.add(node_id)
            stack.extend(n for n in view[node_id] if n not in visited)

        if len(component) >= 2:
            clusters[f"cluster_{len(clusters)}"] = frozenset(component)

    return clusters


def find_bridge_nodes(
    adjacency: Adjacency, clusters: Mapping[ClusterId, Iterable[NodeId]]
) -> BridgeMap:
    """Nodes whose direct neighbours belong to two or more distinct clusters."""
    membership: dict[NodeId, ClusterId] = {}
    for cluster_id, members in clusters.items():
        for node_id in members:
            membership[node_id] = cluster_id

    neighbours: dict[NodeId, set[NodeId]] = {}
    for source, targets in adjacency.items():
        for target in targets:
            if target == source:
                continue
            neighbours.setdefault(source, set()).add(target)
            neighbours.setdefault(target, set()).add(source)

    bridges: BridgeMap = {}
    for node_id, adjacent in neighbours.items():
        touched = {membership[n] for n in adjacent if n in membership}
        if len(touched) >= 2:
            bridges[node_id] = frozenset(touched)
    return bridges


def shortest_path(
    adjacency: Adjacency, source: NodeId, target: NodeId
) -> list[NodeId] | None:
    """Breadth-first search over directed edges; first shortest path wins."""
    if source == target:
        return [source]

    parents: dict[NodeId, NodeId | None] = {source: None}
    queue = deque([source])
    while queue:
        current = queue.popleft()
        for neighbour in adjacency.get(current, ()):
            if neighbour in parents:
                continue
            parents[neighbour] = current
            if neighbour == target:
                path = [target]
                step = current
                while step is not None:
                    path.append(step)
                    step = parents[step]
                path.reverse()
                return path
            queue.append(neighbour)
    return None


def compute_network_health(
    total_nodes: int,
    directed_edges: int,
    clustered_nodes: int,
    cluster_count: int,
    target_fan_out: int = 3,
) -> HealthScore:
    """Score overall connectivity on a 0-100 scale.

    Averages cluster presence (100 with any cluster, else 50) with the mean
    out-degree against ``target_fan_out``, then weights the result by the
    share of nodes that sit in some cluster. An empty network scores 100.
    """
    if total_nodes <= 0:
        return 100.0

    cluster_score = 100.0 if cluster_count > 0 else 50.0
    average_fan_out = directed_edges / total_nodes
    connectivity = min(100.0, average_fan_out / max(1, target_fan_out) * 100.0)
    coverage = min(1.0, max(0.0, clustered_nodes / total_nodes))
    return round((cluster_score + connectivity) / 2 * coverage, 2)


# Registry


@dataclass(slots=True)
class TopologyGraph:
    """Thread-safe node/edge registry with derived clusters and bridges."""

    nodes: dict[NodeId, NodeRecord] = field(default_factory=dict)
    adjacency: dict[NodeId, dict[NodeId, EdgeRecord]] = field(default_factory=dict)
    clusters: ClusterMap = field(default_factory=dict)
    bridges: BridgeMap = field(default_factory=dict)
    lifecycle: dict[NodeId, NodeLifecycle] = field(default_factory=dict)
    _lock: RLock = field(default_factory=RLock)

    def __contains__(self, node_id: object) -> bool:
        with self._lock:
            return node_id in self.nodes

    def __len__(self) -> int:
        with self._lock:
            return len(self.nodes)

    def add_node(self, node: NodeRecord) -> None:
        with self._lock:
            self.nodes[node.id] = node
            self.adjacency.setdefault(node.id, {})
            self.lifecycle[node.id] = NodeLifecycle.REGISTERED

    def remove_node(self, node_id: NodeId) -> RemovalResult:
        """Drop a node with every edge, cluster and bridge entry that mentions it."""
        with self._lock:
            if node_id not in self.nodes:
                return RemovalResult(removed=False)

            del self.nodes[node_id]
            self.adjacency.pop(node_id, None)
            for targets in self.adjacency.values():
                targets.pop(node_id, None)
            self.lifecycle.pop(node_id, None)

            return RemovalResult(removed=True, clusters_changed=self.recompute())

    def get_node(self, node_id: NodeId) -> NodeRecord | None:
        with self._lock:
            return self.nodes.get(node_id)

    def node_ids(self) -> list[NodeId]:
        with self._lock:
            return list(self.nodes)

    def observe_node(
        self, node_id: NodeId, last_seen: Timestamp, status: NodeStatus | None = None
    ) -> bool:
        """Apply a sighting to a registered node; stale sightings are ignored."""
        with self._lock:
            node = self.nodes.get(node_id)
            return node is not None and node.observe(last_seen, status)

    def set_status(self, node_id: NodeId, status: NodeStatus) -> None:
        with self._lock:
            node = self.nodes.get(node_id)
            if node is not None:
                node.status = status

    def add_edge(self, source: NodeId, target: NodeId) -> bool:
        """Record a directed connection between two registered nodes."""
        with self._lock:
            if source == target or source not in self.nodes or target not in self.nodes:
                return False
            edge = self.adjacency[source].get(target)
            if edge is None:
                self.adjacency[source][target] = EdgeRecord()
                return True
            edge.status = ConnectionStatus.CONNECTED
            edge.last_activity = time.time()
            return False

    def touch_edge(self, source: NodeId, target: NodeId, at: Timestamp) -> bool:
        """Advance an existing edge's last activity. Never creates the edge."""
        with self._lock:
            edge = self.adjacency.get(source, {}).get(target)
            if edge is None:
                return False
            edge.last_activity = max(edge.last_activity, at)
            return True

    def edge_activity(self, source: NodeId, target: NodeId) -> Timestamp | None:
        with self._lock:
            edge = self.adjacency.get(source, {}).get(target)
            return edge.last_activity if edge else None

    def remove_edge(self, source: NodeId, target: NodeId) -> bool:
        with self._lock:
            return self.adjacency.get(source, {}).pop(target, None) is not None

    def has_edge(self, source: NodeId, target: NodeId) -> bool:
        with self._lock:
            return target in self.adjacency.get(source, {})

    def neighbours(self, node_id: NodeId) -> list[NodeId]:
        with self._lock:
            return list(self.adjacency.get(node_id, {}))

    def is_isolated(self, node_id: NodeId) -> bool:
        """True when no edge leaves or enters the node."""
        with self._lock:
            if self.adjacency.get(node_id):
                return False
            return not any(node_id in targets for targets in self.adjacency.values())

    def edge_count(self) -> int:
        with self._lock:
            return sum(len(targets) for targets in self.adjacency.values())

    def recompute(self) -> bool:
        """Rebuild clusters and bridges. Returns True if cluster membership changed."""
        with self._lock:
            previous = set(self.clusters.values())
            self.clusters = find_connected_components(list(self.nodes), self.adjacency)
            self.refresh_bridges()
            return previous != set(self.clusters.values())

    def refresh_bridges(self) -> BridgeMap:
        with self._lock:
            self.bridges = find_bridge_nodes(self.adjacency, self.clusters)
            return dict(self.bridges)

    def find_path(self, source: NodeId, target: NodeId) -> list[NodeId] | None:
        with self._lock:
            if source not in self.nodes or target not in self.nodes:
                return None
            adjacency = {node_id: list(t) for node_id, t in self.adjacency.items()}
        return shortest_path(adjacency, source, target)

    def set_lifecycle(self, node_id: NodeId, state: NodeLifecycle) -> None:
        with self._lock:
            if node_id in self.nodes:
                self.lifecycle[node_id] = state

    def get_lifecycle(self, node_id: NodeId) -> NodeLifecycle:
        with self._lock:
            return self.lifecycle.get(node_id, NodeLifecycle.UNREGISTERED)

    def snapshot(self) -> TopologySnapshot:
        with self._lock:
            return TopologySnapshot(
                nodes={node_id: node.copy() for node_id, node in self.nodes.items()},
                connections={
                    node_id: frozenset(targets)
                    for node_id, targets in self.adjacency.items()
                },
                clusters=dict(self.clusters),
                bridges=dict(self.bridges),
            )

    def clear(self) -> None:
        with self._lock:
            self.nodes.clear()
            self.adjacency.clear()
            self.clusters = {}
            self.bridges = {}
            self.lifecycle.clear()
