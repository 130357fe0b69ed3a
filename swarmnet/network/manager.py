"""
Topology manager: the process-wide view of every locally known agent.

The manager is an explicit object owned by whoever builds the swarm. It
registers agent wrappers, wires each new agent to a bounded set of seed
peers, mirrors connection events into a TopologyGraph, and keeps clusters,
bridges and metrics current. Two background loops refresh metrics and run
health checks; a failed agent gets one bounded restart before it is
unregistered.

Domain events are published at a fixed set of transitions: agent registered
or removed, cluster membership changed, health degraded, system start/stop
and periodic performance metrics.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from swarmnet.config import SwarmNetSettings
from swarmnet.core.connection_events import ConnectionEvent
from swarmnet.core.model import NodeStatus
from swarmnet.core.network_events import (
    EventPublisher,
    NetworkEventType,
    publish_event,
)
from swarmnet.datastructures.type_aliases import (
    ClusterId,
    HostAddress,
    NodeId,
    PortNumber,
    SkillName,
)

from .agent import P2PAgent
from .metrics import MetricsCollector, NetworkMetrics
from .node import NodeRecord
from .topology import (
    BridgeMap,
    ClusterMap,
    NodeLifecycle,
    TopologyGraph,
    TopologySnapshot,
)
from .transport import PeerActivity, TransportStats


@dataclass(frozen=True, slots=True)
class NodeInfo:
    id: NodeId
    role: str
    address: HostAddress
    port: PortNumber
    lifecycle: NodeLifecycle
    connections: list[NodeId]
    network_stats: TransportStats
    capabilities: list[SkillName]
    cluster_id: ClusterId | None = None
    is_bridge: bool = False


@dataclass(frozen=True, slots=True)
class HealthCheckReport:
    checked: int = 0
    restarted: list[NodeId] = field(default_factory=list)
    removed: list[NodeId] = field(default_factory=list)


class TopologyManager:
    """Registry and health monitor for a set of P2P agents."""

    def __init__(
        self,
        settings: SwarmNetSettings | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        self.settings = settings or SwarmNetSettings()
        self.publisher = publisher
        self.graph = TopologyGraph()
        self.metrics_collector = MetricsCollector(
            target_fan_out=self.settings.target_fan_out
        )

        self._agents: dict[NodeId, P2PAgent] = {}
        self._metrics = NetworkMetrics()
        self._lock = asyncio.Lock()
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._running = False
        self._health_degraded = False
        self._cluster_change_pending = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def __aenter__(self) -> TopologyManager:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    # Lifecycle

    async def start(self) -> None:
        if self._running:
            logger.debug("Topology manager already running")
            return

        self._running = True
        for loop in (self._metrics_loop(), self._health_check_loop()):
            self._background_tasks.add(asyncio.create_task(loop))

        await publish_event(
            self.publisher,
            NetworkEventType.SYSTEM_STARTUP,
            {
                "timestamp": time.time(),
                "metricsInterval": self.settings.metrics_interval,
                "healthCheckInterval": self.settings.health_check_interval,
            },
        )
        logger.info("Topology manager started")

    async def stop(self) -> None:
        if not self._running and not self._agents:
            return

        self._running = False
        for task in self._background_tasks:
            task.cancel()
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
        self._background_tasks.clear()

        async with self._lock:
            agent_count = len(self._agents)
            for node_id in list(self._agents):
                await self._remove_agent(node_id)
            self.graph.clear()
            self._cluster_change_pending = False

        await publish_event(
            self.publisher,
            NetworkEventType.SYSTEM_SHUTDOWN,
            {"timestamp": time.time(), "agents": agent_count},
        )
        logger.info("Topology manager stopped ({} agents shut down)", agent_count)

    # Registration

    async def register_agent(self, agent: P2PAgent) -> None:
        """Add an agent, start it and connect it to up to max_seed_peers peers.

        Raises:
            TransportError: If the agent's transport cannot be started
        """
        async with self._lock:
            if agent.id in self._agents:
                logger.warning("Agent already registered: {}", agent.id)
                return

            seeds = self._seed_peers(agent.id)
            self._agents[agent.id] = agent
            self.graph.add_node(
                NodeRecord(
                    id=agent.id,
                    address=agent.address,
                    port=agent.port,
                    capabilities=frozenset(agent.capabilities.specialized_skills),
                    metadata={"role": agent.role},
                )
            )
            agent.events.subscribe(self)
            agent.transport.add_activity_callback(self.on_peer_activity)

            try:
                await agent.initialize(announce=False)
            except Exception:
                agent.events.unsubscribe(self)
                agent.transport.remove_activity_callback(self.on_peer_activity)
                self._agents.pop(agent.id, None)
                self.graph.remove_node(agent.id)
                raise

            connected = await self._connect_to_seeds(agent, seeds)
            self._refresh_clusters()

        await publish_event(
            self.publisher,
            NetworkEventType.AGENT_REGISTERED,
            {
                "agentId": agent.id,
                "role": agent.role,
                "address": agent.address,
                "port": agent.port,
                "capabilities": list(agent.capabilities.specialized_skills),
                "seedPeers": connected,
            },
        )
        await self._flush_cluster_change()
        logger.info(
            "Agent registered: {} ({} seed connections)", agent.id, len(connected)
        )

    async def unregister_agent(self, node_id: NodeId) -> bool:
        async with self._lock:
            removed = await self._remove_agent(node_id)
        if not removed:
            return False

        await publish_event(
            self.publisher, NetworkEventType.AGENT_REMOVED, {"agentId": node_id}
        )
        await self._flush_cluster_change()
        logger.info("Agent unregistered: {}", node_id)
        return True

    async def _remove_agent(self, node_id: NodeId) -> bool:
        agent = self._agents.pop(node_id, None)
        if agent is None:
            return False

        agent.events.unsubscribe(self)
        agent.transport.remove_activity_callback(self.on_peer_activity)
        try:
            await agent.shutdown()
        except Exception as e:
            logger.error("Error shutting down agent {}: {}", node_id, e)

        if self.graph.remove_node(node_id).clusters_changed:
            self._cluster_change_pending = True
        return True

    def _seed_peers(self, node_id: NodeId) -> list[P2PAgent]:
        candidates = [
            agent
            for agent in self._agents.values()
            if agent.id != node_id and agent.is_running
        ]
        return candidates[: self.settings.max_seed_peers]

    async def _connect_to_seeds(
        self, agent: P2PAgent, seeds: list[P2PAgent]
    ) -> list[NodeId]:
        connected = []
        for peer in seeds:
            try:
                if await agent.connect_to_peer(peer.id, peer.address, peer.port):
                    connected.append(peer.id)
            except Exception as e:
                logger.error("Failed to connect {} to {}: {}", agent.id, peer.id, e)
        return connected

    def get_agent(self, node_id: NodeId) -> P2PAgent | None:
        return self._agents.get(node_id)

    def agents(self) -> list[P2PAgent]:
        return list(self._agents.values())

    # Explicit wiring

    async def connect_agents(self, source: NodeId, target: NodeId) -> bool:
        source_agent = self._agents.get(source)
        target_agent = self._agents.get(target)
        if source_agent is None or target_agent is None:
            logger.warning("Cannot connect unregistered agents {} -> {}", source, target)
            return False

        connected = await source_agent.connect_to_peer(
            target, target_agent.address, target_agent.port
        )
        await self._flush_cluster_change()
        return connected

    async def disconnect_agents(self, source: NodeId, target: NodeId) -> None:
        source_agent = self._agents.get(source)
        if source_agent is not None:
            await source_agent.disconnect_from_peer(target)
        target_agent = self._agents.get(target)
        if target_agent is not None:
            await target_agent.disconnect_from_peer(source)

        self.graph.remove_edge(source, target)
        self.graph.remove_edge(target, source)
        self._settle_lifecycle(source, target)
        self._refresh_clusters()
        await self._flush_cluster_change()

    # Connection events

    def on_connection_established(self, event: ConnectionEvent) -> None:
        local, peer = event.local_node_id, event.peer_id
        added = self.graph.add_edge(local, peer)
        reverse = self.graph.add_edge(peer, local)
        self.graph.set_lifecycle(local, NodeLifecycle.CONNECTED)
        self.graph.set_lifecycle(peer, NodeLifecycle.CONNECTED)
        if added or reverse:
            self._refresh_clusters()

    def on_connection_lost(self, event: ConnectionEvent) -> None:
        local, peer = event.local_node_id, event.peer_id
        removed = self.graph.remove_edge(local, peer)
        reverse = self.graph.remove_edge(peer, local)
        self._settle_lifecycle(local, peer)
        if removed or reverse:
            self._refresh_clusters()

    def on_connection_failed(self, event: ConnectionEvent) -> None:
        logger.debug(
            "Connection {} -> {} failed: {}",
            event.local_node_id,
            event.peer_id,
            event.metadata.get("error"),
        )

    def on_peer_activity(self, activity: PeerActivity) -> None:
        """Refresh edge activity and the sender's last_seen/status."""
        local, peer = activity.local_node_id, activity.peer_id
        self.graph.touch_edge(local, peer, activity.at)
        self.graph.touch_edge(peer, local, activity.at)

        sighting = activity.sighting
        if sighting is not None:
            self.graph.observe_node(sighting.id, sighting.last_seen, sighting.status)
        else:
            self.graph.observe_node(peer, activity.at)

    def _settle_lifecycle(self, *node_ids: NodeId) -> None:
        for node_id in node_ids:
            if (
                self.graph.get_lifecycle(node_id) is NodeLifecycle.CONNECTED
                and self.graph.is_isolated(node_id)
            ):
                self.graph.set_lifecycle(node_id, NodeLifecycle.REGISTERED)

    # Graph

    def _refresh_clusters(self) -> None:
        if self.graph.recompute():
            self._cluster_change_pending = True

    async def _flush_cluster_change(self) -> None:
        if not self._cluster_change_pending:
            return
        self._cluster_change_pending = False

        snapshot = self.graph.snapshot()
        await publish_event(
            self.publisher,
            NetworkEventType.CLUSTER_CHANGED,
            {
                "clusters": {
                    cluster_id: sorted(members)
                    for cluster_id, members in snapshot.clusters.items()
                },
                "bridges": {
                    node_id: sorted(cluster_ids)
                    for node_id, cluster_ids in snapshot.bridges.items()
                },
            },
        )
        logger.debug("Clusters updated: {} clusters", len(snapshot.clusters))

    async def update_clusters(self) -> ClusterMap:
        """Recompute connected components and bridges from the current edges."""
        self._refresh_clusters()
        await self._flush_cluster_change()
        return self.graph.snapshot().clusters

    def identify_bridge_nodes(self) -> BridgeMap:
        return self.graph.refresh_bridges()

    def find_path(self, source: NodeId, target: NodeId) -> list[NodeId] | None:
        return self.graph.find_path(source, target)

    # Metrics and health

    async def update_network_metrics(self) -> NetworkMetrics:
        snapshot = self.graph.snapshot()
        agents = list(self._agents.values())
        metrics = self.metrics_collector.collect(
            snapshot,
            [agent.network_stats() for agent in agents],
            [
                latency
                for agent in agents
                for latency in agent.transport.latency_samples()
            ],
        )
        self._metrics = metrics

        await publish_event(
            self.publisher, NetworkEventType.PERFORMANCE_METRIC, metrics.to_payload()
        )

        degraded = metrics.network_health < self.settings.health_degraded_threshold
        if degraded and not self._health_degraded:
            logger.warning(
                "Network health degraded: {} < {}",
                metrics.network_health,
                self.settings.health_degraded_threshold,
            )
            await publish_event(
                self.publisher,
                NetworkEventType.HEALTH_DEGRADED,
                {
                    "networkHealth": metrics.network_health,
                    "threshold": self.settings.health_degraded_threshold,
                    "totalNodes": metrics.total_nodes,
                    "clusterCount": metrics.cluster_count,
                },
            )
        self._health_degraded = degraded
        return metrics

    async def perform_health_checks(self) -> HealthCheckReport:
        """Restart stopped agents once; unregister the ones that stay down."""
        restarted: list[NodeId] = []
        removed: list[NodeId] = []

        async with self._lock:
            agents = list(self._agents.values())
            for agent in agents:
                if agent.is_running:
                    continue

                logger.warning("Agent {} is not running, restarting", agent.id)
                self.graph.set_lifecycle(agent.id, NodeLifecycle.RECONNECTING)
                self.graph.set_status(agent.id, NodeStatus.OFFLINE)

                if await self._restart_agent(agent):
                    self.graph.observe_node(agent.id, time.time(), NodeStatus.ONLINE)
                    await self._connect_to_seeds(agent, self._seed_peers(agent.id))
                    self.graph.set_lifecycle(
                        agent.id,
                        NodeLifecycle.REGISTERED
                        if self.graph.is_isolated(agent.id)
                        else NodeLifecycle.CONNECTED,
                    )
                    restarted.append(agent.id)
                else:
                    logger.error("Agent {} failed to restart, unregistering", agent.id)
                    await self._remove_agent(agent.id)
                    removed.append(agent.id)

            self._refresh_clusters()

        for node_id in removed:
            await publish_event(
                self.publisher, NetworkEventType.AGENT_REMOVED, {"agentId": node_id}
            )
        await self._flush_cluster_change()
        return HealthCheckReport(
            checked=len(agents), restarted=restarted, removed=removed
        )

    async def _restart_agent(self, agent: P2PAgent) -> bool:
        async def cycle() -> None:
            await agent.shutdown()
            await agent.initialize(announce=False)

        try:
            await asyncio.wait_for(cycle(), timeout=self.settings.restart_timeout)
        except Exception as e:
            logger.error("Restart of agent {} failed: {}", agent.id, e)
            return False
        return agent.is_running

    async def _metrics_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.settings.metrics_interval)
                await self._flush_cluster_change()
                await self.update_network_metrics()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in metrics loop: {}", e)

    async def _health_check_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.settings.health_check_interval)
                await self.perform_health_checks()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in health check loop: {}", e)

    # Fan-out

    async def broadcast_message(self, msg_type: str, payload: Any) -> int:
        """Broadcast through every registered agent; returns total deliveries."""
        total_sent = 0
        for agent in list(self._agents.values()):
            try:
                total_sent += await agent.broadcast_to_peers(msg_type, payload)
            except Exception as e:
                logger.error("Broadcast from {} failed: {}", agent.id, e)
        return total_sent

    # Queries

    def get_topology(self) -> TopologySnapshot:
        return self.graph.snapshot()

    def get_metrics(self) -> NetworkMetrics:
        return self._metrics

    def get_node_info(self, node_id: NodeId) -> NodeInfo | None:
        agent = self._agents.get(node_id)
        node = self.graph.get_node(node_id)
        if agent is None or node is None:
            return None

        snapshot = self.graph.snapshot()
        return NodeInfo(
            id=node_id,
            role=agent.role,
            address=node.address,
            port=node.port,
            lifecycle=self.graph.get_lifecycle(node_id),
            connections=sorted(snapshot.connections.get(node_id, ())),
            network_stats=agent.network_stats(),
            capabilities=sorted(node.capabilities),
            cluster_id=snapshot.cluster_of(node_id),
            is_bridge=node_id in snapshot.bridges,
        )
