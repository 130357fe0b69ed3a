import asyncio
import pprint as pp
from dataclasses import dataclass

from jsonargparse import CLI
from loguru import logger

from swarmnet.config import SwarmNetSettings
from swarmnet.core.logging import configure_logging
from swarmnet.core.network_events import NetworkEventBus
from swarmnet.core.transport import (
    MemoryNetwork,
    MemoryTransportProvider,
    TransportConfig,
    WebSocketTransportProvider,
)
from swarmnet.network import (
    AgentCapabilities,
    AgentTask,
    P2PAgent,
    TopologyManager,
)

DEMO_ROLES: tuple[tuple[str, list[str], int], ...] = (
    ("coordinator", ["planning", "architecture"], 8),
    ("developer", ["python", "api"], 6),
    ("reviewer", ["review", "security"], 7),
    ("tester", ["testing", "python"], 4),
    ("analyst", ["data", "analysis"], 9),
)


def parse_peer(value: str) -> tuple[str, str, int]:
    """Split ``node_id@host:port`` into its parts."""
    node_id, _, endpoint = value.partition("@")
    host, _, port = endpoint.rpartition(":")
    if not node_id or not host or not port.isdigit():
        raise ValueError(f"Invalid peer '{value}', expected node_id@host:port")
    return node_id, host, int(port)


@dataclass(slots=True)
class SwarmNetCLI:
    """swarmnet command line interface for running agent swarms."""

    log_level: str = "INFO"
    debug_scopes: tuple[str, ...] = ()

    def _settings(self) -> SwarmNetSettings:
        settings = SwarmNetSettings(
            log_level=self.log_level, debug_scopes=self.debug_scopes
        )
        configure_logging(settings.log_level, debug_scopes=settings.debug_scopes)
        return settings

    def demo(self, agents: int = 5, base_port: int = 7000) -> None:
        """Runs an in-memory swarm and prints its topology, metrics and a path.

        Args:
            agents: Number of agents to register.
            base_port: First port assigned to the in-memory agents.
        """
        settings = self._settings()
        asyncio.run(self._run_demo(settings, agents, base_port))

    async def _run_demo(
        self, settings: SwarmNetSettings, agent_count: int, base_port: int
    ) -> None:
        events = NetworkEventBus()
        provider = MemoryTransportProvider(MemoryNetwork())

        async with TopologyManager(settings=settings, publisher=events) as manager:
            for i in range(agent_count):
                role, skills, ceiling = DEMO_ROLES[i % len(DEMO_ROLES)]
                agent = P2PAgent(
                    f"{role}-{i}",
                    role,
                    AgentCapabilities(
                        specialized_skills=skills,
                        max_complexity=ceiling,
                        can_review=role == "reviewer",
                        can_execute_code=role in ("developer", "tester"),
                    ),
                    provider,
                    port=base_port + i,
                    settings=settings,
                )
                await manager.register_agent(agent)

            # Let inbound hellos and capability announcements land
            await asyncio.sleep(0.05)

            topology = manager.get_topology()
            logger.info(
                "Clusters: {}",
                pp.pformat(
                    {cid: sorted(members) for cid, members in topology.clusters.items()}
                ),
            )
            logger.info(
                "Connections: {}",
                pp.pformat(
                    {nid: sorted(peers) for nid, peers in topology.connections.items()}
                ),
            )

            registered = [agent.id for agent in manager.agents()]
            if len(registered) >= 2:
                logger.info(
                    "Path {} -> {}: {}",
                    registered[0],
                    registered[-1],
                    manager.find_path(registered[0], registered[-1]),
                )

            delivered = await manager.broadcast_message(
                "status_update", {"message": "demo broadcast"}
            )
            logger.info("Broadcast delivered to {} peers", delivered)

            if registered:
                tester = manager.agents()[-1]
                result = await tester.process_task(
                    AgentTask(
                        id="demo-task",
                        title="Design the python api",
                        description="Plan a public python api for the swarm",
                        complexity=tester.capabilities.max_complexity + 1,
                    )
                )
                logger.info("Task result: {}", result)

            metrics = await manager.update_network_metrics()
            logger.info("Metrics: {}", pp.pformat(metrics.to_payload()))
            logger.info("Events published: {}", len(events.events()))

    def node(
        self,
        node_id: str,
        host: str = "127.0.0.1",
        port: int = 7700,
        role: str = "worker",
        skills: list[str] | None = None,
        peers: list[str] | None = None,
        duration: float | None = None,
    ) -> None:
        """Runs one agent over WebSocket and connects it to the given peers.

        Args:
            node_id: Identifier announced to peers.
            host: Interface to listen on.
            port: Port to listen on.
            role: Role reported by the agent.
            skills: Specialized skills advertised to peers.
            peers: Peers to connect to, as node_id@host:port.
            duration: Seconds to run before exiting (forever if omitted).
        """
        settings = self._settings()
        asyncio.run(
            self._run_node(
                settings, node_id, host, port, role, skills or [], peers or [], duration
            )
        )

    async def _run_node(
        self,
        settings: SwarmNetSettings,
        node_id: str,
        host: str,
        port: int,
        role: str,
        skills: list[str],
        peers: list[str],
        duration: float | None,
    ) -> None:
        provider = WebSocketTransportProvider(
            TransportConfig(connect_timeout=settings.connect_timeout)
        )
        agent = P2PAgent(
            node_id,
            role,
            AgentCapabilities(specialized_skills=skills),
            provider,
            address=host,
            port=port,
            settings=settings,
        )
        await agent.initialize()
        try:
            for entry in peers:
                peer_id, peer_host, peer_port = parse_peer(entry)
                if not await agent.connect_to_peer(peer_id, peer_host, peer_port):
                    logger.warning("Could not reach peer {}", entry)

            loop = asyncio.get_running_loop()
            deadline = None if duration is None else loop.time() + duration
            while deadline is None or loop.time() < deadline:
                interval = settings.metrics_interval
                if deadline is not None:
                    interval = min(interval, max(0.0, deadline - loop.time()))
                await asyncio.sleep(interval)
                stats = agent.network_stats()
                logger.info(
                    "[{}] peers={} sent={} received={} failed={}",
                    node_id,
                    agent.get_connected_peers(),
                    stats.messages_sent,
                    stats.messages_received,
                    stats.messages_failed,
                )
        finally:
            await agent.shutdown()


def main() -> None:
    CLI(SwarmNetCLI, as_dict=False)  # type: ignore[no-untyped-call]


if __name__ == "__main__":
    main()
