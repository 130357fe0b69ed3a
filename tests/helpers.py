"""
Test helper utilities for swarmnet testing.

Polling helpers for asynchronous state, free-port allocation for live
WebSocket tests, and a factory that builds agents and transports on a shared
in-memory network and tears them all down afterwards.
"""

import asyncio
import itertools
import socket
import time
from collections.abc import Callable, Iterable

from swarmnet.config import SwarmNetSettings
from swarmnet.core.transport import TransportProvider
from swarmnet.network import AgentCapabilities, P2PAgent, P2PTransport
from swarmnet.network.agent import TaskExecutor


async def wait_for_condition(
    predicate: Callable[[], bool],
    *,
    timeout: float = 2.0,
    interval: float = 0.01,
    error_message: str | None = None,
) -> None:
    """Poll a condition until it is true or a timeout is reached."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return
        await asyncio.sleep(interval)
    message = error_message or f"Condition not met within {timeout:.1f}s"
    raise AssertionError(message)


async def settle(rounds: int = 5) -> None:
    """Give in-flight reader tasks a few loop iterations to drain."""
    for _ in range(rounds):
        await asyncio.sleep(0.01)


def free_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for a currently unused TCP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def quiet_settings(**overrides: float) -> SwarmNetSettings:
    """Settings whose timers never fire during a test."""
    values: dict[str, float] = {
        "heartbeat_interval": 3600.0,
        "discovery_interval": 3600.0,
        "metrics_interval": 3600.0,
        "health_check_interval": 3600.0,
        "connect_timeout": 1.0,
        "restart_timeout": 1.0,
    }
    values.update(overrides)
    return SwarmNetSettings(**values)


class SwarmFactory:
    """Builds agents and transports that share one provider."""

    def __init__(self, provider: TransportProvider, settings: SwarmNetSettings):
        self.provider = provider
        self.settings = settings
        self.agents: list[P2PAgent] = []
        self.transports: list[P2PTransport] = []
        self._ports = itertools.count(9000)

    def agent(
        self,
        agent_id: str,
        *,
        role: str = "worker",
        skills: Iterable[str] = (),
        max_complexity: int = 5,
        executor: TaskExecutor | None = None,
        **capability_flags: bool,
    ) -> P2PAgent:
        agent = P2PAgent(
            agent_id,
            role,
            AgentCapabilities(
                specialized_skills=list(skills),
                max_complexity=max_complexity,
                **capability_flags,
            ),
            self.provider,
            port=next(self._ports),
            settings=self.settings,
            executor=executor,
        )
        self.agents.append(agent)
        return agent

    def transport(self, node_id: str, capabilities: Iterable[str] = ()) -> P2PTransport:
        transport = P2PTransport(
            node_id,
            self.provider,
            port=next(self._ports),
            capabilities=capabilities,
            settings=self.settings,
        )
        self.transports.append(transport)
        return transport

    async def close(self) -> None:
        for agent in self.agents:
            await agent.shutdown()
        for transport in self.transports:
            await transport.stop()
