"""Pytest configuration and fixtures for swarmnet testing.

Every fixture that starts transports, agents or managers stops them again so
no background task outlives its test.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio

from swarmnet.config import SwarmNetSettings
from swarmnet.core.network_events import NetworkEventBus
from swarmnet.core.transport import MemoryNetwork, MemoryTransportProvider
from swarmnet.network import TopologyManager

from .helpers import SwarmFactory, quiet_settings


@pytest.fixture
def settings() -> SwarmNetSettings:
    return quiet_settings()


@pytest.fixture
def memory_network() -> MemoryNetwork:
    return MemoryNetwork()


@pytest.fixture
def provider(memory_network: MemoryNetwork) -> MemoryTransportProvider:
    return MemoryTransportProvider(memory_network)


@pytest.fixture
def event_bus() -> NetworkEventBus:
    return NetworkEventBus()


@pytest_asyncio.fixture
async def swarm(
    provider: MemoryTransportProvider, settings: SwarmNetSettings
) -> AsyncGenerator[SwarmFactory, None]:
    factory = SwarmFactory(provider, settings)
    yield factory
    await factory.close()


@pytest_asyncio.fixture
async def manager(
    settings: SwarmNetSettings, event_bus: NetworkEventBus
) -> AsyncGenerator[TopologyManager, None]:
    topology_manager = TopologyManager(settings=settings, publisher=event_bus)
    yield topology_manager
    await topology_manager.stop()
