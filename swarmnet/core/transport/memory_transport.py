"""
In-process link driver for swarmnet.

Listeners register under ``(host, port)`` in a shared MemoryNetwork and
outbound links are paired queues, so whole swarms run inside one event loop
with real asynchronous delivery but no sockets. Used by the test suite and
the CLI demo.
"""

from __future__ import annotations

import asyncio
import time
from typing import TypeAlias

from loguru import logger

from swarmnet.datastructures.type_aliases import HostAddress, PortNumber

from .interfaces import (
    TransportConfig,
    TransportConnectionError,
    TransportError,
    TransportInterface,
    TransportListener,
    TransportProvider,
    TransportTimeoutError,
)

Endpoint: TypeAlias = tuple[HostAddress, PortNumber]


class MemoryNetwork:
    """Registry of in-memory listeners keyed by endpoint."""

    def __init__(self) -> None:
        self._listeners: dict[Endpoint, MemoryListener] = {}

    def bind(self, listener: MemoryListener) -> None:
        endpoint = (listener.host, listener.port)
        if endpoint in self._listeners:
            raise TransportError(f"Address already in use: {listener.endpoint}")
        self._listeners[endpoint] = listener

    def unbind(self, listener: MemoryListener) -> None:
        endpoint = (listener.host, listener.port)
        if self._listeners.get(endpoint) is listener:
            del self._listeners[endpoint]

    def lookup(self, host: HostAddress, port: PortNumber) -> MemoryListener | None:
        return self._listeners.get((host, port))

    def endpoints(self) -> list[Endpoint]:
        return sorted(self._listeners)


class MemoryTransport(TransportInterface):
    """One side of an in-memory link."""

    def __init__(
        self,
        url: str,
        config: TransportConfig,
        network: MemoryNetwork,
        host: HostAddress,
        port: PortNumber,
    ) -> None:
        super().__init__(url, config)
        self._network = network
        self._host = host
        self._port = port
        self._inbox: asyncio.Queue[bytes | None] = asyncio.Queue()
        self._peer: MemoryTransport | None = None

    @classmethod
    def _accepted(cls, client: MemoryTransport) -> MemoryTransport:
        server_side = cls(
            client.url, client.config, client._network, client._host, client._port
        )
        server_side._peer = client
        server_side._connected = True
        client._peer = server_side
        return server_side

    async def connect(self) -> None:
        if self._connected:
            return
        listener = self._network.lookup(self._host, self._port)
        if listener is None or not listener.listening:
            raise TransportConnectionError(f"Connection refused: {self.url}")

        server_side = MemoryTransport._accepted(self)
        self._connected = True
        listener._enqueue(server_side)

    async def disconnect(self) -> None:
        if not self._connected:
            return
        self._mark_closed()
        if self._peer is not None:
            self._peer._mark_closed()

    def _mark_closed(self) -> None:
        if not self._connected:
            return
        self._connected = False
        # Wake up any pending receive()
        self._inbox.put_nowait(None)

    async def send(self, data: bytes) -> None:
        if not self._connected or self._peer is None:
            raise TransportConnectionError("Memory link not connected")
        if len(data) > self.config.max_message_size:
            raise TransportError(
                f"Message of {len(data)} bytes exceeds {self.config.max_message_size}"
            )
        self._peer._inbox.put_nowait(data)

    async def receive(self) -> bytes:
        if not self._connected and self._inbox.empty():
            raise TransportConnectionError("Memory link not connected")
        try:
            if self.config.read_timeout:
                data = await asyncio.wait_for(
                    self._inbox.get(), timeout=self.config.read_timeout
                )
            else:
                data = await self._inbox.get()
        except TimeoutError:
            raise TransportTimeoutError("Memory link receive timeout")

        if data is None:
            raise TransportConnectionError("Memory link closed")
        return data

    async def ping(self) -> float:
        if not self._connected:
            raise TransportConnectionError("Memory link not connected")
        start_time = time.perf_counter()
        await asyncio.sleep(0)
        return time.perf_counter() - start_time


class MemoryListener(TransportListener):
    """Accepts in-memory links addressed to ``host:port``."""

    def __init__(
        self,
        host: HostAddress,
        port: PortNumber,
        config: TransportConfig,
        network: MemoryNetwork,
    ) -> None:
        super().__init__(host, port, config)
        self._network = network
        self._accept_queue: asyncio.Queue[MemoryTransport] | None = None

    def _get_protocol_scheme(self) -> str:
        return "mem"

    async def start(self) -> None:
        if self._listening:
            return
        self._network.bind(self)
        self._accept_queue = asyncio.Queue()
        self._listening = True
        logger.debug("Memory listener started on {}", self.endpoint)

    async def stop(self) -> None:
        if not self._listening:
            return
        self._network.unbind(self)
        self._listening = False
        self._accept_queue = None

    def _enqueue(self, link: MemoryTransport) -> None:
        if self._accept_queue is None:
            raise TransportConnectionError(f"Listener stopped: {self.endpoint}")
        self._accept_queue.put_nowait(link)

    async def accept(self) -> TransportInterface:
        if not self._listening or self._accept_queue is None:
            raise TransportError("Memory listener not started")
        return await self._accept_queue.get()


class MemoryTransportProvider(TransportProvider):
    """Driver that wires links through a shared MemoryNetwork."""

    def __init__(
        self, network: MemoryNetwork, config: TransportConfig | None = None
    ) -> None:
        super().__init__(config)
        self.network = network

    def create(self, host: HostAddress, port: PortNumber) -> TransportInterface:
        return MemoryTransport(
            f"mem://{host}:{port}", self.config, self.network, host, port
        )

    def create_listener(
        self, host: HostAddress, port: PortNumber
    ) -> TransportListener:
        return MemoryListener(host, port, self.config, self.network)
