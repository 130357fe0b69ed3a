"""
WebSocket link driver for swarmnet.

Protocol:
- Message Framing: WebSocket binary frames (RFC 6455), one P2P message per frame
- Max Message Size: TransportConfig.max_message_size (default 1MB)
- Connection: persistent bidirectional link, one per peer pair direction
- Ping/Pong: WebSocket control frames, used for latency measurement
"""

import asyncio
import time

from loguru import logger
from websockets.asyncio.client import ClientConnection, connect
from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed, WebSocketException

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


class _WebSocketLink(TransportInterface):
    """Frame-level operations shared by client and server side links."""

    _websocket: ClientConnection | ServerConnection | None

    async def send(self, data: bytes) -> None:
        if not self._connected or self._websocket is None:
            raise TransportConnectionError("WebSocket not connected")

        try:
            if self.config.write_timeout:
                await asyncio.wait_for(
                    self._websocket.send(data), timeout=self.config.write_timeout
                )
            else:
                await self._websocket.send(data)
        except TimeoutError:
            raise TransportTimeoutError("WebSocket send timeout")
        except ConnectionClosed:
            self._connected = False
            raise TransportConnectionError("WebSocket connection closed")
        except WebSocketException as e:
            raise TransportError(f"WebSocket send error: {e}")

    async def receive(self) -> bytes:
        if not self._connected or self._websocket is None:
            raise TransportConnectionError("WebSocket not connected")

        try:
            if self.config.read_timeout:
                data = await asyncio.wait_for(
                    self._websocket.recv(), timeout=self.config.read_timeout
                )
            else:
                data = await self._websocket.recv()
        except TimeoutError:
            raise TransportTimeoutError("WebSocket receive timeout")
        except ConnectionClosed:
            self._connected = False
            raise TransportConnectionError("WebSocket connection closed")
        except WebSocketException as e:
            raise TransportError(f"WebSocket receive error: {e}")

        if isinstance(data, str):
            return data.encode("utf-8")
        return data

    async def ping(self) -> float:
        if not self._connected or self._websocket is None:
            raise TransportConnectionError("WebSocket not connected")

        try:
            start_time = time.perf_counter()
            pong_waiter = await self._websocket.ping()
            await asyncio.wait_for(pong_waiter, timeout=self.config.heartbeat_timeout)
            return time.perf_counter() - start_time
        except TimeoutError:
            raise TransportTimeoutError("WebSocket ping timeout")
        except ConnectionClosed:
            self._connected = False
            raise TransportConnectionError("WebSocket connection closed")
        except WebSocketException as e:
            raise TransportError(f"WebSocket ping error: {e}")

    async def disconnect(self) -> None:
        websocket = self._websocket
        self._websocket = None
        self._connected = False
        if websocket is not None:
            await websocket.close()


class WebSocketTransport(_WebSocketLink):
    """Client side WebSocket link (ws://host:port)."""

    def __init__(self, url: str, config: TransportConfig) -> None:
        super().__init__(url, config)
        self._websocket = None
        self._connect_lock = asyncio.Lock()

    async def connect(self) -> None:
        async with self._connect_lock:
            if self._connected:
                return

            try:
                self._websocket = await asyncio.wait_for(
                    connect(self.url, max_size=self.config.max_message_size),
                    timeout=self.config.connect_timeout,
                )
                self._connected = True
            except TimeoutError:
                raise TransportTimeoutError(
                    f"WebSocket connection timeout: {self.url}"
                )
            except (OSError, WebSocketException) as e:
                raise TransportConnectionError(f"WebSocket connection failed: {e}")


class _WebSocketServerTransport(_WebSocketLink):
    """Server side of an accepted WebSocket link."""

    def __init__(self, websocket: ServerConnection, config: TransportConfig) -> None:
        host, port = websocket.remote_address[:2]
        super().__init__(f"ws://{host}:{port}", config)
        self._websocket = websocket
        self._connected = True

    async def connect(self) -> None:
        """No-op for server-side links (already connected)."""
        pass


class WebSocketListener(TransportListener):
    """Accepts inbound WebSocket links."""

    def __init__(
        self, host: HostAddress, port: PortNumber, config: TransportConfig
    ) -> None:
        super().__init__(host, port, config)
        self._server: Server | None = None
        self._accept_queue: asyncio.Queue[ServerConnection] | None = None

    def _get_protocol_scheme(self) -> str:
        return "ws"

    async def start(self) -> None:
        if self._listening:
            return

        self._accept_queue = asyncio.Queue()
        try:
            self._server = await serve(
                self._handle_connection,
                self.host,
                self.port,
                max_size=self.config.max_message_size,
            )
        except (OSError, WebSocketException) as e:
            self._accept_queue = None
            raise TransportError(f"WebSocket listener start failed: {e}")

        self._listening = True
        logger.debug("WebSocket listener started on {}", self.endpoint)

    async def stop(self) -> None:
        if not self._listening:
            return

        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        self._accept_queue = None
        self._listening = False

    async def accept(self) -> TransportInterface:
        if not self._listening or self._accept_queue is None:
            raise TransportError("WebSocket listener not started")
        websocket = await self._accept_queue.get()
        return _WebSocketServerTransport(websocket, self.config)

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        if self._accept_queue is None:
            return
        await self._accept_queue.put(websocket)
        # The server closes the connection once this handler returns
        await websocket.wait_closed()


class WebSocketTransportProvider(TransportProvider):
    """Driver producing real WebSocket links."""

    def create(self, host: HostAddress, port: PortNumber) -> TransportInterface:
        return WebSocketTransport(f"ws://{host}:{port}", self.config)

    def create_listener(
        self, host: HostAddress, port: PortNumber
    ) -> TransportListener:
        return WebSocketListener(host, port, self.config)
