"""
Core link-layer interfaces and types for swarmnet.

A link is one established, bidirectional byte channel between two nodes.
The P2P transport only talks to these interfaces, so the concrete driver
(in-memory for tests and demos, WebSocket for real deployments) is chosen by
whoever constructs the transport.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from types import TracebackType
from urllib.parse import ParseResult, urlparse

from swarmnet.datastructures.type_aliases import HostAddress, PortNumber

from .defaults import (
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_HEARTBEAT_TIMEOUT,
    DEFAULT_MAX_MESSAGE_SIZE,
    DEFAULT_WRITE_TIMEOUT,
)


class TransportProtocol(Enum):
    """Supported link protocols."""

    MEMORY = "mem"
    WEBSOCKET = "ws"


class TransportError(Exception):
    """Base exception for transport-related errors."""

    pass


class TransportConnectionError(TransportError):
    """Raised when a link cannot be opened or is no longer open."""

    pass


class TransportTimeoutError(TransportError):
    """Raised when a link operation times out."""

    pass


@dataclass(slots=True)
class TransportConfig:
    """Configuration shared by all link drivers."""

    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    # Links are long-lived, so reads block until data or close by default
    read_timeout: float | None = None
    write_timeout: float | None = DEFAULT_WRITE_TIMEOUT
    heartbeat_timeout: float = DEFAULT_HEARTBEAT_TIMEOUT
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE


class TransportInterface(ABC):
    """Abstract interface for all link implementations.

    Example Usage:
        link = provider.create("127.0.0.1", 7000)
        await link.connect()
        try:
            await link.send(b"hello")
            reply = await link.receive()
        finally:
            await link.disconnect()
    """

    def __init__(self, url: str, config: TransportConfig) -> None:
        self.url = url
        self.config = config
        self._parsed_url: ParseResult | None = None
        self._connected = False

    @property
    def connected(self) -> bool:
        """Check if the link is currently connected."""
        return self._connected

    @property
    def parsed_url(self) -> ParseResult:
        if not self._parsed_url:
            self._parsed_url = urlparse(self.url)
        return self._parsed_url

    @property
    def protocol(self) -> TransportProtocol:
        scheme = self.parsed_url.scheme.lower()
        try:
            return TransportProtocol(scheme)
        except ValueError:
            raise TransportError(f"Unsupported transport protocol: {scheme}")

    @abstractmethod
    async def connect(self) -> None:
        """Establish the link.

        Raises:
            TransportConnectionError: If connection fails
            TransportTimeoutError: If connection times out
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the link. Safe to call more than once."""
        pass

    @abstractmethod
    async def send(self, data: bytes) -> None:
        """Send one message frame.

        Raises:
            TransportConnectionError: If not connected
            TransportTimeoutError: If send times out
        """
        pass

    @abstractmethod
    async def receive(self) -> bytes:
        """Receive one message frame.

        Raises:
            TransportConnectionError: If the link is or becomes closed
            TransportTimeoutError: If receive times out
        """
        pass

    @abstractmethod
    async def ping(self) -> float:
        """Measure round-trip time in seconds.

        Raises:
            TransportConnectionError: If not connected
            TransportTimeoutError: If the pong does not arrive in time
        """
        pass

    async def __aenter__(self) -> TransportInterface:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.disconnect()


class TransportListener(ABC):
    """Abstract interface for link listeners accepting inbound connections."""

    def __init__(
        self, host: HostAddress, port: PortNumber, config: TransportConfig
    ) -> None:
        self.host = host
        self.port = port
        self.config = config
        self._listening = False

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def endpoint(self) -> str:
        return f"{self._get_protocol_scheme()}://{self.host}:{self.port}"

    @abstractmethod
    def _get_protocol_scheme(self) -> str:
        pass

    @abstractmethod
    async def start(self) -> None:
        """Start listening.

        Raises:
            TransportError: If the listener fails to start
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Stop listening. Links already accepted stay open."""
        pass

    @abstractmethod
    async def accept(self) -> TransportInterface:
        """Wait for and return the next inbound link.

        Raises:
            TransportError: If the listener is not running
        """
        pass


class TransportProvider(ABC):
    """Builds links and listeners for one driver."""

    def __init__(self, config: TransportConfig | None = None) -> None:
        self.config = config or TransportConfig()

    @abstractmethod
    def create(self, host: HostAddress, port: PortNumber) -> TransportInterface:
        """Create an unconnected outbound link to ``host:port``."""
        pass

    @abstractmethod
    def create_listener(
        self, host: HostAddress, port: PortNumber
    ) -> TransportListener:
        """Create a listener bound to ``host:port``."""
        pass
