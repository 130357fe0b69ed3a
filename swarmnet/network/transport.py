"""
Per-node P2P transport for swarmnet.

A P2PTransport gives one agent node an addressable endpoint and a
fire-and-forget messaging primitive to its peers:

- Direct messages and broadcasts over whichever link driver was injected
- One async handler per application message type
- Heartbeat (liveness) and discovery (capability) broadcasts on timers
- A known-nodes registry fed by inbound heartbeat/discovery envelopes
- Round-trip latency sampling on every heartbeat tick

Delivery is at-most-once, unordered, with no acknowledgement and no retry.
Failures are reported as booleans and counts, never raised to callers.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from loguru import logger

from swarmnet.config import SwarmNetSettings
from swarmnet.core.connection_events import ConnectionEvent, ConnectionEventBus
from swarmnet.core.model import (
    BROADCAST_RECIPIENT,
    ConnectionStatus,
    MessageBody,
    MessageType,
    NodeStatus,
    P2PMessage,
    now_ms,
)
from swarmnet.core.transport.defaults import LATENCY_EMA_ALPHA
from swarmnet.core.transport.interfaces import (
    TransportError,
    TransportInterface,
    TransportListener,
    TransportProvider,
)
from swarmnet.datastructures.type_aliases import (
    HostAddress,
    MessageTypeName,
    NetworkLatencyMs,
    NodeId,
    PortNumber,
    Timestamp,
)
from swarmnet.serialization import MessageCodec

from .node import NodeRecord

MessageHandler: TypeAlias = Callable[[P2PMessage], Awaitable[None]]
ActivityCallback: TypeAlias = Callable[["PeerActivity"], None]

HEARTBEAT_MESSAGE = "heartbeat"
DISCOVERY_REQUEST_MESSAGE = "discovery_request"


@dataclass(slots=True)
class PeerConnection:
    """Local view of one link to a peer."""

    peer_id: NodeId
    link: TransportInterface
    status: ConnectionStatus = ConnectionStatus.CONNECTING
    inbound: bool = False
    address: HostAddress = ""
    port: PortNumber = 0
    established_at: Timestamp = field(default_factory=time.time)
    last_activity: Timestamp = field(default_factory=time.time)
    latency_ms: NetworkLatencyMs | None = None
    latency_samples: int = 0
    reader_task: asyncio.Task[None] | None = None

    @property
    def is_connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    def record_latency(self, latency_ms: NetworkLatencyMs) -> None:
        """Fold a new round-trip sample into the moving average."""
        if self.latency_ms is None:
            self.latency_ms = latency_ms
        else:
            self.latency_ms = (
                LATENCY_EMA_ALPHA * latency_ms
                + (1 - LATENCY_EMA_ALPHA) * self.latency_ms
            )
        self.latency_samples += 1


@dataclass(frozen=True, slots=True)
class PeerActivity:
    """One inbound message from a live peer.

    ``sighting`` carries the sender's self-description when the message was a
    heartbeat or discovery envelope.
    """

    local_node_id: NodeId
    peer_id: NodeId
    at: Timestamp
    sighting: NodeRecord | None = None


@dataclass(frozen=True, slots=True)
class TransportStats:
    node_id: NodeId
    connected_peers: int
    known_nodes: int
    messages_sent: int
    messages_received: int
    messages_failed: int
    connection_attempts: int
    connection_failures: int
    handler_errors: int
    expired_received: int
    is_running: bool


class P2PTransport:
    """Messaging endpoint for a single node."""

    def __init__(
        self,
        node_id: NodeId,
        provider: TransportProvider,
        *,
        address: HostAddress = "127.0.0.1",
        port: PortNumber,
        capabilities: Iterable[str] = (),
        settings: SwarmNetSettings | None = None,
        events: ConnectionEventBus | None = None,
        codec: MessageCodec | None = None,
    ) -> None:
        self.node_id = node_id
        self.provider = provider
        self.address = address
        self.port = port
        self.capabilities = frozenset(capabilities)
        self.settings = settings or SwarmNetSettings()
        self.events = events or ConnectionEventBus()
        self._codec = codec or MessageCodec()
        # Advertised in heartbeats
        self.status = NodeStatus.ONLINE
        self.activity_callbacks: list[ActivityCallback] = []

        self._connections: dict[NodeId, PeerConnection] = {}
        # Accepted links from peers we already had a link to (both sides dialled)
        self._redundant_links: dict[TransportInterface, PeerConnection] = {}
        self._known_nodes: dict[NodeId, NodeRecord] = {}
        self._handlers: dict[MessageTypeName, MessageHandler] = {}
        self._listener: TransportListener | None = None
        self._pending_links: dict[TransportInterface, asyncio.Task[None]] = {}
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._running = False

        self._messages_sent = 0
        self._messages_received = 0
        self._messages_failed = 0
        self._connection_attempts = 0
        self._connection_failures = 0
        self._handler_errors = 0
        self._expired_received = 0

    @property
    def is_running(self) -> bool:
        return self._running

    # Lifecycle

    async def start(self) -> None:
        """Open the listener and launch heartbeat, discovery and accept tasks.

        Raises:
            TransportError: If the listener cannot be started
        """
        if self._running:
            logger.info("[{}] P2P transport already running", self.node_id)
            return

        listener = self.provider.create_listener(self.address, self.port)
        await listener.start()
        self._listener = listener
        self._running = True

        for loop in (self._heartbeat_loop, self._discovery_loop, self._accept_loop):
            task = asyncio.create_task(loop())
            self._background_tasks.add(task)

        logger.info(
            "[{}] P2P transport started on {}", self.node_id, listener.endpoint
        )

    async def stop(self) -> None:
        """Cancel periodic tasks and close every connection."""
        if not self._running:
            return
        self._running = False

        current = asyncio.current_task()
        background = [task for task in self._background_tasks if task is not current]
        for task in background:
            task.cancel()
        if background:
            await asyncio.gather(*background, return_exceptions=True)
        self._background_tasks.clear()

        readers = [
            conn.reader_task
            for conn in (*self._connections.values(), *self._redundant_links.values())
            if conn.reader_task is not None and conn.reader_task is not current
        ]
        for peer_id in list(self._connections):
            await self.disconnect(peer_id)
        for link in list(self._redundant_links):
            self._redundant_links.pop(link, None)
            await self._close_link(link)
        for task in readers:
            task.cancel()
        if readers:
            await asyncio.gather(*readers, return_exceptions=True)

        pending = list(self._pending_links.items())
        self._pending_links.clear()
        for link, task in pending:
            await self._close_link(link)
            if task is not current:
                task.cancel()
        await asyncio.gather(
            *(task for _, task in pending if task is not current),
            return_exceptions=True,
        )

        self._known_nodes.clear()

        if self._listener is not None:
            await self._listener.stop()
            self._listener = None

        logger.info("[{}] P2P transport stopped", self.node_id)

    # Connections

    async def connect(
        self, peer_id: NodeId, address: HostAddress, port: PortNumber
    ) -> bool:
        """Open a link to a peer. Returns False instead of raising on failure."""
        if peer_id == self.node_id:
            logger.warning("[{}] Refusing to connect to self", self.node_id)
            return False

        existing = self._connections.get(peer_id)
        if existing is not None and existing.is_connected:
            logger.debug("[{}] Already connected to node: {}", self.node_id, peer_id)
            return True

        self._connection_attempts += 1
        if not self._running:
            return self._connection_failed(peer_id, "transport not running")

        try:
            link = self.provider.create(address, port)
        except Exception as e:
            return self._connection_failed(peer_id, str(e))

        connection = PeerConnection(
            peer_id=peer_id, link=link, address=address, port=port
        )
        self._connections[peer_id] = connection

        try:
            await asyncio.wait_for(
                link.connect(), timeout=self.settings.connect_timeout
            )
        except TimeoutError:
            self._discard(connection)
            return self._connection_failed(peer_id, "connection attempt timed out")
        except Exception as e:
            self._discard(connection)
            return self._connection_failed(peer_id, str(e))

        connection.status = ConnectionStatus.CONNECTED
        connection.last_activity = time.time()
        connection.reader_task = asyncio.create_task(
            self._read_loop(link, connection)
        )

        logger.info(
            "[{}] Connected to peer: {} at {}:{}", self.node_id, peer_id, address, port
        )
        self.events.publish(ConnectionEvent.established(peer_id, self.node_id))

        # Introduce ourselves so the acceptor can bind the link to our id
        hello = self._build_message(
            peer_id,
            MessageType.DISCOVERY,
            DISCOVERY_REQUEST_MESSAGE,
            self._discovery_data(),
        )
        await self._deliver(connection, hello)
        return True

    async def disconnect(self, peer_id: NodeId) -> None:
        """Close every link to a peer if present. Idempotent."""
        connection = self._connections.pop(peer_id, None)
        await self._close_redundant(peer_id)
        if connection is None:
            return

        connection.status = ConnectionStatus.DISCONNECTED
        await self._close_link(connection.link)
        self._known_nodes.pop(peer_id, None)

        logger.info("[{}] Disconnected from peer: {}", self.node_id, peer_id)
        self.events.publish(ConnectionEvent.lost(peer_id, self.node_id))

    def _connection_failed(self, peer_id: NodeId, error: str) -> bool:
        self._connection_failures += 1
        logger.warning(
            "[{}] Failed to connect to {}: {}", self.node_id, peer_id, error
        )
        self.events.publish(ConnectionEvent.failed(peer_id, self.node_id, error))
        return False

    def _discard(self, connection: PeerConnection) -> None:
        if self._connections.get(connection.peer_id) is connection:
            del self._connections[connection.peer_id]

    async def _close_link(self, link: TransportInterface) -> None:
        try:
            await link.disconnect()
        except Exception as e:
            logger.warning("[{}] Error closing link {}: {}", self.node_id, link.url, e)

    async def _close_redundant(self, peer_id: NodeId) -> None:
        for link, connection in list(self._redundant_links.items()):
            if connection.peer_id != peer_id:
                continue
            del self._redundant_links[link]
            connection.status = ConnectionStatus.DISCONNECTED
            await self._close_link(link)

    # Activity

    def add_activity_callback(self, callback: ActivityCallback) -> None:
        """Add callback for every message received from a peer."""
        self.activity_callbacks.append(callback)

    def remove_activity_callback(self, callback: ActivityCallback) -> None:
        if callback in self.activity_callbacks:
            self.activity_callbacks.remove(callback)

    def _notify_activity(self, activity: PeerActivity) -> None:
        for callback in list(self.activity_callbacks):
            try:
                callback(activity)
            except Exception as e:
                logger.error("[{}] Error in activity callback: {}", self.node_id, e)

    # Messaging

    def on_message(self, msg_type: MessageTypeName, handler: MessageHandler) -> None:
        """Register the handler for a message type, replacing any earlier one."""
        self._handlers[msg_type] = handler
        logger.debug(
            "[{}] Message handler registered for type: {}", self.node_id, msg_type
        )

    async def send_message(
        self, to: NodeId, msg_type: MessageTypeName, payload: Any
    ) -> bool:
        """Send a direct message. Returns False if there is no live connection."""
        connection = self._connections.get(to)
        if connection is None or not connection.is_connected:
            self._messages_failed += 1
            logger.warning("[{}] No connection to peer: {}", self.node_id, to)
            return False

        message = self._build_message(to, MessageType.DIRECT, msg_type, payload)
        sent = await self._deliver(connection, message)
        if sent:
            logger.debug("[{}] Message sent to {}: {}", self.node_id, to, msg_type)
        return sent

    async def broadcast(
        self,
        msg_type: MessageTypeName,
        payload: Any,
        *,
        envelope: MessageType = MessageType.BROADCAST,
    ) -> int:
        """Send one message body to every connected peer.

        Returns the number of peers the message was actually delivered to.
        """
        message = self._build_message(BROADCAST_RECIPIENT, envelope, msg_type, payload)
        targets = [conn for conn in self._connections.values() if conn.is_connected]
        if not targets:
            return 0

        results = await asyncio.gather(
            *(self._deliver(connection, message) for connection in targets)
        )
        sent_count = sum(1 for delivered in results if delivered)
        logger.debug(
            "[{}] Broadcast sent to {} peers: {}", self.node_id, sent_count, msg_type
        )
        return sent_count

    async def send_heartbeat(self) -> int:
        return await self.broadcast(
            HEARTBEAT_MESSAGE,
            {
                "nodeId": self.node_id,
                "timestamp": now_ms(),
                "status": self.status.value,
            },
            envelope=MessageType.HEARTBEAT,
        )

    async def send_discovery(self) -> int:
        return await self.broadcast(
            DISCOVERY_REQUEST_MESSAGE,
            self._discovery_data(),
            envelope=MessageType.DISCOVERY,
        )

    def _discovery_data(self) -> dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "capabilities": sorted(self.capabilities),
            "address": self.address,
            "port": self.port,
            "timestamp": now_ms(),
        }

    def _build_message(
        self,
        to: NodeId,
        envelope: MessageType,
        msg_type: MessageTypeName,
        payload: Any,
    ) -> P2PMessage:
        return P2PMessage(
            sender=self.node_id,
            recipient=to,
            type=envelope,
            payload=MessageBody(type=msg_type, data=payload),
            ttl=self.settings.message_ttl,
        )

    async def _deliver(self, connection: PeerConnection, message: P2PMessage) -> bool:
        try:
            await connection.link.send(self._codec.encode(message))
        except Exception as e:
            self._messages_failed += 1
            logger.warning(
                "[{}] Failed to send {} to {}: {}",
                self.node_id,
                message.body_type,
                connection.peer_id,
                e,
            )
            return False

        connection.last_activity = time.time()
        self._messages_sent += 1
        return True

    # Inbound

    async def _accept_loop(self) -> None:
        while self._running and self._listener is not None:
            try:
                link = await self._listener.accept()
            except asyncio.CancelledError:
                break
            except TransportError as e:
                logger.debug("[{}] Accept loop ending: {}", self.node_id, e)
                break

            task = asyncio.create_task(self._read_loop(link, None))
            self._pending_links[link] = task

    async def _read_loop(
        self, link: TransportInterface, connection: PeerConnection | None
    ) -> None:
        try:
            while True:
                raw = await link.receive()
                # Frames still buffered on a link we already closed are dropped
                if connection is not None and not connection.is_connected:
                    break
                try:
                    message = self._codec.decode(raw)
                except Exception as e:
                    self._handler_errors += 1
                    logger.warning(
                        "[{}] Dropping undecodable message: {}", self.node_id, e
                    )
                    continue

                if connection is None:
                    connection = self._bind_inbound(link, message.sender)
                await self._handle_incoming(connection, message)
        except TransportError as e:
            logger.debug("[{}] Link {} closed: {}", self.node_id, link.url, e)
        finally:
            self._pending_links.pop(link, None)
            self._redundant_links.pop(link, None)
            if connection is not None:
                await self._on_link_closed(connection)

    def _bind_inbound(self, link: TransportInterface, peer_id: NodeId) -> PeerConnection:
        """Attach an accepted link to the peer id it first spoke with."""
        self._pending_links.pop(link, None)
        connection = PeerConnection(
            peer_id=peer_id,
            link=link,
            status=ConnectionStatus.CONNECTED,
            inbound=True,
            reader_task=asyncio.current_task(),
        )

        existing = self._connections.get(peer_id)
        if existing is not None and existing.is_connected:
            # Both sides dialled. The first link stays authoritative; this one
            # is still read and is closed together with it.
            self._redundant_links[link] = connection
            logger.debug(
                "[{}] Keeping second link from {} as redundant", self.node_id, peer_id
            )
            return connection

        self._connections[peer_id] = connection
        logger.info("[{}] Accepted connection from peer: {}", self.node_id, peer_id)
        self.events.publish(
            ConnectionEvent.established(peer_id, self.node_id, inbound=True)
        )
        return connection

    async def _on_link_closed(self, connection: PeerConnection) -> None:
        if self._connections.get(connection.peer_id) is not connection:
            return
        del self._connections[connection.peer_id]
        connection.status = ConnectionStatus.DISCONNECTED
        # The peer may still be writing on its own link to us
        await self._close_redundant(connection.peer_id)
        self._known_nodes.pop(connection.peer_id, None)
        logger.info("[{}] Peer {} disconnected", self.node_id, connection.peer_id)
        self.events.publish(ConnectionEvent.lost(connection.peer_id, self.node_id))

    async def _handle_incoming(
        self, connection: PeerConnection, message: P2PMessage
    ) -> None:
        connection.last_activity = time.time()
        self._messages_received += 1

        # Never act on our own broadcasts
        if message.sender == self.node_id:
            return

        if message.is_expired():
            self._expired_received += 1
            logger.debug(
                "[{}] Delivering message {} past its TTL", self.node_id, message.id
            )

        sighting: NodeRecord | None = None
        try:
            match message.type:
                case MessageType.DISCOVERY:
                    sighting = self._record_discovery(connection, message)
                case MessageType.HEARTBEAT:
                    sighting = self._record_heartbeat(connection, message)
        except (TypeError, ValueError) as e:
            self._handler_errors += 1
            logger.warning(
                "[{}] Malformed {} from {}: {}",
                self.node_id,
                message.type.value,
                message.sender,
                e,
            )

        self._notify_activity(
            PeerActivity(
                self.node_id, connection.peer_id, connection.last_activity, sighting
            )
        )

        handler = self._handlers.get(message.body_type)
        if handler is None:
            logger.debug(
                "[{}] No handler for message type: {}", self.node_id, message.body_type
            )
            return

        try:
            await handler(message)
        except Exception as e:
            self._handler_errors += 1
            logger.error(
                "[{}] Handler for {} failed: {}", self.node_id, message.body_type, e
            )

    def _record_discovery(
        self, connection: PeerConnection, message: P2PMessage
    ) -> NodeRecord:
        data = message.data if isinstance(message.data, dict) else {}
        node_id = data.get("nodeId", message.sender)
        seen_at = data.get("timestamp", message.timestamp) / 1000
        record = NodeRecord(
            id=node_id,
            address=data.get("address") or connection.address or "unknown",
            port=data.get("port") or connection.port,
            capabilities=frozenset(data.get("capabilities", ())),
            status=NodeStatus.ONLINE,
            last_seen=seen_at,
        )

        existing = self._known_nodes.get(node_id)
        if existing is None or record.last_seen >= existing.last_seen:
            record.metadata = existing.metadata if existing else {}
            self._known_nodes[node_id] = record
            if existing is None:
                logger.info(
                    "[{}] Discovered peer: {} with capabilities: {}",
                    self.node_id,
                    node_id,
                    ", ".join(sorted(record.capabilities)),
                )
        return self._known_nodes[node_id].copy()

    def _record_heartbeat(
        self, connection: PeerConnection, message: P2PMessage
    ) -> NodeRecord:
        data = message.data if isinstance(message.data, dict) else {}
        node_id = data.get("nodeId", message.sender)
        seen_at = data.get("timestamp", message.timestamp) / 1000
        try:
            status = NodeStatus(data.get("status", NodeStatus.ONLINE.value))
        except ValueError:
            status = NodeStatus.ONLINE

        existing = self._known_nodes.get(node_id)
        if existing is None:
            self._known_nodes[node_id] = NodeRecord(
                id=node_id,
                address=connection.address or "unknown",
                port=connection.port,
                status=status,
                last_seen=seen_at,
            )
        else:
            existing.observe(seen_at, status)
        return self._known_nodes[node_id].copy()

    # Periodic tasks

    async def _heartbeat_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.settings.heartbeat_interval)
                await self.send_heartbeat()
                await self.measure_latency()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("[{}] Error in heartbeat loop: {}", self.node_id, e)

    async def _discovery_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.settings.discovery_interval)
                await self.send_discovery()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("[{}] Error in discovery loop: {}", self.node_id, e)

    async def measure_latency(self) -> dict[NodeId, NetworkLatencyMs]:
        """Ping every connected peer and fold the results into per-link averages."""
        samples: dict[NodeId, NetworkLatencyMs] = {}
        for connection in list(self._connections.values()):
            if not connection.is_connected:
                continue
            try:
                rtt = await connection.link.ping()
            except TransportError as e:
                logger.debug(
                    "[{}] Ping to {} failed: {}", self.node_id, connection.peer_id, e
                )
                continue
            connection.record_latency(rtt * 1000.0)
            samples[connection.peer_id] = rtt * 1000.0
        return samples

    # Introspection

    def connected_peers(self) -> list[NodeId]:
        return sorted(
            peer_id for peer_id, conn in self._connections.items() if conn.is_connected
        )

    def get_connection(self, peer_id: NodeId) -> PeerConnection | None:
        return self._connections.get(peer_id)

    def known_nodes(self) -> list[NodeRecord]:
        return [record.copy() for record in self._known_nodes.values()]

    def get_known_node(self, node_id: NodeId) -> NodeRecord | None:
        record = self._known_nodes.get(node_id)
        return record.copy() if record else None

    def latency_samples(self) -> list[NetworkLatencyMs]:
        return [
            conn.latency_ms
            for conn in self._connections.values()
            if conn.is_connected and conn.latency_ms is not None
        ]

    def average_latency_ms(self) -> NetworkLatencyMs | None:
        samples = self.latency_samples()
        if not samples:
            return None
        return sum(samples) / len(samples)

    def network_stats(self) -> TransportStats:
        return TransportStats(
            node_id=self.node_id,
            connected_peers=len(self.connected_peers()),
            known_nodes=len(self._known_nodes),
            messages_sent=self._messages_sent,
            messages_received=self._messages_received,
            messages_failed=self._messages_failed,
            connection_attempts=self._connection_attempts,
            connection_failures=self._connection_failures,
            handler_errors=self._handler_errors,
            expired_received=self._expired_received,
            is_running=self._running,
        )
