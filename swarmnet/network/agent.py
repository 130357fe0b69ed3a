"""
Agent wrapper binding a logical swarm agent to one P2P transport.

The wrapper translates domain intents (capability announcement, collaboration
requests, task delegation) into transport messages and turns inbound messages
back into local state: cached peer profiles, collaboration records and
delegation outcomes. Local task execution is delegated to an injected
executor so the AI back-end stays outside this package.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias

import ulid
from loguru import logger

from swarmnet.config import SwarmNetSettings
from swarmnet.core.connection_events import ConnectionEvent, ConnectionEventBus
from swarmnet.core.model import NodeStatus, P2PMessage, now_ms
from swarmnet.core.network_events import (
    EventPublisher,
    NetworkEventType,
    publish_event,
)
from swarmnet.core.transport.interfaces import TransportProvider
from swarmnet.datastructures.type_aliases import (
    CollaborationId,
    HostAddress,
    NodeId,
    PortNumber,
    SkillName,
    TaskId,
    Timestamp,
)

from .transport import (
    DISCOVERY_REQUEST_MESSAGE,
    HEARTBEAT_MESSAGE,
    P2PTransport,
    TransportStats,
)

COLLABORATION_REQUEST = "collaboration_request"
COLLABORATION_RESPONSE = "collaboration_response"
TASK_DELEGATION = "task_delegation"
TASK_COMPLETED = "task_completed"
TASK_FAILED = "task_failed"
TASK_DECLINED = "task_declined"
CAPABILITY_ANNOUNCEMENT = "capability_announcement"
DISCOVERY_RESPONSE = "discovery_response"

# Minutes per unit of complexity when estimating a collaboration
COLLABORATION_BASE_MINUTES = 30


class CollaborationRequestType(Enum):
    HELP = "help"
    REVIEW = "review"
    DELEGATION = "delegation"
    CONSULTATION = "consultation"


class CollaborationStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class DelegationStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    DECLINED = "declined"


class TaskResultKind(Enum):
    LOCAL = "local"
    DELEGATION = "delegation"


@dataclass(slots=True)
class AgentCapabilities:
    """What an agent can do, as advertised to its peers."""

    can_coordinate: bool = False
    can_execute_code: bool = False
    can_analyze_requirements: bool = False
    can_review: bool = False
    can_optimize: bool = False
    can_test: bool = False
    can_document: bool = False
    can_deploy: bool = False
    specialized_skills: list[SkillName] = field(default_factory=list)
    domains: list[str] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)
    frameworks: list[str] = field(default_factory=list)
    tools: list[str] = field(default_factory=list)
    max_complexity: int = 5
    parallel_tasks: int = 1
    collaboration_style: str = "adaptive"

    def announcement(self) -> dict[str, Any]:
        return {
            "capabilities": list(self.specialized_skills),
            "domains": list(self.domains),
            "languages": list(self.languages),
            "frameworks": list(self.frameworks),
            "maxComplexity": self.max_complexity,
            "parallelTasks": self.parallel_tasks,
            "collaborationStyle": self.collaboration_style,
        }


@dataclass(slots=True)
class AgentTask:
    id: TaskId
    title: str
    description: str
    priority: str = "medium"
    complexity: int = 1
    requirements: list[str] = field(default_factory=list)
    constraints: list[str] = field(default_factory=list)
    deadline: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_delegation(self) -> dict[str, Any]:
        return {
            "taskId": self.id,
            "taskTitle": self.title,
            "taskDescription": self.description,
            "priority": self.priority,
            "complexity": self.complexity,
            "requirements": list(self.requirements),
            "constraints": list(self.constraints),
            "deadline": self.deadline,
            "timestamp": now_ms(),
        }

    @classmethod
    def from_delegation(cls, data: dict[str, Any], delegator: NodeId) -> AgentTask:
        return cls(
            id=data["taskId"],
            title=data.get("taskTitle", ""),
            description=data.get("taskDescription", ""),
            priority=data.get("priority", "medium"),
            complexity=int(data.get("complexity", 1)),
            requirements=list(data.get("requirements") or []),
            constraints=list(data.get("constraints") or []),
            deadline=data.get("deadline"),
            metadata={"delegated": True, "delegator": delegator},
        )


@dataclass(slots=True)
class PeerProfile:
    """Cached view of what a peer told us about itself."""

    peer_id: NodeId
    address: HostAddress = ""
    port: PortNumber = 0
    connected: bool = False
    capabilities: list[SkillName] = field(default_factory=list)
    domains: list[str] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)
    frameworks: list[str] = field(default_factory=list)
    max_complexity: int | None = None
    parallel_tasks: int | None = None
    collaboration_style: str | None = None
    status: NodeStatus = NodeStatus.ONLINE
    last_seen: Timestamp = field(default_factory=time.time)

    def apply(self, data: dict[str, Any]) -> None:
        """Merge an announcement or discovery response into this profile."""
        self.capabilities = list(data.get("capabilities", self.capabilities))
        self.domains = list(data.get("domains", self.domains))
        self.languages = list(data.get("languages", self.languages))
        self.frameworks = list(data.get("frameworks", self.frameworks))
        if "maxComplexity" in data:
            self.max_complexity = int(data["maxComplexity"])
        if "parallelTasks" in data:
            self.parallel_tasks = int(data["parallelTasks"])
        if "collaborationStyle" in data:
            self.collaboration_style = data["collaborationStyle"]
        self.last_seen = time.time()


@dataclass(slots=True)
class CollaborationResponse:
    agent: NodeId
    can_help: bool
    response: str
    estimated_minutes: int = 0
    timestamp: Timestamp = field(default_factory=time.time)


@dataclass(slots=True)
class CollaborationRecord:
    collaboration_id: CollaborationId
    requesting_agent: NodeId
    target_agent: NodeId
    request_type: CollaborationRequestType
    context: dict[str, Any]
    status: CollaborationStatus = CollaborationStatus.PENDING
    responses: list[CollaborationResponse] = field(default_factory=list)
    timestamp: Timestamp = field(default_factory=time.time)


@dataclass(slots=True)
class DelegationRecord:
    task_id: TaskId
    peer_id: NodeId
    status: DelegationStatus = DelegationStatus.PENDING
    result: Any = None
    reason: str | None = None
    updated_at: Timestamp = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class TaskResult:
    agent_id: NodeId
    task_id: TaskId
    kind: TaskResultKind
    content: Any
    delegated_to: NodeId | None = None


TaskExecutor: TypeAlias = Callable[[AgentTask], Awaitable[Any]]


async def acknowledge_task(task: AgentTask) -> str:
    """Default executor: accept the task without doing any work."""
    return f"Task {task.id} processed"


class P2PAgent:
    """A swarm agent speaking over its own P2P transport."""

    def __init__(
        self,
        agent_id: NodeId,
        role: str,
        capabilities: AgentCapabilities,
        provider: TransportProvider,
        *,
        address: HostAddress = "127.0.0.1",
        port: PortNumber,
        settings: SwarmNetSettings | None = None,
        publisher: EventPublisher | None = None,
        executor: TaskExecutor | None = None,
    ) -> None:
        self.id = agent_id
        self.role = role
        self.capabilities = capabilities
        self.publisher = publisher
        self._executor = executor or acknowledge_task
        self._active_tasks = 0
        self._announced = False
        self.transport = P2PTransport(
            agent_id,
            provider,
            address=address,
            port=port,
            capabilities=capabilities.specialized_skills,
            settings=settings,
        )
        self.transport.events.subscribe(self)

        self._peers: dict[NodeId, PeerProfile] = {}
        self.collaborations: dict[CollaborationId, CollaborationRecord] = {}
        self.active_collaborations: dict[CollaborationId, CollaborationRecord] = {}
        self.delegations: dict[TaskId, DelegationRecord] = {}

        self._setup_handlers()

    @property
    def address(self) -> HostAddress:
        return self.transport.address

    @property
    def port(self) -> PortNumber:
        return self.transport.port

    @property
    def events(self) -> ConnectionEventBus:
        return self.transport.events

    @property
    def is_running(self) -> bool:
        return self.transport.is_running

    # Lifecycle

    async def initialize(self, *, announce: bool = True) -> None:
        """Start the transport and announce the agent on its first start.

        The topology manager passes ``announce=False`` because it publishes
        the registration itself, together with the seed peers it connected.
        """
        await self.transport.start()
        if announce and not self._announced:
            self._announced = True
            await publish_event(
                self.publisher,
                NetworkEventType.AGENT_REGISTERED,
                {
                    "agentId": self.id,
                    "role": self.role,
                    "capabilities": list(self.capabilities.specialized_skills),
                    "address": self.address,
                    "port": self.port,
                },
            )
        logger.info("[{}] P2P agent initialized", self.id)

    async def shutdown(self) -> None:
        await self.transport.stop()
        self._peers.clear()
        logger.info("[{}] P2P agent stopped", self.id)

    # Peers

    async def connect_to_peer(
        self, peer_id: NodeId, address: HostAddress, port: PortNumber
    ) -> bool:
        success = await self.transport.connect(peer_id, address, port)
        if success:
            profile = self._peers.setdefault(peer_id, PeerProfile(peer_id=peer_id))
            profile.address = address
            profile.port = port
            profile.connected = True
            await self._announce_capabilities(peer_id)
        return success

    async def disconnect_from_peer(self, peer_id: NodeId) -> None:
        await self.transport.disconnect(peer_id)
        self._peers.pop(peer_id, None)

    async def send_to_peer(self, peer_id: NodeId, msg_type: str, payload: Any) -> bool:
        return await self.transport.send_message(peer_id, msg_type, payload)

    async def broadcast_to_peers(self, msg_type: str, payload: Any) -> int:
        return await self.transport.broadcast(msg_type, payload)

    def get_connected_peers(self) -> list[NodeId]:
        return self.transport.connected_peers()

    def peer_profile(self, peer_id: NodeId) -> PeerProfile | None:
        return self._peers.get(peer_id)

    def peers(self) -> list[PeerProfile]:
        return list(self._peers.values())

    def network_stats(self) -> TransportStats:
        return self.transport.network_stats()

    async def _announce_capabilities(self, peer_id: NodeId) -> None:
        await self.send_to_peer(
            peer_id, CAPABILITY_ANNOUNCEMENT, self.capabilities.announcement()
        )

    # Connection events

    def on_connection_established(self, event: ConnectionEvent) -> None:
        profile = self._peers.get(event.peer_id)
        if profile is not None:
            profile.connected = True

    def on_connection_lost(self, event: ConnectionEvent) -> None:
        if self._peers.pop(event.peer_id, None) is not None:
            logger.debug("[{}] Dropped profile of {}", self.id, event.peer_id)

    def on_connection_failed(self, event: ConnectionEvent) -> None:
        pass

    # Collaboration and delegation

    async def request_collaboration(
        self,
        peer_id: NodeId,
        request_type: CollaborationRequestType | str,
        context: dict[str, Any],
    ) -> bool:
        request_type = CollaborationRequestType(request_type)
        collaboration_id = f"collab_{ulid.new()}"
        self.collaborations[collaboration_id] = CollaborationRecord(
            collaboration_id=collaboration_id,
            requesting_agent=self.id,
            target_agent=peer_id,
            request_type=request_type,
            context=context,
        )

        sent = await self.send_to_peer(
            peer_id,
            COLLABORATION_REQUEST,
            {
                "collaborationId": collaboration_id,
                "requestingAgent": self.id,
                "targetAgent": peer_id,
                "requestType": request_type.value,
                "context": context,
                "timestamp": now_ms(),
            },
        )
        if sent:
            logger.info(
                "[{}] Requested {} collaboration from {}",
                self.id,
                request_type.value,
                peer_id,
            )
        return sent

    async def delegate_task(self, peer_id: NodeId, task: AgentTask) -> bool:
        sent = await self.send_to_peer(peer_id, TASK_DELEGATION, task.to_delegation())
        if sent:
            self.delegations[task.id] = DelegationRecord(task_id=task.id, peer_id=peer_id)
        return sent

    async def process_task(self, task: AgentTask) -> TaskResult:
        """Run a task locally, or forward it when it is beyond our ceiling."""
        if task.complexity > self.capabilities.max_complexity:
            for peer_id in self.find_capable_peers(task):
                if await self.delegate_task(peer_id, task):
                    logger.info(
                        "[{}] Task {} delegated to {}", self.id, task.id, peer_id
                    )
                    return TaskResult(
                        agent_id=self.id,
                        task_id=task.id,
                        kind=TaskResultKind.DELEGATION,
                        content=f"Task delegated to {peer_id}",
                        delegated_to=peer_id,
                    )
            logger.warning(
                "[{}] No capable peer for task {} (complexity {} > {}), executing locally",
                self.id,
                task.id,
                task.complexity,
                self.capabilities.max_complexity,
            )

        content = await self._execute(task)
        return TaskResult(
            agent_id=self.id,
            task_id=task.id,
            kind=TaskResultKind.LOCAL,
            content=content,
        )

    async def _execute(self, task: AgentTask) -> Any:
        # Advertised as busy while running at the parallel task ceiling
        self._active_tasks += 1
        if self._active_tasks >= self.capabilities.parallel_tasks:
            self.transport.status = NodeStatus.BUSY
        try:
            return await self._executor(task)
        finally:
            self._active_tasks -= 1
            if self._active_tasks < self.capabilities.parallel_tasks:
                self.transport.status = NodeStatus.ONLINE

    def find_capable_peers(self, task: AgentTask) -> list[NodeId]:
        """Connected peers whose advertised ceiling covers the task."""
        connected = set(self.get_connected_peers())
        return [
            profile.peer_id
            for profile in self._peers.values()
            if profile.peer_id in connected
            and profile.max_complexity is not None
            and profile.max_complexity >= task.complexity
        ]

    def can_handle_task(self, task: AgentTask) -> bool:
        if task.complexity > self.capabilities.max_complexity:
            return False
        title = task.title.lower()
        description = task.description.lower()
        return any(
            skill.lower() in title or skill.lower() in description
            for skill in self.capabilities.specialized_skills
        )

    def evaluate_collaboration_request(
        self, request_type: CollaborationRequestType, context: dict[str, Any]
    ) -> bool:
        match request_type:
            case CollaborationRequestType.HELP:
                required = set(context.get("requiredSkills") or ())
                return any(
                    skill in required for skill in self.capabilities.specialized_skills
                )
            case CollaborationRequestType.REVIEW:
                return self.capabilities.can_review
            case CollaborationRequestType.DELEGATION:
                return self.capabilities.can_execute_code
            case CollaborationRequestType.CONSULTATION:
                return self.capabilities.can_analyze_requirements
        return False

    @staticmethod
    def estimate_collaboration_minutes(context: dict[str, Any]) -> int:
        return COLLABORATION_BASE_MINUTES * int(context.get("complexity") or 1)

    # Inbound handlers

    def _setup_handlers(self) -> None:
        handlers = {
            COLLABORATION_REQUEST: self._handle_collaboration_request,
            COLLABORATION_RESPONSE: self._handle_collaboration_response,
            TASK_DELEGATION: self._handle_task_delegation,
            TASK_COMPLETED: self._handle_task_outcome,
            TASK_FAILED: self._handle_task_outcome,
            TASK_DECLINED: self._handle_task_outcome,
            CAPABILITY_ANNOUNCEMENT: self._handle_capability_announcement,
            DISCOVERY_RESPONSE: self._handle_capability_announcement,
            HEARTBEAT_MESSAGE: self._handle_heartbeat,
            DISCOVERY_REQUEST_MESSAGE: self._handle_discovery_request,
        }
        for msg_type, handler in handlers.items():
            self.transport.on_message(msg_type, handler)

    async def _handle_collaboration_request(self, message: P2PMessage) -> None:
        data = message.data
        requesting_agent = data.get("requestingAgent", message.sender)
        context = data.get("context") or {}
        try:
            request_type = CollaborationRequestType(data.get("requestType"))
        except ValueError:
            can_help = False
            request_type = None
        else:
            can_help = self.evaluate_collaboration_request(request_type, context)

        logger.info(
            "[{}] Collaboration request from {}: {} -> {}",
            self.id,
            requesting_agent,
            data.get("requestType"),
            "accepted" if can_help else "declined",
        )

        await self.send_to_peer(
            requesting_agent,
            COLLABORATION_RESPONSE,
            {
                "collaborationId": data.get("collaborationId"),
                "requestingAgent": requesting_agent,
                "respondingAgent": self.id,
                "canHelp": can_help,
                "response": "accepted" if can_help else "declined",
                "capabilities": list(self.capabilities.specialized_skills),
                "estimatedTime": (
                    self.estimate_collaboration_minutes(context) if can_help else 0
                ),
                "timestamp": now_ms(),
            },
        )

        if can_help and request_type is not None:
            collaboration_id = data.get("collaborationId")
            self.active_collaborations[collaboration_id] = CollaborationRecord(
                collaboration_id=collaboration_id,
                requesting_agent=requesting_agent,
                target_agent=self.id,
                request_type=request_type,
                context=context,
                status=CollaborationStatus.ACCEPTED,
            )

    async def _handle_collaboration_response(self, message: P2PMessage) -> None:
        data = message.data
        collaboration = self.collaborations.get(data.get("collaborationId"))
        if collaboration is None:
            logger.debug(
                "[{}] Response for unknown collaboration {}",
                self.id,
                data.get("collaborationId"),
            )
            return

        response = data.get("response", "declined")
        collaboration.responses.append(
            CollaborationResponse(
                agent=data.get("respondingAgent", message.sender),
                can_help=bool(data.get("canHelp")),
                response=response,
                estimated_minutes=int(data.get("estimatedTime") or 0),
            )
        )
        if response == "accepted":
            collaboration.status = CollaborationStatus.ACCEPTED
            logger.info(
                "[{}] Collaboration {} accepted by {}",
                self.id,
                collaboration.collaboration_id,
                message.sender,
            )

    async def _handle_task_delegation(self, message: P2PMessage) -> None:
        task = AgentTask.from_delegation(message.data, message.sender)
        logger.info("[{}] Task delegation received: {}", self.id, task.title)

        if not self.can_handle_task(task):
            await self.send_to_peer(
                message.sender,
                TASK_DECLINED,
                {
                    "taskId": task.id,
                    "reason": "Cannot handle this type of task",
                    "timestamp": now_ms(),
                },
            )
            return

        try:
            result = await self._execute(task)
        except Exception as e:
            logger.warning("[{}] Delegated task {} failed: {}", self.id, task.id, e)
            await self.send_to_peer(
                message.sender,
                TASK_FAILED,
                {"taskId": task.id, "error": str(e), "timestamp": now_ms()},
            )
            return

        await self.send_to_peer(
            message.sender,
            TASK_COMPLETED,
            {"taskId": task.id, "result": result, "timestamp": now_ms()},
        )

    async def _handle_task_outcome(self, message: P2PMessage) -> None:
        data = message.data
        record = self.delegations.get(data.get("taskId"))
        if record is None:
            return

        match message.body_type:
            case "task_completed":
                record.status = DelegationStatus.COMPLETED
                record.result = data.get("result")
            case "task_failed":
                record.status = DelegationStatus.FAILED
                record.reason = data.get("error")
            case "task_declined":
                record.status = DelegationStatus.DECLINED
                record.reason = data.get("reason")
        record.updated_at = time.time()
        logger.info(
            "[{}] Delegated task {} {} by {}",
            self.id,
            record.task_id,
            record.status.value,
            message.sender,
        )

    async def _handle_capability_announcement(self, message: P2PMessage) -> None:
        data = message.data
        peer_id = data.get("nodeId", message.sender)
        profile = self._peers.setdefault(peer_id, PeerProfile(peer_id=peer_id))
        profile.apply(data)
        profile.connected = peer_id in self.transport.connected_peers()
        logger.debug(
            "[{}] Capabilities from {}: {}",
            self.id,
            peer_id,
            ", ".join(profile.capabilities),
        )

    async def _handle_heartbeat(self, message: P2PMessage) -> None:
        data = message.data
        profile = self._peers.get(data.get("nodeId", message.sender))
        if profile is None:
            return
        try:
            profile.status = NodeStatus(data.get("status", "online"))
        except ValueError:
            profile.status = NodeStatus.ONLINE
        profile.last_seen = data.get("timestamp", message.timestamp) / 1000

    async def _handle_discovery_request(self, message: P2PMessage) -> None:
        data = message.data
        reply_to = data.get("nodeId", message.sender)
        profile = self._peers.setdefault(reply_to, PeerProfile(peer_id=reply_to))
        profile.address = data.get("address", profile.address)
        profile.port = data.get("port", profile.port)
        profile.connected = True

        await self.send_to_peer(
            reply_to,
            DISCOVERY_RESPONSE,
            {
                "nodeId": self.id,
                "status": self.transport.status.value,
                "timestamp": now_ms(),
                **self.capabilities.announcement(),
            },
        )
