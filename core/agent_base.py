"""
Agent Base Module - Foundation of the Agent-Based Architecture

EXPLANATION FOR VIVA:
=====================
Every document operation is carried out by an "agent": a small worker that owns
one area of the domain and is reached ONLY through messages.

- DocumentEditingAgent: create / read / list / update / delete / search
- SharingAgent:         share / unshare / mention
- VersionControlAgent:  history / compare

Key Concepts:
- AgentMessage: the envelope (type, sender, recipient, payload, correlation)
- MessageType: the closed set of operations the system understands
- Agent: abstract base class with the inbox loop every agent shares

How errors travel:
A handler signals a business failure by RAISING a DocumentError (NotFound,
Forbidden, ...). The loop below catches it and turns it into an ERROR response
carrying {"success": False, "error", "error_code"}. The HTTP layer maps the
error_code to a status. Anything else that escapes a handler is logged and
answered with a generic failure, so one bad message never kills the agent.
"""

import asyncio
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import logging

from .errors import DocumentError

logger = logging.getLogger(__name__)


class MessageType(Enum):
    """
    All operations agents can be asked to perform.

    EXPLANATION FOR VIVA:
    ====================
    One value per HTTP operation, plus the two reply types. The broker routes a
    request to whichever agent declared the type in get_capabilities().
    """

    # Document Operations
    DOC_CREATE = "doc_create"
    DOC_READ = "doc_read"
    DOC_LIST = "doc_list"
    DOC_UPDATE = "doc_update"
    DOC_DELETE = "doc_delete"
    DOC_SEARCH = "doc_search"

    # Sharing Operations
    DOC_SHARE = "doc_share"
    DOC_UNSHARE = "doc_unshare"
    DOC_MENTION = "doc_mention"

    # Version Control Operations
    VERSION_GET_HISTORY = "version_get_history"
    VERSION_COMPARE = "version_compare"

    # Replies
    RESPONSE = "response"
    ERROR = "error"


@dataclass
class AgentMessage:
    """
    Envelope passed between the API layer and the agents.

    EXPLANATION FOR VIVA:
    ====================
    - id: unique per message, used as the correlation key
    - type: which operation (MessageType)
    - sender / recipient: agent ids ("api" for HTTP requests)
    - payload: operation arguments; always includes the caller under "principal"
    - correlation_id: on a response, the id of the request it answers
    """

    type: MessageType
    sender: str
    recipient: str
    payload: Dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    correlation_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "sender": self.sender,
            "recipient": self.recipient,
            "payload": self.payload,
            "correlation_id": self.correlation_id,
            "timestamp": self.timestamp.isoformat(),
        }

    def create_response(self, payload: Dict[str, Any], success: bool = True) -> 'AgentMessage':
        """
        Build the reply to this message.

        Sender and recipient are swapped and correlation_id points back at
        this message, which is how MessageBroker.request() finds its waiter.
        """
        return AgentMessage(
            type=MessageType.RESPONSE if success else MessageType.ERROR,
            sender=self.recipient,
            recipient=self.sender,
            payload=payload,
            correlation_id=self.id,
        )


class Agent(ABC):
    """
    Abstract Base Class for all Agents in the system.

    EXPLANATION FOR VIVA:
    ====================
    Template Method Pattern: this class owns the lifecycle (start/stop) and the
    inbox loop; subclasses only register handlers and declare capabilities.

    Handlers are `async def handler(message) -> AgentMessage`. They return a
    success response or raise a DocumentError.
    """

    def __init__(self, agent_id: str, name: str):
        self.agent_id = agent_id
        self.name = name
        self._message_queue: asyncio.Queue = asyncio.Queue()
        self._handlers: Dict[MessageType, Callable] = {}
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._message_broker = None  # injected by MessageBroker.register_agent

        logger.info(f"Agent initialized: {self.name} ({self.agent_id})")

    def register_handler(self, message_type: MessageType, handler: Callable):
        self._handlers[message_type] = handler
        logger.debug(f"Handler registered: {message_type.value} -> {handler.__name__}")

    async def receive_message(self, message: AgentMessage):
        """Queue a message; it is handled in arrival order by _process_messages."""
        await self._message_queue.put(message)
        logger.debug(f"{self.name} received message: {message.type.value}")

    async def send_message(self, message: AgentMessage):
        if self._message_broker:
            await self._message_broker.route_message(message)
        else:
            logger.error(f"{self.name}: No message broker configured!")

    async def handle(self, message: AgentMessage) -> Optional[AgentMessage]:
        """
        Run the handler for one message and always produce a reply.

        EXPLANATION FOR VIVA:
        ====================
        - DocumentError  -> ERROR response with the error's payload
        - other Exception -> logged, ERROR response without internals
        - no handler      -> ERROR response (caller would otherwise time out)
        """
        handler = self._handlers.get(message.type)
        if handler is None:
            logger.warning(f"{self.name}: No handler for {message.type.value}")
            return message.create_response(
                {"success": False, "error": f"Unsupported operation: {message.type.value}"},
                success=False,
            )

        try:
            return await handler(message)
        except DocumentError as e:
            logger.info(f"{self.name}: {message.type.value} rejected ({e.code.value}): {e}")
            return message.create_response(e.to_payload(), success=False)
        except Exception as e:
            logger.exception(f"Handler error in {self.name}: {e}")
            return message.create_response(
                {"success": False, "error": "Internal server error"},
                success=False,
            )

    async def _process_messages(self):
        """
        Inbox loop: wait, dispatch, reply.

        The 1 second wait lets the loop notice stop() without a message.
        """
        while self._running:
            try:
                try:
                    message = await asyncio.wait_for(self._message_queue.get(), timeout=1.0)
                except asyncio.TimeoutError:
                    continue

                result = await self.handle(message)
                if isinstance(result, AgentMessage):
                    await self.send_message(result)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Message processing error in {self.name}: {e}")

    async def start(self):
        if not self._running:
            self._running = True
            self._task = asyncio.create_task(self._process_messages())
            await self.on_start()
            logger.info(f"Agent started: {self.name}")

    async def stop(self):
        if self._running:
            self._running = False
            if self._task:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
            await self.on_stop()
            logger.info(f"Agent stopped: {self.name}")

    @abstractmethod
    async def on_start(self):
        """Called when agent starts - subclasses implement initialization."""

    @abstractmethod
    async def on_stop(self):
        """Called when agent stops - subclasses implement cleanup."""

    @abstractmethod
    def get_capabilities(self) -> List[MessageType]:
        """Return list of message types this agent can handle."""
