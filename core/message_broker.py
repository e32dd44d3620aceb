"""
Message Broker Module - Central Communication Hub

EXPLANATION FOR VIVA:
=====================
The HTTP routes never call an agent directly. They build an AgentMessage and
hand it to the broker:

    response = await broker.request(message, timeout=BROKER_REQUEST_TIMEOUT)

The broker
1. delivers the request to the agent that declared its MessageType,
2. parks a Future under the request id,
3. resolves that Future when a RESPONSE/ERROR with a matching
   correlation_id comes back.

A request nobody answers in time resolves to None, which the API reports as
a server error.
"""

import asyncio
import os
from typing import Dict, List, Optional, Any
from datetime import datetime
import logging

from .agent_base import Agent, AgentMessage, MessageType

logger = logging.getLogger(__name__)

BROKER_REQUEST_TIMEOUT = float(os.getenv("BROKER_REQUEST_TIMEOUT", "30"))

# Bounded so a long-running server does not grow without limit
MESSAGE_LOG_LIMIT = 1000


class MessageBroker:
    """
    Central message routing and delivery system (Singleton).

    EXPLANATION FOR VIVA:
    ====================
    Responsibilities:
    1. Agent registry and capability table (MessageType -> agent ids)
    2. Routing: responses to waiters, direct ids, then by capability
    3. Request-Response on top of fire-and-forget delivery
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._agents: Dict[str, Agent] = {}
        self._pending_requests: Dict[str, asyncio.Future] = {}
        self._message_log: List[Dict] = []
        self._subscribers: Dict[MessageType, List[str]] = {}
        self._running = False
        self._initialized = True

        logger.info("MessageBroker initialized")

    @classmethod
    def reset(cls):
        """Forget the singleton (used between test runs and app restarts)."""
        cls._instance = None

    def register_agent(self, agent: Agent):
        self._agents[agent.agent_id] = agent
        agent._message_broker = self

        for capability in agent.get_capabilities():
            subscribers = self._subscribers.setdefault(capability, [])
            if agent.agent_id not in subscribers:
                subscribers.append(agent.agent_id)

        logger.info(f"Agent registered: {agent.name} ({agent.agent_id})")
        logger.debug(f"Capabilities: {[c.value for c in agent.get_capabilities()]}")

    def unregister_agent(self, agent_id: str):
        agent = self._agents.pop(agent_id, None)
        if agent is None:
            return
        for capability in agent.get_capabilities():
            if capability in self._subscribers:
                self._subscribers[capability] = [
                    a for a in self._subscribers[capability] if a != agent_id
                ]
        logger.info(f"Agent unregistered: {agent_id}")

    def _log(self, message: AgentMessage):
        self._message_log.append({
            "timestamp": datetime.utcnow().isoformat(),
            "type": message.type.value,
            "sender": message.sender,
            "recipient": message.recipient,
            "correlation_id": message.correlation_id,
        })
        if len(self._message_log) > MESSAGE_LOG_LIMIT:
            del self._message_log[:-MESSAGE_LOG_LIMIT]

    async def route_message(self, message: AgentMessage):
        """
        Deliver a message.

        EXPLANATION FOR VIVA:
        ====================
        Order of checks:
        1. RESPONSE/ERROR with a known correlation_id -> resolve the waiter
        2. recipient is a registered agent id         -> that agent
        3. otherwise                                  -> first agent that
                                                         handles the type
        Payloads are not logged; they carry document content.
        """
        self._log(message)
        logger.debug(f"Routing message: {message.type.value} from {message.sender} to {message.recipient}")

        if message.type in (MessageType.RESPONSE, MessageType.ERROR):
            future = self._pending_requests.pop(message.correlation_id, None)
            if future is not None:
                if not future.done():
                    future.set_result(message)
                return

        if message.recipient in self._agents:
            await self._agents[message.recipient].receive_message(message)
            return

        for target_agent_id in self._subscribers.get(message.type, []):
            if target_agent_id in self._agents:
                await self._agents[target_agent_id].receive_message(message)
                return

        logger.warning(f"No handler found for message: {message.type.value}")

    async def request(
        self,
        message: AgentMessage,
        timeout: float = BROKER_REQUEST_TIMEOUT
    ) -> Optional[AgentMessage]:
        """
        Send a request and wait for its response.

        EXPLANATION FOR VIVA:
        ====================
        1. Create a Future keyed by the message id
        2. Route the message
        3. Await the Future (resolved in route_message) with a timeout
        Returns None on timeout; the pending entry is always cleaned up.
        """
        future = asyncio.get_running_loop().create_future()
        self._pending_requests[message.id] = future

        try:
            await self.route_message(message)
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"Request timeout: {message.type.value} ({message.id})")
            return None
        finally:
            self._pending_requests.pop(message.id, None)

    async def start_all_agents(self):
        self._running = True
        await asyncio.gather(*(agent.start() for agent in self._agents.values()))
        logger.info(f"Started {len(self._agents)} agents")

    async def stop_all_agents(self):
        self._running = False
        await asyncio.gather(*(agent.stop() for agent in self._agents.values()))
        logger.info("All agents stopped")

    def get_stats(self) -> Dict[str, Any]:
        """Broker statistics for the /health endpoint."""
        return {
            "total_agents": len(self._agents),
            "agents": list(self._agents.keys()),
            "pending_requests": len(self._pending_requests),
            "total_messages_processed": len(self._message_log),
            "subscribers": {
                msg_type.value: len(agents)
                for msg_type, agents in self._subscribers.items()
            }
        }
