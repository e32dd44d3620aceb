# Core Agent Framework Module
# Agent base classes, message routing, domain events and the error taxonomy

from .agent_base import Agent, AgentMessage, MessageType
from .message_broker import MessageBroker
from .event_bus import Event, EventBus, EventType
from .errors import DocumentError, ErrorCode

__all__ = [
    'Agent', 'AgentMessage', 'MessageType', 'MessageBroker',
    'Event', 'EventBus', 'EventType', 'DocumentError', 'ErrorCode'
]
