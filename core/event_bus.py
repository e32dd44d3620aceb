"""
Event Bus Module - Domain Change Notifications

EXPLANATION FOR VIVA:
=====================
The Message Broker carries REQUESTS to agents. The Event Bus carries FACTS
that already happened: "document X was updated by alice@example.com".

Agents publish an Event after a mutation has been committed, never before, so
a subscriber can trust that what it hears is durable. Typical subscribers:
- the audit logger installed by main.py
- a notification service reacting to USER_MENTIONED (not part of this app)
- tests asserting that a mutation was announced

Publishing never fails the operation that triggered it: a subscriber that
raises is logged and skipped.
"""

import inspect
from typing import Dict, List, Callable, Any, Optional, Set
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import logging

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Committed changes the rest of the system may react to."""

    # Document Events
    DOCUMENT_CREATED = "document_created"
    DOCUMENT_UPDATED = "document_updated"
    DOCUMENT_DELETED = "document_deleted"

    # Collaboration Events
    DOCUMENT_SHARED = "document_shared"
    DOCUMENT_UNSHARED = "document_unshared"
    USER_MENTIONED = "user_mentioned"

    # Version Events
    VERSION_CREATED = "version_created"


@dataclass
class Event:
    """
    Record of one committed change.

    EXPLANATION FOR VIVA:
    ====================
    - event_type: what happened
    - data: small summary (never the full document content)
    - actor: email of the principal who caused it
    - document_id: which document it concerns
    """

    event_type: EventType
    data: Dict[str, Any]
    actor: Optional[str] = None
    document_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type.value,
            "data": self.data,
            "actor": self.actor,
            "document_id": self.document_id,
            "timestamp": self.timestamp.isoformat()
        }


class EventBus:
    """
    In-process Publish-Subscribe with type, document and global subscriptions.

    EXPLANATION FOR VIVA:
    ====================
    Singleton, like MessageBroker. Every subscribe_* returns an unsubscribe
    function. Callbacks may be sync or async.
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

        self._subscribers: Dict[EventType, List[Callable]] = {}
        self._document_subscribers: Dict[str, Set[Callable]] = {}
        self._global_subscribers: List[Callable] = []

        self._event_history: List[Event] = []
        self._max_history = 1000

        self._initialized = True
        logger.info("EventBus initialized")

    @classmethod
    def reset(cls):
        cls._instance = None

    def subscribe(self, event_type: EventType, callback: Callable[[Event], Any]) -> Callable:
        self._subscribers.setdefault(event_type, []).append(callback)
        logger.debug(f"Subscribed to {event_type.value}: {callback}")

        def unsubscribe():
            if callback in self._subscribers.get(event_type, []):
                self._subscribers[event_type].remove(callback)

        return unsubscribe

    def subscribe_to_document(self, document_id: str, callback: Callable[[Event], Any]) -> Callable:
        """Receive every event concerning one document."""
        self._document_subscribers.setdefault(document_id, set()).add(callback)

        def unsubscribe():
            if document_id in self._document_subscribers:
                self._document_subscribers[document_id].discard(callback)
                if not self._document_subscribers[document_id]:
                    del self._document_subscribers[document_id]

        return unsubscribe

    def subscribe_all(self, callback: Callable[[Event], Any]) -> Callable:
        self._global_subscribers.append(callback)

        def unsubscribe():
            if callback in self._global_subscribers:
                self._global_subscribers.remove(callback)

        return unsubscribe

    async def publish(self, event: Event):
        """
        Record the event and notify type, document and global subscribers.

        A failing callback is logged; the remaining callbacks still run.
        When a document is deleted its document subscriptions are dropped
        after delivery.
        """
        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history:]

        logger.debug(f"Publishing event: {event.event_type.value} ({event.document_id})")

        callbacks = list(self._subscribers.get(event.event_type, []))
        if event.document_id:
            callbacks.extend(self._document_subscribers.get(event.document_id, ()))
        callbacks.extend(self._global_subscribers)

        for callback in callbacks:
            try:
                if inspect.iscoroutinefunction(callback):
                    await callback(event)
                else:
                    callback(event)
            except Exception as e:
                logger.error(f"Event callback error for {event.event_type.value}: {e}")

        if event.event_type == EventType.DOCUMENT_DELETED and event.document_id:
            self._document_subscribers.pop(event.document_id, None)

    def get_history(
        self,
        event_type: Optional[EventType] = None,
        document_id: Optional[str] = None,
        limit: int = 50
    ) -> List[Event]:
        events = self._event_history
        if event_type:
            events = [e for e in events if e.event_type == event_type]
        if document_id:
            events = [e for e in events if e.document_id == document_id]
        return events[-limit:]

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_subscribers": sum(len(s) for s in self._subscribers.values()),
            "document_subscriptions": len(self._document_subscribers),
            "global_subscribers": len(self._global_subscribers),
            "events_in_history": len(self._event_history),
            "subscribers_by_type": {
                et.value: len(subs)
                for et, subs in self._subscribers.items()
            }
        }
