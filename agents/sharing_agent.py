"""
Sharing Agent - Handles Collaborators and Mentions

================================================================================
DEVELOPED BY: Hasnain Ali | Wuhan University | Supervisor: Prof. Liang Peng
================================================================================

EXPLANATION FOR VIVA:
=====================
This agent decides WHO ELSE is involved with a document:

1. Share   - give an email "view" or "edit" access
2. Unshare - take that access away again
3. Mention - flag an email on the document (shows up in their list)

All three are author-only (the "share" capability).

Order of checks (so the caller gets the most useful error first):
1. Input shape  (blank email, unknown access level)   -> 400
2. Existence    (document id unknown)                 -> 404
3. Capability   (caller is not the author)            -> 403
4. Registry     (already shared / not shared / dup)   -> 400

Sharing changes who may see the document, not what it says, so none of these
operations append a version.
"""

from datetime import datetime
from typing import List
import logging

from core.agent_base import Agent, AgentMessage, MessageType
from core.errors import Forbidden, InvalidAccessLevel, InvalidInput
from core.event_bus import EventBus, Event, EventType
from models.access import can_access, normalize_email, require_principal
from models.share import AccessLevel, share, unshare
from models.store import DocumentStore

logger = logging.getLogger(__name__)


class SharingAgent(Agent):
    """Agent responsible for the share list and mentions of a document."""

    def __init__(self, store: DocumentStore = None):
        super().__init__(
            agent_id="sharing_agent",
            name="Sharing Agent"
        )
        self.store = store or DocumentStore()
        self.event_bus = EventBus()

        self.register_handler(MessageType.DOC_SHARE, self._handle_share)
        self.register_handler(MessageType.DOC_UNSHARE, self._handle_unshare)
        self.register_handler(MessageType.DOC_MENTION, self._handle_mention)

    def get_capabilities(self) -> List[MessageType]:
        return [
            MessageType.DOC_SHARE,
            MessageType.DOC_UNSHARE,
            MessageType.DOC_MENTION,
        ]

    async def on_start(self):
        logger.info(f"{self.name} started and ready")

    async def on_stop(self):
        logger.info(f"{self.name} stopping")

    async def _handle_share(self, message: AgentMessage) -> AgentMessage:
        """
        Share a document with an email.

        EXPLANATION FOR VIVA:
        ====================
        The Share Registry function share() enforces the rules; this handler
        only loads, calls it, and commits. Because the document row is also
        touched (updated_at), the optimistic lock protects the share list too.
        """
        principal = require_principal(message.payload.get("principal"))
        document_id = message.payload.get("document_id")
        email = normalize_email(message.payload.get("email"))
        if not email:
            raise InvalidAccessLevel("Email and valid access level are required")
        level = AccessLevel.parse(message.payload.get("access"))

        async with self.store.open() as documents:
            document = await documents.require(document_id)
            shared_with = share(document, principal, email, level.value)
            document.updated_at = datetime.utcnow()
            await documents.save(document)
            shared_with = [entry.to_dict() for entry in shared_with]

        logger.info(f"Document {document_id} shared with {email} ({level.value})")

        await self.event_bus.publish(Event(
            event_type=EventType.DOCUMENT_SHARED,
            data={"email": email, "access": level.value},
            actor=principal.normalized_email,
            document_id=document_id
        ))

        return message.create_response({
            "success": True,
            "message": "Document shared",
            "sharedWith": shared_with,
        })

    async def _handle_unshare(self, message: AgentMessage) -> AgentMessage:
        """Remove an email from the share list."""
        principal = require_principal(message.payload.get("principal"))
        document_id = message.payload.get("document_id")
        email = normalize_email(message.payload.get("email"))
        if not email:
            raise InvalidInput("Email is required")

        async with self.store.open() as documents:
            document = await documents.require(document_id)
            shared_with = unshare(document, principal, email)
            document.updated_at = datetime.utcnow()
            await documents.save(document)
            shared_with = [entry.to_dict() for entry in shared_with]

        logger.info(f"Document {document_id} unshared from {email}")

        await self.event_bus.publish(Event(
            event_type=EventType.DOCUMENT_UNSHARED,
            data={"email": email},
            actor=principal.normalized_email,
            document_id=document_id
        ))

        return message.create_response({
            "success": True,
            "message": "User removed",
            "sharedWith": shared_with,
        })

    async def _handle_mention(self, message: AgentMessage) -> AgentMessage:
        """Mention an email on a document (author only, once per email)."""
        principal = require_principal(message.payload.get("principal"))
        document_id = message.payload.get("document_id")
        email = normalize_email(message.payload.get("email"))
        if not email:
            raise InvalidInput("Email is required")

        async with self.store.open() as documents:
            document = await documents.require(document_id)
            if not can_access(document, principal).share:
                logger.warning(f"Mention denied on {document_id} for {principal.normalized_email}")
                raise Forbidden("Only the author can mention users")

            mentions = document.add_mention(email)
            document.updated_at = datetime.utcnow()
            await documents.save(document)

        logger.info(f"{email} mentioned on document {document_id}")

        await self.event_bus.publish(Event(
            event_type=EventType.USER_MENTIONED,
            data={"email": email},
            actor=principal.normalized_email,
            document_id=document_id
        ))

        return message.create_response({
            "success": True,
            "message": "User mentioned",
            "mentions": mentions,
        })
