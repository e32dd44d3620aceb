"""
Document Editing Agent - Handles Document Lifecycle and Search

================================================================================
DEVELOPED BY: Hasnain Ali | Wuhan University | Supervisor: Prof. Liang Peng
================================================================================

EXPLANATION FOR VIVA:
=====================
This agent owns everything that creates, reads, changes or removes a
document as a whole:

1. Create Document   - author becomes the creator, version 0 is recorded
2. Get Document      - single document with history, author email and the
                       caller's capability set
3. List Documents    - everything the caller can see, newest first
4. Update Document   - title/content (editors), visibility (author only)
5. Delete Document   - author only, removes history with it
6. Search Documents  - substring search inside the caller's visible set

Every operation follows the same shape:

    async with self.store.open() as documents:
        document = await documents.require(document_id)     # NotFound
        caps = can_access(document, principal)               # Access Evaluator
        if not caps.<needed>: raise Forbidden(...)           # before mutating
        ...mutate, append_version(...)...                    # Version Ledger
        await documents.save(document)                       # one commit

Business failures are raised as DocumentError and turned into error
responses by the Agent base class, so no handler builds error payloads by hand.

Concurrency:
Two people saving the same document at once cannot overwrite each other.
The store's optimistic lock (edit_version) makes the slower save fail with
ConcurrentModification; the client reloads and tries again.
"""

from datetime import datetime
from typing import Iterable, List
import logging

from core.agent_base import Agent, AgentMessage, MessageType
from core.errors import ConcurrentModification, Forbidden, InvalidInput, InvalidQuery
from core.event_bus import EventBus, Event, EventType
from models.access import Principal, can_access, normalize_email, require_principal
from models.document import Document
from models.store import DocumentFilter, DocumentStore
from models.version import append_version

logger = logging.getLogger(__name__)


def _collapse_mentions(mentions: Iterable) -> List[str]:
    """Normalise, de-duplicate (keeping order) and reject blank emails."""
    collapsed = []
    for raw in mentions or []:
        email = normalize_email(raw) if isinstance(raw, str) else ""
        if not email:
            raise InvalidInput("Mention emails must not be blank")
        if email not in collapsed:
            collapsed.append(email)
    return collapsed


class DocumentEditingAgent(Agent):
    """
    Agent responsible for document CRUD and search.

    EXPLANATION FOR VIVA:
    ====================
    The store is injected (default: the application's database) so tests can
    run the exact same agent against a throwaway database.
    """

    def __init__(self, store: DocumentStore = None):
        super().__init__(
            agent_id="document_editing_agent",
            name="Document Editing Agent"
        )
        self.store = store or DocumentStore()
        self.event_bus = EventBus()

        self.register_handler(MessageType.DOC_CREATE, self._handle_create)
        self.register_handler(MessageType.DOC_READ, self._handle_read)
        self.register_handler(MessageType.DOC_LIST, self._handle_list)
        self.register_handler(MessageType.DOC_UPDATE, self._handle_update)
        self.register_handler(MessageType.DOC_DELETE, self._handle_delete)
        self.register_handler(MessageType.DOC_SEARCH, self._handle_search)

    def get_capabilities(self) -> List[MessageType]:
        return [
            MessageType.DOC_CREATE,
            MessageType.DOC_READ,
            MessageType.DOC_LIST,
            MessageType.DOC_UPDATE,
            MessageType.DOC_DELETE,
            MessageType.DOC_SEARCH,
        ]

    async def on_start(self):
        logger.info(f"{self.name} started and ready")

    async def on_stop(self):
        logger.info(f"{self.name} stopping")

    # ==================== CREATE ====================

    async def _handle_create(self, message: AgentMessage) -> AgentMessage:
        """
        Create a new document.

        EXPLANATION FOR VIVA:
        ====================
        1. Validate input (title required after trimming)
        2. Remember the author's email in the principal directory
        3. Build the document, add initial mentions
        4. Append version 0 (the state right after creation)
        5. Commit everything at once, then publish events
        """
        principal = require_principal(message.payload.get("principal"))
        payload = message.payload

        title = payload.get("title")
        if not isinstance(title, str) or not title.strip():
            raise InvalidInput("Title is required")

        content = payload.get("content")
        if content is None:
            content = ""
        if not isinstance(content, str):
            raise InvalidInput("Content must be text")

        mentions = _collapse_mentions(payload.get("mentions"))
        now = datetime.utcnow()

        async with self.store.open() as documents:
            await documents.ensure_user(principal)

            document = Document(
                title=title.strip(),
                content=content,
                author_id=principal.id,
                is_public=bool(payload.get("is_public", False)),
                created_at=now,
                updated_at=now,
                last_edited_by=principal.normalized_email,
                shares=[],
                mentions=[],
                versions=[],
            )
            for email in mentions:
                document.add_mention(email)
            snapshot = append_version(document, principal.normalized_email, edited_at=now)

            await documents.create(document)

        logger.info(f"Document created: {document.id} by {principal.normalized_email}")

        await self.event_bus.publish(Event(
            event_type=EventType.DOCUMENT_CREATED,
            data={"title": document.title, "is_public": document.is_public},
            actor=principal.normalized_email,
            document_id=document.id
        ))
        await self._publish_version(document, snapshot)

        return message.create_response({
            "success": True,
            "document": document.to_dict(
                include_versions=True,
                author_email=principal.normalized_email
            ),
        })

    # ==================== READ ====================

    async def _handle_read(self, message: AgentMessage) -> AgentMessage:
        """Fetch one document. Reading never changes updatedAt or versions."""
        principal = Principal.from_payload(message.payload.get("principal"))
        document_id = message.payload.get("document_id")

        async with self.store.open() as documents:
            document = await documents.require(document_id)
            caps = can_access(document, principal)
            if not caps.read:
                logger.warning(f"Read denied on {document_id} for {principal and principal.normalized_email}")
                raise Forbidden("Access denied")

            author_email = await documents.get_user_email(document.author_id)

        data = document.to_dict(include_versions=True, author_email=author_email)
        data["capabilities"] = caps.to_dict()
        return message.create_response({"success": True, "document": data})

    async def _handle_list(self, message: AgentMessage) -> AgentMessage:
        """
        List every document the caller can see.

        EXPLANATION FOR VIVA:
        ====================
        Visible = public OR authored OR shared with me OR mentioning me.
        The union is one SQL query with OR-ed EXISTS clauses, so a document
        matching several sources still appears exactly once.

        A mention makes a document discoverable, not readable: a document
        the caller cannot read is listed without its content or share list.
        """
        principal = require_principal(message.payload.get("principal"))

        async with self.store.open() as documents:
            found = await documents.find_any(DocumentFilter.accessible_to(principal))

        return message.create_response({
            "success": True,
            "documents": [
                d.to_dict(include_content=can_access(d, principal).read) for d in found
            ],
            "count": len(found),
        })

    async def _handle_search(self, message: AgentMessage) -> AgentMessage:
        """
        Case-insensitive substring search over title and content.

        Only documents the caller may read are searched; a hit on a
        mention-only document would reveal what its content says.
        """
        principal = require_principal(message.payload.get("principal"))

        query = message.payload.get("query")
        if not isinstance(query, str) or not query.strip():
            raise InvalidQuery("Search query is required")
        query = query.strip()

        async with self.store.open() as documents:
            found = await documents.find_any(
                DocumentFilter.readable_by(principal),
                text=query,
            )

        logger.debug(f"Search '{query}' by {principal.normalized_email}: {len(found)} hits")
        return message.create_response({
            "success": True,
            "query": query,
            "documents": [d.to_dict() for d in found],
            "count": len(found),
        })

    # ==================== UPDATE ====================

    async def _handle_update(self, message: AgentMessage) -> AgentMessage:
        """
        Update title, content and/or visibility.

        EXPLANATION FOR VIVA:
        ====================
        - Needs the write capability (author, or shared with "edit")
        - Empty title/content values are ignored (field keeps its value)
        - is_public is only honoured for the author; others are ignored
          silently, exactly like a field they did not send
        - expected_version (optional): if the client saw an older edit_version
          the update is refused and the server's copy is returned
        - Every accepted update appends one version, even if nothing changed
        """
        principal = require_principal(message.payload.get("principal"))
        payload = message.payload
        document_id = payload.get("document_id")

        async with self.store.open() as documents:
            document = await documents.require(document_id)
            caps = can_access(document, principal)
            if not caps.write:
                logger.warning(f"Edit denied on {document_id} for {principal.normalized_email}")
                raise Forbidden("Edit access denied")

            expected = payload.get("expected_version")
            if expected is not None and expected != document.edit_version:
                logger.warning(
                    f"Stale update on {document_id}: client has {expected}, "
                    f"server has {document.edit_version}"
                )
                raise ConcurrentModification(
                    "Conflict detected: Document was modified by another user",
                    details={
                        "current_version": document.edit_version,
                        "server_title": document.title,
                        "server_content": document.content or "",
                    },
                )

            title = payload.get("title")
            if isinstance(title, str) and title.strip():
                document.title = title.strip()

            content = payload.get("content")
            if isinstance(content, str) and content:
                document.content = content

            is_public = payload.get("is_public")
            if caps.delete and isinstance(is_public, bool):
                document.is_public = is_public

            now = datetime.utcnow()
            document.updated_at = now
            document.last_edited_by = principal.normalized_email
            snapshot = append_version(document, principal.normalized_email, edited_at=now)

            await documents.save(document)

        logger.info(f"Document updated: {document.id} by {principal.normalized_email} (version {snapshot.version_index})")

        await self.event_bus.publish(Event(
            event_type=EventType.DOCUMENT_UPDATED,
            data={"title": document.title, "edit_version": document.edit_version},
            actor=principal.normalized_email,
            document_id=document.id
        ))
        await self._publish_version(document, snapshot)

        return message.create_response({
            "success": True,
            "document": document.to_dict(include_versions=True),
        })

    # ==================== DELETE ====================

    async def _handle_delete(self, message: AgentMessage) -> AgentMessage:
        """Hard delete. Shares, mentions and versions go with the document."""
        principal = require_principal(message.payload.get("principal"))
        document_id = message.payload.get("document_id")

        async with self.store.open() as documents:
            document = await documents.require(document_id)
            if not can_access(document, principal).delete:
                logger.warning(f"Delete denied on {document_id} for {principal.normalized_email}")
                raise Forbidden("Only the author can delete this document")

            title = document.title
            await documents.delete_one(document)

        logger.info(f"Document deleted: {document_id} by {principal.normalized_email}")

        await self.event_bus.publish(Event(
            event_type=EventType.DOCUMENT_DELETED,
            data={"title": title},
            actor=principal.normalized_email,
            document_id=document_id
        ))

        return message.create_response({
            "success": True,
            "message": "Document deleted",
            "document_id": document_id,
        })

    async def _publish_version(self, document: Document, snapshot):
        await self.event_bus.publish(Event(
            event_type=EventType.VERSION_CREATED,
            data={"index": snapshot.version_index, "editor": snapshot.editor},
            actor=snapshot.editor,
            document_id=document.id
        ))
