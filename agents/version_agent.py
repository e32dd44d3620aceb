"""
Version Control Agent - Handles Document History and Comparison

================================================================================
DEVELOPED BY: Hasnain Ali | Wuhan University | Supervisor: Prof. Liang Peng
================================================================================

EXPLANATION FOR VIVA:
=====================
Versions are WRITTEN by the Document Editing Agent (one per create/update,
through the Version Ledger). This agent only READS them:

1. Version History - every snapshot, oldest first, with editor and time
2. Compare Versions - title/content of two points in history side by side

Both need the read capability: if you may open the document, you may see how
it got there.

Why Version Control?
1. Undo mistakes: see what the text used to be
2. Attribution: every snapshot records its editor
3. Collaboration: nobody's edit is silently lost

Similar to Git but simpler:
- No branching (linear history)
- Full snapshots (not delta compression)
- History is append-only and disappears only with the document
"""

from typing import List
import logging

from core.agent_base import Agent, AgentMessage, MessageType
from core.errors import Forbidden
from models.access import can_access, require_principal
from models.diff import compute_diff, parse_version_ref
from models.store import DocumentStore
from models.version import get_versions

logger = logging.getLogger(__name__)


class VersionControlAgent(Agent):
    """
    Agent responsible for reading version history.

    EXPLANATION FOR VIVA:
    ====================
    Operations:
    1. get_history: VERSION_GET_HISTORY
    2. compare:     VERSION_COMPARE ("old" index vs "new" index or "current")
    """

    def __init__(self, store: DocumentStore = None):
        super().__init__(
            agent_id="version_control_agent",
            name="Version Control Agent"
        )
        self.store = store or DocumentStore()

        self.register_handler(MessageType.VERSION_GET_HISTORY, self._handle_get_history)
        self.register_handler(MessageType.VERSION_COMPARE, self._handle_compare)

    def get_capabilities(self) -> List[MessageType]:
        return [
            MessageType.VERSION_GET_HISTORY,
            MessageType.VERSION_COMPARE,
        ]

    async def on_start(self):
        logger.info(f"{self.name} started and ready")

    async def on_stop(self):
        logger.info(f"{self.name} stopping")

    async def _load_readable(self, message: AgentMessage):
        principal = require_principal(message.payload.get("principal"))
        document_id = message.payload.get("document_id")

        async with self.store.open() as documents:
            document = await documents.require(document_id)

        if not can_access(document, principal).read:
            logger.warning(f"History denied on {document_id} for {principal.normalized_email}")
            raise Forbidden("Access denied")
        return document

    async def _handle_get_history(self, message: AgentMessage) -> AgentMessage:
        """Full version history of a document, oldest first."""
        document = await self._load_readable(message)
        versions = [v.to_dict() for v in get_versions(document)]

        return message.create_response({
            "success": True,
            "document_id": document.id,
            "versions": versions,
            "total_versions": len(versions),
        })

    async def _handle_compare(self, message: AgentMessage) -> AgentMessage:
        """
        Compare two points in history.

        EXPLANATION FOR VIVA:
        ====================
        The references are parsed BEFORE the document is loaded, so a request
        like ?old=abc fails with 400 no matter which document it names.
        "old" must be a stored version; "new" may also be "current".
        """
        old = parse_version_ref(message.payload.get("old"), allow_current=False)
        new = parse_version_ref(message.payload.get("new"), allow_current=True)

        document = await self._load_readable(message)
        diff = compute_diff(document, old, new)

        logger.debug(f"Compared {document.id}: {old.to_json()} -> {new.to_json()}")
        return message.create_response({"success": True, **diff})
