"""
Document Store - Persistence Boundary for Documents

EXPLANATION FOR VIVA:
=====================
Agents never build SQL themselves. They open a store session, load a document,
change it in memory, and hand it back to save() as ONE commit:

    async with store.open() as documents:
        document = await documents.find_by_id(document_id)
        ...mutate + append version...
        await documents.save(document)

Failure translation (so callers can tell business errors from system errors):
- StaleDataError / IntegrityError -> ConcurrentModification (someone else
  saved the same document first; nothing of ours was written)
- any other SQLAlchemyError       -> StoreError (infrastructure failure)

The store does not retry. If a retry is wanted, the caller decides.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, List, Optional, Sequence
import logging

from sqlalchemy import and_, or_, select, true
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from core.errors import ConcurrentModification, NotFound, StoreError
from .access import Principal, normalize_email
from .database import AsyncSessionLocal
from .document import Document, Mention
from .share import ShareEntry
from .user import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DocumentFilter:
    """
    Criteria for find(); every field that is set must match (AND).

    EXPLANATION FOR VIVA:
    ====================
    - author_id:       documents written by this principal
    - is_public:       documents with this visibility
    - shared_email:    documents with a share entry for this email
    - mentioned_email: documents that mention this email
    - text:            case-insensitive substring of title OR content

    The first four become SQL. text is matched in Python with str.casefold():
    SQLite's LIKE only folds ASCII letters, so "über" would miss "Über".
    """

    author_id: Optional[str] = None
    is_public: Optional[bool] = None
    shared_email: Optional[str] = None
    mentioned_email: Optional[str] = None
    text: Optional[str] = None

    def to_clause(self):
        clauses = []
        if self.author_id is not None:
            clauses.append(Document.author_id == self.author_id)
        if self.is_public is not None:
            clauses.append(Document.is_public == self.is_public)
        if self.shared_email is not None:
            clauses.append(Document.shares.any(ShareEntry.email == normalize_email(self.shared_email)))
        if self.mentioned_email is not None:
            clauses.append(Document.mentions.any(Mention.email == normalize_email(self.mentioned_email)))
        return and_(true(), *clauses)

    def matches_text(self, document: Document) -> bool:
        if self.text is None:
            return True
        needle = self.text.casefold()
        return needle in (document.title or "").casefold() or needle in (document.content or "").casefold()

    @classmethod
    def readable_by(cls, principal: Principal) -> List["DocumentFilter"]:
        """Public, authored and shared-with documents: the ones can_access lets the principal read."""
        return [
            cls(is_public=True),
            cls(author_id=principal.id),
            cls(shared_email=principal.normalized_email),
        ]

    @classmethod
    def accessible_to(cls, principal: Principal) -> List["DocumentFilter"]:
        """readable_by plus documents that merely mention the principal."""
        return cls.readable_by(principal) + [cls(mentioned_email=principal.normalized_email)]


class StoreSession:
    """One unit of work against the document tables."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def find(self, criteria: DocumentFilter) -> List[Document]:
        found = await self._select(criteria.to_clause())
        return [d for d in found if criteria.matches_text(d)]

    async def find_any(
        self,
        criteria: Sequence[DocumentFilter],
        text: Optional[str] = None,
    ) -> List[Document]:
        """
        Documents matching ANY of ``criteria`` (and ``text`` if given),
        newest update first. Each document appears once.

        ``text`` applies to the whole result; a text set on an individual
        criterion is ignored here.
        """
        if not criteria:
            return []
        found = await self._select(or_(*(c.to_clause() for c in criteria)))
        text_filter = DocumentFilter(text=text)
        return [d for d in found if text_filter.matches_text(d)]

    async def find_by_id(self, document_id: str) -> Optional[Document]:
        if not document_id:
            return None
        try:
            return await self._session.get(Document, document_id)
        except SQLAlchemyError as e:
            logger.error(f"Store read failed for document {document_id}: {e}")
            raise StoreError("Document store unavailable")

    async def require(self, document_id: str) -> Document:
        """find_by_id, but a missing document is a NotFound."""
        document = await self.find_by_id(document_id)
        if document is None:
            raise NotFound("Document not found")
        return document

    async def create(self, document: Document) -> Document:
        self._session.add(document)
        await self._commit()
        return document

    async def save(self, document: Document) -> Document:
        await self._commit()
        return document

    async def delete_one(self, document: Document) -> None:
        await self._session.delete(document)
        await self._commit()

    async def ensure_user(self, principal: Principal) -> User:
        """Record (or refresh) the principal's email in the principal directory."""
        try:
            user = await self._session.get(User, principal.id)
        except SQLAlchemyError as e:
            logger.error(f"Store read failed for user {principal.id}: {e}")
            raise StoreError("Document store unavailable")

        if user is None:
            user = User(id=principal.id, email=principal.normalized_email)
            self._session.add(user)
        elif user.email != principal.normalized_email:
            user.email = principal.normalized_email
        return user

    async def get_user_email(self, user_id: str) -> Optional[str]:
        try:
            user = await self._session.get(User, user_id)
        except SQLAlchemyError as e:
            logger.error(f"Store read failed for user {user_id}: {e}")
            raise StoreError("Document store unavailable")
        return user.email if user else None

    async def _select(self, clause) -> List[Document]:
        try:
            result = await self._session.execute(
                select(Document).where(clause).order_by(Document.updated_at.desc())
            )
            return list(result.scalars().unique().all())
        except SQLAlchemyError as e:
            logger.error(f"Store query failed: {e}")
            raise StoreError("Document store unavailable")

    async def _commit(self):
        try:
            await self._session.commit()
        except (StaleDataError, IntegrityError) as e:
            await self._session.rollback()
            logger.warning(f"Concurrent modification rejected: {e}")
            raise ConcurrentModification(
                "Conflict detected: Document was modified by another user"
            )
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error(f"Store write failed: {e}")
            raise StoreError("Document store unavailable")


class DocumentStore:
    """
    Factory for store sessions.

    EXPLANATION FOR VIVA:
    ====================
    Agents receive a DocumentStore in their constructor (Dependency Injection).
    Production uses the application's session factory; tests pass one bound
    to a throwaway database file.
    """

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or AsyncSessionLocal

    @asynccontextmanager
    async def open(self) -> AsyncIterator[StoreSession]:
        session: AsyncSession = self._session_factory()
        try:
            yield StoreSession(session)
        finally:
            await session.close()
