"""
Document Model - Database Schema for Document Management

EXPLANATION FOR VIVA:
=====================
This model represents documents in the collaborative editing system.

Key Design Decisions:
1. Content storage: Stored as Text and never interpreted (may contain HTML)
2. Versioning: Every create/update appends a VersionSnapshot (see version.py)
3. Sharing: Collaborators are ShareEntry rows keyed by email (see share.py)
4. Mentions: Emails the author has flagged, unique per document
5. Hard delete: Deleting a document removes its shares, mentions and versions

The relationship with User is Many-to-One (many documents, one author).
The relationships with ShareEntry, Mention and VersionSnapshot are One-to-Many
and are loaded eagerly, so a loaded document is complete in memory.
"""

from sqlalchemy import (
    Column, String, Text, Boolean, DateTime, ForeignKey, Integer, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
from typing import Optional
import uuid

from core.errors import DuplicateMention, InvalidInput
from .database import Base
from .access import normalize_email


class Document(Base):
    """
    Document model for storing and managing documents.

    EXPLANATION FOR VIVA:
    ====================
    A document contains:
    1. Identity: id (immutable)
    2. Content: title (non-empty) and content (opaque text)
    3. Ownership: author_id (set once, never changes)
    4. Visibility: is_public (only the author may toggle it)
    5. Collaboration: shares, mentions
    6. History: versions (append-only)
    7. Audit: created_at, updated_at, last_edited_by

    Optimistic Locking:
    - edit_version is SQLAlchemy's version_id_col
    - Every UPDATE says "WHERE edit_version = <what I loaded>"
    - If another request saved first, zero rows match and the save fails,
      so two concurrent edits can never silently overwrite each other
    """

    __tablename__ = "documents"

    # Primary Key
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Document content
    title = Column(String(255), nullable=False)
    content = Column(Text, nullable=False, default="")

    # Ownership
    author_id = Column(String(64), ForeignKey("users.id"), nullable=False, index=True)

    # Visibility
    is_public = Column(Boolean, nullable=False, default=False)

    # Optimistic locking for conflict detection
    edit_version = Column(Integer, nullable=False)

    # Audit fields
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, index=True)
    last_edited_by = Column(String(255), nullable=True)

    # Relationships
    author = relationship("User", lazy="selectin")
    shares = relationship(
        "ShareEntry",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="ShareEntry.id",
        lazy="selectin",
    )
    mentions = relationship(
        "Mention",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="Mention.id",
        lazy="selectin",
    )
    versions = relationship(
        "VersionSnapshot",
        back_populates="document",
        cascade="all, delete-orphan",
        order_by="VersionSnapshot.version_index",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": edit_version}

    def __repr__(self):
        return f"<Document(id={self.id}, title={self.title})>"

    @property
    def mention_emails(self) -> list:
        return [m.email for m in self.mentions or []]

    def add_mention(self, email: str) -> list:
        """
        Flag an email on this document.

        The caller (SharingAgent) has already checked the author capability;
        this only enforces uniqueness.
        """
        normalized = normalize_email(email)
        if not normalized:
            raise InvalidInput("Email is required")
        if normalized in self.mention_emails:
            raise DuplicateMention("User already mentioned")

        self.mentions.append(Mention(email=normalized))
        return self.mention_emails

    def to_dict(
        self,
        include_versions: bool = False,
        author_email: Optional[str] = None,
        include_content: bool = True,
    ) -> dict:
        """
        Convert document to dictionary for API responses.

        EXPLANATION FOR VIVA:
        ====================
        Field names follow the wire format the existing web client already
        reads (isPublic, sharedWith, authorEmail ...).
        The include_versions flag keeps list/search responses small; the full
        history is only attached when a single document is fetched.
        include_content=False gives metadata only (no content, no sharedWith)
        for listing a document the caller may not read.
        """
        data = {
            "id": self.id,
            "title": self.title,
            "content": self.content or "",
            "isPublic": bool(self.is_public),
            "author": self.author_id,
            "mentions": self.mention_emails,
            "sharedWith": [entry.to_dict() for entry in self.shares or []],
            "editVersion": self.edit_version,
            "lastEditedBy": self.last_edited_by,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

        if not include_content:
            del data["content"]
            del data["sharedWith"]

        if author_email is not None:
            data["authorEmail"] = author_email

        if include_versions:
            data["versions"] = [v.to_dict() for v in self.versions or []]

        return data


class Mention(Base):
    """An email the author has flagged on a document (unique per document)."""

    __tablename__ = "document_mentions"
    __table_args__ = (
        UniqueConstraint("document_id", "email", name="uq_document_mention_email"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    email = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    document = relationship("Document", back_populates="mentions")

    def __repr__(self):
        return f"<Mention(doc={self.document_id}, email={self.email})>"
