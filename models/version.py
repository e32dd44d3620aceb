"""
Version Model - Database Schema for Version History

EXPLANATION FOR VIVA:
=====================
This module implements version history for documents, similar to Git but simpler.

Key Concepts:
1. VersionSnapshot: A complete copy of title + content at a point in time
2. Version Ledger: The ONLY code allowed to add snapshots to a document
3. Index: Snapshots are numbered 0, 1, 2 ... in the order they were taken

Ledger rules:
- Exactly one snapshot per successful create and per successful update
- The snapshot captures the values AFTER the edit was applied
- Snapshots are never modified, removed or reordered
- So after N successful create/update calls, len(versions) == N

This is similar to how Google Docs tracks "Version History".
"""

from sqlalchemy import Column, String, Text, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from typing import List, Optional
import uuid

from core.errors import InvalidVersionIndex, VersionNotFound
from .database import Base


class VersionSnapshot(Base):
    """
    Version model - stores complete document snapshots.

    EXPLANATION FOR VIVA:
    ====================
    Each version is a complete copy of the document at that moment.

    Trade-off:
    - Pro: Fast retrieval (no need to reconstruct from diffs)
    - Con: Uses more storage

    title and content are never NULL: a missing value is stored as "" so
    readers never need a fallback.
    """

    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_id", "version_index", name="uq_document_version_index"),
    )

    # Primary Key
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Document reference
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"),
                         nullable=False, index=True)

    # Position in the history: 0 is the state recorded at creation
    version_index = Column(Integer, nullable=False)

    # Content snapshot
    title = Column(String(255), nullable=False, default="")
    content = Column(Text, nullable=False, default="")

    # Who made this version (principal email) and when
    editor = Column(String(255), nullable=False)
    edited_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationship
    document = relationship("Document", back_populates="versions")

    def __repr__(self):
        return f"<VersionSnapshot(doc={self.document_id}, index={self.version_index})>"

    def to_dict(self) -> dict:
        return {
            "index": self.version_index,
            "title": self.title or "",
            "content": self.content or "",
            "editor": self.editor,
            "editedAt": self.edited_at.isoformat() if self.edited_at else None,
        }


# ==================== VERSION LEDGER ====================

def append_version(document, editor: str, edited_at: Optional[datetime] = None) -> VersionSnapshot:
    """
    Record the document's current title/content as the next version.

    EXPLANATION FOR VIVA:
    ====================
    Called once per successful create and once per successful update, after
    the new values are applied and before the store commits. The next index
    is simply the current length of the history, because the history is
    never truncated.
    """
    snapshot = VersionSnapshot(
        version_index=len(document.versions),
        title=document.title or "",
        content=document.content or "",
        editor=editor,
        edited_at=edited_at or datetime.utcnow(),
    )
    document.versions.append(snapshot)
    return snapshot


def get_versions(document) -> List[VersionSnapshot]:
    """Full history, oldest first."""
    return list(document.versions)


def get_version_at(document, index) -> VersionSnapshot:
    """
    Look up one snapshot by its 0-based index.

    Raises InvalidVersionIndex for non-integers and negatives,
    VersionNotFound for an index past the end of the history.
    """
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise InvalidVersionIndex("Invalid version indexes")

    versions = document.versions
    if index >= len(versions):
        raise VersionNotFound(f"Version {index} not found")
    return versions[index]
