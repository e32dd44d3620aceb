"""
Share Model - Collaborators and Their Access Level

EXPLANATION FOR VIVA:
=====================
A document can be shared with other people by EMAIL. Each share entry says
how much that person may do:

- "view": can open the document and its history
- "edit": can also change the title and content

Rules enforced by the Share Registry functions below:
1. Only the author may share or unshare (the "share" capability)
2. The access level must be exactly "view" or "edit"
3. At most one entry per email (also enforced by a UNIQUE constraint)
4. Unsharing an email that was never shared is an error, not a no-op

Sharing changes who may see the document, not what it says, so it never
creates a new version.
"""

from enum import Enum
from typing import List, Optional

from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime

from core.errors import AlreadyShared, Forbidden, InvalidAccessLevel, InvalidInput, NotShared
from .database import Base
from .access import Principal, can_access, normalize_email


class AccessLevel(str, Enum):
    """Access granted by a share entry."""

    VIEW = "view"
    EDIT = "edit"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AccessLevel":
        try:
            return cls(value)
        except ValueError:
            raise InvalidAccessLevel("Email and valid access level are required")


class ShareEntry(Base):
    """
    One collaborator of one document.

    EXPLANATION FOR VIVA:
    ====================
    The autoincrement id doubles as insertion order, which is how the
    sharedWith list is presented (oldest share first).
    """

    __tablename__ = "document_shares"
    __table_args__ = (
        UniqueConstraint("document_id", "email", name="uq_document_share_email"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(String(36), ForeignKey("documents.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    access = Column(String(10), nullable=False, default=AccessLevel.VIEW.value)
    created_at = Column(DateTime, default=datetime.utcnow)

    document = relationship("Document", back_populates="shares")

    def __repr__(self):
        return f"<ShareEntry(doc={self.document_id}, email={self.email}, access={self.access})>"

    def to_dict(self) -> dict:
        return {"email": self.email, "access": self.access}


def _require_share_capability(document, principal: Principal, action: str):
    if not can_access(document, principal).share:
        raise Forbidden(f"Only the author can {action}")


def find_share(document, email: str) -> Optional[ShareEntry]:
    normalized = normalize_email(email)
    for entry in document.shares:
        if normalize_email(entry.email) == normalized:
            return entry
    return None


def share(document, principal: Principal, email: str, access: Optional[str]) -> List[ShareEntry]:
    """
    Grant ``email`` the given access level on ``document``.

    Returns the updated share list. Nothing is changed if any rule fails.
    """
    normalized = normalize_email(email)
    if not normalized:
        raise InvalidAccessLevel("Email and valid access level are required")
    level = AccessLevel.parse(access)

    _require_share_capability(document, principal, "share this document")

    if find_share(document, normalized) is not None:
        raise AlreadyShared("User already has access")

    document.shares.append(ShareEntry(email=normalized, access=level.value))
    return document.shares


def unshare(document, principal: Principal, email: str) -> List[ShareEntry]:
    """Revoke the share entry for ``email``; the match is on the normalised email."""
    normalized = normalize_email(email)
    if not normalized:
        raise InvalidInput("Email is required")

    _require_share_capability(document, principal, "remove shared users")

    entry = find_share(document, normalized)
    if entry is None:
        raise NotShared("User was not shared with")

    document.shares.remove(entry)
    return document.shares
