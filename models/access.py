"""
Access Evaluator - Who May Do What With a Document

EXPLANATION FOR VIVA:
=====================
Authorization rules used to be repeated inside every operation (owner check
here, collaborator check there). They now live in ONE pure function,
``can_access``, which every agent calls before touching a document.

Capability rules:
- read   = document is public OR caller is the author OR caller's email is shared
- write  = caller is the author OR caller's email is shared with "edit" access
- share  = author only (also covers unshare and mentions)
- delete = author only (also covers toggling is_public)

The function fails closed: a principal without an id or an email gets
nothing, and emails are normalised before comparison so stray whitespace or
capitalisation never locks a collaborator out.

Authentication (WHO the user is) happens in the API layer.
This module is Authorization (WHAT they can do).
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from core.errors import Forbidden


def normalize_email(email: Optional[str]) -> str:
    """Trim and lower-case an email so comparisons are stable."""
    if not email:
        return ""
    return email.strip().lower()


@dataclass(frozen=True)
class Principal:
    """The authenticated caller, as supplied by the principal resolver."""

    id: str
    email: str

    @property
    def normalized_email(self) -> str:
        return normalize_email(self.email)

    def is_complete(self) -> bool:
        return bool(self.id) and bool(self.normalized_email)

    def to_payload(self) -> dict:
        return {"id": self.id, "email": self.normalized_email}

    @classmethod
    def from_payload(cls, data: Optional[dict]) -> Optional["Principal"]:
        """Rebuild the caller carried in an AgentMessage payload."""
        if not data:
            return None
        return cls(id=str(data.get("id") or ""), email=data.get("email") or "")


def require_principal(data: Optional[dict]) -> Principal:
    """Principal from a message payload; a missing or partial one is Forbidden."""
    principal = Principal.from_payload(data)
    if principal is None or not principal.is_complete():
        raise Forbidden("Authentication required")
    return principal


@dataclass(frozen=True)
class Capabilities:
    """
    The capability set of one principal on one document.

    EXPLANATION FOR VIVA:
    ====================
    Computing all four booleans at once (instead of separate can_view /
    can_edit helpers) guarantees every endpoint sees the same answer.
    """

    read: bool = False
    write: bool = False
    share: bool = False
    delete: bool = False

    def to_dict(self) -> dict:
        return {
            "read": self.read,
            "write": self.write,
            "share": self.share,
            "delete": self.delete,
        }


NO_ACCESS = Capabilities()


def _share_access_for(shares: Iterable, email: str) -> Optional[str]:
    for entry in shares or []:
        if normalize_email(entry.email) == email:
            return entry.access
    return None


def can_access(document, principal: Optional[Principal]) -> Capabilities:
    """
    Compute the capability set of ``principal`` on ``document``.

    ``document`` only needs ``author_id``, ``is_public`` and ``shares``
    (entries with ``email`` and ``access``), so plain objects work in tests.
    """
    if document is None or principal is None or not principal.is_complete():
        return NO_ACCESS

    is_author = document.author_id is not None and principal.id == document.author_id
    shared_access = _share_access_for(document.shares, principal.normalized_email)

    read = bool(document.is_public) or is_author or shared_access is not None
    write = is_author or shared_access == "edit"

    return Capabilities(
        read=read,
        write=write,
        share=is_author,
        delete=is_author,
    )
