"""
Errors Module - Business Rule Failures for Document Operations

EXPLANATION FOR VIVA:
=====================
Every document operation can fail for one of a small number of reasons.
Instead of returning ad hoc strings from each agent, we raise one of these
exceptions from the domain rules and let the agent convert it into an error
response carrying a stable ``error_code``.

Taxonomy:
- NOT_FOUND:     the document (or version) does not exist
- FORBIDDEN:     the caller lacks the capability for this action
- INVALID_INPUT: malformed access level, blank query, bad version index
- CONFLICT:      duplicate share/mention, unshare of unknown email,
                 or a concurrent edit won the race
- STORE_ERROR:   the database failed (not a business rule)

Callers can therefore tell "you may not do this" apart from "the system failed".
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Stable error categories shared by agents and the HTTP layer."""

    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    INVALID_INPUT = "INVALID_INPUT"
    CONFLICT = "CONFLICT"
    STORE_ERROR = "STORE_ERROR"


class DocumentError(Exception):
    """Base class for every expected failure of a document operation."""

    code: ErrorCode = ErrorCode.INVALID_INPUT
    resource: str = "Document"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        """Serialize as the error half of an agent response."""
        payload = {
            "success": False,
            "error": self.message,
            "error_code": self.code.value,
            "resource": self.resource,
        }
        payload.update(self.details)
        return payload


class NotFound(DocumentError):
    code = ErrorCode.NOT_FOUND


class VersionNotFound(NotFound):
    resource = "Version"


class Forbidden(DocumentError):
    code = ErrorCode.FORBIDDEN


class InvalidInput(DocumentError):
    code = ErrorCode.INVALID_INPUT


class InvalidAccessLevel(InvalidInput):
    resource = "Share"


class InvalidQuery(InvalidInput):
    resource = "Search"


class InvalidVersionIndex(InvalidInput):
    resource = "Version"


class Conflict(DocumentError):
    code = ErrorCode.CONFLICT


class AlreadyShared(Conflict):
    resource = "Share"


class NotShared(Conflict):
    resource = "Share"


class DuplicateMention(Conflict):
    resource = "Mention"


class ConcurrentModification(Conflict):
    """Raised when another writer saved the document first (optimistic lock)."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, {"retryable": True, **(details or {})})


class StoreError(DocumentError):
    code = ErrorCode.STORE_ERROR
