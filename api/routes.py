"""
API Routes - FastAPI REST Endpoints

EXPLANATION FOR VIVA:
=====================
This module is the API Gateway: it turns HTTP requests into AgentMessages and
agent responses back into HTTP responses. It contains NO document rules.

Request Flow:
1. Client sends HTTP request with a Bearer token
2. get_current_principal resolves the token to Principal(id, email) or 401
3. FastAPI validates the body (Pydantic schemas)
4. Route handler builds an AgentMessage with the principal in its payload
5. MessageBroker delivers it to the right agent and waits for the reply
6. The reply's error_code decides the HTTP status

Status mapping:
- NOT_FOUND      -> 404
- FORBIDDEN      -> 403
- INVALID_INPUT  -> 400
- CONFLICT       -> 400 (already shared, not shared, duplicate mention)
                    409 (someone else saved first; "retryable")
- STORE_ERROR    -> 500
- no reply       -> 500 (request timeout)

Error bodies are the agent's own payload: {"success": false, "error",
"error_code", ...}, so clients see the same shape for every failure.
"""

from fastapi import APIRouter, Body, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Any, Dict, List, Optional
import logging

from core.agent_base import AgentMessage, MessageType
from core.errors import ErrorCode
from core.event_bus import EventBus
from core.message_broker import BROKER_REQUEST_TIMEOUT, MessageBroker
from models.access import Principal
from .auth import get_current_principal

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS = {
    ErrorCode.NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.FORBIDDEN.value: status.HTTP_403_FORBIDDEN,
    ErrorCode.INVALID_INPUT.value: status.HTTP_400_BAD_REQUEST,
    ErrorCode.CONFLICT.value: status.HTTP_400_BAD_REQUEST,
    ErrorCode.STORE_ERROR.value: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# ==================== PYDANTIC SCHEMAS ====================
# Field names on the wire are camelCase (isPublic, expectedVersion) to match
# the web client; populate_by_name also accepts the snake_case names.

class DocumentCreateRequest(BaseModel):
    """
    Schema for document creation.

    EXPLANATION FOR VIVA:
    ====================
    Pydantic checks types only. Business rules (title must not be blank after
    trimming) are enforced by the agent so every transport gets them.
    """
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., max_length=255)
    content: str = ""
    is_public: bool = Field(default=False, alias="isPublic")
    mentions: List[EmailStr] = Field(default_factory=list)


class DocumentUpdateRequest(BaseModel):
    """Schema for document updates; omitted or empty fields keep their value."""
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(default=None, max_length=255)
    content: Optional[str] = None
    is_public: Optional[bool] = Field(default=None, alias="isPublic")
    expected_version: Optional[int] = Field(default=None, alias="expectedVersion")


class ShareDocumentRequest(BaseModel):
    """
    Schema for sharing a document.

    access is validated by the Share Registry, so an unknown level gets the
    same "Email and valid access level are required" answer from every path.
    """
    email: EmailStr
    access: Optional[str] = None


class EmailRequest(BaseModel):
    """Schema for unshare and mention: just the target email."""
    email: EmailStr


# ==================== HELPER FUNCTIONS ====================

def get_broker() -> MessageBroker:
    return MessageBroker()


def status_for_error(payload: Dict[str, Any]) -> int:
    code = payload.get("error_code")
    if code == ErrorCode.CONFLICT.value and payload.get("retryable"):
        return status.HTTP_409_CONFLICT
    return ERROR_STATUS.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def ask_agent(
    message_type: MessageType,
    recipient: str,
    principal: Principal,
    **payload
):
    """
    Send one request to an agent and translate the answer.

    Returns the success payload (FastAPI serializes it with the route's
    status code) or a JSONResponse carrying the error payload.
    """
    message = AgentMessage(
        type=message_type,
        sender="api_gateway",
        recipient=recipient,
        payload={"principal": principal.to_payload(), **payload}
    )

    response = await get_broker().request(message, timeout=BROKER_REQUEST_TIMEOUT)

    if response is None:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Request timeout"}
        )

    if response.type == MessageType.ERROR or not response.payload.get("success"):
        return JSONResponse(status_code=status_for_error(response.payload), content=response.payload)

    return response.payload


# ==================== DOCUMENT ROUTES ====================

@router.post("/documents", status_code=status.HTTP_201_CREATED, tags=["Documents"])
async def create_document(
    request: DocumentCreateRequest,
    principal: Principal = Depends(get_current_principal)
):
    """
    Create a new document.

    EXPLANATION FOR VIVA:
    ====================
    1. Caller must be authenticated (get_current_principal)
    2. Body validated by DocumentCreateRequest
    3. DocumentEditingAgent creates the document and version 0
    4. 201 Created with the new document
    """
    return await ask_agent(
        MessageType.DOC_CREATE,
        "document_editing_agent",
        principal,
        title=request.title,
        content=request.content,
        is_public=request.is_public,
        mentions=[str(email) for email in request.mentions]
    )


@router.get("/documents", tags=["Documents"])
async def list_documents(principal: Principal = Depends(get_current_principal)):
    """Every document the caller can see (public, own, shared, mentioned)."""
    return await ask_agent(MessageType.DOC_LIST, "document_editing_agent", principal)


# Declared before /documents/{document_id} so "search" is not taken for an id
@router.get("/documents/search", tags=["Documents"])
async def search_documents(
    q: Optional[str] = None,
    principal: Principal = Depends(get_current_principal)
):
    return await ask_agent(MessageType.DOC_SEARCH, "document_editing_agent", principal, query=q)


@router.get("/documents/{document_id}", tags=["Documents"])
async def get_document(
    document_id: str,
    principal: Principal = Depends(get_current_principal)
):
    return await ask_agent(
        MessageType.DOC_READ, "document_editing_agent", principal, document_id=document_id
    )


@router.put("/documents/{document_id}", tags=["Documents"])
async def update_document(
    document_id: str,
    request: DocumentUpdateRequest,
    principal: Principal = Depends(get_current_principal)
):
    """Update title/content (editors) or isPublic (author only)."""
    return await ask_agent(
        MessageType.DOC_UPDATE,
        "document_editing_agent",
        principal,
        document_id=document_id,
        title=request.title,
        content=request.content,
        is_public=request.is_public,
        expected_version=request.expected_version
    )


@router.delete("/documents/{document_id}", tags=["Documents"])
async def delete_document(
    document_id: str,
    principal: Principal = Depends(get_current_principal)
):
    return await ask_agent(
        MessageType.DOC_DELETE, "document_editing_agent", principal, document_id=document_id
    )


# ==================== SHARING ROUTES ====================

@router.post("/documents/{document_id}/mention", tags=["Sharing"])
async def mention_user(
    document_id: str,
    request: EmailRequest,
    principal: Principal = Depends(get_current_principal)
):
    return await ask_agent(
        MessageType.DOC_MENTION, "sharing_agent", principal,
        document_id=document_id, email=str(request.email)
    )


@router.post("/documents/{document_id}/share", tags=["Sharing"])
async def share_document(
    document_id: str,
    request: ShareDocumentRequest,
    principal: Principal = Depends(get_current_principal)
):
    """
    Share a document with another user by email.

    EXPLANATION FOR VIVA:
    ====================
    access is "view" (read only) or "edit" (read and write).
    Only the author may share; sharing the same email twice is refused.
    """
    return await ask_agent(
        MessageType.DOC_SHARE, "sharing_agent", principal,
        document_id=document_id, email=str(request.email), access=request.access
    )


@router.delete("/documents/{document_id}/share", tags=["Sharing"])
async def unshare_document(
    document_id: str,
    request: EmailRequest = Body(...),
    principal: Principal = Depends(get_current_principal)
):
    """Remove a user's access. The email travels in the JSON body."""
    return await ask_agent(
        MessageType.DOC_UNSHARE, "sharing_agent", principal,
        document_id=document_id, email=str(request.email)
    )


# ==================== VERSION ROUTES ====================

@router.get("/documents/{document_id}/versions", tags=["Versions"])
async def get_document_versions(
    document_id: str,
    principal: Principal = Depends(get_current_principal)
):
    return await ask_agent(
        MessageType.VERSION_GET_HISTORY, "version_control_agent", principal,
        document_id=document_id
    )


@router.get("/documents/{document_id}/diff", tags=["Versions"])
async def diff_versions(
    document_id: str,
    old: Optional[str] = None,
    new: str = "current",
    principal: Principal = Depends(get_current_principal)
):
    """
    Compare two versions.

    EXPLANATION FOR VIVA:
    ====================
    old: a version index (0 = as created)
    new: a version index or "current" (the live document, the default)
    """
    return await ask_agent(
        MessageType.VERSION_COMPARE, "version_control_agent", principal,
        document_id=document_id, old=old, new=new
    )


# ==================== SYSTEM ROUTES ====================

@router.get("/health", tags=["System"])
async def health_check():
    """Liveness plus broker and event bus statistics (no authentication)."""
    return {
        "status": "healthy",
        "broker_stats": get_broker().get_stats(),
        "event_stats": EventBus().get_stats()
    }
