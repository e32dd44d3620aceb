"""
Principal Resolver - Who Is Calling?

EXPLANATION FOR VIVA:
=====================
Logging in happens elsewhere (the identity service issues the token).
This module only answers: "given this Bearer token, who is the caller?"

JWT (JSON Web Token) Structure:
- Header: Algorithm info
- Payload: claims; we need "sub" (user id) and "email"
- Signature: proves the token came from someone holding SECRET_KEY

The result is a Principal(id, email). Every document rule downstream
works on that pair and nothing else.

Failures (no token, bad signature, expired, missing claims) are HTTP 401.
Being authenticated but not allowed is a 403, decided later by the agents.
"""

from datetime import datetime, timedelta
from typing import Optional
import logging
import os

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from models.access import Principal

logger = logging.getLogger(__name__)

SECRET_KEY = os.getenv("SECRET_KEY", "your-super-secret-key-change-in-production-abc123xyz")
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7

security = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, email: str, expires_minutes: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    """
    Issue a token for a principal.

    The identity service normally does this; it lives here for local
    development and for the HTTP tests.
    """
    expire = datetime.utcnow() + timedelta(minutes=expires_minutes)
    claims = {"sub": user_id, "email": email, "exp": expire}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def decode_principal(token: str) -> Optional[Principal]:
    """Verify a token and build the Principal; None if anything is wrong."""
    try:
        claims = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"Token verification failed: {e}")
        return None

    principal = Principal(id=str(claims.get("sub") or ""), email=claims.get("email") or "")
    if not principal.is_complete():
        logger.warning("Token is missing the sub or email claim")
        return None
    return principal


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Principal:
    """
    FastAPI dependency: the authenticated caller, or 401.

    EXPLANATION FOR VIVA:
    ====================
    Routes declare `principal: Principal = Depends(get_current_principal)`.
    FastAPI runs this before the route body, so a route never sees an
    unauthenticated request.
    """
    principal = decode_principal(credentials.credentials) if credentials else None
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"}
        )
    return principal
