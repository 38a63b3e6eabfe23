"""FastAPI auth dependencies.

These are used as Depends() in route handlers to extract and validate
the current user from the `Authorization: Bearer <token>` header.

- get_current_user_optional: None when no bearer token is present
- get_current_user: 401 when no token, or the token does not verify
- require_admin: loads the user row and 403s unless it is an admin
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from sparklink.auth.jwt import TokenService, extract_bearer_token
from sparklink.config import Settings
from sparklink.db.engine import get_db
from sparklink.db.models import User
from sparklink.errors import InvalidTokenError


@dataclass(frozen=True)
class CurrentIdentity:
    """The authenticated caller, as read from the session claim."""

    user_id: str
    email: str
    username: Optional[str] = None


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.tokens


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=401,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user_optional(
    authorization: Optional[str] = Header(None),
    tokens: TokenService = Depends(get_token_service),
) -> Optional[CurrentIdentity]:
    """Extract current identity (optional — returns None if no auth).

    A present-but-invalid token is still a 401: anonymous access is
    only granted when the client sent no credentials at all.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        return None
    try:
        claim = tokens.verify(token)
    except InvalidTokenError as e:
        raise _unauthorized(e.message)
    return CurrentIdentity(
        user_id=claim.user_id,
        email=claim.email,
        username=claim.username,
    )


async def get_current_user(
    identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
) -> CurrentIdentity:
    """Extract current identity (required — 401 if no auth)."""
    if not identity:
        raise _unauthorized("Authentication required")
    return identity


async def require_admin(
    identity: CurrentIdentity = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Admin flag is read from the database, not from the token."""
    try:
        user = await db.get(User, uuid.UUID(identity.user_id))
    except ValueError:
        user = None
    if user is None:
        raise _unauthorized("Unknown user")
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
