"""Auth middleware -- FastAPI dependencies for the acting user and services.

Callers authenticate with an ``Authorization: Bearer <session_token>`` header.
The service and session store live on ``app.state`` (see ``create_app``).
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from larder.auth.store import SessionStore
from larder.moderation.service import ModerationService


def get_service(request: Request) -> ModerationService:
    """Return the ModerationService attached to the running app."""
    return request.app.state.service


def get_sessions(request: Request) -> SessionStore:
    """Return the SessionStore attached to the running app."""
    return request.app.state.sessions


async def get_current_user_id(
    authorization: Optional[str] = Header(None),
    sessions: SessionStore = Depends(get_sessions),
) -> str:
    """FastAPI dependency that resolves the bearer token to a user id.

    Raises ``401 Unauthorized`` if no valid session token is provided.
    """
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token:
            user_id = sessions.validate_session(token)
            if user_id is not None:
                return user_id

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_optional_user_id(
    authorization: Optional[str] = Header(None),
    sessions: SessionStore = Depends(get_sessions),
) -> Optional[str]:
    """Same as ``get_current_user_id`` but returns ``None`` instead of raising 401.

    Use this for endpoints that work for both anonymous and authenticated users.
    """
    try:
        return await get_current_user_id(authorization=authorization, sessions=sessions)
    except HTTPException:
        return None
