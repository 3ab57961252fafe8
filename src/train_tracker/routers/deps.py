"""Request dependencies shared by the routers."""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException

from train_tracker.database import get_session_context
from train_tracker.services.auth import AuthenticationError, Principal, principal_for_token


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="No authorization token provided.")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Malformed token.")
    return token.strip()


async def get_principal(
    authorization: Annotated[Optional[str], Header()] = None,
) -> Principal:
    """Resolve the bearer token to the signed-in user."""
    token = _bearer_token(authorization)
    async with get_session_context() as session:
        try:
            return await principal_for_token(session, token)
        except AuthenticationError as exc:
            raise HTTPException(status_code=401, detail=str(exc)) from exc


async def require_admin(principal: Annotated[Principal, Depends(get_principal)]) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden: Admin access required.")
    return principal
