"""Registration, login and current-user endpoints."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from train_tracker.database import get_session_context
from train_tracker.logging import get_logger
from train_tracker.routers.deps import get_principal
from train_tracker.routers.public import EMAIL_PATTERN
from train_tracker.services.auth import (
    AuthenticationError,
    Principal,
    RegistrationError,
    authenticate,
    issue_token,
    register_user,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class Credentials(BaseModel):
    email: str = Field(pattern=EMAIL_PATTERN, max_length=320)
    password: str = Field(min_length=6, max_length=256)


class UserInfo(BaseModel):
    id: str
    email: str
    role: str


class LoginResponse(BaseModel):
    message: str
    token: str
    user: UserInfo


@router.post("/register", status_code=201, summary="Register a user account")
async def register(body: Credentials) -> dict[str, str]:
    async with get_session_context() as session:
        try:
            await register_user(session, body.email, body.password)
        except RegistrationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        await session.commit()
    return {"message": "User registered. You can now sign in."}


@router.post("/login", response_model=LoginResponse, summary="Sign in and get a bearer token")
async def login(body: Credentials) -> dict[str, Any]:
    async with get_session_context() as session:
        try:
            user = await authenticate(session, body.email, body.password)
        except AuthenticationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        token = await issue_token(session, user)
        await session.commit()

    logger.info("User signed in", user_id=user.id, role=user.role)
    return {
        "message": "Login successful",
        "token": token.token,
        "user": {"id": user.id, "email": user.email, "role": user.role},
    }


@router.get("/me", response_model=UserInfo, summary="Current user")
async def me(principal: Annotated[Principal, Depends(get_principal)]) -> dict[str, str]:
    return {"id": principal.user_id, "email": principal.email, "role": principal.role}
