"""Accounts, password hashing and bearer-token sessions."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import delete, select

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

from train_tracker.config import get_settings
from train_tracker.logging import get_logger
from train_tracker.models import SessionToken, User

logger = get_logger(__name__)


class AuthenticationError(Exception):
    """Credentials or token rejected."""


class RegistrationError(Exception):
    """Account could not be created."""


@dataclass(frozen=True)
class Principal:
    user_id: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def hash_password(password: str, salt: str, iterations: Optional[int] = None) -> str:
    rounds = iterations or get_settings().password_hash_iterations
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), rounds)
    return digest.hex()


def verify_password(password: str, salt: str, expected_hash: str) -> bool:
    return hmac.compare_digest(hash_password(password, salt), expected_hash)


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def register_user(
    session: AsyncSession, email: str, password: str, role: str = "user"
) -> User:
    email = normalize_email(email)
    existing = await session.execute(select(User).where(User.email == email))
    if existing.scalar_one_or_none() is not None:
        raise RegistrationError("An account with this email already exists")

    salt = secrets.token_hex(16)
    user = User(email=email, password_hash=hash_password(password, salt), salt=salt, role=role)
    session.add(user)
    await session.flush()
    logger.info("User registered", user_id=user.id, role=role)
    return user


async def authenticate(session: AsyncSession, email: str, password: str) -> User:
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.salt, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    return user


async def issue_token(session: AsyncSession, user: User) -> SessionToken:
    now = datetime.now(timezone.utc)
    token = SessionToken(
        token=secrets.token_hex(32),
        user_id=user.id,
        created_at=now,
        expires_at=now + timedelta(hours=get_settings().session_ttl_hours),
    )
    session.add(token)
    await session.flush()
    return token


async def principal_for_token(session: AsyncSession, token: str) -> Principal:
    result = await session.execute(select(SessionToken).where(SessionToken.token == token))
    record = result.scalar_one_or_none()
    if record is None:
        raise AuthenticationError("Invalid token")

    if record.expires_at is not None and record.expires_at < datetime.now(timezone.utc):
        await session.execute(delete(SessionToken).where(SessionToken.id == record.id))
        await session.commit()
        raise AuthenticationError("Token expired")

    user = await session.get(User, record.user_id)
    if user is None:
        raise AuthenticationError("Invalid token")
    return Principal(user_id=user.id, email=user.email, role=user.role)
