"""Shared FastAPI dependencies."""

from __future__ import annotations

from collections.abc import AsyncIterator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core import subject_from_access_token
from core.errors import AuthenticationError
from db.session import get_session
from models import User


async def get_db() -> AsyncIterator[AsyncSession]:
    async for session in get_session():
        yield session


def _bearer_token(request: Request) -> str | None:
    authorization = request.headers.get("authorization")
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        raise AuthenticationError("Invalid authorization header")
    return value.strip()


async def get_optional_user(
    request: Request,
    session: AsyncSession = Depends(get_db),
) -> User | None:
    """Resolve the viewer from a bearer token; anonymous requests yield ``None``.

    A token that is present but invalid is rejected rather than downgraded to
    anonymous access.
    """
    token = _bearer_token(request)
    if token is None:
        return None
    try:
        user_id = subject_from_access_token(token)
    except ValueError:
        raise AuthenticationError("Invalid or expired token") from None

    user = await session.get(User, user_id)
    if user is None:
        raise AuthenticationError("Unknown user")
    return user


async def get_current_user(user: User | None = Depends(get_optional_user)) -> User:
    if user is None:
        raise AuthenticationError("Authentication required")
    return user
