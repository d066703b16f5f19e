"""Social graph store: follow edges and derived friendship rows.

Every helper here works inside the caller's session and never commits; the
follow service owns the transaction boundary.
"""

from __future__ import annotations

from typing import Any, cast

from sqlalchemy import Select, delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import Follow, Friendship, User


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def friendship_pair(user_a: str, user_b: str) -> tuple[str, str]:
    """Return the canonical (low, high) key for an unordered user pair."""
    if user_a == user_b:
        raise ValueError("A friendship pair needs two distinct users")
    return (user_a, user_b) if user_a < user_b else (user_b, user_a)


def pair_lock_statement(user_a: str, user_b: str) -> Select[Any]:
    """``SELECT ... FOR UPDATE`` over both user rows, ordered by id.

    Locking in canonical order keeps two transactions that touch the same pair
    from deadlocking on each other.
    """
    low, high = friendship_pair(user_a, user_b)
    user_id = cast(Any, User.id)
    return select(user_id).where(user_id.in_((low, high))).order_by(user_id).with_for_update()


async def lock_pair(session: AsyncSession, user_a: str, user_b: str) -> None:
    """Serialize edge mutations on the pair until the caller's transaction ends."""
    await session.execute(pair_lock_statement(user_a, user_b))


async def user_exists(session: AsyncSession, user_id: str) -> bool:
    result = await session.execute(
        select(User.id).where(_eq(User.id, user_id)).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def edge_exists(
    session: AsyncSession,
    *,
    follower_id: str,
    followee_id: str,
) -> bool:
    result = await session.execute(
        select(Follow.follower_id)
        .where(
            _eq(Follow.follower_id, follower_id),
            _eq(Follow.followee_id, followee_id),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def create_edge(
    session: AsyncSession,
    *,
    follower_id: str,
    followee_id: str,
) -> Follow:
    edge = Follow(follower_id=follower_id, followee_id=followee_id)
    session.add(edge)
    await session.flush()
    return edge


async def delete_edge(
    session: AsyncSession,
    *,
    follower_id: str,
    followee_id: str,
) -> bool:
    """Delete the edge; returns ``False`` when there was nothing to delete."""
    result = await session.execute(
        delete(Follow).where(
            _eq(Follow.follower_id, follower_id),
            _eq(Follow.followee_id, followee_id),
        )
    )
    return bool(getattr(result, "rowcount", 0))


async def friendship_exists(session: AsyncSession, user_a: str, user_b: str) -> bool:
    low, high = friendship_pair(user_a, user_b)
    result = await session.execute(
        select(Friendship.user_low_id)
        .where(
            _eq(Friendship.user_low_id, low),
            _eq(Friendship.user_high_id, high),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def upsert_friendship(session: AsyncSession, user_a: str, user_b: str) -> bool:
    """Ensure the friendship row exists; returns ``True`` only when it was created."""
    if await friendship_exists(session, user_a, user_b):
        return False
    low, high = friendship_pair(user_a, user_b)
    session.add(Friendship(user_low_id=low, user_high_id=high))
    await session.flush()
    return True


async def delete_friendship(session: AsyncSession, user_a: str, user_b: str) -> bool:
    low, high = friendship_pair(user_a, user_b)
    result = await session.execute(
        delete(Friendship).where(
            _eq(Friendship.user_low_id, low),
            _eq(Friendship.user_high_id, high),
        )
    )
    return bool(getattr(result, "rowcount", 0))


__all__ = [
    "create_edge",
    "delete_edge",
    "delete_friendship",
    "edge_exists",
    "friendship_exists",
    "friendship_pair",
    "lock_pair",
    "pair_lock_statement",
    "upsert_friendship",
    "user_exists",
]
