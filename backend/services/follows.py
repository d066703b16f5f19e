"""Follow and unfollow operations plus keyset-paginated social lists."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, cast

from sqlalchemy import case, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core.errors import NotFoundError, ValidationError
from db.errors import is_unique_violation
from models import Follow, Friendship, User
from models.common import ensure_utc

from .feed.cursor import SortKey, decode_cursor, encode_cursor
from .feed.sql import build_keyset_clause
from .friendships import on_follow_created, on_follow_removed
from .social_graph import (
    create_edge,
    delete_edge,
    edge_exists,
    friendship_exists,
    lock_pair,
    user_exists,
)

logger = logging.getLogger(__name__)

FOLLOWERS_SCOPE = "followers:created_at_desc,user_id_desc"
FOLLOWING_SCOPE = "following:created_at_desc,user_id_desc"
FRIENDS_SCOPE = "friends:created_at_desc,user_id_desc"


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


@dataclass(frozen=True, slots=True)
class FollowStatus:
    following: bool
    followed_by: bool
    friends: bool


@dataclass(frozen=True, slots=True)
class SocialListEntry:
    user: User
    since: datetime


@dataclass(frozen=True, slots=True)
class SocialListPage:
    entries: list[SocialListEntry]
    next_cursor: str | None


async def _require_target(session: AsyncSession, *, viewer_id: str, target_id: str) -> None:
    if viewer_id == target_id:
        raise ValidationError("You cannot follow yourself")
    if not await user_exists(session, target_id):
        raise NotFoundError("User not found")


async def follow_user(session: AsyncSession, *, viewer_id: str, target_id: str) -> bool:
    """Create the viewer -> target edge and derive friendship in one transaction.

    Both users are row-locked first, so the reverse-edge check cannot miss an
    opposite follow or unfollow running at the same time. Following an
    already-followed user is a no-op. Returns ``True`` when a new edge was written.
    """
    await _require_target(session, viewer_id=viewer_id, target_id=target_id)

    try:
        await lock_pair(session, viewer_id, target_id)
        if await edge_exists(session, follower_id=viewer_id, followee_id=target_id):
            await session.rollback()
            return False
        await create_edge(session, follower_id=viewer_id, followee_id=target_id)
        await on_follow_created(session, follower_id=viewer_id, followee_id=target_id)
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if not is_unique_violation(exc):
            raise
        # Only a concurrent insert of this same edge is folded into success.
        if not await edge_exists(session, follower_id=viewer_id, followee_id=target_id):
            raise
        logger.debug(
            "Follow raced with a concurrent insert",
            extra={"follower_id": viewer_id, "followee_id": target_id},
        )
        return False
    except Exception:
        await session.rollback()
        raise
    return True


async def unfollow_user(session: AsyncSession, *, viewer_id: str, target_id: str) -> None:
    """Remove the viewer -> target edge and the pair's friendship atomically."""
    if viewer_id == target_id:
        raise ValidationError("You cannot unfollow yourself")
    try:
        await lock_pair(session, viewer_id, target_id)
        removed = await delete_edge(session, follower_id=viewer_id, followee_id=target_id)
        if not removed:
            raise NotFoundError("Not following this user")
        await on_follow_removed(session, follower_id=viewer_id, followee_id=target_id)
        await session.commit()
    except Exception:
        await session.rollback()
        raise


async def get_follow_status(
    session: AsyncSession,
    *,
    viewer_id: str,
    target_id: str,
) -> FollowStatus:
    if viewer_id == target_id:
        return FollowStatus(following=False, followed_by=False, friends=False)
    if not await user_exists(session, target_id):
        raise NotFoundError("User not found")
    return FollowStatus(
        following=await edge_exists(session, follower_id=viewer_id, followee_id=target_id),
        followed_by=await edge_exists(session, follower_id=target_id, followee_id=viewer_id),
        friends=await friendship_exists(session, viewer_id, target_id),
    )


async def _run_list_query(
    session: AsyncSession,
    *,
    query: Any,
    created_at_column: Any,
    other_id_column: Any,
    scope: str,
    target_id: str,
    cursor: str | None,
    limit: int,
) -> SocialListPage:
    key = decode_cursor(cursor, scope=scope, binding=target_id, id_type=str)
    if key is not None:
        query = query.where(build_keyset_clause(created_at_column, other_id_column, key))
    query = query.order_by(created_at_column.desc(), other_id_column.desc()).limit(limit + 1)

    result = await session.execute(query)
    rows = result.all()
    has_more = len(rows) > limit
    if has_more:
        rows = rows[:limit]

    entries = [SocialListEntry(user=user, since=ensure_utc(since)) for user, since in rows]
    next_cursor = None
    if has_more and entries:
        last = entries[-1]
        next_cursor = encode_cursor(
            SortKey(created_at=last.since, id=cast(str, last.user.id)),
            scope=scope,
            binding=target_id,
        )
    return SocialListPage(entries=entries, next_cursor=next_cursor)


async def list_followers(
    session: AsyncSession,
    *,
    target_id: str,
    cursor: str | None,
    limit: int,
) -> SocialListPage:
    if not await user_exists(session, target_id):
        raise NotFoundError("User not found")
    created_at_column = cast(Any, Follow.created_at)
    follower_column = cast(Any, Follow.follower_id)
    query = (
        select(cast(Any, User), created_at_column)
        .join(Follow, _eq(Follow.follower_id, User.id))
        .where(_eq(Follow.followee_id, target_id))
    )
    return await _run_list_query(
        session,
        query=query,
        created_at_column=created_at_column,
        other_id_column=follower_column,
        scope=FOLLOWERS_SCOPE,
        target_id=target_id,
        cursor=cursor,
        limit=limit,
    )


async def list_following(
    session: AsyncSession,
    *,
    target_id: str,
    cursor: str | None,
    limit: int,
) -> SocialListPage:
    if not await user_exists(session, target_id):
        raise NotFoundError("User not found")
    created_at_column = cast(Any, Follow.created_at)
    followee_column = cast(Any, Follow.followee_id)
    query = (
        select(cast(Any, User), created_at_column)
        .join(Follow, _eq(Follow.followee_id, User.id))
        .where(_eq(Follow.follower_id, target_id))
    )
    return await _run_list_query(
        session,
        query=query,
        created_at_column=created_at_column,
        other_id_column=followee_column,
        scope=FOLLOWING_SCOPE,
        target_id=target_id,
        cursor=cursor,
        limit=limit,
    )


async def list_friends(
    session: AsyncSession,
    *,
    target_id: str,
    cursor: str | None,
    limit: int,
) -> SocialListPage:
    if not await user_exists(session, target_id):
        raise NotFoundError("User not found")
    low_column = cast(Any, Friendship.user_low_id)
    high_column = cast(Any, Friendship.user_high_id)
    created_at_column = cast(Any, Friendship.created_at)
    other_id_column = case(
        (_eq(low_column, target_id), high_column),
        else_=low_column,
    )
    query = (
        select(cast(Any, User), created_at_column)
        .join(Friendship, _eq(User.id, other_id_column))
        .where(or_(_eq(low_column, target_id), _eq(high_column, target_id)))
    )
    return await _run_list_query(
        session,
        query=query,
        created_at_column=created_at_column,
        other_id_column=other_id_column,
        scope=FRIENDS_SCOPE,
        target_id=target_id,
        cursor=cursor,
        limit=limit,
    )


__all__ = [
    "FollowStatus",
    "SocialListEntry",
    "SocialListPage",
    "follow_user",
    "get_follow_status",
    "list_followers",
    "list_following",
    "list_friends",
    "unfollow_user",
]
