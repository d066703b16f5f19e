"""Post bookkeeping: creation, lookup, soft delete and like counters."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from enum import Enum
from typing import Any, cast

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core.errors import AuthorizationError, NotFoundError, ValidationError
from db.errors import is_unique_violation
from models import Like, Post, PostTag, PostType, PostVisibility
from models.common import utcnow

from .hashtags import extract_hashtags
from .post_policy import can_view_post

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 5000
MAX_MEDIA_KEYS = 10
MAX_MEDIA_KEY_LENGTH = 512


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


class PostCounter(str, Enum):
    LIKES = "like_count"
    COMMENTS = "comment_count"
    REPOSTS = "repost_count"


def _normalize_media_keys(media_keys: Sequence[str]) -> list[str]:
    if len(media_keys) > MAX_MEDIA_KEYS:
        raise ValidationError(f"A post can reference at most {MAX_MEDIA_KEYS} media items")
    normalized: list[str] = []
    for key in media_keys:
        cleaned = key.strip()
        if not cleaned or len(cleaned) > MAX_MEDIA_KEY_LENGTH:
            raise ValidationError("Invalid media key")
        normalized.append(cleaned)
    return normalized


async def create_post(
    session: AsyncSession,
    *,
    author_id: str,
    post_type: str,
    content: str | None,
    media_keys: Sequence[str] = (),
    visibility: str = PostVisibility.PUBLIC.value,
) -> Post:
    try:
        resolved_type = PostType(post_type)
    except ValueError:
        raise ValidationError(f"Unknown post type {post_type!r}") from None
    try:
        resolved_visibility = PostVisibility(visibility)
    except ValueError:
        raise ValidationError(f"Unknown visibility {visibility!r}") from None

    cleaned_content = content.strip() if content is not None else None
    if cleaned_content == "":
        cleaned_content = None
    if cleaned_content is not None and len(cleaned_content) > MAX_CONTENT_LENGTH:
        raise ValidationError(f"Content exceeds {MAX_CONTENT_LENGTH} characters")

    keys = _normalize_media_keys(media_keys)
    if resolved_type is PostType.TEXT:
        if cleaned_content is None:
            raise ValidationError("Text posts require content")
    elif not keys:
        raise ValidationError(f"{resolved_type.value.capitalize()} posts require at least one media item")

    tags = extract_hashtags(cleaned_content or "")

    post = Post(
        author_id=author_id,
        post_type=resolved_type.value,
        content=cleaned_content,
        media_keys=keys,
        visibility=resolved_visibility.value,
    )
    try:
        session.add(post)
        await session.flush()
        for tag in tags:
            session.add(PostTag(post_id=cast(int, post.id), tag=tag))
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    await session.refresh(post)
    logger.debug("Post created", extra={"post_id": post.id, "author_id": author_id})
    return post


async def get_post(session: AsyncSession, post_id: int) -> Post | None:
    result = await session.execute(select(Post).where(_eq(Post.id, post_id)).limit(1))
    return result.scalar_one_or_none()


async def get_visible_post(
    session: AsyncSession,
    *,
    viewer_id: str | None,
    post_id: int,
) -> Post:
    """Return the post or raise ``NotFoundError`` when missing or hidden from the viewer."""
    post = await get_post(session, post_id)
    if post is None or not await can_view_post(session, viewer_id=viewer_id, post=post):
        raise NotFoundError("Post not found")
    return post


async def get_post_tags(session: AsyncSession, post_ids: Sequence[int]) -> dict[int, list[str]]:
    if not post_ids:
        return {}
    tag_column = cast(Any, PostTag.tag)
    post_id_column = cast(Any, PostTag.post_id)
    result = await session.execute(
        select(post_id_column, tag_column)
        .where(post_id_column.in_(list(post_ids)))
        .order_by(post_id_column, tag_column)
    )
    tags: dict[int, list[str]] = {}
    for post_id, tag in result.all():
        tags.setdefault(post_id, []).append(tag)
    return tags


async def soft_delete_post(session: AsyncSession, *, viewer_id: str, post_id: int) -> None:
    post = await get_visible_post(session, viewer_id=viewer_id, post_id=post_id)
    if post.author_id != viewer_id:
        raise AuthorizationError("Only the author can delete this post")
    if post.deleted_at is not None:
        return
    now = utcnow()
    post.deleted_at = now
    post.updated_at = now
    session.add(post)
    await session.commit()


async def adjust_post_counter(
    session: AsyncSession,
    *,
    post_id: int,
    counter: PostCounter,
    delta: int,
) -> bool:
    """Apply ``delta`` to a denormalized counter unless it would go negative.

    The guard lives in the UPDATE's WHERE clause so concurrent adjustments can
    never drive the stored value below zero. Returns whether a row changed.
    Does not commit.
    """
    column = cast(Any, getattr(Post, counter.value))
    result = await session.execute(
        update(Post)
        .where(_eq(Post.id, post_id), column + delta >= 0)
        .values({counter.value: column + delta})
        .execution_options(synchronize_session=False)
    )
    return bool(getattr(result, "rowcount", 0))


async def _get_likeable_post(session: AsyncSession, *, viewer_id: str, post_id: int) -> Post:
    post = await get_visible_post(session, viewer_id=viewer_id, post_id=post_id)
    # Owners can still open their deleted posts, but counters are frozen.
    if post.deleted_at is not None:
        raise NotFoundError("Post not found")
    return post


async def _like_exists(session: AsyncSession, *, user_id: str, post_id: int) -> bool:
    result = await session.execute(
        select(Like.post_id)
        .where(_eq(Like.user_id, user_id), _eq(Like.post_id, post_id))
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def like_post(session: AsyncSession, *, viewer_id: str, post_id: int) -> bool:
    """Like a visible post. Liking twice is a no-op; returns whether a like was added."""
    await _get_likeable_post(session, viewer_id=viewer_id, post_id=post_id)
    if await _like_exists(session, user_id=viewer_id, post_id=post_id):
        return False
    try:
        session.add(Like(user_id=viewer_id, post_id=post_id))
        await session.flush()
        await adjust_post_counter(session, post_id=post_id, counter=PostCounter.LIKES, delta=1)
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if not is_unique_violation(exc):
            raise
        return False
    except Exception:
        await session.rollback()
        raise
    return True


async def unlike_post(session: AsyncSession, *, viewer_id: str, post_id: int) -> bool:
    """Remove the viewer's like if present; returns whether a like was removed."""
    await _get_likeable_post(session, viewer_id=viewer_id, post_id=post_id)
    result = await session.execute(
        select(Like).where(_eq(Like.user_id, viewer_id), _eq(Like.post_id, post_id))
    )
    like = result.scalar_one_or_none()
    if like is None:
        return False
    try:
        await session.delete(like)
        await session.flush()
        await adjust_post_counter(session, post_id=post_id, counter=PostCounter.LIKES, delta=-1)
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    return True


__all__ = [
    "MAX_CONTENT_LENGTH",
    "MAX_MEDIA_KEYS",
    "PostCounter",
    "adjust_post_counter",
    "create_post",
    "get_post",
    "get_post_tags",
    "get_visible_post",
    "like_post",
    "soft_delete_post",
    "unlike_post",
]
