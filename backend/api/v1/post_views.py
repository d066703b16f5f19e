"""Shared post/feed view models and response helpers."""

from __future__ import annotations

from datetime import datetime
from typing import Any, cast

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import Like, Post
from models.common import ensure_utc
from services.feed.executor import FeedPage
from services.posts import get_post_tags


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


class PostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    author_id: str
    author_name: str | None = None
    author_username: str | None = None
    post_type: str
    content: str | None = None
    media_keys: list[str] = []
    visibility: str
    tags: list[str] = []
    like_count: int = 0
    comment_count: int = 0
    repost_count: int = 0
    viewer_has_liked: bool = False
    created_at: datetime
    deleted_at: datetime | None = None

    @classmethod
    def from_post(
        cls,
        post: Post,
        author_name: str | None = None,
        author_username: str | None = None,
        *,
        tags: list[str] | None = None,
        viewer_has_liked: bool = False,
    ) -> "PostResponse":
        if post.id is None:
            raise ValueError("Post record missing identifier")
        return cls(
            id=post.id,
            author_id=post.author_id,
            author_name=author_name,
            author_username=author_username,
            post_type=post.post_type,
            content=post.content,
            media_keys=list(post.media_keys or []),
            visibility=post.visibility,
            tags=tags or [],
            like_count=post.like_count,
            comment_count=post.comment_count,
            repost_count=post.repost_count,
            viewer_has_liked=viewer_has_liked,
            created_at=ensure_utc(post.created_at),
            deleted_at=ensure_utc(post.deleted_at) if post.deleted_at else None,
        )


PostResponse.model_rebuild()


class FeedPageResponse(BaseModel):
    posts: list[PostResponse]
    next_cursor: str | None = None


async def collect_viewer_likes(
    session: AsyncSession,
    post_ids: list[int],
    viewer_id: str | None,
) -> set[int]:
    if not post_ids or viewer_id is None:
        return set()
    post_id_column = cast(Any, Like.post_id)
    result = await session.execute(
        select(post_id_column).where(
            _eq(Like.user_id, viewer_id),
            post_id_column.in_(post_ids),
        )
    )
    return {post_id for post_id in result.scalars().all()}


async def build_feed_page_response(
    session: AsyncSession,
    page: FeedPage,
    *,
    viewer_id: str | None,
) -> FeedPageResponse:
    post_ids = [row.post.id for row in page.rows if row.post.id is not None]
    tags = await get_post_tags(session, post_ids)
    liked = await collect_viewer_likes(session, post_ids, viewer_id)
    posts = [
        PostResponse.from_post(
            row.post,
            author_name=row.author_name,
            author_username=row.author_username,
            tags=tags.get(cast(int, row.post.id), []),
            viewer_has_liked=row.post.id in liked,
        )
        for row in page.rows
    ]
    return FeedPageResponse(posts=posts, next_cursor=page.next_cursor)
