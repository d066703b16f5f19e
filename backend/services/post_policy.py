"""Post visibility policy checks."""

from __future__ import annotations

from typing import Any, cast

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from models import Follow, Post, PostVisibility

from .social_graph import edge_exists


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def resolve_post_visibility(
    *,
    viewer_id: str | None,
    author_id: str,
    visibility: str,
    viewer_follows_author: bool,
) -> bool:
    """Apply the visibility rule table for one viewer/post pair.

    Rules are evaluated in order: public posts are visible to everyone,
    anonymous viewers see nothing else, authors always see their own posts,
    private posts are author-only and followers-only posts require a
    viewer -> author follow edge. Friendship is never consulted.
    """
    if visibility == PostVisibility.PUBLIC.value:
        return True
    if viewer_id is None:
        return False
    if viewer_id == author_id:
        return True
    if visibility == PostVisibility.PRIVATE.value:
        return False
    if visibility == PostVisibility.FOLLOWERS.value:
        return viewer_follows_author
    return False


async def can_view_post(
    session: AsyncSession,
    *,
    viewer_id: str | None,
    post: Post,
) -> bool:
    """Return whether ``viewer_id`` may see ``post``.

    Soft-deleted posts are visible to their author only. The follow edge is
    looked up only when the rule table actually needs it.
    """
    if post.deleted_at is not None:
        return viewer_id is not None and viewer_id == post.author_id

    needs_edge = (
        viewer_id is not None
        and viewer_id != post.author_id
        and post.visibility == PostVisibility.FOLLOWERS.value
    )
    follows = False
    if needs_edge:
        follows = await edge_exists(
            session,
            follower_id=cast(str, viewer_id),
            followee_id=post.author_id,
        )
    return resolve_post_visibility(
        viewer_id=viewer_id,
        author_id=post.author_id,
        visibility=post.visibility,
        viewer_follows_author=follows,
    )


def build_post_visibility_filter(*, viewer_id: str | None) -> ColumnElement[bool]:
    """Return a per-row predicate equivalent to ``resolve_post_visibility``.

    The follow check is a correlated ``EXISTS`` so a feed query stays a single
    bounded statement regardless of how many accounts the viewer follows.
    """
    visibility_column = cast(Any, Post.visibility)
    is_public = _eq(visibility_column, PostVisibility.PUBLIC.value)
    if viewer_id is None:
        return is_public

    author_column = cast(Any, Post.author_id)
    follows_author = exists(
        select(1).where(
            _eq(Follow.follower_id, viewer_id),
            _eq(Follow.followee_id, author_column),
        )
    )
    return or_(
        is_public,
        _eq(author_column, viewer_id),
        and_(
            _eq(visibility_column, PostVisibility.FOLLOWERS.value),
            follows_author,
        ),
    )


__all__ = [
    "build_post_visibility_filter",
    "can_view_post",
    "resolve_post_visibility",
]
