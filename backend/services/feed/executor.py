"""Feed executor: one bounded, visibility-filtered, keyset-paginated query per page."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, cast

from sqlalchemy import and_, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core.config import settings
from core.errors import InternalError, ValidationError
from models import Post, User

from ..custom_feeds import get_owned_feed
from ..post_policy import build_post_visibility_filter
from .cursor import SortKey, decode_cursor, encode_cursor
from .filters import CompiledPredicate, MATCH_ALL, compile_filter, filter_fingerprint
from .sql import build_filter_clause, build_keyset_clause

logger = logging.getLogger(__name__)

POSTS_CURSOR_SCOPE = "posts:created_at_desc,id_desc"


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


@dataclass(frozen=True, slots=True)
class FeedSource:
    """Where a page's filter comes from. Neither set means the default timeline."""

    feed_id: int | None = None
    ad_hoc_filter: Mapping[str, Any] | None = None


@dataclass(frozen=True, slots=True)
class FeedRow:
    post: Post
    author_username: str | None
    author_name: str | None


@dataclass(frozen=True, slots=True)
class FeedPage:
    rows: list[FeedRow]
    next_cursor: str | None


def clamp_page_limit(limit: int | None) -> int:
    """Apply the default page size and the hard maximum to a requested limit."""
    if limit is None:
        return min(settings.feed_default_page_size, settings.feed_max_page_size)
    if limit < 1:
        raise ValidationError("limit must be at least 1")
    return min(limit, settings.feed_max_page_size)


async def _resolve_predicate(
    session: AsyncSession,
    *,
    viewer_id: str | None,
    source: FeedSource,
) -> CompiledPredicate:
    if source.feed_id is not None:
        feed = await get_owned_feed(session, owner_id=viewer_id, feed_id=source.feed_id)
        return compile_filter(feed.filter_document)
    if source.ad_hoc_filter is not None:
        return compile_filter(source.ad_hoc_filter)
    return MATCH_ALL


async def get_feed_page(
    session: AsyncSession,
    *,
    viewer_id: str | None,
    source: FeedSource,
    cursor: str | None = None,
    limit: int | None = None,
) -> FeedPage:
    """Return one page of visible posts matching ``source``.

    The cursor is bound to the compiled filter's fingerprint, so a cursor
    issued for one filter is rejected when replayed against another. A cursor
    pointing at a post that has since disappeared still continues strictly
    after its sort key.
    """
    page_limit = clamp_page_limit(limit)
    predicate = await _resolve_predicate(session, viewer_id=viewer_id, source=source)
    binding = filter_fingerprint(predicate)
    key = decode_cursor(cursor, scope=POSTS_CURSOR_SCOPE, binding=binding, id_type=int)

    created_at_column = cast(Any, Post.created_at)
    id_column = cast(Any, Post.id)
    conditions = [
        build_filter_clause(predicate),
        build_post_visibility_filter(viewer_id=viewer_id),
        cast(Any, Post.deleted_at).is_(None),
    ]
    if key is not None:
        conditions.append(build_keyset_clause(created_at_column, id_column, key))

    post_entity = cast(Any, Post)
    author_username_column = cast(ColumnElement[str | None], User.username)
    author_name_column = cast(ColumnElement[str | None], User.name)
    query = (
        select(post_entity, author_username_column, author_name_column)
        .join(User, _eq(User.id, Post.author_id))
        .where(and_(*conditions))
        .order_by(created_at_column.desc(), id_column.desc())
        .limit(page_limit + 1)
    )

    try:
        result = await session.execute(query)
        rows = result.all()
    except DBAPIError as exc:
        logger.exception("Feed query failed", extra={"viewer_id": viewer_id})
        raise InternalError("Feed is temporarily unavailable") from exc

    has_more = len(rows) > page_limit
    if has_more:
        rows = rows[:page_limit]

    feed_rows = [
        FeedRow(post=post, author_username=username, author_name=name)
        for post, username, name in rows
    ]
    next_cursor = None
    if has_more and feed_rows:
        last_post = feed_rows[-1].post
        next_cursor = encode_cursor(
            SortKey(created_at=last_post.created_at, id=cast(int, last_post.id)),
            scope=POSTS_CURSOR_SCOPE,
            binding=binding,
        )
    return FeedPage(rows=feed_rows, next_cursor=next_cursor)


__all__ = [
    "FeedPage",
    "FeedRow",
    "FeedSource",
    "POSTS_CURSOR_SCOPE",
    "clamp_page_limit",
    "get_feed_page",
]
