"""Owner-private custom feeds: named, persisted filter documents."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, cast

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import ColumnElement

from core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from db.errors import is_unique_violation
from models import CustomFeed
from models.common import utcnow

from .feed.filters import compile_filter, predicate_to_document

logger = logging.getLogger(__name__)

MAX_FEED_NAME_LENGTH = 100


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


def _normalize_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Feed name must not be empty")
    if len(cleaned) > MAX_FEED_NAME_LENGTH:
        raise ValidationError(f"Feed name must be at most {MAX_FEED_NAME_LENGTH} characters")
    return cleaned


def _normalize_filter(document: Mapping[str, Any] | None) -> dict[str, Any]:
    if document is None:
        raise ValidationError("Feed filter is required")
    normalized = predicate_to_document(compile_filter(document))
    return cast(dict[str, Any], normalized)


async def _commit_feed(session: AsyncSession, feed: CustomFeed) -> CustomFeed:
    try:
        session.add(feed)
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        if is_unique_violation(exc):
            raise ConflictError("You already have a feed with this name") from None
        raise
    await session.refresh(feed)
    return feed


async def get_feed(session: AsyncSession, feed_id: int) -> CustomFeed | None:
    result = await session.execute(
        select(CustomFeed).where(_eq(CustomFeed.id, feed_id)).limit(1)
    )
    return result.scalar_one_or_none()


async def get_owned_feed(
    session: AsyncSession,
    *,
    owner_id: str | None,
    feed_id: int,
) -> CustomFeed:
    """Return the viewer's own feed. Feeds owned by others are reported as missing."""
    feed = await get_feed(session, feed_id)
    if feed is None or owner_id is None or feed.owner_id != owner_id:
        raise NotFoundError("Feed not found")
    return feed


async def _get_feed_for_write(
    session: AsyncSession,
    *,
    owner_id: str,
    feed_id: int,
) -> CustomFeed:
    feed = await get_feed(session, feed_id)
    if feed is None:
        raise NotFoundError("Feed not found")
    if feed.owner_id != owner_id:
        raise AuthorizationError("You do not own this feed")
    return feed


async def list_feeds(session: AsyncSession, *, owner_id: str) -> list[CustomFeed]:
    result = await session.execute(
        select(CustomFeed)
        .where(_eq(CustomFeed.owner_id, owner_id))
        .order_by(
            CustomFeed.created_at.desc(),  # type: ignore[attr-defined]
            CustomFeed.id.desc(),  # type: ignore[union-attr]
        )
    )
    return list(result.scalars().all())


async def create_feed(
    session: AsyncSession,
    *,
    owner_id: str,
    name: str,
    filter_document: Mapping[str, Any] | None,
) -> CustomFeed:
    cleaned_name = _normalize_name(name)
    feed = CustomFeed(
        owner_id=owner_id,
        name=cleaned_name,
        name_key=cleaned_name.lower(),
        filter_document=_normalize_filter(filter_document),
    )
    feed = await _commit_feed(session, feed)
    logger.info("Custom feed created", extra={"feed_id": feed.id, "owner_id": owner_id})
    return feed


async def update_feed(
    session: AsyncSession,
    *,
    owner_id: str,
    feed_id: int,
    name: str | None = None,
    filter_document: Mapping[str, Any] | None = None,
) -> CustomFeed:
    if name is None and filter_document is None:
        raise ValidationError("Provide a new name or filter")

    feed = await _get_feed_for_write(session, owner_id=owner_id, feed_id=feed_id)
    if name is not None:
        cleaned_name = _normalize_name(name)
        feed.name = cleaned_name
        feed.name_key = cleaned_name.lower()
    if filter_document is not None:
        feed.filter_document = _normalize_filter(filter_document)
    feed.updated_at = utcnow()
    return await _commit_feed(session, feed)


async def delete_feed(session: AsyncSession, *, owner_id: str, feed_id: int) -> None:
    feed = await _get_feed_for_write(session, owner_id=owner_id, feed_id=feed_id)
    await session.delete(feed)
    await session.commit()
    logger.info("Custom feed deleted", extra={"feed_id": feed_id, "owner_id": owner_id})


__all__ = [
    "MAX_FEED_NAME_LENGTH",
    "create_feed",
    "delete_feed",
    "get_feed",
    "get_owned_feed",
    "list_feeds",
    "update_feed",
]
