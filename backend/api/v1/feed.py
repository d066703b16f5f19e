"""Feed endpoints: paged timelines and custom feed management."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, get_optional_user
from models import CustomFeed, User
from models.common import ensure_utc
from services.custom_feeds import (
    MAX_FEED_NAME_LENGTH,
    create_feed,
    delete_feed,
    list_feeds,
    update_feed,
)
from services.feed.executor import FeedSource, get_feed_page

from .pagination import CursorParam, LimitParam
from .post_views import FeedPageResponse, build_feed_page_response

router = APIRouter(tags=["feed"])


class CustomFeedResponse(BaseModel):
    id: int
    owner_id: str
    name: str
    filter: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_feed(cls, feed: CustomFeed) -> "CustomFeedResponse":
        if feed.id is None:
            raise ValueError("Feed record missing identifier")
        return cls(
            id=feed.id,
            owner_id=feed.owner_id,
            name=feed.name,
            filter=feed.filter_document,
            created_at=ensure_utc(feed.created_at),
            updated_at=ensure_utc(feed.updated_at),
        )


class CustomFeedEnvelope(BaseModel):
    feed: CustomFeedResponse


class CustomFeedListResponse(BaseModel):
    feeds: list[CustomFeedResponse]


class CustomFeedCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=MAX_FEED_NAME_LENGTH)
    filter: dict[str, Any]


class CustomFeedUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=MAX_FEED_NAME_LENGTH)
    filter: dict[str, Any] | None = None


class FeedQueryRequest(BaseModel):
    filter: dict[str, Any]
    limit: int | None = Field(default=None, ge=1)
    cursor: str | None = None


class SuccessResponse(BaseModel):
    success: bool = True


@router.get("/feed", response_model=FeedPageResponse)
async def get_feed(
    feed_id: int | None = None,
    limit: LimitParam = None,
    cursor: CursorParam = None,
    session: AsyncSession = Depends(get_db),
    viewer: User | None = Depends(get_optional_user),
) -> FeedPageResponse:
    """Return one page of the default timeline or of a stored custom feed."""
    viewer_id = viewer.id if viewer is not None else None
    page = await get_feed_page(
        session,
        viewer_id=viewer_id,
        source=FeedSource(feed_id=feed_id),
        cursor=cursor,
        limit=limit,
    )
    return await build_feed_page_response(session, page, viewer_id=viewer_id)


@router.post("/feed/query", response_model=FeedPageResponse)
async def query_feed(
    payload: FeedQueryRequest,
    session: AsyncSession = Depends(get_db),
    viewer: User | None = Depends(get_optional_user),
) -> FeedPageResponse:
    """Run an unsaved filter through the same paging engine."""
    viewer_id = viewer.id if viewer is not None else None
    page = await get_feed_page(
        session,
        viewer_id=viewer_id,
        source=FeedSource(ad_hoc_filter=payload.filter),
        cursor=payload.cursor,
        limit=payload.limit,
    )
    return await build_feed_page_response(session, page, viewer_id=viewer_id)


@router.get("/feeds", response_model=CustomFeedListResponse)
async def list_custom_feeds(
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CustomFeedListResponse:
    feeds = await list_feeds(session, owner_id=current_user.id)
    return CustomFeedListResponse(feeds=[CustomFeedResponse.from_feed(feed) for feed in feeds])


@router.post("/feeds", response_model=CustomFeedEnvelope, status_code=status.HTTP_201_CREATED)
async def create_custom_feed(
    payload: CustomFeedCreateRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CustomFeedEnvelope:
    feed = await create_feed(
        session,
        owner_id=current_user.id,
        name=payload.name,
        filter_document=payload.filter,
    )
    return CustomFeedEnvelope(feed=CustomFeedResponse.from_feed(feed))


@router.patch("/feeds/{feed_id}", response_model=CustomFeedEnvelope)
async def update_custom_feed(
    feed_id: int,
    payload: CustomFeedUpdateRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CustomFeedEnvelope:
    feed = await update_feed(
        session,
        owner_id=current_user.id,
        feed_id=feed_id,
        name=payload.name,
        filter_document=payload.filter,
    )
    return CustomFeedEnvelope(feed=CustomFeedResponse.from_feed(feed))


@router.delete("/feeds/{feed_id}", response_model=SuccessResponse)
async def delete_custom_feed(
    feed_id: int,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SuccessResponse:
    await delete_feed(session, owner_id=current_user.id, feed_id=feed_id)
    return SuccessResponse()
