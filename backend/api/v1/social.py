"""Social graph endpoints: follow, unfollow, status and relationship lists."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db
from core.config import settings
from models import User
from services.follows import (
    SocialListPage,
    follow_user,
    get_follow_status,
    list_followers,
    list_following,
    list_friends,
    unfollow_user,
)

from .pagination import CursorParam, LimitParam

router = APIRouter(prefix="/social", tags=["social"])


class FollowRequest(BaseModel):
    user_id: str = Field(min_length=1, max_length=36)


class FollowResponse(BaseModel):
    following: bool


class FollowStatusResponse(BaseModel):
    following: bool
    followed_by: bool
    friends: bool


class SocialUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    name: str | None = None
    since: datetime


class SocialListResponse(BaseModel):
    users: list[SocialUserResponse]
    next_cursor: str | None = None


def _list_limit(limit: int | None) -> int:
    if limit is None:
        return settings.feed_default_page_size
    return min(limit, settings.feed_max_page_size)


def _to_list_response(page: SocialListPage) -> SocialListResponse:
    return SocialListResponse(
        users=[
            SocialUserResponse(
                id=entry.user.id,
                username=entry.user.username,
                name=entry.user.name,
                since=entry.since,
            )
            for entry in page.entries
        ],
        next_cursor=page.next_cursor,
    )


@router.post("/follow", response_model=FollowResponse)
async def follow(
    payload: FollowRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FollowResponse:
    await follow_user(session, viewer_id=current_user.id, target_id=payload.user_id)
    return FollowResponse(following=True)


@router.post("/unfollow", response_model=FollowResponse)
async def unfollow(
    payload: FollowRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FollowResponse:
    await unfollow_user(session, viewer_id=current_user.id, target_id=payload.user_id)
    return FollowResponse(following=False)


@router.get("/status/{user_id}", response_model=FollowStatusResponse)
async def follow_status(
    user_id: str,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FollowStatusResponse:
    status = await get_follow_status(session, viewer_id=current_user.id, target_id=user_id)
    return FollowStatusResponse(
        following=status.following,
        followed_by=status.followed_by,
        friends=status.friends,
    )


@router.get("/followers", response_model=SocialListResponse)
async def followers(
    user_id: str | None = None,
    limit: LimitParam = None,
    cursor: CursorParam = None,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SocialListResponse:
    page = await list_followers(
        session,
        target_id=user_id or current_user.id,
        cursor=cursor,
        limit=_list_limit(limit),
    )
    return _to_list_response(page)


@router.get("/following", response_model=SocialListResponse)
async def following(
    user_id: str | None = None,
    limit: LimitParam = None,
    cursor: CursorParam = None,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SocialListResponse:
    page = await list_following(
        session,
        target_id=user_id or current_user.id,
        cursor=cursor,
        limit=_list_limit(limit),
    )
    return _to_list_response(page)


@router.get("/friends", response_model=SocialListResponse)
async def friends(
    user_id: str | None = None,
    limit: LimitParam = None,
    cursor: CursorParam = None,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> SocialListResponse:
    page = await list_friends(
        session,
        target_id=user_id or current_user.id,
        cursor=cursor,
        limit=_list_limit(limit),
    )
    return _to_list_response(page)
