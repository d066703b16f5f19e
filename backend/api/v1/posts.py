"""Post creation, retrieval, deletion and like endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, get_optional_user
from models import PostType, PostVisibility, User
from services.posts import (
    MAX_CONTENT_LENGTH,
    MAX_MEDIA_KEYS,
    create_post,
    get_post_tags,
    get_visible_post,
    like_post,
    soft_delete_post,
    unlike_post,
)

from .post_views import PostResponse, collect_viewer_likes

router = APIRouter(prefix="/posts", tags=["posts"])


class PostCreateRequest(BaseModel):
    post_type: PostType = PostType.TEXT
    content: str | None = Field(default=None, max_length=MAX_CONTENT_LENGTH)
    media_keys: list[str] = Field(default_factory=list, max_length=MAX_MEDIA_KEYS)
    visibility: PostVisibility = PostVisibility.PUBLIC


class LikeResponse(BaseModel):
    liked: bool
    changed: bool


async def _render_post(
    session: AsyncSession,
    post_id: int,
    *,
    viewer: User | None,
) -> PostResponse:
    viewer_id = viewer.id if viewer is not None else None
    post = await get_visible_post(session, viewer_id=viewer_id, post_id=post_id)
    await session.refresh(post)
    author = await session.get(User, post.author_id)
    tags = await get_post_tags(session, [post_id])
    liked = await collect_viewer_likes(session, [post_id], viewer_id)
    return PostResponse.from_post(
        post,
        author_name=author.name if author else None,
        author_username=author.username if author else None,
        tags=tags.get(post_id, []),
        viewer_has_liked=post_id in liked,
    )


@router.post("", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post_endpoint(
    payload: PostCreateRequest,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> PostResponse:
    post = await create_post(
        session,
        author_id=current_user.id,
        post_type=payload.post_type.value,
        content=payload.content,
        media_keys=payload.media_keys,
        visibility=payload.visibility.value,
    )
    tags = await get_post_tags(session, [post.id] if post.id is not None else [])
    return PostResponse.from_post(
        post,
        author_name=current_user.name,
        author_username=current_user.username,
        tags=tags.get(post.id, []) if post.id is not None else [],
    )


@router.get("/{post_id}", response_model=PostResponse)
async def get_post_endpoint(
    post_id: int,
    session: AsyncSession = Depends(get_db),
    viewer: User | None = Depends(get_optional_user),
) -> PostResponse:
    return await _render_post(session, post_id, viewer=viewer)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post_endpoint(
    post_id: int,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Response:
    await soft_delete_post(session, viewer_id=current_user.id, post_id=post_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{post_id}/likes", response_model=LikeResponse)
async def like_post_endpoint(
    post_id: int,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> LikeResponse:
    changed = await like_post(session, viewer_id=current_user.id, post_id=post_id)
    return LikeResponse(liked=True, changed=changed)


@router.delete("/{post_id}/likes", response_model=LikeResponse)
async def unlike_post_endpoint(
    post_id: int,
    session: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> LikeResponse:
    changed = await unlike_post(session, viewer_id=current_user.id, post_id=post_id)
    return LikeResponse(liked=False, changed=changed)
