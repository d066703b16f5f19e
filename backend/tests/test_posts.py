"""Tests for post creation, visibility-gated reads, deletion and like counters."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Follow, Post, PostTag
from models.common import utcnow
from services.posts import PostCounter, adjust_post_counter


async def _like_count(session: AsyncSession, post_id: int) -> int:
    result = await session.execute(select(Post.like_count).where(Post.id == post_id))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_create_text_post_extracts_hashtags(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_user,
    auth_headers,
):
    author = await make_user("author")

    response = await async_client.post(
        "/api/v1/posts",
        json={"content": "Late night #Jazz and #blues #jazz", "visibility": "followers"},
        headers=auth_headers(author),
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["post_type"] == "text"
    assert body["visibility"] == "followers"
    assert body["tags"] == ["blues", "jazz"]

    result = await db_session.execute(select(PostTag.tag).where(PostTag.post_id == body["id"]))
    assert sorted(result.scalars().all()) == ["blues", "jazz"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"post_type": "text", "content": "   "},
        {"post_type": "image", "content": "no media"},
        {"post_type": "podcast", "content": "nope"},
        {"post_type": "text", "content": "hi", "visibility": "friends"},
    ],
)
async def test_create_post_validation(
    async_client: AsyncClient,
    make_user,
    auth_headers,
    payload,
):
    author = await make_user("author")

    response = await async_client.post("/api/v1/posts", json=payload, headers=auth_headers(author))

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_get_post_respects_visibility(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_user,
    make_post,
    auth_headers,
):
    author = await make_user("author")
    viewer = await make_user("viewer")
    post = await make_post(author, visibility="followers")

    hidden = await async_client.get(f"/api/v1/posts/{post.id}", headers=auth_headers(viewer))
    assert hidden.status_code == 404

    anonymous = await async_client.get(f"/api/v1/posts/{post.id}")
    assert anonymous.status_code == 404

    db_session.add(Follow(follower_id=viewer.id, followee_id=author.id))
    await db_session.commit()

    visible = await async_client.get(f"/api/v1/posts/{post.id}", headers=auth_headers(viewer))
    assert visible.status_code == 200
    assert visible.json()["author_username"] == author.username


@pytest.mark.asyncio
async def test_soft_delete_is_owner_only(
    async_client: AsyncClient,
    make_user,
    make_post,
    auth_headers,
):
    author = await make_user("author")
    viewer = await make_user("viewer")
    post = await make_post(author)

    forbidden = await async_client.delete(f"/api/v1/posts/{post.id}", headers=auth_headers(viewer))
    assert forbidden.status_code == 403

    deleted = await async_client.delete(f"/api/v1/posts/{post.id}", headers=auth_headers(author))
    assert deleted.status_code == 204

    as_viewer = await async_client.get(f"/api/v1/posts/{post.id}", headers=auth_headers(viewer))
    assert as_viewer.status_code == 404

    as_owner = await async_client.get(f"/api/v1/posts/{post.id}", headers=auth_headers(author))
    assert as_owner.status_code == 200
    assert as_owner.json()["deleted_at"] is not None


@pytest.mark.asyncio
async def test_likes_are_idempotent_and_counted(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_user,
    make_post,
    auth_headers,
):
    author = await make_user("author")
    fan = await make_user("fan")
    post = await make_post(author)
    headers = auth_headers(fan)

    first = await async_client.post(f"/api/v1/posts/{post.id}/likes", headers=headers)
    second = await async_client.post(f"/api/v1/posts/{post.id}/likes", headers=headers)
    assert first.json() == {"liked": True, "changed": True}
    assert second.json() == {"liked": True, "changed": False}
    assert await _like_count(db_session, post.id) == 1

    fetched = await async_client.get(f"/api/v1/posts/{post.id}", headers=headers)
    assert fetched.json()["viewer_has_liked"] is True
    assert fetched.json()["like_count"] == 1

    removed = await async_client.delete(f"/api/v1/posts/{post.id}/likes", headers=headers)
    again = await async_client.delete(f"/api/v1/posts/{post.id}/likes", headers=headers)
    assert removed.json() == {"liked": False, "changed": True}
    assert again.json() == {"liked": False, "changed": False}
    assert await _like_count(db_session, post.id) == 0


@pytest.mark.asyncio
async def test_counter_never_goes_negative(
    db_session: AsyncSession,
    make_user,
    make_post,
):
    author = await make_user("author")
    post = await make_post(author)

    changed = await adjust_post_counter(
        db_session, post_id=post.id, counter=PostCounter.REPOSTS, delta=-1
    )
    await db_session.commit()

    assert changed is False
    result = await db_session.execute(select(Post.repost_count).where(Post.id == post.id))
    assert result.scalar_one() == 0


@pytest.mark.asyncio
async def test_cannot_like_hidden_post(
    async_client: AsyncClient,
    make_user,
    make_post,
    auth_headers,
):
    author = await make_user("author")
    viewer = await make_user("viewer")
    post = await make_post(author, visibility="private")

    response = await async_client.post(
        f"/api/v1/posts/{post.id}/likes", headers=auth_headers(viewer)
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_owner_cannot_like_deleted_post(
    async_client: AsyncClient,
    db_session: AsyncSession,
    make_user,
    make_post,
    auth_headers,
):
    author = await make_user("author")
    post = await make_post(author, deleted_at=utcnow())
    headers = auth_headers(author)

    assert (await async_client.get(f"/api/v1/posts/{post.id}", headers=headers)).status_code == 200

    liked = await async_client.post(f"/api/v1/posts/{post.id}/likes", headers=headers)
    unliked = await async_client.delete(f"/api/v1/posts/{post.id}/likes", headers=headers)

    assert liked.status_code == 404
    assert unliked.status_code == 404
    assert await _like_count(db_session, post.id) == 0
