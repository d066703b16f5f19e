"""Tests for the post visibility rule table and its SQL counterpart."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Follow, Friendship, Post
from models.common import utcnow
from services.post_policy import (
    build_post_visibility_filter,
    can_view_post,
    resolve_post_visibility,
)
from services.social_graph import friendship_pair


@pytest.mark.parametrize(
    ("viewer", "visibility", "follows", "expected"),
    [
        (None, "public", False, True),
        (None, "followers", False, False),
        (None, "private", False, False),
        ("author", "public", False, True),
        ("author", "followers", False, True),
        ("author", "private", False, True),
        ("other", "public", False, True),
        ("other", "followers", True, True),
        ("other", "followers", False, False),
        ("other", "private", True, False),
        ("other", "private", False, False),
    ],
)
def test_rule_table(viewer, visibility: str, follows: bool, expected: bool) -> None:
    assert (
        resolve_post_visibility(
            viewer_id=viewer,
            author_id="author",
            visibility=visibility,
            viewer_follows_author=follows,
        )
        is expected
    )


@pytest.mark.asyncio
async def test_friendship_does_not_grant_followers_only_access(
    db_session: AsyncSession,
    make_user,
    make_post,
) -> None:
    author = await make_user("author")
    viewer = await make_user("viewer")
    post = await make_post(author, visibility="followers")

    # Inconsistent on purpose: a friendship row without a viewer -> author edge.
    low, high = friendship_pair(author.id, viewer.id)
    db_session.add(Friendship(user_low_id=low, user_high_id=high))
    db_session.add(Follow(follower_id=author.id, followee_id=viewer.id))
    await db_session.commit()

    assert await can_view_post(db_session, viewer_id=viewer.id, post=post) is False

    db_session.add(Follow(follower_id=viewer.id, followee_id=author.id))
    await db_session.commit()

    assert await can_view_post(db_session, viewer_id=viewer.id, post=post) is True


@pytest.mark.asyncio
async def test_soft_deleted_post_is_visible_to_owner_only(
    db_session: AsyncSession,
    make_user,
    make_post,
) -> None:
    author = await make_user("author")
    viewer = await make_user("viewer")
    post = await make_post(author, visibility="public", deleted_at=utcnow())

    assert await can_view_post(db_session, viewer_id=author.id, post=post) is True
    assert await can_view_post(db_session, viewer_id=viewer.id, post=post) is False
    assert await can_view_post(db_session, viewer_id=None, post=post) is False


@pytest.mark.asyncio
async def test_sql_filter_matches_rule_table(
    db_session: AsyncSession,
    make_user,
    make_post,
) -> None:
    author = await make_user("author")
    follower = await make_user("follower")
    stranger = await make_user("stranger")
    base = utcnow()
    posts = {
        visibility: await make_post(
            author,
            visibility=visibility,
            created_at=base + timedelta(seconds=index),
        )
        for index, visibility in enumerate(("public", "followers", "private"))
    }
    db_session.add(Follow(follower_id=follower.id, followee_id=author.id))
    await db_session.commit()

    for viewer_id in (None, author.id, follower.id, stranger.id):
        result = await db_session.execute(
            select(Post.id).where(build_post_visibility_filter(viewer_id=viewer_id))
        )
        visible_ids = set(result.scalars().all())
        for post in posts.values():
            expected = await can_view_post(db_session, viewer_id=viewer_id, post=post)
            assert (post.id in visible_ids) is expected, (viewer_id, post.visibility)
