"""Tests for the friendship reconcile maintenance script."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from models import Follow
from scripts import reconcile_friendships as reconcile_script
from services.social_graph import friendship_exists


def test_parse_positive_int_uses_default_for_blank_values() -> None:
    assert reconcile_script._parse_positive_int("  ", default=7, label="X") == 7
    assert reconcile_script._parse_positive_int(None, default=7, label="X") == 7


def test_parse_positive_int_rejects_zero() -> None:
    with pytest.raises(ValueError):
        reconcile_script._parse_positive_int(
            "0",
            default=123,
            label="FRIENDSHIP_RECONCILE_BATCH_SIZE",
        )


def test_parse_positive_int_rejects_non_integers() -> None:
    with pytest.raises(ValueError, match="must be an integer"):
        reconcile_script._parse_positive_int(
            "ten",
            default=123,
            label="FRIENDSHIP_RECONCILE_MAX_BATCHES",
        )


@pytest.mark.asyncio
async def test_run_uses_configured_session_factory(
    db_session: AsyncSession,
    session_maker,
    make_user,
    monkeypatch,
) -> None:
    alice = await make_user("alice")
    bob = await make_user("bob")
    db_session.add(Follow(follower_id=alice.id, followee_id=bob.id))
    db_session.add(Follow(follower_id=bob.id, followee_id=alice.id))
    await db_session.commit()

    monkeypatch.setattr(reconcile_script, "AsyncSessionMaker", session_maker)
    monkeypatch.setenv(reconcile_script.BATCH_SIZE_ENV, "10")

    result = await reconcile_script.run()

    assert result.created == 1
    assert await friendship_exists(db_session, alice.id, bob.id) is True
