"""Friendship derivation from follow edges.

A friendship row exists for the unordered pair {A, B} exactly when both
A -> B and B -> A follow edges exist. The hooks below run inside the same
session and transaction as the edge mutation that triggered them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, cast

from sqlalchemy import and_, delete, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
from sqlalchemy.sql import ColumnElement

from models import Follow, Friendship

from .social_graph import delete_friendship, edge_exists, friendship_pair, upsert_friendship

logger = logging.getLogger(__name__)


def _eq(column: Any, value: Any) -> ColumnElement[bool]:
    return cast(ColumnElement[bool], column == value)


class PairState(str, Enum):
    NO_EDGE = "no_edge"
    ONE_WAY = "one_way"
    MUTUAL = "mutual"


async def get_pair_state(session: AsyncSession, user_a: str, user_b: str) -> PairState:
    forward = await edge_exists(session, follower_id=user_a, followee_id=user_b)
    backward = await edge_exists(session, follower_id=user_b, followee_id=user_a)
    if forward and backward:
        return PairState.MUTUAL
    if forward or backward:
        return PairState.ONE_WAY
    return PairState.NO_EDGE


def _log_pair(message: str, user_a: str, user_b: str) -> None:
    low, high = friendship_pair(user_a, user_b)
    logger.info(message, extra={"user_low_id": low, "user_high_id": high})


async def on_follow_created(session: AsyncSession, *, follower_id: str, followee_id: str) -> bool:
    """Create the friendship if the reverse edge exists. Returns ``True`` on creation."""
    if follower_id == followee_id:
        raise ValueError("Self-follow must be rejected before friendship derivation")
    reverse = await edge_exists(session, follower_id=followee_id, followee_id=follower_id)
    if not reverse:
        return False
    created = await upsert_friendship(session, follower_id, followee_id)
    if created:
        _log_pair("Friendship created", follower_id, followee_id)
    return created


async def on_follow_removed(session: AsyncSession, *, follower_id: str, followee_id: str) -> bool:
    """Drop the pair's friendship row if present. Follow edges are never touched."""
    if follower_id == followee_id:
        raise ValueError("Self-follow must be rejected before friendship derivation")
    removed = await delete_friendship(session, follower_id, followee_id)
    if removed:
        _log_pair("Friendship removed", follower_id, followee_id)
    return removed


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    created: int
    removed: int


async def _insert_missing_friendships(session: AsyncSession, *, batch_size: int) -> int:
    reverse = aliased(Follow)
    forward_follower = cast(Any, Follow.follower_id)
    forward_followee = cast(Any, Follow.followee_id)
    already_derived = exists(
        select(1).where(
            _eq(Friendship.user_low_id, forward_follower),
            _eq(Friendship.user_high_id, forward_followee),
        )
    )
    result = await session.execute(
        select(forward_follower, forward_followee)
        .join(
            reverse,
            and_(
                _eq(reverse.follower_id, forward_followee),
                _eq(reverse.followee_id, forward_follower),
            ),
        )
        # Visit each mutual pair once, from its low side.
        .where(forward_follower < forward_followee, ~already_derived)
        .order_by(forward_follower, forward_followee)
        .limit(batch_size)
    )
    pairs = result.all()
    for low, high in pairs:
        session.add(Friendship(user_low_id=low, user_high_id=high))
        logger.info(
            "Friendship reconciled (created)",
            extra={"user_low_id": low, "user_high_id": high},
        )
    await session.flush()
    return len(pairs)


async def _delete_stray_friendships(session: AsyncSession, *, batch_size: int) -> int:
    low_column = cast(Any, Friendship.user_low_id)
    high_column = cast(Any, Friendship.user_high_id)
    low_follows_high = exists(
        select(1).where(
            _eq(Follow.follower_id, low_column),
            _eq(Follow.followee_id, high_column),
        )
    )
    high_follows_low = exists(
        select(1).where(
            _eq(Follow.follower_id, high_column),
            _eq(Follow.followee_id, low_column),
        )
    )
    result = await session.execute(
        select(low_column, high_column)
        .where(or_(~low_follows_high, ~high_follows_low))
        .order_by(low_column, high_column)
        .limit(batch_size)
    )
    pairs = result.all()
    for low, high in pairs:
        await session.execute(
            delete(Friendship).where(
                _eq(Friendship.user_low_id, low),
                _eq(Friendship.user_high_id, high),
            )
        )
        logger.info(
            "Friendship reconciled (removed)",
            extra={"user_low_id": low, "user_high_id": high},
        )
    return len(pairs)


async def reconcile_friendships(
    session: AsyncSession,
    *,
    batch_size: int = 500,
    max_batches: int | None = None,
) -> ReconcileResult:
    """Rebuild the friendship table from follow edges in committed batches.

    Inserts rows for mutual pairs that lack one and deletes rows whose pair is
    no longer mutual. ``max_batches`` bounds the total number of batches per
    phase; ``None`` runs until both phases are clean.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    if max_batches is not None and max_batches <= 0:
        raise ValueError("max_batches must be positive")

    created = 0
    batches = 0
    while max_batches is None or batches < max_batches:
        inserted = await _insert_missing_friendships(session, batch_size=batch_size)
        await session.commit()
        batches += 1
        created += inserted
        if inserted < batch_size:
            break

    removed = 0
    batches = 0
    while max_batches is None or batches < max_batches:
        deleted = await _delete_stray_friendships(session, batch_size=batch_size)
        await session.commit()
        batches += 1
        removed += deleted
        if deleted < batch_size:
            break

    return ReconcileResult(created=created, removed=removed)


__all__ = [
    "PairState",
    "ReconcileResult",
    "get_pair_state",
    "on_follow_created",
    "on_follow_removed",
    "reconcile_friendships",
]
