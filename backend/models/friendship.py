"""Derived mutual-follow (friendship) model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String, func
from sqlmodel import Field, SQLModel

from .common import utcnow


class Friendship(SQLModel, table=True):
    """Symmetric friendship keyed by the canonical (low, high) user pair.

    Rows are written only by the friendship deriver, never by clients.
    """

    __tablename__ = "friendships"
    __table_args__ = (
        CheckConstraint("user_low_id < user_high_id", name="ck_friendships_canonical_pair"),
        Index("ix_friendships_high_created_at", "user_high_id", "created_at"),
        Index("ix_friendships_low_created_at", "user_low_id", "created_at"),
    )

    user_low_id: str = Field(
        sa_column=Column(
            String(36),
            ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    user_high_id: str = Field(
        sa_column=Column(
            String(36),
            ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        ),
    )
