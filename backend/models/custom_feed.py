"""Custom feed model."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlmodel import Field, SQLModel

from .common import utcnow


class CustomFeed(SQLModel, table=True):
    """Named, owner-private filter over the post stream.

    ``filter_document`` holds the normalized filter JSON
    (``{"type": "predicate" | "combinator", ...}``).
    """

    __tablename__ = "custom_feeds"
    __table_args__ = (
        UniqueConstraint("owner_id", "name_key", name="uq_custom_feeds_owner_name_key"),
        Index("ix_custom_feeds_owner_created_at", "owner_id", "created_at"),
    )

    id: int | None = Field(
        default=None,
        sa_column=Column(Integer, primary_key=True, autoincrement=True),
    )
    owner_id: str = Field(
        sa_column=Column(
            String(36),
            ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        )
    )
    name: str = Field(sa_column=Column(String(100), nullable=False))
    # Lower-cased name backing the per-owner uniqueness constraint.
    name_key: str = Field(sa_column=Column(String(100), nullable=False))
    filter_document: dict[str, Any] = Field(
        sa_column=Column(JSON, nullable=False),
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(
            DateTime(timezone=True), server_default=func.now(), nullable=False
        ),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(
            DateTime(timezone=True),
            server_default=func.now(),
            onupdate=func.now(),
            nullable=False,
        ),
    )
