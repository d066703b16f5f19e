"""Post and post-tag models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlmodel import Field, SQLModel

from .common import utcnow


class PostType(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    SONG = "song"


class PostVisibility(str, Enum):
    PUBLIC = "public"
    FOLLOWERS = "followers"
    PRIVATE = "private"


class Post(SQLModel, table=True):
    """User-authored post. ``deleted_at`` marks a soft delete."""

    __tablename__ = "posts"
    __table_args__ = (
        CheckConstraint(
            "post_type IN ('text', 'image', 'video', 'song')",
            name="ck_posts_post_type",
        ),
        CheckConstraint(
            "visibility IN ('public', 'followers', 'private')",
            name="ck_posts_visibility",
        ),
        CheckConstraint("like_count >= 0", name="ck_posts_like_count_non_negative"),
        CheckConstraint("comment_count >= 0", name="ck_posts_comment_count_non_negative"),
        CheckConstraint("repost_count >= 0", name="ck_posts_repost_count_non_negative"),
        Index("ix_posts_created_at_id", "created_at", "id"),
        Index("ix_posts_author_created_at", "author_id", "created_at"),
    )

    id: int | None = Field(
        default=None,
        sa_column=Column(Integer, primary_key=True, autoincrement=True),
    )
    author_id: str = Field(
        sa_column=Column(
            String(36),
            ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        )
    )
    post_type: str = Field(
        default=PostType.TEXT.value,
        sa_column=Column(String(16), nullable=False, server_default=text("'text'")),
    )
    content: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    media_keys: list[str] = Field(
        default_factory=list,
        sa_column=Column(JSON, nullable=False),
    )
    visibility: str = Field(
        default=PostVisibility.PUBLIC.value,
        sa_column=Column(String(16), nullable=False, server_default=text("'public'")),
    )
    like_count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default=text("0")),
    )
    comment_count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default=text("0")),
    )
    repost_count: int = Field(
        default=0,
        sa_column=Column(Integer, nullable=False, server_default=text("0")),
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
    deleted_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )


class PostTag(SQLModel, table=True):
    """Lower-cased hashtag attached to a post."""

    __tablename__ = "post_tags"
    __table_args__ = (Index("ix_post_tags_tag_post_id", "tag", "post_id"),)

    post_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("posts.id", ondelete="CASCADE"),
            primary_key=True,
        )
    )
    tag: str = Field(sa_column=Column(String(64), primary_key=True))
