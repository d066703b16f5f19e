"""SQLModel models package."""

from .custom_feed import CustomFeed
from .follow import Follow
from .friendship import Friendship
from .like import Like
from .post import Post, PostTag, PostType, PostVisibility
from .user import User

__all__ = [
    "User",
    "Follow",
    "Friendship",
    "Post",
    "PostTag",
    "PostType",
    "PostVisibility",
    "Like",
    "CustomFeed",
]
