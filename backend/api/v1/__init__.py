"""Version 1 API routers."""

from fastapi import APIRouter

from . import feed, health, posts, social

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(feed.router)
api_router.include_router(social.router)
api_router.include_router(posts.router)

__all__ = ["api_router"]
