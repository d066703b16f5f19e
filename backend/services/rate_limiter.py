"""Per-route request budgets enforced with Redis fixed windows.

Ad-hoc feed queries compile caller-supplied filters and follow/unfollow
mutate the social graph, so both draw from their own, smaller budgets. Every
other request draws from the general budget. A request consumes exactly one
budget.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from ipaddress import IPv4Network, IPv6Network, ip_address, ip_network
from typing import Protocol

from fastapi import status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.types import ASGIApp

from core import settings, subject_from_access_token

logger = logging.getLogger(__name__)

GENERAL_BUDGET = "general"
FEED_QUERY_BUDGET = "feed_query"
SOCIAL_WRITE_BUDGET = "social_write"


class CounterStore(Protocol):
    async def incr(self, key: str) -> int: ...

    async def expire(self, key: str, ttl: int) -> None: ...


@dataclass(frozen=True, slots=True)
class Budget:
    limit: int
    window_seconds: int

    @property
    def enabled(self) -> bool:
        return self.limit > 0 and self.window_seconds > 0


@dataclass(frozen=True, slots=True)
class RouteRule:
    method: str
    path: str
    budget: str


ROUTE_RULES: tuple[RouteRule, ...] = (
    RouteRule("POST", "/api/v1/feed/query", FEED_QUERY_BUDGET),
    RouteRule("POST", "/api/v1/social/follow", SOCIAL_WRITE_BUDGET),
    RouteRule("POST", "/api/v1/social/unfollow", SOCIAL_WRITE_BUDGET),
)


def budget_for(method: str, path: str, rules: Iterable[RouteRule] = ROUTE_RULES) -> str:
    for rule in rules:
        if rule.method == method and rule.path == path.rstrip("/"):
            return rule.budget
    return GENERAL_BUDGET


def budgets_from_settings() -> dict[str, Budget]:
    window = settings.rate_limit_window_seconds
    return {
        GENERAL_BUDGET: Budget(settings.rate_limit_requests, window),
        FEED_QUERY_BUDGET: Budget(settings.rate_limit_feed_query_requests, window),
        SOCIAL_WRITE_BUDGET: Budget(settings.rate_limit_social_write_requests, window),
    }


@dataclass(frozen=True, slots=True)
class RateDecision:
    allowed: bool
    budget: str
    retry_after: int = 0


class RateLimiter:
    """Counts requests per (budget, client, window) in Redis."""

    def __init__(
        self,
        store: CounterStore,
        budgets: Mapping[str, Budget],
        prefix: str = "rate-limit",
    ) -> None:
        if GENERAL_BUDGET not in budgets:
            raise ValueError(f"Budgets must include {GENERAL_BUDGET!r}")
        self.store = store
        self.budgets = dict(budgets)
        self.prefix = prefix

    async def hit(self, budget_name: str, client: str) -> RateDecision:
        name = budget_name if budget_name in self.budgets else GENERAL_BUDGET
        budget = self.budgets[name]
        if not budget.enabled:
            return RateDecision(allowed=True, budget=name)

        now = int(time.time())
        window_index, elapsed = divmod(now, budget.window_seconds)
        key = f"{self.prefix}:{name}:{client}:{window_index}"
        count = await self.store.incr(key)
        if count == 1:
            await self.store.expire(key, budget.window_seconds)
        return RateDecision(
            allowed=count <= budget.limit,
            budget=name,
            retry_after=budget.window_seconds - elapsed,
        )


@lru_cache(maxsize=8)
def _proxy_networks(cidrs: tuple[str, ...]) -> tuple[IPv4Network | IPv6Network, ...]:
    return tuple(ip_network(cidr, strict=False) for cidr in cidrs)


def _peer_is_trusted_proxy(peer: str) -> bool:
    try:
        address = ip_address(peer)
    except ValueError:
        return False
    networks = _proxy_networks(tuple(settings.rate_limit_trusted_proxies))
    return any(address in network for network in networks)


def _forwarded_address(request: Request) -> str | None:
    for header in settings.rate_limit_ip_headers:
        for candidate in request.headers.get(header, "").split(","):
            candidate = candidate.strip()
            try:
                ip_address(candidate)
            except ValueError:
                continue
            return candidate
    return None


def client_identity(request: Request) -> str:
    """Viewer id when the bearer token verifies, otherwise the client address.

    Forwarded-address headers are read only when the direct peer is a
    configured proxy.
    """
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        try:
            return f"user:{subject_from_access_token(token.strip())}"
        except ValueError:
            pass

    peer = request.client.host if request.client else None
    if peer and _peer_is_trusted_proxy(peer):
        forwarded = _forwarded_address(request)
        if forwarded:
            return f"ip:{forwarded}"
    return f"ip:{peer}" if peer else "ip:unknown"


@lru_cache
def get_redis_client() -> Redis:
    return Redis.from_url(settings.redis_url, decode_responses=False)


_rate_limiter: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(get_redis_client(), budgets_from_settings())
    return _rate_limiter


def set_rate_limiter(limiter: RateLimiter | None) -> None:
    """Replace the shared limiter; ``None`` rebuilds it from settings on next use."""
    global _rate_limiter
    _rate_limiter = limiter


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rejects over-budget requests with 429. A Redis outage fails open."""

    def __init__(
        self,
        app: ASGIApp,
        limiter_factory: Callable[[], RateLimiter],
        exempt_paths: Iterable[str] = (),
        identify: Callable[[Request], str] = client_identity,
    ) -> None:
        super().__init__(app)
        self.limiter_factory = limiter_factory
        self.exempt_paths = frozenset(exempt_paths)
        self.identify = identify

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint):
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        budget = budget_for(request.method, request.url.path)
        try:
            decision = await self.limiter_factory().hit(budget, self.identify(request))
        except (RedisError, OSError):
            logger.warning(
                "Rate limiter unavailable; allowing request",
                extra={"budget": budget},
                exc_info=True,
            )
            return await call_next(request)

        if not decision.allowed:
            logger.info(
                "Request over budget",
                extra={"budget": decision.budget, "path": request.url.path},
            )
            return JSONResponse(
                {"detail": "Too Many Requests", "code": "RATE_LIMITED"},
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                headers={"Retry-After": str(decision.retry_after)},
            )
        return await call_next(request)


__all__ = [
    "Budget",
    "FEED_QUERY_BUDGET",
    "GENERAL_BUDGET",
    "RateDecision",
    "RateLimitMiddleware",
    "RateLimiter",
    "RouteRule",
    "SOCIAL_WRITE_BUDGET",
    "budget_for",
    "budgets_from_settings",
    "client_identity",
    "get_rate_limiter",
    "set_rate_limiter",
]
