"""Maintenance script that rebuilds derived friendships from follow edges.

Usage:
    uv run python scripts/reconcile_friendships.py

Environment overrides:
    FRIENDSHIP_RECONCILE_BATCH_SIZE=500
    FRIENDSHIP_RECONCILE_MAX_BATCHES=100
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path
from time import perf_counter

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.append(str(ROOT_DIR))

from core.config import settings  # noqa: E402
from db.session import AsyncSessionMaker  # noqa: E402
from services.friendships import ReconcileResult, reconcile_friendships  # noqa: E402

BATCH_SIZE_ENV = "FRIENDSHIP_RECONCILE_BATCH_SIZE"
MAX_BATCHES_ENV = "FRIENDSHIP_RECONCILE_MAX_BATCHES"
DEFAULT_BATCH_SIZE = 500
DEFAULT_MAX_BATCHES = 100

logger = logging.getLogger("scripts.reconcile_friendships")


def _parse_positive_int(raw_value: str | None, *, default: int, label: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default
    try:
        parsed = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{label} must be an integer") from exc
    if parsed <= 0:
        raise ValueError(f"{label} must be positive")
    return parsed


async def run() -> ReconcileResult:
    batch_size = _parse_positive_int(
        os.getenv(BATCH_SIZE_ENV),
        default=DEFAULT_BATCH_SIZE,
        label=BATCH_SIZE_ENV,
    )
    max_batches = _parse_positive_int(
        os.getenv(MAX_BATCHES_ENV),
        default=DEFAULT_MAX_BATCHES,
        label=MAX_BATCHES_ENV,
    )

    started_at = perf_counter()
    async with AsyncSessionMaker() as session:
        result = await reconcile_friendships(
            session,
            batch_size=batch_size,
            max_batches=max_batches,
        )

    elapsed_ms = int((perf_counter() - started_at) * 1000)
    logger.info(
        "Friendship reconcile complete: created=%s, removed=%s, elapsed_ms=%s",
        result.created,
        result.removed,
        elapsed_ms,
    )
    return result


def main() -> None:
    logging.basicConfig(level=settings.log_level.upper())
    asyncio.run(run())


if __name__ == "__main__":
    main()
