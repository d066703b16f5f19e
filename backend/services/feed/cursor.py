"""Opaque, versioned keyset-pagination cursors.

A cursor is URL-safe base64 over a compact JSON record::

    {"v": 1, "s": <scope>, "b": <binding>, "createdAt": <iso8601>, "id": <int|str>}

``scope`` names the ordering and list it belongs to and ``binding`` ties it to
the filter or target that produced it. Decoding under a different scope or
binding fails with ``CursorMismatchError``; unknown versions fail closed with
``InvalidCursorError`` instead of being reinterpreted.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from core.errors import CursorMismatchError, InvalidCursorError
from models.common import ensure_utc

CURSOR_VERSION = 1
MAX_CURSOR_LENGTH = 512
logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SortKey:
    """Position in a (created_at DESC, id DESC) ordering."""

    created_at: datetime
    id: int | str


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def encode_cursor(key: SortKey, *, scope: str, binding: str) -> str:
    record = {
        "v": CURSOR_VERSION,
        "s": scope,
        "b": binding,
        "createdAt": ensure_utc(key.created_at).isoformat(),
        "id": key.id,
    }
    encoded = json.dumps(record, separators=(",", ":"), sort_keys=True)
    return _b64encode(encoded.encode("utf-8"))


def decode_cursor(
    cursor: str | None,
    *,
    scope: str,
    binding: str,
    id_type: type[int] | type[str] = int,
) -> SortKey | None:
    """Decode a cursor; ``None`` or an empty string means start of stream.

    ``id_type`` is the type of the tiebreak column for the scope: integer post
    ids or string user ids. A cursor carrying the other type is rejected.
    """
    if cursor is None or cursor.strip() == "":
        return None
    if len(cursor) > MAX_CURSOR_LENGTH:
        raise InvalidCursorError("Cursor is too long")

    try:
        record: Any = json.loads(_b64decode(cursor.strip()).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        logger.debug("Rejected undecodable cursor", extra={"scope": scope})
        raise InvalidCursorError("Malformed cursor") from None

    if not isinstance(record, dict):
        raise InvalidCursorError("Malformed cursor")
    if record.get("v") != CURSOR_VERSION:
        raise InvalidCursorError("Unsupported cursor version")
    if record.get("s") != scope or record.get("b") != binding:
        logger.debug(
            "Rejected cursor issued for another stream",
            extra={"scope": scope, "cursor_scope": record.get("s")},
        )
        raise CursorMismatchError("Cursor does not belong to this feed or ordering")

    raw_created_at = record.get("createdAt")
    raw_id = record.get("id")
    if not isinstance(raw_created_at, str):
        raise InvalidCursorError("Malformed cursor")
    if isinstance(raw_id, bool) or not isinstance(raw_id, id_type):
        raise InvalidCursorError("Malformed cursor")
    try:
        created_at = ensure_utc(datetime.fromisoformat(raw_created_at))
    except (ValueError, OverflowError):
        raise InvalidCursorError("Malformed cursor") from None
    return SortKey(created_at=created_at, id=raw_id)


__all__ = [
    "CURSOR_VERSION",
    "MAX_CURSOR_LENGTH",
    "SortKey",
    "decode_cursor",
    "encode_cursor",
]
