"""Tests for the keyset cursor codec."""

import base64
import json
from datetime import datetime, timezone

import pytest

from core.errors import CursorMismatchError, InvalidCursorError
from services.feed.cursor import SortKey, decode_cursor, encode_cursor

SCOPE = "posts:created_at_desc,id_desc"
KEY = SortKey(created_at=datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc), id=42)


def _raw_cursor(record: dict) -> str:
    encoded = json.dumps(record).encode("utf-8")
    return base64.urlsafe_b64encode(encoded).rstrip(b"=").decode("ascii")


def test_decode_returns_the_encoded_position() -> None:
    cursor = encode_cursor(KEY, scope=SCOPE, binding="abc")

    assert decode_cursor(cursor, scope=SCOPE, binding="abc") == KEY


def test_cursor_is_url_safe() -> None:
    cursor = encode_cursor(KEY, scope=SCOPE, binding="abc")

    assert "=" not in cursor
    assert "+" not in cursor
    assert "/" not in cursor


@pytest.mark.parametrize("cursor", [None, "", "   "])
def test_missing_cursor_means_start(cursor) -> None:
    assert decode_cursor(cursor, scope=SCOPE, binding="abc") is None


def test_cursor_from_another_filter_is_rejected() -> None:
    cursor = encode_cursor(KEY, scope=SCOPE, binding="abc")

    with pytest.raises(CursorMismatchError) as excinfo:
        decode_cursor(cursor, scope=SCOPE, binding="other")
    assert excinfo.value.code == "CURSOR_MISMATCH"


def test_cursor_from_another_list_is_rejected() -> None:
    cursor = encode_cursor(KEY, scope="followers:created_at_desc,user_id_desc", binding="abc")

    with pytest.raises(CursorMismatchError):
        decode_cursor(cursor, scope=SCOPE, binding="abc")


@pytest.mark.parametrize(
    "cursor",
    [
        "%%%not-base64%%%",
        _raw_cursor(["not", "an", "object"]),
        _raw_cursor({"v": 2, "s": SCOPE, "b": "abc", "createdAt": "2024-05-01T00:00:00+00:00", "id": 1}),
        _raw_cursor({"s": SCOPE, "b": "abc", "createdAt": "2024-05-01T00:00:00+00:00", "id": 1}),
        _raw_cursor({"v": 1, "s": SCOPE, "b": "abc", "createdAt": "not-a-date", "id": 1}),
        _raw_cursor({"v": 1, "s": SCOPE, "b": "abc", "createdAt": "2024-05-01T00:00:00+00:00"}),
        _raw_cursor({"v": 1, "s": SCOPE, "b": "abc", "createdAt": "2024-05-01T00:00:00+00:00", "id": True}),
        _raw_cursor({"v": 1, "s": SCOPE, "b": "abc", "createdAt": "0001-01-01T00:00:00+05:00", "id": 1}),
        _raw_cursor({"v": 1, "s": SCOPE, "b": "abc", "createdAt": "9999-12-31T23:59:59-14:00", "id": 1}),
        "a" * 600,
    ],
)
def test_malformed_cursor_is_rejected(cursor: str) -> None:
    with pytest.raises(InvalidCursorError) as excinfo:
        decode_cursor(cursor, scope=SCOPE, binding="abc")
    assert excinfo.value.code == "INVALID_CURSOR"


def test_naive_timestamp_is_read_as_utc() -> None:
    cursor = _raw_cursor(
        {"v": 1, "s": SCOPE, "b": "abc", "createdAt": "2024-05-01T12:00:00", "id": "user-1"}
    )

    decoded = decode_cursor(cursor, scope=SCOPE, binding="abc", id_type=str)

    assert decoded == SortKey(created_at=datetime(2024, 5, 1, 12, tzinfo=timezone.utc), id="user-1")


def test_post_cursor_with_string_id_is_rejected() -> None:
    cursor = encode_cursor(SortKey(created_at=KEY.created_at, id="not-an-int"), scope=SCOPE, binding="abc")

    with pytest.raises(InvalidCursorError):
        decode_cursor(cursor, scope=SCOPE, binding="abc", id_type=int)


def test_user_list_cursor_with_integer_id_is_rejected() -> None:
    scope = "followers:created_at_desc,user_id_desc"
    cursor = encode_cursor(KEY, scope=scope, binding="user-1")

    with pytest.raises(InvalidCursorError):
        decode_cursor(cursor, scope=scope, binding="user-1", id_type=str)
