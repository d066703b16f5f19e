"""Tests for the internal error responses."""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import DBAPIError


@pytest_asyncio.fixture(loop_scope="session")
async def lenient_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Client that returns the 500 response instead of re-raising the server error."""
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


def _assert_internal_body(body: dict) -> None:
    assert body["code"] == "INTERNAL"
    assert body["detail"] == "Something went wrong. Please retry later."
    assert len(body["correlation_id"]) == 32
    assert "connection reset" not in body["detail"]


@pytest.mark.asyncio
async def test_database_error_returns_correlation_id(
    lenient_client: AsyncClient, monkeypatch
) -> None:
    async def _fail(*args, **kwargs):
        raise DBAPIError("SELECT 1", {}, Exception("connection reset"))

    monkeypatch.setattr("api.v1.feed.get_feed_page", _fail)

    response = await lenient_client.get("/api/v1/feed")

    assert response.status_code == 500
    _assert_internal_body(response.json())


@pytest.mark.asyncio
async def test_unexpected_error_returns_correlation_id(
    lenient_client: AsyncClient, monkeypatch
) -> None:
    async def _fail(*args, **kwargs):
        raise RuntimeError("connection reset")

    monkeypatch.setattr("api.v1.feed.get_feed_page", _fail)

    response = await lenient_client.get("/api/v1/feed")

    assert response.status_code == 500
    _assert_internal_body(response.json())


@pytest.mark.asyncio
async def test_each_internal_error_gets_its_own_correlation_id(
    lenient_client: AsyncClient, monkeypatch
) -> None:
    async def _fail(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr("api.v1.feed.get_feed_page", _fail)

    first = await lenient_client.get("/api/v1/feed")
    second = await lenient_client.get("/api/v1/feed")

    assert first.json()["correlation_id"] != second.json()["correlation_id"]
