#!/usr/bin/env python3
"""
Tests for the retrying HTTP client, using an in-memory session.
"""

import asyncio
from types import SimpleNamespace

import aiohttp
import pytest

from core.infra.http import HttpClient


class FakeResponse:
    def __init__(self, status: int = 200, body: str = "<html></html>", body_error=None):
        self.status = status
        self.body = body
        self.body_error = body_error
        self.released = False

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(
                SimpleNamespace(real_url="https://fragile.city"),
                (),
                status=self.status,
                message="Server Error",
            )

    def release(self):
        self.released = True

    async def text(self):
        if self.body_error is not None:
            raise self.body_error
        return self.body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.release()


class FakeSession:
    """Hands out the queued outcomes one request at a time."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []

    async def fake_sleep(delay):
        recorded.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return recorded


def test_get_text_merges_default_headers(sleeps):
    session = FakeSession([FakeResponse(body="hello")])
    client = HttpClient(session=session, default_headers={"User-Agent": "test-agent"})

    body = asyncio.run(client.get_text("https://fragile.city", headers={"Accept": "text/html"}))

    assert body == "hello"
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "https://fragile.city")
    assert kwargs["headers"] == {"User-Agent": "test-agent", "Accept": "text/html"}
    assert sleeps == []


def test_retries_with_exponential_backoff(sleeps):
    session = FakeSession([
        aiohttp.ClientConnectionError("reset"),
        aiohttp.ClientConnectionError("reset"),
        FakeResponse(body="third time lucky"),
    ])
    client = HttpClient(session=session, max_retries=3, base_delay=1.0)

    assert asyncio.run(client.get_text("https://fragile.city")) == "third time lucky"
    assert len(session.calls) == 3
    assert sleeps == [1.0, 2.0]


def test_last_error_is_reraised_after_all_attempts(sleeps):
    last = aiohttp.ClientConnectionError("still down")
    session = FakeSession([aiohttp.ClientConnectionError("down")] * 3 + [last])
    client = HttpClient(session=session, max_retries=3, base_delay=1.0)

    with pytest.raises(aiohttp.ClientConnectionError) as excinfo:
        asyncio.run(client.get_text("https://fragile.city"))

    assert excinfo.value is last
    assert len(session.calls) == 4
    assert sleeps == [1.0, 2.0, 4.0]


def test_error_status_is_retried_and_released(sleeps):
    failed = FakeResponse(status=503)
    session = FakeSession([failed, FakeResponse(body="ok")])
    client = HttpClient(session=session, base_delay=0.5)

    assert asyncio.run(client.get_text("https://fragile.city")) == "ok"
    assert failed.released
    assert sleeps == [0.5]


def test_timeout_is_retryable(sleeps):
    session = FakeSession([asyncio.TimeoutError(), FakeResponse(body="ok")])
    client = HttpClient(session=session)

    assert asyncio.run(client.get_text("https://fragile.city")) == "ok"
    assert sleeps == [1.0]


def test_zero_retries_means_one_attempt(sleeps):
    session = FakeSession([aiohttp.ClientConnectionError("down"), FakeResponse()])
    client = HttpClient(session=session, max_retries=0)

    with pytest.raises(aiohttp.ClientConnectionError):
        asyncio.run(client.get_text("https://fragile.city"))
    assert len(session.calls) == 1
    assert sleeps == []


def test_backoff_delay():
    client = HttpClient(base_delay=2.0)
    assert [client.backoff_delay(n) for n in range(3)] == [2.0, 4.0, 8.0]


def test_body_download_failure_is_retried(sleeps):
    broken = FakeResponse(body_error=aiohttp.ClientPayloadError("connection reset mid-body"))
    session = FakeSession([broken, FakeResponse(body="complete")])
    client = HttpClient(session=session, max_retries=3)

    assert asyncio.run(client.get_text("https://fragile.city")) == "complete"
    assert len(session.calls) == 2
    assert broken.released
    assert sleeps == [1.0]


def test_body_download_failure_exhausts_retries(sleeps):
    session = FakeSession([
        FakeResponse(body_error=aiohttp.ClientPayloadError("reset")) for _ in range(3)
    ])
    client = HttpClient(session=session, max_retries=2)

    with pytest.raises(aiohttp.ClientPayloadError):
        asyncio.run(client.get_text("https://fragile.city"))
    assert len(session.calls) == 3
    assert sleeps == [1.0, 2.0]
