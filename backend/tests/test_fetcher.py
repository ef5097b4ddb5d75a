"""Tests for the retrying HTTP fetcher."""

import httpx
import pytest

from advisor.errors import UpstreamError
from advisor.services.fetcher import RetryingFetcher, is_retryable, parse_retry_after


class Sleeps:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_fetcher(handler, sleeps, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RetryingFetcher(client, sleep=sleeps, **kwargs)


def sequence_handler(responses):
    calls = []

    def handler(request):
        calls.append(request)
        item = responses[min(len(calls), len(responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item

    handler.calls = calls
    return handler


def test_is_retryable():
    assert is_retryable(429)
    assert is_retryable(500)
    assert is_retryable(503)
    assert not is_retryable(404)
    assert not is_retryable(200)


def test_parse_retry_after():
    assert parse_retry_after("3") == 3.0
    assert parse_retry_after(" 1.5 ") == 1.5
    assert parse_retry_after(None) is None
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None


@pytest.mark.asyncio
async def test_success_on_first_attempt():
    sleeps = Sleeps()
    handler = sequence_handler([httpx.Response(200, json={"ok": True})])
    fetcher = make_fetcher(handler, sleeps)

    resp = await fetcher.get("https://example.test/a")

    assert resp.status_code == 200
    assert len(handler.calls) == 1
    assert sleeps.delays == []


@pytest.mark.asyncio
async def test_non_retryable_status_returned_immediately():
    sleeps = Sleeps()
    handler = sequence_handler([httpx.Response(404)])
    fetcher = make_fetcher(handler, sleeps)

    resp = await fetcher.get("https://example.test/a")

    assert resp.status_code == 404
    assert len(handler.calls) == 1


@pytest.mark.asyncio
async def test_retries_then_succeeds():
    sleeps = Sleeps()
    handler = sequence_handler([httpx.Response(503), httpx.Response(200, json={})])
    fetcher = make_fetcher(handler, sleeps, jitter=0)

    resp = await fetcher.get("https://example.test/a")

    assert resp.status_code == 200
    assert len(handler.calls) == 2
    assert sleeps.delays == [pytest.approx(1.2)]


@pytest.mark.asyncio
async def test_gives_up_after_attempts_without_trailing_sleep():
    sleeps = Sleeps()
    handler = sequence_handler([httpx.Response(500)])
    fetcher = make_fetcher(handler, sleeps, attempts=3, jitter=0)

    with pytest.raises(UpstreamError) as exc_info:
        await fetcher.get("https://example.test/a")

    assert exc_info.value.status_code == 500
    assert len(handler.calls) == 3
    assert sleeps.delays == [pytest.approx(1.2), pytest.approx(2.4)]


@pytest.mark.asyncio
async def test_honours_retry_after_with_floor():
    sleeps = Sleeps()
    handler = sequence_handler(
        [
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(429, headers={"Retry-After": "2"}),
            httpx.Response(200),
        ]
    )
    fetcher = make_fetcher(handler, sleeps)

    resp = await fetcher.get("https://example.test/a")

    assert resp.status_code == 200
    assert sleeps.delays == [pytest.approx(0.4), pytest.approx(2.0)]


@pytest.mark.asyncio
async def test_transport_errors_are_retried():
    sleeps = Sleeps()
    handler = sequence_handler([httpx.ConnectError("boom"), httpx.Response(200)])
    fetcher = make_fetcher(handler, sleeps, jitter=0)

    resp = await fetcher.get("https://example.test/a")

    assert resp.status_code == 200
    assert len(sleeps.delays) == 1


@pytest.mark.asyncio
async def test_transport_error_exhausts_attempts():
    sleeps = Sleeps()
    handler = sequence_handler([httpx.ConnectError("boom")])
    fetcher = make_fetcher(handler, sleeps, attempts=2, jitter=0)

    with pytest.raises(UpstreamError) as exc_info:
        await fetcher.get("https://example.test/a")

    assert exc_info.value.status_code is None
    assert len(handler.calls) == 2


def test_backoff_is_capped():
    fetcher = RetryingFetcher(httpx.AsyncClient(), backoff_base=1.2, backoff_cap=5.0, jitter=0)
    assert fetcher.backoff_delay(0) == pytest.approx(1.2)
    assert fetcher.backoff_delay(1) == pytest.approx(2.4)
    assert fetcher.backoff_delay(2) == pytest.approx(4.8)
    assert fetcher.backoff_delay(3) == pytest.approx(5.0)
    assert fetcher.backoff_delay(0, retry_after=60) == pytest.approx(10.0)
