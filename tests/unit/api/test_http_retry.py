from __future__ import annotations

import httpx
import pytest

from partsrunner.api.http import compute_backoff, request_with_retry

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_retries_retryable_status_then_succeeds(mock_http):
    statuses = [503, 503, 200]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(statuses.pop(0))

    async with mock_http(handler) as client:
        response = await request_with_retry(client, "POST", "http://api.test/x", max_attempts=3, base_backoff=0)

    assert response.status_code == 200
    assert statuses == []


@pytest.mark.asyncio
async def test_returns_last_response_when_attempts_exhausted(mock_http):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(500)

    async with mock_http(handler) as client:
        response = await request_with_retry(client, "GET", "http://api.test/x", max_attempts=2, base_backoff=0)

    assert response.status_code == 500
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_non_retryable_status_is_returned_immediately(mock_http):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400)

    async with mock_http(handler) as client:
        response = await request_with_retry(client, "GET", "http://api.test/x", max_attempts=5, base_backoff=0)

    assert response.status_code == 400
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_honours_retry_after_header(mock_http):
    responses = [httpx.Response(429, headers={"Retry-After": "0"}), httpx.Response(204)]

    async with mock_http(lambda request: responses.pop(0)) as client:
        response = await request_with_retry(client, "GET", "http://api.test/x", max_attempts=2)

    assert response.status_code == 204


@pytest.mark.asyncio
async def test_network_errors_raise_after_last_attempt(mock_http):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("offline", request=request)

    async with mock_http(handler) as client:
        with pytest.raises(httpx.ConnectError):
            await request_with_retry(client, "GET", "http://api.test/x", max_attempts=3, base_backoff=0)

    assert len(calls) == 3


def test_compute_backoff_is_capped():
    for attempt in range(1, 10):
        delay = compute_backoff(attempt=attempt, base=0.5, cap=8.0)
        assert 0.5 <= delay <= 12.0
