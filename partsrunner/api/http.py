"""
HTTP helpers

Retry/backoff for transient errors and rate limits.
"""

from __future__ import annotations

import asyncio
import random
from typing import Iterable

import httpx
import structlog

from partsrunner.monitoring.metrics import http_retries_total

logger = structlog.get_logger()


RETRY_STATUSES = {429, 500, 502, 503, 504}


def compute_backoff(*, attempt: int, base: float, cap: float) -> float:
    """Exponential backoff with up to 50% jitter. attempt=1 -> base."""
    delay = min(cap, base * (2 ** (attempt - 1)))
    return delay + random.uniform(0, delay / 2)


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_attempts: int = 3,
    retry_statuses: Iterable[int] | None = None,
    base_backoff: float = 0.5,
    max_backoff: float = 8.0,
    **kwargs,
) -> httpx.Response:
    """
    Make an HTTP request with exponential backoff + jitter.

    The last response is returned as-is once attempts run out; the last
    transport error is raised.
    """
    retry_statuses = set(retry_statuses or RETRY_STATUSES)
    max_attempts = max(1, int(max_attempts))

    attempt = 0
    while True:
        attempt += 1
        try:
            response = await client.request(method, url, **kwargs)

            if response.status_code in retry_statuses and attempt < max_attempts:
                retry_after = response.headers.get("Retry-After")
                if retry_after:
                    try:
                        delay = float(retry_after)
                    except ValueError:
                        delay = base_backoff
                else:
                    delay = compute_backoff(attempt=attempt, base=base_backoff, cap=max_backoff)

                http_retries_total.labels(reason="status", status_code=str(response.status_code)).inc()
                logger.warning(
                    "Retrying request due to status",
                    status_code=response.status_code,
                    url=url,
                    attempt=attempt,
                    delay=delay,
                )
                await asyncio.sleep(delay)
                continue

            return response

        except (httpx.TimeoutException, httpx.NetworkError) as e:
            if attempt >= max_attempts:
                raise

            delay = compute_backoff(attempt=attempt, base=base_backoff, cap=max_backoff)
            http_retries_total.labels(reason="network", status_code="0").inc()
            logger.warning(
                "Retrying request due to network error",
                url=url,
                attempt=attempt,
                delay=delay,
                error=str(e),
            )
            await asyncio.sleep(delay)
