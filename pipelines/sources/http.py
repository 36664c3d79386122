"""Shared HTTP plumbing for source adapters: retries, backoff and error codes."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Mapping
from random import SystemRandom
from typing import Any

import httpx

from app.config import settings
from pipelines.cancellation import CancellationToken

logger = logging.getLogger("pipelines.sources.http")

RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
JSON_HEADERS = {"Accept": "application/json"}
HTML_HEADERS = {"Accept": "text/html,application/xhtml+xml;q=0.9,*/*;q=0.5"}
FEED_HEADERS = {"Accept": "application/rss+xml,application/atom+xml,application/xml;q=0.9,*/*;q=0.5"}


class SourceFetchError(RuntimeError):
    """Transport-level failure talking to an external source."""

    def __init__(self, message: str, code: str = "SOURCE_ERROR") -> None:
        super().__init__(message)
        self.code = code


def backoff_delays(
    *,
    max_attempts: int,
    base_delay: float = 0.5,
    factor: float = 2.0,
    max_delay: float = 8.0,
    jitter: float = 0.2,
) -> Iterator[tuple[int, float]]:
    """Yield (attempt, delay_seconds) pairs, growing the delay between attempts."""
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if base_delay < 0 or factor < 1 or jitter < 0:
        raise ValueError("invalid backoff parameters")
    rng = SystemRandom()
    delay = base_delay
    for attempt in range(1, max_attempts + 1):
        offset = rng.uniform(0, delay * jitter) if jitter and delay else 0.0
        yield attempt, min(delay + offset, max_delay)
        delay = min(delay * factor, max_delay)


def build_client(*, user_agent: str | None = None, timeout: float | None = None) -> httpx.AsyncClient:
    """AsyncClient configured with crawler defaults."""
    return httpx.AsyncClient(
        headers={"User-Agent": user_agent or settings.crawl_user_agent},
        timeout=httpx.Timeout(timeout or settings.crawl_timeout_seconds, connect=10.0),
        follow_redirects=True,
    )


async def request_with_retries(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    token: CancellationToken | None = None,
    retries: int | None = None,
    base_delay: float = 0.5,
    timeout: float | None = None,
    headers: Mapping[str, str] | None = None,
    params: Mapping[str, Any] | None = None,
    json: Any = None,
) -> httpx.Response:
    """Issue a request, retrying transport errors and retryable statuses.

    Returns the last response received; raises `SourceFetchError` only when no
    response could be obtained at all.
    """
    max_attempts = retries if retries is not None else settings.crawl_retries
    request_timeout = timeout or settings.crawl_timeout_seconds
    last_error: SourceFetchError | None = None

    for attempt, delay in backoff_delays(max_attempts=max_attempts, base_delay=base_delay):
        if token is not None:
            token.raise_if_cancelled()
            effective_timeout = token.cap_timeout(request_timeout)
        else:
            effective_timeout = request_timeout
        try:
            response = await client.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json,
                timeout=effective_timeout,
            )
        except httpx.TimeoutException:
            last_error = SourceFetchError(f"Timed out requesting {url}", code="SOURCE_TIMEOUT")
        except httpx.TransportError as exc:
            last_error = SourceFetchError(f"Request to {url} failed: {exc}", code="SOURCE_UNREACHABLE")
        else:
            if response.status_code not in RETRYABLE_STATUSES or attempt >= max_attempts:
                return response
            last_error = None
            logger.warning(
                "source.retry",
                extra={"url": url, "status": response.status_code, "attempt": attempt, "max_attempts": max_attempts},
            )

        if last_error is not None:
            logger.warning(
                "source.request_error",
                extra={"url": url, "code": last_error.code, "attempt": attempt, "max_attempts": max_attempts},
            )
            if attempt >= max_attempts:
                raise last_error
        if token is not None:
            await token.sleep(delay)
        else:
            await asyncio.sleep(delay)

    raise last_error or SourceFetchError(f"Exceeded retry policy for {url}")
