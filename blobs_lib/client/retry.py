"""Retry layer wrapped around a single request/response transport.

Up to MAX_ATTEMPTS attempts are made. A 429, any 5xx status or a
transport-level error triggers another attempt; every other response is
handed back straight away. The delay is either derived from the
`X-RateLimit-Reset` header (epoch seconds, never less than one second) or
the fixed default. There is no jitter and no exponential growth, and no
deadline beyond the wrapped transport's own timeouts.
"""
from __future__ import annotations
import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5
DEFAULT_RETRY_DELAY = 5.0
MIN_RETRY_DELAY = 1.0
RATE_LIMIT_HEADER = "X-RateLimit-Reset"


def should_retry(response: httpx.Response) -> bool:
    return response.status_code == 429 or response.status_code >= 500


def get_delay(rate_limit_reset: Optional[str], default: float, now: float) -> float:
    """Seconds to wait before the next attempt."""
    if not rate_limit_reset:
        return default
    try:
        reset = float(rate_limit_reset)
    except ValueError:
        return default
    return max(reset - now, MIN_RETRY_DELAY)


class RetryTransport(httpx.AsyncBaseTransport):
    """`httpx` transport that retries the wrapped transport.

    The request body is buffered once so it can be replayed on every
    attempt. After the last attempt the final response is returned, or the
    final transport error re-raised, unchanged.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        *,
        max_attempts: int = MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._transport = transport if transport is not None else httpx.AsyncHTTPTransport()
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._sleep = sleep
        self._clock = clock

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        await request.aread()

        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._transport.handle_async_request(request)
            except httpx.TransportError as exc:
                if attempt >= self.max_attempts:
                    raise
                logger.warning("%s %s failed (attempt %d/%d): %s",
                               request.method, request.url, attempt, self.max_attempts, exc)
                await self._sleep(self.retry_delay)
                continue

            if attempt >= self.max_attempts or not should_retry(response):
                return response

            delay = get_delay(response.headers.get(RATE_LIMIT_HEADER), self.retry_delay, self._clock())
            logger.warning("%s %s returned %s (attempt %d/%d), retrying in %.1fs",
                           request.method, request.url, response.status_code,
                           attempt, self.max_attempts, delay)
            await response.aclose()
            await self._sleep(delay)

    async def aclose(self) -> None:
        await self._transport.aclose()
