"""HTTP helpers with retry/backoff for the outbound email provider."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({408, 429, 500, 502, 503, 504})


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Exponential backoff with up to 50% jitter."""
    delay = min(max_delay, base_delay * (2**attempt))
    return delay + random.uniform(0, delay / 2) if delay else 0.0


async def request_with_retries(
    send: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: frozenset[int] = RETRYABLE_STATUSES,
) -> httpx.Response:
    """
    Run `send` until it returns a non-retryable response or attempts run out.

    Transport errors on the last attempt propagate; a retryable status on the
    last attempt is returned to the caller as-is.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_attempt = max_attempts - 1
    for attempt in range(max_attempts):
        try:
            response = await send()
        except httpx.RequestError as exc:
            if attempt == last_attempt:
                raise
            logger.warning(
                "Email provider request failed (%s), retry %s/%s",
                type(exc).__name__,
                attempt + 1,
                last_attempt,
            )
        else:
            if response.status_code not in retry_statuses or attempt == last_attempt:
                return response
            logger.warning(
                "Email provider returned %s, retry %s/%s",
                response.status_code,
                attempt + 1,
                last_attempt,
            )

        delay = backoff_delay(attempt, base_delay, max_delay)
        if delay:
            await asyncio.sleep(delay)

    raise RuntimeError("unreachable")
