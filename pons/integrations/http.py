"""
HTTP helpers for adapters.

Every outbound request consults the shared rate limiter before it is sent and
retries transient statuses with exponential backoff + jitter.
"""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING, Iterable

import httpx
import structlog

if TYPE_CHECKING:
    from pons.integrations.base.adapter import BaseAdapter

logger = structlog.get_logger()


RETRY_STATUSES = {429, 500, 502, 503, 504}


def _backoff(attempt: int, base_backoff: float, max_backoff: float) -> float:
    delay = min(max_backoff, base_backoff * (2 ** (attempt - 1)))
    return delay + random.uniform(0, delay / 2)


async def adapter_request(
    adapter: BaseAdapter,
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_attempts: int = 3,
    retry_statuses: Iterable[int] | None = None,
    base_backoff: float = 0.5,
    max_backoff: float = 8.0,
    wait_for_quota: bool = False,
    **kwargs,
) -> httpx.Response:
    """
    Standard adapter HTTP request wrapper.

    Use this instead of calling the client directly in adapters. Each attempt
    consumes one request from the adapter's provider quota; with
    `wait_for_quota=False` a denial raises `RateLimitExceededError`, which the
    scheduler's retry loop treats as a transient sync failure.
    """
    retry_statuses = set(retry_statuses or RETRY_STATUSES)

    attempt = 0
    while True:
        attempt += 1
        await adapter.acquire_quota(wait=wait_for_quota)

        try:
            response = await client.request(method, url, **kwargs)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            if attempt >= max_attempts:
                raise

            delay = _backoff(attempt, base_backoff, max_backoff)
            logger.warning(
                "Retrying request due to network error",
                provider_type=adapter.provider_type,
                url=url,
                attempt=attempt,
                delay=delay,
                error=str(e),
            )
            await asyncio.sleep(delay)
            continue

        if response.status_code in retry_statuses and attempt < max_attempts:
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                try:
                    delay = min(max_backoff, float(retry_after))
                except ValueError:
                    delay = base_backoff
            else:
                delay = _backoff(attempt, base_backoff, max_backoff)

            logger.warning(
                "Retrying request due to status",
                provider_type=adapter.provider_type,
                status_code=response.status_code,
                url=url,
                attempt=attempt,
                delay=delay,
            )
            await asyncio.sleep(delay)
            continue

        return response
