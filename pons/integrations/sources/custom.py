"""
Custom Endpoint Adapter

Syncs a user-supplied JSON endpoint. The endpoint is polled with the
configured API key (sent as a bearer token) and the latest payload is kept
for the insights layer.

Endpoint contract:
- GET {custom_endpoint} -> 2xx with a JSON body (object or array)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import httpx
import structlog

from pons.integrations.base.adapter import BaseAdapter
from pons.integrations.base.config import IntegrationConfig, ProviderType
from pons.integrations.http import adapter_request
from pons.integrations.rate_limit import DEFAULT_RATE_LIMIT, RateLimiter, RateLimitPolicy
from pons.kernel.errors import ConnectionFailedError, TransientSyncError
from pons.kernel.time import utc_now

logger = structlog.get_logger()


class CustomEndpointAdapter(BaseAdapter):
    """Adapter for a generic JSON endpoint."""

    def __init__(
        self,
        *,
        rate_limiter: RateLimiter,
        rate_limit: RateLimitPolicy = DEFAULT_RATE_LIMIT,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout_seconds: float = 30.0,
    ):
        super().__init__(ProviderType.CUSTOM.value, rate_limiter=rate_limiter, rate_limit=rate_limit)
        self._transport = transport
        self._timeout_seconds = timeout_seconds
        self._client: httpx.AsyncClient | None = None
        self._endpoint: str | None = None
        self._payload: Any = None
        self._last_synced_at: datetime | None = None

    async def connect(self, config: IntegrationConfig) -> bool:
        endpoint = config.credential("custom_endpoint")
        if not endpoint:
            return False

        headers = {"Accept": "application/json"}
        api_key = config.credential("api_key")
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        client = httpx.AsyncClient(
            headers=headers,
            timeout=self._timeout_seconds,
            transport=self._transport,
        )
        try:
            self._payload = await self._fetch(client, endpoint)
        except (ConnectionFailedError, TransientSyncError, httpx.HTTPError) as e:
            await client.aclose()
            logger.warning(
                "Custom endpoint connection check failed",
                endpoint=endpoint,
                error=str(e),
            )
            return False

        self._client = client
        self._endpoint = endpoint
        self._last_synced_at = utc_now()
        return True

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        self._client = None
        self._endpoint = None
        self._payload = None

    def is_connected(self) -> bool:
        return self._client is not None

    async def sync(self) -> None:
        if self._client is None or self._endpoint is None:
            raise TransientSyncError(message="Custom endpoint is not connected")

        self._payload = await self._fetch(self._client, self._endpoint)
        self._last_synced_at = utc_now()
        logger.debug("Custom endpoint synced", endpoint=self._endpoint)

    async def get_insights(self) -> dict[str, Any]:
        if isinstance(self._payload, list):
            record_count = len(self._payload)
        elif isinstance(self._payload, dict):
            record_count = len(self._payload.get("items", [])) if isinstance(self._payload.get("items"), list) else 1
        else:
            record_count = 0

        return {
            "endpoint": self._endpoint,
            "last_synced_at": self._last_synced_at.isoformat() if self._last_synced_at else None,
            "record_count": record_count,
            "data": self._payload,
        }

    async def _fetch(self, client: httpx.AsyncClient, endpoint: str) -> Any:
        response = await adapter_request(self, client, "GET", endpoint)

        if response.status_code in (401, 403):
            raise ConnectionFailedError(
                message="Custom endpoint rejected the credentials",
                meta={"status_code": response.status_code},
            )
        if response.status_code >= 400:
            raise TransientSyncError(
                message=f"Custom endpoint returned {response.status_code}",
                meta={"status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransientSyncError(message="Custom endpoint returned invalid JSON") from e
