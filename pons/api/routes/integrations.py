"""
Integration Management API Routes

Provides endpoints for managing connected integrations:
- List available and connected integrations
- Connect / disconnect
- Collected insights across connected adapters
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from pons.api.deps import get_registry, get_services
from pons.integrations.base.config import IntegrationConfig
from pons.integrations.registry import AdapterRegistry
from pons.kernel.errors import NotFoundError
from pons.services import SyncServices

logger = structlog.get_logger()

router = APIRouter(prefix="/integrations", tags=["Integrations"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================


class IntegrationSummary(BaseModel):
    """Integration as shown to the UI. Never carries credentials."""

    provider_type: str
    enabled: bool
    connected: bool


class IntegrationListResponse(BaseModel):
    available: list[str]
    connected: list[IntegrationSummary]


class ConnectResponse(BaseModel):
    provider_type: str
    connected: bool


def _summary(registry: AdapterRegistry, config: IntegrationConfig) -> IntegrationSummary:
    return IntegrationSummary(
        provider_type=config.provider_type,
        enabled=config.enabled,
        connected=registry.is_connected(config.provider_type),
    )


# =============================================================================
# ENDPOINTS
# =============================================================================


@router.get("", response_model=IntegrationListResponse)
async def list_integrations(services: SyncServices = Depends(get_services)):
    registry = services.registry
    return IntegrationListResponse(
        available=services.table.list_available(),
        connected=[_summary(registry, config) for config in registry.list_connected()],
    )


@router.post("", response_model=ConnectResponse)
async def connect_integration(
    config: IntegrationConfig,
    registry: AdapterRegistry = Depends(get_registry),
):
    """Connect (or reconnect) an integration. Failure is reported, not raised."""
    connected = await registry.connect(config)
    return ConnectResponse(provider_type=config.provider_type, connected=connected)


@router.get("/insights")
async def get_insights(registry: AdapterRegistry = Depends(get_registry)) -> dict[str, Any]:
    return await registry.collect_insights()


@router.get("/{provider_type}", response_model=IntegrationSummary)
async def get_integration(
    provider_type: str,
    registry: AdapterRegistry = Depends(get_registry),
):
    config = registry.get_config(provider_type)
    if config is not None:
        return _summary(registry, config)
    raise NotFoundError(message=f"Integration not connected: {provider_type}")


@router.delete("/{provider_type}", status_code=204)
async def disconnect_integration(
    provider_type: str,
    registry: AdapterRegistry = Depends(get_registry),
):
    await registry.disconnect(provider_type)
    return Response(status_code=204)
