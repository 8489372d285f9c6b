"""Health check endpoints."""

import structlog
from fastapi import APIRouter, Depends

from pons import __version__
from pons.api.deps import get_services
from pons.kernel.time import utc_now
from pons.services import SyncServices

router = APIRouter()
logger = structlog.get_logger()

# Track startup time
_startup_time = utc_now()


@router.get("/health")
async def health_check(services: SyncServices = Depends(get_services)):
    """
    Basic health check endpoint.
    Returns 200 if the service is running.
    """
    now = utc_now()
    return {
        "status": "healthy",
        "service": "pons-sync",
        "version": __version__,
        "timestamp": now.isoformat(),
        "uptime_seconds": (now - _startup_time).total_seconds(),
        "scheduler_running": services.scheduler.is_scheduled(),
        "connected_integrations": len(services.registry.list_connected()),
    }
