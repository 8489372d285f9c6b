"""FastAPI dependencies resolving the process-wide services."""

from fastapi import Request

from pons.integrations.registry import AdapterRegistry
from pons.scheduling.scheduler import SyncScheduler
from pons.services import SyncServices


def get_services(request: Request) -> SyncServices:
    return request.app.state.services


def get_registry(request: Request) -> AdapterRegistry:
    return get_services(request).registry


def get_scheduler(request: Request) -> SyncScheduler:
    return get_services(request).scheduler
