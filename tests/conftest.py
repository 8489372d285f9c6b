"""
Test Configuration and Fixtures

Provides shared fixtures for the sync core test suite. Every test builds
fresh services; nothing is shared through module-level state.
"""

import os

import pytest
import pytest_asyncio
from prometheus_client import CollectorRegistry

# Set test environment variables before importing the app.
os.environ.setdefault("PONS_LOG_LEVEL", "WARNING")
os.environ.setdefault("PONS_LOG_FORMAT", "text")
os.environ.setdefault("PONS_AUTOSTART_SCHEDULER", "false")

from pons.integrations.base.adapter import AdapterTable
from pons.integrations.persistence import MemoryKeyValueStore
from pons.integrations.rate_limit import RateLimiter
from pons.integrations.registry import AdapterRegistry
from pons.monitoring.metrics import Metrics
from pons.scheduling.scheduler import SyncScheduler
from pons.scheduling.status import SyncConfig
from tests.support.clock import FakeClock, RecordingSleep


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "api: API endpoint tests")
    config.addinivalue_line("markers", "slow: Slow tests (>1s)")


def pytest_collection_modifyitems(config, items):
    """
    Auto-assign tier markers so we can run:
    - pytest -m unit
    - pytest -m api

    Convention:
    - tests/api/** => api
    - everything else => unit
    """
    for item in items:
        path = str(getattr(item, "fspath", ""))
        if item.get_closest_marker("api") or item.get_closest_marker("unit"):
            continue
        if "/tests/api/" in path or "\\tests\\api\\" in path:
            item.add_marker(pytest.mark.api)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# CORE FIXTURES
# =============================================================================


@pytest.fixture
def fake_clock():
    """Deterministic epoch clock for the rate limiter."""
    return FakeClock()


@pytest.fixture
def recording_sleep():
    """Records retry backoff delays instead of sleeping."""
    return RecordingSleep()


@pytest.fixture
def metrics_registry():
    return CollectorRegistry()


@pytest.fixture
def metrics(metrics_registry):
    """Metrics bound to an isolated registry."""
    return Metrics(registry=metrics_registry)


@pytest.fixture
def store():
    return MemoryKeyValueStore()


@pytest.fixture
def rate_limiter(fake_clock, metrics):
    return RateLimiter(clock=fake_clock, metrics=metrics)


@pytest.fixture
def adapter_table():
    return AdapterTable()


@pytest_asyncio.fixture
async def registry(adapter_table, store, rate_limiter):
    registry = AdapterRegistry(adapter_table, store, rate_limiter)
    yield registry
    await registry.close()


@pytest_asyncio.fixture
async def scheduler(registry, store, metrics, recording_sleep):
    scheduler = SyncScheduler(
        registry,
        store,
        config=SyncConfig(retry_attempts=3, retry_delay_ms=10),
        metrics=metrics,
        sleep=recording_sleep,
    )
    yield scheduler
    await scheduler.shutdown()
