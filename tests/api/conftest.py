"""API test fixtures: an app wired to in-memory services."""

import pytest
from fastapi.testclient import TestClient

from pons.api.main import create_app
from pons.config import Settings
from pons.integrations.base.adapter import AdapterTable
from pons.integrations.persistence import MemoryKeyValueStore
from pons.services import build_services
from tests.support.adapters import register_fake


@pytest.fixture
def api_settings(tmp_path):
    return Settings(
        state_path=str(tmp_path / "state.json"),
        autostart_scheduler=False,
        sync_retry_attempts=1,
    )


@pytest.fixture
def api_services(api_settings):
    table = AdapterTable()
    register_fake(table, "hubspot", required_credentials=("api_key",))
    register_fake(table, "broken", always_fail=True)
    register_fake(table, "rejecting", accept=False)
    return build_services(api_settings, store=MemoryKeyValueStore(), table=table)


@pytest.fixture
def client(api_services, api_settings):
    app = create_app(services=api_services, settings=api_settings)
    with TestClient(app) as client:
        yield client
