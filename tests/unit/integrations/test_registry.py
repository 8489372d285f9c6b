"""
Unit tests for AdapterRegistry.

Covers connect atomicity, configuration errors, idempotent disconnect,
persistence/restore and fan-out sync.
"""

import asyncio
import json

import pytest

from pons.integrations.base.config import IntegrationConfig
from pons.integrations.persistence import INTEGRATIONS_KEY, MemoryKeyValueStore
from pons.integrations.registry import AdapterRegistry
from pons.kernel.errors import TransientSyncError
from tests.support.adapters import FakeAdapter, register_fake

pytestmark = pytest.mark.unit


def _saved(store: MemoryKeyValueStore) -> list[dict]:
    return json.loads(store.snapshot()[INTEGRATIONS_KEY])


# =============================================================================
# connect
# =============================================================================


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_registers_and_persists(self, registry, adapter_table, store):
        register_fake(adapter_table, "hubspot", required_credentials=("api_key",))
        config = IntegrationConfig(provider_type="hubspot", api_key="secret")

        assert await registry.connect(config) is True

        assert registry.is_connected("hubspot")
        assert isinstance(registry.get("hubspot"), FakeAdapter)
        assert registry.get("hubspot").connected_with == config
        assert registry.list_connected() == [config]
        assert _saved(store)[0]["provider_type"] == "hubspot"

    @pytest.mark.asyncio
    async def test_unknown_provider_type_returns_false(self, registry, store):
        config = IntegrationConfig(provider_type="myspace")

        assert await registry.connect(config) is False
        assert registry.get("myspace") is None
        assert INTEGRATIONS_KEY not in store.snapshot()

    @pytest.mark.asyncio
    async def test_missing_credentials_returns_false(self, registry, adapter_table):
        register_fake(adapter_table, "plaid", required_credentials=("client_id", "client_secret"))

        connected = await registry.connect(IntegrationConfig(provider_type="plaid", client_id="id"))

        assert connected is False
        assert registry.list_connected() == []

    @pytest.mark.asyncio
    async def test_credentials_may_come_from_extra(self, registry, adapter_table):
        register_fake(adapter_table, "notion", required_credentials=("workspace_id",))
        config = IntegrationConfig(provider_type="notion", extra={"workspace_id": "w1"})

        assert await registry.connect(config) is True

    @pytest.mark.asyncio
    async def test_rejected_credentials_leave_no_registration(self, registry, adapter_table, store):
        register_fake(adapter_table, "stripe", accept=False)

        assert await registry.connect(IntegrationConfig(provider_type="stripe")) is False
        assert registry.get("stripe") is None
        assert registry.is_connected("stripe") is False
        assert INTEGRATIONS_KEY not in store.snapshot()

    @pytest.mark.asyncio
    async def test_adapter_exception_is_contained(self, registry, adapter_table):
        register_fake(adapter_table, "github", raise_on_connect=RuntimeError("network down"))

        assert await registry.connect(IntegrationConfig(provider_type="github")) is False
        assert registry.list_connected() == []

    @pytest.mark.asyncio
    async def test_reconnect_replaces_and_disconnects_previous(self, registry, adapter_table):
        register_fake(adapter_table, "gmail")
        await registry.connect(IntegrationConfig(provider_type="gmail", access_token="old"))
        first = registry.get("gmail")

        await registry.connect(IntegrationConfig(provider_type="gmail", access_token="new"))

        second = registry.get("gmail")
        assert second is not first
        assert first.disconnect_calls == 1
        assert [c.access_token for c in registry.list_connected()] == ["new"]

    @pytest.mark.asyncio
    async def test_provider_type_is_normalized(self, registry, adapter_table):
        register_fake(adapter_table, "github")

        assert await registry.connect(IntegrationConfig(provider_type="  GitHub ")) is True
        assert registry.is_connected("GITHUB")
        assert registry.get_config(" github ").provider_type == "github"
        assert registry.get_config("gitlab") is None


# =============================================================================
# disconnect
# =============================================================================


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self, registry, adapter_table, store):
        register_fake(adapter_table, "spotify")
        await registry.connect(IntegrationConfig(provider_type="spotify"))
        adapter = registry.get("spotify")

        await registry.disconnect("spotify")
        state_after_first = store.snapshot()
        await registry.disconnect("spotify")

        assert adapter.disconnect_calls == 1
        assert registry.get("spotify") is None
        assert store.snapshot() == state_after_first
        assert _saved(store) == []

    @pytest.mark.asyncio
    async def test_disconnect_never_connected_is_noop(self, registry, store):
        await registry.disconnect("tiktok")

        assert registry.list_connected() == []
        assert store.snapshot() == {}


# =============================================================================
# restore / close
# =============================================================================


class TestRestore:
    @pytest.mark.asyncio
    async def test_restore_reconnects_saved_integrations(self, adapter_table, rate_limiter):
        register_fake(adapter_table, "youtube")
        register_fake(adapter_table, "linkedin")
        store = MemoryKeyValueStore(
            {
                INTEGRATIONS_KEY: json.dumps(
                    [
                        {"provider_type": "youtube", "access_token": "t"},
                        {"provider_type": "linkedin", "access_token": "t"},
                    ]
                )
            }
        )
        registry = AdapterRegistry(adapter_table, store, rate_limiter)

        assert await registry.restore() == 2
        assert registry.is_connected("youtube")
        assert registry.is_connected("linkedin")
        await registry.close()

    @pytest.mark.asyncio
    async def test_restore_skips_unknown_and_invalid_entries(self, adapter_table, rate_limiter):
        register_fake(adapter_table, "youtube")
        store = MemoryKeyValueStore(
            {
                INTEGRATIONS_KEY: json.dumps(
                    [
                        {"provider_type": "youtube"},
                        {"provider_type": "myspace"},
                        {"not_a_field": True},
                    ]
                )
            }
        )
        registry = AdapterRegistry(adapter_table, store, rate_limiter)

        assert await registry.restore() == 1
        assert [c.provider_type for c in registry.list_connected()] == ["youtube"]
        await registry.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not json", json.dumps({"provider_type": "x"})])
    async def test_restore_ignores_corrupt_state(self, adapter_table, rate_limiter, raw):
        registry = AdapterRegistry(adapter_table, MemoryKeyValueStore({INTEGRATIONS_KEY: raw}), rate_limiter)

        assert await registry.restore() == 0

    @pytest.mark.asyncio
    async def test_failed_reconnect_keeps_saved_config(self, adapter_table, rate_limiter):
        register_fake(adapter_table, "a")
        register_fake(adapter_table, "b", accept=False)
        store = MemoryKeyValueStore(
            {
                INTEGRATIONS_KEY: json.dumps(
                    [
                        {"provider_type": "a", "api_key": "ka"},
                        {"provider_type": "b", "api_key": "kb"},
                    ]
                )
            }
        )
        registry = AdapterRegistry(adapter_table, store, rate_limiter)

        assert await registry.restore() == 1

        saved = {entry["provider_type"]: entry for entry in _saved(store)}
        assert set(saved) == {"a", "b"}
        assert saved["b"]["api_key"] == "kb"
        assert [c.provider_type for c in registry.list_connected()] == ["a"]
        await registry.close()

    @pytest.mark.asyncio
    async def test_saved_config_survives_later_changes_until_disconnected(self, adapter_table, rate_limiter):
        register_fake(adapter_table, "a")
        register_fake(adapter_table, "b", accept=False)
        register_fake(adapter_table, "c")
        store = MemoryKeyValueStore({INTEGRATIONS_KEY: json.dumps([{"provider_type": "b"}])})
        registry = AdapterRegistry(adapter_table, store, rate_limiter)
        await registry.restore()

        await registry.connect(IntegrationConfig(provider_type="a"))
        await registry.connect(IntegrationConfig(provider_type="c"))
        await registry.disconnect("a")
        assert {entry["provider_type"] for entry in _saved(store)} == {"b", "c"}

        await registry.disconnect("b")
        assert [entry["provider_type"] for entry in _saved(store)] == ["c"]
        await registry.close()

    @pytest.mark.asyncio
    async def test_restore_without_saved_state(self, registry):
        assert await registry.restore() == 0

    @pytest.mark.asyncio
    async def test_close_disconnects_but_keeps_persisted_configs(self, registry, adapter_table, store):
        register_fake(adapter_table, "facebook")
        await registry.connect(IntegrationConfig(provider_type="facebook"))
        adapter = registry.get("facebook")

        await registry.close()

        assert adapter.disconnect_calls == 1
        assert registry.list_connected() == []
        assert _saved(store)[0]["provider_type"] == "facebook"


# =============================================================================
# snapshot / sync_all / insights
# =============================================================================


class TestSyncAll:
    @pytest.mark.asyncio
    async def test_sync_all_collects_results(self, registry, adapter_table):
        register_fake(adapter_table, "a")
        register_fake(adapter_table, "b", always_fail=True)
        await registry.connect(IntegrationConfig(provider_type="a"))
        await registry.connect(IntegrationConfig(provider_type="b"))

        results = await registry.sync_all()

        assert results == {"a": True, "b": False}
        assert registry.get("a").sync_calls == 1
        assert registry.get("b").sync_calls == 1

    @pytest.mark.asyncio
    async def test_sync_all_with_nothing_connected(self, registry):
        assert await registry.sync_all() == {}

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_others(self, registry, adapter_table):
        register_fake(adapter_table, "slow", sync_delay=0.02)
        register_fake(adapter_table, "broken", always_fail=True)
        await registry.connect(IntegrationConfig(provider_type="slow"))
        await registry.connect(IntegrationConfig(provider_type="broken"))

        results = await registry.sync_all()

        assert results["slow"] is True
        assert results["broken"] is False

    @pytest.mark.asyncio
    async def test_runner_exceptions_become_failures(self, registry, adapter_table):
        register_fake(adapter_table, "a")
        await registry.connect(IntegrationConfig(provider_type="a"))

        async def runner(provider_type, adapter):
            raise TransientSyncError(message="nope")

        assert await registry.sync_all(runner=runner) == {"a": False}

    @pytest.mark.asyncio
    async def test_max_concurrency_caps_fan_out(self, registry, adapter_table):
        active = 0
        peak = 0

        async def runner(provider_type, adapter):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return True

        for name in ("a", "b", "c", "d", "e"):
            register_fake(adapter_table, name)
            await registry.connect(IntegrationConfig(provider_type=name))

        results = await registry.sync_all(runner=runner, max_concurrency=2)

        assert all(results.values())
        assert len(results) == 5
        assert peak == 2

    @pytest.mark.asyncio
    async def test_disabled_integrations_are_not_synced(self, registry, adapter_table):
        register_fake(adapter_table, "a")
        register_fake(adapter_table, "b")
        await registry.connect(IntegrationConfig(provider_type="a"))
        await registry.connect(IntegrationConfig(provider_type="b", enabled=False))

        assert set(registry.snapshot()) == {"a"}
        assert await registry.sync_all() == {"a": True}

    @pytest.mark.asyncio
    async def test_disconnect_mid_cycle_does_not_affect_snapshot(self, registry, adapter_table):
        register_fake(adapter_table, "a", sync_delay=0.02)
        register_fake(adapter_table, "b", sync_delay=0.02)
        await registry.connect(IntegrationConfig(provider_type="a"))
        await registry.connect(IntegrationConfig(provider_type="b"))

        cycle = asyncio.create_task(registry.sync_all())
        await asyncio.sleep(0)
        await registry.disconnect("b")
        results = await cycle

        assert set(results) == {"a", "b"}
        assert set(registry.snapshot()) == {"a"}

    @pytest.mark.asyncio
    async def test_collect_insights_skips_disconnected(self, registry, adapter_table):
        register_fake(adapter_table, "a")
        await registry.connect(IntegrationConfig(provider_type="a"))
        registry.get("a").connected = False
        register_fake(adapter_table, "b")
        await registry.connect(IntegrationConfig(provider_type="b"))

        insights = await registry.collect_insights()

        assert insights == {"b": {"provider_type": "b", "sync_calls": 0}}
