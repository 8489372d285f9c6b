"""Unit tests for the standalone scheduler runner."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from pons.scheduling import runner

pytestmark = pytest.mark.unit


@pytest.mark.asyncio
async def test_failed_startup_still_shuts_services_down(monkeypatch):
    services = MagicMock()
    services.startup = AsyncMock(side_effect=RuntimeError("state file unreadable"))
    services.shutdown = AsyncMock()
    monkeypatch.setattr(runner, "build_services", lambda settings: services)

    with pytest.raises(RuntimeError, match="state file unreadable"):
        await runner._run()

    services.shutdown.assert_awaited_once()
