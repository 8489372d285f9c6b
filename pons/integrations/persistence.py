"""
Key/Value Persistence

Small durable scratch storage used to survive restarts of a single process:
saved integration configs, the last sync time and scheduler tuning.
Absence of a value always means "use the default".
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Protocol, runtime_checkable

import aiofiles
import aiofiles.os
import structlog

logger = structlog.get_logger()

INTEGRATIONS_KEY = "pons_integrations"
LAST_SYNC_TIME_KEY = "pons_last_sync_time"
SYNC_CONFIG_KEY = "pons_sync_config"


@runtime_checkable
class KeyValueStore(Protocol):
    """Persistence collaborator consumed by the registry and the scheduler."""

    async def load(self, key: str) -> str | None: ...

    async def save(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    """In-process store. Used by tests and when persistence is disabled."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    async def load(self, key: str) -> str | None:
        return self._data.get(key)

    async def save(self, key: str, value: str) -> None:
        self._data[key] = value

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class FileKeyValueStore:
    """
    File-backed store holding every key in one JSON document.

    Writes go to a sibling temp file which then replaces the target, so a
    crash mid-write never leaves a truncated document behind.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser()
        self._lock = asyncio.Lock()
        self._cache: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    async def _read_all(self) -> dict[str, str]:
        if self._cache is not None:
            return self._cache

        if not self._path.exists():
            self._cache = {}
            return self._cache

        async with aiofiles.open(self._path, "r", encoding="utf-8") as f:
            content = await f.read()

        try:
            data = json.loads(content) if content.strip() else {}
        except json.JSONDecodeError as e:
            logger.warning("State file is not valid JSON, starting empty", path=str(self._path), error=str(e))
            data = {}

        if not isinstance(data, dict):
            logger.warning("State file has unexpected shape, starting empty", path=str(self._path))
            data = {}

        self._cache = {str(k): str(v) for k, v in data.items()}
        return self._cache

    async def load(self, key: str) -> str | None:
        async with self._lock:
            data = await self._read_all()
            return data.get(key)

    async def save(self, key: str, value: str) -> None:
        async with self._lock:
            data = dict(await self._read_all())
            data[key] = value

            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_name(self._path.name + ".tmp")
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, indent=2, sort_keys=True))
            await aiofiles.os.replace(tmp_path, self._path)

            self._cache = data
