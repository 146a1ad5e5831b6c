# linkmeta/services/durable.py
# Responsibility: Backends for the opaque key-value blob behind the icon store.

import asyncio
import json
import logging
import os
import tempfile
from typing import Any, Dict, Optional

import redis.asyncio as aioredis

from linkmeta.config.settings import AppSettings, settings

logger = logging.getLogger(__name__)


class MemoryStorage:
    """Process-local blob. Useful for tests and ephemeral deployments."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})
        self.save_count = 0

    async def load(self) -> Dict[str, Any]:
        return json.loads(json.dumps(self._data))

    async def save(self, data: Dict[str, Any]) -> None:
        self._data = json.loads(json.dumps(data))
        self.save_count += 1

    async def close(self) -> None:
        return None


class JsonFileStorage:
    """
    Stores the blob as one JSON document on disk.
    Writes go through a temporary file and an atomic rename.
    """

    def __init__(self, path: str = settings.ICON.STORAGE_PATH):
        self.path = path

    async def load(self) -> Dict[str, Any]:
        return await asyncio.to_thread(self._read)

    async def save(self, data: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, data)

    async def close(self) -> None:
        return None

    def _read(self) -> Dict[str, Any]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


class RedisStorage:
    """Stores the blob as a JSON string under a single Redis key."""

    def __init__(
        self,
        url: str = settings.REDIS.URL,
        key: str = settings.REDIS.BLOB_KEY,
        client: Optional[aioredis.Redis] = None,
    ):
        self.key = key
        self.client = client or aioredis.from_url(url, decode_responses=True)

    async def load(self) -> Dict[str, Any]:
        raw = await self.client.get(self.key)
        if not raw:
            return {}
        data = json.loads(raw)
        return data if isinstance(data, dict) else {}

    async def save(self, data: Dict[str, Any]) -> None:
        await self.client.set(self.key, json.dumps(data))

    async def close(self) -> None:
        await self.client.aclose()


def build_durable_storage(app_settings: AppSettings = settings):
    """Selects a backend from ICON.STORAGE_BACKEND ("file", "redis" or "memory")."""
    backend = app_settings.ICON.STORAGE_BACKEND.lower()
    if backend == "redis":
        return RedisStorage(app_settings.REDIS.URL, app_settings.REDIS.BLOB_KEY)
    if backend == "memory":
        return MemoryStorage()
    if backend != "file":
        logger.warning("[Durable] Unknown storage backend %r, using file", backend)
    return JsonFileStorage(app_settings.ICON.STORAGE_PATH)
