"""
Key-Value Storage

String values under string keys, mirroring browser local storage. The local
backend keeps one file per key so a crash mid-write only affects that key.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote
from uuid import uuid4

import aiofiles
import aiofiles.os
import structlog

from partsrunner.config import get_settings
from partsrunner.kernel.errors import StorageError
from partsrunner.kernel.serialization import json_dumps, json_loads

logger = structlog.get_logger()

_SUFFIX = ".val"


class KeyValueStore:
    """Abstract key-value storage interface."""

    async def get(self, key: str) -> str | None:
        raise NotImplementedError

    async def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    async def remove(self, key: str) -> None:
        raise NotImplementedError

    async def keys(self, prefix: str = "") -> list[str]:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """In-process storage backend."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class LocalKeyValueStore(KeyValueStore):
    """Local filesystem storage backend."""

    def __init__(self, root_path: str) -> None:
        self.root_path = Path(root_path)
        self.root_path.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not key:
            raise ValueError("Storage key must be non-empty")
        return self.root_path / f"{quote(key, safe='')}{_SUFFIX}"

    async def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                return await f.read()
        except OSError as exc:
            raise StorageError(message=f"Failed to read {key!r}", meta={"error": str(exc)}) from exc

    async def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(value)
            await aiofiles.os.replace(tmp_path, path)
        except OSError as exc:
            if tmp_path.exists():
                await aiofiles.os.remove(tmp_path)
            raise StorageError(message=f"Failed to write {key!r}", meta={"error": str(exc)}) from exc

    async def remove(self, key: str) -> None:
        path = self._path(key)
        if path.exists():
            await aiofiles.os.remove(path)

    async def keys(self, prefix: str = "") -> list[str]:
        out: list[str] = []
        for entry in self.root_path.iterdir():
            name = entry.name
            if name.startswith(".") or not name.endswith(_SUFFIX):
                continue
            key = unquote(name[: -len(_SUFFIX)])
            if key.startswith(prefix):
                out.append(key)
        return sorted(out)


async def load_json(store: KeyValueStore, key: str, default: Any) -> Any:
    """Load a JSON value, treating a corrupt entry as absent."""
    raw = await store.get(key)
    if raw is None:
        return default
    try:
        return json_loads(raw)
    except ValueError as exc:
        logger.error("Failed to load offline data", key=key, error=str(exc))
        return default


async def save_json(store: KeyValueStore, key: str, value: Any) -> None:
    await store.set(key, json_dumps(value))


def get_key_value_store() -> KeyValueStore:
    settings = get_settings()
    if settings.storage_backend == "memory":
        return MemoryKeyValueStore()
    return LocalKeyValueStore(settings.storage_path)
