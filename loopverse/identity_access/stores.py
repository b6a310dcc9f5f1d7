"""
Local key-value stores for the session cache: in-memory and JSON file.

Why: The session manager persists the user blob, role, selected role and
settings between process runs. The file store plays the role of the device's
persistent storage; the memory store keeps tests and throwaway runs isolated.

Security: Values are stored as plain strings. Cached credentials are not
encrypted; only identity metadata is stored, never passwords.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional
import asyncio
import json
import os

from loopverse.identity_access.ports import StorageError


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    async def remove_item(self, key: str) -> None:
        self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileKeyValueStore:
    """Persist all keys as one JSON object on disk.

    Parameters
    ----------
    path:
        File location. Parent directories are created on first write. A missing
        file reads as an empty store.

    Writes go to a temporary sibling file which then replaces the target, so a
    crash mid-write never leaves a truncated cache behind.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_sync(self) -> Dict[str, str]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise StorageError(f"read failed: {type(exc).__name__}") from exc
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise StorageError("cache file is not valid JSON") from exc
        if not isinstance(data, dict):
            raise StorageError("cache file must hold a JSON object")
        return {str(k): str(v) for k, v in data.items()}

    def _write_sync(self, data: Dict[str, str]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, sort_keys=True), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as exc:
            raise StorageError(f"write failed: {type(exc).__name__}") from exc

    async def get_item(self, key: str) -> Optional[str]:
        async with self._lock:
            data = await asyncio.to_thread(self._read_sync)
        return data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_sync)
            data[key] = str(value)
            await asyncio.to_thread(self._write_sync, data)

    async def remove_item(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_sync)
            if key not in data:
                return
            data.pop(key)
            await asyncio.to_thread(self._write_sync, data)


__all__ = ["MemoryKeyValueStore", "JsonFileKeyValueStore"]
