"""Persistent key-value storage for the store's persisted state.

Values are strings (the store writes JSON), mirroring the async key-value
stores apps persist to.
"""

import asyncio
import json
import os
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from entitlement_engine.logging_config import get_logger

logger = get_logger(__name__)


class KeyValueStorage(Protocol):
    """Async string key-value storage."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


class InMemoryStorage:
    """Storage that lives as long as the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"InMemoryStorage(keys={len(self._data)})"


class JsonFileStorage:
    """Storage backed by a single JSON object on disk.

    Writes go to a temporary file that replaces the original, so a crash
    mid-write leaves the previous contents intact. File I/O runs in a worker
    thread; an asyncio lock orders writes from the same process.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(
                "storage_file_unreadable",
                path=str(self._path),
                error=str(e),
                error_type=type(e).__name__,
            )
            return {}
        if not isinstance(data, dict):
            logger.warning("storage_file_unreadable", path=str(self._path), error_type="NotAnObject")
            return {}
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._path)

    async def get(self, key: str) -> Optional[str]:
        data = await asyncio.to_thread(self._read_all)
        value = data.get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            data[key] = value
            await asyncio.to_thread(self._write_all, data)
        logger.debug("storage_written", path=str(self._path), key=key, size=len(value))

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
            if data.pop(key, None) is not None:
                await asyncio.to_thread(self._write_all, data)

    def __repr__(self) -> str:
        return f"JsonFileStorage(path={str(self._path)!r})"
