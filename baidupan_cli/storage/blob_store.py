"""
Small JSON blob stores backing the credential blocklist, cleanup history and
persisted credential pool.
"""

import asyncio
import json
import logging
import os
import re
import uuid
from pathlib import Path
from typing import Any, Protocol

import aiofiles

log = logging.getLogger(__name__)

_KEY_REGEX = re.compile(r"^[A-Za-z0-9_-]+$")


class BlobStore(Protocol):
    """A key/value store holding one JSON document per key."""

    async def get(self, key: str) -> Any | None: ...

    async def put(self, key: str, value: Any) -> None: ...


class FileBlobStore:
    """
    Stores each key as `<key>.json` inside a directory.

    Writes go to a temporary file that is then atomically swapped in, so a
    reader never sees a half-written document. Concurrent writers are not
    coordinated: the last writer wins.
    """

    def __init__(self, store_dir: Path):
        """
        Args:
            store_dir: The directory where blob files will be stored.
        """
        self.store_dir = store_dir
        self.store_dir.mkdir(parents=True, exist_ok=True)

    def _get_blob_path(self, key: str) -> Path:
        if not _KEY_REGEX.match(key):
            raise ValueError(f"Invalid store key: {key!r}")
        return self.store_dir / f"{key}.json"

    async def get(self, key: str) -> Any | None:
        """Returns the stored document, or None if the key has never been written."""
        blob_path = self._get_blob_path(key)
        if not await asyncio.to_thread(blob_path.is_file):
            return None
        async with aiofiles.open(blob_path, encoding="utf-8") as f:
            return json.loads(await f.read())

    async def put(self, key: str, value: Any) -> None:
        blob_path = self._get_blob_path(key)
        # One temp file per write; concurrent writers must never share it.
        tmp_path = blob_path.with_name(f"{key}.{uuid.uuid4().hex}.tmp")
        try:
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(value))
            await asyncio.to_thread(os.replace, tmp_path, blob_path)
        finally:
            if await asyncio.to_thread(tmp_path.exists):
                await asyncio.to_thread(tmp_path.unlink)
        log.debug(f"Store key '{key}' written.")

    def clear(self) -> bool:
        """Removes every stored document."""
        log.info("Clearing credential store...")
        try:
            for blob_file in self.store_dir.glob("*.json"):
                blob_file.unlink()
            return True
        except OSError as e:
            log.error(f"Failed to clear credential store: {e}")
            return False


class MemoryBlobStore:
    """Process-lifetime store. Documents are copied in and out through JSON."""

    def __init__(self):
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Any | None:
        raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    async def put(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)
