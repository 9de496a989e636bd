"""Per-workspace schedule store backed by one JSON document per workspace."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiofiles

from herald.config.paths import SCHEDULE_FILENAME, get_schedule_file
from herald.scheduling.types import ItemCollection, next_item_id

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A workspace document exists but cannot be read."""


class ItemStore:
    """Durable collection of scheduled items, one file per workspace.

    Reads and writes for a workspace are serialized by a per-workspace lock.
    ``mutate()`` holds the lock across load, caller changes and save, which
    makes it the single-writer primitive for ticks, commands and sync.
    """

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def path_for(self, workspace_id: str) -> Path:
        return get_schedule_file(workspace_id, self._data_dir)

    def workspace_ids(self) -> list[str]:
        """Workspaces that have a schedule document on disk."""
        if not self._data_dir.exists():
            return []
        return sorted(
            entry.name
            for entry in self._data_dir.iterdir()
            if (entry / SCHEDULE_FILENAME).is_file()
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load(self, workspace_id: str) -> ItemCollection:
        """Load a workspace's items, initializing an empty document on first use.

        Raises:
            StoreError: If the document is not valid.
        """
        async with self._lock(workspace_id):
            return await self._load_locked(workspace_id)

    async def save(self, workspace_id: str, collection: ItemCollection) -> None:
        """Replace a workspace's document atomically."""
        async with self._lock(workspace_id):
            await self._save_locked(workspace_id, collection)

    @staticmethod
    def next_id(collection: ItemCollection) -> int:
        return collection.next_id()

    @asynccontextmanager
    async def mutate(self, workspace_id: str) -> AsyncIterator[ItemCollection]:
        """Load, yield for in-place changes, and save if marked dirty.

        Nothing is written if the body raises.
        """
        async with self._lock(workspace_id):
            collection = await self._load_locked(workspace_id)
            yield collection
            if collection.dirty:
                await self._save_locked(workspace_id, collection)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _lock(self, workspace_id: str) -> asyncio.Lock:
        lock = self._locks.get(workspace_id)
        if lock is None:
            lock = self._locks[workspace_id] = asyncio.Lock()
        return lock

    async def _load_locked(self, workspace_id: str) -> ItemCollection:
        path = self.path_for(workspace_id)
        if not path.exists():
            collection = ItemCollection()
            await self._save_locked(workspace_id, collection)
            logger.debug(
                "schedule_initialized",
                extra={"workspace.id": workspace_id, "file.path": str(path)},
            )
            return collection

        async with aiofiles.open(path, encoding="utf-8") as f:
            content = await f.read()

        try:
            raw = json.loads(content)
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt schedule document {path}: {e}") from e
        if not isinstance(raw, dict) or not isinstance(raw.get("items", []), list):
            raise StoreError(f"Schedule document {path} has no items list")

        return ItemCollection.from_dict(raw)

    async def _save_locked(self, workspace_id: str, collection: ItemCollection) -> None:
        collection.last_updated = datetime.now(UTC)
        data = collection.to_dict()
        await asyncio.to_thread(_write_json_atomic, self.path_for(workspace_id), data)
        collection.mark_clean()


def _write_json_atomic(path: Path, data: dict[str, Any]) -> None:
    """Write JSON atomically via tempfile + fsync + os.replace()."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        Path(tmp).replace(path)
    except BaseException:
        try:
            Path(tmp).unlink()
        except OSError:
            pass
        raise


# Module-level conveniences matching the contract exposed to command handlers.


async def load_scheduled_items(store: ItemStore, workspace_id: str) -> ItemCollection:
    return await store.load(workspace_id)


async def save_scheduled_items(
    store: ItemStore, workspace_id: str, collection: ItemCollection
) -> None:
    await store.save(workspace_id, collection)


def get_next_item_id(collection: ItemCollection) -> int:
    """(Max existing id across all items, or 0) + 1, independent of ordering."""
    return next_item_id(collection.items, collection.last_id)
