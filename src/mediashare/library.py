"""Settings and view-statistics services over their own ``JsonStore``.

Each service owns one store, so settings writes never wait on stats
writes and vice versa.  Every mutation is a single store transaction.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, get_args

from mediashare.events import ChangeEvent, EventType
from mediashare.fs.exceptions import InvalidRequestError, PathTraversalError
from mediashare.fs.sandbox import check_relative
from mediashare.models.library import SettingsDocument, StatsDocument, ViewMode

if TYPE_CHECKING:
    from mediashare.events import ChangeNotifier
    from mediashare.fs.local_disk import LocalDiskBackend
    from mediashare.fs.types import FileItem
    from mediashare.store import JsonStore

logger = logging.getLogger(__name__)

DEFAULT_VIEW_MODE: ViewMode = "list"
MOST_PLAYED_LIMIT = 50
_VIEW_MODES = frozenset(get_args(ViewMode))


async def _items_for(disk: LocalDiskBackend, paths: list[str]) -> list[FileItem]:
    items: list[FileItem] = []
    for path in paths:
        try:
            item = await disk.get_item(path)
        except PathTraversalError:
            item = None
        if item is not None:
            items.append(item)
    return items


class SettingsService:
    """Folder view modes, favorites and knowledge-base folders."""

    def __init__(
        self,
        store: JsonStore,
        disk: LocalDiskBackend,
        notifier: ChangeNotifier | None = None,
    ) -> None:
        self._store = store
        self._disk = disk
        self._notifier = notifier

    async def _changed(self) -> None:
        if self._notifier is not None:
            await self._notifier.publish(ChangeEvent(EventType.SETTINGS_CHANGED))

    async def snapshot(self) -> SettingsDocument:
        section = await self._store.read()
        try:
            return SettingsDocument.model_validate(section)
        except ValueError:
            logger.warning("Settings document is malformed; using defaults")
            return SettingsDocument()

    async def view_mode(self, folder: str) -> ViewMode:
        folder = check_relative(folder)
        return (await self.snapshot()).view_modes.get(folder, DEFAULT_VIEW_MODE)

    async def set_view_mode(self, folder: str, mode: str) -> None:
        if mode not in _VIEW_MODES:
            raise InvalidRequestError("Invalid view mode")
        folder = check_relative(folder)
        async with self._store.transaction() as doc:
            view_modes = doc.get("view_modes")
            if not isinstance(view_modes, dict):
                view_modes = doc["view_modes"] = {}
            view_modes[folder] = mode
        await self._changed()

    async def _toggle(self, key: str, path: str) -> tuple[bool, list[str]]:
        path = check_relative(path)
        if not path:
            raise InvalidRequestError("File path is required")
        async with self._store.transaction() as doc:
            members = doc.get(key)
            if not isinstance(members, list):
                members = doc[key] = []
            if path in members:
                members.remove(path)
                present = False
            else:
                members.append(path)
                present = True
            result = list(members)
        await self._changed()
        return present, result

    async def toggle_favorite(self, path: str) -> tuple[bool, list[str]]:
        """Add *path* to favorites, or remove it if present.

        Returns:
            (is_favorite_now, favorites)
        """
        return await self._toggle("favorites", path)

    async def toggle_knowledge_base(self, path: str) -> tuple[bool, list[str]]:
        """Mark folder *path* as a knowledge base, or unmark it.

        Returns:
            (is_knowledge_base_now, knowledge_bases)
        """
        item = await self._disk.get_item(path)
        if item is not None and not item.is_directory:
            raise InvalidRequestError("Knowledge bases must be folders")
        return await self._toggle("knowledge_bases", path)

    async def knowledge_bases(self) -> list[str]:
        return (await self.snapshot()).knowledge_bases

    async def favorites_as_items(self) -> list[FileItem]:
        """Favorites that still exist, in favorite order."""
        return await _items_for(self._disk, (await self.snapshot()).favorites)


class ViewStats:
    """Per-file view counters for owner and share visitors."""

    def __init__(self, store: JsonStore, disk: LocalDiskBackend) -> None:
        self._store = store
        self._disk = disk

    async def _increment(self, key: str, path: str) -> int:
        path = check_relative(path)
        if not path:
            raise InvalidRequestError("File path is required")
        async with self._store.transaction() as doc:
            counters = doc.get(key)
            if not isinstance(counters, dict):
                counters = doc[key] = {}
            count = int(counters.get(path) or 0) + 1
            counters[path] = count
        return count

    async def record_view(self, path: str) -> int:
        return await self._increment("views", path)

    async def record_share_view(self, path: str) -> int:
        return await self._increment("share_views", path)

    async def snapshot(self) -> StatsDocument:
        section = await self._store.read()
        try:
            return StatsDocument.model_validate(section)
        except ValueError:
            logger.warning("Stats document is malformed; using defaults")
            return StatsDocument()

    async def views(self) -> dict[str, int]:
        return (await self.snapshot()).views

    async def most_played(self, limit: int = MOST_PLAYED_LIMIT) -> list[FileItem]:
        """Top files by view count; directories and missing files are skipped."""
        ranked = sorted((await self.views()).items(), key=lambda kv: kv[1], reverse=True)
        items: list[FileItem] = []
        for path, count in ranked:
            if len(items) >= limit:
                break
            try:
                item = await self._disk.get_item(path)
            except PathTraversalError:
                continue
            if item is None or item.is_directory:
                continue
            item.view_count = count
            items.append(item)
        return items
