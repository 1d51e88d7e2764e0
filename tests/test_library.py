"""Tests for SettingsService and ViewStats."""

from __future__ import annotations

import asyncio

import pytest

from mediashare.events import EventType
from mediashare.fs.exceptions import InvalidRequestError, PathTraversalError
from mediashare.library import SettingsService, ViewStats
from mediashare.store import JsonStore


@pytest.fixture
def settings(data_dir, sandbox, disk, notifier) -> SettingsService:
    store = JsonStore(data_dir / "settings.json", sandbox.identity, name="settings")
    return SettingsService(store, disk, notifier)


@pytest.fixture
def stats(data_dir, sandbox, disk) -> ViewStats:
    return ViewStats(JsonStore(data_dir / "stats.json", sandbox.identity, name="stats"), disk)


class TestViewModes:
    async def test_default(self, settings):
        assert await settings.view_mode("movies") == "list"

    async def test_set_and_get(self, settings):
        await settings.set_view_mode("movies/", "grid")
        assert await settings.view_mode("movies") == "grid"
        assert await settings.view_mode("docs") == "list"

    async def test_invalid_mode(self, settings):
        with pytest.raises(InvalidRequestError):
            await settings.set_view_mode("movies", "table")

    async def test_publishes_settings_changed(self, settings, notifier):
        sub = await notifier.subscribe()
        await settings.set_view_mode("", "grid")
        assert sub.queue.get_nowait().event_type is EventType.SETTINGS_CHANGED


class TestFavorites:
    async def test_toggle(self, settings):
        assert await settings.toggle_favorite("movies/a.mp4") == (True, ["movies/a.mp4"])
        assert await settings.toggle_favorite("pic.png") == (True, ["movies/a.mp4", "pic.png"])
        assert await settings.toggle_favorite("movies/a.mp4") == (False, ["pic.png"])
        assert (await settings.snapshot()).favorites == ["pic.png"]

    async def test_concurrent_toggles_all_land(self, settings):
        paths = [f"movies/clip-{i}.mp4" for i in range(40)]
        await asyncio.gather(*(settings.toggle_favorite(p) for p in paths))
        assert sorted((await settings.snapshot()).favorites) == sorted(paths)

    async def test_requires_path(self, settings):
        with pytest.raises(InvalidRequestError):
            await settings.toggle_favorite("")

    async def test_traversal(self, settings):
        with pytest.raises(PathTraversalError):
            await settings.toggle_favorite("../etc/passwd")

    async def test_items_skip_missing(self, settings, media_root):
        await settings.toggle_favorite("pic.png")
        await settings.toggle_favorite("gone.mp4")
        items = await settings.favorites_as_items()
        assert [i.path for i in items] == ["pic.png"]

    async def test_malformed_document(self, settings, data_dir, sandbox):
        store = JsonStore(data_dir / "settings.json", sandbox.identity)
        async with store.transaction() as doc:
            doc["favorites"] = "not a list"
        assert (await settings.snapshot()).favorites == []


class TestKnowledgeBases:
    async def test_toggle(self, settings):
        assert await settings.toggle_knowledge_base("editable") == (True, ["editable"])
        assert await settings.knowledge_bases() == ["editable"]
        assert await settings.toggle_knowledge_base("editable/") == (False, [])

    async def test_file_rejected(self, settings):
        with pytest.raises(InvalidRequestError, match="folders"):
            await settings.toggle_knowledge_base("editable/notes.md")
        assert await settings.knowledge_bases() == []

    async def test_independent_of_favorites(self, settings):
        await settings.toggle_knowledge_base("docs")
        await settings.toggle_favorite("docs")
        snapshot = await settings.snapshot()
        assert snapshot.knowledge_bases == ["docs"]
        assert snapshot.favorites == ["docs"]


class TestViewStats:
    async def test_record_view(self, stats):
        assert await stats.record_view("movies/a.mp4") == 1
        assert await stats.record_view("movies/a.mp4") == 2
        assert await stats.views() == {"movies/a.mp4": 2}

    async def test_share_views_are_separate(self, stats):
        await stats.record_share_view("movies/a.mp4")
        snapshot = await stats.snapshot()
        assert snapshot.share_views == {"movies/a.mp4": 1}
        assert snapshot.views == {}

    async def test_requires_path(self, stats):
        with pytest.raises(InvalidRequestError):
            await stats.record_view("")

    async def test_most_played(self, stats, media_root):
        for _ in range(3):
            await stats.record_view("movies/b.mkv")
        await stats.record_view("movies/a.mp4")
        for _ in range(5):
            await stats.record_view("deleted.mp4")
        await stats.record_view("movies")

        items = await stats.most_played()
        assert [(i.path, i.view_count) for i in items] == [
            ("movies/b.mkv", 3),
            ("movies/a.mp4", 1),
        ]
        assert items[0].to_dict()["view_count"] == 3

    async def test_most_played_limit(self, stats):
        await stats.record_view("movies/a.mp4")
        await stats.record_view("movies/b.mkv")
        await stats.record_view("movies/b.mkv")
        assert [i.name for i in await stats.most_played(limit=1)] == ["b.mkv"]
