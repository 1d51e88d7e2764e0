"""Tests for ChangeNotifier: fan-out, backpressure, SSE framing."""

from __future__ import annotations

import asyncio
import json

from mediashare.events import KEEPALIVE_FRAME, ChangeEvent, ChangeNotifier, EventType


def _payload(frame: str) -> dict:
    assert frame.startswith("data: ") and frame.endswith("\n\n")
    return json.loads(frame[len("data: ") : -2])


class TestChangeEvent:
    def test_files_changed_dict(self):
        event = ChangeEvent(EventType.FILES_CHANGED, directory="movies")
        assert event.to_dict() == {"type": "files-changed", "directory": "movies"}

    def test_root_directory_is_empty_string(self):
        assert ChangeEvent(EventType.FILES_CHANGED).to_dict()["directory"] == ""

    def test_settings_changed_has_timestamp(self):
        event = ChangeEvent(EventType.SETTINGS_CHANGED, timestamp=123)
        assert event.to_dict() == {"type": "settings-changed", "timestamp": 123}

    def test_sse_frame(self):
        frame = ChangeEvent(EventType.FILES_CHANGED, directory="a").to_sse()
        assert _payload(frame) == {"type": "files-changed", "directory": "a"}


class TestPublish:
    async def test_no_subscribers(self, notifier):
        assert await notifier.notify_directory("movies") == 0

    async def test_fan_out(self, notifier):
        a = await notifier.subscribe()
        b = await notifier.subscribe()
        assert notifier.subscriber_count == 2
        assert await notifier.notify_directory("movies") == 2
        assert a.queue.get_nowait().directory == "movies"
        assert b.queue.get_nowait().directory == "movies"

    async def test_unsubscribe(self, notifier):
        sub = await notifier.subscribe()
        notifier.unsubscribe(sub)
        assert sub.closed
        assert notifier.subscriber_count == 0
        assert await notifier.notify_directory("x") == 0

    async def test_full_mailbox_drops_subscriber(self):
        notifier = ChangeNotifier(max_pending=2)
        slow = await notifier.subscribe()
        fast = await notifier.subscribe()
        await notifier.notify_directory("1")
        await notifier.notify_directory("2")
        fast.queue.get_nowait()
        fast.queue.get_nowait()

        delivered = await notifier.notify_directory("3")
        assert delivered == 1
        assert slow.closed
        assert notifier.subscriber_count == 1


class TestStream:
    async def test_connected_then_events(self, notifier):
        sub = await notifier.subscribe()
        stream = notifier.stream(sub, keepalive=5)
        assert _payload(await anext(stream))["type"] == "connected"

        await notifier.notify_directory("docs")
        assert _payload(await anext(stream)) == {"type": "files-changed", "directory": "docs"}
        await stream.aclose()
        assert notifier.subscriber_count == 0

    async def test_keepalive(self, notifier):
        sub = await notifier.subscribe()
        stream = notifier.stream(sub, keepalive=0.01)
        await anext(stream)
        assert await anext(stream) == KEEPALIVE_FRAME
        await stream.aclose()

    async def test_close_all_ends_streams(self, notifier):
        sub = await notifier.subscribe()
        frames: list[str] = []

        async def consume() -> None:
            async for frame in notifier.stream(sub, keepalive=5):
                frames.append(frame)

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        await notifier.close_all()
        await asyncio.wait_for(task, timeout=1)
        assert len(frames) == 1
        assert notifier.subscriber_count == 0
