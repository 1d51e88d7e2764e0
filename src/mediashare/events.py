"""ChangeNotifier and event types for server-push invalidation hints."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)

KEEPALIVE_FRAME = ": keep-alive\n\n"
KEEPALIVE_SECONDS = 30.0


class EventType(Enum):
    """Kinds of frames pushed to connected browsers."""

    CONNECTED = "connected"
    FILES_CHANGED = "files-changed"
    SETTINGS_CHANGED = "settings-changed"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """Immutable notification envelope.

    Attributes:
        event_type: What changed.
        directory: Sandbox-relative directory whose contents may differ
            (files-changed only).
        timestamp: Milliseconds since the epoch when the event was created.
    """

    event_type: EventType
    directory: str | None = None
    timestamp: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.event_type.value}
        if self.event_type is EventType.FILES_CHANGED:
            data["directory"] = self.directory or ""
        else:
            data["timestamp"] = self.timestamp
        return data

    def to_sse(self) -> str:
        """Server-sent-events ``data:`` frame."""
        return f"data: {json.dumps(self.to_dict())}\n\n"


class Subscription:
    """One connected client's mailbox."""

    __slots__ = ("closed", "queue")

    def __init__(self, max_pending: int) -> None:
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=max_pending)
        self.closed = False


class ChangeNotifier:
    """Process-wide, best-effort, at-most-once fan-out of change events.

    No persistence and no replay: a subscriber only sees events published
    while it is connected.  A subscriber whose mailbox is full is treated
    as disconnected and dropped; the publish itself never fails.
    """

    def __init__(self, *, max_pending: int = 100) -> None:
        self._max_pending = max_pending
        self._subscribers: set[Subscription] = set()
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self) -> Subscription:
        subscription = Subscription(self._max_pending)
        async with self._lock:
            self._subscribers.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscriber. Never awaits, so it is safe in cancellation cleanup."""
        subscription.closed = True
        self._subscribers.discard(subscription)

    async def publish(self, event: ChangeEvent) -> int:
        """Deliver *event* to every current subscriber. Returns the delivery count."""
        async with self._lock:
            targets = list(self._subscribers)

        delivered = 0
        for subscription in targets:
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Dropping unresponsive %s subscriber", event.event_type.value)
                self.unsubscribe(subscription)
        return delivered

    async def notify_directory(self, directory: str) -> int:
        return await self.publish(ChangeEvent(EventType.FILES_CHANGED, directory=directory))

    async def stream(
        self,
        subscription: Subscription,
        *,
        keepalive: float = KEEPALIVE_SECONDS,
    ) -> AsyncIterator[str]:
        """Yield SSE frames for *subscription* until it is closed or cancelled.

        Sends a ``connected`` frame first, then events as they arrive and a
        keep-alive comment whenever *keepalive* seconds pass without one.
        The subscription is removed on every exit path.
        """
        try:
            yield ChangeEvent(EventType.CONNECTED).to_sse()
            while not subscription.closed:
                try:
                    event = await asyncio.wait_for(subscription.queue.get(), timeout=keepalive)
                except TimeoutError:
                    yield KEEPALIVE_FRAME
                    continue
                if subscription.closed:
                    break
                yield event.to_sse()
        finally:
            self.unsubscribe(subscription)

    async def close_all(self) -> None:
        """Detach every subscriber (used on application shutdown)."""
        async with self._lock:
            targets = list(self._subscribers)
        for subscription in targets:
            self.unsubscribe(subscription)
            with contextlib.suppress(asyncio.QueueFull):
                subscription.queue.put_nowait(ChangeEvent(EventType.CONNECTED))
