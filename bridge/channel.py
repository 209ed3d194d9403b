"""Outbound event channel between producers and delivery consumers.

Producers (the session registry and the pipeline) call `publish`, which never
blocks: each subscriber owns a bounded queue and an event that does not fit
is dropped for that subscriber only. Nothing is retried or replayed.
"""
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional

from bridge.models import PixelEvent

logger = logging.getLogger("bridge.channel")

_CLOSED = object()


class Subscription:
    """One consumer's view of the channel."""

    def __init__(self, channel: "EventChannel", max_queue_size: int):
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, max_queue_size))
        self.dropped = 0
        self.closed = False

    def _offer(self, item: object) -> bool:
        try:
            self._queue.put_nowait(item)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    def _close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # Make room for the end-of-stream marker.
            self._queue.get_nowait()
            self._queue.put_nowait(_CLOSED)

    async def get(self) -> Optional[PixelEvent]:
        """Next event, or None once the channel or subscription is closed."""
        item = await self._queue.get()
        if item is _CLOSED:
            return None
        return item  # type: ignore[return-value]

    def drain(self) -> list[PixelEvent]:
        """Return every queued event without waiting."""
        items: list[PixelEvent] = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return items
            if item is _CLOSED:
                self._queue.put_nowait(_CLOSED)
                return items
            items.append(item)  # type: ignore[arg-type]

    def unsubscribe(self) -> None:
        self._channel.unsubscribe(self)

    def __aiter__(self) -> AsyncIterator[PixelEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[PixelEvent]:
        while True:
            event = await self.get()
            if event is None:
                return
            yield event


class EventChannel:
    """Non-blocking fan-out of normalized events to any number of subscribers."""

    def __init__(self, max_queue_size: int = 1000):
        self.max_queue_size = max_queue_size
        self._subscribers: list[Subscription] = []
        self.published = 0

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.max_queue_size)
        self._subscribers.append(subscription)
        logger.debug(f"Subscriber added ({len(self._subscribers)} total)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
            logger.debug(f"Subscriber removed ({len(self._subscribers)} total)")
        subscription._close()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: PixelEvent) -> None:
        self.published += 1
        for subscription in list(self._subscribers):
            if not subscription._offer(event):
                logger.debug(f"Dropped {event.type} event for slow subscriber ({subscription.dropped} dropped)")

    def close(self) -> None:
        for subscription in list(self._subscribers):
            self.unsubscribe(subscription)
