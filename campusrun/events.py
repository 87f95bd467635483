"""In-process broadcast sink: named channels, fire-and-forget delivery."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field

from campusrun.config import settings

logger = logging.getLogger("campusrun.events")


@dataclass
class Event:
    type: str
    channel: str
    payload: dict = field(default_factory=dict)


class EventBus:
    """At-most-once pub/sub keyed by channel name.

    ``send`` never blocks and never raises for delivery problems: a full
    subscriber buffer drops the event for that subscriber only.
    """

    def __init__(self, queue_size: int | None = None) -> None:
        self._subscribers: dict[str, set[asyncio.Queue]] = {}
        self._queue_size = queue_size

    def subscribe(self, channel: str) -> asyncio.Queue:
        size = self._queue_size if self._queue_size is not None else settings.event_queue_size
        queue: asyncio.Queue = asyncio.Queue(maxsize=size)
        self._subscribers.setdefault(channel, set()).add(queue)
        return queue

    def unsubscribe(self, channel: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(channel)
        if not queues:
            return
        queues.discard(queue)
        if not queues:
            del self._subscribers[channel]

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))

    def send(self, channel: str, event: str, payload: dict | None = None) -> int:
        """Deliver to every current subscriber; returns how many received it."""
        evt = Event(type=event, channel=channel, payload=payload or {})
        delivered = 0
        for queue in list(self._subscribers.get(channel, ())):
            try:
                queue.put_nowait(evt)
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Dropped %s on %s: subscriber buffer full", event, channel)
        logger.debug("Sent %s on %s to %d subscriber(s)", event, channel, delivered)
        return delivered

    def close_channel(self, channel: str) -> None:
        for queue in list(self._subscribers.get(channel, ())):
            with contextlib.suppress(asyncio.QueueFull):
                queue.put_nowait(None)
        self._subscribers.pop(channel, None)

    def close_all(self) -> int:
        """Wake every open stream so it can finish; returns how many channels were open."""
        channels = list(self._subscribers)
        for channel in channels:
            self.close_channel(channel)
        return len(channels)


event_bus = EventBus()
