"""
Event Bus
=========

Fan-out of UI-facing events to bounded per-subscriber queues.

Design Rules:
    - Publishing never blocks (called from timers and transport callbacks)
    - Each subscriber has a fixed maximum queue size
    - A full subscriber queue drops its oldest event
    - Slow subscribers never affect other subscribers
"""

import asyncio
import logging
from typing import List, Optional

from cardio_stream.events.types import UIEvent


logger = logging.getLogger(__name__)


class EventSubscription:
    """
    Bounded queue of events for one subscriber.

    Example:
        subscription = bus.subscribe(maxsize=100)
        event = await subscription.get(timeout=1.0)
    """

    def __init__(self, maxsize: int = 100) -> None:
        """
        Initialize subscription queue.

        Args:
            maxsize: Maximum events to buffer. Must be >= 1.
        """
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")

        self._maxsize = maxsize
        self._queue: asyncio.Queue[UIEvent] = asyncio.Queue(maxsize=maxsize)
        self._dropped_count: int = 0

    @property
    def size(self) -> int:
        return self._queue.qsize()

    @property
    def dropped_count(self) -> int:
        """Number of events dropped due to overflow."""
        return self._dropped_count

    def offer(self, event: UIEvent) -> None:
        """Add event, dropping the oldest one if the queue is full."""
        if self._queue.full():
            try:
                self._queue.get_nowait()
                self._dropped_count += 1
            except asyncio.QueueEmpty:
                pass
        self._queue.put_nowait(event)

    async def get(self, timeout: Optional[float] = None) -> Optional[UIEvent]:
        """
        Get next event.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Next event, or None if timeout occurred.
        """
        try:
            if timeout is not None:
                return await asyncio.wait_for(self._queue.get(), timeout=timeout)
            return await self._queue.get()
        except asyncio.TimeoutError:
            return None

    def get_nowait(self) -> Optional[UIEvent]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None


class EventBus:
    """
    Publishes events to every active subscription.

    Example:
        bus = EventBus()
        subscription = bus.subscribe()
        bus.publish(HeartRateUpdated(bpm=72.0))
    """

    def __init__(self, default_maxsize: int = 100) -> None:
        self._default_maxsize = default_maxsize
        self._subscriptions: List[EventSubscription] = []
        self._published: int = 0

    def subscribe(self, maxsize: Optional[int] = None) -> EventSubscription:
        subscription = EventSubscription(maxsize or self._default_maxsize)
        self._subscriptions.append(subscription)
        logger.debug(f"Event subscriber added ({len(self._subscriptions)} active)")
        return subscription

    def unsubscribe(self, subscription: EventSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug(f"Event subscriber removed ({len(self._subscriptions)} active)")

    def publish(self, event: UIEvent) -> None:
        """Deliver event to all subscribers without blocking."""
        self._published += 1
        for subscription in self._subscriptions:
            subscription.offer(event)

    def metrics(self) -> dict:
        """Get bus metrics for observability."""
        return {
            "subscribers": len(self._subscriptions),
            "published": self._published,
            "dropped": sum(s.dropped_count for s in self._subscriptions),
        }
