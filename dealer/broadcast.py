from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Set

LOGGER = logging.getLogger("card_lobby.broadcast")

# Broadcaster fans payloads out to whoever is listening right now. There is no
# history: a subscription only sees publishes that happen after it was opened.


_CLOSED = object()


class Subscription:
    """Unbounded async stream of payloads for one listener on one channel.

    Iterating never ends on its own; it stops once ``close()`` has been called
    and every payload delivered before the close has been consumed.
    """

    def __init__(self, broadcaster: "Broadcaster", channel: str) -> None:
        self.broadcaster = broadcaster
        self.channel = channel
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, payload: object) -> None:
        if self.closed:
            return
        self._queue.put_nowait(payload)

    def pending(self) -> int:
        size = self._queue.qsize()
        return size - 1 if self.closed and size else size

    def drain(self) -> List[object]:
        """Pop every payload already delivered without waiting."""
        payloads: List[object] = []
        while not self._queue.empty():
            payload = self._queue.get_nowait()
            if payload is _CLOSED:
                break
            payloads.append(payload)
        return payloads

    async def get(self) -> object:
        if self.closed and self._queue.empty():
            raise StopAsyncIteration
        payload = await self._queue.get()
        if payload is _CLOSED:
            raise StopAsyncIteration
        return payload

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # Wakes a consumer parked in get().
        self._queue.put_nowait(_CLOSED)
        self.broadcaster.detach(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> object:
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()


class Broadcaster:
    def __init__(self) -> None:
        self.channels: Dict[str, Set[Subscription]] = {}

    def subscribe(self, channel: str) -> Subscription:
        subscription = Subscription(self, channel)
        self.channels.setdefault(channel, set()).add(subscription)
        LOGGER.debug("Subscribed to %s (listeners=%s)", channel, self.listener_count(channel))
        return subscription

    def detach(self, subscription: Subscription) -> None:
        listeners = self.channels.get(subscription.channel)
        if not listeners:
            return
        listeners.discard(subscription)
        if not listeners:
            del self.channels[subscription.channel]
        LOGGER.debug(
            "Detached from %s (listeners=%s)",
            subscription.channel,
            self.listener_count(subscription.channel),
        )

    def publish(self, channel: str, payload: object) -> int:
        targets: List[Subscription] = list(self.channels.get(channel, ()))
        for subscription in targets:
            subscription.deliver(payload)
        LOGGER.debug("Published to %s (listeners=%s)", channel, len(targets))
        return len(targets)

    def listener_count(self, channel: Optional[str] = None) -> int:
        if channel is None:
            return sum(len(listeners) for listeners in self.channels.values())
        return len(self.channels.get(channel, ()))
